"""
Add Celery Beat schedules for the batch aggregators.

This migration creates periodic task schedules for:
- Chat count aggregation (drains chat_creation_queue every 10 seconds)
- Message count aggregation (drains message_creation_queue every 15 seconds)
"""

from django.db import migrations

TASK_NAMES = [
    "Messaging: Aggregate Chat Counts",
    "Messaging: Aggregate Message Counts",
]


def create_periodic_tasks(apps, schema_editor):
    """Create periodic tasks for counter aggregation."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    schedule_10s, _ = IntervalSchedule.objects.get_or_create(
        every=10,
        period="seconds",
    )
    schedule_15s, _ = IntervalSchedule.objects.get_or_create(
        every=15,
        period="seconds",
    )

    PeriodicTask.objects.get_or_create(
        name="Messaging: Aggregate Chat Counts",
        defaults={
            "task": "messaging.tasks.aggregate_chat_counts",
            "interval": schedule_10s,
            "enabled": True,
            "description": (
                "Drains chat_creation_queue, coalesces events per application "
                "token and applies one chats_count increment per token."
            ),
        },
    )

    PeriodicTask.objects.get_or_create(
        name="Messaging: Aggregate Message Counts",
        defaults={
            "task": "messaging.tasks.aggregate_message_counts",
            "interval": schedule_15s,
            "enabled": True,
            "description": (
                "Drains message_creation_queue, coalesces events per chat "
                "and applies one messages_count increment per chat."
            ),
        },
    )


def remove_periodic_tasks(apps, schema_editor):
    """Remove messaging periodic tasks on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")
    PeriodicTask.objects.filter(name__in=TASK_NAMES).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("messaging", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
