"""
Create the messaging schema.

Changes:
    - Create Application (token unique, chat sequence high-water mark)
    - Create Chat with unique (application, number)
    - Create Message with unique (chat, number)
"""

import django.core.validators
import django.db.models.deletion
from django.db import migrations, models

import core.helpers


def _timestamp_fields():
    return [
        (
            "id",
            models.BigAutoField(
                auto_created=True,
                primary_key=True,
                serialize=False,
                verbose_name="ID",
            ),
        ),
        (
            "created_at",
            models.DateTimeField(
                auto_now_add=True,
                db_index=True,
                help_text="Timestamp when this record was created",
            ),
        ),
        (
            "updated_at",
            models.DateTimeField(
                auto_now=True,
                help_text="Timestamp when this record was last modified",
            ),
        ),
    ]


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Application",
            fields=_timestamp_fields()
            + [
                (
                    "name",
                    models.CharField(
                        help_text="Application display name",
                        max_length=50,
                        validators=[django.core.validators.MinLengthValidator(3)],
                    ),
                ),
                (
                    "token",
                    models.CharField(
                        default=core.helpers.generate_token,
                        editable=False,
                        help_text="Externally visible identifier (64 hex characters)",
                        max_length=64,
                        unique=True,
                    ),
                ),
                (
                    "chats_count",
                    models.PositiveIntegerField(
                        default=0,
                        help_text="Number of chats, reconciled by the batch aggregator",
                    ),
                ),
                (
                    "last_chat_number",
                    models.PositiveIntegerField(
                        default=0,
                        help_text="Highest chat number assigned so far",
                    ),
                ),
            ],
            options={
                "db_table": "messaging_application",
                "ordering": ["id"],
            },
        ),
        migrations.CreateModel(
            name="Chat",
            fields=_timestamp_fields()
            + [
                (
                    "number",
                    models.PositiveIntegerField(
                        help_text="Sequence number within the application (starts at 1)",
                    ),
                ),
                (
                    "messages_count",
                    models.PositiveIntegerField(
                        default=0,
                        help_text="Number of messages, reconciled by the batch aggregator",
                    ),
                ),
                (
                    "last_message_number",
                    models.PositiveIntegerField(
                        default=0,
                        help_text="Highest message number assigned so far",
                    ),
                ),
                (
                    "application",
                    models.ForeignKey(
                        help_text="Application owning this chat",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="chats",
                        to="messaging.application",
                    ),
                ),
            ],
            options={
                "db_table": "messaging_chat",
                "ordering": ["number"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("application", "number"),
                        name="messaging_chat_app_number_uniq",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Message",
            fields=_timestamp_fields()
            + [
                (
                    "number",
                    models.PositiveIntegerField(
                        help_text="Sequence number within the chat (starts at 1)",
                    ),
                ),
                ("body", models.TextField(help_text="Message text")),
                (
                    "application",
                    models.ForeignKey(
                        help_text="Application this message belongs to",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="messages",
                        to="messaging.application",
                    ),
                ),
                (
                    "chat",
                    models.ForeignKey(
                        help_text="Chat this message belongs to",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="messages",
                        to="messaging.chat",
                    ),
                ),
            ],
            options={
                "db_table": "messaging_message",
                "ordering": ["number"],
                "indexes": [
                    models.Index(
                        fields=["chat", "created_at"],
                        name="messaging_msg_chat_created_idx",
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("chat", "number"),
                        name="messaging_message_chat_number_uniq",
                    ),
                ],
            },
        ),
    ]
