"""
Messaging application configuration.

This app provides the multi-tenant messaging API with:
- Applications identified by generated tokens
- Per-application numbered chats and per-chat numbered messages
- Batched, eventually consistent chats_count / messages_count
- Full-text message search
"""

from django.apps import AppConfig


class MessagingConfig(AppConfig):
    """Configuration for the messaging application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "messaging"
    verbose_name = "Messaging"
