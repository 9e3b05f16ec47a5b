"""
Messaging models.

This module defines the three entities of the multi-tenant chat API:

Models:
    Application: Tenant owning chats, addressed externally by its token
    Chat: Numbered conversation inside an application
    Message: Numbered message inside a chat

Design Decisions:
    - Applications are addressed by token; the integer id never leaves the API
    - chats_count and messages_count are eventually consistent aggregates
      maintained by the batch aggregator, not by the request path
    - last_chat_number and last_message_number are sequence high-water marks.
      They only grow, so numbers are never reused after a delete.
    - Deletes cascade Application -> Chat -> Message at the database level
"""

from __future__ import annotations

from django.core.validators import MinLengthValidator
from django.db import models

from core.helpers import generate_token
from core.models import BaseModel
from messaging.constants import APPLICATION_CONFIG


class Application(BaseModel):
    """
    A tenant of the chat API.

    Fields:
        name: Display name, 3 to 50 characters
        token: Unique external identifier, assigned on insert and never changed
        chats_count: Aggregated number of chats (eventually consistent)
        last_chat_number: Highest chat number ever assigned

    Relationships:
        chats: Chat records (cascade delete)
        messages: Message records across all chats (cascade delete)
    """

    name = models.CharField(
        max_length=APPLICATION_CONFIG.NAME_MAX_LENGTH,
        validators=[MinLengthValidator(APPLICATION_CONFIG.NAME_MIN_LENGTH)],
        help_text="Application display name",
    )

    token = models.CharField(
        max_length=APPLICATION_CONFIG.TOKEN_LENGTH,
        unique=True,
        default=generate_token,
        editable=False,
        help_text="Externally visible identifier (64 hex characters)",
    )

    chats_count = models.PositiveIntegerField(
        default=0,
        help_text="Number of chats, reconciled by the batch aggregator",
    )

    last_chat_number = models.PositiveIntegerField(
        default=0,
        help_text="Highest chat number assigned so far",
    )

    class Meta:
        db_table = "messaging_application"
        ordering = ["id"]

    def __str__(self) -> str:
        return f"Application({self.name})"


class Chat(BaseModel):
    """
    A chat inside an application.

    Fields:
        application: Owning application
        number: 1-based sequence within the application
        messages_count: Aggregated number of messages (eventually consistent)
        last_message_number: Highest message number assigned so far

    Constraints:
        - UniqueConstraint(application, number)
    """

    application = models.ForeignKey(
        Application,
        on_delete=models.CASCADE,
        related_name="chats",
        help_text="Application owning this chat",
    )

    number = models.PositiveIntegerField(
        help_text="Sequence number within the application (starts at 1)",
    )

    messages_count = models.PositiveIntegerField(
        default=0,
        help_text="Number of messages, reconciled by the batch aggregator",
    )

    last_message_number = models.PositiveIntegerField(
        default=0,
        help_text="Highest message number assigned so far",
    )

    class Meta:
        db_table = "messaging_chat"
        ordering = ["number"]
        constraints = [
            models.UniqueConstraint(
                fields=["application", "number"],
                name="messaging_chat_app_number_uniq",
            ),
        ]

    def __str__(self) -> str:
        return f"Chat({self.application_id}#{self.number})"


class Message(BaseModel):
    """
    A message inside a chat.

    Fields:
        chat: Owning chat
        application: Owning application (denormalized for cascade and lookup)
        number: 1-based sequence within the chat
        body: Message text, never blank

    Constraints:
        - UniqueConstraint(chat, number)
    """

    chat = models.ForeignKey(
        Chat,
        on_delete=models.CASCADE,
        related_name="messages",
        help_text="Chat this message belongs to",
    )

    application = models.ForeignKey(
        Application,
        on_delete=models.CASCADE,
        related_name="messages",
        help_text="Application this message belongs to",
    )

    number = models.PositiveIntegerField(
        help_text="Sequence number within the chat (starts at 1)",
    )

    body = models.TextField(
        help_text="Message text",
    )

    class Meta:
        db_table = "messaging_message"
        ordering = ["number"]
        constraints = [
            models.UniqueConstraint(
                fields=["chat", "number"],
                name="messaging_message_chat_number_uniq",
            ),
        ]
        indexes = [
            models.Index(
                fields=["chat", "created_at"],
                name="messaging_msg_chat_created_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"Message({self.chat_id}#{self.number})"
