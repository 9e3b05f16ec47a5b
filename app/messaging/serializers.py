"""
Serializers for the messaging API.

This module provides serializers for:
- Application payloads (summary and full variants) and input
- Chat payloads
- Message payloads and input
- Search query parameters

Serializer Hierarchy:
    ApplicationSerializer: {name, token, chats_count} (SUMMARY variant)
    ApplicationFullSerializer: adds created_at, updated_at (FULL variant)
    ApplicationWriteSerializer: name input for create and update

    ChatSerializer: {number, messages_count, created_at, updated_at}

    MessageSerializer: {number, body, chat_number, created_at, updated_at}
    MessageCreateSerializer: body input

    MessageSearchQuerySerializer: query, mode
    SearchHitSerializer: search document as returned to clients

Design Decisions:
    - Internal ids never appear in payloads; tokens and numbers do
    - Services use these serializers to build the cached payloads, so the
      cached and uncached responses are byte-for-byte the same shape
"""

from __future__ import annotations

from rest_framework import serializers

from messaging.caching import ResponseVariant
from messaging.constants import APPLICATION_CONFIG, SEARCH_CONFIG
from messaging.models import Application, Chat, Message


# =============================================================================
# Application Serializers
# =============================================================================


class ApplicationSerializer(serializers.ModelSerializer):
    """Summary payload of an application."""

    class Meta:
        model = Application
        fields = ["name", "token", "chats_count"]
        read_only_fields = fields


class ApplicationFullSerializer(ApplicationSerializer):
    """Full payload of an application, including timestamps."""

    class Meta(ApplicationSerializer.Meta):
        fields = ApplicationSerializer.Meta.fields + ["created_at", "updated_at"]
        read_only_fields = fields


class ApplicationWriteSerializer(serializers.Serializer):
    """Input for creating or renaming an application."""

    name = serializers.CharField(
        min_length=APPLICATION_CONFIG.NAME_MIN_LENGTH,
        max_length=APPLICATION_CONFIG.NAME_MAX_LENGTH,
        trim_whitespace=True,
        help_text="Application name (3 to 50 characters)",
    )


def application_payload(application: Application, variant: ResponseVariant) -> dict:
    """Serialize an application in the requested variant."""
    serializer_class = (
        ApplicationFullSerializer
        if variant is ResponseVariant.FULL
        else ApplicationSerializer
    )
    return dict(serializer_class(application).data)


# =============================================================================
# Chat Serializers
# =============================================================================


class ChatSerializer(serializers.ModelSerializer):
    class Meta:
        model = Chat
        fields = ["number", "messages_count", "created_at", "updated_at"]
        read_only_fields = fields


# =============================================================================
# Message Serializers
# =============================================================================


class MessageSerializer(serializers.ModelSerializer):
    """Message payload; the chat is identified by its number."""

    chat_number = serializers.IntegerField(source="chat.number", read_only=True)

    class Meta:
        model = Message
        fields = ["number", "body", "chat_number", "created_at", "updated_at"]
        read_only_fields = fields


class MessageCreateSerializer(serializers.Serializer):
    body = serializers.CharField(
        allow_blank=False,
        trim_whitespace=False,
        help_text="Message text (must not be blank)",
    )

    def validate_body(self, value: str) -> str:
        if not value.strip():
            raise serializers.ValidationError("This field may not be blank.")
        return value


# =============================================================================
# Search Serializers
# =============================================================================


class MessageSearchQuerySerializer(serializers.Serializer):
    """Query parameters of the search endpoint (page and limit parsed separately)."""

    query = serializers.CharField(
        min_length=SEARCH_CONFIG.MIN_QUERY_LENGTH,
        help_text="Text to search for in message bodies",
    )
    mode = serializers.ChoiceField(
        choices=SEARCH_CONFIG.MODES,
        default=SEARCH_CONFIG.MODE_MATCH,
        help_text="match (full-text) or wildcard (substring)",
    )


class SearchHitSerializer(serializers.Serializer):
    """Search document: {id, number, body, chatId, createdAt}."""

    id = serializers.IntegerField()
    number = serializers.IntegerField()
    body = serializers.CharField()
    chatId = serializers.IntegerField()
    createdAt = serializers.CharField(allow_null=True)
