"""
Django admin configuration for messaging models.

Counts and numbers are read-only: they are maintained by the aggregators
and the sequencing logic, never edited by hand.
"""

from django.contrib import admin

from messaging.models import Application, Chat, Message


@admin.register(Application)
class ApplicationAdmin(admin.ModelAdmin):
    list_display = ["id", "name", "token", "chats_count", "created_at"]
    search_fields = ["name", "token"]
    readonly_fields = ["token", "chats_count", "last_chat_number", "created_at", "updated_at"]


@admin.register(Chat)
class ChatAdmin(admin.ModelAdmin):
    list_display = ["id", "application", "number", "messages_count", "created_at"]
    list_select_related = ["application"]
    raw_id_fields = ["application"]
    readonly_fields = ["number", "messages_count", "last_message_number", "created_at", "updated_at"]


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    list_display = ["id", "chat", "number", "created_at"]
    list_select_related = ["chat"]
    raw_id_fields = ["chat", "application"]
    search_fields = ["body"]
    readonly_fields = ["number", "created_at", "updated_at"]
