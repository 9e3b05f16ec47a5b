"""
URL configuration for the messaging API.

URL Structure:
    Applications:
        /applications/                          GET, POST
        /applications/{token}/                  GET, PUT, DELETE

    Chats:
        /applications/{token}/chats/            GET, POST
        /applications/{token}/chats/count/      GET
        /applications/{token}/chats/{number}/   GET, DELETE

    Messages:
        /applications/{token}/chats/{number}/messages/         GET, POST
        /applications/{token}/chats/{number}/messages/count/   GET
        /applications/{token}/chats/{number}/messages/search/  GET

All URLs are prefixed with /api/v1/ in the main URL configuration.
"""

from django.urls import path

from messaging.views import ApplicationViewSet, ChatViewSet, MessageViewSet

app_name = "messaging"

CHAT_PREFIX = "applications/<str:token>/chats/<int:number>/"

urlpatterns = [
    path(
        "applications/",
        ApplicationViewSet.as_view({"get": "list", "post": "create"}),
        name="application-list",
    ),
    path(
        "applications/<str:token>/",
        ApplicationViewSet.as_view(
            {"get": "retrieve", "put": "update", "delete": "destroy"}
        ),
        name="application-detail",
    ),
    path(
        "applications/<str:token>/chats/",
        ChatViewSet.as_view({"get": "list", "post": "create"}),
        name="chat-list",
    ),
    path(
        "applications/<str:token>/chats/count/",
        ChatViewSet.as_view({"get": "count"}),
        name="chat-count",
    ),
    path(
        CHAT_PREFIX,
        ChatViewSet.as_view({"get": "retrieve", "delete": "destroy"}),
        name="chat-detail",
    ),
    path(
        f"{CHAT_PREFIX}messages/",
        MessageViewSet.as_view({"get": "list", "post": "create"}),
        name="message-list",
    ),
    path(
        f"{CHAT_PREFIX}messages/count/",
        MessageViewSet.as_view({"get": "count"}),
        name="message-count",
    ),
    path(
        f"{CHAT_PREFIX}messages/search/",
        MessageViewSet.as_view({"get": "search"}),
        name="message-search",
    ),
]
