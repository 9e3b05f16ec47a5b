"""
ViewSets for the messaging API.

This module provides REST API endpoints for:
- ApplicationViewSet: Application CRUD
- ChatViewSet: Chats nested under an application
- MessageViewSet: Messages nested under a chat, plus search

URL Structure:
    /api/v1/applications/                                          GET, POST
    /api/v1/applications/{token}/                                  GET, PUT, DELETE
    /api/v1/applications/{token}/chats/                            GET, POST
    /api/v1/applications/{token}/chats/count/                      GET
    /api/v1/applications/{token}/chats/{number}/                   GET, DELETE
    /api/v1/applications/{token}/chats/{number}/messages/          GET, POST
    /api/v1/applications/{token}/chats/{number}/messages/count/    GET
    /api/v1/applications/{token}/chats/{number}/messages/search/   GET

Design Decisions:
    - Plain ViewSets mapped explicitly in urls.py; there is no queryset,
      every operation goes through the service container
    - Views validate input with serializers and never catch service
      exceptions; core.exception_handler renders them
    - The API is unauthenticated: the application token scopes access
"""

from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import (
    OpenApiParameter,
    OpenApiResponse,
    extend_schema,
    extend_schema_view,
)
from rest_framework import status, viewsets
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from messaging.caching import ResponseVariant
from messaging.constants import MESSAGE_CONFIG
from messaging.dependencies import get_container
from messaging.pagination import PageParams
from messaging.serializers import (
    ApplicationFullSerializer,
    ApplicationSerializer,
    ApplicationWriteSerializer,
    ChatSerializer,
    MessageCreateSerializer,
    MessageSearchQuerySerializer,
    MessageSerializer,
    SearchHitSerializer,
)

PAGE_PARAMETERS = [
    OpenApiParameter(
        name="page",
        type=OpenApiTypes.INT,
        location=OpenApiParameter.QUERY,
        description="Page number (default 1)",
        required=False,
    ),
    OpenApiParameter(
        name="limit",
        type=OpenApiTypes.INT,
        location=OpenApiParameter.QUERY,
        description="Items per page (default 10, max 50)",
        required=False,
    ),
]

NOT_FOUND = OpenApiResponse(description="Application or chat not found")


class MessagingViewSet(viewsets.ViewSet):
    """Shared plumbing for the messaging viewsets."""

    permission_classes = [AllowAny]

    @property
    def services(self):
        return get_container()

    def page_params(self, request) -> PageParams:
        return PageParams.from_query(request.query_params)


# =============================================================================
# Applications
# =============================================================================


@extend_schema_view(
    list=extend_schema(
        operation_id="list_applications",
        summary="List applications",
        parameters=PAGE_PARAMETERS,
        responses={200: ApplicationSerializer(many=True)},
        tags=["Applications"],
    ),
    create=extend_schema(
        operation_id="create_application",
        summary="Create application",
        request=ApplicationWriteSerializer,
        responses={
            201: ApplicationSerializer,
            400: OpenApiResponse(description="Invalid name"),
        },
        tags=["Applications"],
    ),
    retrieve=extend_schema(
        operation_id="get_application",
        summary="Get application",
        parameters=[
            OpenApiParameter(
                name="variant",
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                description="summary (default) or full (adds timestamps)",
                required=False,
                enum=[v.value for v in ResponseVariant],
            ),
        ],
        responses={200: ApplicationFullSerializer, 404: NOT_FOUND},
        tags=["Applications"],
    ),
    update=extend_schema(
        operation_id="update_application",
        summary="Rename application",
        request=ApplicationWriteSerializer,
        responses={200: ApplicationSerializer, 400: None, 404: NOT_FOUND},
        tags=["Applications"],
    ),
    destroy=extend_schema(
        operation_id="delete_application",
        summary="Delete application",
        description="Deletes the application with all of its chats and messages.",
        responses={204: None, 404: NOT_FOUND},
        tags=["Applications"],
    ),
)
class ApplicationViewSet(MessagingViewSet):
    """
    ViewSet for applications, addressed by token.

    create:
        Create an application. The token is generated server-side.

    retrieve:
        Get an application. chats_count is eventually consistent: it
        catches up once the chat count aggregator has run.
    """

    def list(self, request):
        return Response(
            self.services.applications.list_applications(self.page_params(request))
        )

    def create(self, request):
        serializer = ApplicationWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payload = self.services.applications.create_application(
            serializer.validated_data["name"]
        )
        return Response(payload, status=status.HTTP_201_CREATED)

    def retrieve(self, request, token=None):
        variant = ResponseVariant.parse(request.query_params.get("variant"))
        return Response(self.services.applications.get_application(token, variant))

    def update(self, request, token=None):
        serializer = ApplicationWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payload = self.services.applications.update_application(
            token, serializer.validated_data["name"]
        )
        return Response(payload)

    def destroy(self, request, token=None):
        self.services.applications.delete_application(token)
        return Response(status=status.HTTP_204_NO_CONTENT)


# =============================================================================
# Chats
# =============================================================================


@extend_schema_view(
    list=extend_schema(
        operation_id="list_chats",
        summary="List chats",
        parameters=PAGE_PARAMETERS,
        responses={200: ChatSerializer(many=True), 404: NOT_FOUND},
        tags=["Chats"],
    ),
    create=extend_schema(
        operation_id="create_chat",
        summary="Create chat",
        description="Creates the next chat of the application (numbers start at 1).",
        request=None,
        responses={201: ChatSerializer, 404: NOT_FOUND},
        tags=["Chats"],
    ),
    retrieve=extend_schema(
        operation_id="get_chat",
        summary="Get chat",
        responses={200: ChatSerializer, 404: NOT_FOUND},
        tags=["Chats"],
    ),
    destroy=extend_schema(
        operation_id="delete_chat",
        summary="Delete chat",
        responses={204: None, 404: NOT_FOUND},
        tags=["Chats"],
    ),
    count=extend_schema(
        operation_id="count_chats",
        summary="Count chats",
        responses={200: OpenApiResponse(description="{chats_count}"), 404: NOT_FOUND},
        tags=["Chats"],
    ),
)
class ChatViewSet(MessagingViewSet):
    """ViewSet for chats of one application, addressed by number."""

    def list(self, request, token=None):
        return Response(self.services.chats.list_chats(token, self.page_params(request)))

    def create(self, request, token=None):
        payload = self.services.chats.create_chat(token)
        return Response(payload, status=status.HTTP_201_CREATED)

    def retrieve(self, request, token=None, number=None):
        return Response(self.services.chats.get_chat(token, number))

    def destroy(self, request, token=None, number=None):
        self.services.chats.delete_chat(token, number)
        return Response(status=status.HTTP_204_NO_CONTENT)

    def count(self, request, token=None):
        return Response({"chats_count": self.services.chats.get_chats_count(token)})


# =============================================================================
# Messages
# =============================================================================


@extend_schema_view(
    list=extend_schema(
        operation_id="list_messages",
        summary="List messages",
        parameters=PAGE_PARAMETERS
        + [
            OpenApiParameter(
                name="sortBy",
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                description="Sort order (default number)",
                required=False,
                enum=list(MESSAGE_CONFIG.SORT_FIELDS),
            ),
        ],
        responses={
            200: MessageSerializer(many=True),
            400: OpenApiResponse(description="Invalid sortBy"),
            404: NOT_FOUND,
        },
        tags=["Messages"],
    ),
    create=extend_schema(
        operation_id="create_message",
        summary="Create message",
        request=MessageCreateSerializer,
        responses={
            201: MessageSerializer,
            400: OpenApiResponse(description="Blank body"),
            404: NOT_FOUND,
        },
        tags=["Messages"],
    ),
    count=extend_schema(
        operation_id="count_messages",
        summary="Count messages",
        responses={200: OpenApiResponse(description="{messages_count}"), 404: NOT_FOUND},
        tags=["Messages"],
    ),
    search=extend_schema(
        operation_id="search_messages",
        summary="Search messages",
        description=(
            "Searches message bodies of one chat. mode=match runs a full-text "
            "match, mode=wildcard a case-insensitive substring match. When the "
            "search cluster is unavailable the result is an empty page."
        ),
        parameters=PAGE_PARAMETERS
        + [
            OpenApiParameter(
                name="query",
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                description="Text to search for",
                required=True,
            ),
            OpenApiParameter(
                name="mode",
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                description="match (default) or wildcard",
                required=False,
                enum=["match", "wildcard"],
            ),
        ],
        responses={
            200: SearchHitSerializer(many=True),
            400: OpenApiResponse(description="Missing query or invalid mode"),
            404: NOT_FOUND,
        },
        tags=["Messages"],
    ),
)
class MessageViewSet(MessagingViewSet):
    """ViewSet for messages of one chat."""

    def list(self, request, token=None, number=None):
        sort_by = request.query_params.get("sortBy") or MESSAGE_CONFIG.DEFAULT_SORT
        return Response(
            self.services.messages.list_messages(
                token, number, self.page_params(request), sort_by
            )
        )

    def create(self, request, token=None, number=None):
        serializer = MessageCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payload = self.services.messages.create_message(
            token, number, serializer.validated_data["body"]
        )
        return Response(payload, status=status.HTTP_201_CREATED)

    def count(self, request, token=None, number=None):
        return Response(
            {"messages_count": self.services.messages.get_messages_count(token, number)}
        )

    def search(self, request, token=None, number=None):
        serializer = MessageSearchQuerySerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        return Response(
            self.services.search.search_messages(
                token,
                number,
                serializer.validated_data["query"],
                self.page_params(request),
                mode=serializer.validated_data["mode"],
            )
        )
