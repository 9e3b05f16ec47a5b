"""
URL configuration for the messaging API.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check (database, Redis, queue broker)
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/                       - Messaging endpoints
        applications/                                      - list/create
        applications/{token}/                              - get/rename/delete
        applications/{token}/chats/                        - list/create
        applications/{token}/chats/count/                  - chats_count
        applications/{token}/chats/{number}/               - get/delete
        applications/{token}/chats/{number}/messages/      - list/create
        applications/{token}/chats/{number}/messages/count/  - messages_count
        applications/{token}/chats/{number}/messages/search/ - search
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include("messaging.urls")),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Messaging Admin"
admin.site.site_title = "Messaging Admin"
admin.site.index_title = "Applications, chats and messages"
