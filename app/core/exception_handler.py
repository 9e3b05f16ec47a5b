"""
DRF exception handler rendering application errors.

Registered in settings as REST_FRAMEWORK["EXCEPTION_HANDLER"]. Every error
response produced by the API has the same shape:

    {"error": "<message>", "error_code": "<CODE>", "details": {...}}

Mapping:
    core.exceptions.BaseApplicationError -> exc.http_status, exc.to_dict()
    rest_framework ValidationError        -> 400, VALIDATION_ERROR + field details
    other rest_framework APIException     -> its status, code from exc.default_code
    anything else                         -> 500, INTERNAL_ERROR (logged)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from rest_framework import exceptions as drf_exceptions
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from core.exceptions import BaseApplicationError

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)


def api_exception_handler(exc: Exception, context: dict[str, Any]) -> Response:
    """Render exceptions raised from views as the standard error body."""
    if isinstance(exc, BaseApplicationError):
        if exc.http_status >= 500:
            logger.error(
                f"Application error: {exc}",
                extra={"error_code": exc.error_code, "view": _view_name(context)},
            )
        return Response(exc.to_dict(), status=exc.http_status)

    if isinstance(exc, drf_exceptions.ValidationError):
        return Response(
            {
                "error": "Validation failed",
                "error_code": "VALIDATION_ERROR",
                "details": exc.detail,
            },
            status=status.HTTP_400_BAD_REQUEST,
        )

    response = exception_handler(exc, context)
    if response is not None:
        detail = response.data.get("detail") if isinstance(response.data, dict) else None
        response.data = {
            "error": str(detail or exc),
            "error_code": str(getattr(exc, "default_code", "error")).upper(),
        }
        return response

    logger.exception(
        "Unhandled exception in API view",
        extra={"view": _view_name(context)},
    )
    return Response(
        {"error": "Internal server error", "error_code": "INTERNAL_ERROR"},
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def _view_name(context: dict[str, Any]) -> str:
    view = context.get("view")
    return view.__class__.__name__ if view is not None else ""
