"""
Core views providing infrastructure endpoints.

This module contains views that are not part of the business domain but are
essential for operating the service, such as health checks.
"""

import logging

from django.conf import settings
from django.db import connection
from django.http import JsonResponse
from django_redis import get_redis_connection
from kombu import Connection

logger = logging.getLogger(__name__)


def health_check(request):
    """
    Health check endpoint for monitoring and orchestration.

    Returns:
        JsonResponse with status and component health:
        - status: "healthy" or "unhealthy"
        - database: "connected" or "disconnected"
        - cache: "connected" or "disconnected"
        - queue: "connected" or "disconnected"

    HTTP Status Codes:
        200: Database reachable (cache and queue only degrade)
        503: Database unreachable

    Example Response:
        {
            "status": "healthy",
            "database": "connected",
            "cache": "connected",
            "queue": "disconnected"
        }
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "cache": "unknown",
        "queue": "unknown",
    }
    is_healthy = True

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        health_status["database"] = "connected"
    except Exception:
        logger.exception("Health check: database unreachable")
        health_status["database"] = "disconnected"
        health_status["status"] = "unhealthy"
        is_healthy = False

    # Counters and response cache degrade to the database without Redis
    try:
        get_redis_connection("default").ping()
        health_status["cache"] = "connected"
    except Exception:
        logger.warning("Health check: redis unreachable", exc_info=True)
        health_status["cache"] = "disconnected"

    # Without the broker, counts are delayed but requests still succeed
    try:
        with Connection(settings.AGGREGATION_QUEUE_URL) as conn:
            conn.ensure_connection(max_retries=1)
        health_status["queue"] = "connected"
    except Exception:
        logger.warning("Health check: aggregation queue unreachable", exc_info=True)
        health_status["queue"] = "disconnected"

    status_code = 200 if is_healthy else 503

    return JsonResponse(health_status, status=status_code)
