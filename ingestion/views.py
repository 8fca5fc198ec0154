"""
Ingestion service views.

Health check endpoint for monitoring and load balancer checks.
"""

import logging

from django.db import DatabaseError, connection
from django.http import JsonResponse
from django.utils import timezone

from ingestion.models import GlobalCooldown, QueueTask, TaskStatus
from ingestion.services.cooldown import get_global_cooldown

logger = logging.getLogger(__name__)


def get_redis_connection():
    """
    Get Redis connection for health check.

    Returns:
        Redis client if the cache is django-redis, None otherwise.
    """
    from django.core.cache import cache

    if hasattr(cache, "client") and hasattr(cache.client, "get_client"):
        return cache.client.get_client()
    return None


def health_check(request):
    """
    Health check endpoint for the ingestion service.

    Endpoint: GET /api/health/
    No authentication required (for load balancer checks).

    Response fields:
        - status: "healthy" or "unhealthy"
        - database: "connected" or "error"
        - redis: "connected", "not_configured" or "error"
        - queue: task counts per status
        - global_cooldown: {"active", "until"}

    Returns:
        JsonResponse: HTTP 200 when healthy, HTTP 503 when the database is down
    """
    status = "healthy"
    http_status = 200

    database_status = "connected"
    try:
        connection.ensure_connection()
    except DatabaseError as e:
        logger.error(f"Health check database error: {e}")
        database_status = "error"
        status = "unhealthy"
        http_status = 503

    redis_status = "not_configured"
    try:
        redis_client = get_redis_connection()
        if redis_client is not None:
            redis_status = "connected" if redis_client.ping() else "error"
    except Exception as e:
        logger.warning(f"Health check redis error: {e}")
        redis_status = "error"

    queue_counts = {}
    cooldown_data = {"active": False, "until": None}
    if database_status == "connected":
        try:
            queue_counts = {s: 0 for s in TaskStatus.values}
            for status_value in TaskStatus.values:
                queue_counts[status_value] = QueueTask.objects.filter(status=status_value).count()

            cooldown = get_global_cooldown(GlobalCooldown.DEFAULT_NAME)
            if cooldown is not None:
                cooldown_data = {
                    "active": cooldown.is_active(timezone.now()),
                    "until": cooldown.until.isoformat() if cooldown.until else None,
                }
        except DatabaseError as e:
            logger.error(f"Health check query error: {e}")
            status = "unhealthy"
            http_status = 503

    response_data = {
        "status": status,
        "database": database_status,
        "redis": redis_status,
        "queue": queue_counts,
        "global_cooldown": cooldown_data,
    }

    return JsonResponse(response_data, status=http_status)
