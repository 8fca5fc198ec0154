"""
Queue operations API.

Endpoints for the internal scheduler and operators:
- Trigger a queue run or a housekeeping sweep on demand
- Inspect and change the global vendor cooldown
- Inspect tasks by status and tenant

Every endpoint is guarded by IsInternalDispatcher and rate limited.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from django.utils import timezone
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status
from rest_framework.decorators import (
    api_view,
    authentication_classes,
    permission_classes,
    throttle_classes,
)
from rest_framework.response import Response

from ingestion.api.permissions import IsInternalDispatcher
from ingestion.api.throttling import QueueInspectThrottle, QueueRunThrottle
from ingestion.models import TaskStatus, Tenant
from ingestion.queue.work_queue import WorkQueue
from ingestion.services.cooldown import (
    clear_global_cooldown,
    get_global_cooldown,
    set_global_cooldown,
)
from ingestion.services.runs import housekeeping_run, process_queue_run

logger = logging.getLogger(__name__)

MAX_TASK_LIMIT = 200


def _request_object(request) -> Dict[str, Any]:
    """
    Request body as a mapping (empty when no body was sent).

    Raises:
        ValueError: If the body is a JSON array or scalar
    """
    data = request.data
    if not data:
        return {}
    if not isinstance(data, dict):
        raise ValueError("Request body must be a JSON object")
    return data


def _optional_text(data: Dict[str, Any], field: str) -> Optional[str]:
    value = data.get(field)
    if value is None:
        return None
    return str(value).strip() or None


def _positive_int(
data: Dict[str, Any], field: str) -> Optional[int]:
    """
    Read an optional positive integer from request data.

    Raises:
        ValueError: If the value is present but not a positive integer
    """
    value = data.get(field)
    if value in (None, ""):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"'{field}' must be an integer")
    if number <= 0:
        raise ValueError(f"'{field}' must be positive")
    return number


def _cooldown_payload() -> Dict[str, Any]:
    cooldown = get_global_cooldown()
    now = timezone.now()
    return {
        "active": bool(cooldown and cooldown.is_active(now)),
        "until": cooldown.until.isoformat() if cooldown and cooldown.until else None,
        "reason": cooldown.reason if cooldown else "",
    }


def _task_payload(task) -> Dict[str, Any]:
    return {
        "id": str(task.id),
        "tenant": task.tenant.slug,
        "item_id": task.item_id,
        "status": task.status,
        "attempts": task.attempts,
        "priority": task.priority,
        "error": task.error,
        "updated_at": task.updated_at.isoformat(),
    }


# ============================================================
# Run triggers
# ============================================================

@extend_schema(
    tags=['Queue'],
    summary='Run the work queue once',
    description='''
    Claim a batch of queued tasks and process it synchronously.

    Requires the dispatch header with the configured token unless manual
    runs are enabled. Returns the run summary.
    ''',
    request={
        'application/json': {
            'type': 'object',
            'properties': {
                'focus_tenant': {'type': 'string', 'description': 'Only claim tasks of this tenant'},
                'batch_size': {'type': 'integer', 'minimum': 1},
            },
        }
    },
    responses={
        200: {'description': 'Run summary (taken, done, failed, throttled, deferred)'},
        400: {'description': 'Invalid parameters'},
        403: {'description': 'Not the internal dispatcher'},
    },
)
@api_view(['POST'])
@authentication_classes([])
@permission_classes([IsInternalDispatcher])
@throttle_classes([QueueRunThrottle])
def run_queue(request):
    """Trigger one queue run."""
    try:
        data = _request_object(request)
        batch_size = _positive_int(data, 'batch_size')
    except ValueError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    focus_tenant = _optional_text(data, 'focus_tenant')
    logger.info(f"On-demand queue run requested (focus={focus_tenant}, batch={batch_size})")

    summary = process_queue_run(focus_tenant=focus_tenant, batch_size=batch_size)
    return Response(summary.to_dict(), status=status.HTTP_200_OK)


@extend_schema(
    tags=['Queue'],
    summary='Run queue housekeeping',
    description='Release stuck processing tasks and fail tasks that used up their attempts.',
    request={
        'application/json': {
            'type': 'object',
            'properties': {
                'tenant': {'type': 'string'},
                'processing_ttl_minutes': {'type': 'integer', 'minimum': 1},
                'max_attempts': {'type': 'integer', 'minimum': 1},
                'sleep_others_days': {'type': 'integer', 'minimum': 1},
                'clear_cooldown': {'type': 'boolean', 'default': False},
            },
        }
    },
    responses={
        200: {'description': 'Housekeeping report'},
        400: {'description': 'Invalid parameters'},
        403: {'description': 'Not the internal dispatcher'},
        404: {'description': 'Unknown tenant'},
    },
)
@api_view(['POST'])
@authentication_classes([])
@permission_classes([IsInternalDispatcher])
@throttle_classes([QueueRunThrottle])
def run_housekeeping(request):
    """Trigger one housekeeping sweep."""
    try:
        data = _request_object(request)
        ttl_minutes = _positive_int(data, 'processing_ttl_minutes')
        max_attempts = _positive_int(data, 'max_attempts')
        sleep_days = _positive_int(data, 'sleep_others_days') or 0
    except ValueError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    try:
        report = housekeeping_run(
            tenant_slug=_optional_text(data, 'tenant'),
            processing_ttl_minutes=ttl_minutes,
            max_attempts=max_attempts,
            sleep_others_days=sleep_days,
            clear_cooldown=bool(data.get('clear_cooldown', False)),
        )
    except Tenant.DoesNotExist:
        return Response({'error': 'Unknown tenant'}, status=status.HTTP_404_NOT_FOUND)

    return Response(report.to_dict(), status=status.HTTP_200_OK)


# ============================================================
# Inspection
# ============================================================

@extend_schema(
    tags=['Queue'],
    summary='Inspect or change the global cooldown',
    description='''
    GET returns the current cooldown.
    POST with {"action": "clear"} clears it; POST with {"minutes": N}
    extends it to at least now + N minutes.
    ''',
    responses={
        200: {'description': 'Cooldown state (active, until, reason)'},
        400: {'description': 'Invalid parameters'},
        403: {'description': 'Not the internal dispatcher'},
    },
)
@api_view(['GET', 'POST'])
@authentication_classes([])
@permission_classes([IsInternalDispatcher])
@throttle_classes([QueueInspectThrottle])
def queue_cooldown(request):
    """Read, set or clear the global cooldown."""
    if request.method == 'POST':
        try:
            data = _request_object(request)
        except ValueError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
        if data.get('action') == 'clear':
            clear_global_cooldown()
        else:
            try:
                minutes = _positive_int(data, 'minutes')
            except ValueError as e:
                return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
            if minutes is None:
                return Response(
                    {'error': "Provide 'minutes' or action 'clear'"},
                    status=status.HTTP_400_BAD_REQUEST,
                )
            set_global_cooldown(
                timedelta(minutes=minutes),
                reason=data.get('reason') or 'set via API',
            )

    return Response(_cooldown_payload(), status=status.HTTP_200_OK)


@extend_schema(
    tags=['Queue'],
    summary='Inspect queue tasks',
    parameters=[
        OpenApiParameter('status', OpenApiTypes.STR, description='queued, processing, done or failed'),
        OpenApiParameter('tenant', OpenApiTypes.STR, description='Tenant slug'),
        OpenApiParameter('limit', OpenApiTypes.INT, description=f'Max tasks (<= {MAX_TASK_LIMIT})'),
    ],
    responses={
        200: {'description': 'Status counts and matching tasks'},
        400: {'description': 'Invalid parameters'},
        403: {'description': 'Not the internal dispatcher'},
        404: {'description': 'Unknown tenant'},
    },
)
@api_view(['GET'])
@authentication_classes([])
@permission_classes([IsInternalDispatcher])
@throttle_classes([QueueInspectThrottle])
def queue_tasks(request):
    """Status counts plus the most recently updated tasks of one status."""
    task_status = request.query_params.get('status', TaskStatus.FAILED)
    if task_status not in TaskStatus.values:
        return Response(
            {'error': f"Invalid status. Valid options: {', '.join(TaskStatus.values)}"},
            status=status.HTTP_400_BAD_REQUEST,
        )

    try:
        limit = min(_positive_int(request.query_params, 'limit') or 20, MAX_TASK_LIMIT)
    except ValueError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    tenant = None
    slug = request.query_params.get('tenant')
    if slug:
        tenant = Tenant.objects.filter(slug=slug).first()
        if tenant is None:
            return Response({'error': 'Unknown tenant'}, status=status.HTTP_404_NOT_FOUND)

    queue = WorkQueue()
    tasks = queue.tasks_by_status(task_status, tenant=tenant, limit=limit)
    return Response(
        {
            'counts': queue.status_counts(tenant=tenant),
            'status': task_status,
            'tasks': [_task_payload(task) for task in tasks],
        },
        status=status.HTTP_200_OK,
    )
