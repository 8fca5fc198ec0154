"""
API throttle classes for the queue operations endpoints.
"""

from rest_framework.throttling import AnonRateThrottle


class QueueRunThrottle(AnonRateThrottle):
    """
    Throttle for run triggers.

    Rate: 30 requests per hour per client address.
    Applied to: /api/v1/queue/run/, /api/v1/queue/housekeeping/
    """

    rate = '30/hour'
    scope = 'queue_run'


class QueueInspectThrottle(AnonRateThrottle):
    """
    Throttle for read-only inspection endpoints.

    Rate: 300 requests per hour per client address.
    Applied to: /api/v1/queue/tasks/, /api/v1/queue/cooldown/
    """

    rate = '300/hour'
    scope = 'queue_inspect'
