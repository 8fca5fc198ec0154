"""
Queue operations API URL configuration.

Endpoints:
- POST     /api/v1/queue/run/          - Run the work queue once
- POST     /api/v1/queue/housekeeping/ - Run housekeeping
- GET|POST /api/v1/queue/cooldown/     - Inspect / change the global cooldown
- GET      /api/v1/queue/tasks/        - Inspect tasks by status
"""

from django.urls import path

from ingestion.api.views import queue_cooldown, queue_tasks, run_housekeeping, run_queue

app_name = 'ingestion_api'

urlpatterns = [
    path('queue/run/', run_queue, name='run_queue'),
    path('queue/housekeeping/', run_housekeeping, name='run_housekeeping'),
    path('queue/cooldown/', queue_cooldown, name='queue_cooldown'),
    path('queue/tasks/', queue_tasks, name='queue_tasks'),
]
