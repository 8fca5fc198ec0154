"""
Queue package for the ingestion pipeline.

Provides the database-backed WorkQueue of per-item fetch tasks.
"""

from ingestion.queue.work_queue import WorkQueue

__all__ = ["WorkQueue"]
