"""
Read-only view over job state for polling clients
"""
from typing import Any, Dict

from .queue_manager import JobQueue


class StatusService:
    def __init__(self, queue: JobQueue):
        self._queue = queue

    def get_status(self, job_id: str) -> Dict[str, Any]:
        return self._queue.get_status(job_id)

    def get_queue_stats(self) -> Dict[str, int]:
        """Best-effort snapshot; counts may be stale by the time they are read"""
        return self._queue.get_queue_stats()
