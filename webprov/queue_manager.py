"""
Durable provisioning job queue.

Jobs live in the provisioning_jobs table so queued and in-flight work
survives a restart. The queue owns every state transition:

    queued --claim--> active --complete--> completed
    stalled --claim--> active --fail-----> queued (retry with backoff) | failed
    active --stall sweep--> stalled | failed

Claims are conditional UPDATEs on the previous status, so a job is handed to
at most one worker even when several processes share the database.
"""

import logging
import time
import uuid
from contextlib import contextmanager
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import delete, func, select, update

from .config import QUEUE_BACKOFF_BASE_SECONDS, QUEUE_MAX_ATTEMPTS
from .db import SessionLocal, session_scope
from .errors import InvalidTransitionError
from .models.job import JOB_STATUSES, TERMINAL_STATUSES, Job
from .orchestrator import compute_domain_label, sanitize_owner
from .schemas.provisioning import ProvisioningRequest
from .services.prometheus_metrics import prometheus_metrics

logger = logging.getLogger("webprov.queue")

STALLED_ERROR = "job stalled more than allowable limit"
CLAIM_BATCH = 10


def _snapshot(job: Job) -> Dict[str, Any]:
    return {
        "job_id": job.job_id,
        "owner": job.owner,
        "request": dict(job.request or {}),
        "status": job.status,
        "progress": job.progress,
        "attempts": job.attempts,
        "max_attempts": job.max_attempts,
        "result": job.result,
        "error": job.error,
        "last_error": job.last_error,
        "worker_id": job.worker_id,
        "available_at": job.available_at,
        "heartbeat_at": job.heartbeat_at,
        "finished_at": job.finished_at,
        "created_at": job.created_at,
    }


class JobQueue:
    """Manages persisted provisioning jobs and their retry policy"""

    def __init__(
        self,
        session_factory=SessionLocal,
        max_attempts: int = QUEUE_MAX_ATTEMPTS,
        backoff_base: float = QUEUE_BACKOFF_BASE_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._session_factory = session_factory
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.clock = clock

    @contextmanager
    def _session(self):
        with session_scope(self._session_factory) as s:
            yield s

    def backoff_delay(self, attempt: int) -> float:
        """Delay before the attempt that follows `attempt`: base * 2^(attempt-1)"""
        return self.backoff_base * (2 ** (attempt - 1))

    def new_job_id(self) -> str:
        return f"web_gen_{int(self.clock() * 1000)}_{uuid.uuid4().hex[:9]}"

    # =========================================
    # SUBMISSION
    # =========================================

    def enqueue(self, request: ProvisioningRequest) -> str:
        """Validate and persist a new job in queued. Raises OwnerValidationError
        before anything is stored."""
        owner = sanitize_owner(request.owner)
        compute_domain_label(request.owner, request.app_name)

        now = self.clock()
        job_id = self.new_job_id()
        with self._session() as s:
            s.add(Job(
                job_id=job_id,
                owner=owner,
                request=request.model_dump(),
                status="queued",
                progress=0,
                attempts=1,
                max_attempts=self.max_attempts,
                available_at=now,
                created_at=now,
            ))

        prometheus_metrics.increment_jobs_enqueued()
        logger.info("Enqueued provisioning job", extra={
            "component": "queue",
            "job_id": job_id,
            "owner": owner,
        })
        return job_id

    # =========================================
    # WORKER REPORTING INTERFACE
    # =========================================

    def claim_next(self, worker_id: str) -> Optional[Dict[str, Any]]:
        """Move the oldest ready queued/stalled job to active.

        Jobs whose owner already has an active job are skipped, which keeps
        provisioning for one owner strictly sequential.
        """
        now = self.clock()
        with self._session() as s:
            busy_owners = select(Job.owner).where(Job.status == "active")
            candidates = s.execute(
                select(Job.job_id, Job.status)
                .where(
                    Job.status.in_(("queued", "stalled")),
                    Job.available_at <= now,
                    Job.owner.not_in(busy_owners),
                )
                .order_by(Job.created_at)
                .limit(CLAIM_BATCH)
            ).all()

            for job_id, status in candidates:
                res = s.execute(
                    update(Job)
                    .where(Job.job_id == job_id, Job.status == status)
                    .values(status="active", progress=0, worker_id=worker_id, heartbeat_at=now)
                    .execution_options(synchronize_session=False)
                )
                if res.rowcount != 1:
                    # lost the race to another worker
                    continue
                job = s.get(Job, job_id)
                logger.info("Claimed job", extra={
                    "component": "queue",
                    "job_id": job_id,
                    "worker_id": worker_id,
                    "attempt": job.attempts,
                    "from_status": status,
                })
                return _snapshot(job)
        return None

    def _load_active(self, s, job_id: str, target: str, worker_id: Optional[str]) -> Job:
        job = s.execute(select(Job).where(Job.job_id == job_id).with_for_update()).scalar_one_or_none()
        if job is None:
            raise InvalidTransitionError(job_id, "not_found", target)
        if job.status != "active" or (worker_id is not None and job.worker_id != worker_id):
            raise InvalidTransitionError(job_id, job.status, target)
        return job

    def report_progress(self, job_id: str, progress: int, worker_id: Optional[str] = None) -> bool:
        """Record progress for an active job. Returns False when the job is no
        longer active for this worker (e.g. it was declared stalled)."""
        value = max(0, min(100, int(progress)))
        with self._session() as s:
            try:
                job = self._load_active(s, job_id, "active", worker_id)
            except InvalidTransitionError as e:
                logger.warning("Ignoring progress report: %s", e, extra={"component": "queue", "job_id": job_id})
                return False
            if value > job.progress:
                job.progress = value
            job.heartbeat_at = self.clock()
        return True

    def complete(self, job_id: str, result: Dict[str, Any], worker_id: Optional[str] = None) -> Dict[str, Any]:
        with self._session() as s:
            job = self._load_active(s, job_id, "completed", worker_id)
            job.status = "completed"
            job.progress = 100
            job.result = result
            job.error = None
            job.finished_at = self.clock()
            snap = _snapshot(job)

        prometheus_metrics.increment_jobs_completed()
        logger.info("Job completed", extra={"component": "queue", "job_id": job_id, "attempt": snap["attempts"]})
        return snap

    def fail(self, job_id: str, error: str, retryable: bool, worker_id: Optional[str] = None) -> Dict[str, Any]:
        """Schedule a retry with exponential backoff, or fail the job for good."""
        now = self.clock()
        with self._session() as s:
            job = self._load_active(s, job_id, "failed", worker_id)
            if retryable and job.attempts < job.max_attempts:
                delay = self.backoff_delay(job.attempts)
                job.status = "queued"
                job.available_at = now + delay
                job.attempts = job.attempts + 1
                job.last_error = error
                job.worker_id = None
                snap = _snapshot(job)
                snap["retry_in"] = delay
            else:
                job.status = "failed"
                job.error = error
                job.last_error = error
                job.finished_at = now
                snap = _snapshot(job)

        if snap["status"] == "queued":
            prometheus_metrics.increment_job_retries()
            logger.warning("Job attempt failed; retry scheduled", extra={
                "component": "queue",
                "job_id": job_id,
                "attempt": snap["attempts"] - 1,
                "retry_in": snap["retry_in"],
                "error": error,
            })
        else:
            prometheus_metrics.increment_jobs_failed("exhausted" if retryable else "permanent")
            logger.error("Job failed", extra={
                "component": "queue",
                "job_id": job_id,
                "attempt": snap["attempts"],
                "error": error,
            })
        return snap

    # =========================================
    # MAINTENANCE
    # =========================================

    def detect_stalled(self, stall_timeout: float) -> List[Dict[str, Any]]:
        """Active jobs without a heartbeat for stall_timeout seconds become
        stalled (claimable again, attempt + 1) or failed when out of attempts.
        Also recovers jobs left active by a crashed process."""
        now = self.clock()
        cutoff = now - stall_timeout
        changed: List[Dict[str, Any]] = []
        with self._session() as s:
            jobs = s.execute(
                select(Job)
                .where(Job.status == "active", func.coalesce(Job.heartbeat_at, Job.created_at) < cutoff)
                .with_for_update()
            ).scalars().all()
            for job in jobs:
                if job.attempts < job.max_attempts:
                    job.status = "stalled"
                    job.attempts = job.attempts + 1
                    job.available_at = now
                    job.last_error = STALLED_ERROR
                    job.worker_id = None
                else:
                    job.status = "failed"
                    job.error = STALLED_ERROR
                    job.last_error = STALLED_ERROR
                    job.finished_at = now
                changed.append(_snapshot(job))

        for snap in changed:
            if snap["status"] == "failed":
                prometheus_metrics.increment_jobs_failed("stalled")
            else:
                prometheus_metrics.increment_jobs_stalled()
            logger.warning("Job %s stalled", snap["job_id"], extra={
                "component": "queue",
                "job_id": snap["job_id"],
                "new_status": snap["status"],
            })
        return changed

    def clean(self, grace_seconds: float) -> int:
        """Remove completed and failed jobs finished more than grace_seconds ago"""
        cutoff = self.clock() - grace_seconds
        with self._session() as s:
            res = s.execute(
                delete(Job)
                .where(Job.status.in_(TERMINAL_STATUSES), Job.finished_at < cutoff)
                .execution_options(synchronize_session=False)
            )
            removed = res.rowcount or 0
        if removed:
            logger.info("Cleaned %s finished jobs", removed, extra={"component": "queue"})
        return removed

    # =========================================
    # READS
    # =========================================

    def get_job(self, job_id: str) -> Optional[Dict[str, Any]]:
        with self._session() as s:
            job = s.get(Job, job_id)
            return _snapshot(job) if job is not None else None

    def get_status(self, job_id: str) -> Dict[str, Any]:
        """Pure read; unknown ids yield the not_found pseudo-status"""
        job = self.get_job(job_id)
        if job is None:
            return {"status": "not_found", "progress": 0}

        status = {
            "jobId": job["job_id"],
            "status": job["status"],
            "progress": job["progress"],
            "attempts": job["attempts"],
            "createdAt": job["created_at"],
        }
        if job["status"] == "completed":
            status["result"] = job["result"]
        elif job["status"] == "failed":
            status["error"] = job["error"]
        return status

    def get_queue_stats(self) -> Dict[str, int]:
        counts = {status: 0 for status in JOB_STATUSES}
        with self._session() as s:
            rows = s.execute(select(Job.status, func.count()).group_by(Job.status)).all()
        for status, count in rows:
            counts[status] = count
        prometheus_metrics.set_jobs_by_status(counts)
        return counts
