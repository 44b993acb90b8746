"""
Worker pool for provisioning jobs.

Workers pull ready jobs from the JobQueue, run the Orchestrator and report the
outcome back. A sweeper task recovers stalled jobs and cleans old finished ones.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .config import (
    QUEUE_CLEAN_GRACE_SECONDS, QUEUE_POLL_INTERVAL_SECONDS, QUEUE_STALL_TIMEOUT_SECONDS,
    QUEUE_SWEEP_INTERVAL_SECONDS, WORKER_POOL_SIZE,
)
from .errors import InvalidTransitionError, JobOwnershipLostError, is_retryable
from .logging_config import job_id_var
from .models.job import TERMINAL_STATUSES
from .orchestrator import Orchestrator
from .queue_manager import JobQueue
from .schemas.job import WebhookEvent
from .schemas.provisioning import ProvisioningRequest
from .services.prometheus_metrics import prometheus_metrics
from .webhook import WebhookNotifier

logger = logging.getLogger("webprov.worker")


class WorkerPool:
    """Bounded set of asyncio workers, one job each at a time"""

    def __init__(
        self,
        queue: JobQueue,
        orchestrator: Orchestrator,
        notifier: WebhookNotifier,
        size: int = WORKER_POOL_SIZE,
        poll_interval: float = QUEUE_POLL_INTERVAL_SECONDS,
        stall_timeout: float = QUEUE_STALL_TIMEOUT_SECONDS,
        sweep_interval: float = QUEUE_SWEEP_INTERVAL_SECONDS,
        clean_grace: float = QUEUE_CLEAN_GRACE_SECONDS,
    ):
        self.queue = queue
        self.orchestrator = orchestrator
        self.notifier = notifier
        self.size = size
        self.poll_interval = poll_interval
        self.stall_timeout = stall_timeout
        self.sweep_interval = sweep_interval
        self.clean_grace = clean_grace
        self.workers: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self.workers)

    async def start(self):
        """Start the workers and the stall sweeper"""
        if self.workers:
            return
        for i in range(self.size):
            self.workers.append(asyncio.create_task(self._worker_loop(f"worker-{i}")))
        self.workers.append(asyncio.create_task(self._sweeper_loop()))

        logger.info("Worker pool started", extra={
            "component": "worker",
            "worker_count": self.size,
        })

    async def stop(self):
        """Cancel all workers. Jobs interrupted mid-flight stay active until
        the stall sweep picks them up again."""
        for task in self.workers:
            task.cancel()
        if self.workers:
            await asyncio.gather(*self.workers, return_exceptions=True)
        self.workers.clear()
        logger.info("Worker pool stopped", extra={"component": "worker"})

    async def _worker_loop(self, worker_id: str):
        logger.info("Worker started", extra={"component": "worker", "worker_id": worker_id})
        while True:
            try:
                outcome = await self.run_once(worker_id)
                if outcome is None:
                    await asyncio.sleep(self.poll_interval)
            except asyncio.CancelledError:
                logger.info("Worker cancelled", extra={"component": "worker", "worker_id": worker_id})
                break
            except Exception as e:
                logger.error("Worker loop error", extra={
                    "component": "worker",
                    "worker_id": worker_id,
                    "error": str(e),
                })
                await asyncio.sleep(self.poll_interval)

    async def _sweeper_loop(self):
        while True:
            try:
                await self.sweep()
                await asyncio.sleep(self.sweep_interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Stall sweep error", extra={"component": "worker", "error": str(e)})
                await asyncio.sleep(self.sweep_interval)

    async def sweep(self) -> List[Dict[str, Any]]:
        """Detect stalled jobs, notify the ones that failed, drop old finished jobs."""
        changed = self.queue.detect_stalled(self.stall_timeout)
        for job in changed:
            if job["status"] in TERMINAL_STATUSES:
                await self._notify(job)
        self.queue.clean(self.clean_grace)
        self.queue.get_queue_stats()
        return changed

    async def run_once(self, worker_id: str) -> Optional[Dict[str, Any]]:
        """Claim and process at most one job. Returns the job after the attempt,
        or None when nothing was ready."""
        job = self.queue.claim_next(worker_id)
        if job is None:
            return None

        job_id = job["job_id"]
        token = job_id_var.set(job_id)
        start_time = time.time()
        try:
            outcome = await self._attempt(job, worker_id)
        finally:
            job_id_var.reset(token)

        if outcome is None:
            return None

        if outcome["status"] == "completed":
            prometheus_metrics.observe_job_attempt("completed", time.time() - start_time)
        elif outcome["status"] == "failed":
            prometheus_metrics.observe_job_attempt("failed", time.time() - start_time)
        else:
            prometheus_metrics.observe_job_attempt("retry", time.time() - start_time)

        if outcome["status"] in TERMINAL_STATUSES:
            await self._notify(outcome)
        return outcome

    async def _attempt(self, job: Dict[str, Any], worker_id: str) -> Optional[Dict[str, Any]]:
        job_id = job["job_id"]
        try:
            request = ProvisioningRequest(**job["request"])
        except ValidationError as e:
            return self.queue.fail(job_id, f"invalid stored request: {e}", False, worker_id)

        async def progress(value: int) -> None:
            if not self.queue.report_progress(job_id, value, worker_id):
                raise JobOwnershipLostError(job_id, worker_id)

        logger.info("Processing job", extra={
            "component": "worker",
            "worker_id": worker_id,
            "attempt": job["attempts"],
        })

        try:
            try:
                result = await self.orchestrator.run(request, progress)
            except (asyncio.CancelledError, JobOwnershipLostError):
                raise
            except Exception as e:
                retryable = is_retryable(e)
                logger.warning("Provisioning attempt failed: %s", e, extra={
                    "component": "worker",
                    "worker_id": worker_id,
                    "retryable": retryable,
                    "error_type": e.__class__.__name__,
                })
                return self.queue.fail(job_id, str(e) or e.__class__.__name__, retryable, worker_id)
            return self.queue.complete(job_id, result.model_dump(), worker_id)
        except InvalidTransitionError as e:
            # the sweep declared the job stalled while we were still working on it
            logger.warning("Dropping outcome of job no longer owned: %s", e, extra={
                "component": "worker",
                "worker_id": worker_id,
            })
            return None

    async def _notify(self, job: Dict[str, Any]):
        event = WebhookEvent(
            jobId=job["job_id"],
            status=job["status"],
            result=job["result"] if job["status"] == "completed" else None,
            error=job["error"] if job["status"] == "failed" else None,
        )
        await self.notifier.notify(event)
