"""
Tests for the worker pool: retries, error classification, stall recovery
"""

import asyncio

import httpx
import pytest

from webprov.errors import PermanentRemoteError, TransientRemoteError
from webprov.logging_config import get_job_id
from webprov.queue_manager import STALLED_ERROR, JobQueue
from webprov.webhook import WebhookNotifier
from webprov.worker import WorkerPool


class TestRunOnce:
    """Single-job processing driven by a fake clock."""

    @pytest.mark.asyncio
    async def test_idle_returns_none(self, pool):
        assert await pool.run_once("w1") is None

    @pytest.mark.asyncio
    async def test_success_completes_and_notifies(self, pool, queue, make_request, webhook_calls):
        job_id = queue.enqueue(make_request())

        job = await pool.run_once("w1")

        assert job["status"] == "completed"
        status = queue.get_status(job_id)
        assert status["progress"] == 100
        assert status["result"]["urls"]["customDomain"] == "https://alice01.trady.finance"
        assert webhook_calls == [{"jobId": job_id, "status": "completed", "result": status["result"]}]

    @pytest.mark.asyncio
    async def test_transient_failures_then_success(
        self, pool, queue, fake_client, make_request, clock, webhook_calls
    ):
        fake_client.failures["create_deployment"] = [
            TransientRemoteError("v0 POST /deployments returned 503"),
            TransientRemoteError("v0 POST /deployments timed out"),
        ]
        job_id = queue.enqueue(make_request())

        job = await pool.run_once("w1")
        assert job["status"] == "queued"
        assert job["retry_in"] == 2
        assert await pool.run_once("w1") is None, "backoff not yet elapsed"

        clock.advance(2)
        job = await pool.run_once("w1")
        assert job["status"] == "queued"
        assert job["retry_in"] == 4

        clock.advance(4)
        job = await pool.run_once("w1")
        assert job["status"] == "completed"
        assert job["attempts"] == 3

        # retries resumed after the failed step
        assert fake_client.count("ensure_project") == 1
        assert fake_client.count("ensure_chat") == 1
        assert len(webhook_calls) == 1, "only the terminal transition is notified"
        assert queue.get_status(job_id)["status"] == "completed"

    @pytest.mark.asyncio
    async def test_transient_failures_exhaust_attempts(
        self, pool, queue, fake_client, make_request, clock, webhook_calls
    ):
        fake_client.failures["ensure_project"] = [
            TransientRemoteError("attempt 1"),
            TransientRemoteError("attempt 2"),
            TransientRemoteError("attempt 3"),
        ]
        job_id = queue.enqueue(make_request())

        for delay in (0, 2, 4):
            clock.advance(delay)
            await pool.run_once("w1")

        status = queue.get_status(job_id)
        assert status["status"] == "failed"
        assert status["error"] == "attempt 3"
        assert webhook_calls == [{"jobId": job_id, "status": "failed", "error": "attempt 3"}]

    @pytest.mark.asyncio
    async def test_permanent_error_fails_immediately(self, pool, queue, fake_client, make_request, webhook_calls):
        fake_client.failures["attach_domain"] = [PermanentRemoteError("vercel returned 409: domain taken")]
        job_id = queue.enqueue(make_request())

        job = await pool.run_once("w1")

        assert job["status"] == "failed"
        assert job["attempts"] == 1
        assert queue.get_status(job_id)["error"] == "vercel returned 409: domain taken"
        assert webhook_calls[0]["status"] == "failed"

    @pytest.mark.asyncio
    async def test_unclassified_error_is_retried(self, pool, queue, fake_client, make_request):
        fake_client.failures["ensure_project"] = [RuntimeError("unexpected")]
        queue.enqueue(make_request())

        job = await pool.run_once("w1")

        assert job["status"] == "queued"
        assert job["last_error"] == "unexpected"

    @pytest.mark.asyncio
    async def test_job_id_bound_to_logging_context(self, pool, queue, orchestrator, make_request):
        seen = []
        original = orchestrator.run

        async def capture(request, progress=None):
            seen.append(get_job_id())
            return await original(request, progress)

        orchestrator.run = capture
        job_id = queue.enqueue(make_request())

        await pool.run_once("w1")

        assert seen == [job_id]
        assert get_job_id() is None, "context is reset after the job"

    @pytest.mark.asyncio
    async def test_webhook_failure_does_not_change_status(self, queue, orchestrator, make_request):
        def unreachable(request):
            raise httpx.ConnectError("connection refused", request=request)

        notifier = WebhookNotifier(url="http://hooks.test/done", transport=httpx.MockTransport(unreachable))
        pool = WorkerPool(queue, orchestrator, notifier, size=1)
        job_id = queue.enqueue(make_request())

        job = await pool.run_once("w1")

        assert job["status"] == "completed"
        assert queue.get_status(job_id)["status"] == "completed"

    @pytest.mark.asyncio
    async def test_reclaimed_job_stops_before_next_step(
        self, pool, queue, fake_client, make_request, clock, webhook_calls
    ):
        job_id = queue.enqueue(make_request())
        original = fake_client.ensure_chat

        async def slow_chat(*args):
            chat = await original(*args)
            clock.advance(61)
            queue.detect_stalled(60)
            assert queue.claim_next("w2")["job_id"] == job_id
            return chat

        fake_client.ensure_chat = slow_chat

        assert await pool.run_once("w1") is None

        assert fake_client.calls == ["ensure_project", "ensure_chat"], "no remote calls after losing the job"
        job = queue.get_job(job_id)
        assert job["status"] == "active"
        assert job["worker_id"] == "w2"
        assert webhook_calls == []


class TestSweep:
    @pytest.mark.asyncio
    async def test_stalled_job_is_recovered(self, pool, queue, make_request, clock):
        job_id = queue.enqueue(make_request())
        queue.claim_next("w-crashed")
        clock.advance(61)

        changed = await pool.sweep()
        assert changed[0]["status"] == "stalled"

        job = await pool.run_once("w1")
        assert job["job_id"] == job_id
        assert job["status"] == "completed"
        assert job["attempts"] == 2

    @pytest.mark.asyncio
    async def test_exhausted_stall_notifies_failure(
        self, session_factory, clock, orchestrator, notifier, make_request, webhook_calls
    ):
        queue = JobQueue(session_factory, max_attempts=1, clock=clock)
        pool = WorkerPool(queue, orchestrator, notifier, size=1, stall_timeout=60)
        job_id = queue.enqueue(make_request())
        queue.claim_next("w-crashed")
        clock.advance(61)

        await pool.sweep()

        assert webhook_calls == [{"jobId": job_id, "status": "failed", "error": STALLED_ERROR}]

    @pytest.mark.asyncio
    async def test_sweep_survives_unusable_webhook_url(self, session_factory, clock, orchestrator, make_request):
        queue = JobQueue(session_factory, max_attempts=1, clock=clock)
        pool = WorkerPool(queue, orchestrator, WebhookNotifier(url="http://[::1"), size=1, stall_timeout=60)
        done = queue.enqueue(make_request(owner="carol"))
        queue.claim_next("w1")
        queue.complete(done, {"success": True})
        clock.advance(1)
        first = queue.enqueue(make_request(owner="alice"))
        second = queue.enqueue(make_request(owner="bob"))
        queue.claim_next("w-crashed-1")
        queue.claim_next("w-crashed-2")
        clock.advance(pool.clean_grace + 1)

        changed = await pool.sweep()

        assert sorted(j["job_id"] for j in changed) == sorted([first, second])
        assert queue.get_status(first)["status"] == "failed"
        assert queue.get_status(second)["status"] == "failed"
        assert queue.get_status(done)["status"] == "not_found", "clean still runs after notification errors"

    @pytest.mark.asyncio
    async def test_sweep_cleans_old_jobs(self, pool, queue, make_request, clock):
        job_id = queue.enqueue(make_request())
        await pool.run_once("w1")
        clock.advance(pool.clean_grace + 1)

        await pool.sweep()

        assert queue.get_status(job_id)["status"] == "not_found"


class TestPoolLifecycle:
    @pytest.mark.asyncio
    async def test_start_processes_jobs_and_stop(self, queue, orchestrator, notifier, make_request):
        pool = WorkerPool(queue, orchestrator, notifier, size=2, poll_interval=0.01, sweep_interval=0.05)
        job_id = queue.enqueue(make_request())

        await pool.start()
        assert pool.running
        try:
            for _ in range(200):
                if queue.get_status(job_id)["status"] == "completed":
                    break
                await asyncio.sleep(0.01)
        finally:
            await pool.stop()

        assert queue.get_status(job_id)["status"] == "completed"
        assert not pool.running
