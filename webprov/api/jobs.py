"""
Provisioning endpoints: submit, poll, queue stats, remote project and chat listings
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from ..auth import require_key
from ..errors import OwnerValidationError, ProvisioningError
from ..schemas.job import JobStatusOut, JobSubmitted, QueueStats
from ..schemas.provisioning import ProvisioningRequest
from ..schemas.remote import ChatRef, ProjectRef
from ..services.prometheus_metrics import prometheus_metrics

logger = logging.getLogger("webprov.api.jobs")

router = APIRouter(tags=["Provisioning"], dependencies=[Depends(require_key)])


@router.post("/provisioning/jobs", status_code=202, response_model=JobSubmitted)
def submit_job(body: ProvisioningRequest, request: Request):
    """Accept a provisioning request; work happens asynchronously."""
    queue = request.app.state.job_queue
    try:
        job_id = queue.enqueue(body)
    except OwnerValidationError as e:
        prometheus_metrics.increment_jobs_rejected("validation")
        logger.info("Rejected submission: %s", e.message, extra={"component": "api"})
        raise HTTPException(status_code=422, detail=e.message)
    return JobSubmitted(jobId=job_id, status="queued")


@router.get("/provisioning/jobs/{job_id}", response_model=JobStatusOut, response_model_exclude_none=True)
def get_job_status(job_id: str, request: Request):
    # unknown ids are answered with the not_found pseudo-status, not a 404
    return request.app.state.status_service.get_status(job_id)


@router.get("/provisioning/stats", response_model=QueueStats)
def get_queue_stats(request: Request):
    return request.app.state.status_service.get_queue_stats()


def _remote_failure(e: ProvisioningError) -> HTTPException:
    logger.warning("Generation service listing failed: %s", e.message, extra={"component": "api"})
    return HTTPException(status_code=503 if e.retryable else 502, detail=e.message)


@router.get("/provisioning/projects", response_model=List[ProjectRef])
async def list_projects(request: Request):
    """Projects known to the generation service"""
    try:
        return await request.app.state.external_client.list_projects()
    except ProvisioningError as e:
        raise _remote_failure(e)


@router.get("/provisioning/chats", response_model=List[ChatRef])
async def list_chats(request: Request, limit: int = Query(10, ge=1, le=100)):
    """Most recent non-favorite chats"""
    try:
        return await request.app.state.external_client.list_chats(limit=limit)
    except ProvisioningError as e:
        raise _remote_failure(e)
