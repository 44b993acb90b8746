"""
Prometheus scrape endpoint: job queue gauges, attempt timings, webhook outcomes
"""

import logging
from fastapi import APIRouter, Request, Response
from sqlalchemy.exc import SQLAlchemyError

from ..errors import StoreUnavailableError
from ..services.prometheus_metrics import prometheus_metrics

logger = logging.getLogger("webprov.api.prometheus")

router = APIRouter(tags=["Metrics"])


@router.get("/metrics/prometheus", summary="Prometheus metrics")
def get_prometheus_metrics(request: Request) -> Response:
    # jobs-by-status is refreshed per scrape; a database outage leaves the last values
    queue = getattr(request.app.state, "job_queue", None)
    if queue is not None:
        try:
            queue.get_queue_stats()
        except (SQLAlchemyError, StoreUnavailableError) as e:
            logger.warning("Queue stats unavailable for scrape: %s", e, extra={"component": "metrics"})

    return Response(content=prometheus_metrics.get_metrics(), media_type=prometheus_metrics.get_content_type())
