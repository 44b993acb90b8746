"""
Prometheus metrics for the Web Provisioner
"""

from prometheus_client import Counter, Gauge, Histogram, generate_latest, CONTENT_TYPE_LATEST
from typing import Dict
import os

# Build info
BUILD_INFO = Gauge(
    'webprov_build_info',
    'Build information',
    ['version', 'image', 'image_tag']
)

JOBS_ENQUEUED_TOTAL = Counter(
    'webprov_jobs_enqueued_total',
    'Total number of provisioning jobs accepted'
)

JOBS_REJECTED_TOTAL = Counter(
    'webprov_jobs_rejected_total',
    'Submissions rejected before enqueue',
    ['reason']
)

JOBS_COMPLETED_TOTAL = Counter(
    'webprov_jobs_completed_total',
    'Total number of provisioning jobs completed'
)

JOBS_FAILED_TOTAL = Counter(
    'webprov_jobs_failed_total',
    'Total number of provisioning jobs failed',
    ['kind']  # permanent | exhausted | stalled
)

JOB_RETRIES_TOTAL = Counter(
    'webprov_job_retries_total',
    'Total number of retry attempts scheduled'
)

JOBS_STALLED_TOTAL = Counter(
    'webprov_jobs_stalled_total',
    'Active jobs detected as stalled'
)

JOBS_BY_STATUS = Gauge(
    'webprov_jobs',
    'Jobs currently stored per status',
    ['status']
)

JOB_DURATION_SECONDS = Histogram(
    'webprov_job_attempt_seconds',
    'Duration of one provisioning attempt',
    ['outcome'],
    buckets=[1, 5, 10, 30, 60, 120, 300, 600]
)

WEBHOOK_DELIVERIES_TOTAL = Counter(
    'webprov_webhook_deliveries_total',
    'Webhook delivery attempts',
    ['outcome']  # delivered | http_error | network_error | invalid_url | skipped
)


class PrometheusMetrics:
    """Service for managing Prometheus metrics."""

    def __init__(self):
        self._setup_build_info()

    def _setup_build_info(self):
        """Set up build information gauge."""
        version = os.getenv("APP_VERSION", "0.1.0")
        image = os.getenv("IMAGE", "webprov")
        image_tag = os.getenv("IMAGE_TAG", "latest")

        BUILD_INFO.labels(
            version=version,
            image=image,
            image_tag=image_tag
        ).set(1)

    def increment_jobs_enqueued(self, count: int = 1):
        JOBS_ENQUEUED_TOTAL.inc(count)

    def increment_jobs_rejected(self, reason: str, count: int = 1):
        JOBS_REJECTED_TOTAL.labels(reason=reason).inc(count)

    def increment_jobs_completed(self, count: int = 1):
        JOBS_COMPLETED_TOTAL.inc(count)

    def increment_jobs_failed(self, kind: str, count: int = 1):
        JOBS_FAILED_TOTAL.labels(kind=kind).inc(count)

    def increment_job_retries(self, count: int = 1):
        JOB_RETRIES_TOTAL.inc(count)

    def increment_jobs_stalled(self, count: int = 1):
        JOBS_STALLED_TOTAL.inc(count)

    def set_jobs_by_status(self, counts: Dict[str, int]):
        """Refresh the per-status gauge from a stats snapshot."""
        for status, value in counts.items():
            JOBS_BY_STATUS.labels(status=status).set(value)

    def observe_job_attempt(self, outcome: str, seconds: float):
        JOB_DURATION_SECONDS.labels(outcome=outcome).observe(seconds)

    def increment_webhook(self, outcome: str):
        WEBHOOK_DELIVERIES_TOTAL.labels(outcome=outcome).inc()

    def get_metrics(self) -> bytes:
        """Get Prometheus metrics in text format."""
        return generate_latest()

    def get_content_type(self) -> str:
        """Get the content type for Prometheus metrics."""
        return CONTENT_TYPE_LATEST

# Global metrics instance
prometheus_metrics = PrometheusMetrics()
