"""
Best-effort completion webhook
"""
import logging
from typing import Optional

import httpx

from .config import WEBHOOK_TIMEOUT_SECONDS, WEBHOOK_URL
from .schemas.job import WebhookEvent
from .services.prometheus_metrics import prometheus_metrics

logger = logging.getLogger("webprov.webhook")


class WebhookNotifier:
    """One POST per terminal job. Never raises and never touches job state."""

    def __init__(self, url: Optional[str] = WEBHOOK_URL, timeout: float = WEBHOOK_TIMEOUT_SECONDS,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = url
        self.timeout = timeout
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    async def notify(self, event: WebhookEvent) -> bool:
        """Returns True when the listener answered 2xx."""
        if not self.enabled:
            prometheus_metrics.increment_webhook("skipped")
            logger.debug("No webhook URL configured; skipping notification", extra={
                "component": "webhook",
                "job_id": event.jobId,
            })
            return False

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                r = await client.post(self.url, json=event.to_payload())
                r.raise_for_status()
        except httpx.HTTPStatusError as e:
            prometheus_metrics.increment_webhook("http_error")
            logger.warning("Webhook rejected with HTTP %s", e.response.status_code, extra={
                "component": "webhook",
                "job_id": event.jobId,
                "status": event.status,
            })
            return False
        except httpx.HTTPError as e:
            prometheus_metrics.increment_webhook("network_error")
            logger.warning("Webhook delivery failed: %s", e, extra={
                "component": "webhook",
                "job_id": event.jobId,
                "status": event.status,
            })
            return False
        except (httpx.InvalidURL, ValueError) as e:
            prometheus_metrics.increment_webhook("invalid_url")
            logger.error("Webhook URL is not usable: %s", e, extra={
                "component": "webhook",
                "job_id": event.jobId,
                "status": event.status,
            })
            return False

        prometheus_metrics.increment_webhook("delivered")
        logger.info("Webhook sent", extra={
            "component": "webhook",
            "job_id": event.jobId,
            "status": event.status,
        })
        return True
