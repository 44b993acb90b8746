"""
Tests for Prometheus metrics functionality
"""

from types import SimpleNamespace

from sqlalchemy.exc import OperationalError

from webprov.services.prometheus_metrics import prometheus_metrics, PrometheusMetrics


class TestPrometheusMetrics:
    """Test the PrometheusMetrics class."""

    def test_job_counters(self):
        """Job lifecycle counters accept increments."""
        metrics = PrometheusMetrics()
        metrics.increment_jobs_enqueued()
        metrics.increment_jobs_rejected("validation")
        metrics.increment_jobs_completed()
        metrics.increment_jobs_failed("permanent")
        metrics.increment_job_retries()
        metrics.increment_jobs_stalled()
        metrics.observe_job_attempt("completed", 12.5)
        metrics.increment_webhook("delivered")

    def test_status_gauge(self):
        metrics = PrometheusMetrics()
        metrics.set_jobs_by_status({"queued": 3, "active": 1})

        text = metrics.get_metrics().decode("utf-8")
        assert 'webprov_jobs{status="queued"} 3.0' in text
        assert 'webprov_jobs{status="active"} 1.0' in text

    def test_get_content_type(self):
        assert prometheus_metrics.get_content_type().startswith("text/plain")


class TestPrometheusEndpoint:
    """Test the Prometheus metrics endpoint."""

    @staticmethod
    def _request(queue=None):
        state = SimpleNamespace()
        if queue is not None:
            state.job_queue = queue
        return SimpleNamespace(app=SimpleNamespace(state=state))

    def test_prometheus_endpoint(self):
        from webprov.api.prometheus import get_prometheus_metrics

        response = get_prometheus_metrics(self._request())

        assert response.status_code == 200
        content = response.body.decode('utf-8')
        assert '# HELP' in content
        assert '# TYPE' in content
        for name in (
            'webprov_jobs_enqueued_total',
            'webprov_jobs_failed_total',
            'webprov_job_attempt_seconds',
            'webprov_webhook_deliveries_total',
            'webprov_build_info',
        ):
            assert name in content, f"Missing metric: {name}"

    def test_scrape_refreshes_status_gauge(self, queue, make_request):
        from webprov.api.prometheus import get_prometheus_metrics

        queue.enqueue(make_request())
        queue.enqueue(make_request(owner="bob"))

        content = get_prometheus_metrics(self._request(queue)).body.decode('utf-8')
        assert 'webprov_jobs{status="queued"} 2.0' in content

    def test_database_outage_still_serves_metrics(self):
        from webprov.api.prometheus import get_prometheus_metrics

        class DownQueue:
            def get_queue_stats(self):
                raise OperationalError("SELECT 1", {}, Exception("connection refused"))

        response = get_prometheus_metrics(self._request(DownQueue()))
        assert response.status_code == 200
        assert 'webprov_jobs_enqueued_total' in response.body.decode('utf-8')
