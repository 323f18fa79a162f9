import json
import logging
import unittest

from licitasis.observability import JsonLogFormatter, bind_request_id, set_log_request_id
from tests.helpers.api import ApiTestCase


class ObservabilityPrometheusTest(ApiTestCase):
    sandbox_prefix = "observability_metrics"

    def test_metrics_endpoint_exposes_prometheus_metrics(self) -> None:
        self.client.get("/api/v1/clientes/")

        response = self.client.get("/metrics")
        self.assertEqual(response.status_code, 200)
        self.assertIn("text/plain", response.headers.get("Content-Type") or "")

        payload = response.get_data(as_text=True)
        self.assertIn('http_request_total{method="GET",route="/api/v1/clientes/",status="200"} 1', payload)
        self.assertIn("http_request_duration_ms_bucket", payload)
        self.assertIn("doc_status_scheduler_running 0", payload)

    def test_health_reports_db_metrics_and_scheduler(self) -> None:
        self.client.get("/api/v1/clientes/")
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        payload = response.get_json() or {}
        self.assertEqual(payload["status"], "ok")
        self.assertEqual(payload["db"], "sqlite")
        self.assertGreaterEqual(payload["metrics"]["http"]["requests_total"], 1)
        self.assertEqual(payload["scheduler"], {"enabled": False, "running": False})

    def test_log_formatter_includes_request_id_outside_request_context(self) -> None:
        formatter = JsonLogFormatter()
        record = logging.LogRecord(
            name="licitasis",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg="doc_status_refresh",
            args=(),
            exc_info=None,
        )
        record.updated = 3

        set_log_request_id("worker-req-123")
        parsed = json.loads(formatter.format(record))
        self.assertEqual(parsed.get("request_id"), "worker-req-123")
        self.assertEqual(parsed.get("updated"), 3)

        with bind_request_id("doc-status-abc"):
            parsed = json.loads(formatter.format(record))
        self.assertEqual(parsed.get("request_id"), "doc-status-abc")


if __name__ == "__main__":
    unittest.main()
