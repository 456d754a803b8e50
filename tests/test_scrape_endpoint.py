"""
API tests for GET /metrics and GET /health

Runs the full app (middleware, lifespan, exception handlers) with the DSMR
logger replaced by a FakeDsmrLogger.
"""
from .fake_logger import FakeDsmrLogger, actual_body, connection_refused


def metric_lines(text: str, metric_name: str):
    return [line for line in text.splitlines() if line.split(" ")[0] == metric_name]


POWER_1_23 = actual_body({"name": "power_delivered", "value": 1.23, "unit": "kW"})
POWER_2_00 = actual_body({"name": "power_delivered", "value": 2.0, "unit": "kW"})


class TestScrape:

    def test_measurement_becomes_gauge(self, make_client, sink):
        with make_client(FakeDsmrLogger(POWER_1_23)) as client:
            response = client.get("/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "dsmr_logger_power_delivered_kw 1.23" in response.text.splitlines()
        assert sink.get("dsmr_logger_power_delivered_kw") == 1.23

    def test_each_scrape_polls_upstream_once(self, make_client):
        fake_logger = FakeDsmrLogger(POWER_1_23)

        with make_client(fake_logger) as client:
            client.get("/metrics")
            client.get("/metrics")

        assert len(fake_logger.requests) == 2
        assert all(r.url.path == "/api/v1/sm/actual" for r in fake_logger.requests)

    def test_non_numeric_value_creates_no_gauge(self, make_client, sink):
        with make_client(FakeDsmrLogger(actual_body({"name": "status", "value": "OK"}))) as client:
            response = client.get("/metrics")

        assert response.status_code == 200
        assert metric_lines(response.text, "dsmr_logger_status") == []
        assert sink.snapshot() == {}
        assert sink.registry.get_sample_value(
            "dsmr_logger_measurements_discarded_total", {"reason": "non_numeric"}
        ) == 1.0

    def test_non_numeric_value_leaves_render_unchanged(self, make_client):
        fake_logger = FakeDsmrLogger(POWER_1_23, actual_body({"name": "status", "value": "OK"}))

        with make_client(fake_logger) as client:
            first = client.get("/metrics")
            second = client.get("/metrics")

        assert metric_lines(first.text, "dsmr_logger_power_delivered_kw") == \
            metric_lines(second.text, "dsmr_logger_power_delivered_kw")

    def test_second_scrape_overwrites(self, make_client, sink):
        with make_client(FakeDsmrLogger(POWER_1_23, POWER_2_00)) as client:
            client.get("/metrics")
            response = client.get("/metrics")

        assert metric_lines(response.text, "dsmr_logger_power_delivered_kw") == ["dsmr_logger_power_delivered_kw 2.0"]
        assert sink.snapshot() == {"dsmr_logger_power_delivered_kw": 2.0}

    def test_successful_scrape_marks_up(self, make_client):
        with make_client(FakeDsmrLogger(POWER_1_23)) as client:
            response = client.get("/metrics")

        lines = response.text.splitlines()
        assert "dsmr_logger_up 1.0" in lines
        assert "dsmr_logger_scrape_stale 0.0" in lines


class TestUpstreamFailure:

    def test_unreachable_without_fallback_fails_scrape(self, make_client):
        with make_client(FakeDsmrLogger(connection_refused), serve_stale_on_error=False) as client:
            response = client.get("/metrics")

        assert response.status_code == 502
        assert response.json()["error"] == "UPSTREAM_UNREACHABLE"

    def test_stored_values_survive_failure(self, make_client, sink):
        fake_logger = FakeDsmrLogger(POWER_1_23, connection_refused, POWER_2_00)

        with make_client(fake_logger, serve_stale_on_error=False) as client:
            assert client.get("/metrics").status_code == 200
            assert client.get("/metrics").status_code == 502
            assert sink.get("dsmr_logger_power_delivered_kw") == 1.23

            response = client.get("/metrics")

        assert response.status_code == 200
        assert "dsmr_logger_power_delivered_kw 2.0" in response.text.splitlines()

    def test_decode_error_fails_scrape(self, make_client):
        fake_logger = FakeDsmrLogger(actual_body({"value": 1.0}))

        with make_client(fake_logger, serve_stale_on_error=False) as client:
            response = client.get("/metrics")

        assert response.status_code == 502
        assert response.json()["error"] == "UPSTREAM_DECODE_ERROR"

    def test_stale_fallback_serves_last_values(self, make_client):
        with make_client(FakeDsmrLogger(POWER_1_23, connection_refused)) as client:
            client.get("/metrics")
            response = client.get("/metrics")

        assert response.status_code == 200
        lines = response.text.splitlines()
        assert "dsmr_logger_power_delivered_kw 1.23" in lines
        assert "dsmr_logger_scrape_stale 1.0" in lines
        assert "dsmr_logger_up 0.0" in lines

    def test_stale_fallback_needs_a_previous_success(self, make_client):
        with make_client(FakeDsmrLogger(connection_refused)) as client:
            response = client.get("/metrics")

        assert response.status_code == 502

    def test_recovery_clears_stale_flag(self, make_client):
        with make_client(FakeDsmrLogger(POWER_1_23, connection_refused, POWER_2_00)) as client:
            client.get("/metrics")
            client.get("/metrics")
            response = client.get("/metrics")

        lines = response.text.splitlines()
        assert "dsmr_logger_scrape_stale 0.0" in lines
        assert "dsmr_logger_up 1.0" in lines


class TestHealthAndInstrumentation:

    def test_health_reflects_upstream(self, make_client):
        with make_client(FakeDsmrLogger(POWER_1_23, connection_refused)) as client:
            client.get("/metrics")
            healthy = client.get("/health").json()
            client.get("/metrics")
            degraded = client.get("/health").json()

        assert healthy["status"] == "healthy"
        assert healthy["upstream"]["last_success"] is not None
        assert degraded["status"] == "degraded"
        assert "unreachable" in degraded["upstream"]["last_error"]

    def test_health_before_any_poll(self, make_client):
        with make_client(FakeDsmrLogger(POWER_1_23)) as client:
            body = client.get("/health").json()

        assert body["status"] == "healthy"
        assert body["upstream"]["url"].startswith("http://dsmr-logger.local")
        assert body["upstream"]["last_success"] is None

    def test_http_metrics_skip_metrics_path(self, make_client, sink):
        with make_client(FakeDsmrLogger(POWER_1_23)) as client:
            client.get("/metrics")
            client.get("/health")

        assert sink.registry.get_sample_value(
            "dsmr_logger_http_requests_total",
            {"method": "GET", "endpoint": "/health", "status": "200"}
        ) == 1.0
        assert sink.registry.get_sample_value(
            "dsmr_logger_http_requests_total",
            {"method": "GET", "endpoint": "/metrics", "status": "200"}
        ) is None

    def test_unknown_paths_share_one_endpoint_label(self, make_client, sink):
        with make_client(FakeDsmrLogger(POWER_1_23)) as client:
            for i in range(50):
                assert client.get(f"/scan/{i}").status_code == 404
            client.get("/health")

        endpoints = {
            sample.labels["endpoint"]
            for family in sink.registry.collect()
            if family.name == "dsmr_logger_http_requests"
            for sample in family.samples
            if sample.name == "dsmr_logger_http_requests_total"
        }
        assert endpoints == {"unmatched", "/health"}
        assert sink.registry.get_sample_value(
            "dsmr_logger_http_requests_total",
            {"method": "GET", "endpoint": "unmatched", "status": "404"}
        ) == 50.0

    def test_request_id_header(self, make_client):
        with make_client(FakeDsmrLogger(POWER_1_23)) as client:
            echoed = client.get("/health", headers={"X-Request-ID": "scrape-42"})
            generated = client.get("/health")

        assert echoed.headers["X-Request-ID"] == "scrape-42"
        assert generated.headers["X-Request-ID"]
