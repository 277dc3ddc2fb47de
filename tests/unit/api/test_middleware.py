"""Tests for the per-request access log."""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.testclient import TestClient
from structlog.testing import capture_logs

from daneel_web.api.middleware import RequestLogMiddleware


def _make_app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(RequestLogMiddleware)

    @app.get("/ping")
    async def ping() -> dict[str, str]:
        return {"pong": "yes"}

    return app


class TestRequestLogMiddleware:
    def test_logs_one_line_per_request(self):
        client = TestClient(_make_app())
        with capture_logs() as logs:
            response = client.get("/ping")

        assert response.status_code == 200
        entries = [e for e in logs if e["event"] == "http_request"]
        assert len(entries) == 1
        entry = entries[0]
        assert entry["method"] == "GET"
        assert entry["path"] == "/ping"
        assert entry["status"] == 200
        assert entry["elapsed_ms"] >= 0

    def test_logs_not_found(self):
        client = TestClient(_make_app())
        with capture_logs() as logs:
            client.get("/missing")

        statuses = [e["status"] for e in logs if e["event"] == "http_request"]
        assert statuses == [404]
