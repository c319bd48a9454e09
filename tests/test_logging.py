"""
Tests for structured logging.

Tests cover:
- Sensitive header masking
- Correlation context on log records
- JSON formatter output
- Request ID propagation through the middleware
"""
from __future__ import annotations

import json
import logging
import sys

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from xbridge_api.middleware.logging import (
    StructuredLoggingMiddleware,
    filter_headers,
    mask_sensitive_value,
)
from xbridge_core.logging_config import (
    CorrelationIDFilter,
    StructuredFormatter,
    clear_context,
    generate_request_id,
    get_request_id,
    set_bridge_request_context,
    set_request_id,
    set_user_context,
)


@pytest.fixture(autouse=True)
def _reset_context():
    clear_context()
    yield
    clear_context()


def make_record(msg: str = "hello", **extra) -> logging.LogRecord:
    record = logging.LogRecord("xbridge.test", logging.INFO, __file__, 10, msg, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestHeaderMasking:

    def test_long_value(self):
        assert mask_sensitive_value("Bearer eyJhbGciOiJFUzI1NiJ9") == "Bear...NiJ9"

    def test_short_value(self):
        assert mask_sensitive_value("abc") == "***"

    def test_filter_headers(self):
        """Should mask credentials case-insensitively and keep the rest."""
        headers = {
            "Authorization": "Bearer secret-token-value",
            "privy-authorization-signature": "MEUCIQDsig",
            "Content-Type": "application/json",
        }

        filtered = filter_headers(headers)

        assert filtered["Content-Type"] == "application/json"
        assert "secret-token" not in filtered["Authorization"]
        assert filtered["privy-authorization-signature"] != "MEUCIQDsig"


class TestCorrelationContext:

    def test_filter_copies_context(self):
        set_request_id("req_1")
        set_user_context("did:privy:user1")
        set_bridge_request_context("0xreq")
        record = make_record()

        assert CorrelationIDFilter().filter(record) is True
        assert record.request_id == "req_1"
        assert record.user_id == "did:privy:user1"
        assert record.bridge_request_id == "0xreq"

    def test_clear_context(self):
        set_request_id("req_1")
        clear_context()
        assert get_request_id() is None

    def test_generated_ids_are_unique(self):
        first, second = generate_request_id(), generate_request_id()
        assert first.startswith("req_")
        assert first != second


class TestStructuredFormatter:

    def test_json_output(self):
        set_request_id("req_2")
        record = make_record("phase %s", phase="create-request")
        record.args = ()
        CorrelationIDFilter().filter(record)

        data = json.loads(StructuredFormatter().format(record))

        assert data["message"] == "phase %s"
        assert data["level"] == "INFO"
        assert data["logger"] == "xbridge.test"
        assert data["request_id"] == "req_2"
        assert data["phase"] == "create-request"
        assert "user_id" not in data

    def test_exception_included(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = make_record()
            record.exc_info = sys.exc_info()

        data = json.loads(StructuredFormatter().format(record))
        assert "ValueError: boom" in data["exception"]


class TestStructuredLoggingMiddleware:

    @pytest.fixture
    def client(self) -> TestClient:
        app = FastAPI()
        app.add_middleware(StructuredLoggingMiddleware)

        @app.get("/echo")
        async def echo():
            return {"requestId": get_request_id()}

        return TestClient(app)

    def test_propagates_incoming_request_id(self, client):
        resp = client.get("/echo", headers={"X-Request-ID": "req_incoming"})

        assert resp.headers["X-Request-ID"] == "req_incoming"
        assert resp.json() == {"requestId": "req_incoming"}
        assert "X-Response-Time" in resp.headers

    def test_generates_request_id(self, client):
        resp = client.get("/echo")

        request_id = resp.headers["X-Request-ID"]
        assert request_id.startswith("req_")
        assert resp.json()["requestId"] == request_id
