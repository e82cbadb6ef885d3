"""Tests for redaction and request correlation in logs."""

from __future__ import annotations

import json
import logging
from io import StringIO

import pytest

from linkgate.core.logging import (
    JsonFormatter,
    RequestIdFilter,
    SensitiveDataFilter,
    clear_request_id,
    set_request_id,
)


@pytest.fixture
def capture() -> tuple[logging.Logger, StringIO]:
    logger = logging.getLogger("test_linkgate_logging")
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    logger.propagate = False

    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(RequestIdFilter())
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    return logger, stream


def test_sensitive_filter_redacts_client_addresses(capture):
    """Raw client addresses and proxy headers never reach the output."""
    logger, stream = capture

    logger.info(
        "rate_limit.exceeded",
        extra={
            "client_ip": "203.0.113.7",
            "x-forwarded-for": "198.51.100.1, 10.0.0.1",
            "client_hash": "ab12cd34ef56ab12",
        },
    )

    output = stream.getvalue()
    assert "203.0.113.7" not in output
    assert "198.51.100.1" not in output
    assert "[REDACTED]" in output
    assert "ab12cd34ef56ab12" in output


def test_sensitive_filter_allows_safe_fields(capture):
    logger, stream = capture

    logger.info(
        "rate_limit.allowed",
        extra={
            "endpoint_class": "api",
            "route": "/api/bookmarks",
            "limit": 100,
            "remaining": 42,
        },
    )

    payload = json.loads(stream.getvalue())
    assert payload["message"] == "rate_limit.allowed"
    assert payload["level"] == "info"
    assert payload["route"] == "/api/bookmarks"
    assert payload["remaining"] == 42
    assert "[REDACTED]" not in stream.getvalue()


def test_sensitive_filter_redacts_nested_dicts(capture):
    logger, stream = capture

    logger.info(
        "nested_event",
        extra={
            "headers": {
                "Authorization": "Bearer secret-token",
                "Cookie": "session=abc",
                "user-agent": "pytest",
            },
        },
    )

    output = stream.getvalue()
    assert "secret-token" not in output
    assert "session=abc" not in output
    assert "pytest" in output


def test_request_id_from_context_is_attached(capture):
    logger, stream = capture

    set_request_id("req-789")
    try:
        logger.info("with_context")
    finally:
        clear_request_id()

    payload = json.loads(stream.getvalue())
    assert payload["request_id"] == "req-789"
