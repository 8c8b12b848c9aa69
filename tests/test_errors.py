"""
Error code system tests
=======================

Covers: registry loading and validation, typed pipeline errors, and the
FastAPI handler that turns InsightsError into a structured response.
"""

import os
import tempfile
from unittest.mock import patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from insights.core.errors import (
    AggregateNotFound,
    AnalysisFailed,
    AnalysisRejected,
    AnalysisUnavailable,
    FeedbackNotFound,
    InsightsError,
    MalformedOutputError,
)
from insights.core.errors.middleware import insights_error_handler
from insights.core.errors.registry import ErrorRegistry, RegistryValidationError


def _write_registry(body: str) -> str:
    fd, path = tempfile.mkstemp(suffix=".yaml")
    with os.fdopen(fd, "w") as f:
        f.write(body)
    return path


_ENTRY = """
  - code: {code}
    domain: {domain}
    title: Test
    severity: ERROR
    retryable: false
    http_status: 500
    safe_message: Something failed.
"""


class TestRegistry:

    def test_loads_shipped_registry(self):
        registry = ErrorRegistry()
        registry.load()
        assert len(registry) >= 8
        assert registry.lookup("INS-LLM-001").retryable is True
        assert registry.lookup("INS-FBK-001").http_status == 404

    def test_every_typed_error_is_registered(self):
        registry = ErrorRegistry()
        registry.load()
        for cls in (AnalysisFailed, AnalysisUnavailable, AnalysisRejected, MalformedOutputError,
                    FeedbackNotFound, AggregateNotFound):
            assert registry.get(cls.CODE) is not None, cls.CODE

    def test_unknown_code_lookup(self):
        registry = ErrorRegistry()
        registry.load()
        with pytest.raises(KeyError, match="Unknown error code"):
            registry.lookup("INS-SYS-999")

    def test_invalid_code_format(self):
        path = _write_registry("schema_version: 1\nerrors:" + _ENTRY.format(code="BAD-1", domain="SYS"))
        try:
            with pytest.raises(RegistryValidationError, match="Invalid code format"):
                ErrorRegistry().load(path)
        finally:
            os.unlink(path)

    def test_domain_mismatch(self):
        path = _write_registry("schema_version: 1\nerrors:" + _ENTRY.format(code="INS-LLM-050", domain="DB"))
        try:
            with pytest.raises(RegistryValidationError, match="doesn't match code prefix"):
                ErrorRegistry().load(path)
        finally:
            os.unlink(path)

    def test_duplicate_code(self):
        entry = _ENTRY.format(code="INS-SYS-050", domain="SYS")
        path = _write_registry("schema_version: 1\nerrors:" + entry + entry)
        try:
            with pytest.raises(RegistryValidationError, match="Duplicate code"):
                ErrorRegistry().load(path)
        finally:
            os.unlink(path)

    def test_missing_fields(self):
        path = _write_registry("schema_version: 1\nerrors:\n  - code: INS-SYS-050\n    domain: SYS\n")
        try:
            with pytest.raises(RegistryValidationError, match="missing fields"):
                ErrorRegistry().load(path)
        finally:
            os.unlink(path)


class TestTypedErrors:

    def test_invalid_code_rejected(self):
        with pytest.raises(ValueError):
            InsightsError("oops")

    def test_subclasses_share_base(self):
        err = AnalysisUnavailable("retries exhausted", context={"attempts": 4})
        assert isinstance(err, AnalysisFailed)
        assert err.code == "INS-LLM-001"
        assert err.context == {"attempts": 4}
        assert str(err) == "INS-LLM-001: retries exhausted"


@pytest.fixture
def error_client():
    registry = ErrorRegistry()
    registry.load()

    app = FastAPI()
    app.add_exception_handler(InsightsError, insights_error_handler)

    @app.get("/missing")
    async def _missing():
        raise FeedbackNotFound(detail="internal id abc123")

    @app.get("/unregistered")
    async def _unregistered():
        raise InsightsError("INS-SYS-998", detail="secret")

    with patch("insights.core.errors.middleware.error_registry", registry):
        yield TestClient(app)


class TestErrorHandler:

    def test_registered_code(self, error_client):
        resp = error_client.get("/missing")
        assert resp.status_code == 404
        error = resp.json()["error"]
        assert error["code"] == "INS-FBK-001"
        assert error["retryable"] is False
        assert "abc123" not in resp.text

    def test_unregistered_code_falls_back(self, error_client):
        resp = error_client.get("/unregistered")
        assert resp.status_code == 500
        assert resp.json()["error"]["title"] == "Internal error"
        assert "secret" not in resp.text
