"""Tests for cronspine.core.logging."""

import pytest
import structlog

from cronspine.core.logging import LogContext, bind_context, clear_context, configure_logging, unbind_context


@pytest.fixture(autouse=True)
def _clean_context():
    clear_context()
    yield
    clear_context()


class TestLogContext:
    def test_binds_and_unbinds(self):
        with LogContext(job_id=12, uuid="nightly"):
            assert structlog.contextvars.get_contextvars() == {"job_id": 12, "uuid": "nightly"}
        assert structlog.contextvars.get_contextvars() == {}

    def test_nested_scope_restores_outer_value(self):
        with LogContext(runner_slot=0, job_id=1):
            with LogContext(job_id=2):
                assert structlog.contextvars.get_contextvars()["job_id"] == 2
            assert structlog.contextvars.get_contextvars() == {"runner_slot": 0, "job_id": 1}

    def test_bind_unbind(self):
        bind_context(runner_slot=1)
        unbind_context("runner_slot")
        assert structlog.contextvars.get_contextvars() == {}


class TestConfigureLogging:
    def test_unknown_level(self):
        with pytest.raises(ValueError, match="unknown log level"):
            configure_logging(level="chatty")
