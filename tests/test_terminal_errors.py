"""Tests for perch.server.terminal_errors: contained-failure logging."""

import logging

import pytest

from perch.context import RequestContext
from perch.server.terminal_errors import (
    format_compact_traceback,
    format_minimal_error,
    log_error,
)


def _raised() -> ValueError:
    try:
        raise ValueError("bad payload")
    except ValueError as exc:
        return exc


class FakeTemplateError(Exception):
    def format_compact(self) -> str:
        return "K-RUN-001: Undefined variable 'jobz' in jobs.html:3"


FakeTemplateError.__module__ = "kida.environment.exceptions"


@pytest.fixture
def ctx() -> RequestContext:
    return RequestContext.from_asgi({"path": "/jobs", "query_string": b"tab=remote"})


class TestLogError:
    def test_compact_by_default(
        self, ctx: RequestContext, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
    ) -> None:
        monkeypatch.delenv("PERCH_TRACEBACK", raising=False)
        with caplog.at_level(logging.ERROR, logger="perch.server"):
            log_error(_raised(), ctx)
        assert "500 GET /jobs?tab=remote" in caplog.text
        assert "ValueError: bad payload" in caplog.text
        assert "Trace (app frames):" in caplog.text

    def test_minimal(
        self, ctx: RequestContext, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
    ) -> None:
        monkeypatch.setenv("PERCH_TRACEBACK", "minimal")
        with caplog.at_level(logging.ERROR, logger="perch.server"):
            log_error(_raised(), ctx)
        (record,) = caplog.records
        assert "\n" not in record.getMessage()
        assert record.getMessage().endswith(": bad payload")

    def test_full(
        self, ctx: RequestContext, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
    ) -> None:
        monkeypatch.setenv("PERCH_TRACEBACK", "full")
        with caplog.at_level(logging.ERROR, logger="perch.server"):
            log_error(_raised(), ctx)
        (record,) = caplog.records
        assert record.exc_info is not None
        assert "Traceback" in caplog.text

    def test_template_error_gets_banner(self, ctx: RequestContext, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.ERROR, logger="perch.server"):
            log_error(FakeTemplateError("undefined"), ctx)
        assert "-- Template Error" in caplog.text
        assert "K-RUN-001" in caplog.text
        assert "Route: GET /jobs?tab=remote" in caplog.text

    def test_custom_prefix_and_logger(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.ERROR, logger="perch.render"):
            log_error(_raised(), prefix="Render failed", log=logging.getLogger("perch.render"))
        (record,) = caplog.records
        assert record.name == "perch.render"
        assert record.getMessage().startswith("Render failed")

    def test_no_request(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.ERROR, logger="perch.server"):
            log_error(_raised())
        assert caplog.records[0].getMessage().startswith("Server error")


class TestFormatters:
    def test_minimal_without_traceback(self) -> None:
        assert format_minimal_error(ValueError("bad")) == "ValueError: bad"

    def test_minimal_names_location(self) -> None:
        assert " at " in format_minimal_error(_raised())

    def test_compact_without_traceback(self) -> None:
        assert format_compact_traceback(KeyError("jobs")) == "KeyError: 'jobs'"
