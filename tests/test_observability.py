"""
Structured logging and tracing tests.
"""

import contextvars
import io
import json

import pytest

from metaguard.observability import (
    EngineLayer,
    Tracer,
    configure_logging,
    correlation_id_var,
    get_correlation_id,
    get_logger,
    set_correlation_id,
    timed_operation,
)


def _events(stream):
    return [json.loads(line) for line in stream.getvalue().splitlines()]


class TestLogging:

    def test_json_event(self):
        stream = io.StringIO()
        configure_logging("info", "json", stream)
        logger = get_logger("unit", EngineLayer.GUARD)

        def emit():
            set_correlation_id("corr-test")
            logger.info("Token checked", operation="lock_check", mint="abc")

        contextvars.copy_context().run(emit)

        (event,) = _events(stream)
        assert event["message"] == "Token checked"
        assert event["logger"] == "metaguard.guard.unit"
        assert event["layer"] == "guard"
        assert event["operation"] == "lock_check"
        assert event["correlation_id"] == "corr-test"
        assert event["context"] == {"mint": "abc"}

    def test_level_filter(self):
        stream = io.StringIO()
        configure_logging("warning", "json", stream)
        logger = get_logger("unit", EngineLayer.ROUTER)
        logger.info("hidden")
        logger.warning("shown")
        assert [e["message"] for e in _events(stream)] == ["shown"]

    def test_text_format(self):
        stream = io.StringIO()
        configure_logging("debug", "text", stream)
        get_logger("unit", EngineLayer.AUTH).debug("plain line")
        assert "DEBUG metaguard.auth.unit [auth] plain line" in stream.getvalue()

    def test_reconfigure_replaces_handler(self):
        first, second = io.StringIO(), io.StringIO()
        configure_logging("info", "json", first)
        configure_logging("info", "json", second)
        get_logger("unit", EngineLayer.CLI).info("once")
        assert first.getvalue() == ""
        assert len(_events(second)) == 1

    def test_exception_recorded(self):
        stream = io.StringIO()
        configure_logging("info", "json", stream)
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            get_logger("unit", EngineLayer.ROUTER).error("failed", exc_info=True)
        (event,) = _events(stream)
        assert "RuntimeError: boom" in event["exception"]


class TestTimedOperation:

    def test_success_and_failure_logged(self):
        stream = io.StringIO()
        configure_logging("info", "json", stream)
        logger = get_logger("unit", EngineLayer.RULES)

        @timed_operation(logger, "evaluate")
        def evaluate(ok):
            if not ok:
                raise ValueError("rejected")
            return "done"

        assert evaluate(True) == "done"
        with pytest.raises(ValueError):
            evaluate(False)

        completed, failed = _events(stream)
        assert completed["message"] == "Operation evaluate completed"
        assert completed["level"] == "info"
        assert completed["duration_ms"] >= 0
        assert failed["message"] == "Operation evaluate failed"
        assert failed["level"] == "warning"


class TestTracing:

    def test_nested_spans(self):
        spans = []
        tracer = Tracer()
        tracer.add_exporter(spans.append)

        def work():
            with tracer.span("outer", EngineLayer.ROUTER) as outer:
                with tracer.span("inner", EngineLayer.AUTH, rule_set="x"):
                    assert len(tracer.active_spans()) == 2
            return outer

        outer = contextvars.copy_context().run(work)

        inner, exported_outer = spans
        assert exported_outer is outer
        assert inner.parent_span_id == outer.span_id
        assert inner.trace_id == outer.trace_id
        assert inner.attributes == {"rule_set": "x"}
        assert tracer.active_spans() == []

    def test_error_status(self):
        spans = []
        tracer = Tracer()
        tracer.add_exporter(spans.append)
        with pytest.raises(KeyError):
            with tracer.span("failing", EngineLayer.LEDGER):
                raise KeyError("missing")
        (span,) = spans
        assert span.status == "error"
        assert span.attributes["exception_type"] == "KeyError"
        assert span.to_dict()["duration_ms"] >= 0

    def test_disabled_tracer_exports_nothing(self):
        spans = []
        tracer = Tracer(enabled=False)
        tracer.add_exporter(spans.append)
        with tracer.span("quiet", EngineLayer.ROUTER):
            pass
        assert spans == []
        assert tracer.active_spans() == []


class TestCorrelation:

    def test_generated_on_demand(self):
        def read():
            assert correlation_id_var.get() == ""
            cid = get_correlation_id()
            assert cid.startswith("corr-")
            assert get_correlation_id() == cid

        contextvars.copy_context().run(read)
        assert correlation_id_var.get() == ""
