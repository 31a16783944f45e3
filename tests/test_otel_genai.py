"""Tests for saga.observability.otel_genai.OTelGenAITracer."""

from unittest.mock import MagicMock, patch

from saga.core.config import SagaConfig
from saga.observability import OTelGenAITracer


def test_disabled_tracer_is_noop():
    tracer = OTelGenAITracer(enabled=False)
    assert tracer.active is False
    with tracer.span("saga.test", {"saga.limit": 3}):
        pass
    tracer.add_event("ignored")


def test_enabled_span_drops_null_attributes():
    tracer = OTelGenAITracer(enabled=True)
    tracer._tracer = MagicMock()
    with tracer.span("saga.retrieval.hybrid_search", {"saga.limit": 5, "saga.query": None}):
        pass
    tracer._tracer.start_as_current_span.assert_called_once_with(
        "saga.retrieval.hybrid_search", attributes={"saga.limit": 5}
    )


def test_add_event_goes_to_current_span():
    tracer = OTelGenAITracer(enabled=True)
    current = MagicMock()
    with patch("saga.observability.otel_genai.trace.get_current_span", return_value=current):
        tracer.add_event("saga.retrieval.fused", {"saga.fts_hits": 2})
    current.add_event.assert_called_once_with("saga.retrieval.fused", attributes={"saga.fts_hits": 2})


def test_maybe_content_off_by_default():
    assert OTelGenAITracer(enabled=True).maybe_content("contract renewal") is None


def test_maybe_content_cut_to_max_chars():
    tracer = OTelGenAITracer(capture_content=True, content_max_chars=4)
    assert tracer.maybe_content("abcdefgh") == "abcd"
    assert tracer.maybe_content(None) is None


def test_zero_max_chars_captures_nothing():
    tracer = OTelGenAITracer(capture_content=True, content_max_chars=0)
    assert tracer.maybe_content("abc") is None


def test_capture_settings_from_env(monkeypatch):
    monkeypatch.setenv("SAGA_OTEL_CAPTURE_CONTENT", "true")
    monkeypatch.setenv("SAGA_OTEL_CAPTURE_CONTENT_MAX_CHARS", "not-a-number")
    telemetry = SagaConfig.from_env().telemetry
    assert telemetry.capture_content is True
    assert telemetry.content_max_chars == 1000


def test_capture_max_chars_capped(monkeypatch):
    monkeypatch.delenv("SAGA_OTEL_CAPTURE_CONTENT", raising=False)
    monkeypatch.setenv("SAGA_OTEL_CAPTURE_CONTENT_MAX_CHARS", "50000")
    telemetry = SagaConfig.from_env().telemetry
    assert telemetry.capture_content is False
    assert telemetry.content_max_chars == 16000
