"""
OpenTelemetry GenAI spans around search, context building and synthesis.

Opt-in via the ``otel_genai`` feature flag; a disabled tracer makes every
call a no-op. Raw text (queries, task hints) is attached only when
``TelemetryConfig.capture_content`` is set, cut to ``content_max_chars``.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from opentelemetry import trace

from saga.version import __version__


class OTelGenAITracer:
    """Span and event helpers used by the retrieval and context layers."""

    def __init__(
        self,
        *,
        enabled: bool = False,
        capture_content: bool = False,
        content_max_chars: int = 1000,
    ):
        self.enabled = enabled
        self.capture_content = capture_content
        self.content_max_chars = max(0, content_max_chars)
        self._tracer = (
            trace.get_tracer("saga.observability.otel_genai", __version__) if enabled else None
        )

    @property
    def active(self) -> bool:
        return self._tracer is not None

    @contextmanager
    def span(self, name: str, attributes: Optional[Dict[str, Any]] = None) -> Iterator[None]:
        if not self.active:
            yield
            return
        # OTel rejects None attribute values
        present = {k: v for k, v in (attributes or {}).items() if v is not None}
        with self._tracer.start_as_current_span(name, attributes=present):
            yield

    def add_event(self, name: str, attributes: Optional[Dict[str, Any]] = None) -> None:
        if self.active:
            trace.get_current_span().add_event(name, attributes=attributes or {})

    def maybe_content(self, text: Optional[str]) -> Optional[str]:
        """Return ``text`` for a span attribute, or None when capture is off."""
        if not self.capture_content or not text or self.content_max_chars == 0:
            return None
        return text[: self.content_max_chars]
