"""Observability helpers for optional telemetry integrations."""

from .otel_genai import OTelGenAITracer

__all__ = ["OTelGenAITracer"]
