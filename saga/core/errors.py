"""
Saga exceptions.

Only SubjectNotFoundError is meant to reach callers of the engine. Provider
and synthesis errors are raised by the leaf components and recovered by the
layer above them (empty tier / search list, degraded markdown).
"""

from __future__ import annotations

from typing import Optional


class SagaError(RuntimeError):
    """Base class for engine errors."""


class SubjectNotFoundError(SagaError):
    """Raised when a context is requested for an unknown subject."""

    def __init__(self, subject_id: str) -> None:
        self.subject_id = subject_id
        super().__init__(f"Subject not found: {subject_id}")


class ProviderUnavailableError(SagaError):
    """Raised when a search, storage or embedding backend fails."""

    def __init__(self, detail: str, *, provider: Optional[str] = None) -> None:
        self.provider = provider
        provider_hint = f" [{provider}]" if provider else ""
        super().__init__(f"{detail}{provider_hint}")


class EmbeddingError(ProviderUnavailableError):
    """Raised when the embedding backend errors or times out."""


class SynthesisError(SagaError):
    """Raised when narrative synthesis cannot produce a usable result."""


class GenerationError(SynthesisError):
    """Raised by a generation capability on API, timeout or schema failure."""
