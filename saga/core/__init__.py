# Lazy imports to avoid pulling qdrant/openai/anthropic on simple type imports
from saga.core.config import SagaConfig
from saga.core.errors import SagaError, SubjectNotFoundError
from saga.core.types import ContextResult, SearchResponse, SearchResult

__all__ = [
    "SagaEngine",
    "SagaConfig",
    "SagaError",
    "SubjectNotFoundError",
    "ContextResult",
    "SearchResponse",
    "SearchResult",
]


def __getattr__(name):
    if name == "SagaEngine":
        from saga.core.engine import SagaEngine
        return SagaEngine
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
