"""
Saga: hybrid retrieval and tiered context for conversation partners
"""

from saga.core import SagaConfig, SagaError, SubjectNotFoundError
from saga.version import __version__

__all__ = [
    "__version__",
    "SagaEngine",
    "SagaConfig",
    "SagaError",
    "SubjectNotFoundError",
]


def __getattr__(name):
    if name == "SagaEngine":
        from saga.core.engine import SagaEngine
        return SagaEngine
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
