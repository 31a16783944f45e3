# Lazy imports: the vector provider pulls in qdrant_client transitively
from saga.retrieval.fts import FullTextSearchProvider, build_match_expression
from saga.retrieval.hybrid import HybridSearchEngine, rrf_fuse, RRF_K

__all__ = [
    "FullTextSearchProvider",
    "build_match_expression",
    "HybridSearchEngine",
    "rrf_fuse",
    "RRF_K",
    "VectorSearchProvider",
]


def __getattr__(name):
    if name == "VectorSearchProvider":
        from saga.retrieval.vector import VectorSearchProvider
        return VectorSearchProvider
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
