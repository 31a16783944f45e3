from saga.store.sqlite_store import SQLiteContextStore

__all__ = ["SQLiteContextStore", "VectorStore"]


def __getattr__(name):
    # VectorStore pulls in qdrant_client; import it only when asked for
    if name == "VectorStore":
        from saga.store.vector_store import VectorStore
        return VectorStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
