"""
Saga Vector Store
-----------------
Qdrant collection of message embeddings for similarity search.
Wraps qdrant-client with the filters the search providers need
(sender entity, inclusive timestamp window).
"""

import logging
import threading
import uuid
from pathlib import Path
from typing import Optional, List, Tuple

from qdrant_client import QdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    MatchValue,
    PointStruct,
    Range,
    VectorParams,
)

logger = logging.getLogger("Saga.Vector")

DEFAULT_COLLECTION = "saga_messages"
DEFAULT_DIMS = 1536


def point_id_for(message_id: str) -> str:
    return str(uuid.uuid5(uuid.NAMESPACE_DNS, message_id))


class VectorStore:
    """Manages message embeddings in Qdrant (local path, in-memory or remote)."""

    def __init__(
        self,
        path: Optional[str] = None,
        collection_name: str = DEFAULT_COLLECTION,
        embedding_dims: int = DEFAULT_DIMS,
        url: Optional[str] = None,
        location: Optional[str] = None,
        on_disk: bool = True,
    ):
        self.path = Path(path) if path else None
        self.url = url
        self.location = location
        self.collection_name = collection_name
        self.embedding_dims = embedding_dims
        self.on_disk = on_disk
        self._client: Optional[QdrantClient] = None
        self._lock = threading.RLock()
        self._initialize()

    def _get_client(self) -> QdrantClient:
        if self._client is None:
            if self.url:
                self._client = QdrantClient(url=self.url)
            elif self.location:
                self._client = QdrantClient(location=self.location)
            else:
                self._client = QdrantClient(path=str(self.path))
        return self._client

    def _initialize(self):
        with self._lock:
            client = self._get_client()
            collections = [c.name for c in client.get_collections().collections]
            if self.collection_name not in collections:
                client.create_collection(
                    collection_name=self.collection_name,
                    vectors_config=VectorParams(
                        size=self.embedding_dims,
                        distance=Distance.COSINE,
                        on_disk=self.on_disk,
                    ),
                )
                logger.info(
                    "Created vector collection '%s' (%d dims)",
                    self.collection_name,
                    self.embedding_dims,
                )
            else:
                logger.info("Vector collection '%s' exists", self.collection_name)

    def upsert(
        self,
        message_id: str,
        embedding: List[float],
        sender_entity_id: Optional[str],
        timestamp: float,
    ) -> str:
        """Insert or update the embedding of one message. Returns the point ID."""
        point_id = point_id_for(message_id)
        payload = {
            "message_id": message_id,
            "sender_entity_id": sender_entity_id,
            "timestamp": timestamp,
        }
        with self._lock:
            self._get_client().upsert(
                collection_name=self.collection_name,
                points=[PointStruct(id=point_id, vector=embedding, payload=payload)],
            )
        return point_id

    def search(
        self,
        query_embedding: List[float],
        limit: int = 10,
        sender_entity_id: Optional[str] = None,
        from_ts: Optional[float] = None,
        to_ts: Optional[float] = None,
    ) -> List[Tuple[str, float]]:
        """
        Nearest messages by cosine similarity.

        Returns (message_id, similarity) tuples, best first. Qdrant's cosine
        score is already 1 - cosine distance.
        """
        conditions = []
        if sender_entity_id:
            conditions.append(
                FieldCondition(key="sender_entity_id", match=MatchValue(value=sender_entity_id))
            )
        if from_ts is not None or to_ts is not None:
            conditions.append(FieldCondition(key="timestamp", range=Range(gte=from_ts, lte=to_ts)))
        query_filter = Filter(must=conditions) if conditions else None

        with self._lock:
            points = self._get_client().query_points(
                collection_name=self.collection_name,
                query=query_embedding,
                limit=limit,
                query_filter=query_filter,
            ).points

        return [
            (hit.payload["message_id"], float(hit.score))
            for hit in points
            if hit.payload and "message_id" in hit.payload
        ]

    def delete(self, message_id: str) -> bool:
        with self._lock:
            self._get_client().delete(
                collection_name=self.collection_name,
                points_selector=[point_id_for(message_id)],
            )
        return True

    def count(self) -> int:
        with self._lock:
            info = self._get_client().get_collection(self.collection_name)
        return info.points_count or 0

    def close(self):
        with self._lock:
            if self._client:
                self._client.close()
                self._client = None
