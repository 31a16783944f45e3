"""
Saga Embedding Providers
------------------------
Text → fixed-length vector for the vector search signal.

Backends:
- OpenAI embeddings API (text-embedding-3-small, 1536 dims)
- Ollama /api/embeddings (local models)
- Random unit vectors, used when no real backend is configured. These carry
  no semantic meaning; providers expose ``is_random`` so callers and tests
  can tell them apart from real embeddings.

Inputs are truncated to ``max_input_chars`` and every backend call is bounded
by ``timeout_seconds``; errors and timeouts surface as EmbeddingError.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import List, Optional

import httpx
import numpy as np
from openai import AsyncOpenAI

from saga.core.config import EmbeddingConfig
from saga.core.errors import EmbeddingError

logger = logging.getLogger("Saga.Embedding")


class EmbeddingProvider(ABC):
    """Base class: truncation, timeout and error mapping around a backend."""

    name = "base"
    is_random = False

    def __init__(
        self,
        dimensions: int,
        max_input_chars: int = 8000,
        timeout_seconds: float = 30.0,
    ):
        self.dimensions = dimensions
        self.max_input_chars = max_input_chars
        self.timeout_seconds = timeout_seconds

    async def embed(self, text: str, timeout: Optional[float] = None) -> List[float]:
        vectors = await self.embed_batch([text], timeout=timeout)
        return vectors[0]

    async def embed_batch(
        self,
        texts: List[str],
        timeout: Optional[float] = None,
    ) -> List[List[float]]:
        if not texts:
            return []
        truncated = [(t or "")[: self.max_input_chars] for t in texts]
        try:
            return await asyncio.wait_for(
                self._embed_batch(truncated),
                timeout=timeout or self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise EmbeddingError(
                f"Embedding timed out after {timeout or self.timeout_seconds}s",
                provider=self.name,
            ) from e
        except EmbeddingError:
            raise
        except Exception as e:
            raise EmbeddingError(f"Embedding failed: {e}", provider=self.name) from e

    @abstractmethod
    async def _embed_batch(self, texts: List[str]) -> List[List[float]]:
        """Embed already-truncated texts."""

    async def close(self) -> None:
        return None


class OpenAIEmbeddingProvider(EmbeddingProvider):
    name = "openai"

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        dimensions: int = 1536,
        base_url: Optional[str] = None,
        max_input_chars: int = 8000,
        timeout_seconds: float = 30.0,
    ):
        super().__init__(dimensions, max_input_chars, timeout_seconds)
        self.model = model
        self._client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout_seconds)
        logger.info("OpenAI embedding client initialized: %s", model)

    async def _embed_batch(self, texts: List[str]) -> List[List[float]]:
        response = await self._client.embeddings.create(model=self.model, input=texts)
        data = sorted(response.data, key=lambda d: d.index)
        return [list(d.embedding) for d in data]

    async def close(self) -> None:
        await self._client.close()


class OllamaEmbeddingProvider(EmbeddingProvider):
    name = "ollama"

    def __init__(
        self,
        ollama_url: str = "http://localhost:11434",
        model: str = "nomic-embed-text",
        dimensions: int = 768,
        max_input_chars: int = 8000,
        timeout_seconds: float = 30.0,
    ):
        super().__init__(dimensions, max_input_chars, timeout_seconds)
        self.model = model
        self._client = httpx.AsyncClient(base_url=ollama_url, timeout=timeout_seconds)
        logger.info("Ollama embedding client initialized: %s @ %s", model, ollama_url)

    async def _embed_one(self, text: str) -> List[float]:
        response = await self._client.post(
            "/api/embeddings",
            json={"model": self.model, "prompt": text},
        )
        response.raise_for_status()
        return response.json()["embedding"]

    async def _embed_batch(self, texts: List[str]) -> List[List[float]]:
        return list(await asyncio.gather(*(self._embed_one(t) for t in texts)))

    async def close(self) -> None:
        await self._client.aclose()


class RandomEmbeddingProvider(EmbeddingProvider):
    """Unit-length pseudo-random vectors; keeps the pipeline runnable offline."""

    name = "random"
    is_random = True

    def __init__(
        self,
        dimensions: int = 1536,
        seed: Optional[int] = None,
        max_input_chars: int = 8000,
        timeout_seconds: float = 30.0,
    ):
        super().__init__(dimensions, max_input_chars, timeout_seconds)
        self._rng = np.random.default_rng(seed)

    def _random_unit_vector(self) -> List[float]:
        vector = self._rng.random(self.dimensions) - 0.5
        return (vector / np.linalg.norm(vector)).tolist()

    async def _embed_batch(self, texts: List[str]) -> List[List[float]]:
        return [self._random_unit_vector() for _ in texts]


def create_embedding_provider(config: EmbeddingConfig) -> EmbeddingProvider:
    """Pick the configured backend; OpenAI without a key degrades to random vectors."""
    if config.provider == "ollama":
        return OllamaEmbeddingProvider(
            ollama_url=config.ollama_url,
            model=config.model,
            dimensions=config.dimensions,
            max_input_chars=config.max_input_chars,
            timeout_seconds=config.timeout_seconds,
        )
    if config.provider == "openai" and config.api_key:
        return OpenAIEmbeddingProvider(
            api_key=config.api_key,
            model=config.model,
            dimensions=config.dimensions,
            base_url=config.base_url,
            max_input_chars=config.max_input_chars,
            timeout_seconds=config.timeout_seconds,
        )
    if config.provider == "openai":
        logger.warning("OpenAI API key not configured, embeddings will use random vectors")
    return RandomEmbeddingProvider(
        dimensions=config.dimensions,
        seed=config.seed,
        max_input_chars=config.max_input_chars,
        timeout_seconds=config.timeout_seconds,
    )
