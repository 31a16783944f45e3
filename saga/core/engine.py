"""
Saga Engine
-----------
Facade over the retrieval and context subsystems.

Composes:
- SQLite context store (subjects, history, FTS5 index)
- Qdrant vector store (message embeddings)
- Embedding provider (OpenAI / Ollama / random fallback)
- Hybrid search engine (FTS + vector + RRF)
- Tiered context assembler
- Synthesis orchestrator + context service

Usage:
    engine = SagaEngine.from_config(SagaConfig.from_env())

    result = await engine.generate_context("subject-id", task_hint="contract renewal")
    hits = await engine.hybrid_search("invoice", entity_id="subject-id")

    await engine.close()
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional, Union

from saga.context.assembler import TieredContextAssembler
from saga.context.generation import GenerationCapability, create_generation_capability
from saga.context.service import ContextService
from saga.context.synthesis import SynthesisOrchestrator
from saga.core.config import SagaConfig
from saga.core.types import ContextResult, Message, SearchPeriod, SearchResponse, SearchType, utcnow
from saga.observability import OTelGenAITracer
from saga.retrieval.embedding import EmbeddingProvider, create_embedding_provider
from saga.retrieval.fts import FullTextSearchProvider
from saga.retrieval.hybrid import HybridSearchEngine
from saga.retrieval.vector import VectorSearchProvider
from saga.store.sqlite_store import SQLiteContextStore, to_epoch
from saga.store.vector_store import VectorStore

logger = logging.getLogger("Saga")


class SagaEngine:
    """Entry point for context generation and hybrid search."""

    def __init__(
        self,
        config: SagaConfig,
        store: SQLiteContextStore,
        vectors: VectorStore,
        embedder: EmbeddingProvider,
        search: HybridSearchEngine,
        context: ContextService,
        generation: Optional[GenerationCapability] = None,
    ):
        self.config = config
        self.store = store
        self.vectors = vectors
        self.embedder = embedder
        self.search = search
        self.context = context
        self.generation = generation

    @classmethod
    def from_config(
        cls,
        config: Optional[SagaConfig] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> "SagaEngine":
        """Wire every subsystem from configuration."""
        config = config or SagaConfig.from_env()
        config.ensure_directories()
        flags = config.feature_flags
        logger.info("Initializing Saga engine (flags: %s)", ", ".join(flags.active_flags) or "none")

        telemetry = OTelGenAITracer(
            enabled=flags.is_enabled("otel_genai"),
            capture_content=config.telemetry.capture_content,
            content_max_chars=config.telemetry.content_max_chars,
        )

        store = SQLiteContextStore(config.metadata.path, fts_tokenizer=config.metadata.fts_tokenizer)
        vectors = VectorStore(
            path=config.vector.path,
            collection_name=config.vector.collection,
            embedding_dims=config.embedding.dimensions,
            url=config.vector.url,
            location=config.vector.location,
            on_disk=config.vector.on_disk,
        )
        embedder = create_embedding_provider(config.embedding)

        search = HybridSearchEngine(
            fts_provider=FullTextSearchProvider(store, snippet_tokens=config.metadata.snippet_tokens),
            vector_provider=VectorSearchProvider(vectors, store),
            embedder=embedder,
            rrf_k=config.search.rrf_k,
            overfetch_factor=config.search.overfetch_factor,
            default_limit=config.search.default_limit,
            telemetry=telemetry,
        )

        assembler = TieredContextAssembler(
            store,
            search=search,
            config=config.context,
            clock=clock,
            relevant_tier_enabled=flags.is_enabled("relevant_tier"),
            telemetry=telemetry,
        )

        generation = None
        if flags.is_enabled("synthesis"):
            generation = create_generation_capability(config.synthesis)
        else:
            logger.info("Synthesis disabled by feature flag; contexts use the tier rendering")

        synthesizer = SynthesisOrchestrator(
            generation,
            timeout_seconds=config.synthesis.timeout_seconds,
            telemetry=telemetry,
        )
        context = ContextService(
            assembler,
            synthesizer,
            synthesis_enabled=flags.is_enabled("synthesis"),
            clock=clock,
        )

        return cls(
            config=config,
            store=store,
            vectors=vectors,
            embedder=embedder,
            search=search,
            context=context,
            generation=generation,
        )

    async def generate_context(
        self,
        subject_id: str,
        task_hint: Optional[str] = None,
        max_tokens: Optional[int] = None,
        include_recent_days: Optional[int] = None,
        synthesis_timeout: Optional[float] = None,
    ) -> ContextResult:
        return await self.context.generate_context(
            subject_id,
            task_hint=task_hint,
            max_tokens=max_tokens,
            include_recent_days=include_recent_days,
            synthesis_timeout=synthesis_timeout,
        )

    async def hybrid_search(
        self,
        query: str,
        entity_id: Optional[str] = None,
        period: Optional[SearchPeriod] = None,
        limit: Optional[int] = None,
        search_type: Union[SearchType, str] = SearchType.HYBRID,
    ) -> SearchResponse:
        return await self.search.search(
            query,
            entity_id=entity_id,
            period=period,
            limit=limit,
            search_type=search_type,
        )

    async def add_message(self, message: Message, embed: bool = False) -> str:
        """
        Store a message and index its embedding.

        With ``embed=True`` a message without an embedding is embedded with
        the configured provider first. An embedding failure leaves the message
        stored but absent from vector search.
        """
        if embed and message.embedding is None and message.content:
            try:
                vector = await self.embedder.embed(message.content)
                message = message.model_copy(update={"embedding": vector})
            except Exception as e:
                logger.warning("Embedding failed for message %s: %s", message.id, e)

        await asyncio.to_thread(self.store.add_message, message)
        if message.embedding is not None:
            await asyncio.to_thread(
                self.vectors.upsert,
                message.id,
                message.embedding,
                message.sender_entity_id,
                to_epoch(message.timestamp),
            )
        return message.id

    async def close(self) -> None:
        """Release provider clients and stores."""
        await self.embedder.close()
        if self.generation is not None:
            await self.generation.close()
        self.vectors.close()
        self.store.close()
        logger.info("Saga shut down")
