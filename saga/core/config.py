"""
Saga Configuration
------------------
Centralized configuration for the retrieval and context engine.
Loads from environment variables (SAGA_*) and YAML config files.
"""

import os
import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from saga.core.feature_flags import FeatureFlags
from saga.platform import get_data_dir

logger = logging.getLogger("Saga.Config")

DEFAULT_DATA_DIR = str(get_data_dir())
DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"
DEFAULT_EMBEDDING_DIMS = 1536
SUPPORTED_EMBEDDING_PROVIDERS = ("openai", "ollama", "random")
SUPPORTED_SYNTHESIS_PROVIDERS = ("openai", "anthropic")
DEFAULT_SYNTHESIS_MODELS = {
    "openai": "gpt-4o-mini",
    "anthropic": "claude-haiku-4-5-20251001",
}


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
        if value <= 0:
            raise ValueError
        return value
    except ValueError:
        logger.warning(
            "Invalid %s value '%s'; expected positive float. Using %s.",
            name,
            raw,
            default,
        )
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
        if value <= 0:
            raise ValueError
        return value
    except ValueError:
        logger.warning(
            "Invalid %s value '%s'; expected positive integer. Using %s.",
            name,
            raw,
            default,
        )
        return default


def _normalize_choice(value: Optional[str], choices, default: str, name: str) -> str:
    candidate = (value or "").strip().lower()
    if candidate in choices:
        return candidate
    if candidate:
        logger.warning(
            "Unsupported %s '%s'; expected one of %s. Falling back to '%s'.",
            name,
            candidate,
            choices,
            default,
        )
    return default


class EmbeddingConfig(BaseModel):
    """Embedding backend configuration."""
    provider: str = "openai"
    model: str = DEFAULT_EMBEDDING_MODEL
    dimensions: int = DEFAULT_EMBEDDING_DIMS
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    ollama_url: str = "http://localhost:11434"
    max_input_chars: int = 8000
    timeout_seconds: float = 30.0
    # Only used by the random fallback; None draws fresh entropy.
    seed: Optional[int] = None

    @field_validator("provider", mode="before")
    @classmethod
    def normalize_provider(cls, v: Optional[str]) -> str:
        return _normalize_choice(v, SUPPORTED_EMBEDDING_PROVIDERS, "openai", "embedding provider")


class VectorConfig(BaseModel):
    """Qdrant message-embedding collection."""
    path: str = os.path.join(DEFAULT_DATA_DIR, "qdrant")
    url: Optional[str] = None
    # ":memory:" keeps the collection in-process (tests, throwaway runs)
    location: Optional[str] = None
    collection: str = "saga_messages"
    on_disk: bool = True


class MetadataConfig(BaseModel):
    """
    SQLite store holding subjects, history and the FTS5 index.

    The default tokenizer stems English only. For other languages swap
    `porter` out (e.g. plain `unicode61` or `trigram`); inflected forms
    then match only by exact word or substring.
    """
    path: str = os.path.join(DEFAULT_DATA_DIR, "context.db")
    fts_tokenizer: str = "porter unicode61 remove_diacritics 2"
    snippet_tokens: int = 16


class SearchConfig(BaseModel):
    """Hybrid search parameters."""
    default_limit: int = 20
    rrf_k: int = 60
    overfetch_factor: int = 2


class ContextConfig(BaseModel):
    """Tier windows (days) and per-tier caps."""
    hot_tier_days: int = 7
    warm_tier_days: int = 90
    hot_message_limit: int = 50
    hot_segment_limit: int = 30
    warm_summary_limit: int = 10
    cold_milestone_limit: int = 3
    cold_decision_limit: int = 5
    relevant_limit: int = 5


class SynthesisConfig(BaseModel):
    """Structured-output generation used to narrate a context bundle."""
    provider: str = "openai"
    # None resolves to the provider's entry in DEFAULT_SYNTHESIS_MODELS
    model: Optional[str] = None
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    timeout_seconds: float = 60.0
    max_tokens: int = 1500

    @field_validator("provider", mode="before")
    @classmethod
    def normalize_provider(cls, v: Optional[str]) -> str:
        return _normalize_choice(v, SUPPORTED_SYNTHESIS_PROVIDERS, "openai", "synthesis provider")

    @model_validator(mode="after")
    def default_model_for_provider(self) -> "SynthesisConfig":
        if not self.model:
            self.model = DEFAULT_SYNTHESIS_MODELS[self.provider]
        return self


class TelemetryConfig(BaseModel):
    """Content capture for OpenTelemetry spans (spans themselves follow the otel_genai flag)."""
    capture_content: bool = False
    content_max_chars: int = Field(default=1000, ge=0, le=16000)


class SagaConfig(BaseModel):
    """Root configuration for the engine."""
    data_dir: str = DEFAULT_DATA_DIR
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    vector: VectorConfig = Field(default_factory=VectorConfig)
    metadata: MetadataConfig = Field(default_factory=MetadataConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)
    synthesis: SynthesisConfig = Field(default_factory=SynthesisConfig)
    telemetry: TelemetryConfig = Field(default_factory=TelemetryConfig)
    feature_flags: FeatureFlags = Field(default_factory=FeatureFlags)

    model_config = {"arbitrary_types_allowed": True}

    @classmethod
    def from_env(cls) -> "SagaConfig":
        """Build configuration from SAGA_* environment variables."""
        data_dir = os.environ.get("SAGA_DATA_DIR", DEFAULT_DATA_DIR)
        return cls(
            data_dir=data_dir,
            embedding=EmbeddingConfig(
                provider=os.environ.get("SAGA_EMBEDDING_PROVIDER"),
                model=os.environ.get("SAGA_EMBEDDING_MODEL", DEFAULT_EMBEDDING_MODEL),
                dimensions=_env_int("SAGA_EMBEDDING_DIMS", DEFAULT_EMBEDDING_DIMS),
                api_key=os.environ.get("SAGA_OPENAI_API_KEY") or os.environ.get("OPENAI_API_KEY"),
                base_url=os.environ.get("SAGA_EMBEDDING_BASE_URL"),
                ollama_url=os.environ.get("SAGA_OLLAMA_URL", "http://localhost:11434"),
                max_input_chars=_env_int("SAGA_EMBEDDING_MAX_CHARS", 8000),
                timeout_seconds=_env_float("SAGA_EMBEDDING_TIMEOUT", 30.0),
            ),
            vector=VectorConfig(
                path=os.environ.get("SAGA_QDRANT_PATH", os.path.join(data_dir, "qdrant")),
                url=os.environ.get("SAGA_QDRANT_URL"),
                location=os.environ.get("SAGA_QDRANT_LOCATION"),
                collection=os.environ.get("SAGA_QDRANT_COLLECTION", "saga_messages"),
            ),
            metadata=MetadataConfig(
                path=os.environ.get("SAGA_DB_PATH", os.path.join(data_dir, "context.db")),
                fts_tokenizer=os.environ.get(
                    "SAGA_FTS_TOKENIZER", "porter unicode61 remove_diacritics 2"
                ),
            ),
            search=SearchConfig(
                default_limit=_env_int("SAGA_SEARCH_LIMIT", 20),
                rrf_k=_env_int("SAGA_RRF_K", 60),
            ),
            context=ContextConfig(
                hot_tier_days=_env_int("SAGA_HOT_TIER_DAYS", 7),
                warm_tier_days=_env_int("SAGA_WARM_TIER_DAYS", 90),
            ),
            synthesis=SynthesisConfig(
                provider=os.environ.get("SAGA_SYNTHESIS_PROVIDER"),
                model=os.environ.get("SAGA_SYNTHESIS_MODEL"),
                api_key=os.environ.get("SAGA_SYNTHESIS_API_KEY"),
                base_url=os.environ.get("SAGA_SYNTHESIS_BASE_URL"),
                timeout_seconds=_env_float("SAGA_SYNTHESIS_TIMEOUT", 60.0),
            ),
            telemetry=TelemetryConfig(
                capture_content=os.environ.get("SAGA_OTEL_CAPTURE_CONTENT", "0").strip().lower()
                in ("1", "true", "yes", "on"),
                content_max_chars=min(_env_int("SAGA_OTEL_CAPTURE_CONTENT_MAX_CHARS", 1000), 16000),
            ),
            feature_flags=FeatureFlags.from_env(),
        )

    @classmethod
    def from_yaml(cls, path: str) -> "SagaConfig":
        """Load configuration from a YAML file."""
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except FileNotFoundError:
            logger.warning("Config file not found: %s; using environment", path)
            return cls.from_env()
        flags = data.pop("feature_flags", None)
        if isinstance(flags, dict):
            data["feature_flags"] = FeatureFlags(**flags)
        return cls(**data)

    def ensure_directories(self) -> None:
        """Create data directories if they don't exist."""
        Path(self.data_dir).mkdir(parents=True, exist_ok=True)
        Path(self.metadata.path).parent.mkdir(parents=True, exist_ok=True)
        if self.vector.url is None and self.vector.location is None:
            Path(self.vector.path).mkdir(parents=True, exist_ok=True)
