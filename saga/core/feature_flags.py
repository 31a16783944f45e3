"""
Saga Feature Flags
------------------
Env-driven feature toggles for optional capabilities.

Flags are read once at construction time from SAGA_<FLAG_NAME>=1|0 and kept
in a frozen dataclass so they cannot change mid-request.
"""

import os
import logging
from dataclasses import dataclass, asdict
from typing import Dict, Any

logger = logging.getLogger("Saga.Flags")

_PREFIX = "SAGA_"


def _env_bool(key: str, default: str = "0") -> bool:
    """Read a boolean flag from environment. '1'/'true'/'yes' → True."""
    val = os.environ.get(f"{_PREFIX}{key}", default).strip().lower()
    return val in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class FeatureFlags:
    """
    Immutable feature flag container.

    Default ON:
        - synthesis: LLM narrative synthesis of the assembled tiers
        - relevant_tier: task-hint driven hybrid search inside a context

    Default OFF:
        - otel_genai: OpenTelemetry spans around search / context / synthesis
    """

    synthesis: bool = True
    relevant_tier: bool = True
    otel_genai: bool = False

    @classmethod
    def from_env(cls) -> "FeatureFlags":
        flags = cls(
            synthesis=_env_bool("SYNTHESIS", "1"),
            relevant_tier=_env_bool("RELEVANT_TIER", "1"),
            otel_genai=_env_bool("OTEL_GENAI", "0"),
        )
        _log_active_flags(flags)
        return flags

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @property
    def active_flags(self) -> Dict[str, bool]:
        """Return only the flags that are currently enabled."""
        return {k: v for k, v in self.to_dict().items() if v}

    def is_enabled(self, flag_name: str) -> bool:
        """
        Check if a specific flag is enabled by name.

        Raises:
            AttributeError: If flag_name is not a valid flag.
        """
        if not hasattr(self, flag_name):
            raise AttributeError(
                f"Unknown feature flag: '{flag_name}'. "
                f"Valid flags: {list(self.to_dict().keys())}"
            )
        return getattr(self, flag_name)


def _log_active_flags(flags: FeatureFlags) -> None:
    active = flags.active_flags
    if active:
        logger.info("Active feature flags: %s", ", ".join(sorted(active.keys())))
    else:
        logger.info("No feature flags active")
