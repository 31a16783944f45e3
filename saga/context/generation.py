"""
Saga Generation Capability
--------------------------
The narrow interface the synthesis step depends on:

    generate(prompt, schema, strict=True) -> dict

The schema is a plain JSON Schema dict, passed through unchanged. Backends:

- OpenAI-compatible chat completions with a ``json_schema`` response format
  (works for OpenAI and local OpenAI-compatible servers)
- Anthropic messages with a single forced tool whose ``input_schema`` is the
  schema

Any API error, timeout, refusal or non-JSON output raises GenerationError.
"""

import asyncio
import json
import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from anthropic import AsyncAnthropic
from openai import AsyncOpenAI

from saga.core.config import SynthesisConfig
from saga.core.errors import GenerationError

logger = logging.getLogger("Saga.Generation")


class GenerationCapability(ABC):
    """Schema-constrained text generation."""

    name = "base"

    def __init__(self, timeout_seconds: float = 60.0):
        self.timeout_seconds = timeout_seconds

    async def generate(
        self,
        prompt: str,
        schema: Dict[str, Any],
        *,
        schema_name: str = "structured_output",
        strict: bool = True,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        try:
            return await asyncio.wait_for(
                self._generate(prompt, schema, schema_name=schema_name, strict=strict),
                timeout=timeout or self.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise GenerationError(
                f"{self.name} generation timed out after {timeout or self.timeout_seconds}s"
            ) from e
        except GenerationError:
            raise
        except Exception as e:
            raise GenerationError(f"{self.name} generation failed: {e}") from e

    @abstractmethod
    async def _generate(
        self,
        prompt: str,
        schema: Dict[str, Any],
        *,
        schema_name: str,
        strict: bool,
    ) -> Dict[str, Any]:
        """Call the backend and return the parsed JSON object."""

    async def close(self) -> None:
        return None


class OpenAIGenerationCapability(GenerationCapability):
    name = "openai"

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: Optional[str] = None,
        max_tokens: int = 1500,
        timeout_seconds: float = 60.0,
    ):
        super().__init__(timeout_seconds)
        self.model = model
        self.max_tokens = max_tokens
        self._client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout_seconds)
        logger.info("OpenAI generation client ready: %s", model)

    async def _generate(
        self,
        prompt: str,
        schema: Dict[str, Any],
        *,
        schema_name: str,
        strict: bool,
    ) -> Dict[str, Any]:
        response = await self._client.chat.completions.create(
            model=self.model,
            max_tokens=self.max_tokens,
            messages=[{"role": "user", "content": prompt}],
            response_format={
                "type": "json_schema",
                "json_schema": {"name": schema_name, "schema": schema, "strict": strict},
            },
        )
        message = response.choices[0].message
        if getattr(message, "refusal", None):
            raise GenerationError(f"Model refused: {message.refusal}")
        if not message.content:
            raise GenerationError("Model returned no content")
        try:
            parsed = json.loads(message.content)
        except json.JSONDecodeError as e:
            raise GenerationError(f"Model returned invalid JSON: {e}") from e
        if not isinstance(parsed, dict):
            raise GenerationError("Model returned JSON that is not an object")
        return parsed

    async def close(self) -> None:
        await self._client.close()


class AnthropicGenerationCapability(GenerationCapability):
    name = "anthropic"

    def __init__(
        self,
        api_key: str,
        model: str = "claude-haiku-4-5-20251001",
        max_tokens: int = 1500,
        timeout_seconds: float = 60.0,
    ):
        super().__init__(timeout_seconds)
        self.model = model
        self.max_tokens = max_tokens
        self._client = AsyncAnthropic(api_key=api_key, timeout=timeout_seconds)
        logger.info("Anthropic generation client ready: %s", model)

    async def _generate(
        self,
        prompt: str,
        schema: Dict[str, Any],
        *,
        schema_name: str,
        strict: bool,
    ) -> Dict[str, Any]:
        message = await self._client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            messages=[{"role": "user", "content": prompt}],
            tools=[
                {
                    "name": schema_name,
                    "description": "Return the result as structured data.",
                    "input_schema": schema,
                }
            ],
            tool_choice={"type": "tool", "name": schema_name},
        )
        for block in message.content:
            if block.type == "tool_use" and block.name == schema_name:
                if not isinstance(block.input, dict):
                    raise GenerationError("Tool input is not an object")
                return block.input
        raise GenerationError("Model did not return the structured tool call")

    async def close(self) -> None:
        await self._client.close()


def create_generation_capability(config: SynthesisConfig) -> Optional[GenerationCapability]:
    """
    Build the configured backend, or None when no API key is available.

    Without a capability every synthesis takes the degraded path.
    """
    if config.provider == "anthropic":
        api_key = config.api_key or os.getenv("ANTHROPIC_API_KEY")
        if not api_key:
            logger.info("Synthesis disabled: ANTHROPIC_API_KEY not configured")
            return None
        return AnthropicGenerationCapability(
            api_key=api_key,
            model=config.model,
            max_tokens=config.max_tokens,
            timeout_seconds=config.timeout_seconds,
        )

    api_key = config.api_key or os.getenv("OPENAI_API_KEY")
    if not api_key:
        logger.info("Synthesis disabled: OPENAI_API_KEY not configured")
        return None
    return OpenAIGenerationCapability(
        api_key=api_key,
        model=config.model,
        base_url=config.base_url,
        max_tokens=config.max_tokens,
        timeout_seconds=config.timeout_seconds,
    )
