from saga.context.assembler import TieredContextAssembler
from saga.context.generation import (
    AnthropicGenerationCapability,
    GenerationCapability,
    OpenAIGenerationCapability,
    create_generation_capability,
)
from saga.context.service import ContextService
from saga.context.synthesis import SYNTHESIS_SCHEMA, SynthesisOrchestrator, build_synthesis_prompt

__all__ = [
    "TieredContextAssembler",
    "GenerationCapability",
    "OpenAIGenerationCapability",
    "AnthropicGenerationCapability",
    "create_generation_capability",
    "ContextService",
    "SYNTHESIS_SCHEMA",
    "SynthesisOrchestrator",
    "build_synthesis_prompt",
]
