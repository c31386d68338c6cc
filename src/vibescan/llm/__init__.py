"""LLM integration module for vibescan.

Provides a streaming LiteLLM client, the tier prompts, and the analysis
engine that turns a tier's files into findings.
"""

from vibescan.llm.client import LLMClient, StreamDelta, TokenUsage
from vibescan.llm.engine import (
    AnalysisEngine,
    ChunkEvent,
    EngineResult,
    parse_findings,
    strip_fence,
)
from vibescan.llm.prompts import (
    SYSTEM_PROMPTS,
    build_user_message,
    format_files_for_prompt,
    get_system_prompt,
)
from vibescan.models.llm_config import VALID_PROVIDERS, LLMConfig

__all__ = [
    "AnalysisEngine",
    "ChunkEvent",
    "EngineResult",
    "LLMClient",
    "LLMConfig",
    "StreamDelta",
    "SYSTEM_PROMPTS",
    "TokenUsage",
    "VALID_PROVIDERS",
    "build_user_message",
    "format_files_for_prompt",
    "get_system_prompt",
    "parse_findings",
    "strip_fence",
]
