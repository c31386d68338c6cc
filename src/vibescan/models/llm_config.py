"""Completion backend settings.

Only the backend is configured here. The API key belongs to whoever starts a
run and is passed per call, so it never lands in config files or history.
"""

from dataclasses import asdict, dataclass, fields
from typing import Any

# LiteLLM routing prefix per provider
_LITELLM_PREFIXES = {
    "deepseek": "deepseek",
    "openai": "openai",
    "claude": "anthropic",
    "gemini": "gemini",
    "ollama": "ollama",
}
VALID_PROVIDERS = frozenset(_LITELLM_PREFIXES)

# Room for a full JSON findings document from one tier
DEFAULT_MAX_TOKENS = 8000

OLLAMA_DEFAULT_BASE = "http://localhost:11434"


@dataclass
class LLMConfig:
    """Provider, model and sampling limits for analysis calls.

    Attributes:
        provider: One of VALID_PROVIDERS
        model: Provider-side model name, e.g. "deepseek-chat"
        api_base: Endpoint override; Ollama falls back to the local daemon
        temperature: Sampling temperature in [0, 2]
        max_tokens: Output ceiling for a single tier
        request_timeout: Seconds before a streaming call is abandoned
    """

    provider: str = "deepseek"
    model: str = "deepseek-chat"
    api_base: str | None = None
    temperature: float = 0.3
    max_tokens: int = DEFAULT_MAX_TOKENS
    request_timeout: float = 600.0

    def __post_init__(self) -> None:
        self.provider = self.provider.strip().lower()
        if self.provider not in _LITELLM_PREFIXES:
            raise ValueError(
                f"Invalid provider '{self.provider}'. Must be one of: {sorted(VALID_PROVIDERS)}"
            )

        self.model = (self.model or "").strip()
        if not self.model:
            raise ValueError("Model identifier cannot be empty")

        if self.temperature < 0.0 or self.temperature > 2.0:
            raise ValueError(f"Temperature must be between 0 and 2. Got: {self.temperature}")
        for name in ("max_tokens", "request_timeout"):
            value = getattr(self, name)
            if value <= 0:
                raise ValueError(f"{name} must be positive. Got: {value}")

        if self.provider == "ollama":
            self.api_base = self.api_base or OLLAMA_DEFAULT_BASE

    def validate(self) -> list[str]:
        """Non-fatal problems worth printing before a run."""
        problems = []
        if self.max_tokens < 4000:
            problems.append(
                f"max_tokens is set to {self.max_tokens}, which may truncate the JSON findings"
            )
        if self.api_base and not self.api_base.startswith(("http://", "https://")):
            problems.append(f"api_base '{self.api_base}' does not start with http:// or https://")
        return problems

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LLMConfig":
        """Build from a config-file mapping, ignoring unknown or null keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known and v is not None})

    def get_litellm_model_name(self) -> str:
        return f"{_LITELLM_PREFIXES[self.provider]}/{self.model}"
