"""YAML configuration for the CLI and the service.

A file is taken from ``--config`` when given, otherwise the first of
``.vibescan/config.yaml`` and ``vibescan.yaml`` found in the working
directory. String values may reference the environment as ``${NAME}``.
Missing sections and keys keep their dataclass defaults.
"""

import os
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from vibescan.models.llm_config import LLMConfig

CONFIG_CANDIDATES = (Path(".vibescan") / "config.yaml", Path("vibescan.yaml"))

_ENV_REF = re.compile(r"\$\{([^}]+)\}")


@dataclass
class GitHubConfig:
    """Hosting provider access.

    Attributes:
        token: Server-side token used when the caller supplies none
        api_url: REST API base URL
        user_agent: User-Agent header sent upstream
        timeout: Per-request timeout in seconds
    """

    token: str | None = None
    api_url: str = "https://api.github.com"
    user_agent: str = "vibescan/0.1.0"
    timeout: float = 30.0

    def __post_init__(self) -> None:
        if not self.token:
            self.token = os.environ.get("GITHUB_TOKEN") or None
        if self.timeout <= 0:
            raise ValueError(f"github.timeout must be positive (got {self.timeout})")


@dataclass
class PricingConfig:
    """AI pricing model in USD per million tokens.

    Attributes:
        input_per_million: Price of prompt tokens
        output_per_million: Price of completion tokens
    """

    input_per_million: float = 0.14
    output_per_million: float = 0.28

    def __post_init__(self) -> None:
        if self.input_per_million < 0 or self.output_per_million < 0:
            raise ValueError("Pricing rates must not be negative")


@dataclass
class AnalysisConfig:
    """Orchestration limits.

    Attributes:
        max_files_per_tier: Maximum files analyzed per tier
        batch_size: Files fetched concurrently per batch
        batch_delay: Seconds to wait between fetch batches
        tree_cache_ttl: Seconds a cached file tree stays valid
        approval_timeout: Seconds to wait for approval (None waits forever)
    """

    max_files_per_tier: int = 20
    batch_size: int = 5
    batch_delay: float = 0.2
    tree_cache_ttl: float = 300.0
    approval_timeout: float | None = None

    def __post_init__(self) -> None:
        if self.max_files_per_tier <= 0:
            raise ValueError(
                f"max_files_per_tier must be positive (got {self.max_files_per_tier})"
            )
        if self.batch_size <= 0:
            raise ValueError(f"batch_size must be positive (got {self.batch_size})")
        if self.batch_delay < 0:
            raise ValueError(f"batch_delay must not be negative (got {self.batch_delay})")
        if self.tree_cache_ttl < 0:
            raise ValueError(f"tree_cache_ttl must not be negative (got {self.tree_cache_ttl})")
        if self.approval_timeout is not None and self.approval_timeout <= 0:
            raise ValueError(
                f"approval_timeout must be positive when set (got {self.approval_timeout})"
            )


@dataclass
class ServiceConfig:
    """HTTP service settings.

    Attributes:
        host: Bind address
        port: Bind port
        heartbeat_interval: Seconds of stream idleness before a heartbeat is sent
    """

    host: str = "0.0.0.0"
    port: int = 3001
    heartbeat_interval: float = 15.0

    def __post_init__(self) -> None:
        if self.heartbeat_interval <= 0:
            raise ValueError(
                f"heartbeat_interval must be positive (got {self.heartbeat_interval})"
            )


@dataclass
class VibescanConfig:
    """Top-level vibescan configuration.

    Attributes:
        github: Hosting provider access
        llm: AI completion backend
        pricing: Token pricing model
        analysis: Orchestration limits
        service: HTTP service settings
    """

    github: GitHubConfig = field(default_factory=GitHubConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    pricing: PricingConfig = field(default_factory=PricingConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    service: ServiceConfig = field(default_factory=ServiceConfig)

    loaded_from: Path | None = field(default=None, repr=False)

    @property
    def config_path(self) -> Path | None:
        return self.loaded_from


def substitute_env_vars(value: Any) -> Any:
    """Expand ``${NAME}`` references inside strings, dicts and lists.

    Raises:
        ValueError: A referenced variable is not set
    """
    if isinstance(value, dict):
        return {key: substitute_env_vars(item) for key, item in value.items()}
    if isinstance(value, list):
        return [substitute_env_vars(item) for item in value]
    if not isinstance(value, str):
        return value

    def lookup(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in os.environ:
            raise ValueError(f"Environment variable not set: {name}")
        return os.environ[name]

    return _ENV_REF.sub(lookup, value)


def find_config_file(start_path: Path | None = None) -> Path | None:
    """Return the first config candidate under ``start_path`` (default: cwd)."""
    base = (start_path or Path.cwd()).resolve()
    return next((base / c for c in CONFIG_CANDIDATES if (base / c).exists()), None)


def _build_section(section_cls: type, raw: dict[str, Any] | None) -> Any:
    # Null values and unknown keys fall back to the dataclass defaults
    known = {f.name for f in fields(section_cls)}
    return section_cls(**{k: v for k, v in (raw or {}).items() if k in known and v is not None})


_SECTIONS: dict[str, type] = {
    "github": GitHubConfig,
    "pricing": PricingConfig,
    "analysis": AnalysisConfig,
    "service": ServiceConfig,
}


def load_config_from_dict(data: dict[str, Any]) -> VibescanConfig:
    """Build a VibescanConfig from parsed YAML after env substitution."""
    data = substitute_env_vars(data)
    config = VibescanConfig()
    for name, section_cls in _SECTIONS.items():
        if name in data:
            setattr(config, name, _build_section(section_cls, data[name]))
    if "llm" in data:
        config.llm = LLMConfig.from_dict(data["llm"] or {})
    return config


def load_config(config_path: Path | None = None, auto_discover: bool = True) -> VibescanConfig:
    """Load the explicit file, else a discovered one, else defaults.

    Raises:
        FileNotFoundError: ``config_path`` was given but does not exist
    """
    if config_path is not None and not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    path = config_path or (find_config_file() if auto_discover else None)
    if path is None:
        return VibescanConfig()

    config = load_config_from_dict(yaml.safe_load(path.read_text(encoding="utf-8")) or {})
    config.loaded_from = path
    return config


def create_default_config() -> str:
    """Commented YAML written by `vibescan init`, matching the defaults above."""
    return '''# vibescan configuration

# Hosting provider access
github:
  # token: "${GITHUB_TOKEN}"   # raises rate limits, required for private repos
  api_url: "https://api.github.com"
  timeout: 30

# AI completion backend (callers pass their own API key per run)
llm:
  provider: "deepseek"   # deepseek, openai, claude, gemini, ollama
  model: "deepseek-chat"
  temperature: 0.3
  max_tokens: 8000       # lower values truncate the JSON findings

# USD per million tokens
pricing:
  input_per_million: 0.14
  output_per_million: 0.28

# Orchestration limits
analysis:
  max_files_per_tier: 20
  batch_size: 5
  batch_delay: 0.2
  tree_cache_ttl: 300
  # approval_timeout: 3600   # seconds; unset waits for approval forever

# HTTP service
service:
  host: "0.0.0.0"
  port: 3001
  heartbeat_interval: 15
'''
