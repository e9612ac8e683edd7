"""Configuration management for storyctx.

Parses storyctx.toml files with support for:
- Context window and storage compaction limits
- Selection cache TTL
- Compression pipeline generation settings
- Recorder log capacities and alert thresholds
- LLM provider configuration bound to compute tiers
- Telemetry export

Example storyctx.toml structure:

    [context]
    max_context_tokens = 8000
    compression_threshold = 6000

    [cache]
    ttl_seconds = 300

    [llm.flash]
    api_base = "https://api.example.com/v1"
    api_key = "${FLASH_API_KEY}"
    model = "flash"
    tier = "standard"

Note: Use proper TOML tables (not string-encoded Python dictionaries).
"""

from __future__ import annotations

import logging
import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from platformdirs import user_config_dir

from .complexity.types import ComputeTier
from .errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "storyctx.toml"
APP_NAME = "storyctx"


def _load_env_file(env_path: Path) -> None:
    """Load environment variables from .env file."""
    if not env_path.exists():
        return

    try:
        with open(env_path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line or line.startswith("#"):
                    continue

                # KEY=VALUE, KEY='VALUE' or KEY="VALUE"
                if "=" in line:
                    key, _, value = line.partition("=")
                    key = key.strip()
                    value = value.strip()

                    if value and value[0] in ('"', "'") and value[-1] == value[0]:
                        value = value[1:-1]

                    # Existing environment wins
                    if key and key not in os.environ:
                        os.environ[key] = value
    except OSError as e:
        logger.warning("[storyctx] Failed to load .env file %s: %s", env_path, e)


_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}|\$([A-Za-z_][A-Za-z0-9_]*)")


def _expand_env_vars(value: Any) -> Any:
    """Recursively expand ${VAR} and $VAR environment variable references."""
    if isinstance(value, str):

        def replace_var(match):
            var_name = match.group(1) or match.group(2)
            return os.environ.get(var_name, match.group(0))

        return _ENV_PATTERN.sub(replace_var, value)
    elif isinstance(value, dict):
        return {k: _expand_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_expand_env_vars(item) for item in value]
    else:
        return value


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e


@dataclass
class ContextSettings:
    """Context window and layer store limits."""

    max_context_tokens: int = 8000
    compression_threshold: int = 6000
    conversation_memory_limit: int = 20
    prune_keep_ratio: float = 0.7


@dataclass
class CacheSettings:
    """Selection cache configuration."""

    ttl_seconds: float = 300.0


@dataclass
class CompressionSettings:
    """Compression pipeline generation settings."""

    generation_timeout_sec: float = 20.0
    section_summary_tokens: int = 200
    temperature: float = 0.3


@dataclass
class RecorderSettings:
    """Rolling log capacities and alert thresholds for the performance recorder."""

    tier_capacity: int = 100
    campaign_capacity: int = 1000
    effectiveness_capacity: int = 100
    trend_window: int = 10
    alerts_enabled: bool = True
    max_response_time_ms: float = 2000.0
    max_context_size: int = 8000
    max_error_rate: float = 0.05
    min_cache_hit_rate: float = 0.5
    alert_min_samples: int = 10


@dataclass
class TelemetrySettings:
    """OpenTelemetry export configuration."""

    enabled: bool = False
    service_name: str = "storyctx"
    otlp_endpoint: Optional[str] = None


@dataclass
class LLMProviderConfig:
    """LLM provider configuration."""

    name: str  # e.g., "flash", "pro", "local"
    api_key: Optional[str] = None
    api_base: Optional[str] = None
    model: Optional[str] = None
    max_tokens: int = 2048
    temperature: float = 0.7
    timeout_sec: float = 30
    tier: ComputeTier = ComputeTier.STANDARD


@dataclass
class EngineConfig:
    """Complete storyctx configuration."""

    context: ContextSettings = field(default_factory=ContextSettings)
    cache: CacheSettings = field(default_factory=CacheSettings)
    compression: CompressionSettings = field(default_factory=CompressionSettings)
    recorder: RecorderSettings = field(default_factory=RecorderSettings)
    telemetry: TelemetrySettings = field(default_factory=TelemetrySettings)

    # LLM providers (key = provider name, value = config)
    llm_providers: dict[str, LLMProviderConfig] = field(default_factory=dict)

    source: Optional[Path] = None

    @classmethod
    def defaults(cls) -> EngineConfig:
        """Defaults with environment overrides applied."""
        config = cls()
        config.context.max_context_tokens = _env_int(
            "MAX_CONTEXT_LENGTH", config.context.max_context_tokens
        )
        config.context.compression_threshold = _env_int(
            "CONTEXT_COMPRESSION_THRESHOLD", config.context.compression_threshold
        )
        return config

    @classmethod
    def load(cls, path: Path = Path(CONFIG_FILENAME)) -> EngineConfig:
        """Load configuration from a storyctx.toml file.

        Loads the first .env file found beside the file, in its parent
        directories or in the current working directory, then expands
        ${VAR} references in the config.

        Raises:
            ConfigError: The file cannot be parsed or holds invalid values
        """
        if not path.exists():
            return cls.defaults()

        env_search_paths = [path.parent / ".env", Path.cwd() / ".env"]
        current = path.parent
        while current != current.parent:
            env_search_paths.append(current / ".env")
            current = current.parent

        for env_path in env_search_paths:
            if env_path.exists():
                _load_env_file(env_path)
                break

        try:
            raw_data = tomllib.loads(path.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise ConfigError(f"Failed to parse {path}: {e}") from e
        data = _expand_env_vars(raw_data)

        config = cls.defaults()
        config.source = path

        try:
            if "context" in data:
                ctx = data["context"]
                config.context = ContextSettings(
                    max_context_tokens=int(
                        ctx.get("max_context_tokens", config.context.max_context_tokens)
                    ),
                    compression_threshold=int(
                        ctx.get("compression_threshold", config.context.compression_threshold)
                    ),
                    conversation_memory_limit=int(ctx.get("conversation_memory_limit", 20)),
                    prune_keep_ratio=float(ctx.get("prune_keep_ratio", 0.7)),
                )

            if "cache" in data:
                config.cache = CacheSettings(
                    ttl_seconds=float(data["cache"].get("ttl_seconds", 300.0))
                )

            if "compression" in data:
                comp = data["compression"]
                config.compression = CompressionSettings(
                    generation_timeout_sec=float(comp.get("generation_timeout_sec", 20.0)),
                    section_summary_tokens=int(comp.get("section_summary_tokens", 200)),
                    temperature=float(comp.get("temperature", 0.3)),
                )

            if "recorder" in data:
                rec = data["recorder"]
                config.recorder = RecorderSettings(
                    tier_capacity=int(rec.get("tier_capacity", 100)),
                    campaign_capacity=int(rec.get("campaign_capacity", 1000)),
                    effectiveness_capacity=int(rec.get("effectiveness_capacity", 100)),
                    trend_window=int(rec.get("trend_window", 10)),
                    alerts_enabled=bool(rec.get("alerts_enabled", True)),
                    max_response_time_ms=float(rec.get("max_response_time_ms", 2000.0)),
                    max_context_size=int(rec.get("max_context_size", 8000)),
                    max_error_rate=float(rec.get("max_error_rate", 0.05)),
                    min_cache_hit_rate=float(rec.get("min_cache_hit_rate", 0.5)),
                    alert_min_samples=int(rec.get("alert_min_samples", 10)),
                )

            if "telemetry" in data:
                tel = data["telemetry"]
                config.telemetry = TelemetrySettings(
                    enabled=bool(tel.get("enabled", False)),
                    service_name=tel.get("service_name", "storyctx"),
                    otlp_endpoint=tel.get("otlp_endpoint"),
                )

            for provider_name, provider_data in data.get("llm", {}).items():
                if not isinstance(provider_data, dict):
                    logger.warning("[storyctx] Skipping non-table [llm.%s]", provider_name)
                    continue

                config.llm_providers[provider_name] = LLMProviderConfig(
                    name=provider_name,
                    api_key=provider_data.get("api_key"),
                    api_base=provider_data.get("api_base"),
                    model=provider_data.get("model"),
                    max_tokens=int(provider_data.get("max_tokens", 2048)),
                    temperature=float(provider_data.get("temperature", 0.7)),
                    timeout_sec=float(provider_data.get("timeout_sec", 30)),
                    tier=ComputeTier(provider_data.get("tier", ComputeTier.STANDARD.value)),
                )
        except (TypeError, ValueError, AttributeError) as e:
            raise ConfigError(f"Invalid value in {path}: {e}") from e

        config.validate()
        return config

    def validate(self) -> None:
        """Raise ConfigError for values the engine cannot run with."""
        if self.context.max_context_tokens <= 0:
            raise ConfigError("context.max_context_tokens must be positive")
        if self.context.compression_threshold <= 0:
            raise ConfigError("context.compression_threshold must be positive")
        if not 0.0 < self.context.prune_keep_ratio <= 1.0:
            raise ConfigError("context.prune_keep_ratio must be in (0, 1]")
        if self.cache.ttl_seconds < 0:
            raise ConfigError("cache.ttl_seconds must not be negative")

    def to_env_vars(self) -> dict[str, str]:
        """Convert configuration to environment variables."""
        env = {
            "MAX_CONTEXT_LENGTH": str(self.context.max_context_tokens),
            "CONTEXT_COMPRESSION_THRESHOLD": str(self.context.compression_threshold),
            "STORYCTX_CACHE_TTL": str(self.cache.ttl_seconds),
        }

        if self.telemetry.enabled:
            env["OTEL_SERVICE_NAME"] = self.telemetry.service_name
            if self.telemetry.otlp_endpoint:
                env["OTEL_EXPORTER_OTLP_ENDPOINT"] = self.telemetry.otlp_endpoint

        for provider in self.llm_providers.values():
            prefix = f"STORYCTX_LLM_{provider.tier.value.upper()}"
            if provider.model:
                env[f"{prefix}_MODEL"] = provider.model
            if provider.api_base:
                env[f"{prefix}_API_BASE"] = provider.api_base

        return env


def load_engine_config(start_dir: Path = Path(".")) -> EngineConfig:
    """Load configuration, searching up from start_dir then the user config dir."""
    current = start_dir.resolve()
    while current != current.parent:
        config_path = current / CONFIG_FILENAME
        if config_path.exists():
            return EngineConfig.load(config_path)
        current = current.parent

    user_path = Path(user_config_dir(APP_NAME)) / CONFIG_FILENAME
    if user_path.exists():
        return EngineConfig.load(user_path)

    return EngineConfig.defaults()


__all__ = [
    "CacheSettings",
    "CompressionSettings",
    "ContextSettings",
    "EngineConfig",
    "LLMProviderConfig",
    "RecorderSettings",
    "TelemetrySettings",
    "load_engine_config",
]
