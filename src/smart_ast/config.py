"""Analyzer configuration models and config-file loading."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

CONFIG_FILE_NAMES = (
    ".smart-ast.json",
    ".smart-ast.config.json",
    str(Path("config") / "smart-ast.json"),
)

DEFAULT_EXCLUDE_PATTERNS = (
    "node_modules/**",
    ".git/**",
    "dist/**",
    "build/**",
    "coverage/**",
    ".next/**",
    ".nuxt/**",
    "vendor/**",
    "*.min.js",
    "*.bundle.js",
)

AnalysisDepth = Literal["standard", "deep", "comprehensive"]
AIProvider = Literal["mock", "gemini", "claude"]


class CacheConfig(BaseModel):
    """Result cache settings."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=True, description="Reuse results for unchanged file sets")
    ttl_seconds: float = Field(default=3600.0, gt=0, description="Entry lifetime in seconds")
    directory: str = Field(default=".smart-ast-cache", description="Cache directory")


class RetryConfig(BaseModel):
    """Retry/backoff settings for analysis tasks."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, ge=1, le=10)
    base_delay: float = Field(default=1.0, ge=0)
    max_delay: float = Field(default=30.0, ge=0)
    jitter: bool = Field(default=True)


class CircuitBreakerConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    failure_threshold: int = Field(default=5, ge=1)
    timeout_seconds: float = Field(default=60.0, gt=0)


class AIConfig(BaseModel):
    """External AI CLI settings. ``mock`` never spawns a process."""

    model_config = ConfigDict(frozen=True)

    provider: AIProvider = Field(default="mock")
    timeout_seconds: float = Field(default=300.0, gt=0)
    model: str = Field(default="default")


class OutputConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    directory: str = Field(default="./smart-ast-output")
    formats: list[Literal["json", "markdown"]] = Field(
        default_factory=lambda: ["json", "markdown"]
    )


class AnalyzerConfig(BaseModel):
    """Immutable settings for one pipeline run, built once and passed down."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(default=".", description="Project root to analyze")
    analysis_type: str | list[str] = Field(
        default="full", description="Preset name or explicit list of task types"
    )
    analysis_depth: AnalysisDepth = Field(default="standard")
    max_files: int = Field(default=500, ge=1, le=10000)
    max_file_size: int = Field(default=5 * 1024 * 1024, gt=0, description="Bytes")
    timeout_seconds: float = Field(default=300.0, ge=10, le=3600)
    parallel: bool = Field(default=True)
    max_concurrent_tasks: int | None = Field(default=None, ge=1)
    include: list[str] = Field(default_factory=list)
    exclude: list[str] = Field(default_factory=list)
    save_state: bool = Field(default=False)
    verbose: bool = Field(default=False)

    cache: CacheConfig = Field(default_factory=CacheConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    circuit_breaker: CircuitBreakerConfig = Field(default_factory=CircuitBreakerConfig)
    ai: AIConfig = Field(default_factory=AIConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)


def find_config_file(base_dir: Path | str = ".") -> Path | None:
    """Return the first known config file present under ``base_dir``."""
    base = Path(base_dir)
    for name in CONFIG_FILE_NAMES:
        candidate = base / name
        if candidate.is_file():
            return candidate
    return None


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``. Lists are replaced."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _read_config_file(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Failed to load config file %s: %s", path, e)
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring config file %s: top level must be an object", path)
        return {}
    return data


def load_config(config_path: Path | str | None = None, **overrides: Any) -> AnalyzerConfig:
    """Build an AnalyzerConfig from defaults, an optional file and overrides.

    Args:
        config_path: Explicit config file. When None, the known file names
            are looked up under the ``path`` override (or the CWD).
        **overrides: Field values that win over the file, e.g. from the CLI.
            ``None`` values are ignored.

    Returns:
        The validated, frozen configuration.

    Raises:
        pydantic.ValidationError: A merged value is out of range.
    """
    cleaned = {k: v for k, v in overrides.items() if v is not None}

    path = Path(config_path) if config_path else find_config_file(cleaned.get("path", "."))
    file_values: dict[str, Any] = {}
    if path is not None:
        file_values = _read_config_file(path)
        if file_values:
            logger.debug("Loaded configuration from %s", path)

    return AnalyzerConfig.model_validate(deep_merge(file_values, cleaned))
