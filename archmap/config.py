"""Load and validate the YAML configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .errors import ConfigError
from .prompts import DEFAULT_PROMPTS

CONFIG_ENV_VAR = "ARCHMAP_CONFIG"
DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "archmap.yaml"


@dataclass(frozen=True)
class ChunkingConstraints:
    """Sizing rules for splitting an item list into work units."""
    max_unit_size: int = 200
    max_unit_count: int = 10
    min_unit_size: int = 50


@dataclass(frozen=True)
class SchedulerPolicy:
    """Concurrency, timeout and retry policy for one batch."""
    max_concurrent: int = 3
    per_unit_timeout_s: float = 120.0
    max_attempts: int = 2
    backoff_base_s: float = 1.0


@dataclass(frozen=True)
class OllamaSettings:
    """Connection and model settings for the Ollama-backed collaborators."""
    base_url: str = "http://localhost:11434"
    analyzer_model: str = "codellama:13b"
    chunking_model: str = "llama3"
    aggregator_model: str = "llama3"
    diagram_model: str = "llama3"
    analyzer_temperature: float = 0.1
    chunking_temperature: float = 0.1
    aggregator_temperature: float = 0.2
    diagram_temperature: float = 0.3
    timeout_s: int = 600
    num_ctx: int = 16384
    num_predict: int = 4096
    repair_json: bool = True


@dataclass(frozen=True)
class PipelineConfig:
    """Explicit configuration handed to the orchestrator."""
    constraints: ChunkingConstraints = field(default_factory=ChunkingConstraints)
    policy: SchedulerPolicy = field(default_factory=SchedulerPolicy)
    ollama: OllamaSettings = field(default_factory=OllamaSettings)
    prompts: Dict[str, str] = field(default_factory=dict)
    chunking_threshold: int = 500
    enable_chunking: bool = True
    enable_render: bool = True
    content_aware: bool = True


# Flat option name -> (section attribute, field name, type).
PIPELINE_OPTIONS: Dict[str, tuple] = {
    "max_unit_size": ("constraints", "max_unit_size", int),
    "max_chunk_count": ("constraints", "max_unit_count", int),
    "min_unit_size": ("constraints", "min_unit_size", int),
    "max_concurrent": ("policy", "max_concurrent", int),
    "per_unit_timeout_s": ("policy", "per_unit_timeout_s", float),
    "max_attempts": ("policy", "max_attempts", int),
    "backoff_base_s": ("policy", "backoff_base_s", float),
    "chunking_threshold": (None, "chunking_threshold", int),
    "enable_chunking": (None, "enable_chunking", bool),
    "enable_render": (None, "enable_render", bool),
    "content_aware": (None, "content_aware", bool),
}

OLLAMA_OPTIONS: Dict[str, type] = {
    "base_url": str,
    "analyzer_model": str,
    "chunking_model": str,
    "aggregator_model": str,
    "diagram_model": str,
    "analyzer_temperature": float,
    "chunking_temperature": float,
    "aggregator_temperature": float,
    "diagram_temperature": float,
    "timeout_s": int,
    "num_ctx": int,
    "num_predict": int,
    "repair_json": bool,
}

# Options that must be strictly positive.
_POSITIVE = {
    "max_unit_size",
    "max_chunk_count",
    "max_concurrent",
    "per_unit_timeout_s",
    "max_attempts",
}


def _load_config(path: Path) -> Dict[str, Any]:
    """Read the YAML config from disk and validate its top-level type."""
    if not path.exists():
        raise ConfigError(f'Config file not found: "{path}"')
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except Exception as e:
        raise ConfigError(f'Failed to read config "{path}": {e}') from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f'Config file "{path}" must be a YAML mapping at top level')
    return data


def resolve_config_path(explicit: Optional[str] = None) -> tuple[Path, bool]:
    """Resolve the config path; the flag tells whether it was requested explicitly."""
    if explicit:
        return Path(explicit).expanduser().resolve(), True
    override = os.environ.get(CONFIG_ENV_VAR, "").strip()
    if override:
        return Path(override).expanduser().resolve(), True
    return DEFAULT_CONFIG_PATH, False


def _coerce(name: str, value: Any, kind: type) -> Any:
    """Validate one option value against its expected type."""
    if kind is bool:
        if not isinstance(value, bool):
            raise ConfigError(f'Config option "{name}" must be a boolean')
        return value
    if kind is int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigError(f'Config option "{name}" must be an integer')
    elif kind is float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigError(f'Config option "{name}" must be a number')
        value = float(value)
    elif kind is str:
        if not isinstance(value, str) or not value.strip():
            raise ConfigError(f'Config option "{name}" must be a non-empty string')
        value = value.strip()
    if name in _POSITIVE and value <= 0:
        raise ConfigError(f'Config option "{name}" must be greater than zero')
    if kind is int and value < 0:
        raise ConfigError(f'Config option "{name}" must not be negative')
    return value


def _section(data: Mapping[str, Any], name: str) -> Dict[str, Any]:
    """Fetch an optional config section and validate its type."""
    value = data.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f'Config section "{name}" must be a mapping')
    return value


def apply_overrides(config: PipelineConfig, options: Mapping[str, Any]) -> PipelineConfig:
    """Return a copy of ``config`` with flat pipeline options applied."""
    constraints = config.constraints
    policy = config.policy
    top: Dict[str, Any] = {}
    for name, value in options.items():
        if value is None:
            continue
        if name not in PIPELINE_OPTIONS:
            raise ConfigError(f'Unknown pipeline option "{name}"')
        target, attr, kind = PIPELINE_OPTIONS[name]
        value = _coerce(name, value, kind)
        if target == "constraints":
            constraints = replace(constraints, **{attr: value})
        elif target == "policy":
            policy = replace(policy, **{attr: value})
        else:
            top[attr] = value
    return replace(config, constraints=constraints, policy=policy, **top)


def config_from_mapping(data: Mapping[str, Any]) -> PipelineConfig:
    """Build a PipelineConfig from a parsed YAML mapping."""
    pipeline = _section(data, "pipeline")
    ollama_raw = _section(data, "ollama")
    prompts_raw = _section(data, "prompts")

    ollama_values: Dict[str, Any] = {}
    for name, value in ollama_raw.items():
        kind = OLLAMA_OPTIONS.get(name)
        if kind is None:
            raise ConfigError(f'Unknown ollama option "{name}"')
        ollama_values[name] = _coerce(name, value, kind)
    if "base_url" in ollama_values:
        ollama_values["base_url"] = ollama_values["base_url"].rstrip("/")

    prompts: Dict[str, str] = {}
    for key, text in prompts_raw.items():
        if key not in DEFAULT_PROMPTS:
            raise ConfigError(f'Unknown prompt "{key}"')
        if not isinstance(text, str) or not text.strip():
            raise ConfigError(f'Prompt "{key}" must be a non-empty string')
        prompts[str(key)] = text

    base = PipelineConfig(ollama=OllamaSettings(**ollama_values), prompts=prompts)
    return apply_overrides(base, pipeline)


def load_pipeline_config(
    path: Optional[str] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> PipelineConfig:
    """Load config from YAML (or built-in defaults) and apply flat overrides."""
    config_path, explicit = resolve_config_path(path)
    if config_path.exists() or explicit:
        data = _load_config(config_path)
    else:
        data = {}
    config = config_from_mapping(data)
    if overrides:
        config = apply_overrides(config, overrides)
    return config
