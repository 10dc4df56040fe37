"""Tests for YAML configuration loading."""

from pathlib import Path

import pytest

from archmap.config import (
    CONFIG_ENV_VAR,
    DEFAULT_CONFIG_PATH,
    PipelineConfig,
    apply_overrides,
    config_from_mapping,
    load_pipeline_config,
    resolve_config_path,
)
from archmap.errors import ConfigError


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "archmap.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_bundled_config_matches_builtin_defaults(monkeypatch):
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    assert DEFAULT_CONFIG_PATH.name == "archmap.yaml"
    assert load_pipeline_config() == PipelineConfig()


def test_sections_are_applied(tmp_path):
    path = _write(
        tmp_path,
        """
pipeline:
  max_unit_size: 100
  max_chunk_count: 4
  max_concurrent: 5
  per_unit_timeout_s: 30
  enable_render: false
ollama:
  base_url: http://gpu-box:11434/
  analyzer_model: qwen2.5-coder:7b
prompts:
  mermaid_system: draw it
""",
    )
    config = load_pipeline_config(str(path))
    assert config.constraints.max_unit_size == 100
    assert config.constraints.max_unit_count == 4
    assert config.policy.max_concurrent == 5
    assert config.policy.per_unit_timeout_s == 30.0
    assert config.enable_render is False
    assert config.ollama.base_url == "http://gpu-box:11434"
    assert config.ollama.analyzer_model == "qwen2.5-coder:7b"
    assert config.prompts == {"mermaid_system": "draw it"}


def test_env_var_names_the_file(tmp_path, monkeypatch):
    path = _write(tmp_path, "pipeline:\n  chunking_threshold: 42\n")
    monkeypatch.setenv(CONFIG_ENV_VAR, str(path))
    assert resolve_config_path() == (path.resolve(), True)
    assert load_pipeline_config().chunking_threshold == 42


def test_explicit_missing_file_is_an_error(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_pipeline_config(str(tmp_path / "nope.yaml"))


def test_empty_file_means_defaults(tmp_path):
    assert load_pipeline_config(str(_write(tmp_path, ""))) == PipelineConfig()


@pytest.mark.parametrize(
    "text, message",
    [
        ("- a\n- b\n", "mapping at top level"),
        ("pipeline: 3\n", 'section "pipeline"'),
        ("pipeline:\n  max_concurrent: three\n", '"max_concurrent" must be an integer'),
        ("pipeline:\n  max_attempts: 0\n", '"max_attempts" must be greater than zero'),
        ("pipeline:\n  enable_chunking: 1\n", '"enable_chunking" must be a boolean'),
        ("pipeline:\n  bogus: 1\n", 'Unknown pipeline option "bogus"'),
        ("ollama:\n  model: x\n", 'Unknown ollama option "model"'),
        ("prompts:\n  mermaid_system: ''\n", 'Prompt "mermaid_system"'),
        ("prompts:\n  other_system: hi\n", 'Unknown prompt "other_system"'),
        ("pipeline: [unclosed\n", "Failed to read config"),
    ],
)
def test_invalid_values_name_the_key(tmp_path, text, message):
    with pytest.raises(ConfigError, match=message):
        load_pipeline_config(str(_write(tmp_path, text)))


def test_overrides_skip_none_and_validate():
    base = config_from_mapping({})
    config = apply_overrides(base, {"max_attempts": 4, "min_unit_size": None, "content_aware": False})
    assert config.policy.max_attempts == 4
    assert config.constraints.min_unit_size == base.constraints.min_unit_size
    assert config.content_aware is False
    with pytest.raises(ConfigError):
        apply_overrides(base, {"per_unit_timeout_s": -1})
