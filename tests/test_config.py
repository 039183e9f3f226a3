"""Tests for settings loading and validation."""

import os
import tempfile

import pytest

from tutor.config import TutorSettings, load_settings
from tutor.errors import ConfigError
from tutor.llm.optimizer import ModelType


def write_config(tmpdir, content):
    path = os.path.join(tmpdir, "tutor.yaml")
    with open(path, "w") as f:
        f.write(content)
    return path


def test_defaults_without_file_or_env():
    settings = load_settings(env={})

    assert settings == TutorSettings()
    assert settings.llm.model == "auto"
    assert settings.llm.pinned_model is None
    assert settings.resilience.max_retries == 3
    assert settings.resilience.failure_threshold == 5
    assert settings.resilience.open_duration_seconds == 60.0
    assert settings.context.max_context_tokens == 4000


def test_yaml_file():
    content = (
        "llm:\n"
        f"  model: {ModelType.HAIKU.value}\n"
        "  prioritize_cost: false\n"
        "resilience:\n"
        "  failure_threshold: 2\n"
        "context:\n"
        "  history_limit: 4\n"
    )
    with tempfile.TemporaryDirectory() as tmpdir:
        settings = load_settings(write_config(tmpdir, content), env={})

    assert settings.llm.pinned_model is ModelType.HAIKU
    assert settings.llm.prioritize_cost is False
    assert settings.resilience.failure_threshold == 2
    assert settings.resilience.max_retries == 3
    assert settings.context.history_limit == 4


def test_env_overrides_file():
    env = {
        "ANTHROPIC_API_KEY": "sk-test-1234",
        "TUTOR_MAX_RETRIES": "2",
        "TUTOR_PRIORITIZE_COST": "no",
        "TUTOR_MAX_CONTEXT_TOKENS": "1000",
    }
    with tempfile.TemporaryDirectory() as tmpdir:
        path = write_config(tmpdir, "resilience:\n  max_retries: 5\n")
        settings = load_settings(path, env=env)

    assert settings.llm.api_key == "sk-test-1234"
    assert settings.resilience.max_retries == 2
    assert settings.llm.prioritize_cost is False
    assert settings.context.max_context_tokens == 1000


@pytest.mark.parametrize(
    "content",
    [
        "llm:\n  model: gpt-4\n",
        "llm:\n  modle: auto\n",
        "resilience:\n  max_retries: 0\n",
        "resilience:\n  open_duration_seconds: 0\n",
        "context: [1, 2]\n",
        "- just\n- a list\n",
        "llm: {model: [unclosed\n",
    ],
)
def test_invalid_files_rejected(content):
    with tempfile.TemporaryDirectory() as tmpdir:
        path = write_config(tmpdir, content)
        with pytest.raises(ConfigError):
            load_settings(path, env={})


def test_missing_file_rejected():
    with tempfile.TemporaryDirectory() as tmpdir:
        with pytest.raises(ConfigError, match="Cannot read config"):
            load_settings(os.path.join(tmpdir, "absent.yaml"), env={})


@pytest.mark.parametrize(
    "env",
    [
        {"TUTOR_MAX_RETRIES": "three"},
        {"TUTOR_PRIORITIZE_COST": "maybe"},
        {"TUTOR_MODEL": "not-a-model"},
    ],
)
def test_invalid_env_rejected(env):
    with pytest.raises(ConfigError):
        load_settings(env=env)


def test_api_key_masked_in_repr():
    settings = load_settings(env={"ANTHROPIC_API_KEY": "sk-secret-abcd"})
    text = repr(settings.llm)
    assert "sk-secret" not in text
    assert "***abcd" in text
