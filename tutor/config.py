"""Configuration loader for the tutoring pipeline.

Loads an optional YAML file, then applies environment overrides.
Configuration is loaded once at startup and passed to the orchestrator.

Example ``tutor.yaml``::

    llm:
      model: auto            # or a pinned model id
      prioritize_cost: true
    resilience:
      max_retries: 3
      backoff_cap_seconds: 8
      failure_threshold: 5
      open_duration_seconds: 60
    context:
      max_context_tokens: 4000
      history_limit: 10
      session_retention_hours: 24
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

from tutor.errors import ConfigError
from tutor.llm.optimizer import ModelType

AUTO_MODEL = "auto"


@dataclass(frozen=True)
class LLMSettings:
    api_key: str = ""
    model: str = AUTO_MODEL  # "auto" = choose per request from complexity
    prioritize_cost: bool = True
    timeout_seconds: float = 30.0

    @property
    def pinned_model(self) -> ModelType | None:
        if self.model == AUTO_MODEL:
            return None
        return ModelType(self.model)

    def __repr__(self) -> str:
        key_display = f"***{self.api_key[-4:]}" if self.api_key else ""
        return (
            f"LLMSettings(model={self.model!r}, prioritize_cost={self.prioritize_cost!r}, "
            f"api_key={key_display!r})"
        )


@dataclass(frozen=True)
class ResilienceSettings:
    max_retries: int = 3
    backoff_cap_seconds: float = 8.0
    failure_threshold: int = 5
    open_duration_seconds: float = 60.0


@dataclass(frozen=True)
class ContextSettings:
    max_context_tokens: int = 4000
    history_limit: int = 10
    session_retention_hours: float = 24.0


@dataclass(frozen=True)
class TutorSettings:
    llm: LLMSettings = field(default_factory=LLMSettings)
    resilience: ResilienceSettings = field(default_factory=ResilienceSettings)
    context: ContextSettings = field(default_factory=ContextSettings)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def _section(cls: type, raw: Any, name: str, path: Path | None) -> Any:
    if raw is None:
        return cls()
    if not isinstance(raw, dict):
        raise ConfigError(f"Invalid '{name}' section in {path}: expected a mapping")
    known = {f.name for f in fields(cls)}
    unknown = set(raw) - known
    if unknown:
        raise ConfigError(f"Unknown key(s) in '{name}' section of {path}: {sorted(unknown)}")
    try:
        return cls(**raw)
    except TypeError as e:
        raise ConfigError(f"Invalid '{name}' section in {path}: {e}") from e


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    raise ConfigError(f"{name} must be a boolean, got {value!r}")


def _parse_int(name: str, value: str) -> int:
    try:
        return int(value)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from e


def _apply_env(settings: TutorSettings, env: dict[str, str]) -> TutorSettings:
    llm = settings.llm
    resilience = settings.resilience
    context = settings.context

    if env.get("ANTHROPIC_API_KEY"):
        llm = replace(llm, api_key=env["ANTHROPIC_API_KEY"])
    if env.get("TUTOR_MODEL"):
        llm = replace(llm, model=env["TUTOR_MODEL"])
    if env.get("TUTOR_PRIORITIZE_COST"):
        llm = replace(
            llm, prioritize_cost=_parse_bool("TUTOR_PRIORITIZE_COST", env["TUTOR_PRIORITIZE_COST"])
        )
    if env.get("TUTOR_MAX_RETRIES"):
        resilience = replace(
            resilience, max_retries=_parse_int("TUTOR_MAX_RETRIES", env["TUTOR_MAX_RETRIES"])
        )
    if env.get("TUTOR_MAX_CONTEXT_TOKENS"):
        context = replace(
            context,
            max_context_tokens=_parse_int(
                "TUTOR_MAX_CONTEXT_TOKENS", env["TUTOR_MAX_CONTEXT_TOKENS"]
            ),
        )
    return TutorSettings(llm=llm, resilience=resilience, context=context)


def validate_settings(settings: TutorSettings) -> None:
    """Raise ``ConfigError`` if any value is out of range."""
    if settings.llm.model != AUTO_MODEL:
        try:
            ModelType(settings.llm.model)
        except ValueError as e:
            known = ", ".join(m.value for m in ModelType)
            raise ConfigError(
                f"Unknown model {settings.llm.model!r}; expected 'auto' or one of: {known}"
            ) from e
    if settings.resilience.max_retries < 1:
        raise ConfigError("max_retries must be at least 1")
    if settings.resilience.failure_threshold < 1:
        raise ConfigError("failure_threshold must be at least 1")
    if settings.resilience.open_duration_seconds <= 0:
        raise ConfigError("open_duration_seconds must be positive")
    if settings.context.max_context_tokens < 0:
        raise ConfigError("max_context_tokens must not be negative")
    if settings.context.history_limit < 0:
        raise ConfigError("history_limit must not be negative")


def load_settings(
    path: str | Path | None = None,
    env: dict[str, str] | None = None,
) -> TutorSettings:
    """Load settings from *path* (if given) and the environment.

    Raises ``ConfigError`` for unreadable files, malformed YAML, unknown
    keys, or invalid values.
    """
    data: dict[str, Any] = {}
    resolved = Path(path) if path else None
    if resolved is not None:
        try:
            with open(resolved) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {resolved}: {e}") from e
        except OSError as e:
            raise ConfigError(f"Cannot read config {resolved}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Config {resolved} must contain a mapping at top level")

    settings = TutorSettings(
        llm=_section(LLMSettings, data.get("llm"), "llm", resolved),
        resilience=_section(ResilienceSettings, data.get("resilience"), "resilience", resolved),
        context=_section(ContextSettings, data.get("context"), "context", resolved),
    )
    settings = _apply_env(settings, dict(os.environ) if env is None else env)
    validate_settings(settings)
    return settings
