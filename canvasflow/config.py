"""Shared canvasflow configuration utilities.

Centralises reading of ~/.canvasflow/configuration.json so the CLI, the flow
executor and the LLM executor share one implementation.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_MAX_TOKENS = 1024
DEFAULT_REFRESH_SECONDS = 60.0

# ---------------------------------------------------------------------------
# Low-level config file access
# ---------------------------------------------------------------------------

CANVASFLOW_CONFIG_FILE = Path.home() / ".canvasflow" / "configuration.json"


def get_config_path() -> Path:
    """Return the configuration file path, honouring CANVASFLOW_CONFIG."""
    override = os.environ.get("CANVASFLOW_CONFIG")
    return Path(override) if override else CANVASFLOW_CONFIG_FILE


def get_canvasflow_config() -> dict[str, Any]:
    """Load configuration from disk. Missing or malformed files yield {}."""
    path = get_config_path()
    if not path.exists():
        return {}
    try:
        with open(path, encoding="utf-8-sig") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------


def _flow_section() -> dict[str, Any]:
    return get_canvasflow_config().get("flow", {})


def _llm_section() -> dict[str, Any]:
    return get_canvasflow_config().get("llm", {})


def get_preferred_model() -> str:
    """Return the user's preferred LLM model string (e.g. 'openai/gpt-4o-mini')."""
    llm = _llm_section()
    if llm.get("provider") and llm.get("model"):
        return f"{llm['provider']}/{llm['model']}"
    return llm.get("model") or DEFAULT_MODEL


def has_configured_model() -> bool:
    """True when the configuration file names a model for agent nodes."""
    return bool(_llm_section().get("model"))


def get_api_key() -> str | None:
    """Return the API key from the environment variable named in configuration."""
    api_key_env_var = _llm_section().get("api_key_env_var")
    if api_key_env_var:
        return os.environ.get(api_key_env_var)
    return None


def get_state_path() -> Path | None:
    """Return the file used to remember flow state across runs, if configured."""
    state_path = _flow_section().get("state_path")
    return Path(state_path).expanduser() if state_path else None


def get_refresh_seconds() -> float:
    """Dynamic variable refresh interval, capped at one minute."""
    value = _flow_section().get("variable_refresh_seconds", DEFAULT_REFRESH_SECONDS)
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return DEFAULT_REFRESH_SECONDS
    if seconds <= 0:
        return DEFAULT_REFRESH_SECONDS
    return min(seconds, DEFAULT_REFRESH_SECONDS)


# ---------------------------------------------------------------------------
# Config dataclasses
# ---------------------------------------------------------------------------


@dataclass
class LLMConfig:
    """LLM settings used by agent nodes."""

    model: str = field(default_factory=get_preferred_model)
    api_key: str | None = field(default_factory=get_api_key)
    api_base: str | None = field(default_factory=lambda: _llm_section().get("api_base"))
    temperature: float = field(default_factory=lambda: _llm_section().get("temperature", 0.7))
    max_tokens: int = field(
        default_factory=lambda: _llm_section().get("max_tokens", DEFAULT_MAX_TOKENS)
    )
    timeout_seconds: float | None = field(
        default_factory=lambda: _llm_section().get("timeout_seconds")
    )


@dataclass
class FlowConfig:
    """Flow execution configuration loaded from ~/.canvasflow/configuration.json."""

    persist_state: bool = field(default_factory=lambda: bool(_flow_section().get("persist_state")))
    ephemeral_memory: bool = field(
        default_factory=lambda: bool(_flow_section().get("ephemeral_memory"))
    )
    state_path: Path | None = field(default_factory=get_state_path)
    variable_refresh_seconds: float = field(default_factory=get_refresh_seconds)
    llm: LLMConfig = field(default_factory=LLMConfig)
