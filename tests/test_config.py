"""Tests for configuration loading and structured logging."""

import json
import logging

import pytest

from canvasflow import config
from canvasflow.config import FlowConfig, LLMConfig
from canvasflow.observability import (
    clear_trace_context,
    configure_logging,
    get_trace_context,
    set_trace_context,
    trace_scope,
)
from canvasflow.observability.logging import StructuredFormatter


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    path = tmp_path / "configuration.json"
    monkeypatch.setenv("CANVASFLOW_CONFIG", str(path))
    return path


def test_missing_config_file_gives_defaults(config_file):
    flow = FlowConfig()

    assert flow.persist_state is False
    assert flow.ephemeral_memory is False
    assert flow.state_path is None
    assert flow.variable_refresh_seconds == config.DEFAULT_REFRESH_SECONDS
    assert flow.llm.model == config.DEFAULT_MODEL


def test_config_file_sections_are_read(config_file, tmp_path, monkeypatch):
    monkeypatch.setenv("MY_LLM_KEY", "sk-test")
    config_file.write_text(
        json.dumps(
            {
                "flow": {
                    "persist_state": True,
                    "state_path": str(tmp_path / "state.json"),
                    "variable_refresh_seconds": 600,
                },
                "llm": {
                    "provider": "openai",
                    "model": "gpt-4o",
                    "api_key_env_var": "MY_LLM_KEY",
                    "max_tokens": 2048,
                },
            }
        ),
        encoding="utf-8",
    )

    flow = FlowConfig()

    assert flow.persist_state is True
    assert flow.state_path == tmp_path / "state.json"
    assert flow.variable_refresh_seconds == 60
    assert flow.llm.model == "openai/gpt-4o"
    assert flow.llm.api_key == "sk-test"
    assert flow.llm.max_tokens == 2048


def test_malformed_config_file_is_ignored(config_file):
    config_file.write_text("not json", encoding="utf-8")

    assert config.get_canvasflow_config() == {}
    assert LLMConfig().model == config.DEFAULT_MODEL


# ---- Logging ----
def test_trace_context_roundtrip():
    clear_trace_context()
    set_trace_context(run_id="r1")
    set_trace_context(node_id="n1")

    assert get_trace_context() == {"run_id": "r1", "node_id": "n1"}

    clear_trace_context()
    assert get_trace_context() == {}


def test_trace_scope_restores_previous_context():
    clear_trace_context()
    set_trace_context(run_id="r1")

    with trace_scope(node_id="n1", kind="agent"):
        assert get_trace_context() == {"run_id": "r1", "node_id": "n1", "kind": "agent"}

    assert get_trace_context() == {"run_id": "r1"}
    clear_trace_context()


def test_structured_formatter_includes_context_and_extra():
    clear_trace_context()
    set_trace_context(execution_id="exec_1", run_id="r1")
    record = logging.LogRecord("canvasflow.test", logging.INFO, __file__, 1, "hello", None, None)
    record.event = "node_completed"
    record.latency_ms = 12

    entry = json.loads(StructuredFormatter().format(record))

    assert entry["message"] == "hello"
    assert entry["run_id"] == "r1"
    assert entry["execution_id"] == "exec_1"
    assert entry["event"] == "node_completed"
    assert entry["latency_ms"] == 12
    clear_trace_context()


def test_configure_logging_installs_single_handler():
    configure_logging(level="DEBUG", format="json")
    root = logging.getLogger()

    assert len(root.handlers) == 1
    assert isinstance(root.handlers[0].formatter, StructuredFormatter)
    assert root.level == logging.DEBUG

    configure_logging(level="WARNING", format="human")
