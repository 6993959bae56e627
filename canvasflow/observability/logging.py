"""
Run-correlated logging.

Every log line emitted while a flow runs carries the run it belongs to and,
inside a node step, the node being executed. The correlation fields live in a
ContextVar, so plain `logger.info(...)` calls anywhere below the flow executor
pick them up without threading ids through call signatures:

    FlowExecutor.run_flow()   set_trace_context(execution_id=..., run_id=...)
      node step               with trace_scope(node_id=..., kind=...):
        Executor.execute()      logger.info("...")  -> run + node fields

Two renderings share the same fields: JSON lines for machines and a coloured
single-line form for terminals.
"""

import json
import logging
import os
import re
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

trace_context: ContextVar[dict[str, Any] | None] = ContextVar("trace_context", default=None)

_ANSI = re.compile(r"\x1b\[[0-9;]*m")

# Loggers of the model client stack that should follow our handler and format
PROVIDER_LOGGERS = ("LiteLLM", "httpcore", "httpx", "openai")


def strip_ansi_codes(text: str) -> str:
    return _ANSI.sub("", text)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: base fields, trace context, whitelisted extras."""

    EXTRA_FIELDS = ("event", "node_id", "kind", "status", "latency_ms", "executor")

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": strip_ansi_codes(record.getMessage()),
            **(trace_context.get() or {}),
        }
        for name in self.EXTRA_FIELDS:
            value = getattr(record, name, None)
            if value is None:
                continue
            entry[name] = strip_ansi_codes(value) if isinstance(value, str) else value

        if record.exc_info:
            entry["exception"] = strip_ansi_codes(self.formatException(record.exc_info))
        return json.dumps(entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """`[LEVEL   ] [run:x | node:y] message [event]`, coloured by level."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    @staticmethod
    def _prefix(context: dict[str, Any]) -> str:
        parts = []
        if context.get("run_id"):
            parts.append(f"run:{context['run_id']}")
        if context.get("node_id"):
            node = f"node:{context['node_id']}"
            if context.get("kind"):
                node = f"{node}<{context['kind']}>"
            parts.append(node)
        return f"[{' | '.join(parts)}] " if parts else ""

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        line = (
            f"{color}[{record.levelname:<8}]{self.RESET} "
            f"{self._prefix(trace_context.get() or {})}{record.getMessage()}"
        )
        event = getattr(record, "event", None)
        if event is not None:
            line = f"{line} [{event}]"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def _resolve_format(format: str) -> str:
    if format != "auto":
        return format
    if os.getenv("LOG_FORMAT", "").lower() == "json":
        return "json"
    return "json" if os.getenv("ENV", "development").lower() == "production" else "human"


def configure_logging(level: str = "INFO", format: str = "auto") -> None:
    """
    Install a single root handler.

    Args:
        level: Root log level name
        format: "json", "human", or "auto" (json when LOG_FORMAT=json or
            ENV=production)
    """
    resolved = _resolve_format(format)
    handler = logging.StreamHandler()
    handler.setFormatter(
        StructuredFormatter() if resolved == "json" else HumanReadableFormatter()
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())

    if resolved == "json":
        _quiet_provider_output()


def _quiet_provider_output() -> None:
    """Keep model client libraries from writing coloured text around JSON lines."""
    os.environ["NO_COLOR"] = "1"
    os.environ["FORCE_COLOR"] = "0"
    for name in PROVIDER_LOGGERS:
        provider_logger = logging.getLogger(name)
        provider_logger.handlers.clear()
        provider_logger.propagate = True
    import litellm

    litellm.suppress_debug_info = True


def set_trace_context(**fields: Any) -> None:
    """Merge fields into the current trace context."""
    trace_context.set({**(trace_context.get() or {}), **fields})


def get_trace_context() -> dict[str, Any]:
    return dict(trace_context.get() or {})


def clear_trace_context() -> None:
    trace_context.set(None)


@contextmanager
def trace_scope(**fields: Any) -> Iterator[None]:
    """Add fields for the duration of a block, then restore the previous context."""
    token = trace_context.set({**(trace_context.get() or {}), **fields})
    try:
        yield
    finally:
        trace_context.reset(token)
