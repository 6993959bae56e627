"""
State stores - where flow state is remembered between runs.

The remembered state is a flat {key: value} map. Storage medium is not part
of the contract; only the merge rules in FlowStateManager are. Writes are
serialized per store with a lock and the last write wins.
"""

import json
import logging
import threading
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from canvasflow.utils.io import atomic_write

logger = logging.getLogger(__name__)


@runtime_checkable
class StateStore(Protocol):
    """Persistence for remembered flow state."""

    def load(self) -> dict[str, Any]: ...

    def save(self, state: dict[str, Any]) -> None: ...

    def clear(self) -> None: ...


class InMemoryStateStore:
    """Remembers state for the lifetime of the process."""

    def __init__(self) -> None:
        self._state: dict[str, Any] = {}
        self._lock = threading.Lock()

    def load(self) -> dict[str, Any]:
        with self._lock:
            return dict(self._state)

    def save(self, state: dict[str, Any]) -> None:
        with self._lock:
            self._state = dict(state)

    def clear(self) -> None:
        with self._lock:
            self._state = {}


class FileStateStore:
    """
    Remembers state in a JSON file.

    Values must be JSON-serializable; anything else is stored as its string
    form. A missing or corrupt file reads as empty state.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def load(self) -> dict[str, Any]:
        with self._lock:
            if not self.path.exists():
                return {}
            try:
                data = json.loads(self.path.read_text(encoding="utf-8"))
            except (json.JSONDecodeError, OSError) as e:
                logger.warning(f"Ignoring unreadable flow state file {self.path}: {e}")
                return {}
            return data if isinstance(data, dict) else {}

    def save(self, state: dict[str, Any]) -> None:
        with self._lock:
            with atomic_write(self.path) as f:
                f.write(json.dumps(state, indent=2, default=str))
        logger.debug(f"Saved {len(state)} flow state keys to {self.path}")

    def clear(self) -> None:
        with self._lock:
            self.path.unlink(missing_ok=True)
