"""Storage backends for remembered flow state."""

from canvasflow.storage.state_store import FileStateStore, InMemoryStateStore, StateStore

__all__ = ["FileStateStore", "InMemoryStateStore", "StateStore"]
