"""
Flow State Manager - run-scoped key/value state plus {{token}} substitution.

Flow state carry-over between runs is controlled by two flags:

- ephemeral_memory: start every run from the seed list only
- persist_state: overlay remembered state on the seeds (remembered values win)
- neither: start from the seed list only, remember nothing

ephemeral_memory takes precedence when both are set.

Substitution resolves tokens in this order and stops at the first hit:

1. a registered Variable with that exact name ({{name}} or legacy {{$vars.name}})
2. for {{flowState.key}}, the flow state key
3. the workflow variable map
4. otherwise the token is left exactly as written

Dynamic variables (currentDate, currentTime, timestamp, sessionId) are owned
by the manager and refreshed by a background ticker while it is started.
"""

import asyncio
import contextlib
import json
import logging
import os
import re
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime
from types import MappingProxyType
from typing import Any

from canvasflow.config import DEFAULT_REFRESH_SECONDS
from canvasflow.errors import VariableError
from canvasflow.schemas.variable import Variable, VariableKind
from canvasflow.storage.state_store import InMemoryStateStore, StateStore

logger = logging.getLogger(__name__)

TOKEN_PATTERN = re.compile(r"\{\{\s*([^{}\s]+)\s*\}\}")
FLOW_STATE_PREFIX = "flowState."
LEGACY_VARS_PREFIX = "$vars."


def stringify(value: Any) -> str:
    """Render a value for insertion into text."""
    if isinstance(value, str):
        return value
    if isinstance(value, dict | list):
        return json.dumps(value, default=str)
    return str(value)


def render_template(text: str, values: Mapping[str, Any]) -> str:
    """Replace {{key}} with values[key]; unknown tokens are left untouched."""

    def _sub(match: re.Match) -> str:
        key = match.group(1)
        if key in values and values[key] is not None:
            return stringify(values[key])
        return match.group(0)

    return TOKEN_PATTERN.sub(_sub, text)


def normalize_seeds(
    seeds: Iterable[Mapping[str, Any]] | Mapping[str, Any] | None,
) -> dict[str, Any]:
    """Accept [{"key": k, "value": v}, ...] or a plain mapping."""
    if seeds is None:
        return {}
    if isinstance(seeds, Mapping):
        return dict(seeds)
    result: dict[str, Any] = {}
    for item in seeds:
        if "key" not in item:
            raise ValueError(f"Flow state seed is missing 'key': {item!r}")
        result[str(item["key"])] = item.get("value")
    return result


class FlowStateManager:
    """
    Owns flow state, variables and workflow variables for a process.

    Example:
        manager = FlowStateManager()
        manager.set_variable("tone", "friendly")
        manager.initialize_flow_state([{"key": "topic", "value": "cats"}])
        manager.replace("Be {{tone}} about {{flowState.topic}}")
        # -> "Be friendly about cats"
    """

    def __init__(
        self,
        store: StateStore | None = None,
        refresh_seconds: float = DEFAULT_REFRESH_SECONDS,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store: StateStore = store or InMemoryStateStore()
        if refresh_seconds <= 0:
            raise ValueError(f"refresh_seconds must be positive, got {refresh_seconds}")
        self.refresh_seconds = min(refresh_seconds, DEFAULT_REFRESH_SECONDS)
        self._clock = clock

        self._variables: dict[str, Variable] = {}
        self._workflow_variables: dict[str, Any] = {}
        self._flow_state: dict[str, Any] = {}
        self.persist_state = False
        self.ephemeral_memory = False

        self._ticker: asyncio.Task | None = None
        self._seed_dynamic_variables()

    # === FLOW STATE ===

    def initialize_flow_state(
        self,
        seeds: Iterable[Mapping[str, Any]] | Mapping[str, Any] | None = None,
        persist_state: bool = False,
        ephemeral_memory: bool = False,
    ) -> dict[str, Any]:
        """
        Start a run's flow state from its seeds.

        Returns:
            A copy of the initial flow state
        """
        flow_state = normalize_seeds(seeds)

        if ephemeral_memory:
            logger.debug("Starting flow state with ephemeral memory (seeds only)")
        elif persist_state:
            remembered = self.store.load()
            if remembered:
                logger.debug(f"Merging {len(remembered)} remembered flow state keys")
            flow_state.update(remembered)

        self._flow_state = flow_state
        self.persist_state = persist_state
        self.ephemeral_memory = ephemeral_memory
        return dict(flow_state)

    def set_flow_state(self, key: str, value: Any) -> None:
        self._flow_state[key] = value
        logger.debug(f"Flow state updated: {key}")

    def update_flow_state(self, updates: Mapping[str, Any]) -> None:
        for key, value in updates.items():
            self.set_flow_state(key, value)

    def get_flow_state(self, key: str | None = None) -> Any:
        """Return one key (None if absent) or a copy of the whole flow state."""
        if key is not None:
            return self._flow_state.get(key)
        return dict(self._flow_state)

    def flow_state_view(self) -> Mapping[str, Any]:
        """Read-only snapshot handed to executors."""
        return MappingProxyType(dict(self._flow_state))

    @property
    def remembers(self) -> bool:
        """True when the current run's state will be carried into later runs."""
        return self.persist_state and not self.ephemeral_memory

    def merge_runtime_state(self, runtime_state: Mapping[str, Any]) -> None:
        """
        Remember runtime values for later runs.

        The values always go into the store; they reach the live flow state
        only when the current run remembers state.
        """
        self.store.save({**self.store.load(), **runtime_state})
        if self.remembers:
            self._flow_state.update(runtime_state)

    def commit_run_state(self) -> bool:
        """Remember the current flow state if the run persists state."""
        if not self.remembers:
            return False
        self.store.save(dict(self._flow_state))
        return True

    def forget_runtime_state(self) -> None:
        self.store.clear()

    # === VARIABLES ===

    def set_variable(
        self,
        name: str,
        value: str,
        kind: VariableKind | str = VariableKind.STATIC,
        description: str | None = None,
        category: str | None = None,
    ) -> Variable:
        """Create or update a static or runtime variable."""
        kind = VariableKind(kind)
        if kind == VariableKind.DYNAMIC:
            raise VariableError(f"Dynamic variables are managed internally: '{name}'")

        existing = self._variables.get(name)
        if existing is not None and existing.kind == VariableKind.DYNAMIC:
            raise VariableError(f"Cannot overwrite dynamic variable '{name}'")

        variable = Variable(
            name=name,
            value=str(value),
            kind=kind,
            description=description or (existing.description if existing else None),
            category=category or (existing.category if existing else "User"),
        )
        self._variables[name] = variable
        return variable

    def get_variable(self, name: str) -> Variable | None:
        return self._variables.get(name)

    def delete_variable(self, name: str) -> bool:
        """
        Remove a variable.

        Raises:
            VariableError: the variable is dynamic
        """
        variable = self._variables.get(name)
        if variable is None:
            return False
        if variable.kind == VariableKind.DYNAMIC:
            raise VariableError(f"Cannot delete dynamic variable '{name}'")
        del self._variables[name]
        return True

    def add_runtime_variable(
        self, name: str, env_key: str, description: str | None = None
    ) -> Variable:
        """Register a variable read from the environment (`$ENV_KEY` if unset)."""
        value = os.environ.get(env_key, f"${env_key}")
        return self.set_variable(
            name,
            value,
            kind=VariableKind.RUNTIME,
            description=description or f"Runtime variable from {env_key}",
        )

    def get_available_variables(self) -> list[Variable]:
        """All variables, sorted by category then name."""
        return sorted(
            (v.model_copy() for v in self._variables.values()),
            key=lambda v: (v.category or "User", v.name),
        )

    def set_workflow_variable(self, name: str, value: Any) -> None:
        self._workflow_variables[name] = value

    def get_workflow_variable(self, name: str) -> Any:
        return self._workflow_variables.get(name)

    def workflow_variables(self) -> dict[str, Any]:
        return dict(self._workflow_variables)

    # === SUBSTITUTION ===

    def _resolve(
        self,
        token: str,
        flow_state: Mapping[str, Any],
        workflow_vars: Mapping[str, Any],
    ) -> str | None:
        if token.startswith(LEGACY_VARS_PREFIX):
            variable = self._variables.get(token[len(LEGACY_VARS_PREFIX) :])
            return variable.value if variable else None

        variable = self._variables.get(token)
        if variable is not None:
            return variable.value

        if token.startswith(FLOW_STATE_PREFIX):
            key = token[len(FLOW_STATE_PREFIX) :]
            found, value = _lookup(flow_state, key)
            if found and value is not None:
                return stringify(value)

        if token in workflow_vars and workflow_vars[token] is not None:
            return stringify(workflow_vars[token])

        return None

    def replace(
        self,
        text: str,
        flow_state: Mapping[str, Any] | None = None,
        workflow_vars: Mapping[str, Any] | None = None,
    ) -> str:
        """Substitute {{tokens}} in text. Unresolved tokens are kept verbatim."""
        if "{{" not in text:
            return text
        state = self._flow_state if flow_state is None else flow_state
        wf_vars = self._workflow_variables if workflow_vars is None else workflow_vars

        def _sub(match: re.Match) -> str:
            resolved = self._resolve(match.group(1), state, wf_vars)
            return match.group(0) if resolved is None else resolved

        return TOKEN_PATTERN.sub(_sub, text)

    def render(self, value: Any, workflow_vars: Mapping[str, Any] | None = None) -> Any:
        """Apply replace() to every string inside dicts and lists."""
        if isinstance(value, str):
            return self.replace(value, workflow_vars=workflow_vars)
        if isinstance(value, dict):
            return {k: self.render(v, workflow_vars) for k, v in value.items()}
        if isinstance(value, list):
            return [self.render(v, workflow_vars) for v in value]
        return value

    # === DYNAMIC VARIABLES ===

    def _dynamic_values(self) -> dict[str, str]:
        now = self._clock()
        return {
            "currentDate": now.strftime("%Y-%m-%d"),
            "currentTime": now.strftime("%H:%M:%S"),
            "timestamp": str(int(now.timestamp() * 1000)),
        }

    def _seed_dynamic_variables(self) -> None:
        values = self._dynamic_values()
        definitions = [
            ("currentDate", "Current date (YYYY-MM-DD)", "System"),
            ("currentTime", "Current time (HH:MM:SS)", "System"),
            ("timestamp", "Current timestamp in milliseconds", "System"),
        ]
        for name, description, category in definitions:
            self._variables[name] = Variable(
                name=name,
                value=values[name],
                kind=VariableKind.DYNAMIC,
                description=description,
                category=category,
            )
        self._variables["sessionId"] = Variable(
            name="sessionId",
            value=f"session_{values['timestamp']}",
            kind=VariableKind.DYNAMIC,
            description="Unique session identifier",
            category="Session",
        )

    def refresh_dynamic_variables(self) -> None:
        """Recompute date, time and timestamp. sessionId is fixed per manager."""
        for name, value in self._dynamic_values().items():
            variable = self._variables.get(name)
            if variable is not None and variable.kind == VariableKind.DYNAMIC:
                self._variables[name] = variable.model_copy(update={"value": value})

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self.refresh_seconds)
            self.refresh_dynamic_variables()

    def start(self) -> None:
        """Start the refresh ticker on the running event loop."""
        if self._ticker is not None and not self._ticker.done():
            return
        self.refresh_dynamic_variables()
        self._ticker = asyncio.get_running_loop().create_task(self._tick())
        logger.debug(f"Dynamic variable ticker started ({self.refresh_seconds}s)")

    async def stop(self) -> None:
        """Stop the refresh ticker."""
        ticker, self._ticker = self._ticker, None
        if ticker is None:
            return
        ticker.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await ticker

    @property
    def running(self) -> bool:
        return self._ticker is not None and not self._ticker.done()

    async def __aenter__(self) -> "FlowStateManager":
        self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()


def _lookup(data: Mapping[str, Any], key: str) -> tuple[bool, Any]:
    """Exact key first, then a dotted path through nested mappings."""
    if key in data:
        return True, data[key]
    current: Any = data
    for part in key.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return False, None
        current = current[part]
    return True, current
