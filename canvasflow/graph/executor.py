"""
Flow Executor - Runs flow graphs.

The executor:
1. Orders the nodes topologically (an invalid graph aborts before any node runs)
2. Resets node states, seeds global data and initialises flow state
3. Runs nodes one at a time, each seeing the outputs of every node before it
4. Stops at the first failing node, keeping the results gathered so far
5. Returns a RunResult snapshot
"""

import asyncio
import contextlib
import logging
import uuid
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime
from typing import Any

from canvasflow.config import FlowConfig
from canvasflow.errors import ExecutionInProgressError, GraphInvalidError, NoExecutorFoundError
from canvasflow.executors import create_default_registry
from canvasflow.executors.base import ExecutionContext, ExecutionResult
from canvasflow.executors.registry import ExecutorRegistry
from canvasflow.graph.edge import EdgeSpec, GraphSpec
from canvasflow.graph.node import NodeSpec, NodeState, NodeStatus
from canvasflow.graph.scheduler import order
from canvasflow.observability import set_trace_context, trace_scope
from canvasflow.runtime.cancellation import CancellationToken
from canvasflow.runtime.flow_state import FlowStateManager
from canvasflow.runtime.run_state import FlowRunState, RunResult, RunStatus
from canvasflow.storage.state_store import FileStateStore

# (node_id, status, partial_result); status is "running", "success" or "error"
NodeStatusCallback = Callable[[str, str, Any], None]

INPUT_KINDS = frozenset({"input"})


class FlowExecutor:
    """
    Executes flow graphs.

    Example:
        executor = FlowExecutor(registry=create_default_registry())

        result = await executor.run_flow(
            run_id="demo",
            nodes=graph.nodes,
            edges=graph.edges,
            initial_inputs={"message": "hello"},
            on_node_status=lambda node_id, status, partial: print(node_id, status),
        )
    """

    def __init__(
        self,
        registry: ExecutorRegistry | None = None,
        flow_state: FlowStateManager | None = None,
        config: FlowConfig | None = None,
    ):
        """
        Initialize the executor.

        Args:
            registry: Executor backends in dispatch order (default: basic nodes only)
            flow_state: Flow state manager shared across runs of this executor
            config: Defaults for persistence flags and state storage
        """
        self.config = config or FlowConfig()
        self.registry = registry or create_default_registry()
        if flow_state is None:
            store = FileStateStore(self.config.state_path) if self.config.state_path else None
            flow_state = FlowStateManager(
                store=store,
                refresh_seconds=self.config.variable_refresh_seconds,
            )
        self.flow_state = flow_state
        self.logger = logging.getLogger(__name__)

        self._state = FlowRunState()
        self._cancel_token: CancellationToken | None = None

    # === READ ACCESS ===

    @property
    def state(self) -> RunResult:
        """Snapshot of the current (or last) run."""
        return self._state.snapshot()

    def get_node_state(self, node_id: str) -> NodeState:
        """Copy of a node's state; unknown nodes read as idle."""
        state = self._state.node_states.get(node_id)
        return state.model_copy(deep=True) if state else NodeState()

    def is_node_executing(self, node_id: str) -> bool:
        return self.get_node_state(node_id).status == NodeStatus.RUNNING

    def can_execute_node(self, node_id: str) -> bool:
        return self.get_node_state(node_id).status in (NodeStatus.IDLE, NodeStatus.COMPLETED)

    # === CONTROL ===

    def stop(self, reason: str = "Run cancelled") -> bool:
        """Ask the current run to stop. Returns False when nothing is running."""
        if self._cancel_token is None or not self._state.is_executing:
            return False
        self.logger.info(f"Stop requested: {reason}")
        self._cancel_token.cancel(reason)
        return True

    async def run_graph(
        self, graph: GraphSpec, run_id: str | None = None, **kwargs: Any
    ) -> RunResult:
        """Run a GraphSpec; keyword arguments are passed to run_flow()."""
        return await self.run_flow(run_id or graph.id, graph.nodes, graph.edges, **kwargs)

    async def run_flow(
        self,
        run_id: str,
        nodes: Sequence[NodeSpec],
        edges: Sequence[EdgeSpec],
        initial_inputs: Mapping[str, Any] | None = None,
        on_node_status: NodeStatusCallback | None = None,
        flow_state_seeds: Any = None,
        persist_state: bool | None = None,
        ephemeral_memory: bool | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> RunResult:
        """
        Execute a flow from start to finish.

        Args:
            run_id: Caller's identifier for this flow/run
            nodes: Nodes in canvas order
            edges: Dependencies between nodes
            initial_inputs: Seed values for the cumulative input bag
            on_node_status: Synchronous callback for every node transition
            flow_state_seeds: [{"key": ..., "value": ...}] or a mapping
            persist_state: Carry flow state across runs (default from config)
            ephemeral_memory: Ignore remembered flow state (default from config)
            cancel_token: Token the caller can use to stop the run

        Returns:
            RunResult with per-node states and results (partial on failure)
        """
        if self._state.is_executing:
            raise ExecutionInProgressError(
                f"Run '{self._state.run_id}' is still executing on this executor"
            )

        execution_id = f"exec_{uuid.uuid4().hex[:12]}"
        state = FlowRunState(
            execution_id=execution_id,
            run_id=run_id,
            status=RunStatus.RUNNING,
            global_data=dict(initial_inputs or {}),
            started_at=datetime.now(),
        )
        self._state = state
        token = cancel_token or CancellationToken()
        self._cancel_token = token

        set_trace_context(execution_id=execution_id, run_id=run_id)
        self.logger.info(f"Starting flow execution: {run_id}")

        try:
            try:
                ordered = order(nodes, edges)
            except GraphInvalidError as e:
                self.logger.error(f"Flow {run_id} rejected: {e}")
                self._finish(state, RunStatus.ERROR, error=str(e), error_type="GraphInvalid")
                return state.snapshot()

            state.execution_order = [node.id for node in ordered]
            state.node_states = {node.id: NodeState() for node in ordered}
            if not self.flow_state.running:
                self.flow_state.refresh_dynamic_variables()
            state.flow_state = self.flow_state.initialize_flow_state(
                flow_state_seeds,
                persist_state=self.config.persist_state if persist_state is None else persist_state,
                ephemeral_memory=(
                    self.config.ephemeral_memory if ephemeral_memory is None else ephemeral_memory
                ),
            )
            self.logger.info(f"Execution order: {' → '.join(state.execution_order)}")

            for node in ordered:
                if token.cancelled:
                    self._finish(
                        state, RunStatus.CANCELLED, error=token.reason, error_type="Cancelled"
                    )
                    break
                if not await self._execute_node(node, state, token, on_node_status):
                    break

            if state.status == RunStatus.RUNNING:
                self._finish(state, RunStatus.COMPLETED)

            if self.flow_state.commit_run_state():
                self.logger.debug("Remembered flow state for later runs")

            self.logger.info(f"Flow {run_id} {state.status}")
            return state.snapshot()
        finally:
            if state.status == RunStatus.RUNNING:
                # Only reachable when run_flow itself was cancelled or crashed
                self._finish(
                    state, RunStatus.CANCELLED, error="Run interrupted", error_type="Cancelled"
                )
            self._cancel_token = None

    # === INTERNAL STEPS ===

    def _finish(
        self,
        state: FlowRunState,
        status: RunStatus,
        error: str | None = None,
        error_type: str | None = None,
    ) -> None:
        state.status = status
        state.error = error
        state.error_type = error_type
        state.current_node_id = None
        state.ended_at = datetime.now()

    def _notify(
        self,
        callback: NodeStatusCallback | None,
        node_id: str,
        status: str,
        partial: Any = None,
    ) -> None:
        if callback is None:
            return
        try:
            callback(node_id, status, partial)
        except Exception:
            self.logger.warning(
                f"Node status callback failed for {node_id} ({status})", exc_info=True
            )

    def _gather_inputs(self, node: NodeSpec, state: FlowRunState) -> dict[str, Any]:
        """Inputs for a node: the cumulative bag, narrowed to declared inputs if any."""
        declared = node.declared_inputs
        if declared is None:
            inputs = dict(state.global_data)
        else:
            inputs = {k: state.global_data[k] for k in declared if k in state.global_data}

        if node.kind.lower() in INPUT_KINDS and node.data.get("text") is not None:
            workflow_vars = self._workflow_vars(state)
            text = self.flow_state.render(node.data["text"], workflow_vars=workflow_vars)
            inputs["text"] = text
            inputs["prompt"] = text
        return inputs

    def _workflow_vars(self, state: FlowRunState) -> dict[str, Any]:
        # Explicit workflow variables win over values produced by earlier nodes
        return {**state.global_data, **self.flow_state.workflow_variables()}

    def _build_context(
        self,
        node: NodeSpec,
        state: FlowRunState,
        token: CancellationToken,
    ) -> ExecutionContext:
        workflow_vars = self._workflow_vars(state)
        return ExecutionContext(
            node_id=node.id,
            kind=node.kind,
            inputs=self._gather_inputs(node, state),
            parameters=self.flow_state.render(node.parameters, workflow_vars=workflow_vars),
            framework=node.framework,
            component=node.component,
            flow_state=self.flow_state.flow_state_view(),
            cancel_token=token,
        )

    async def _dispatch(
        self,
        context: ExecutionContext,
        token: CancellationToken,
    ) -> ExecutionResult | None:
        """Run the node's executor, racing it against cancellation. None means cancelled."""
        task = asyncio.ensure_future(self.registry.execute(context))
        waiter = asyncio.ensure_future(token.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
            waiter.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await waiter

        if task in done and not task.cancelled():
            return task.result()
        return None

    async def _execute_node(
        self,
        node: NodeSpec,
        state: FlowRunState,
        token: CancellationToken,
        on_node_status: NodeStatusCallback | None,
    ) -> bool:
        """Execute one node. Returns False when the run must stop."""
        with trace_scope(node_id=node.id, kind=node.kind):
            return await self._run_node(node, state, token, on_node_status)

    async def _run_node(
        self,
        node: NodeSpec,
        state: FlowRunState,
        token: CancellationToken,
        on_node_status: NodeStatusCallback | None,
    ) -> bool:
        node_state = state.node_state(node.id)
        state.current_node_id = node.id

        node_state.start(node.id, node.kind)
        self._notify(on_node_status, node.id, "running")

        context = self._build_context(node, state, token)
        error_type = "ExecutorError"
        try:
            result = await self._dispatch(context, token)
        except NoExecutorFoundError as e:
            self.logger.error(str(e))
            result = ExecutionResult.failed(node.id, str(e), logs=[f"Dispatch failed: {e}"])
            error_type = "NoExecutorFound"

        if result is None:
            reason = token.reason or "Run cancelled"
            result = ExecutionResult.failed(node.id, reason, logs=["Execution cancelled"])
            error_type = "Cancelled"

        state.results[node.id] = result

        if result.success:
            state.global_data.update(result.outputs)
            if result.flow_state_updates:
                self.flow_state.update_flow_state(result.flow_state_updates)
                state.flow_state = self.flow_state.get_flow_state()
            node_state.complete(node.id, dict(result.outputs), result.logs)
            self.logger.info(
                f"Node {node.id} completed in {result.execution_time_ms}ms",
                extra={"event": "node_completed", "latency_ms": result.execution_time_ms},
            )
            self._notify(
                on_node_status, node.id, "success", {**result.outputs, "logs": list(result.logs)}
            )
            return True

        error = result.error or "Unknown error"
        node_state.fail(node.id, error, result.logs)
        self.logger.error(f"Node {node.id} failed: {error}", extra={"event": "node_failed"})
        self._notify(
            on_node_status,
            node.id,
            "error",
            {"error": error, "outputs": dict(result.outputs), "logs": list(result.logs)},
        )
        status = RunStatus.CANCELLED if error_type == "Cancelled" else RunStatus.ERROR
        self._finish(state, status, error=error, error_type=error_type)
        return False
