"""
Tests for FlowExecutor.run_flow end-to-end paths.
Success, failure, cancellation and flow state handling.
"""

import asyncio

import pytest

from canvasflow.errors import ExecutionInProgressError
from canvasflow.executors import create_default_registry
from canvasflow.executors.base import ExecutionResult
from canvasflow.executors.basic import BasicNodesExecutor
from canvasflow.executors.registry import ExecutorRegistry
from canvasflow.graph.edge import EdgeSpec, GraphSpec
from canvasflow.graph.executor import FlowExecutor
from canvasflow.graph.node import NodeSpec, NodeStatus
from canvasflow.runtime.cancellation import CancellationToken
from canvasflow.runtime.flow_state import FlowStateManager
from canvasflow.runtime.run_state import RunStatus
from canvasflow.storage.state_store import InMemoryStateStore


def chat_graph(text: str = "hello") -> GraphSpec:
    return GraphSpec(
        id="chat",
        nodes=[
            NodeSpec(id="input", kind="input", data={"text": text}),
            NodeSpec(id="agent", kind="agent"),
            NodeSpec(id="output", kind="output"),
        ],
        edges=[
            EdgeSpec(id="e1", source="input", target="agent"),
            EdgeSpec(id="e2", source="agent", target="output"),
        ],
    )


def make_executor(registry: ExecutorRegistry | None = None) -> FlowExecutor:
    return FlowExecutor(
        registry=registry or create_default_registry(),
        flow_state=FlowStateManager(store=InMemoryStateStore()),
    )


# ---- Status recorder ----
class StatusRecorder:
    def __init__(self):
        self.events: list[tuple[str, str, object]] = []

    def __call__(self, node_id, status, partial):
        self.events.append((node_id, status, partial))

    def statuses(self):
        return [(node_id, status) for node_id, status, _ in self.events]


# ---- Happy path ----
@pytest.mark.asyncio
async def test_input_agent_output_completes():
    executor = make_executor()
    graph = chat_graph()

    result = await executor.run_flow("run-1", graph.nodes, graph.edges)

    assert result.status == RunStatus.COMPLETED
    assert result.success
    assert result.execution_order == ["input", "agent", "output"]
    output_state = result.get_node_state("output")
    assert output_state.status == NodeStatus.COMPLETED
    assert output_state.result["display"] == "echo: hello"
    assert result.output == "echo: hello"


@pytest.mark.asyncio
async def test_status_callback_sees_every_transition_in_order():
    executor = make_executor()
    graph = chat_graph()
    recorder = StatusRecorder()

    await executor.run_flow("run-1", graph.nodes, graph.edges, on_node_status=recorder)

    assert recorder.statuses() == [
        ("input", "running"),
        ("input", "success"),
        ("agent", "running"),
        ("agent", "success"),
        ("output", "running"),
        ("output", "success"),
    ]
    _, _, partial = recorder.events[3]
    assert partial["response"] == "echo: hello"
    assert "logs" in partial


@pytest.mark.asyncio
async def test_global_data_accumulates_outputs_and_initial_inputs():
    executor = make_executor()
    graph = chat_graph()

    result = await executor.run_flow(
        "run-1", graph.nodes, graph.edges, initial_inputs={"user": "ada"}
    )

    assert result.global_data["user"] == "ada"
    assert result.global_data["text"] == "hello"
    assert result.global_data["display"] == "echo: hello"


@pytest.mark.asyncio
async def test_later_node_overwrites_earlier_output_keys():
    registry = ExecutorRegistry()
    registry.register_handler(
        "writer", lambda c: True, lambda c: {"value": c.parameters.get("value")}
    )
    executor = make_executor(registry)
    nodes = [
        NodeSpec(id="first", kind="w", data={"parameters": {"value": 1}}),
        NodeSpec(id="second", kind="w", data={"parameters": {"value": 2}}),
    ]
    edges = [EdgeSpec(id="e", source="first", target="second")]

    result = await executor.run_flow("run-1", nodes, edges)

    assert result.global_data["value"] == 2


# ---- Failure ----
@pytest.mark.asyncio
async def test_agent_error_halts_run_and_keeps_partial_results():
    registry = ExecutorRegistry()
    registry.register_handler(
        "failing-agent",
        lambda c: c.kind == "agent",
        lambda c: ExecutionResult.failed(c.node_id, "boom"),
    )
    registry.register(BasicNodesExecutor())
    executor = make_executor(registry)
    graph = chat_graph()
    recorder = StatusRecorder()

    result = await executor.run_flow("run-1", graph.nodes, graph.edges, on_node_status=recorder)

    assert result.status == RunStatus.ERROR
    assert result.error == "boom"
    assert result.get_node_state("input").status == NodeStatus.COMPLETED
    assert result.get_node_state("agent").status == NodeStatus.ERROR
    assert result.get_node_state("agent").error == "boom"
    assert result.get_node_state("output").status == NodeStatus.IDLE
    assert "input" in result.results
    assert "output" not in result.results
    assert ("agent", "error") in recorder.statuses()
    assert ("output", "running") not in recorder.statuses()


@pytest.mark.asyncio
async def test_raising_executor_is_reported_as_node_error():
    async def explode(context):
        raise ValueError("bad input")

    registry = ExecutorRegistry()
    registry.register_handler("explode", lambda c: True, explode)
    executor = make_executor(registry)

    result = await executor.run_flow("run-1", [NodeSpec(id="x", kind="x")], [])

    assert result.status == RunStatus.ERROR
    assert result.error_type == "ExecutorError"
    assert result.get_node_state("x").error == "bad input"


@pytest.mark.asyncio
async def test_missing_executor_aborts_with_node_error():
    executor = make_executor()
    nodes = [NodeSpec(id="in", kind="input"), NodeSpec(id="hook", kind="webhook")]
    edges = [EdgeSpec(id="e", source="in", target="hook")]

    result = await executor.run_flow("run-1", nodes, edges)

    assert result.status == RunStatus.ERROR
    assert result.error_type == "NoExecutorFound"
    assert result.get_node_state("hook").status == NodeStatus.ERROR
    assert "webhook" in result.get_node_state("hook").error


@pytest.mark.asyncio
async def test_cyclic_graph_runs_no_nodes():
    executor = make_executor()
    nodes = [NodeSpec(id="a", kind="input"), NodeSpec(id="b", kind="output")]
    edges = [
        EdgeSpec(id="e1", source="a", target="b"),
        EdgeSpec(id="e2", source="b", target="a"),
    ]
    recorder = StatusRecorder()

    result = await executor.run_flow("run-1", nodes, edges, on_node_status=recorder)

    assert result.status == RunStatus.ERROR
    assert result.error_type == "GraphInvalid"
    assert "Cycle" in result.error
    assert recorder.events == []
    assert result.get_node_state("a").status == NodeStatus.IDLE


@pytest.mark.asyncio
async def test_failing_status_callback_does_not_abort_run():
    executor = make_executor()
    graph = chat_graph()

    def broken(node_id, status, partial):
        raise RuntimeError("ui went away")

    result = await executor.run_flow("run-1", graph.nodes, graph.edges, on_node_status=broken)

    assert result.status == RunStatus.COMPLETED


# ---- Cancellation ----
@pytest.mark.asyncio
async def test_stop_cancels_in_flight_node_and_leaves_rest_idle():
    executor = make_executor()

    async def slow(context):
        executor.stop("user pressed stop")
        await asyncio.sleep(10)
        return {"response": "never"}

    registry = ExecutorRegistry()
    registry.register_handler("slow", lambda c: c.kind == "slow", slow)
    registry.register(BasicNodesExecutor())
    executor.registry = registry

    nodes = [
        NodeSpec(id="in", kind="input", data={"text": "hi"}),
        NodeSpec(id="work", kind="slow"),
        NodeSpec(id="out", kind="output"),
    ]
    edges = [
        EdgeSpec(id="e1", source="in", target="work"),
        EdgeSpec(id="e2", source="work", target="out"),
    ]

    result = await executor.run_flow("run-1", nodes, edges)

    assert result.status == RunStatus.CANCELLED
    assert result.error == "user pressed stop"
    assert result.get_node_state("in").status == NodeStatus.COMPLETED
    assert result.get_node_state("work").status == NodeStatus.ERROR
    assert result.get_node_state("out").status == NodeStatus.IDLE
    assert not executor.state.is_executing


@pytest.mark.asyncio
async def test_pre_cancelled_token_runs_nothing():
    executor = make_executor()
    graph = chat_graph()
    token = CancellationToken()
    token.cancel("not today")

    result = await executor.run_flow("run-1", graph.nodes, graph.edges, cancel_token=token)

    assert result.status == RunStatus.CANCELLED
    assert all(state.status == NodeStatus.IDLE for state in result.node_states.values())


def test_stop_without_run_returns_false():
    assert make_executor().stop() is False


@pytest.mark.asyncio
async def test_second_concurrent_run_is_rejected():
    release = asyncio.Event()

    async def wait_for_release(context):
        await release.wait()
        return {"response": "ok"}

    registry = ExecutorRegistry()
    registry.register_handler("wait", lambda c: True, wait_for_release)
    executor = make_executor(registry)
    nodes = [NodeSpec(id="w", kind="wait")]

    first = asyncio.create_task(executor.run_flow("run-1", nodes, []))
    await asyncio.sleep(0.01)

    assert executor.state.is_executing
    assert executor.is_node_executing("w")
    assert not executor.can_execute_node("w")
    with pytest.raises(ExecutionInProgressError):
        await executor.run_flow("run-2", nodes, [])

    release.set()
    result = await first
    assert result.status == RunStatus.COMPLETED
    assert executor.can_execute_node("w")


# ---- Inputs, parameters and flow state ----
@pytest.mark.asyncio
async def test_parameters_are_substituted_before_dispatch():
    seen = {}

    def capture(context):
        seen.update(context.parameters)
        return {}

    registry = ExecutorRegistry()
    registry.register_handler("capture", lambda c: True, capture)
    flow_state = FlowStateManager(store=InMemoryStateStore())
    flow_state.set_variable("tone", "friendly")
    executor = FlowExecutor(registry=registry, flow_state=flow_state)

    node = NodeSpec(
        id="n",
        kind="capture",
        data={
            "parameters": {
                "system_prompt": "Be {{tone}} about {{flowState.topic}} for {{user}}",
                "unknown": "{{nothing}}",
            }
        },
    )

    await executor.run_flow(
        "run-1",
        [node],
        [],
        initial_inputs={"user": "Ada"},
        flow_state_seeds=[{"key": "topic", "value": "cats"}],
    )

    assert seen["system_prompt"] == "Be friendly about cats for Ada"
    assert seen["unknown"] == "{{nothing}}"


@pytest.mark.asyncio
async def test_declared_inputs_narrow_what_a_node_sees():
    seen = {}

    def capture(context):
        seen.update(context.inputs)
        return {}

    registry = ExecutorRegistry()
    registry.register_handler("capture", lambda c: True, capture)
    executor = make_executor(registry)
    node = NodeSpec(id="n", kind="capture", data={"inputs": [{"name": "a"}]})

    await executor.run_flow("run-1", [node], [], initial_inputs={"a": 1, "b": 2})

    assert seen == {"a": 1}


@pytest.mark.asyncio
async def test_flow_state_updates_are_visible_to_later_nodes_and_result():
    seen = {}

    def writer(context):
        return ExecutionResult.ok(context.node_id, {}, flow_state_updates={"step": "one"})

    def reader(context):
        seen.update(context.flow_state)
        return {}

    registry = ExecutorRegistry()
    registry.register_handler("writer", lambda c: c.kind == "writer", writer)
    registry.register_handler("reader", lambda c: c.kind == "reader", reader)
    executor = make_executor(registry)
    nodes = [NodeSpec(id="w", kind="writer"), NodeSpec(id="r", kind="reader")]
    edges = [EdgeSpec(id="e", source="w", target="r")]

    result = await executor.run_flow("run-1", nodes, edges)

    assert seen == {"step": "one"}
    assert result.flow_state == {"step": "one"}


@pytest.mark.asyncio
async def test_persisted_flow_state_carries_between_runs():
    def counter(context):
        count = int(context.flow_state.get("count", 0)) + 1
        return ExecutionResult.ok(
            context.node_id, {"count": count}, flow_state_updates={"count": count}
        )

    registry = ExecutorRegistry()
    registry.register_handler("counter", lambda c: True, counter)
    executor = make_executor(registry)
    nodes = [NodeSpec(id="c", kind="counter")]

    first = await executor.run_flow("run-1", nodes, [], persist_state=True)
    second = await executor.run_flow("run-2", nodes, [], persist_state=True)
    fresh = await executor.run_flow(
        "run-3", nodes, [], persist_state=True, ephemeral_memory=True
    )

    assert first.global_data["count"] == 1
    assert second.global_data["count"] == 2
    assert fresh.global_data["count"] == 1


@pytest.mark.asyncio
async def test_input_node_text_uses_flow_state_tokens():
    executor = make_executor()
    graph = chat_graph(text="about {{flowState.topic}}")

    result = await executor.run_flow(
        "run-1", graph.nodes, graph.edges, flow_state_seeds={"topic": "owls"}
    )

    assert result.output == "echo: about owls"


@pytest.mark.asyncio
async def test_new_run_resets_node_states():
    executor = make_executor()
    graph = chat_graph()

    await executor.run_flow("run-1", graph.nodes, graph.edges)
    second = await executor.run_flow("run-2", graph.nodes, graph.edges)

    assert second.get_node_state("input").logs[0] == "Started execution of input"
    assert second.get_node_state("input").logs.count("Started execution of input") == 1


@pytest.mark.asyncio
async def test_run_graph_uses_graph_id_as_run_id():
    executor = make_executor()

    result = await executor.run_graph(chat_graph())

    assert result.run_id == "chat"
    assert result.execution_id.startswith("exec_")


@pytest.mark.asyncio
async def test_state_snapshot_is_detached_from_executor():
    executor = make_executor()
    graph = chat_graph()
    await executor.run_flow("run-1", graph.nodes, graph.edges)

    snapshot = executor.state
    snapshot.global_data["tampered"] = True
    snapshot.node_states["input"].error = "tampered"
    snapshot.results["agent"].outputs["response"] = "tampered"
    snapshot.results["agent"].logs.append("tampered")

    assert "tampered" not in executor.state.global_data
    assert executor.get_node_state("input").error is None
    assert executor.state.results["agent"].outputs["response"] == "echo: hello"
    assert "tampered" not in executor.state.results["agent"].logs
