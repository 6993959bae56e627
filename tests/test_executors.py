"""
Tests for the built-in executor backends: basic node kinds, Python functions
and the LLM agent.
"""

import asyncio
import json

import pytest

from canvasflow.config import LLMConfig
from canvasflow.errors import ExecutorError
from canvasflow.executors import create_default_registry
from canvasflow.executors.base import ExecutionContext
from canvasflow.executors.basic import BasicNodesExecutor
from canvasflow.executors.functions import FunctionExecutor
from canvasflow.executors.llm_agent import LLMAgentExecutor
from canvasflow.llm.mock import MockLLMProvider
from canvasflow.llm.provider import LLMProvider, LLMResponse
from canvasflow.runtime.cancellation import CancellationToken


def llm_config(**overrides) -> LLMConfig:
    values = {
        "model": "mock",
        "api_key": None,
        "api_base": None,
        "temperature": 0.0,
        "max_tokens": 256,
        "timeout_seconds": None,
    }
    values.update(overrides)
    return LLMConfig(**values)


# ---- Basic node kinds ----
@pytest.mark.asyncio
async def test_basic_input_passes_text_through():
    executor = BasicNodesExecutor()

    result = await executor.execute(
        ExecutionContext(node_id="in", kind="input", inputs={"text": "hello"})
    )

    assert result.outputs["response"] == "hello"
    assert result.outputs["prompt"] == "hello"


@pytest.mark.asyncio
async def test_basic_agent_echoes_prompt():
    executor = BasicNodesExecutor()

    result = await executor.execute(
        ExecutionContext(node_id="ag", kind="agent", inputs={"prompt": "hello"})
    )

    assert result.outputs["response"] == "echo: hello"


@pytest.mark.asyncio
async def test_basic_output_prefers_response_and_falls_back():
    executor = BasicNodesExecutor()

    with_response = await executor.execute(
        ExecutionContext(node_id="out", kind="output", inputs={"response": "done", "input": "x"})
    )
    empty = await executor.execute(ExecutionContext(node_id="out", kind="output"))

    assert with_response.outputs["display"] == "done"
    assert empty.outputs["display"] == "No output"


@pytest.mark.asyncio
async def test_basic_prompt_renders_template_from_inputs():
    executor = BasicNodesExecutor()

    result = await executor.execute(
        ExecutionContext(
            node_id="p",
            kind="prompt",
            inputs={"topic": "owls"},
            parameters={"template": "Tell me about {{topic}} and {{other}}"},
        )
    )

    assert result.outputs["prompt"] == "Tell me about owls and {{other}}"


@pytest.mark.asyncio
async def test_basic_tool_summarises_inputs():
    executor = BasicNodesExecutor()

    result = await executor.execute(
        ExecutionContext(node_id="t", kind="tool", inputs={"b": 2, "a": 1})
    )

    payload = json.dumps({"a": 1, "b": 2}, sort_keys=True)
    assert result.outputs["result"] == f"Tool executed with input: {payload}"


def test_basic_matches_on_component_case_insensitively():
    executor = BasicNodesExecutor()

    assert executor.can_execute(ExecutionContext(node_id="n", kind="Output"))
    assert not executor.can_execute(ExecutionContext(node_id="n", kind="webhook"))


# ---- Function executor ----
@pytest.mark.asyncio
async def test_function_executor_runs_sync_function_with_filtered_kwargs():
    functions = FunctionExecutor()

    @functions.register("word_count", description="Count words")
    def word_count(inputs):
        return {"count": len(inputs["text"].split())}

    context = ExecutionContext(node_id="wc", kind="word_count", inputs={"text": "a b c"})
    assert functions.can_execute(context)

    result = await functions.execute(context)

    assert result.outputs == {"count": 3}
    assert functions.kinds() == ["word_count"]


@pytest.mark.asyncio
async def test_function_executor_wraps_scalar_results():
    functions = FunctionExecutor()

    async def shout(inputs, parameters):
        return f"{inputs['text']}{parameters.get('suffix', '')}".upper()

    functions.register("shout", shout)

    result = await functions.execute(
        ExecutionContext(
            node_id="s", kind="shout", inputs={"text": "hi"}, parameters={"suffix": "!"}
        )
    )

    assert result.outputs == {"result": "HI!", "response": "HI!"}


@pytest.mark.asyncio
async def test_function_executor_passes_context_to_kwargs_functions():
    functions = FunctionExecutor()
    seen = {}

    def spy(**kwargs):
        seen.update(kwargs)
        return None

    functions.register("spy", spy)
    await functions.execute(ExecutionContext(node_id="s", kind="spy"))

    assert set(seen) == {"inputs", "parameters", "context"}


# ---- LLM agent ----
@pytest.mark.asyncio
async def test_llm_agent_uses_provider_and_parameters():
    provider = MockLLMProvider()
    executor = LLMAgentExecutor(provider, config=llm_config())

    result = await executor.execute(
        ExecutionContext(
            node_id="ag",
            kind="agent",
            inputs={"topic": "owls"},
            parameters={"prompt": "Explain {{topic}}", "system_prompt": "Be brief"},
        )
    )

    assert result.outputs["response"] == "echo: Explain owls"
    assert result.outputs["model"] == "mock"
    assert provider.calls[0]["system"] == "Be brief"
    assert provider.calls[0]["max_tokens"] == 256


@pytest.mark.asyncio
async def test_llm_agent_without_prompt_fails():
    executor = LLMAgentExecutor(MockLLMProvider(), config=llm_config())

    result = await executor.execute(ExecutionContext(node_id="ag", kind="agent"))

    assert not result.success
    assert "no prompt" in result.error


@pytest.mark.asyncio
async def test_llm_agent_respects_cancelled_token():
    provider = MockLLMProvider()
    token = CancellationToken()
    token.cancel()
    executor = LLMAgentExecutor(provider, config=llm_config())

    result = await executor.execute(
        ExecutionContext(node_id="ag", kind="agent", inputs={"prompt": "x"}, cancel_token=token)
    )

    assert not result.success
    assert provider.calls == []


class SlowProvider(LLMProvider):
    async def acomplete(self, messages, system="", max_tokens=1024, temperature=None):
        await asyncio.sleep(5)
        return LLMResponse(content="late", model="slow")


@pytest.mark.asyncio
async def test_llm_agent_timeout_raises_executor_error():
    executor = LLMAgentExecutor(SlowProvider(), config=llm_config(timeout_seconds=0.01))

    with pytest.raises(ExecutorError, match="timed out"):
        await executor.execute(
            ExecutionContext(node_id="ag", kind="agent", inputs={"prompt": "x"})
        )


# ---- Default registry ----
def test_default_registry_order():
    functions = FunctionExecutor()
    registry = create_default_registry(
        functions=functions, llm=MockLLMProvider(), llm_config=llm_config()
    )

    assert registry.names() == ["functions", "llm-agent", "basic"]
    agent = ExecutionContext(node_id="a", kind="agent")
    assert registry.dispatch(agent).name == "llm-agent"


def test_default_registry_without_llm_falls_back_to_demo_agent():
    registry = create_default_registry()

    assert registry.names() == ["basic"]


# ---- LiteLLM provider ----
class FakeCompletion:
    def __init__(self, content: str):
        message = type("Message", (), {"content": content})()
        choice = type("Choice", (), {"message": message, "finish_reason": "stop"})()
        self.choices = [choice]
        self.usage = type("Usage", (), {"prompt_tokens": 7, "completion_tokens": 3})()
        self.model = "openai/gpt-4o-mini"


@pytest.mark.asyncio
async def test_litellm_provider_builds_request(monkeypatch):
    import litellm

    from canvasflow.llm.litellm import LiteLLMProvider

    captured = {}

    async def fake_acompletion(**kwargs):
        captured.update(kwargs)
        return FakeCompletion("hi back")

    monkeypatch.setattr(litellm, "acompletion", fake_acompletion)
    provider = LiteLLMProvider.from_config(
        llm_config(model="openai/gpt-4o-mini", api_key="sk-test")
    )

    response = await provider.acomplete(
        [{"role": "user", "content": "hi"}], system="Be brief", max_tokens=50, temperature=0.1
    )

    assert response.content == "hi back"
    assert response.input_tokens == 7
    assert response.output_tokens == 3
    assert captured["messages"][0] == {"role": "system", "content": "Be brief"}
    assert captured["max_tokens"] == 50
    assert captured["temperature"] == 0.1
    assert captured["api_key"] == "sk-test"
    assert "api_base" not in captured
