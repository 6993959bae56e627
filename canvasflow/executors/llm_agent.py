"""
LLM-backed agent nodes.

The agent's user message comes from its `prompt` parameter when set
(rendered against the node's inputs) or else from the cumulative inputs
(`prompt`, `input`, `text`, `message`). `system_prompt`, `max_tokens`,
`temperature` and `timeout_seconds` parameters override the configured
defaults per node.
"""

import asyncio
import logging
from typing import Any

from canvasflow.config import LLMConfig
from canvasflow.errors import ExecutorError
from canvasflow.executors.base import ExecutionContext, ExecutionResult
from canvasflow.llm.provider import LLMProvider
from canvasflow.runtime.flow_state import render_template

logger = logging.getLogger(__name__)

AGENT_KINDS = frozenset({"agent", "llm", "conversational-agent", "react-agent"})


class LLMAgentExecutor:
    """Answers agent nodes with an LLMProvider."""

    name = "llm-agent"

    def __init__(
        self,
        provider: LLMProvider,
        config: LLMConfig | None = None,
        kinds: frozenset[str] | None = None,
    ):
        self.provider = provider
        self.config = config or LLMConfig()
        self.kinds = kinds or AGENT_KINDS

    def can_execute(self, context: ExecutionContext) -> bool:
        return context.component.lower() in self.kinds

    def _build_prompt(self, context: ExecutionContext) -> str:
        template = context.parameters.get("prompt")
        if template:
            return render_template(str(template), context.inputs)
        return str(context.first_input("prompt", "input", "text", "message", default=""))

    def _timeout(self, context: ExecutionContext) -> float | None:
        value: Any = context.parameters.get("timeout_seconds", self.config.timeout_seconds)
        return float(value) if value else None

    async def execute(self, context: ExecutionContext) -> ExecutionResult:
        prompt = self._build_prompt(context)
        if not prompt:
            return ExecutionResult.failed(context.node_id, "Agent node received no prompt")
        if context.cancelled:
            return ExecutionResult.failed(context.node_id, "Run cancelled before agent call")

        system = str(context.parameters.get("system_prompt", ""))
        max_tokens = int(context.parameters.get("max_tokens", self.config.max_tokens))
        temperature = context.parameters.get("temperature", self.config.temperature)
        timeout = self._timeout(context)

        call = self.provider.ask(
            prompt,
            system=system,
            max_tokens=max_tokens,
            temperature=temperature,
        )
        try:
            response = await asyncio.wait_for(call, timeout=timeout)
        except TimeoutError as e:
            raise ExecutorError(
                f"LLM call timed out after {timeout}s", node_id=context.node_id
            ) from e

        logger.info(
            f"Agent {context.node_id} answered via {response.model}",
            extra={"event": "llm_response", "node_id": context.node_id},
        )
        return ExecutionResult.ok(
            context.node_id,
            {
                "response": response.content,
                "result": response.content,
                "model": response.model,
                "usage": response.usage,
            },
            logs=[
                f"Agent input: {prompt}",
                f"Agent response ({response.model}): {response.content}",
            ],
        )
