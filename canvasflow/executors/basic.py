"""
Built-in node kinds: start, input, agent (demo), output, prompt, function, tool.

BasicNodesExecutor is the generic fallback and should be registered last.
Its agent handling is a demo mode that echoes the prompt; register an
LLMAgentExecutor before it to answer agent nodes with a real model.
"""

import json
import logging
from datetime import datetime
from typing import Any

from canvasflow.executors.base import ExecutionContext, ExecutionResult
from canvasflow.runtime.flow_state import render_template

logger = logging.getLogger(__name__)

BASIC_KINDS = frozenset({"start", "input", "agent", "output", "prompt", "function", "tool"})


class BasicNodesExecutor:
    """Handles the basic canvas node kinds without any external service."""

    name = "basic"

    def __init__(self, kinds: frozenset[str] | None = None):
        self.kinds = kinds or BASIC_KINDS

    def can_execute(self, context: ExecutionContext) -> bool:
        return context.component.lower() in self.kinds

    async def execute(self, context: ExecutionContext) -> ExecutionResult:
        kind = context.component.lower()
        logs = [f"Executing {kind} node: {context.node_id}"]

        handler = getattr(self, f"_run_{kind}")
        outputs = handler(context, logs)

        logs.append(f"{kind} node completed")
        return ExecutionResult.ok(context.node_id, outputs, logs=logs)

    def _run_start(self, context: ExecutionContext, logs: list[str]) -> dict[str, Any]:
        return {"message": "Workflow started", "timestamp": datetime.now().isoformat()}

    def _run_input(self, context: ExecutionContext, logs: list[str]) -> dict[str, Any]:
        text = context.first_input("text", "prompt", "input", default="")
        logs.append(f"Input text: {text}")
        return {"response": text, "text": text, "prompt": text, "input": text}

    def _run_agent(self, context: ExecutionContext, logs: list[str]) -> dict[str, Any]:
        prompt = context.first_input("prompt", "input", "text", "message", default="")
        response = f"echo: {prompt}"
        logs.append(f"Agent input (demo mode): {prompt}")
        return {"response": response, "result": response}

    def _run_output(self, context: ExecutionContext, logs: list[str]) -> dict[str, Any]:
        value = context.first_input("response", "result", "input", default="No output")
        logs.append(f"Final output: {value}")
        return {"response": value, "result": value, "display": value}

    def _run_prompt(self, context: ExecutionContext, logs: list[str]) -> dict[str, Any]:
        template = context.parameters.get("template") or context.first_input(
            "template", "prompt", default=""
        )
        prompt = render_template(str(template), context.inputs)
        logs.append(f"Processed prompt: {prompt}")
        return {"response": prompt, "prompt": prompt}

    def _run_function(self, context: ExecutionContext, logs: list[str]) -> dict[str, Any]:
        summary = f"Function processed: {json.dumps(context.inputs, default=str, sort_keys=True)}"
        logs.append(summary)
        return {"response": summary, "result": summary}

    def _run_tool(self, context: ExecutionContext, logs: list[str]) -> dict[str, Any]:
        payload = json.dumps(context.inputs, default=str, sort_keys=True)
        summary = f"Tool executed with input: {payload}"
        logs.append(summary)
        return {"response": summary, "result": summary}
