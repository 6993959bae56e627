"""Run-scoped state: flow state, variables and cancellation."""

from canvasflow.runtime.cancellation import CancellationToken
from canvasflow.runtime.flow_state import FlowStateManager

__all__ = ["CancellationToken", "FlowStateManager"]
