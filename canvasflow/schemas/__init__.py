"""Schemas for persisted and shared data."""

from canvasflow.schemas.variable import Variable, VariableKind

__all__ = ["Variable", "VariableKind"]
