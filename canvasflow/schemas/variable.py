"""
Variable Schema - named values usable as {{tokens}} in node parameters.

- static: set by the user
- runtime: read from the environment when registered
- dynamic: recomputed by the flow state manager (date, time, timestamp, session)
"""

from enum import StrEnum

from pydantic import BaseModel, Field


class VariableKind(StrEnum):
    """How a variable gets its value."""

    STATIC = "static"
    RUNTIME = "runtime"
    DYNAMIC = "dynamic"


class Variable(BaseModel):
    """A named variable."""

    name: str
    value: str
    kind: VariableKind = VariableKind.STATIC
    description: str | None = None
    category: str | None = Field(default=None, description="Grouping for listings")

    model_config = {"extra": "allow"}
