"""Workflow step variants and their results.

Steps are a closed set: ``FixedStep``, ``AgentStep``, ``ConditionalStep``
and ``ParallelStep``. The runner dispatches on the step's type.
"""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Union

from emissary.errors import InvalidEntityError
from emissary.memory.entry import JsonValue, utcnow


class StepStatus(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class FixedFunction(str, enum.Enum):
    ECHO = "echo"
    TRANSFORM = "transform"
    MERGE = "merge"


class Transformation(str, enum.Enum):
    UPPERCASE = "uppercase"
    LOWERCASE = "lowercase"
    REVERSE = "reverse"


def _require_name(name: str) -> None:
    if not name or not name.strip():
        raise InvalidEntityError("Step name cannot be empty")


@dataclass
class FixedStep:
    """Applies a built-in pure function to the step input."""

    name: str
    function: FixedFunction
    transformation: Transformation | None = None

    def __post_init__(self) -> None:
        _require_name(self.name)
        try:
            self.function = FixedFunction(self.function)
            if self.transformation is not None:
                self.transformation = Transformation(self.transformation)
        except ValueError as e:
            raise InvalidEntityError(f"Step {self.name}: {e}") from e


@dataclass
class AgentStep:
    """Delegates to the agent executor."""

    name: str
    agent_id: str  # id or name in the agent registry
    task_description: str
    tools: list[str] | None = None
    max_iterations: int = 5
    timeout: float = 300.0

    def __post_init__(self) -> None:
        _require_name(self.name)
        if not self.task_description or not self.task_description.strip():
            raise InvalidEntityError(f"Step {self.name}: task description cannot be empty")


@dataclass
class ConditionalStep:
    """Emits ``then_output`` or ``else_output`` depending on ``condition``.

    Conditions are ``<a> == <b>``, ``<a> != <b>`` or a single operand
    tested for truthiness. Operands are ``input``, ``context.<key>`` or a
    literal. With no ``else_output`` an unmet condition skips the step.
    """

    name: str
    condition: str
    then_output: JsonValue = "condition met"
    else_output: JsonValue = None

    def __post_init__(self) -> None:
        _require_name(self.name)
        if not self.condition or not self.condition.strip():
            raise InvalidEntityError(f"Step {self.name}: condition cannot be empty")

    def evaluate(self, input: JsonValue, context: dict[str, JsonValue]) -> bool:
        condition = self.condition
        if "==" in condition:
            left, _, right = condition.partition("==")
            return _loose_equal(_operand(left, input, context), _operand(right, input, context))
        if "!=" in condition:
            left, _, right = condition.partition("!=")
            return not _loose_equal(
                _operand(left, input, context), _operand(right, input, context)
            )
        return bool(_operand(condition, input, context))


@dataclass
class ParallelStep:
    """Runs sub-steps concurrently; output is keyed by sub-step name."""

    name: str
    steps: list[Step] = field(default_factory=list)

    def __post_init__(self) -> None:
        _require_name(self.name)
        names = [s.name for s in self.steps]
        if len(names) != len(set(names)):
            raise InvalidEntityError(f"Step {self.name}: sub-step names must be unique")


Step = Union[FixedStep, AgentStep, ConditionalStep, ParallelStep]


@dataclass
class StepResult:
    step_name: str
    status: StepStatus
    output: JsonValue = None
    error: str | None = None
    started_at: datetime = field(default_factory=utcnow)
    completed_at: datetime = field(default_factory=utcnow)

    @property
    def duration(self) -> timedelta:
        return self.completed_at - self.started_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "step": self.step_name,
            "status": self.status.value,
            "output": self.output,
            "error": self.error,
            "duration_ms": int(self.duration.total_seconds() * 1000),
        }


@dataclass
class StepContext:
    """What a step sees: its input, the shared context, and earlier results."""

    input: JsonValue
    context: dict[str, JsonValue]
    previous: list[StepResult] = field(default_factory=list)


def _operand(token: str, input: JsonValue, context: dict[str, JsonValue]) -> JsonValue:
    token = token.strip()
    if token == "input":
        return input
    if token.startswith("context."):
        return context.get(token[len("context."):])
    if len(token) >= 2 and token[0] == token[-1] and token[0] in "'\"":
        return token[1:-1]
    return token


def _as_text(value: JsonValue) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, default=str)


def _loose_equal(a: JsonValue, b: JsonValue) -> bool:
    # Literals are text, so compare across types by serialized form
    if a is None or b is None:
        return a is b
    return a == b or _as_text(a) == _as_text(b)


def apply_transformation(value: JsonValue, transformation: Transformation | None) -> JsonValue:
    """String transforms; non-string input passes through unchanged."""
    if not isinstance(value, str) or transformation is None:
        return value
    if transformation is Transformation.UPPERCASE:
        return value.upper()
    if transformation is Transformation.LOWERCASE:
        return value.lower()
    if transformation is Transformation.REVERSE:
        return value[::-1]
    return value
