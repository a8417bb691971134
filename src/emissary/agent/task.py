"""Task lifecycle and the per-iteration audit record."""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from emissary.errors import InvalidEntityError, TaskStateError
from emissary.memory.entry import JsonValue, utcnow

FINAL_ANSWER = "final_answer"


class TaskStatus(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED)


class TaskPriority(str, enum.Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


class ConstraintType(str, enum.Enum):
    MAX_ITERATIONS = "max-iterations"
    TIMEOUT = "timeout"
    CUSTOM = "custom"


@dataclass(frozen=True)
class Constraint:
    type: ConstraintType
    value: float | str
    description: str | None = None

    @classmethod
    def max_iterations(cls, value: int, description: str | None = None) -> Constraint:
        return cls(
            ConstraintType.MAX_ITERATIONS,
            value,
            description or f"Maximum {value} iterations",
        )

    @classmethod
    def timeout(cls, seconds: float, description: str | None = None) -> Constraint:
        return cls(
            ConstraintType.TIMEOUT,
            seconds,
            description or f"Timeout after {seconds}s",
        )

    @classmethod
    def custom(cls, value: str, description: str | None = None) -> Constraint:
        return cls(ConstraintType.CUSTOM, value, description)


@dataclass
class TaskResult:
    success: bool
    output: JsonValue = None
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


def new_task_id() -> str:
    return f"task-{uuid.uuid4().hex[:12]}"


@dataclass
class Task:
    """A unit of work handed to an agent.

    Status moves pending -> running -> completed | failed | cancelled.
    Terminal states are final; any further transition raises
    ``TaskStateError``.
    """

    description: str
    context: dict[str, JsonValue] = field(default_factory=dict)
    constraints: list[Constraint] = field(default_factory=list)
    priority: TaskPriority = TaskPriority.NORMAL
    id: str = field(default_factory=new_task_id)
    status: TaskStatus = field(default=TaskStatus.PENDING, init=False)
    result: TaskResult | None = field(default=None, init=False)
    created_at: datetime = field(default_factory=utcnow, init=False)
    updated_at: datetime = field(default_factory=utcnow, init=False)
    started_at: datetime | None = field(default=None, init=False)
    completed_at: datetime | None = field(default=None, init=False)

    def __post_init__(self) -> None:
        if not self.description or not self.description.strip():
            raise InvalidEntityError("Task description cannot be empty")

    @property
    def is_complete(self) -> bool:
        return self.status.is_terminal

    @property
    def is_running(self) -> bool:
        return self.status is TaskStatus.RUNNING

    @property
    def duration(self) -> timedelta | None:
        if self.started_at is None or self.completed_at is None:
            return None
        return self.completed_at - self.started_at

    def update_status(self, status: TaskStatus) -> None:
        if self.status.is_terminal:
            raise TaskStateError(
                f"Task {self.id} is already {self.status.value}",
                {"task_id": self.id, "from": self.status.value, "to": status.value},
            )

        now = utcnow()
        self.status = status
        self.updated_at = now
        if status is TaskStatus.RUNNING and self.started_at is None:
            self.started_at = now
        if status.is_terminal:
            self.completed_at = now

    def start(self) -> None:
        self.update_status(TaskStatus.RUNNING)

    def set_result(self, result: TaskResult) -> None:
        self.update_status(TaskStatus.COMPLETED if result.success else TaskStatus.FAILED)
        self.result = result

    def complete(self, output: JsonValue) -> None:
        self.set_result(TaskResult(success=True, output=output))

    def fail(self, error: str) -> None:
        self.set_result(TaskResult(success=False, error=error))

    def cancel(self) -> None:
        self.update_status(TaskStatus.CANCELLED)

    def get_constraint(self, type: ConstraintType) -> Constraint | None:
        return next((c for c in self.constraints if c.type is type), None)

    def add_constraint(self, constraint: Constraint) -> None:
        self.constraints.append(constraint)
        self.updated_at = utcnow()

    def update_context(self, **values: JsonValue) -> None:
        self.context.update(values)
        self.updated_at = utcnow()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "status": self.status.value,
            "priority": self.priority.value,
            "context": self.context,
            "constraints": [
                {"type": c.type.value, "value": c.value, "description": c.description}
                for c in self.constraints
            ],
            "result": (
                {"success": self.result.success, "output": self.result.output, "error": self.result.error}
                if self.result
                else None
            ),
        }


@dataclass(frozen=True)
class Iteration:
    """One pass of the agent loop. Never mutated once appended."""

    number: int
    thought: str
    action: str  # tool name, or FINAL_ANSWER
    action_input: dict[str, Any]
    observation: str
    timestamp: datetime = field(default_factory=utcnow)

    @property
    def is_final(self) -> bool:
        return self.action == FINAL_ANSWER

    def to_dict(self) -> dict[str, Any]:
        return {
            "number": self.number,
            "thought": self.thought,
            "action": self.action,
            "action_input": self.action_input,
            "observation": self.observation,
            "timestamp": self.timestamp.isoformat(),
        }
