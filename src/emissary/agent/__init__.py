"""Agent system — definitions, tasks, registry, execution loop."""

from emissary.agent.agent import Agent, AgentConfig, Capability, discover_agents
from emissary.agent.loop import (
    AgentExecutor,
    ExecutionOptions,
    ExecutionResult,
    MAX_ITERATIONS_ERROR,
)
from emissary.agent.registry import AgentRegistry
from emissary.agent.task import (
    FINAL_ANSWER,
    Constraint,
    ConstraintType,
    Iteration,
    Task,
    TaskPriority,
    TaskResult,
    TaskStatus,
)

__all__ = [
    "Agent",
    "AgentConfig",
    "AgentExecutor",
    "AgentRegistry",
    "Capability",
    "Constraint",
    "ConstraintType",
    "ExecutionOptions",
    "ExecutionResult",
    "FINAL_ANSWER",
    "Iteration",
    "MAX_ITERATIONS_ERROR",
    "Task",
    "TaskPriority",
    "TaskResult",
    "TaskStatus",
    "discover_agents",
]
