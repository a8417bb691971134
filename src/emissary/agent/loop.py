"""The agent execution loop.

Each iteration asks the model what to do next. A tool call is executed,
its observation recorded and remembered, and the loop goes round again.
A reply without a tool call is the final answer. The loop is bounded by
an iteration count (hard) and a wall-clock timeout (checked between
iterations, so a slow model call can overrun it).
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from emissary.agent.agent import Agent
from emissary.agent.task import FINAL_ANSWER, Constraint, Iteration, Task
from emissary.config import AgentDefaults
from emissary.errors import InvalidEntityError
from emissary.llm.message import CompletionRequest, Message, ToolCall, ToolDefinition
from emissary.llm.provider import ChatProvider
from emissary.memory.base import MemoryStore
from emissary.memory.entry import (
    JsonValue,
    MemoryEntry,
    MemoryImportance,
    MemoryQuery,
    MemoryType,
    utcnow,
)
from emissary.tool.base import ToolResult
from emissary.tool.registry import ToolRegistry

logger = logging.getLogger(__name__)

MAX_ITERATIONS_ERROR = "Maximum iterations reached"
MEMORY_CONTEXT_LIMIT = 5

DEFAULT_SYSTEM_PROMPT = """\
You are {name}. {description}

When solving tasks:
1. Think step by step about what you need to do
2. Use available tools when needed
3. When you have the final answer, respond directly without using tools

Your capabilities: {capabilities}"""


@dataclass
class ExecutionOptions:
    """Per-call overrides. Unset values fall back to the agent, then defaults."""

    max_iterations: int | None = None
    timeout: float | None = None  # seconds
    tools: list[str] | None = None
    temperature: float | None = None
    model: str | None = None


@dataclass
class ExecutionResult:
    """Outcome of one execution, including the full iteration trail.

    Failed executions still carry every iteration recorded before the
    failure.
    """

    execution_id: str
    success: bool
    output: JsonValue
    iterations: list[Iteration]
    task: Task | None  # None when the task itself was rejected
    started_at: datetime
    completed_at: datetime
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def duration(self) -> timedelta:
        return self.completed_at - self.started_at

    @property
    def iteration_count(self) -> int:
        return len(self.iterations)

    def to_dict(self) -> dict[str, Any]:
        return {
            "execution_id": self.execution_id,
            "success": self.success,
            "output": self.output,
            "error": self.error,
            "iterations": [i.to_dict() for i in self.iterations],
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat(),
            "duration_ms": int(self.duration.total_seconds() * 1000),
        }


IterationCallback = Callable[[Iteration], None]


def new_execution_id() -> str:
    return f"exec-{uuid.uuid4().hex[:12]}"


def _first(*values: Any) -> Any:
    return next((v for v in values if v is not None), None)


class AgentExecutor:
    """Runs agents against tasks.

    Collaborators are injected: the model gateway, the tool registry,
    and optionally a memory store (usually a ``MemoryManager``) that
    receives one episodic entry per tool execution.
    """

    def __init__(
        self,
        provider: ChatProvider,
        tool_registry: ToolRegistry,
        memory: MemoryStore | None = None,
        defaults: AgentDefaults | None = None,
    ) -> None:
        self.provider = provider
        self.tool_registry = tool_registry
        self.memory = memory
        self.defaults = defaults or AgentDefaults()

    async def execute(
        self,
        agent: Agent,
        task_description: str,
        options: ExecutionOptions | None = None,
        context: dict[str, JsonValue] | None = None,
        on_iteration: IterationCallback | None = None,
    ) -> ExecutionResult:
        """Run ``agent`` on ``task_description`` until it answers or runs out of budget.

        Never raises for failures: an invalid task, or a model, memory or
        callback error, ends the execution with ``success=False``.
        """
        options = options or ExecutionOptions()
        cfg = agent.config

        max_iterations: int = _first(
            options.max_iterations, cfg.max_iterations, self.defaults.max_iterations
        )
        timeout: float = _first(options.timeout, cfg.timeout, self.defaults.timeout)
        temperature: float = _first(
            options.temperature, cfg.temperature, self.defaults.temperature
        )
        model = _first(options.model, cfg.model)

        try:
            task = Task(
                task_description,
                context=dict(context or {}),
                constraints=[
                    Constraint.max_iterations(max_iterations),
                    Constraint.timeout(timeout),
                ],
            )
        except InvalidEntityError as e:
            logger.warning("Rejected task for agent %s: %s", agent.name, e.message)
            now = utcnow()
            return ExecutionResult(
                execution_id=new_execution_id(),
                success=False,
                output=None,
                iterations=[],
                task=None,
                started_at=now,
                completed_at=now,
                error=e.message,
                metadata={"agent_id": agent.id, "agent_name": agent.name},
            )

        # Names that are not registered are dropped silently
        tools = self.tool_registry.resolve(_first(options.tools, cfg.tools))
        definitions = [t.definition() for t in tools]

        execution_id = new_execution_id()
        started_at = utcnow()
        deadline = time.monotonic() + timeout
        iterations: list[Iteration] = []
        output: JsonValue = None
        error: str | None = None
        completed = False

        logger.info(
            "Starting agent execution %s (agent: %s, tools: %d, max iterations: %d)",
            execution_id,
            agent.name,
            len(definitions),
            max_iterations,
        )
        task.start()

        try:
            while not completed and len(iterations) < max_iterations:
                if time.monotonic() > deadline:
                    error = f"Execution timed out after {timeout:g}s"
                    logger.warning("Execution %s: %s", execution_id, error)
                    break

                number = len(iterations) + 1
                logger.debug(
                    "Agent %s: iteration %d/%d", agent.name, number, max_iterations
                )
                iteration = await self._run_iteration(
                    number,
                    agent,
                    task,
                    iterations,
                    definitions,
                    model=model,
                    temperature=temperature,
                    execution_id=execution_id,
                )
                iterations.append(iteration)
                if on_iteration:
                    on_iteration(iteration)

                if iteration.is_final:
                    completed = True
                    output = iteration.observation

            if not completed and error is None:
                logger.warning(
                    "Agent %s hit max iterations (%d) without an answer",
                    agent.name,
                    max_iterations,
                )
                error = MAX_ITERATIONS_ERROR
        except asyncio.CancelledError:
            task.cancel()
            raise
        except Exception as e:
            logger.error(
                "Execution %s aborted in iteration %d",
                execution_id,
                len(iterations) + 1,
                exc_info=True,
            )
            error = str(e) or type(e).__name__

        if completed:
            task.complete(output)
        else:
            task.fail(error or MAX_ITERATIONS_ERROR)

        completed_at = utcnow()
        logger.info(
            "Agent execution %s finished: %s after %d iteration(s)",
            execution_id,
            "success" if completed else "failed",
            len(iterations),
        )
        return ExecutionResult(
            execution_id=execution_id,
            success=completed,
            output=output,
            iterations=iterations,
            task=task,
            started_at=started_at,
            completed_at=completed_at,
            error=None if completed else error,
            metadata={"agent_id": agent.id, "agent_name": agent.name},
        )

    async def _run_iteration(
        self,
        number: int,
        agent: Agent,
        task: Task,
        history: list[Iteration],
        definitions: list[ToolDefinition],
        *,
        model: str | None,
        temperature: float,
        execution_id: str,
    ) -> Iteration:
        messages = await self._build_messages(agent, task, history)
        request = CompletionRequest(
            messages=messages,
            model=model,
            temperature=temperature,
            tools=definitions or None,
            tool_choice="auto" if definitions else None,
        )
        response = await self.provider.complete(request)
        thought = response.content

        if not response.tool_calls:
            logger.info("Agent %s provided final answer", agent.name)
            return Iteration(
                number=number,
                thought=thought,
                action=FINAL_ANSWER,
                action_input={},
                observation=thought,
            )

        # Only the first tool call of a turn is honored
        call = response.tool_calls[0]
        if len(response.tool_calls) > 1:
            logger.debug(
                "Ignoring %d extra tool call(s) in one turn", len(response.tool_calls) - 1
            )

        logger.debug("Agent %s calling tool: %s", agent.name, call.name)
        result = await self.tool_registry.execute(call.name, call.arguments)
        if not result.success:
            logger.warning("Tool %s failed: %s", call.name, result.error)

        await self._remember(call, result, execution_id)

        return Iteration(
            number=number,
            thought=thought,
            action=call.name,
            action_input=dict(call.arguments),
            observation=result.observation(),
        )

    async def _build_messages(
        self, agent: Agent, task: Task, history: list[Iteration]
    ) -> list[Message]:
        system_prompt = agent.config.system_prompt or DEFAULT_SYSTEM_PROMPT.format(
            name=agent.name,
            description=agent.description,
            capabilities=", ".join(sorted(c.value for c in agent.capabilities)),
        )
        messages = [Message.system(system_prompt), Message.user(task.description)]

        if self.memory is not None:
            memories = await self.memory.query(
                MemoryQuery(
                    type=MemoryType.EPISODIC,
                    min_importance=MemoryImportance.MEDIUM,
                    limit=MEMORY_CONTEXT_LIMIT,
                )
            )
            if memories:
                lines = "\n".join(_describe_memory(m) for m in memories)
                messages.append(Message.system(f"Relevant past experience:\n{lines}"))

        for iteration in history:
            messages.append(Message.assistant(iteration.thought))
            if not iteration.is_final:
                messages.append(Message.user(f"Tool result: {iteration.observation}"))

        return messages

    async def _remember(self, call: ToolCall, result: ToolResult, execution_id: str) -> None:
        if self.memory is None:
            return
        await self.memory.store(
            MemoryType.EPISODIC,
            {
                "type": "tool_execution",
                "tool": call.name,
                "input": call.arguments,
                "output": result.output,
                "success": result.success,
                "timestamp": utcnow().isoformat(),
            },
            MemoryImportance.MEDIUM if result.success else MemoryImportance.LOW,
            ["tool", call.name, execution_id],
        )


def _describe_memory(entry: MemoryEntry) -> str:
    content = entry.content
    if isinstance(content, dict) and "tool" in content:
        outcome = "succeeded" if content.get("success") else "failed"
        return f"Past observation: Used {content['tool']} - {outcome}"
    return f"Past observation: {json.dumps(content, ensure_ascii=False, default=str)}"
