"""Sequential workflow runner.

Steps run in order. The first step receives the workflow input; every
later step receives the previous step's output. After each step its
output is also published into the shared context under the step's name
and under ``last_output``. The first failed step fails the workflow.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from emissary.agent.loop import AgentExecutor, ExecutionOptions
from emissary.agent.registry import AgentRegistry
from emissary.errors import InvalidEntityError, WorkflowError
from emissary.memory.entry import JsonValue, utcnow
from emissary.workflow.steps import (
    AgentStep,
    ConditionalStep,
    FixedFunction,
    FixedStep,
    ParallelStep,
    Step,
    StepContext,
    StepResult,
    StepStatus,
    apply_transformation,
)

logger = logging.getLogger(__name__)

LAST_OUTPUT_KEY = "last_output"


class WorkflowStatus(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (
            WorkflowStatus.COMPLETED,
            WorkflowStatus.FAILED,
            WorkflowStatus.CANCELLED,
        )


@dataclass
class Workflow:
    name: str
    description: str
    steps: list[Step] = field(default_factory=list)
    id: str = field(default_factory=lambda: f"wf-{uuid.uuid4().hex[:12]}")

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise InvalidEntityError("Workflow name cannot be empty")
        if not self.description or not self.description.strip():
            raise InvalidEntityError("Workflow description cannot be empty")
        names = [s.name for s in self.steps]
        if len(names) != len(set(names)):
            raise InvalidEntityError(f"Workflow {self.name}: step names must be unique")


@dataclass
class WorkflowExecution:
    """Live state of one workflow run."""

    execution_id: str
    workflow: Workflow
    input: JsonValue
    context: dict[str, JsonValue]
    status: WorkflowStatus = WorkflowStatus.PENDING
    step_results: list[StepResult] = field(default_factory=list)
    current_step: int = 0
    output: JsonValue = None
    error: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def progress(self) -> float:
        total = len(self.workflow.steps)
        return self.current_step / total if total else 1.0

    @property
    def duration(self) -> timedelta | None:
        if self.started_at is None or self.completed_at is None:
            return None
        return self.completed_at - self.started_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "execution_id": self.execution_id,
            "workflow_id": self.workflow.id,
            "status": self.status.value,
            "progress": self.progress,
            "output": self.output,
            "error": self.error,
            "steps": [r.to_dict() for r in self.step_results],
        }


class WorkflowRunner:
    """Runs workflows against an agent executor and agent registry."""

    def __init__(self, executor: AgentExecutor, agents: AgentRegistry) -> None:
        self.executor = executor
        self.agents = agents
        self._executions: dict[str, WorkflowExecution] = {}
        self._tasks: dict[str, asyncio.Task[WorkflowExecution]] = {}

    async def run(
        self,
        workflow: Workflow,
        input: JsonValue = None,
        context: dict[str, JsonValue] | None = None,
    ) -> WorkflowExecution:
        """Run to completion and return the finished execution."""
        execution = self._create(workflow, input, context)
        return await self._execute(execution)

    async def start(
        self,
        workflow: Workflow,
        input: JsonValue = None,
        context: dict[str, JsonValue] | None = None,
    ) -> str:
        """Schedule a run in the background and return its execution id."""
        execution = self._create(workflow, input, context)
        execution_id = execution.execution_id
        task = asyncio.get_running_loop().create_task(self._execute(execution))
        self._tasks[execution_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(execution_id, None))
        return execution_id

    async def wait(self, execution_id: str) -> WorkflowExecution:
        execution = self._require(execution_id)
        task = self._tasks.get(execution_id)
        if task is not None:
            await task
        return execution

    def cancel(self, execution_id: str) -> bool:
        """Stop a run before its next step. False if it already finished."""
        execution = self._require(execution_id)
        if execution.status.is_terminal:
            return False
        logger.info("Cancelling workflow execution %s", execution_id)
        execution.status = WorkflowStatus.CANCELLED
        return True

    def get(self, execution_id: str) -> WorkflowExecution | None:
        return self._executions.get(execution_id)

    def _require(self, execution_id: str) -> WorkflowExecution:
        execution = self._executions.get(execution_id)
        if execution is None:
            raise WorkflowError(f"Execution not found: {execution_id}")
        return execution

    def _create(
        self,
        workflow: Workflow,
        input: JsonValue,
        context: dict[str, JsonValue] | None,
    ) -> WorkflowExecution:
        execution = WorkflowExecution(
            execution_id=f"wfx-{uuid.uuid4().hex[:12]}",
            workflow=workflow,
            input=input,
            context=dict(context or {}),
        )
        self._executions[execution.execution_id] = execution
        return execution

    async def _execute(self, execution: WorkflowExecution) -> WorkflowExecution:
        workflow = execution.workflow
        logger.info("Executing workflow %s (%s)", workflow.name, execution.execution_id)

        execution.started_at = utcnow()
        if execution.status is WorkflowStatus.PENDING:
            execution.status = WorkflowStatus.RUNNING

        step_input = execution.input
        total = len(workflow.steps)
        for index, step in enumerate(workflow.steps):
            if execution.status is WorkflowStatus.CANCELLED:
                logger.info("Workflow execution %s cancelled", execution.execution_id)
                break

            execution.current_step = index
            logger.debug("Executing step %d/%d: %s", index + 1, total, step.name)

            result = await self._run_step(
                step,
                StepContext(
                    input=step_input,
                    context=execution.context,
                    previous=list(execution.step_results),
                ),
            )
            execution.step_results.append(result)
            execution.current_step = index + 1

            if result.status is StepStatus.FAILED:
                logger.error("Step failed: %s: %s", step.name, result.error)
                execution.status = WorkflowStatus.FAILED
                execution.error = result.error or "Step execution failed"
                break

            if result.output is not None:
                execution.context[step.name] = result.output
                execution.context[LAST_OUTPUT_KEY] = result.output
            if result.status is StepStatus.COMPLETED:
                step_input = result.output

        if execution.status is WorkflowStatus.RUNNING:
            execution.status = WorkflowStatus.COMPLETED
            execution.output = step_input
            logger.info("Workflow completed: %s", workflow.name)

        execution.completed_at = utcnow()
        return execution

    async def _run_step(self, step: Step, ctx: StepContext) -> StepResult:
        started_at = utcnow()
        try:
            status, output, error = await self._dispatch(step, ctx)
        except Exception as e:
            logger.error("Step %s raised", step.name, exc_info=True)
            status, output, error = StepStatus.FAILED, None, str(e) or type(e).__name__

        return StepResult(
            step_name=step.name,
            status=status,
            output=output,
            error=error,
            started_at=started_at,
            completed_at=utcnow(),
        )

    async def _dispatch(
        self, step: Step, ctx: StepContext
    ) -> tuple[StepStatus, JsonValue, str | None]:
        if isinstance(step, FixedStep):
            return StepStatus.COMPLETED, self._run_fixed(step, ctx), None

        if isinstance(step, AgentStep):
            return await self._run_agent(step, ctx)

        if isinstance(step, ConditionalStep):
            if step.evaluate(ctx.input, ctx.context):
                logger.info("Condition met: %s", step.condition)
                return StepStatus.COMPLETED, step.then_output, None
            logger.info("Condition not met: %s", step.condition)
            if step.else_output is None:
                return StepStatus.SKIPPED, None, None
            return StepStatus.COMPLETED, step.else_output, None

        if isinstance(step, ParallelStep):
            return await self._run_parallel(step, ctx)

        raise WorkflowError(f"Unsupported step type: {type(step).__name__}")

    def _run_fixed(self, step: FixedStep, ctx: StepContext) -> JsonValue:
        if step.function is FixedFunction.ECHO:
            return ctx.input
        if step.function is FixedFunction.TRANSFORM:
            return apply_transformation(ctx.input, step.transformation)
        # merge
        return {r.step_name: r.output for r in ctx.previous}

    async def _run_agent(
        self, step: AgentStep, ctx: StepContext
    ) -> tuple[StepStatus, JsonValue, str | None]:
        agent = self.agents.resolve(step.agent_id)
        if agent is None:
            raise WorkflowError(f"Agent not found: {step.agent_id}")

        result = await self.executor.execute(
            agent,
            step.task_description,
            ExecutionOptions(
                max_iterations=step.max_iterations,
                timeout=step.timeout,
                tools=step.tools,
            ),
            context={"step_input": ctx.input, "workflow_context": dict(ctx.context)},
        )
        status = StepStatus.COMPLETED if result.success else StepStatus.FAILED
        return status, result.output, result.error

    async def _run_parallel(
        self, step: ParallelStep, ctx: StepContext
    ) -> tuple[StepStatus, JsonValue, str | None]:
        results = await asyncio.gather(*(self._run_step(s, ctx) for s in step.steps))
        output = {r.step_name: r.output for r in results}
        failures = [f"{r.step_name}: {r.error}" for r in results if r.status is StepStatus.FAILED]
        if failures:
            return StepStatus.FAILED, output, "; ".join(failures)
        return StepStatus.COMPLETED, output, None
