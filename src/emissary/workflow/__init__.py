"""Workflows — ordered steps over agents and built-in functions."""

from emissary.workflow.runner import (
    LAST_OUTPUT_KEY,
    Workflow,
    WorkflowExecution,
    WorkflowRunner,
    WorkflowStatus,
)
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
    Transformation,
    apply_transformation,
)

__all__ = [
    "LAST_OUTPUT_KEY",
    "AgentStep",
    "ConditionalStep",
    "FixedFunction",
    "FixedStep",
    "ParallelStep",
    "Step",
    "StepContext",
    "StepResult",
    "StepStatus",
    "Transformation",
    "apply_transformation",
    "Workflow",
    "WorkflowExecution",
    "WorkflowRunner",
    "WorkflowStatus",
]
