"""Exception hierarchy shared across emissary components."""

from __future__ import annotations

from typing import Any


class EmissaryError(Exception):
    """Base class for all emissary errors."""

    code: str = "EMISSARY_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": type(self).__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }


class InvalidEntityError(EmissaryError):
    code = "INVALID_ENTITY"


class TaskStateError(EmissaryError):
    code = "INVALID_TASK_TRANSITION"


class CapabilityMissingError(EmissaryError):
    code = "CAPABILITY_MISSING"

    def __init__(self, capability: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            f"Agent is missing required capability: {capability}",
            {**(details or {}), "capability": capability},
        )


class MemoryStoreError(EmissaryError):
    """A memory tier could not complete an operation (I/O, corrupt entry)."""

    code = "MEMORY_STORE_ERROR"


class MemoryManagerStoppedError(MemoryStoreError):
    code = "MEMORY_MANAGER_STOPPED"


class WorkflowError(EmissaryError):
    code = "WORKFLOW_ERROR"
