"""Tests for emissary.errors and emissary.log."""

from __future__ import annotations

import logging

from emissary.errors import (
    CapabilityMissingError,
    EmissaryError,
    MemoryManagerStoppedError,
    MemoryStoreError,
    TaskStateError,
)
from emissary.log import setup_logging


class TestErrors:
    def test_to_dict(self) -> None:
        err = TaskStateError("Task t is already completed", {"task_id": "t"})
        assert err.to_dict() == {
            "name": "TaskStateError",
            "message": "Task t is already completed",
            "code": "INVALID_TASK_TRANSITION",
            "details": {"task_id": "t"},
        }
        assert str(err) == "Task t is already completed"

    def test_capability_message(self) -> None:
        err = CapabilityMissingError("web-search", {"agent_id": "agent-1"})
        assert err.message == "Agent is missing required capability: web-search"
        assert err.details == {"agent_id": "agent-1", "capability": "web-search"}

    def test_hierarchy(self) -> None:
        err = MemoryManagerStoppedError("stopped")
        assert isinstance(err, MemoryStoreError)
        assert isinstance(err, EmissaryError)
        assert err.details == {}


class TestSetupLogging:
    def test_quiets_litellm(self) -> None:
        setup_logging(verbose=True)
        assert logging.getLogger("LiteLLM").level == logging.WARNING
