"""Agent definition — identity, capabilities, and execution config.

Agents can be built in code or loaded from markdown files with YAML
frontmatter:

    ---
    name: researcher
    description: Looks things up and summarizes them
    capabilities: [web-search, summarization]
    model: openai/gpt-4o
    temperature: 0.2
    max_iterations: 8
    tools: [calculator, current_time]
    ---

    You are a meticulous research assistant...

The markdown body becomes the agent's system prompt.
"""

from __future__ import annotations

import enum
import logging
import os
import re
import uuid
from collections.abc import Iterable
from dataclasses import asdict, dataclass, field, fields, replace
from datetime import datetime
from typing import Any

import yaml

from emissary.errors import CapabilityMissingError, InvalidEntityError
from emissary.memory.entry import utcnow

logger = logging.getLogger(__name__)


class Capability(str, enum.Enum):
    """Coarse capability tags. Used for gating, not enforced per tool."""

    WEB_SEARCH = "web-search"
    FILE_SYSTEM = "file-system"
    CODE_EXECUTION = "code-execution"
    DATA_ANALYSIS = "data-analysis"
    IMAGE_GENERATION = "image-generation"
    SUMMARIZATION = "summarization"
    TRANSLATION = "translation"
    CUSTOM = "custom"


@dataclass
class AgentConfig:
    """Per-agent execution settings. ``None`` defers to the executor defaults."""

    model: str | None = None
    temperature: float | None = None
    max_iterations: int | None = None
    timeout: float | None = None  # seconds
    system_prompt: str | None = None
    tools: list[str] | None = None  # default tool scope; None means all


_CONFIG_KEYS = frozenset(f.name for f in fields(AgentConfig))
_AGENT_KEYS = frozenset({"id", "name", "description", "capabilities", "config"})


def new_agent_id() -> str:
    return f"agent-{uuid.uuid4().hex[:12]}"


@dataclass
class Agent:
    """A named agent the executor can run tasks against."""

    name: str
    description: str
    capabilities: set[Capability] = field(default_factory=set)
    config: AgentConfig = field(default_factory=AgentConfig)
    id: str = field(default_factory=new_agent_id)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise InvalidEntityError("Agent name cannot be empty")
        if not self.description or not self.description.strip():
            raise InvalidEntityError("Agent description cannot be empty")
        self.capabilities = {Capability(c) for c in self.capabilities}

    @property
    def system_prompt(self) -> str | None:
        return self.config.system_prompt

    def has_capability(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def has_capabilities(self, capabilities: Iterable[Capability]) -> bool:
        return all(c in self.capabilities for c in capabilities)

    def add_capability(self, capability: Capability) -> None:
        self.capabilities.add(Capability(capability))
        self._touch()

    def remove_capability(self, capability: Capability) -> None:
        self.capabilities.discard(capability)
        self._touch()

    def require_capability(self, capability: Capability) -> None:
        if not self.has_capability(capability):
            raise CapabilityMissingError(
                Capability(capability).value,
                {"agent_id": self.id, "agent_name": self.name},
            )

    def update_config(self, **changes: Any) -> None:
        """Replace selected config fields, e.g. ``update_config(temperature=0)``."""
        unknown = set(changes) - _CONFIG_KEYS
        if unknown:
            raise InvalidEntityError(
                f"Unknown agent config field(s): {', '.join(sorted(unknown))}"
            )
        self.config = replace(self.config, **changes)
        self._touch()

    def _touch(self) -> None:
        self.updated_at = utcnow()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "capabilities": sorted(c.value for c in self.capabilities),
            "config": {k: v for k, v in asdict(self.config).items() if v is not None},
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], system_prompt: str | None = None) -> Agent:
        """Create an agent from a dict.

        Config fields may sit under ``config`` or at the top level (the
        frontmatter form); top-level keys win.
        """
        unknown = set(data) - _AGENT_KEYS - _CONFIG_KEYS
        if unknown:
            raise InvalidEntityError(
                f"Unknown agent field(s): {', '.join(sorted(unknown))}"
            )

        config_data = dict(data.get("config") or {})
        config_data.update({k: v for k, v in data.items() if k in _CONFIG_KEYS})
        if system_prompt:
            config_data["system_prompt"] = system_prompt

        try:
            capabilities = {Capability(c) for c in data.get("capabilities") or []}
        except ValueError as e:
            raise InvalidEntityError(str(e)) from e

        kwargs: dict[str, Any] = {}
        if data.get("id"):
            kwargs["id"] = str(data["id"])

        return cls(
            name=str(data.get("name") or ""),
            description=str(data.get("description") or ""),
            capabilities=capabilities,
            config=AgentConfig(**config_data),
            **kwargs,
        )

    @classmethod
    def from_markdown(cls, path: str) -> Agent:
        """Load an agent definition from a markdown file with YAML frontmatter."""
        with open(path, "r", encoding="utf-8") as f:
            content = f.read()

        data, prompt = _parse_frontmatter(content)
        return cls.from_dict(data, system_prompt=prompt.strip() or None)


def _parse_frontmatter(content: str) -> tuple[dict[str, Any], str]:
    """Split markdown into (frontmatter dict, body text)."""
    pattern = re.compile(r"^---\s*\n(.*?)\n---\s*\n(.*)", re.DOTALL)
    match = pattern.match(content)

    if not match:
        return {}, content

    try:
        data = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as e:
        raise InvalidEntityError(f"Invalid agent frontmatter: {e}") from e

    if not isinstance(data, dict):
        raise InvalidEntityError("Agent frontmatter must be a mapping")
    return data, match.group(2)


def discover_agents(search_dirs: list[str]) -> list[Agent]:
    """Load every ``*.md`` agent definition found in ``search_dirs``.

    Files that fail to parse are logged and skipped.
    """
    agents = []
    for dir_path in search_dirs:
        if not os.path.isdir(dir_path):
            logger.debug("Agent directory not found: %s", dir_path)
            continue
        for fname in sorted(os.listdir(dir_path)):
            if not fname.endswith(".md"):
                continue
            full_path = os.path.join(dir_path, fname)
            try:
                agents.append(Agent.from_markdown(full_path))
            except (InvalidEntityError, OSError, TypeError) as e:
                logger.warning("Skipping agent definition %s: %s", full_path, e)
    return agents
