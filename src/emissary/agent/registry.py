"""Agent registry — discover and manage agents."""

from __future__ import annotations

import logging

from emissary.agent.agent import Agent, discover_agents

logger = logging.getLogger(__name__)


class AgentRegistry:
    """Registry of available agents, keyed by id.

    Agents can be registered programmatically or discovered from
    markdown files in agent directories.
    """

    def __init__(self) -> None:
        self._agents: dict[str, Agent] = {}

    def register(self, agent: Agent) -> None:
        existing = self.get_by_name(agent.name)
        if existing is not None and existing.id != agent.id:
            logger.warning(
                "Agent name %s already registered as %s", agent.name, existing.id
            )
        self._agents[agent.id] = agent

    def get(self, agent_id: str) -> Agent | None:
        return self._agents.get(agent_id)

    def get_by_name(self, name: str) -> Agent | None:
        for agent in self._agents.values():
            if agent.name == name:
                return agent
        return None

    def resolve(self, key: str) -> Agent | None:
        """Look up by id, falling back to name."""
        return self.get(key) or self.get_by_name(key)

    def remove(self, agent_id: str) -> bool:
        return self._agents.pop(agent_id, None) is not None

    def names(self) -> list[str]:
        return [a.name for a in self._agents.values()]

    def list(self) -> list[Agent]:
        return list(self._agents.values())

    def discover(self, search_dirs: list[str]) -> int:
        """Discover and register agents from markdown files."""
        found = discover_agents(search_dirs)
        for agent in found:
            self.register(agent)
            logger.info("Discovered agent: %s", agent.name)
        return len(found)

    def __len__(self) -> int:
        return len(self._agents)

    def __contains__(self, agent_id: str) -> bool:
        return agent_id in self._agents
