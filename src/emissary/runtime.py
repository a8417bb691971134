"""Runtime assembly — wires config into a ready-to-use set of components."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from emissary.agent.loop import AgentExecutor
from emissary.agent.registry import AgentRegistry
from emissary.config import EmissaryConfig
from emissary.llm.provider import ChatProvider, create_provider
from emissary.memory.manager import MemoryManager, create_memory_manager
from emissary.tool.builtin import builtin_tools
from emissary.tool.registry import ToolRegistry
from emissary.workflow.runner import WorkflowRunner

logger = logging.getLogger(__name__)


@dataclass
class Emissary:
    """Everything an application needs, built from one config.

    Each instance owns its registries and memory; nothing is global, so
    several can coexist in one process.

        async with Emissary.build(EmissaryConfig.load()) as app:
            agent = app.agents.get_by_name("researcher")
            result = await app.executor.execute(agent, "What is 6 * 7?")
    """

    config: EmissaryConfig
    provider: ChatProvider
    tools: ToolRegistry
    agents: AgentRegistry
    memory: MemoryManager
    executor: AgentExecutor
    workflows: WorkflowRunner

    @classmethod
    def build(
        cls, config: EmissaryConfig, provider: ChatProvider | None = None
    ) -> Emissary:
        if provider is None:
            provider = create_provider(
                config.llm.model,
                temperature=config.llm.temperature,
                max_tokens=config.llm.max_tokens,
            )

        tools = ToolRegistry()
        tools.register_many(builtin_tools())

        agents = AgentRegistry()
        agents.discover([config.agents_dir])

        memory = create_memory_manager(config.memory)
        executor = AgentExecutor(provider, tools, memory=memory, defaults=config.agent)
        workflows = WorkflowRunner(executor, agents)

        logger.info(
            "Emissary ready (model: %s, tools: %d, agents: %d)",
            provider.config.model,
            len(tools),
            len(agents),
        )
        return cls(
            config=config,
            provider=provider,
            tools=tools,
            agents=agents,
            memory=memory,
            executor=executor,
            workflows=workflows,
        )

    async def close(self) -> None:
        await self.memory.cleanup()

    async def __aenter__(self) -> Emissary:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()
