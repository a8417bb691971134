"""Configuration — Pydantic models for emissary settings."""

from __future__ import annotations

import json
import os
from datetime import timedelta
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from emissary.memory.entry import MemoryImportance


class LLMConfig(BaseModel):
    """Model gateway configuration.

    Model names use litellm's provider-prefix format:
        "anthropic/claude-sonnet-4-5-20250929"
        "openai/gpt-4o"

    API keys are read from env vars automatically by litellm
    (ANTHROPIC_API_KEY, OPENAI_API_KEY, ...).
    """

    model: str = Field(default="anthropic/claude-sonnet-4-5-20250929")
    temperature: float | None = Field(default=None)
    max_tokens: int | None = Field(default=None)


class AgentDefaults(BaseModel):
    """Fallbacks used when neither the call nor the agent sets a value."""

    max_iterations: int = Field(default=5, ge=1)
    timeout: float = Field(
        default=300.0,
        gt=0,
        description="Wall-clock budget per execution in seconds (best effort)",
    )
    temperature: float = Field(default=0.7)


class MemoryConfig(BaseModel):
    """Two-tier memory configuration."""

    storage_dir: str = Field(
        default="~/.emissary/memory",
        description="Directory holding the long-term index and entry files",
    )
    consolidation_threshold: int = Field(
        default=100,
        ge=1,
        description="Short-term entry count that triggers consolidation",
    )
    consolidation_importance: MemoryImportance = Field(
        default=MemoryImportance.HIGH,
        description="Minimum importance promoted to long-term memory",
    )
    prune_interval: float | None = Field(
        default=None,
        gt=0,
        description="Seconds between background prunes of short-term memory",
    )
    short_term_max_age: timedelta = Field(default=timedelta(hours=24))


class EmissaryConfig(BaseModel):
    """Top-level emissary configuration."""

    llm: LLMConfig = Field(default_factory=LLMConfig)
    agent: AgentDefaults = Field(default_factory=AgentDefaults)
    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    agents_dir: str = Field(
        default="agents", description="Directory for agent definitions"
    )

    @classmethod
    def load(cls, config_path: str | None = None) -> EmissaryConfig:
        """Load config from file, env vars, or defaults.

        Priority: env vars > config file > defaults.

        Env vars:
            EMISSARY_MODEL                    - Model name (litellm format with provider prefix)
            EMISSARY_TEMPERATURE              - Sampling temperature for the gateway
            EMISSARY_MAX_ITERATIONS           - Default iteration bound per execution
            EMISSARY_MEMORY_DIR               - Long-term memory directory
            EMISSARY_CONSOLIDATION_THRESHOLD  - Short-term count that triggers consolidation
            EMISSARY_PRUNE_INTERVAL           - Seconds between background prunes
        """
        load_dotenv(override=True)

        config_data: dict[str, Any] = {}

        if config_path and os.path.exists(config_path):
            with open(config_path) as f:
                config_data = json.load(f)

        llm = config_data.get("llm", {})
        agent = config_data.get("agent", {})
        memory = config_data.get("memory", {})

        env_model = os.environ.get("EMISSARY_MODEL")
        if env_model:
            llm["model"] = env_model

        env_temperature = os.environ.get("EMISSARY_TEMPERATURE")
        if env_temperature:
            llm["temperature"] = float(env_temperature)

        env_max_iterations = os.environ.get("EMISSARY_MAX_ITERATIONS")
        if env_max_iterations:
            agent["max_iterations"] = int(env_max_iterations)

        env_memory_dir = os.environ.get("EMISSARY_MEMORY_DIR")
        if env_memory_dir:
            memory["storage_dir"] = env_memory_dir

        env_threshold = os.environ.get("EMISSARY_CONSOLIDATION_THRESHOLD")
        if env_threshold:
            memory["consolidation_threshold"] = int(env_threshold)

        env_prune_interval = os.environ.get("EMISSARY_PRUNE_INTERVAL")
        if env_prune_interval:
            memory["prune_interval"] = float(env_prune_interval)

        if llm:
            config_data["llm"] = llm
        if agent:
            config_data["agent"] = agent
        if memory:
            config_data["memory"] = memory

        return cls.model_validate(config_data)
