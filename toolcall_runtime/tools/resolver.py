"""Call resolution: tool name (+ active agent) -> concrete execution spec.

Agent-scoped functions run through the agent's own executable with the
function name as leading argument; everything else runs an executable named
after the tool.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from ..core.config import FUNCTIONS_FILE_NAME, RuntimeConfig
from ..core.errors import ToolNotFoundError
from ..core.timing_logger import timed
from ..core.utils import normalize_env_name
from .declarations import FunctionStore
from .types import FunctionDeclaration

LOGGER = logging.getLogger(__name__)

AGENT_VAR_ENV_PREFIX = "LLM_AGENT_VAR_"


@dataclass(slots=True, frozen=True)
class Agent:
    """The active agent, as far as tool execution is concerned.

    Loading agent definitions and sessions is handled elsewhere; the runtime
    only needs the agent's name, its declared functions and its variables.
    """

    name: str
    functions: FunctionStore = field(default_factory=FunctionStore)
    variables: dict[str, str] = field(default_factory=dict)

    @classmethod
    @timed
    def load(cls, name: str, config: RuntimeConfig, variables: Optional[dict[str, str]] = None) -> Agent:
        functions = FunctionStore.init(config.agent_functions_dir(name) / FUNCTIONS_FILE_NAME)
        return cls(name=name, functions=functions, variables=dict(variables or {}))

    @timed
    def variable_envs(self) -> dict[str, str]:
        return {f"{AGENT_VAR_ENV_PREFIX}{normalize_env_name(key)}": value for key, value in self.variables.items()}


@dataclass(slots=True)
class ToolCallConfig:
    """Execution spec for one call. Produced per call and consumed once."""

    name: str
    cmd: str
    args: list[str] = field(default_factory=list)
    envs: dict[str, str] = field(default_factory=dict)
    concurrent: bool = False
    agent_scoped: bool = False

    @classmethod
    @timed
    def extract(cls, function_name: str, functions: FunctionStore, agent: Optional[Agent] = None) -> ToolCallConfig:
        """Resolve ``function_name`` against the active agent, then the global store.

        Raises:
            ToolNotFoundError: when neither scope declares the name.
        """
        if agent is not None:
            function = agent.functions.find(function_name)
            if function is not None and function.agent:
                return cls.from_agent(function, agent)
        function = functions.find(function_name)
        if function is None:
            raise ToolNotFoundError(function_name)
        return cls.from_declaration(function)

    @classmethod
    @timed
    def from_declaration(cls, function: FunctionDeclaration) -> ToolCallConfig:
        return cls(
            name=function.name,
            cmd=function.name,
            concurrent=function.allow_concurrency,
        )

    @classmethod
    @timed
    def from_agent(cls, function: FunctionDeclaration, agent: Agent) -> ToolCallConfig:
        return cls(
            name=f"{agent.name}-{function.name}",
            cmd=agent.name,
            args=[function.name],
            envs=agent.variable_envs(),
            concurrent=function.allow_concurrency,
            agent_scoped=True,
        )
