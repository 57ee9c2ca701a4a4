"""High level entrypoints that compose the mesh subsystems."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from .agents.registry import AgentRegistry
from .core.clock import Clock, utcnow
from .core.collaborators import (
    BudgetMonitor,
    IntentParser,
    MeshRepository,
    StaticIntentParser,
    TelemetryBroadcaster,
)
from .core.config import MeshConfig
from .core.planner import GoalPlanner
from .core.reasoning import ReasoningProtocol
from .core.repository import InMemoryRepository
from .core.router import CommandRouter
from .core.telemetry import Telemetry
from .core.types import AgentType
from .memory.index import MemoryIndex
from .oversight.store import OversightStore


@dataclass
class Mesh:
    """The wired services of one reasoning mesh."""

    config: MeshConfig
    repository: MeshRepository
    agents: AgentRegistry
    memory: MemoryIndex
    reasoning: ReasoningProtocol
    planner: GoalPlanner
    router: CommandRouter
    telemetry: Telemetry


def build_mesh(
    config: Optional[MeshConfig] = None,
    *,
    repository: Optional[MeshRepository] = None,
    agents: Optional[AgentRegistry] = None,
    parser: Optional[IntentParser] = None,
    budget_monitor: Optional[BudgetMonitor] = None,
    oversight: Optional[OversightStore] = None,
    telemetry: Optional[Telemetry] = None,
    clock: Clock = utcnow,
    dry_run_agents: Iterable[AgentType] | None = None,
) -> Mesh:
    """Wire the memory index, reasoning protocol, planner and router.

    Without an explicit registry every agent type is backed by a
    :class:`~neonmesh.src.agents.registry.DryRunAgent`.
    """

    config = config or MeshConfig()
    telemetry = telemetry or Telemetry()
    repository = repository if repository is not None else InMemoryRepository(clock=clock)
    if agents is None:
        agents = AgentRegistry.with_dry_run_agents(dry_run_agents, telemetry=telemetry)
    broadcaster = TelemetryBroadcaster(telemetry=telemetry)
    memory = MemoryIndex(repository=repository, telemetry=telemetry, config=config.memory, clock=clock)
    reasoning = ReasoningProtocol(
        availability=agents,
        repository=repository,
        broadcaster=broadcaster,
        memory=memory,
        telemetry=telemetry,
        evaluation_timeout_s=config.planner.evaluation_timeout_s,
        clock=clock,
    )
    planner = GoalPlanner(
        repository=repository,
        reasoning=reasoning,
        agents=agents,
        memory=memory,
        broadcaster=broadcaster,
        telemetry=telemetry,
        config=config.planner,
        clock=clock,
    )
    router = CommandRouter(
        parser=parser or StaticIntentParser(),
        agents=agents,
        memory=memory,
        budget_monitor=budget_monitor,
        oversight=oversight,
        telemetry=telemetry,
        config=config.router,
        clock=clock,
    )
    return Mesh(
        config=config,
        repository=repository,
        agents=agents,
        memory=memory,
        reasoning=reasoning,
        planner=planner,
        router=router,
        telemetry=telemetry,
    )


__all__ = ("Mesh", "build_mesh")
