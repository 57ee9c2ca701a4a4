"""Registry of mesh agents and their availability."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..core.collaborators import Capability
from ..core.telemetry import Telemetry
from ..core.types import AgentAvailability, AgentType


def default_agent_id(agent_type: AgentType) -> str:
    return f"{agent_type.value}-agent-001"


@dataclass
class DryRunAgent:
    """Capability that acknowledges tasks without side effects."""

    agent_id: str
    agent_type: AgentType
    confidence: float = 0.9
    calls: List[Dict[str, Any]] = field(default_factory=list, init=False)

    async def execute(self, task: Mapping[str, Any], context: Mapping[str, Any]) -> Dict[str, Any]:
        self.calls.append(dict(task))
        action = task.get("action") or "task"
        return {
            "success": True,
            "data": {"summary": f"[dry-run] {self.agent_type.value} acknowledged {action}", "dry_run": True},
            "confidence": self.confidence,
        }


@dataclass
class AgentRegistry:
    """Capabilities keyed by agent id; doubles as the availability provider."""

    telemetry: Telemetry = field(default_factory=Telemetry)
    _agents: Dict[str, Capability] = field(default_factory=dict, init=False)
    _available: Dict[str, bool] = field(default_factory=dict, init=False)
    _free_at: Dict[str, datetime] = field(default_factory=dict, init=False)

    @classmethod
    def with_dry_run_agents(cls, agent_types: Optional[Iterable[AgentType]] = None, **kwargs: Any) -> "AgentRegistry":
        registry = cls(**kwargs)
        for agent_type in agent_types or list(AgentType):
            registry.register(DryRunAgent(agent_id=default_agent_id(agent_type), agent_type=agent_type))
        return registry

    def register(self, agent: Capability, *, available: bool = True) -> None:
        if agent.agent_id in self._agents:
            raise ValueError(f"Agent already registered: {agent.agent_id}")
        self._agents[agent.agent_id] = agent
        self._available[agent.agent_id] = available
        self.telemetry.emit("agents.registered", agent_id=agent.agent_id, agent_type=agent.agent_type.value)

    def set_availability(self, agent_id: str, available: bool, *, free_at: Optional[datetime] = None) -> None:
        if agent_id not in self._agents:
            raise KeyError(agent_id)
        self._available[agent_id] = available
        if free_at is None:
            self._free_at.pop(agent_id, None)
        else:
            self._free_at[agent_id] = free_at

    def get(self, agent_id: str) -> Capability:
        try:
            return self._agents[agent_id]
        except KeyError:
            raise KeyError(f"Unknown agent: {agent_id}") from None

    def for_type(self, agent_type: AgentType) -> Optional[Capability]:
        preferred = self._agents.get(default_agent_id(agent_type))
        if preferred is not None:
            return preferred
        for agent in self._agents.values():
            if agent.agent_type is agent_type:
                return agent
        return None

    def agent_id_for(self, agent_type: AgentType) -> str:
        agent = self.for_type(agent_type)
        return agent.agent_id if agent is not None else default_agent_id(agent_type)

    def agents(self) -> List[Capability]:
        return list(self._agents.values())

    async def get_agent_availability(self, agent_id: str) -> AgentAvailability:
        if agent_id not in self._agents:
            return AgentAvailability(is_available=False)
        return AgentAvailability(
            is_available=self._available.get(agent_id, False),
            estimated_free_time=self._free_at.get(agent_id),
        )


__all__ = ["AgentRegistry", "DryRunAgent", "default_agent_id"]
