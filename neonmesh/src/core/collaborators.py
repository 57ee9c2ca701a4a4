"""Interfaces for the collaborators the mesh consumes but does not own.

Each protocol is an await point: capability calls, availability lookups,
budget checks and repository access may all be slow or fail.  Small
in-process implementations live alongside for wiring and tests.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence

from .commands import ExecutionContext, IntentAction, ParsedIntent
from .telemetry import Telemetry
from .types import (
    AgentAvailability,
    AgentIntent,
    AgentType,
    BudgetStatus,
    ConsensusRound,
    Goal,
    GoalStatus,
    MemoryEntry,
    MemoryOutcome,
    PlanExecution,
)


class Capability(Protocol):
    """A concrete agent: ``execute`` returns ``{success, data|error, confidence?}``."""

    agent_id: str
    agent_type: AgentType

    async def execute(self, task: Mapping[str, Any], context: Mapping[str, Any]) -> Any:
        ...


class AvailabilityProvider(Protocol):
    async def get_agent_availability(self, agent_id: str) -> AgentAvailability:
        ...


class IntentBroadcaster(Protocol):
    async def broadcast_intent(self, intent: AgentIntent) -> str:
        ...


class BudgetMonitor(Protocol):
    async def check_budget_status(self) -> BudgetStatus:
        ...

    async def track_cost(self, record: Mapping[str, Any]) -> None:
        ...


class IntentParser(Protocol):
    async def parse(self, command: str, context: ExecutionContext) -> ParsedIntent:
        ...


@dataclass(frozen=True)
class AgentPerformance:
    agent_type: AgentType
    executions: int
    success_rate: float
    average_execution_ms: float


class MetricsSource(Protocol):
    """Feed of per-agent performance figures used by planning insights."""

    def agent_performance(self, agent_types: Sequence[AgentType]) -> List[AgentPerformance]:
        ...


class MeshRepository(Protocol):
    async def create_goal(self, goal: Goal) -> Goal:
        ...

    async def get_goal(self, goal_id: str) -> Optional[Goal]:
        ...

    async def update_goal(self, goal_id: str, **changes: Any) -> Goal:
        ...

    async def list_goals(
        self, *, statuses: Optional[Iterable[GoalStatus]] = None, limit: Optional[int] = None
    ) -> List[Goal]:
        ...

    async def create_round(self, round_: ConsensusRound) -> ConsensusRound:
        ...

    async def list_rounds(self, goal_plan_id: Optional[str] = None, *, limit: Optional[int] = None) -> List[ConsensusRound]:
        ...

    async def create_execution(self, execution: PlanExecution) -> PlanExecution:
        ...

    async def update_execution(self, execution: PlanExecution) -> PlanExecution:
        ...

    async def recent_executions(self, goal_plan_id: str, *, limit: int = 5) -> List[PlanExecution]:
        ...

    async def save_memory(self, entry: MemoryEntry) -> None:
        ...

    async def get_memory(self, memory_id: str) -> Optional[MemoryEntry]:
        ...

    async def recent_memories(
        self,
        *,
        since: Optional[datetime] = None,
        outcomes: Optional[Iterable[MemoryOutcome]] = None,
        limit: int = 100,
    ) -> List[MemoryEntry]:
        ...

    async def delete_memory(self, memory_id: str) -> None:
        ...


# ---------------------------------------------------------------------------
# In-process implementations
# ---------------------------------------------------------------------------
@dataclass
class TelemetryBroadcaster:
    """Publish intents as ``mesh.intent`` telemetry events."""

    telemetry: Telemetry = field(default_factory=Telemetry)
    intents: List[AgentIntent] = field(default_factory=list, init=False)

    async def broadcast_intent(self, intent: AgentIntent) -> str:
        intent_id = f"intent_{uuid.uuid4().hex[:12]}"
        self.intents.append(intent)
        self.telemetry.emit(
            "mesh.intent",
            intent_id=intent_id,
            agent_id=intent.agent_id,
            agent_type=intent.agent_type.value,
            intention=intent.intention,
            priority=intent.priority,
            confidence=intent.confidence,
            estimated_duration_minutes=intent.estimated_duration_minutes,
        )
        return intent_id


@dataclass
class StaticBudgetMonitor:
    """Budget monitor backed by a fixed allowance."""

    budget: float = 0.0
    spent: float = 0.0
    records: List[Dict[str, Any]] = field(default_factory=list, init=False)

    async def check_budget_status(self) -> BudgetStatus:
        if self.budget <= 0:
            return BudgetStatus(can_execute=True, utilization_percentage=0.0)
        utilisation = min(100.0, self.spent / self.budget * 100.0)
        return BudgetStatus(can_execute=self.spent < self.budget, utilization_percentage=utilisation)

    async def track_cost(self, record: Mapping[str, Any]) -> None:
        self.records.append(dict(record))
        self.spent += float(record.get("amount", 0.0) or 0.0)


@dataclass
class StaticIntentParser:
    """Resolve commands from a lookup table of pre-parsed intents."""

    intents: Mapping[str, ParsedIntent] = field(default_factory=dict)
    default: Optional[ParsedIntent] = None

    async def parse(self, command: str, context: ExecutionContext) -> ParsedIntent:
        key = command.strip().lower()
        if key in self.intents:
            return self.intents[key]
        if self.default is not None:
            return self.default
        return ParsedIntent(primary_action=IntentAction.UNKNOWN, confidence=0.0)


__all__ = [
    "AgentPerformance",
    "AvailabilityProvider",
    "BudgetMonitor",
    "Capability",
    "IntentBroadcaster",
    "IntentParser",
    "MeshRepository",
    "MetricsSource",
    "StaticBudgetMonitor",
    "StaticIntentParser",
    "TelemetryBroadcaster",
]
