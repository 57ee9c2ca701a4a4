"""Shared record types for the reasoning mesh.

Records that are persisted or served over the oversight API are pydantic
models so they validate on load and dump to JSON without bespoke code.
Runtime-only helpers that never leave the process stay dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .clock import utcnow


class AgentType(str, Enum):
    CONTENT = "content"
    SEO = "seo"
    AD = "ad"
    BRAND_VOICE = "brand_voice"
    TREND = "trend"
    INSIGHT = "insight"
    DESIGN = "design"
    GOAL_PLANNER = "goal_planner"
    SOCIAL_POSTING = "social_posting"
    EMAIL_MARKETING = "email_marketing"
    CUSTOMER_SUPPORT = "customer_support"
    CAMPAIGN = "campaign"
    BOARDROOM = "boardroom"
    EXECUTIVE = "executive"


class GoalCategory(str, Enum):
    AWARENESS = "awareness"
    ENGAGEMENT = "engagement"
    CONVERSION = "conversion"
    RETENTION = "retention"
    GROWTH = "growth"


class Level(str, Enum):
    """Four-step scale used for priority, urgency, complexity and risk."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    def escalate(self) -> "Level":
        order = list(Level)
        index = order.index(self)
        return order[min(index + 1, len(order) - 1)]


class GoalStatus(str, Enum):
    PLANNING = "planning"
    REPLANNING = "replanning"
    APPROVED = "approved"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


class ConsensusResult(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    QUORUM_NOT_MET = "quorum_not_met"


class MemoryOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    PARTIAL = "partial"
    UNKNOWN = "unknown"


class ExecutionStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    TIMEOUT = "timeout"
    REQUIRES_APPROVAL = "requires_approval"


TERMINAL_EXECUTION_STATUSES = frozenset(
    {
        ExecutionStatus.COMPLETED,
        ExecutionStatus.FAILED,
        ExecutionStatus.CANCELLED,
        ExecutionStatus.TIMEOUT,
        ExecutionStatus.REQUIRES_APPROVAL,
    }
)


# ---------------------------------------------------------------------------
# Decomposition
# ---------------------------------------------------------------------------
class SubGoal(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: str
    priority: int
    estimated_time_minutes: int
    required_capabilities: List[str] = Field(default_factory=list)
    success_criteria: List[str] = Field(default_factory=list)


class AgentAssignment(BaseModel):
    """One agent's slot in the phased execution sequence.

    ``dependencies`` name the ``id`` of other assignments in the same plan.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    agent_type: AgentType
    phase: int
    tasks: List[str] = Field(default_factory=list)
    dependencies: List[str] = Field(default_factory=list)
    estimated_duration_minutes: int
    fallback_agents: List[AgentType] = Field(default_factory=list)


class TargetMetric(BaseModel):
    metric: str
    target: float
    unit: str
    timeframe: str


class GoalAnalysis(BaseModel):
    intent: str
    category: GoalCategory
    urgency: Level
    target_metrics: List[TargetMetric] = Field(default_factory=list)
    required_skills: List[str] = Field(default_factory=list)
    human_oversight_required: bool = False


class DecomposedGoal(BaseModel):
    title: str
    description: str
    analysis: GoalAnalysis
    subgoals: List[SubGoal]
    agent_sequence: List[AgentAssignment]
    estimated_time: int
    complexity: Level
    risk_factors: List[str] = Field(default_factory=list)
    dependencies: List[str] = Field(default_factory=list)
    success_metrics: List[str] = Field(default_factory=list)

    def required_agent_types(self) -> List[AgentType]:
        seen: List[AgentType] = []
        for assignment in self.agent_sequence:
            if assignment.agent_type not in seen:
                seen.append(assignment.agent_type)
        return seen

    def fallback_agent_types(self) -> List[AgentType]:
        seen: List[AgentType] = []
        for assignment in self.agent_sequence:
            for agent_type in assignment.fallback_agents:
                if agent_type not in seen:
                    seen.append(agent_type)
        return seen


# ---------------------------------------------------------------------------
# Goals and plans
# ---------------------------------------------------------------------------
class PlanConstraints(BaseModel):
    budget: Optional[float] = None
    timeframe: Optional[str] = None
    resources: List[str] = Field(default_factory=list)


class GoalRequest(BaseModel):
    """High-level goal submitted to the planner."""

    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    priority: Level = Level.MEDIUM
    target_metrics: Dict[str, Any] = Field(default_factory=dict)
    constraints: Optional[PlanConstraints] = None
    stakeholders: List[str] = Field(default_factory=list)


class Goal(BaseModel):
    id: str
    title: str
    description: str
    priority: Level = Level.MEDIUM
    status: GoalStatus = GoalStatus.PLANNING
    target_metrics: Dict[str, Any] = Field(default_factory=dict)
    subgoals: List[SubGoal] = Field(default_factory=list)
    agent_sequence: List[AgentAssignment] = Field(default_factory=list)
    confidence: float = 0.0
    feasibility: float = 0.0
    brand_alignment: float = 0.0
    estimated_time_minutes: int = 0
    complexity: Level = Level.MEDIUM
    risk_factors: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Participant(BaseModel):
    model_config = ConfigDict(frozen=True)

    agent_id: str
    agent_type: AgentType


class ProposedPlan(BaseModel):
    goal_id: str
    proposing_agent: str
    title: str
    subgoals: List[SubGoal]
    agent_sequence: List[AgentAssignment]
    estimated_time: int
    brand_alignment: float
    feasibility: float
    confidence: float
    risk_factors: List[str] = Field(default_factory=list)
    dependencies: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)


class EvaluationAlignment(BaseModel):
    model_config = ConfigDict(frozen=True)

    brand: float
    feasibility: float
    efficiency: float
    risk_level: float


class PlanEvaluation(BaseModel):
    model_config = ConfigDict(frozen=True)

    evaluator_agent: str
    agent_type: AgentType
    score: float = Field(ge=0.0, le=1.0)
    reasoning: str
    alignment: EvaluationAlignment
    suggestions: List[str] = Field(default_factory=list)
    blockers: List[str] = Field(default_factory=list)
    confidence_in_evaluation: float = 0.8
    timestamp: datetime = Field(default_factory=utcnow)


class EvaluationFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    evaluator_agent: str
    agent_type: AgentType
    error: str
    timed_out: bool = False


class ConsensusRound(BaseModel):
    """Outcome of one attempt to get a quorum of evaluators to agree."""

    model_config = ConfigDict(frozen=True)

    id: str
    goal_plan_id: str
    round_number: int = Field(ge=1)
    proposed_plan: ProposedPlan
    participant_agents: List[Participant]
    evaluations: List[PlanEvaluation] = Field(default_factory=list)
    failures: List[EvaluationFailure] = Field(default_factory=list)
    quorum: float = Field(gt=0.0, le=1.0)
    result: ConsensusResult = ConsensusResult.PENDING
    final_score: Optional[float] = None
    winning_plan: Optional[ProposedPlan] = None
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @property
    def participation_rate(self) -> float:
        if not self.participant_agents:
            return 0.0
        return len(self.evaluations) / len(self.participant_agents)


class RiskAssessment(BaseModel):
    level: Level
    factors: List[str] = Field(default_factory=list)
    mitigations: List[str] = Field(default_factory=list)


class PlanningResult(BaseModel):
    goal_plan_id: str
    decomposed_goal: DecomposedGoal
    participating_agents: List[Participant]
    consensus_round: ConsensusRound
    approved: bool
    estimated_completion: Optional[datetime] = None
    risk_assessment: RiskAssessment


# ---------------------------------------------------------------------------
# Memory
# ---------------------------------------------------------------------------
class MemoryContent(BaseModel):
    input: Any = None
    output: Any = None
    context: Dict[str, Any] = Field(default_factory=dict)


class MemoryPerformance(BaseModel):
    execution_time_ms: float = 0.0
    tokens_used: Optional[int] = None
    cost: Optional[float] = None
    success_metrics: Dict[str, float] = Field(default_factory=dict)


class MemoryRelationships(BaseModel):
    dependencies: List[str] = Field(default_factory=list)
    influences: List[str] = Field(default_factory=list)
    conflicts: List[str] = Field(default_factory=list)


class MemoryTemporal(BaseModel):
    created_at: datetime = Field(default_factory=utcnow)
    last_accessed: datetime = Field(default_factory=utcnow)
    access_count: int = 0
    decay_score: float = Field(default=1.0, ge=0.0, le=1.0)


class MemoryRecord(BaseModel):
    """Raw execution record handed to :meth:`MemoryIndex.ingest_memory`."""

    agent_id: str
    agent_type: AgentType
    session_id: str
    goal_plan_id: Optional[str] = None
    campaign_id: Optional[str] = None
    input: Any = None
    output: Any = None
    context: Dict[str, Any] = Field(default_factory=dict)
    outcome: MemoryOutcome = MemoryOutcome.UNKNOWN
    performance: MemoryPerformance = Field(default_factory=MemoryPerformance)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class MemoryEntry(BaseModel):
    id: str
    agent_id: str
    agent_type: AgentType
    session_id: str
    goal_plan_id: Optional[str] = None
    campaign_id: Optional[str] = None
    content: MemoryContent = Field(default_factory=MemoryContent)
    tags: List[str] = Field(default_factory=list)
    categories: List[str] = Field(default_factory=list)
    outcome: MemoryOutcome = MemoryOutcome.UNKNOWN
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    performance: MemoryPerformance = Field(default_factory=MemoryPerformance)
    relationships: MemoryRelationships = Field(default_factory=MemoryRelationships)
    temporal: MemoryTemporal = Field(default_factory=MemoryTemporal)
    relevance_score: Optional[float] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Execution records
# ---------------------------------------------------------------------------
class ExecutionError(BaseModel):
    code: str
    message: str
    timestamp: datetime = Field(default_factory=utcnow)
    severity: Level = Level.MEDIUM
    recoverable: bool = True


class AgentExecutionResult(BaseModel):
    agent_id: str
    agent_type: AgentType
    action: str
    status: ExecutionStatus = ExecutionStatus.PENDING
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    duration_ms: Optional[float] = None
    attempts: int = 0
    result: Optional[Dict[str, Any]] = None
    confidence: Optional[float] = None
    error: Optional[ExecutionError] = None
    memory_id: Optional[str] = None


class PlanExecution(BaseModel):
    id: str
    goal_plan_id: str
    attempt: int = 1
    status: ExecutionStatus = ExecutionStatus.RUNNING
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    agent_results: List[AgentExecutionResult] = Field(default_factory=list)
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# Runtime helpers
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class AgentAvailability:
    is_available: bool
    estimated_free_time: Optional[datetime] = None
    current_intentions: int = 0

    @property
    def can_recruit(self) -> bool:
        return self.is_available or self.estimated_free_time is not None


@dataclass(frozen=True)
class AgentIntent:
    """Signal broadcast on the mesh so other agents can see planned work."""

    agent_id: str
    agent_type: AgentType
    intention: str
    priority: int = 5
    confidence: float = 0.5
    estimated_duration_minutes: int = 0
    dependencies: tuple[str, ...] = ()
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BudgetStatus:
    can_execute: bool
    utilization_percentage: float = 0.0


__all__ = [
    "AgentAssignment",
    "AgentAvailability",
    "AgentExecutionResult",
    "AgentIntent",
    "AgentType",
    "BudgetStatus",
    "ConsensusResult",
    "ConsensusRound",
    "DecomposedGoal",
    "EvaluationAlignment",
    "EvaluationFailure",
    "ExecutionError",
    "ExecutionStatus",
    "Goal",
    "GoalAnalysis",
    "GoalCategory",
    "GoalRequest",
    "GoalStatus",
    "Level",
    "MemoryContent",
    "MemoryEntry",
    "MemoryOutcome",
    "MemoryPerformance",
    "MemoryRecord",
    "MemoryRelationships",
    "MemoryTemporal",
    "Participant",
    "PlanConstraints",
    "PlanEvaluation",
    "PlanExecution",
    "PlanningResult",
    "ProposedPlan",
    "RiskAssessment",
    "SubGoal",
    "TargetMetric",
    "TERMINAL_EXECUTION_STATUSES",
]
