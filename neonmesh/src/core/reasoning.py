"""Plan proposal, evaluation and consensus rounds.

A planning attempt moves through ``proposed -> evaluated (xN) -> resolved``.
Resolution is delegated to :func:`resolve_consensus`, a pure function of the
received scores, the number of invited participants and the quorum, so a
round can be re-derived from its stored evaluations at any time.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Union

from pydantic import ValidationError

from .clock import Clock, utcnow
from .collaborators import AvailabilityProvider, IntentBroadcaster, MeshRepository
from .decomposer import check_assignment_dag
from .errors import AvailabilityError, EvaluationError, PlanValidationError
from .telemetry import LogLevel, Telemetry
from .types import (
    AgentAssignment,
    AgentIntent,
    AgentType,
    ConsensusResult,
    ConsensusRound,
    EvaluationAlignment,
    EvaluationFailure,
    MemoryOutcome,
    Participant,
    PlanEvaluation,
    ProposedPlan,
    SubGoal,
)

from ..memory.index import MemoryIndex, MemoryQuery


APPROVAL_SCORE = 0.7
REJECTION_SCORE = 0.4

COMMON_FAILURE_REASONS = (
    "Insufficient brand alignment",
    "Resource conflicts",
    "Unrealistic timeline",
    "Missing dependencies",
)

CONSENSUS_BEST_PRACTICES = (
    "Include fallback agents in sequences",
    "Validate resource availability early",
    "Maintain brand alignment > 0.8",
    "Break down complex goals into smaller subgoals",
)

Evaluator = Callable[[ProposedPlan, Participant], Awaitable[PlanEvaluation]]


@dataclass(frozen=True)
class EvaluationWeights:
    brand: float
    feasibility: float
    efficiency: float
    risk: float

    def total(self) -> float:
        return self.brand + self.feasibility + self.efficiency + self.risk


DEFAULT_WEIGHTS = EvaluationWeights(0.25, 0.25, 0.25, 0.25)

EVALUATION_WEIGHTS: Dict[AgentType, EvaluationWeights] = {
    AgentType.BRAND_VOICE: EvaluationWeights(0.5, 0.2, 0.1, 0.2),
    AgentType.TREND: EvaluationWeights(0.2, 0.3, 0.3, 0.2),
    AgentType.SEO: EvaluationWeights(0.3, 0.3, 0.2, 0.2),
}


def evaluation_weights(agent_type: AgentType) -> EvaluationWeights:
    return EVALUATION_WEIGHTS.get(agent_type, DEFAULT_WEIGHTS)


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


@dataclass(frozen=True)
class ConsensusOutcome:
    result: ConsensusResult
    final_score: Optional[float]
    participation_rate: float
    approval_rate: float


def resolve_consensus(
    evaluations: Sequence[Union[PlanEvaluation, float]],
    participant_count: int,
    quorum: float,
) -> ConsensusOutcome:
    """Apply the ordered resolution rules to a set of received evaluations."""

    if participant_count <= 0:
        raise ValueError("Consensus requires at least one invited participant")
    if not 0.0 < quorum <= 1.0:
        raise ValueError(f"Quorum must be in (0, 1], got {quorum}")
    scores = [item.score if isinstance(item, PlanEvaluation) else float(item) for item in evaluations]
    received = len(scores)
    participation = received / participant_count
    if received == 0:
        return ConsensusOutcome(ConsensusResult.QUORUM_NOT_MET, None, participation, 0.0)

    final_score = sum(scores) / received
    approval_rate = sum(1 for score in scores if score >= APPROVAL_SCORE) / received
    if participation < quorum:
        result = ConsensusResult.QUORUM_NOT_MET
    elif approval_rate >= quorum and final_score >= APPROVAL_SCORE:
        result = ConsensusResult.APPROVED
    elif final_score < REJECTION_SCORE:
        result = ConsensusResult.REJECTED
    else:
        result = ConsensusResult.PENDING
    return ConsensusOutcome(result, final_score, participation, approval_rate)


def validate_plan_data(plan_data: Mapping[str, Any]) -> None:
    """Raise :class:`PlanValidationError` listing every structural problem."""

    problems: List[str] = []
    title = plan_data.get("title")
    if not isinstance(title, str) or not title.strip():
        problems.append("Plan must have a title")
    if not plan_data.get("subgoals"):
        problems.append("Plan must have at least one subgoal")
    if not plan_data.get("agent_sequence"):
        problems.append("Plan must have at least one agent assignment")
    for name, label in (
        ("brand_alignment", "Brand alignment"),
        ("feasibility", "Feasibility"),
        ("confidence", "Confidence"),
    ):
        value = plan_data.get(name)
        if value is None:
            continue
        try:
            number = float(value)
        except (TypeError, ValueError):
            problems.append(f"{label} must be a number")
            continue
        if not 0.0 <= number <= 1.0:
            problems.append(f"{label} must be between 0 and 1")
    if problems:
        raise PlanValidationError("; ".join(problems), problems=problems)
    check_assignment_dag(plan_data["agent_sequence"])


@dataclass
class ReasoningProtocol:
    """Runs proposal, evaluation and consensus for goal plans."""

    availability: AvailabilityProvider
    repository: MeshRepository
    broadcaster: Optional[IntentBroadcaster] = None
    memory: Optional[MemoryIndex] = None
    telemetry: Telemetry = field(default_factory=Telemetry)
    evaluator: Optional[Evaluator] = None
    evaluation_timeout_s: float = 30.0
    clock: Clock = utcnow
    _round_locks: Dict[str, asyncio.Lock] = field(default_factory=dict, init=False)

    def _emit(self, event: str, **payload: Any) -> None:
        self.telemetry.emit(f"reasoning.{event}", **payload)

    async def propose_plan(
        self, goal_id: str, proposer: Participant, plan_data: Mapping[str, Any]
    ) -> ProposedPlan:
        validate_plan_data(plan_data)
        try:
            plan = ProposedPlan(
                goal_id=goal_id,
                proposing_agent=proposer.agent_id,
                title=str(plan_data["title"]).strip(),
                subgoals=[SubGoal.model_validate(item) for item in plan_data["subgoals"]],
                agent_sequence=[AgentAssignment.model_validate(item) for item in plan_data["agent_sequence"]],
                estimated_time=int(plan_data.get("estimated_time", 0) or 0),
                brand_alignment=float(plan_data.get("brand_alignment", 0.8)),
                feasibility=float(plan_data.get("feasibility", 0.7)),
                confidence=float(plan_data.get("confidence", 0.6)),
                risk_factors=list(plan_data.get("risk_factors") or []),
                dependencies=list(plan_data.get("dependencies") or []),
                metadata=dict(plan_data.get("metadata") or {}),
                created_at=self.clock(),
            )
        except ValidationError as exc:
            raise PlanValidationError(f"Malformed plan: {exc}") from exc

        status = await self.availability.get_agent_availability(proposer.agent_id)
        if not status.is_available:
            raise AvailabilityError(proposer.agent_id, f"Proposing agent {proposer.agent_id} is not available")

        if self.broadcaster is not None:
            await self.broadcaster.broadcast_intent(
                AgentIntent(
                    agent_id=proposer.agent_id,
                    agent_type=proposer.agent_type,
                    intention=f"plan_proposal:{goal_id}",
                    priority=8,
                    confidence=plan.confidence,
                    estimated_duration_minutes=plan.estimated_time,
                    dependencies=tuple(plan.dependencies),
                    metadata={"goal_id": goal_id, "title": plan.title},
                )
            )
        self._emit(
            "plan_proposed",
            goal_id=goal_id,
            proposer=proposer.agent_id,
            subgoals=len(plan.subgoals),
            assignments=len(plan.agent_sequence),
        )
        return plan

    async def _similar_durations(self, plan: ProposedPlan, agent_type: AgentType) -> List[float]:
        if self.memory is None:
            return []
        similar = await self.memory.retrieve_memories(
            MemoryQuery(
                goal_type=plan.metadata.get("goal_type"),
                agent_types=[agent_type],
                outcomes=[MemoryOutcome.SUCCESS],
                limit=10,
            )
        )
        durations: List[float] = []
        for entry in similar:
            minutes = entry.metadata.get("estimated_time_minutes", 30)
            durations.append(float(minutes) if entry.confidence > 0.8 else 0.0)
        return durations

    async def evaluate_plan(self, plan: ProposedPlan, participant: Participant) -> PlanEvaluation:
        """Score ``plan`` from the point of view of ``participant``'s agent type."""

        if self.evaluator is not None:
            return await self.evaluator(plan, participant)

        weights = evaluation_weights(participant.agent_type)
        efficiency = min(1.0, 60.0 / plan.estimated_time) if plan.estimated_time > 0 else 1.0
        risk = max(0.0, 1.0 - 0.1 * len(plan.risk_factors))
        score = _clamp(
            weights.brand * plan.brand_alignment
            + weights.feasibility * plan.feasibility
            + weights.efficiency * efficiency
            + weights.risk * risk
        )

        reasons: List[str] = []
        if plan.brand_alignment < 0.7:
            reasons.append("Brand alignment could be improved")
        if plan.feasibility < 0.6:
            reasons.append("Feasibility concerns exist")
        if len(plan.risk_factors) > 3:
            reasons.append("High risk factors identified")
        if plan.estimated_time > 480:
            reasons.append("Timeline may be too aggressive")

        similar = await self._similar_durations(plan, participant.agent_type)
        suggestions: List[str] = []
        if similar and plan.estimated_time < (sum(similar) / len(similar)) * 0.8:
            suggestions.append("Consider allocating more time based on similar successful plans")

        blockers = [
            risk_text
            for risk_text in plan.risk_factors
            if "blocker" in risk_text.lower() or "critical" in risk_text.lower()
        ]
        return PlanEvaluation(
            evaluator_agent=participant.agent_id,
            agent_type=participant.agent_type,
            score=score,
            reasoning="; ".join(reasons) if reasons else "Plan meets quality standards across all evaluation criteria",
            alignment=EvaluationAlignment(
                brand=plan.brand_alignment,
                feasibility=plan.feasibility,
                efficiency=efficiency,
                risk_level=1.0 - risk,
            ),
            suggestions=suggestions,
            blockers=blockers,
            confidence_in_evaluation=min(1.0, 0.8 + 0.02 * len(similar)),
            timestamp=self.clock(),
        )

    async def _collect(self, plan: ProposedPlan, participant: Participant) -> PlanEvaluation | EvaluationFailure:
        try:
            return await asyncio.wait_for(self.evaluate_plan(plan, participant), timeout=self.evaluation_timeout_s)
        except asyncio.TimeoutError:
            failure = EvaluationError(participant.agent_id, "Evaluation timed out", timed_out=True)
        except Exception as exc:  # evaluator failures only reduce participation
            failure = EvaluationError(participant.agent_id, str(exc) or type(exc).__name__)
        self._emit(
            "evaluation_failed",
            level=LogLevel.WARNING,
            goal_id=plan.goal_id,
            agent_id=participant.agent_id,
            error=str(failure),
            timed_out=failure.timed_out,
        )
        return EvaluationFailure(
            evaluator_agent=participant.agent_id,
            agent_type=participant.agent_type,
            error=str(failure),
            timed_out=failure.timed_out,
        )

    def _lock_for(self, goal_plan_id: str) -> asyncio.Lock:
        lock = self._round_locks.get(goal_plan_id)
        if lock is None:
            lock = self._round_locks[goal_plan_id] = asyncio.Lock()
        return lock

    async def consensus_round(
        self,
        goal_plan_id: str,
        plans: Sequence[ProposedPlan],
        participants: Sequence[Participant],
        quorum: float = 0.7,
    ) -> ConsensusRound:
        if not plans:
            raise PlanValidationError("Consensus requires at least one proposed plan")
        if not participants:
            raise ValueError("Consensus requires at least one participant")
        snapshot = plans[0].model_copy(deep=True)
        self._emit("round_started", goal_id=goal_plan_id, participants=len(participants), quorum=quorum)

        collected = await asyncio.gather(*(self._collect(snapshot, participant) for participant in participants))
        evaluations = [item for item in collected if isinstance(item, PlanEvaluation)]
        failures = [item for item in collected if isinstance(item, EvaluationFailure)]
        outcome = resolve_consensus(evaluations, len(participants), quorum)

        async with self._lock_for(goal_plan_id):
            previous = await self.repository.list_rounds(goal_plan_id)
            round_number = max((item.round_number for item in previous), default=0) + 1
            now = self.clock()
            round_ = ConsensusRound(
                id=f"round_{uuid.uuid4().hex[:12]}",
                goal_plan_id=goal_plan_id,
                round_number=round_number,
                proposed_plan=snapshot,
                participant_agents=list(participants),
                evaluations=evaluations,
                failures=failures,
                quorum=quorum,
                result=outcome.result,
                final_score=outcome.final_score,
                winning_plan=snapshot.model_copy(deep=True) if outcome.result is ConsensusResult.APPROVED else None,
                created_at=now,
                completed_at=None if outcome.result is ConsensusResult.PENDING else now,
            )
            await self.repository.create_round(round_)

        self._emit(
            "round_completed",
            goal_id=goal_plan_id,
            round_number=round_number,
            result=outcome.result.value,
            final_score=outcome.final_score,
            participation=outcome.participation_rate,
            failures=len(failures),
        )
        return round_

    async def get_consensus_insights(self, goal_plan_id: Optional[str] = None) -> Dict[str, Any]:
        rounds = [
            item
            for item in await self.repository.list_rounds(goal_plan_id)
            if item.result is ConsensusResult.APPROVED and item.completed_at is not None
        ][:50]
        scores = [item.final_score for item in rounds if item.final_score is not None]
        return {
            "average_score": sum(scores) / len(scores) if scores else 0.0,
            "successful_plans": [
                item.winning_plan
                for item in rounds
                if item.final_score is not None and item.final_score > 0.8 and item.winning_plan is not None
            ],
            "common_failure_reasons": list(COMMON_FAILURE_REASONS),
            "best_practices": list(CONSENSUS_BEST_PRACTICES),
        }


__all__ = [
    "COMMON_FAILURE_REASONS",
    "CONSENSUS_BEST_PRACTICES",
    "ConsensusOutcome",
    "DEFAULT_WEIGHTS",
    "EVALUATION_WEIGHTS",
    "EvaluationWeights",
    "Evaluator",
    "ReasoningProtocol",
    "evaluation_weights",
    "resolve_consensus",
    "validate_plan_data",
]
