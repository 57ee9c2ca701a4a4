"""Goal planner: decomposition, recruitment, consensus, replanning and execution."""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import asdict, dataclass, field
from datetime import timedelta
from time import perf_counter
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from .clock import Clock, utcnow
from .collaborators import IntentBroadcaster, MeshRepository, MetricsSource
from .config import PlannerConfig
from .decomposer import analyze_goal, decompose_goal
from .errors import AvailabilityError, PlannerError, PlanValidationError
from .reasoning import CONSENSUS_BEST_PRACTICES, ReasoningProtocol
from .results import coerce_response, parse_agent_result
from .scheduler import PeriodicTicker
from .telemetry import LogLevel, Telemetry
from .types import (
    AgentAssignment,
    AgentExecutionResult,
    AgentIntent,
    AgentType,
    ConsensusResult,
    ConsensusRound,
    DecomposedGoal,
    ExecutionError,
    ExecutionStatus,
    Goal,
    GoalRequest,
    GoalStatus,
    Level,
    MemoryOutcome,
    MemoryPerformance,
    MemoryRecord,
    Participant,
    PlanExecution,
    PlanningResult,
    RiskAssessment,
)
from ..agents.registry import AgentRegistry
from ..memory.index import MemoryIndex
from ..memory.insights import MemoryMetricsSource

Decomposer = Callable[..., DecomposedGoal]

PLANNING_FAILURE_REASONS = (
    "Resource conflicts between agents",
    "Unrealistic timeline estimates",
    "Insufficient brand alignment",
    "Missing critical dependencies",
)

REPLAN_ADJUSTMENTS = (
    "Simplify goal complexity",
    "Increase time estimates",
    "Add fallback agents",
)

MONITOR_REPLAN_REASON = "Multiple execution failures detected"

_MITIGATIONS = (
    ("timeline", "Add buffer time and parallel execution where possible"),
    ("quality", "Implement quality checkpoints and review processes"),
    ("resource", "Secure fallback resources and alternative agents"),
    ("dependency", "Create contingency plans for critical dependencies"),
)
_DEFAULT_MITIGATION = "Monitor closely and prepare alternative approaches"

_COMPLEXITY_ADJUSTMENT = {
    Level.LOW: 0.1,
    Level.MEDIUM: 0.0,
    Level.HIGH: -0.1,
    Level.CRITICAL: -0.2,
}


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def assess_risk(risk_factors: Sequence[str]) -> RiskAssessment:
    count = len(risk_factors)
    if count == 0:
        level = Level.LOW
    elif count <= 2:
        level = Level.MEDIUM
    elif count <= 4:
        level = Level.HIGH
    else:
        level = Level.CRITICAL
    mitigations: List[str] = []
    for factor in risk_factors:
        lowered = factor.lower()
        mitigation = next((text for keyword, text in _MITIGATIONS if keyword in lowered), _DEFAULT_MITIGATION)
        mitigations.append(mitigation)
    return RiskAssessment(level=level, factors=list(risk_factors), mitigations=mitigations)


def estimate_feasibility(complexity: Level, coverage: float) -> float:
    base = 0.8 + _COMPLEXITY_ADJUSTMENT.get(complexity, 0.0)
    return _clamp(base * coverage)


def estimate_confidence(decomposed: DecomposedGoal) -> float:
    confidence = 0.7 - 0.05 * len(decomposed.risk_factors) - 0.02 * len(decomposed.dependencies)
    if decomposed.estimated_time > 480:
        confidence += 0.1
    elif decomposed.estimated_time < 120:
        confidence -= 0.1
    return _clamp(confidence, 0.1, 1.0)


@dataclass(frozen=True)
class FailureAnalysis:
    primary_cause: str
    recommended_adjustments: tuple[str, ...] = REPLAN_ADJUSTMENTS


def analyze_failure(reason: str) -> FailureAnalysis:
    return FailureAnalysis(primary_cause=reason)


def adjust_decomposition(
    decomposed: DecomposedGoal, analysis: FailureAnalysis, *, time_factor: float = 1.2
) -> DecomposedGoal:
    """Return a more conservative copy of ``decomposed`` after a failure."""

    complexity = Level.MEDIUM if decomposed.complexity is Level.LOW else decomposed.complexity
    return decomposed.model_copy(
        update={
            "estimated_time": int(round(decomposed.estimated_time * time_factor)),
            "risk_factors": [*decomposed.risk_factors, f"Adjusted due to: {analysis.primary_cause}"],
            "complexity": complexity,
        },
        deep=True,
    )


def _dependency_layers(assignments: Sequence[AgentAssignment]) -> List[List[AgentAssignment]]:
    """Group one phase's assignments into layers runnable concurrently.

    Dependencies pointing outside the phase are satisfied by earlier phases.
    """

    remaining = list(assignments)
    layers: List[List[AgentAssignment]] = []
    while remaining:
        pending = {item.id for item in remaining}
        ready = [item for item in remaining if not any(dep in pending for dep in item.dependencies)]
        if not ready:
            raise PlanValidationError(
                "Assignment dependencies form a cycle: " + ", ".join(sorted(pending)),
                problems=sorted(pending),
            )
        layers.append(ready)
        ready_ids = {item.id for item in ready}
        remaining = [item for item in remaining if item.id not in ready_ids]
    return layers


@dataclass
class GoalPlanner:
    """Drive goals from free text through consensus to execution.

    The planner owns no agents itself: capabilities and their availability
    come from ``agents``, plan quality gates from ``reasoning`` and history
    from ``repository``/``memory``.  Results of the latest planning attempt
    per goal are cached in-process and overwritten by :meth:`replan`.
    """

    repository: MeshRepository
    reasoning: ReasoningProtocol
    agents: AgentRegistry
    memory: Optional[MemoryIndex] = None
    broadcaster: Optional[IntentBroadcaster] = None
    telemetry: Telemetry = field(default_factory=Telemetry)
    config: PlannerConfig = field(default_factory=PlannerConfig)
    clock: Clock = utcnow
    decomposer: Decomposer = decompose_goal
    metrics: Optional[MetricsSource] = None
    _active: Dict[str, PlanningResult] = field(default_factory=dict, init=False)
    _ticker: Optional[PeriodicTicker] = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.metrics is None and self.memory is not None:
            self.metrics = MemoryMetricsSource(self.memory)

    def _emit(self, event: str, **payload: Any) -> None:
        self.telemetry.emit(f"planner.{event}", **payload)

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------
    async def plan(self, request: GoalRequest | Mapping[str, Any]) -> PlanningResult:
        if not isinstance(request, GoalRequest):
            request = GoalRequest.model_validate(request)
        decomposed = self.decomposer(request.description, target_metrics=request.target_metrics)
        now = self.clock()
        goal = Goal(
            id=f"goal_{uuid.uuid4().hex[:12]}",
            title=request.title,
            description=request.description,
            priority=request.priority,
            status=GoalStatus.PLANNING,
            target_metrics=dict(request.target_metrics),
            subgoals=list(decomposed.subgoals),
            agent_sequence=list(decomposed.agent_sequence),
            brand_alignment=0.8,
            feasibility=0.7,
            confidence=0.6,
            estimated_time_minutes=decomposed.estimated_time,
            complexity=decomposed.complexity,
            risk_factors=list(decomposed.risk_factors),
            metadata={
                "goal_type": decomposed.analysis.category.value,
                "urgency": decomposed.analysis.urgency.value,
                "dependencies": list(decomposed.dependencies),
                "success_metrics": list(decomposed.success_metrics),
                "constraints": request.constraints.model_dump() if request.constraints else None,
                "stakeholders": list(request.stakeholders),
            },
            created_at=now,
            updated_at=now,
        )
        await self.repository.create_goal(goal)
        self._emit("plan_started", goal_id=goal.id, title=goal.title, complexity=decomposed.complexity.value)
        try:
            return await self._run_planning(goal, decomposed)
        except Exception as exc:
            await self._mark_failed(goal.id, f"Planning error: {exc}")
            raise

    async def _mark_failed(self, goal_id: str, reason: str) -> None:
        goal = await self.repository.get_goal(goal_id)
        metadata = dict(goal.metadata) if goal is not None else {}
        metadata["failure_reason"] = reason
        await self.repository.update_goal(goal_id, status=GoalStatus.FAILED, metadata=metadata)
        self._emit("goal_failed", level=LogLevel.WARNING, goal_id=goal_id, reason=reason)

    async def _broadcast_planning_intent(self, goal_id: str, decomposed: DecomposedGoal) -> None:
        if self.broadcaster is None:
            return
        await self.broadcaster.broadcast_intent(
            AgentIntent(
                agent_id=self.agents.agent_id_for(AgentType.GOAL_PLANNER),
                agent_type=AgentType.GOAL_PLANNER,
                intention=f"orchestrate_goal_planning_{goal_id}",
                priority=9,
                confidence=0.9,
                estimated_duration_minutes=decomposed.estimated_time,
                dependencies=tuple(decomposed.dependencies),
                metadata={"goal_id": goal_id},
            )
        )

    async def _recruit(self, goal_id: str, decomposed: DecomposedGoal) -> tuple[List[Participant], float]:
        """Query availability for required and fallback types concurrently.

        Returns the recruited participants and the coverage of required types.
        """

        required = decomposed.required_agent_types()
        wanted = list(required)
        for agent_type in decomposed.fallback_agent_types():
            if agent_type not in wanted:
                wanted.append(agent_type)

        async def recruit_one(agent_type: AgentType) -> Optional[Participant]:
            agent_id = self.agents.agent_id_for(agent_type)
            try:
                status = await self.agents.get_agent_availability(agent_id)
            except AvailabilityError:
                status = None
            if status is None or not status.can_recruit:
                self._emit(
                    "agent_unavailable",
                    level=LogLevel.WARNING,
                    goal_id=goal_id,
                    agent_id=agent_id,
                    agent_type=agent_type.value,
                )
                return None
            return Participant(agent_id=agent_id, agent_type=agent_type)

        checked = await asyncio.gather(*(recruit_one(agent_type) for agent_type in wanted))
        participants = [item for item in checked if item is not None]
        recruited_types = {item.agent_type for item in participants}
        coverage = (
            sum(1 for agent_type in required if agent_type in recruited_types) / len(required) if required else 1.0
        )
        self._emit(
            "agents_recruited",
            goal_id=goal_id,
            recruited=[item.agent_id for item in participants],
            coverage=coverage,
        )
        return participants, coverage

    async def _proposer(self, goal_id: str, participants: Sequence[Participant]) -> Participant:
        """Prefer the goal planner; otherwise hand the proposal to an available recruit."""

        planner_id = self.agents.agent_id_for(AgentType.GOAL_PLANNER)
        candidates = [Participant(agent_id=planner_id, agent_type=AgentType.GOAL_PLANNER)]
        candidates.extend(item for item in participants if item.agent_id != planner_id)
        for candidate in candidates:
            try:
                status = await self.agents.get_agent_availability(candidate.agent_id)
            except AvailabilityError:
                continue
            if status.is_available:
                if candidate.agent_id != planner_id:
                    self._emit(
                        "proposer_substituted",
                        level=LogLevel.WARNING,
                        goal_id=goal_id,
                        agent_id=candidate.agent_id,
                    )
                return candidate
        raise AvailabilityError(planner_id, "No available agent can propose a plan")

    async def _run_planning(self, goal: Goal, decomposed: DecomposedGoal) -> PlanningResult:
        await self._broadcast_planning_intent(goal.id, decomposed)
        participants, coverage = await self._recruit(goal.id, decomposed)
        proposer = await self._proposer(goal.id, participants)
        plan_data = {
            "title": goal.title,
            "subgoals": [item.model_dump() for item in decomposed.subgoals],
            "agent_sequence": [item.model_dump() for item in decomposed.agent_sequence],
            "estimated_time": decomposed.estimated_time,
            "brand_alignment": 0.8,
            "feasibility": estimate_feasibility(decomposed.complexity, coverage),
            "confidence": estimate_confidence(decomposed),
            "risk_factors": list(decomposed.risk_factors),
            "dependencies": list(decomposed.dependencies),
            "metadata": {
                "goal_type": goal.metadata.get("goal_type"),
                "complexity": decomposed.complexity.value,
                "coverage": coverage,
            },
        }
        plan = await self.reasoning.propose_plan(goal.id, proposer, plan_data)
        round_ = await self.reasoning.consensus_round(
            goal.id, [plan], participants or [proposer], quorum=self.config.quorum
        )
        return await self._commit(goal.id, decomposed, participants, round_)

    async def _commit(
        self,
        goal_id: str,
        decomposed: DecomposedGoal,
        participants: List[Participant],
        round_: ConsensusRound,
    ) -> PlanningResult:
        current = await self.repository.get_goal(goal_id)
        if current is None:
            raise KeyError(goal_id)
        metadata = dict(current.metadata)
        metadata["consensus_round_id"] = round_.id
        metadata["consensus_result"] = round_.result.value
        approved = round_.result is ConsensusResult.APPROVED
        estimated_completion = None
        if approved:
            score = round_.final_score if round_.final_score is not None else current.confidence
            await self.repository.update_goal(
                goal_id,
                status=GoalStatus.APPROVED,
                confidence=score,
                feasibility=score,
                estimated_time_minutes=decomposed.estimated_time,
                complexity=decomposed.complexity,
                risk_factors=list(decomposed.risk_factors),
                metadata=metadata,
            )
            estimated_completion = self.clock() + timedelta(minutes=decomposed.estimated_time)
        else:
            metadata["failure_reason"] = f"Consensus {round_.result.value}"
            await self.repository.update_goal(goal_id, status=GoalStatus.FAILED, metadata=metadata)

        result = PlanningResult(
            goal_plan_id=goal_id,
            decomposed_goal=decomposed,
            participating_agents=participants,
            consensus_round=round_,
            approved=approved,
            estimated_completion=estimated_completion,
            risk_assessment=assess_risk(decomposed.risk_factors),
        )
        self._active[goal_id] = result
        self._emit(
            "plan_completed",
            goal_id=goal_id,
            approved=approved,
            result=round_.result.value,
            final_score=round_.final_score,
            round_number=round_.round_number,
        )
        return result

    def active_result(self, goal_plan_id: str) -> Optional[PlanningResult]:
        return self._active.get(goal_plan_id)

    def _stored_decomposition(self, goal: Goal) -> DecomposedGoal:
        """Rebuild the last committed decomposition from the persisted goal."""

        if not goal.agent_sequence:
            return self.decomposer(goal.description, target_metrics=goal.target_metrics)
        return DecomposedGoal(
            title=goal.title,
            description=goal.description,
            analysis=analyze_goal(goal.description),
            subgoals=list(goal.subgoals),
            agent_sequence=list(goal.agent_sequence),
            estimated_time=goal.estimated_time_minutes,
            complexity=goal.complexity,
            risk_factors=list(goal.risk_factors),
            dependencies=list(goal.metadata.get("dependencies") or []),
            success_metrics=list(goal.metadata.get("success_metrics") or []),
        )

    async def replan(self, goal_plan_id: str, reason: str) -> PlanningResult:
        goal = await self.repository.get_goal(goal_plan_id)
        if goal is None:
            raise KeyError(goal_plan_id)
        metadata = dict(goal.metadata)
        metadata["replanned_at"] = self.clock().isoformat()
        metadata["replanned_reason"] = reason
        metadata["replan_count"] = int(metadata.get("replan_count", 0)) + 1
        await self.repository.update_goal(goal_plan_id, status=GoalStatus.REPLANNING, metadata=metadata)
        self._emit("replan_started", goal_id=goal_plan_id, reason=reason)
        try:
            decomposed = self._stored_decomposition(goal)
            adjusted = adjust_decomposition(
                decomposed, analyze_failure(reason), time_factor=self.config.replan_time_factor
            )
            goal = await self.repository.update_goal(
                goal_plan_id,
                subgoals=list(adjusted.subgoals),
                agent_sequence=list(adjusted.agent_sequence),
                estimated_time_minutes=adjusted.estimated_time,
                complexity=adjusted.complexity,
                risk_factors=list(adjusted.risk_factors),
            )
            return await self._run_planning(goal, adjusted)
        except Exception as exc:
            await self._mark_failed(goal_plan_id, f"Replanning error: {exc}")
            raise

    # ------------------------------------------------------------------
    # Monitoring
    # ------------------------------------------------------------------
    async def monitor_and_optimize(self) -> List[str]:
        """Replan executing goals with repeated recent failures; returns their ids."""

        goals = await self.repository.list_goals(statuses=[GoalStatus.EXECUTING])
        replanned: List[str] = []
        for goal in goals:
            try:
                recent = await self.repository.recent_executions(goal.id, limit=self.config.recent_execution_window)
                failures = sum(1 for item in recent if item.status is ExecutionStatus.FAILED)
                if failures >= self.config.failure_threshold:
                    await self.replan(goal.id, MONITOR_REPLAN_REASON)
                    replanned.append(goal.id)
            except Exception as exc:  # one goal must not stop the sweep
                self._emit("monitor_error", level=LogLevel.ERROR, goal_id=goal.id, error=str(exc))
        self._emit("monitor_tick", checked=len(goals), replanned=replanned)
        return replanned

    def start_monitoring(self, interval_s: Optional[float] = None, **ticker_options: Any) -> PeriodicTicker:
        if self._ticker is None or not self._ticker.active:
            self._ticker = PeriodicTicker(
                callback=self.monitor_and_optimize,
                interval_s=interval_s or self.config.monitor_interval_s,
                name="planner.monitor",
                telemetry=self.telemetry,
                clock=self.clock,
                **ticker_options,
            )
            self._ticker.start()
        return self._ticker

    async def stop_monitoring(self) -> None:
        if self._ticker is not None:
            await self._ticker.stop()
            self._ticker = None

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------
    async def execute(self, goal_plan_id: str) -> PlanExecution:
        goal = await self.repository.get_goal(goal_plan_id)
        if goal is None:
            raise KeyError(goal_plan_id)
        if goal.status is not GoalStatus.APPROVED:
            raise PlannerError(f"Goal {goal_plan_id} is {goal.status.value}; only approved goals can execute")

        previous = await self.repository.recent_executions(goal_plan_id, limit=1)
        execution = PlanExecution(
            id=f"exec_{uuid.uuid4().hex[:12]}",
            goal_plan_id=goal_plan_id,
            attempt=previous[0].attempt + 1 if previous else 1,
            status=ExecutionStatus.RUNNING,
            started_at=self.clock(),
        )
        await self.repository.create_execution(execution)
        goal = await self.repository.update_goal(goal_plan_id, status=GoalStatus.EXECUTING)
        self._emit("execution_started", goal_id=goal_plan_id, execution_id=execution.id, attempt=execution.attempt)

        results: List[AgentExecutionResult] = []
        error: Optional[str] = None
        try:
            for phase in sorted({item.phase for item in goal.agent_sequence}):
                members = [item for item in goal.agent_sequence if item.phase == phase]
                for layer in _dependency_layers(members):
                    layer_results = await asyncio.gather(
                        *(self._run_assignment(goal, assignment, execution) for assignment in layer)
                    )
                    results.extend(layer_results)
                    failed = [item for item in layer_results if item.status is not ExecutionStatus.COMPLETED]
                    if failed:
                        error = "; ".join(
                            f"{item.action}: {item.error.message if item.error else 'failed'}" for item in failed
                        )
                        break
                if error:
                    break
        except Exception as exc:
            await self._finish_execution(execution, results, f"Execution error: {exc}")
            raise

        finished = await self._finish_execution(execution, results, error)
        if error is None:
            await self.repository.update_goal(goal_plan_id, status=GoalStatus.COMPLETED)
        return finished

    async def _finish_execution(
        self, execution: PlanExecution, results: List[AgentExecutionResult], error: Optional[str]
    ) -> PlanExecution:
        finished = execution.model_copy(
            update={
                "status": ExecutionStatus.FAILED if error else ExecutionStatus.COMPLETED,
                "completed_at": self.clock(),
                "agent_results": list(results),
                "error": error,
            }
        )
        await self.repository.update_execution(finished)
        self._emit(
            "execution_completed",
            goal_id=execution.goal_plan_id,
            execution_id=execution.id,
            status=finished.status.value,
            agents=len(results),
            error=error,
        )
        return finished

    async def _run_assignment(
        self, goal: Goal, assignment: AgentAssignment, execution: PlanExecution
    ) -> AgentExecutionResult:
        task = {
            "action": assignment.id,
            "tasks": list(assignment.tasks),
            "goal_id": goal.id,
            "phase": assignment.phase,
        }
        context = {
            "goal_id": goal.id,
            "title": goal.title,
            "execution_id": execution.id,
            "attempt": execution.attempt,
        }
        started_at = self.clock()
        attempts = 0
        last_error = f"No available agent for {assignment.agent_type.value}"
        for agent_type in [assignment.agent_type, *assignment.fallback_agents]:
            agent = self.agents.for_type(agent_type)
            if agent is None:
                continue
            status = await self.agents.get_agent_availability(agent.agent_id)
            if not status.is_available:
                last_error = f"Agent {agent.agent_id} is not available"
                continue
            attempts += 1
            start = perf_counter()
            try:
                response = coerce_response(await agent.execute(task, context))
                if not response.success:
                    raise RuntimeError(response.error or "Agent reported failure")
                parsed = parse_agent_result(agent.agent_type, response.data)
            except Exception as exc:
                duration_ms = (perf_counter() - start) * 1000.0
                last_error = str(exc) or type(exc).__name__
                await self._remember(goal, agent.agent_id, agent_type, execution, task, {"error": last_error}, False, duration_ms)
                self._emit(
                    "agent_failed",
                    goal_id=goal.id,
                    assignment=assignment.id,
                    agent_id=agent.agent_id,
                    error=last_error,
                )
                continue
            duration_ms = (perf_counter() - start) * 1000.0
            payload = parsed.model_dump()
            memory_id = await self._remember(
                goal, agent.agent_id, agent_type, execution, task, payload, True, duration_ms
            )
            return AgentExecutionResult(
                agent_id=agent.agent_id,
                agent_type=agent_type,
                action=assignment.id,
                status=ExecutionStatus.COMPLETED,
                started_at=started_at,
                completed_at=self.clock(),
                duration_ms=duration_ms,
                attempts=attempts,
                result=payload,
                confidence=response.confidence,
                memory_id=memory_id,
            )

        return AgentExecutionResult(
            agent_id=self.agents.agent_id_for(assignment.agent_type),
            agent_type=assignment.agent_type,
            action=assignment.id,
            status=ExecutionStatus.FAILED,
            started_at=started_at,
            completed_at=self.clock(),
            attempts=attempts,
            error=ExecutionError(
                code="AGENT_EXECUTION_FAILED",
                message=last_error,
                timestamp=self.clock(),
                severity=Level.HIGH,
                recoverable=True,
            ),
        )

    async def _remember(
        self,
        goal: Goal,
        agent_id: str,
        agent_type: AgentType,
        execution: PlanExecution,
        task: Dict[str, Any],
        output: Dict[str, Any],
        succeeded: bool,
        duration_ms: float,
    ) -> Optional[str]:
        if self.memory is None:
            return None
        return await self.memory.ingest_memory(
            MemoryRecord(
                agent_id=agent_id,
                agent_type=agent_type,
                session_id=execution.id,
                goal_plan_id=goal.id,
                input=task,
                output=output,
                context={"goal_type": goal.metadata.get("goal_type"), "attempt": execution.attempt},
                outcome=MemoryOutcome.SUCCESS if succeeded else MemoryOutcome.FAILURE,
                performance=MemoryPerformance(execution_time_ms=duration_ms),
                metadata={
                    "goal_type": goal.metadata.get("goal_type"),
                    "estimated_time_minutes": goal.estimated_time_minutes,
                    "assignment_id": task.get("action"),
                },
            )
        )

    # ------------------------------------------------------------------
    # Insights
    # ------------------------------------------------------------------
    async def get_planning_insights(self) -> Dict[str, Any]:
        goals = await self.repository.list_goals(
            statuses=[GoalStatus.COMPLETED, GoalStatus.FAILED], limit=self.config.insights_window
        )
        completed = [goal for goal in goals if goal.status is GoalStatus.COMPLETED]
        durations = [(goal.updated_at - goal.created_at).total_seconds() / 60.0 for goal in goals]
        agent_types: List[AgentType] = []
        for goal in goals:
            for assignment in goal.agent_sequence:
                if assignment.agent_type not in agent_types:
                    agent_types.append(assignment.agent_type)
        performance = self.metrics.agent_performance(agent_types) if self.metrics is not None else []
        return {
            "total_goals": len(goals),
            "success_rate": len(completed) / len(goals) if goals else 0.0,
            "average_planning_time_minutes": sum(durations) / len(durations) if durations else 0.0,
            "common_failure_reasons": list(PLANNING_FAILURE_REASONS),
            "best_practices": list(CONSENSUS_BEST_PRACTICES),
            "agent_performance": [
                {**asdict(item), "agent_type": item.agent_type.value} for item in performance
            ],
        }


__all__ = [
    "Decomposer",
    "FailureAnalysis",
    "GoalPlanner",
    "MONITOR_REPLAN_REASON",
    "PLANNING_FAILURE_REASONS",
    "REPLAN_ADJUSTMENTS",
    "adjust_decomposition",
    "analyze_failure",
    "assess_risk",
    "estimate_confidence",
    "estimate_feasibility",
]
