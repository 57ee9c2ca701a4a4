from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional

import pytest

from neonmesh.src.agents.registry import AgentRegistry
from neonmesh.src.core.clock import ManualClock
from neonmesh.src.core.errors import AvailabilityError, PlannerError, PlanValidationError
from neonmesh.src.core.planner import (
    MONITOR_REPLAN_REASON,
    GoalPlanner,
    adjust_decomposition,
    analyze_failure,
    assess_risk,
    estimate_feasibility,
)
from neonmesh.src.core.reasoning import ReasoningProtocol
from neonmesh.src.core.repository import InMemoryRepository
from neonmesh.src.core.telemetry import InMemorySink, Telemetry
from neonmesh.src.core.types import (
    AgentAssignment,
    AgentType,
    ConsensusResult,
    DecomposedGoal,
    EvaluationAlignment,
    ExecutionStatus,
    GoalAnalysis,
    GoalCategory,
    GoalStatus,
    Level,
    MemoryOutcome,
    Participant,
    PlanEvaluation,
    PlanExecution,
    ProposedPlan,
    SubGoal,
)
from neonmesh.src.memory.index import MemoryIndex


START = datetime(2024, 5, 6, 8, 0, tzinfo=timezone.utc)


def _decomposer(description: str, target_metrics: Optional[Mapping[str, Any]] = None) -> DecomposedGoal:
    return DecomposedGoal(
        title="Goal: awareness",
        description=description,
        analysis=GoalAnalysis(intent="awareness", category=GoalCategory.AWARENESS, urgency=Level.MEDIUM),
        subgoals=[
            SubGoal(
                id="research_analysis",
                title="Research",
                description="Research the audience",
                priority=10,
                estimated_time_minutes=60,
            ),
            SubGoal(
                id="content_strategy",
                title="Content",
                description="Write launch content",
                priority=8,
                estimated_time_minutes=40,
            ),
        ],
        agent_sequence=[
            AgentAssignment(id="trend_analysis", agent_type=AgentType.TREND, phase=1, estimated_duration_minutes=30),
            AgentAssignment(
                id="content_creation",
                agent_type=AgentType.CONTENT,
                phase=2,
                dependencies=["trend_analysis"],
                estimated_duration_minutes=45,
                fallback_agents=[AgentType.SOCIAL_POSTING],
            ),
        ],
        estimated_time=100,
        complexity=Level.LOW,
        dependencies=["trend_analysis"],
    )


def _scripted(score: float):
    async def evaluator(plan: ProposedPlan, participant: Participant) -> PlanEvaluation:
        return PlanEvaluation(
            evaluator_agent=participant.agent_id,
            agent_type=participant.agent_type,
            score=score,
            reasoning="scripted",
            alignment=EvaluationAlignment(brand=score, feasibility=score, efficiency=score, risk_level=0.0),
        )

    return evaluator


class FailingAgent:
    def __init__(self, agent_id: str, agent_type: AgentType, error: str = "quota exceeded") -> None:
        self.agent_id = agent_id
        self.agent_type = agent_type
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    async def execute(self, task, context):
        self.calls.append(dict(task))
        return {"success": False, "error": self.error}


def _planner(score: float = 0.9, *, agents: Optional[AgentRegistry] = None, **kwargs) -> GoalPlanner:
    clock = kwargs.pop("clock", ManualClock(START))
    repository = kwargs.pop("repository", InMemoryRepository(clock=clock))
    agents = agents or AgentRegistry.with_dry_run_agents()
    memory = kwargs.pop("memory", MemoryIndex(clock=clock))
    telemetry = kwargs.pop("telemetry", Telemetry())
    reasoning = ReasoningProtocol(
        availability=agents,
        repository=repository,
        memory=memory,
        telemetry=telemetry,
        evaluator=_scripted(score),
        clock=clock,
    )
    return GoalPlanner(
        repository=repository,
        reasoning=reasoning,
        agents=agents,
        memory=memory,
        telemetry=telemetry,
        clock=clock,
        decomposer=kwargs.pop("decomposer", _decomposer),
        **kwargs,
    )


REQUEST = {"title": "Spring launch", "description": "Raise awareness for the spring launch"}


def test_assess_risk_levels_and_mitigations():
    assert assess_risk([]).level is Level.LOW
    risk = assess_risk(["Tight timeline may impact quality", "Unknown vendor"])
    assert risk.level is Level.MEDIUM
    assert risk.mitigations == [
        "Add buffer time and parallel execution where possible",
        "Monitor closely and prepare alternative approaches",
    ]
    assert assess_risk(["a", "b", "c"]).level is Level.HIGH
    assert assess_risk(["a", "b", "c", "d", "e"]).level is Level.CRITICAL


def test_feasibility_scales_with_coverage_and_complexity():
    assert estimate_feasibility(Level.LOW, 1.0) == pytest.approx(0.9)
    assert estimate_feasibility(Level.CRITICAL, 0.5) == pytest.approx(0.3)


def test_adjust_decomposition_is_more_conservative():
    adjusted = adjust_decomposition(_decomposer("x"), analyze_failure("Too slow"))
    assert adjusted.estimated_time == 120
    assert adjusted.complexity is Level.MEDIUM
    assert adjusted.risk_factors[-1] == "Adjusted due to: Too slow"


def test_plan_approved_records_goal_and_round():
    sink = InMemorySink()
    planner = _planner(telemetry=Telemetry(sinks=[sink]))

    result = asyncio.run(planner.plan(REQUEST))

    assert result.approved is True
    assert result.consensus_round.result is ConsensusResult.APPROVED
    assert result.consensus_round.round_number == 1
    assert result.estimated_completion == START + timedelta(minutes=100)
    assert result.risk_assessment.level is Level.LOW
    assert [item.agent_type for item in result.participating_agents] == [
        AgentType.TREND,
        AgentType.CONTENT,
        AgentType.SOCIAL_POSTING,
    ]

    goal = asyncio.run(planner.repository.get_goal(result.goal_plan_id))
    assert goal.status is GoalStatus.APPROVED
    assert goal.confidence == pytest.approx(0.9)
    assert goal.metadata["goal_type"] == "awareness"
    assert goal.metadata["consensus_round_id"] == result.consensus_round.id
    assert planner.active_result(result.goal_plan_id) == result
    assert sink.named("planner.plan_completed")[0]["approved"] is True


def test_plan_rejected_marks_goal_failed():
    planner = _planner(score=0.2)

    result = asyncio.run(planner.plan(REQUEST))

    assert result.approved is False
    assert result.estimated_completion is None
    goal = asyncio.run(planner.repository.get_goal(result.goal_plan_id))
    assert goal.status is GoalStatus.FAILED
    assert goal.metadata["failure_reason"] == "Consensus rejected"


def test_unavailable_agents_reduce_participants():
    agents = AgentRegistry.with_dry_run_agents()
    agents.set_availability("social_posting-agent-001", False)
    agents.set_availability("content-agent-001", False, free_at=START + timedelta(hours=1))
    planner = _planner(agents=agents)

    result = asyncio.run(planner.plan(REQUEST))

    assert [item.agent_type for item in result.participating_agents] == [AgentType.TREND, AgentType.CONTENT]
    assert result.approved is True


def test_unavailable_goal_planner_hands_proposal_to_a_recruit():
    sink = InMemorySink()
    agents = AgentRegistry.with_dry_run_agents()
    agents.set_availability("goal_planner-agent-001", False)
    planner = _planner(agents=agents, telemetry=Telemetry(sinks=[sink]))

    result = asyncio.run(planner.plan(REQUEST))

    assert result.approved is True
    assert result.consensus_round.proposed_plan.proposing_agent == "trend-agent-001"
    assert sink.named("planner.proposer_substituted")[0]["agent_id"] == "trend-agent-001"


def test_plan_fails_when_no_agent_can_propose():
    agents = AgentRegistry.with_dry_run_agents([AgentType.GOAL_PLANNER])
    agents.set_availability("goal_planner-agent-001", False)
    planner = _planner(agents=agents)

    with pytest.raises(AvailabilityError):
        asyncio.run(planner.plan(REQUEST))

    (goal,) = asyncio.run(planner.repository.list_goals())
    assert goal.status is GoalStatus.FAILED
    assert goal.metadata["failure_reason"].startswith("Planning error:")


def test_malformed_decomposition_fails_goal():
    def empty(description, target_metrics=None):
        return _decomposer(description).model_copy(update={"subgoals": []})

    planner = _planner(decomposer=empty)

    with pytest.raises(PlanValidationError):
        asyncio.run(planner.plan(REQUEST))

    (goal,) = asyncio.run(planner.repository.list_goals())
    assert goal.status is GoalStatus.FAILED
    assert goal.metadata["failure_reason"].startswith("Planning error:")


def test_replan_extends_time_and_opens_new_round():
    planner = _planner()

    async def scenario():
        first = await planner.plan(REQUEST)
        second = await planner.replan(first.goal_plan_id, "Timeline slipped")
        goal = await planner.repository.get_goal(first.goal_plan_id)
        return first, second, goal

    first, second, goal = asyncio.run(scenario())

    assert second.goal_plan_id == first.goal_plan_id
    assert second.decomposed_goal.estimated_time == 120
    assert second.decomposed_goal.complexity is Level.MEDIUM
    assert second.consensus_round.round_number == 2
    assert goal.estimated_time_minutes == 120
    assert goal.metadata["replan_count"] == 1
    assert goal.metadata["replanned_reason"] == "Timeline slipped"
    assert goal.status is GoalStatus.APPROVED
    assert planner.active_result(first.goal_plan_id) == second


def test_replan_builds_on_the_stored_goal():
    clock = ManualClock(START)
    repository = InMemoryRepository(clock=clock)
    first_planner = _planner(clock=clock, repository=repository)

    async def scenario():
        planned = await first_planner.plan(REQUEST)
        await first_planner.replan(planned.goal_plan_id, "Timeline slipped")
        fresh_planner = _planner(clock=clock, repository=repository)
        again = await fresh_planner.replan(planned.goal_plan_id, "Quota exceeded")
        return again, await repository.get_goal(planned.goal_plan_id)

    again, goal = asyncio.run(scenario())

    assert again.decomposed_goal.estimated_time == 144
    assert goal.estimated_time_minutes == 144
    assert [item for item in goal.risk_factors if item.startswith("Adjusted due to:")] == [
        item for item in again.decomposed_goal.risk_factors if item.startswith("Adjusted due to:")
    ]
    assert len([item for item in goal.risk_factors if item.startswith("Adjusted due to:")]) == 2
    assert goal.metadata["replan_count"] == 2
    assert again.consensus_round.round_number == 3


def test_replan_unknown_goal_raises_key_error():
    planner = _planner()
    with pytest.raises(KeyError):
        asyncio.run(planner.replan("goal_missing", "nope"))


def test_execute_runs_phases_and_records_memory():
    planner = _planner()

    async def scenario():
        result = await planner.plan(REQUEST)
        execution = await planner.execute(result.goal_plan_id)
        goal = await planner.repository.get_goal(result.goal_plan_id)
        return execution, goal

    execution, goal = asyncio.run(scenario())

    assert execution.status is ExecutionStatus.COMPLETED
    assert execution.attempt == 1
    assert [item.action for item in execution.agent_results] == ["trend_analysis", "content_creation"]
    assert all(item.memory_id for item in execution.agent_results)
    assert execution.agent_results[0].result["capability"] == "trend"
    assert goal.status is GoalStatus.COMPLETED

    entries = planner.memory.snapshot()
    assert {entry.goal_plan_id for entry in entries} == {goal.id}
    assert all(entry.outcome is MemoryOutcome.SUCCESS for entry in entries)
    assert entries[0].metadata["goal_type"] == "awareness"


def test_execute_falls_back_when_primary_fails():
    agents = AgentRegistry.with_dry_run_agents([AgentType.GOAL_PLANNER, AgentType.TREND, AgentType.SOCIAL_POSTING])
    failing = FailingAgent("content-agent-001", AgentType.CONTENT)
    agents.register(failing)
    planner = _planner(agents=agents)

    async def scenario():
        result = await planner.plan(REQUEST)
        return await planner.execute(result.goal_plan_id)

    execution = asyncio.run(scenario())

    assert execution.status is ExecutionStatus.COMPLETED
    content = execution.agent_results[1]
    assert content.agent_type is AgentType.SOCIAL_POSTING
    assert content.attempts == 2
    assert len(failing.calls) == 1
    outcomes = sorted(entry.outcome.value for entry in planner.memory.snapshot())
    assert outcomes == ["failure", "success", "success"]


def test_execute_failure_leaves_goal_executing():
    agents = AgentRegistry.with_dry_run_agents([AgentType.GOAL_PLANNER, AgentType.TREND, AgentType.SOCIAL_POSTING])
    agents.register(FailingAgent("content-agent-001", AgentType.CONTENT))
    agents.set_availability("social_posting-agent-001", False)
    planner = _planner(agents=agents)

    async def scenario():
        result = await planner.plan(REQUEST)
        execution = await planner.execute(result.goal_plan_id)
        goal = await planner.repository.get_goal(result.goal_plan_id)
        return execution, goal

    execution, goal = asyncio.run(scenario())

    assert execution.status is ExecutionStatus.FAILED
    assert execution.error.startswith("content_creation:")
    failed = execution.agent_results[-1]
    assert failed.status is ExecutionStatus.FAILED
    assert failed.error.code == "AGENT_EXECUTION_FAILED"
    assert goal.status is GoalStatus.EXECUTING


def test_execute_requires_approved_goal():
    planner = _planner(score=0.2)

    async def scenario():
        result = await planner.plan(REQUEST)
        await planner.execute(result.goal_plan_id)

    with pytest.raises(PlannerError):
        asyncio.run(scenario())


def test_monitor_replans_goals_with_repeated_failures():
    planner = _planner()

    async def scenario():
        result = await planner.plan(REQUEST)
        goal_id = result.goal_plan_id
        await planner.repository.update_goal(goal_id, status=GoalStatus.EXECUTING)
        for attempt in (1, 2):
            await planner.repository.create_execution(
                PlanExecution(
                    id=f"exec-{attempt}",
                    goal_plan_id=goal_id,
                    attempt=attempt,
                    status=ExecutionStatus.FAILED,
                    started_at=START + timedelta(minutes=attempt),
                )
            )
        replanned = await planner.monitor_and_optimize()
        goal = await planner.repository.get_goal(goal_id)
        return goal_id, replanned, goal

    goal_id, replanned, goal = asyncio.run(scenario())

    assert replanned == [goal_id]
    assert goal.metadata["replanned_reason"] == MONITOR_REPLAN_REASON
    assert goal.status is GoalStatus.APPROVED


def test_monitor_ignores_single_failure():
    planner = _planner()

    async def scenario():
        result = await planner.plan(REQUEST)
        await planner.repository.update_goal(result.goal_plan_id, status=GoalStatus.EXECUTING)
        await planner.repository.create_execution(
            PlanExecution(id="exec-1", goal_plan_id=result.goal_plan_id, status=ExecutionStatus.FAILED)
        )
        return await planner.monitor_and_optimize()

    assert asyncio.run(scenario()) == []


def test_start_and_stop_monitoring():
    sink = InMemorySink()
    planner = _planner(telemetry=Telemetry(sinks=[sink]))

    async def fast_sleep(_seconds: float) -> None:
        await asyncio.sleep(0)

    async def scenario():
        ticker = planner.start_monitoring(interval_s=1.0, sleep=fast_sleep)
        assert planner.start_monitoring() is ticker
        for _ in range(5):
            await asyncio.sleep(0)
        await planner.stop_monitoring()
        return ticker

    ticker = asyncio.run(scenario())

    assert ticker.ticks >= 1
    assert not ticker.active
    assert sink.named("scheduler.started")[0]["name"] == "planner.monitor"
    assert sink.named("planner.monitor_tick")


def test_planning_insights_summarise_outcomes():
    planner = _planner()

    async def scenario():
        result = await planner.plan(REQUEST)
        await planner.execute(result.goal_plan_id)
        planner.reasoning.evaluator = _scripted(0.2)
        await planner.plan(REQUEST)
        return await planner.get_planning_insights()

    insights = asyncio.run(scenario())

    assert insights["total_goals"] == 2
    assert insights["success_rate"] == pytest.approx(0.5)
    by_type = {item["agent_type"]: item for item in insights["agent_performance"]}
    assert set(by_type) == {"trend", "content"}
    assert by_type["trend"]["executions"] == 1
    assert by_type["trend"]["success_rate"] == pytest.approx(1.0)
    assert insights["best_practices"]
