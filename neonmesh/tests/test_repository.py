from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from neonmesh.src.core.clock import ManualClock
from neonmesh.src.core.repository import InMemoryRepository, SQLiteRepository
from neonmesh.src.core.types import (
    AgentType,
    ConsensusResult,
    ConsensusRound,
    ExecutionStatus,
    Goal,
    GoalStatus,
    MemoryEntry,
    MemoryOutcome,
    MemoryTemporal,
    Participant,
    PlanExecution,
    ProposedPlan,
    SubGoal,
)


START = datetime(2024, 2, 1, 12, 0, tzinfo=timezone.utc)


def _round(goal_id: str, number: int) -> ConsensusRound:
    plan = ProposedPlan(
        goal_id=goal_id,
        proposing_agent="goal_planner-agent-001",
        title="Plan",
        subgoals=[SubGoal(id="s1", title="S1", description="first", priority=1, estimated_time_minutes=10)],
        agent_sequence=[],
        estimated_time=10,
        brand_alignment=0.8,
        feasibility=0.7,
        confidence=0.6,
    )
    return ConsensusRound(
        id=f"round-{goal_id}-{number}",
        goal_plan_id=goal_id,
        round_number=number,
        proposed_plan=plan,
        participant_agents=[Participant(agent_id="trend-agent-001", agent_type=AgentType.TREND)],
        quorum=0.7,
        result=ConsensusResult.REJECTED,
        final_score=0.2,
        created_at=START + timedelta(minutes=number),
    )


def _memory(memory_id: str, age_days: float, outcome: MemoryOutcome) -> MemoryEntry:
    created = START - timedelta(days=age_days)
    return MemoryEntry(
        id=memory_id,
        agent_id="content-agent-001",
        agent_type=AgentType.CONTENT,
        session_id="s",
        outcome=outcome,
        temporal=MemoryTemporal(created_at=created, last_accessed=created),
    )


@pytest.fixture(params=["memory", "sqlite"])
def repository(request, tmp_path: Path):
    clock = ManualClock(START)
    if request.param == "memory":
        yield InMemoryRepository(clock=clock)
        return
    repo = SQLiteRepository(tmp_path / "mesh.db", clock=clock)
    yield repo
    repo.close()


def test_goal_lifecycle(repository):
    async def scenario():
        await repository.create_goal(Goal(id="g1", title="First", description="d", created_at=START, updated_at=START))
        await repository.create_goal(Goal(id="g2", title="Second", description="d", created_at=START, updated_at=START))
        repository.clock.advance(minutes=5)
        updated = await repository.update_goal("g1", status=GoalStatus.APPROVED, confidence=0.9)
        approved = await repository.list_goals(statuses=[GoalStatus.APPROVED])
        everything = await repository.list_goals()
        return updated, approved, everything

    updated, approved, everything = asyncio.run(scenario())

    assert updated.status is GoalStatus.APPROVED
    assert updated.updated_at == START + timedelta(minutes=5)
    assert [goal.id for goal in approved] == ["g1"]
    assert [goal.id for goal in everything] == ["g1", "g2"]


def test_goal_errors(repository):
    async def scenario():
        await repository.create_goal(Goal(id="g1", title="First", description="d"))
        with pytest.raises(ValueError):
            await repository.create_goal(Goal(id="g1", title="Again", description="d"))
        with pytest.raises(KeyError):
            await repository.update_goal("missing", status=GoalStatus.FAILED)
        assert await repository.get_goal("missing") is None

    asyncio.run(scenario())


def test_rounds_are_unique_per_goal(repository):
    async def scenario():
        await repository.create_round(_round("g1", 1))
        await repository.create_round(_round("g1", 2))
        await repository.create_round(_round("g2", 1))
        with pytest.raises(ValueError):
            await repository.create_round(_round("g1", 2).model_copy(update={"id": "dup"}))
        return await repository.list_rounds("g1"), await repository.list_rounds(limit=1)

    per_goal, latest = asyncio.run(scenario())

    assert [item.round_number for item in per_goal] == [2, 1]
    assert per_goal[0].proposed_plan.title == "Plan"
    assert len(latest) == 1


def test_executions_most_recent_first(repository):
    async def scenario():
        for attempt in (1, 2, 3):
            await repository.create_execution(
                PlanExecution(id=f"e{attempt}", goal_plan_id="g1", attempt=attempt, started_at=START + timedelta(minutes=attempt))
            )
        finished = (await repository.recent_executions("g1", limit=1))[0].model_copy(
            update={"status": ExecutionStatus.FAILED, "error": "boom"}
        )
        await repository.update_execution(finished)
        with pytest.raises(KeyError):
            await repository.update_execution(PlanExecution(id="nope", goal_plan_id="g1"))
        return await repository.recent_executions("g1", limit=2)

    recent = asyncio.run(scenario())

    assert [item.id for item in recent] == ["e3", "e2"]
    assert recent[0].status is ExecutionStatus.FAILED
    assert recent[0].error == "boom"


def test_memories_filter_and_delete(repository):
    async def scenario():
        await repository.save_memory(_memory("m-old", 40, MemoryOutcome.SUCCESS))
        await repository.save_memory(_memory("m-fail", 1, MemoryOutcome.FAILURE))
        await repository.save_memory(_memory("m-new", 0, MemoryOutcome.SUCCESS))
        recent = await repository.recent_memories(since=START - timedelta(days=30))
        successes = await repository.recent_memories(outcomes=[MemoryOutcome.SUCCESS])
        await repository.delete_memory("m-new")
        return recent, successes, await repository.get_memory("m-new"), await repository.get_memory("m-old")

    recent, successes, deleted, kept = asyncio.run(scenario())

    assert [entry.id for entry in recent] == ["m-new", "m-fail"]
    assert [entry.id for entry in successes] == ["m-new", "m-old"]
    assert deleted is None
    assert kept.temporal.created_at == START - timedelta(days=40)


def test_sqlite_state_survives_reopen(tmp_path: Path):
    path = tmp_path / "mesh.db"
    first = SQLiteRepository(path)
    asyncio.run(first.create_goal(Goal(id="g1", title="Persisted", description="d")))
    asyncio.run(first.create_round(_round("g1", 1)))
    first.close()

    second = SQLiteRepository(path)
    goal = asyncio.run(second.get_goal("g1"))
    rounds = asyncio.run(second.list_rounds("g1"))
    second.close()

    assert goal.title == "Persisted"
    assert rounds[0].result is ConsensusResult.REJECTED
