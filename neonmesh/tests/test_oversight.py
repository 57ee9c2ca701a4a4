from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from neonmesh.src.core.collaborators import StaticIntentParser
from neonmesh.src.core.commands import ExecutionContext, IntentAction, ParsedIntent
from neonmesh.src.core.types import AgentType, GoalRequest, MemoryOutcome, MemoryRecord
from neonmesh.src.mesh import build_mesh
from neonmesh.src.oversight.models import ApprovalDecision, ApprovalRequest, ApprovalStatus
from neonmesh.src.oversight.server import create_app
from neonmesh.src.oversight.store import OversightStore


def _request(execution_id: str = "cmd-1") -> ApprovalRequest:
    return ApprovalRequest.build(
        execution_id=execution_id,
        action="create_campaign",
        budget_impact=5000,
        reason="Budget impact ($5000) exceeds limit ($1000)",
        requested_by="user-1",
        context={"command": "new campaign"},
    )


def test_store_tracks_telemetry_with_limit():
    store = OversightStore(telemetry_limit=2)
    for value in range(3):
        store.record_telemetry({"event": "demo", "value": value})
    store.record_telemetry({"event": "other"})

    assert [item.get("value") for item in store.telemetry()] == [2, None]
    assert store.telemetry(event="demo") == [{"event": "demo", "value": 2}]


def test_approval_ticket_resolution():
    store = OversightStore()
    request = _request()
    ticket = store.create_approval_request(request)

    with pytest.raises(ValueError):
        store.create_approval_request(request)
    assert ticket.resolved is False
    assert ticket.decision is None

    decision = ApprovalDecision.build(approval_id=request.id, approved=True, reviewer="ops")
    store.resolve_approval(request.id, decision)

    assert ticket.resolved is True
    assert ticket.decision == decision
    assert decision.status is ApprovalStatus.APPROVED
    assert store.get_approval(request.id) is None
    assert store.list_pending_approvals() == []
    assert store.list_decisions() == [decision]
    with pytest.raises(KeyError):
        store.resolve_approval(request.id, decision)


def test_store_persists_state_with_sqlite(tmp_path: Path):
    db_path = tmp_path / "oversight.db"
    store = OversightStore(db_path=db_path)
    pending, resolved = _request("cmd-1"), _request("cmd-2")
    store.create_approval_request(pending)
    store.create_approval_request(resolved)
    store.resolve_approval(resolved.id, ApprovalDecision.build(approval_id=resolved.id, approved=False, reviewer="ops"))
    store.record_telemetry({"event": "demo", "value": 1})
    store.close()

    reopened = OversightStore(db_path=db_path)
    assert [item.execution_id for item in reopened.list_pending_approvals()] == ["cmd-1"]
    assert reopened.list_pending_approvals()[0].context == {"command": "new campaign"}
    (decision,) = reopened.list_decisions()
    assert decision.approval_id == resolved.id and decision.approved is False
    assert reopened.telemetry() == [{"event": "demo", "value": 1}]
    reopened.close()


def test_components_missing_return_503():
    client = TestClient(create_app(OversightStore()))

    assert client.get("/").status_code == 200
    assert client.get("/goals").status_code == 503
    assert client.get("/planning/insights").json()["detail"] == "Planner is not configured"
    assert client.get("/commands/metrics").status_code == 503
    assert client.get("/memory/graph").status_code == 503


def test_telemetry_and_approval_routes():
    store = OversightStore()
    request = _request()
    store.create_approval_request(request)
    client = TestClient(create_app(store))

    assert client.post("/telemetry", json={"event": {"event": "demo", "value": 3}}).json() == {"stored": True}
    assert client.get("/telemetry", params={"event": "demo"}).json() == [{"event": "demo", "value": 3}]

    pending = client.get("/approvals/pending").json()
    assert [item["id"] for item in pending] == [request.id]
    assert client.get(f"/approvals/{request.id}").json()["budget_impact"] == 5000.0

    response = client.post(f"/approvals/{request.id}", json={"approved": True, "reviewer": "ops", "message": "ok"})
    assert response.json() == {"approval_id": request.id, "approved": True}
    assert client.get("/approvals/decisions").json()[0]["reviewer"] == "ops"
    assert client.get(f"/approvals/{request.id}").status_code == 404
    assert client.post(f"/approvals/{request.id}", json={"approved": True, "reviewer": "ops"}).status_code == 404


def test_mesh_routes_expose_goals_commands_and_memory():
    store = OversightStore()
    mesh = build_mesh(
        oversight=store,
        parser=StaticIntentParser(default=ParsedIntent(primary_action=IntentAction.GET_INSIGHTS)),
    )

    async def scenario():
        planned = await mesh.planner.plan(GoalRequest(title="Launch", description="Grow our community"))
        await mesh.router.process_command("insights", ExecutionContext(user_id="u", session_id="s"))
        await mesh.memory.ingest_memory(
            MemoryRecord(
                agent_id="content-agent-001",
                agent_type=AgentType.CONTENT,
                session_id="s",
                input={"task": "post"},
                outcome=MemoryOutcome.SUCCESS,
            )
        )
        return planned

    planned = asyncio.run(scenario())
    client = TestClient(create_app(store, planner=mesh.planner, router=mesh.router, memory=mesh.memory))

    goals = client.get("/goals").json()
    assert [goal["id"] for goal in goals] == [planned.goal_plan_id]

    goal = client.get(f"/goals/{planned.goal_plan_id}").json()
    assert goal["planning"]["approved"] == planned.approved
    assert client.get("/goals/goal_missing").status_code == 404

    rounds = client.get(f"/goals/{planned.goal_plan_id}/rounds").json()
    assert [item["round_number"] for item in rounds] == [1]
    assert 0.0 <= rounds[0]["participation_rate"] <= 1.0

    assert client.get("/planning/insights").json()["total_goals"] == len(
        [goal for goal in goals if goal["status"] in ("completed", "failed")]
    )
    commands = client.get("/commands").json()
    assert commands[0]["status"] == "completed"
    assert client.get("/commands/metrics").json()["total_executions"] == 1

    graph = client.get("/memory/graph").json()
    assert "agent:content" in {node["id"] for node in graph["nodes"]}
    assert isinstance(client.get("/memory/insights", params={"agent_type": "content"}).json(), list)
