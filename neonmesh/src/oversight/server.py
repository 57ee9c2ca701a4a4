from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import HTMLResponse
from pydantic import BaseModel

from ..core.types import AgentType, GoalStatus
from .models import ApprovalDecision
from .store import OversightStore

if TYPE_CHECKING:
    from ..core.collaborators import MeshRepository
    from ..core.planner import GoalPlanner
    from ..core.router import CommandRouter
    from ..memory.index import MemoryIndex


class TelemetryPayload(BaseModel):
    event: Dict[str, Any]


class ApprovalDecisionPayload(BaseModel):
    approved: bool
    reviewer: str
    message: Optional[str] = None


def create_app(
    store: Optional[OversightStore] = None,
    *,
    planner: "GoalPlanner | None" = None,
    router: "CommandRouter | None" = None,
    memory: "MemoryIndex | None" = None,
    repository: "MeshRepository | None" = None,
) -> FastAPI:
    oversight_store = store or OversightStore()
    goals_repository = repository or (planner.repository if planner is not None else None)

    app = FastAPI(title="Reasoning Mesh Oversight Console", version="0.1.0")

    def _require(component: Any, name: str) -> Any:
        if component is None:
            raise HTTPException(status_code=503, detail=f"{name} is not configured")
        return component

    @app.get("/", response_class=HTMLResponse)
    def index() -> HTMLResponse:
        return HTMLResponse("<h1>Reasoning mesh oversight console</h1>")

    @app.get("/goals")
    async def list_goals(status: Optional[GoalStatus] = None, limit: int = 50) -> Any:
        repo = _require(goals_repository, "Repository")
        goals = await repo.list_goals(statuses=[status] if status else None, limit=limit)
        return [goal.model_dump(mode="json") for goal in goals]

    @app.get("/goals/{goal_id}")
    async def get_goal(goal_id: str) -> Any:
        repo = _require(goals_repository, "Repository")
        goal = await repo.get_goal(goal_id)
        if goal is None:
            raise HTTPException(status_code=404, detail=f"Goal {goal_id} not found")
        payload = goal.model_dump(mode="json")
        if planner is not None:
            active = planner.active_result(goal_id)
            if active is not None:
                payload["planning"] = {
                    "approved": active.approved,
                    "risk_assessment": active.risk_assessment.model_dump(mode="json"),
                    "participating_agents": [item.model_dump(mode="json") for item in active.participating_agents],
                }
        return payload

    @app.get("/goals/{goal_id}/rounds")
    async def goal_rounds(goal_id: str) -> Any:
        repo = _require(goals_repository, "Repository")
        rounds = await repo.list_rounds(goal_id)
        return [
            {**item.model_dump(mode="json"), "participation_rate": item.participation_rate}
            for item in sorted(rounds, key=lambda item: item.round_number)
        ]

    @app.get("/planning/insights")
    async def planning_insights() -> Any:
        return await _require(planner, "Planner").get_planning_insights()

    @app.get("/commands")
    def command_history(limit: int = 50) -> Any:
        command_router = _require(router, "Router")
        return [item.model_dump(mode="json") for item in command_router.get_execution_history(limit)]

    @app.get("/commands/metrics")
    def command_metrics() -> Any:
        return _require(router, "Router").get_system_metrics()

    @app.get("/memory/insights")
    def memory_insights(agent_type: Optional[AgentType] = None) -> Any:
        index = _require(memory, "Memory index")
        return [insight.as_dict() for insight in index.generate_insights(agent_type)]

    @app.get("/memory/graph")
    def memory_graph() -> Any:
        return _require(memory, "Memory index").build_knowledge_graph().as_dict()

    @app.get("/telemetry")
    def telemetry(limit: Optional[int] = None, event: Optional[str] = None) -> Any:
        return oversight_store.telemetry(limit=limit, event=event)

    @app.post("/telemetry")
    def append_telemetry(payload: TelemetryPayload) -> Any:
        oversight_store.record_telemetry(payload.event)
        return {"stored": True}

    @app.get("/approvals/pending")
    def pending_approvals() -> Any:
        return [request.model_dump(mode="json") for request in oversight_store.list_pending_approvals()]

    @app.post("/approvals/{approval_id}")
    def resolve_approval(approval_id: str, payload: ApprovalDecisionPayload) -> Any:
        decision = ApprovalDecision.build(
            approval_id=approval_id,
            approved=payload.approved,
            reviewer=payload.reviewer,
            message=payload.message,
        )
        try:
            oversight_store.resolve_approval(approval_id, decision)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=f"Approval {approval_id} not pending") from exc
        return {"approval_id": approval_id, "approved": payload.approved}

    @app.get("/approvals/decisions")
    def approval_history() -> Any:
        return [decision.model_dump(mode="json") for decision in oversight_store.list_decisions()]

    @app.get("/approvals/{approval_id}")
    def get_approval(approval_id: str) -> Any:
        ticket = oversight_store.get_approval(approval_id)
        if ticket is None:
            raise HTTPException(status_code=404, detail=f"Approval {approval_id} not pending")
        return ticket.request.model_dump(mode="json")

    return app


__all__ = ["create_app"]
