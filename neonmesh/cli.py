"""Developer-facing CLI for the multi-agent reasoning mesh."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
import uvicorn
from pydantic import ValidationError

from neonmesh.src.core.collaborators import StaticIntentParser
from neonmesh.src.core.commands import (
    EntityType,
    ExecutionConstraints,
    ExecutionContext,
    IntentAction,
    ParsedIntent,
    UserPermissions,
)
from neonmesh.src.core.config import MeshConfig, load_config
from neonmesh.src.core.decomposer import decompose_goal
from neonmesh.src.core.errors import PlanValidationError, PlannerError
from neonmesh.src.core.repository import InMemoryRepository, SQLiteRepository
from neonmesh.src.core.telemetry import JsonLinesSink, OversightSink, Telemetry
from neonmesh.src.core.types import AgentType, GoalRequest, Level, MemoryOutcome, MemoryRecord
from neonmesh.src.memory.index import MemoryIndex, MemoryQuery
from neonmesh.src.mesh import build_mesh
from neonmesh.src.oversight.server import create_app as create_oversight_app
from neonmesh.src.oversight.store import OversightStore


app = typer.Typer(help="Utility commands for the multi-agent reasoning mesh.")
memory_app = typer.Typer(help="Ingest, query and maintain the cross-agent memory index.")
config_app = typer.Typer(help="Inspect mesh configuration.")
oversight_app = typer.Typer(help="Oversight console commands.")
app.add_typer(memory_app, name="memory")
app.add_typer(config_app, name="config")
app.add_typer(oversight_app, name="oversight")


def _echo_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=True, default=str))


def _load_mesh_config(path: Optional[Path]) -> MeshConfig:
    try:
        return load_config(path)
    except (OSError, json.JSONDecodeError, ValidationError) as exc:
        typer.secho(f"Failed to load configuration: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1) from exc


def _parse_pairs(values: Optional[List[str]], option: str) -> Dict[str, Any]:
    """Turn repeated ``key=value`` options into a dict; values may be JSON."""

    parsed: Dict[str, Any] = {}
    for item in values or []:
        key, sep, raw = item.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(f"Expected key=value, got {item!r}", param_hint=option)
        try:
            parsed[key.strip()] = json.loads(raw)
        except json.JSONDecodeError:
            parsed[key.strip()] = raw
    return parsed


def _open_repository(db: Optional[Path]) -> InMemoryRepository | SQLiteRepository:
    if db is None:
        return InMemoryRepository()
    try:
        return SQLiteRepository(db)
    except OSError as exc:
        typer.secho(f"Failed to open database: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1) from exc


def _telemetry(path: Optional[Path]) -> Telemetry:
    return Telemetry(sinks=[JsonLinesSink(path)]) if path is not None else Telemetry()


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------


@app.command("decompose")
def decompose(
    text: str = typer.Argument(..., help="Free-text goal description."),
    metric: Optional[List[str]] = typer.Option(
        None,
        "--metric",
        "-m",
        help="Explicit target metric as key=value; may be provided multiple times.",
    ),
) -> None:
    """Print the deterministic decomposition of a goal."""

    decomposed = decompose_goal(text, target_metrics=_parse_pairs(metric, "--metric"))
    _echo_json(decomposed.model_dump(mode="json"))


@app.command("plan")
def plan_goal(
    description: str = typer.Argument(..., help="Free-text goal description."),
    title: Optional[str] = typer.Option(None, help="Goal title (defaults to the description)."),
    priority: Level = typer.Option(Level.MEDIUM, case_sensitive=False, help="Goal priority."),
    metric: Optional[List[str]] = typer.Option(None, "--metric", "-m", help="Target metric as key=value."),
    db: Optional[Path] = typer.Option(None, help="SQLite database for goals and rounds (in-memory when omitted)."),
    config: Optional[Path] = typer.Option(None, "--config", exists=True, resolve_path=True, help="JSON config file."),
    execute: bool = typer.Option(False, help="Execute the plan with dry-run agents when approved."),
    telemetry_log: Optional[Path] = typer.Option(None, "--telemetry", help="Append telemetry events to this JSONL file."),
) -> None:
    """Plan a goal end to end against dry-run agents."""

    mesh_config = _load_mesh_config(config)
    repository = _open_repository(db)
    mesh = build_mesh(mesh_config, repository=repository, telemetry=_telemetry(telemetry_log))
    request = GoalRequest(
        title=title or description,
        description=description,
        priority=priority,
        target_metrics=_parse_pairs(metric, "--metric"),
    )

    async def _run() -> Dict[str, Any]:
        result = await mesh.planner.plan(request)
        payload: Dict[str, Any] = {
            "goal_id": result.goal_plan_id,
            "approved": result.approved,
            "consensus": {
                "round_number": result.consensus_round.round_number,
                "result": result.consensus_round.result.value,
                "final_score": result.consensus_round.final_score,
                "participation_rate": result.consensus_round.participation_rate,
            },
            "complexity": result.decomposed_goal.complexity.value,
            "estimated_time": result.decomposed_goal.estimated_time,
            "participants": [item.agent_id for item in result.participating_agents],
            "risk_assessment": result.risk_assessment.model_dump(mode="json"),
        }
        if execute and result.approved:
            execution = await mesh.planner.execute(result.goal_plan_id)
            payload["execution"] = {
                "id": execution.id,
                "status": execution.status.value,
                "agents": len(execution.agent_results),
                "error": execution.error,
            }
        return payload

    try:
        payload = asyncio.run(_run())
    except (PlanValidationError, PlannerError) as exc:
        typer.secho(f"Planning failed: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1) from exc
    finally:
        if isinstance(repository, SQLiteRepository):
            repository.close()
    _echo_json(payload)


@app.command("rounds")
def list_rounds(
    goal_id: str = typer.Argument(..., help="Goal identifier."),
    db: Path = typer.Option(..., exists=True, resolve_path=True, help="SQLite database written by `plan --db`."),
) -> None:
    """List the consensus rounds recorded for a goal."""

    repository = _open_repository(db)
    try:
        rounds = asyncio.run(repository.list_rounds(goal_id))
    finally:
        repository.close()
    if not rounds:
        typer.echo("No consensus rounds found.")
        return
    _echo_json(
        [
            {
                "round_number": item.round_number,
                "result": item.result.value,
                "final_score": item.final_score,
                "evaluations": len(item.evaluations),
                "failures": len(item.failures),
                "participants": len(item.participant_agents),
                "completed_at": item.completed_at,
            }
            for item in sorted(rounds, key=lambda item: item.round_number)
        ]
    )


# ---------------------------------------------------------------------------
# Command routing
# ---------------------------------------------------------------------------


@app.command("route")
def route_command(
    command: str = typer.Argument(..., help="Natural-language command."),
    action: IntentAction = typer.Option(IntentAction.GET_INSIGHTS, case_sensitive=False, help="Parsed primary action."),
    entity: Optional[EntityType] = typer.Option(None, case_sensitive=False, help="Parsed entity type."),
    param: Optional[List[str]] = typer.Option(None, "--param", "-p", help="Intent parameter as key=value."),
    user: str = typer.Option("cli", help="User id recorded on the result."),
    manage_campaigns: bool = typer.Option(False, help="Grant campaign management permissions."),
    max_budget: Optional[float] = typer.Option(None, help="Maximum budget impact allowed."),
    requires_approval: bool = typer.Option(False, help="Hold budget-impacting commands above the threshold."),
    auto_approve: bool = typer.Option(False, help="Waive the approval threshold."),
    dry_run: bool = typer.Option(False, help="Resolve routing without invoking agents."),
    config: Optional[Path] = typer.Option(None, "--config", exists=True, resolve_path=True, help="JSON config file."),
) -> None:
    """Route a pre-parsed command through the router with dry-run agents."""

    intent = ParsedIntent(primary_action=action, entity_type=entity, parameters=_parse_pairs(param, "--param"))
    mesh = build_mesh(_load_mesh_config(config), parser=StaticIntentParser(default=intent))
    context = ExecutionContext(
        user_id=user,
        session_id="cli",
        permissions=UserPermissions(can_manage_campaigns=manage_campaigns),
        constraints=ExecutionConstraints(
            max_budget_impact=max_budget,
            requires_approval=requires_approval,
            auto_approve=auto_approve,
        ),
        dry_run=dry_run,
    )
    result = asyncio.run(mesh.router.process_command(command, context))
    _echo_json(result.model_dump(mode="json"))
    if result.error is not None:
        raise typer.Exit(code=1)


# ---------------------------------------------------------------------------
# Memory index
# ---------------------------------------------------------------------------


def _memory_index(db: Path, config: Optional[Path]) -> tuple[MemoryIndex, SQLiteRepository]:
    repository = SQLiteRepository(db)
    index = MemoryIndex(repository=repository, config=_load_mesh_config(config).memory)
    asyncio.run(index.hydrate())
    return index, repository


@memory_app.command("ingest")
def memory_ingest(
    path: Path = typer.Argument(..., exists=True, resolve_path=True, help="JSONL file of execution records."),
    db: Path = typer.Option(Path("neonmesh.db"), help="SQLite database backing the memory index."),
    config: Optional[Path] = typer.Option(None, "--config", exists=True, resolve_path=True, help="JSON config file."),
) -> None:
    """Ingest execution records, one JSON object per line."""

    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError as exc:
        typer.secho(f"Failed to read records: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1) from exc

    records: List[MemoryRecord] = []
    for number, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        try:
            records.append(MemoryRecord.model_validate_json(line))
        except ValidationError as exc:
            typer.secho(f"Invalid record on line {number}: {exc}", err=True, fg=typer.colors.RED)
            raise typer.Exit(code=1) from exc

    index, repository = _memory_index(db, config)

    async def _ingest() -> List[str]:
        return [await index.ingest_memory(record) for record in records]

    try:
        memory_ids = asyncio.run(_ingest())
    finally:
        repository.close()
    _echo_json({"ingested": len(memory_ids), "memory_ids": memory_ids})


@memory_app.command("query")
def memory_query(
    db: Path = typer.Option(Path("neonmesh.db"), exists=True, resolve_path=True, help="SQLite database."),
    agent_type: Optional[List[AgentType]] = typer.Option(None, "--agent-type", "-a", case_sensitive=False),
    category: Optional[List[str]] = typer.Option(None, "--category", "-c"),
    tag: Optional[List[str]] = typer.Option(None, "--tag", "-t"),
    outcome: Optional[List[MemoryOutcome]] = typer.Option(None, "--outcome", "-o", case_sensitive=False),
    goal_type: Optional[str] = typer.Option(None, help="Only entries recorded for this goal type."),
    min_confidence: float = typer.Option(0.0, min=0.0, max=1.0, help="Confidence threshold."),
    limit: int = typer.Option(10, "--limit", "-n", min=1, help="Maximum entries to return."),
    related: bool = typer.Option(False, help="Append entries influenced by the matches."),
    config: Optional[Path] = typer.Option(None, "--config", exists=True, resolve_path=True, help="JSON config file."),
) -> None:
    """Retrieve the most relevant memories."""

    index, repository = _memory_index(db, config)
    query = MemoryQuery(
        goal_type=goal_type,
        agent_types=tuple(agent_type or ()),
        categories=tuple(category or ()),
        tags=tuple(tag or ()),
        outcomes=tuple(outcome or ()),
        confidence_threshold=min_confidence,
        limit=limit,
        include_related=related,
    )
    try:
        entries = asyncio.run(index.retrieve_memories(query))
    finally:
        repository.close()
    if not entries:
        typer.echo("No memories found.")
        return
    _echo_json([entry.model_dump(mode="json") for entry in entries])


@memory_app.command("insights")
def memory_insights(
    db: Path = typer.Option(Path("neonmesh.db"), exists=True, resolve_path=True, help="SQLite database."),
    agent_type: Optional[AgentType] = typer.Option(None, "--agent-type", "-a", case_sensitive=False),
    graph: bool = typer.Option(False, help="Include the knowledge graph."),
) -> None:
    """Summarise patterns, anomalies, trends and correlations."""

    index, repository = _memory_index(db, None)
    repository.close()
    payload: Dict[str, Any] = {"insights": [item.as_dict() for item in index.generate_insights(agent_type)]}
    if graph:
        payload["graph"] = index.build_knowledge_graph().as_dict()
    _echo_json(payload)


@memory_app.command("cleanup")
def memory_cleanup(
    db: Path = typer.Option(Path("neonmesh.db"), exists=True, resolve_path=True, help="SQLite database."),
    config: Optional[Path] = typer.Option(None, "--config", exists=True, resolve_path=True, help="JSON config file."),
) -> None:
    """Evict stale and low-value memories."""

    index, repository = _memory_index(db, config)
    try:
        removed = asyncio.run(index.cleanup())
    finally:
        repository.close()
    _echo_json({"removed": removed, "remaining": len(index)})


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show(
    config: Optional[Path] = typer.Option(None, "--config", exists=True, resolve_path=True, help="JSON config file."),
) -> None:
    """Print the effective configuration."""

    _echo_json(_load_mesh_config(config).model_dump(mode="json"))


# ---------------------------------------------------------------------------
# Oversight Console Commands
# ---------------------------------------------------------------------------


@oversight_app.command()
def serve(
    artifacts: Path = typer.Option(Path("artifacts"), help="Directory for the oversight and mesh databases"),
    host: str = typer.Option("127.0.0.1", help="Host interface to bind"),
    port: int = typer.Option(8080, help="Port for the oversight server"),
    db: Optional[Path] = typer.Option(None, help="Path to the mesh database (defaults to ARTIFACTS/neonmesh.db)"),
    config: Optional[Path] = typer.Option(None, "--config", exists=True, resolve_path=True, help="JSON config file."),
) -> None:
    """Launch the oversight console as a FastAPI service."""

    store = OversightStore(base_dir=artifacts)
    repository = SQLiteRepository(db or (artifacts / "neonmesh.db"))
    mesh = build_mesh(
        _load_mesh_config(config),
        repository=repository,
        oversight=store,
        telemetry=Telemetry(sinks=[OversightSink(store)]),
    )
    asyncio.run(mesh.memory.hydrate())
    app_obj = create_oversight_app(store, planner=mesh.planner, router=mesh.router, memory=mesh.memory)
    typer.echo(f"Serving oversight console on http://{host}:{port}")
    uvicorn.run(app_obj, host=host, port=port, log_level="info")


def main() -> None:
    """Entrypoint for ``python -m neonmesh.cli``."""

    app()


if __name__ == "__main__":  # pragma: no cover
    main()
