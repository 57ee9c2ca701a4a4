from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

from neonmesh.cli import app


runner = CliRunner()


def _write_records(path: Path) -> None:
    records = [
        {
            "agent_id": "content-agent-001",
            "agent_type": "content",
            "session_id": "s1",
            "input": {"task": "write a launch post"},
            "output": {"summary": "done"},
            "outcome": "success",
            "metadata": {"goal_type": "awareness"},
        },
        {
            "agent_id": "seo-agent-001",
            "agent_type": "seo",
            "session_id": "s1",
            "input": {"task": "seo audit"},
            "output": {"summary": "error in crawl"},
            "outcome": "failure",
        },
    ]
    path.write_text("\n".join(json.dumps(record) for record in records) + "\n", encoding="utf-8")


def test_decompose_prints_plan():
    result = runner.invoke(app, ["decompose", "Increase conversion sales by 20% in 2 weeks", "-m", "leads=500"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["estimated_time"] == 468
    assert payload["complexity"] == "high"
    assert payload["success_metrics"][-1] == "leads: 500"


def test_decompose_rejects_malformed_metric():
    result = runner.invoke(app, ["decompose", "Grow our community", "-m", "leads"])
    assert result.exit_code != 0


def test_config_show_applies_overrides(tmp_path: Path):
    config_path = tmp_path / "mesh.json"
    config_path.write_text(json.dumps({"router": {"history_limit": 5}, "planner": {"quorum": 0.5}}), encoding="utf-8")

    result = runner.invoke(app, ["config", "show", "--config", str(config_path)])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["router"]["history_limit"] == 5
    assert payload["planner"]["quorum"] == 0.5
    assert payload["memory"]["retention_days"] == 30.0


def test_config_show_rejects_unknown_fields(tmp_path: Path):
    config_path = tmp_path / "mesh.json"
    config_path.write_text(json.dumps({"bogus": 1}), encoding="utf-8")

    result = runner.invoke(app, ["config", "show", "--config", str(config_path)])

    assert result.exit_code == 1


def test_route_command_completes():
    result = runner.invoke(app, ["route", "how are campaigns doing?"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["status"] == "completed"
    assert payload["routed_agent"] == "insight"
    assert payload["session_id"] == "cli"


def test_route_command_reports_permission_denial():
    result = runner.invoke(app, ["route", "launch a campaign", "--action", "create_campaign"])

    assert result.exit_code == 1
    payload = json.loads(result.stdout)
    assert payload["status"] == "failed"
    assert payload["error"]["code"] == "PERMISSION_DENIED"


def test_route_command_held_for_budget():
    result = runner.invoke(
        app,
        ["route", "launch", "--action", "create_campaign", "--manage-campaigns", "--max-budget", "100"],
    )

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["status"] == "requires_approval"
    assert payload["budget_impact"] == 5000.0


def test_plan_persists_rounds(tmp_path: Path):
    db = tmp_path / "mesh.db"
    telemetry = tmp_path / "telemetry.jsonl"

    planned = runner.invoke(
        app,
        ["plan", "Grow our community", "--title", "Community", "--db", str(db), "--telemetry", str(telemetry)],
    )
    assert planned.exit_code == 0, planned.output
    payload = json.loads(planned.stdout)
    assert payload["consensus"]["round_number"] == 1
    assert payload["participants"]
    assert any(json.loads(line)["event"] == "planner.plan_completed" for line in telemetry.read_text().splitlines())

    rounds = runner.invoke(app, ["rounds", payload["goal_id"], "--db", str(db)])
    assert rounds.exit_code == 0, rounds.output
    (round_,) = json.loads(rounds.stdout)
    assert round_["round_number"] == 1
    assert round_["result"] == payload["consensus"]["result"]

    missing = runner.invoke(app, ["rounds", "goal_missing", "--db", str(db)])
    assert missing.exit_code == 0
    assert "No consensus rounds found." in missing.stdout


def test_memory_commands_round_trip(tmp_path: Path):
    db = tmp_path / "memory.db"
    records = tmp_path / "records.jsonl"
    _write_records(records)

    ingested = runner.invoke(app, ["memory", "ingest", str(records), "--db", str(db)])
    assert ingested.exit_code == 0, ingested.output
    assert json.loads(ingested.stdout)["ingested"] == 2

    queried = runner.invoke(app, ["memory", "query", "--db", str(db), "-c", "content_creation"])
    assert queried.exit_code == 0, queried.output
    (entry,) = json.loads(queried.stdout)
    assert entry["agent_type"] == "content"
    assert entry["temporal"]["access_count"] == 1

    failures = runner.invoke(app, ["memory", "query", "--db", str(db), "-o", "failure", "-a", "seo"])
    assert failures.exit_code == 0, failures.output
    (failure,) = json.loads(failures.stdout)
    assert "error_prone" in failure["tags"]

    empty = runner.invoke(app, ["memory", "query", "--db", str(db), "-c", "trend_analysis"])
    assert "No memories found." in empty.stdout

    insights = runner.invoke(app, ["memory", "insights", "--db", str(db), "--graph"])
    assert insights.exit_code == 0, insights.output
    graph = json.loads(insights.stdout)["graph"]
    assert {"agent:content", "agent:seo"} <= {node["id"] for node in graph["nodes"]}

    cleaned = runner.invoke(app, ["memory", "cleanup", "--db", str(db)])
    assert cleaned.exit_code == 0, cleaned.output
    assert json.loads(cleaned.stdout) == {"removed": 0, "remaining": 2}


def test_memory_ingest_reports_bad_line(tmp_path: Path):
    records = tmp_path / "records.jsonl"
    records.write_text('{"agent_id": "a"}\n', encoding="utf-8")

    result = runner.invoke(app, ["memory", "ingest", str(records), "--db", str(tmp_path / "memory.db")])

    assert result.exit_code == 1
