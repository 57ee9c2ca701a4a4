from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path

from neonmesh.src.core.collaborators import TelemetryBroadcaster
from neonmesh.src.core.telemetry import InMemorySink, JsonLinesSink, LogLevel, OversightSink, Telemetry
from neonmesh.src.core.types import AgentIntent, AgentType
from neonmesh.src.oversight.store import OversightStore


def test_bind_merges_context_into_events():
    sink = InMemorySink()
    telemetry = Telemetry(sinks=[sink]).bind(goal_id="goal-1")

    telemetry.emit("planner.plan_started", title="Launch")

    (event,) = sink.events
    assert event["event"] == "planner.plan_started"
    assert event["goal_id"] == "goal-1"
    assert event["title"] == "Launch"
    assert event["level"] == "info"
    assert "time" in event


def test_jsonl_sink_serialises_datetimes(tmp_path: Path):
    path = tmp_path / "logs" / "telemetry.jsonl"
    telemetry = Telemetry(sinks=[JsonLinesSink(path)])

    telemetry.emit("memory.ingested", created_at=datetime(2024, 1, 1, tzinfo=timezone.utc), agent=AgentType.SEO)
    telemetry.emit("memory.cleanup", removed=2)

    lines = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert [line["event"] for line in lines] == ["memory.ingested", "memory.cleanup"]
    assert lines[0]["created_at"].startswith("2024-01-01")
    assert lines[1]["removed"] == 2


def test_failing_sink_does_not_break_emit():
    class Broken:
        def write(self, event):
            raise OSError("disk full")

    sink = InMemorySink()
    Telemetry(sinks=[Broken(), sink]).emit("router.command_received")

    assert len(sink.events) == 1


def test_oversight_sink_and_intent_broadcast():
    store = OversightStore()
    broadcaster = TelemetryBroadcaster(telemetry=Telemetry(sinks=[OversightSink(store)]))

    intent_id = asyncio.run(
        broadcaster.broadcast_intent(
            AgentIntent(
                agent_id="goal_planner-agent-001",
                agent_type=AgentType.GOAL_PLANNER,
                intention="orchestrate_goal_planning_goal-1",
                priority=9,
                confidence=0.9,
                estimated_duration_minutes=120,
            )
        )
    )

    (event,) = store.telemetry(event="mesh.intent")
    assert event["intent_id"] == intent_id
    assert event["agent_type"] == "goal_planner"
    assert broadcaster.intents[0].priority == 9


def test_levels_filter_events():
    sink = InMemorySink()
    telemetry = Telemetry(sinks=[sink], min_level=LogLevel.INFO)

    telemetry.emit("memory.retrieved", level=LogLevel.DEBUG, returned=0)
    telemetry.emit("memory.ingested")
    telemetry.warning("planner.goal_failed", reason="Consensus rejected")
    telemetry.bind(goal_id="g1").error("planner.monitor_error", error="boom")

    assert [item["event"] for item in sink.events] == [
        "memory.ingested",
        "planner.goal_failed",
        "planner.monitor_error",
    ]
    assert [item["event"] for item in sink.at_least(LogLevel.WARNING)] == [
        "planner.goal_failed",
        "planner.monitor_error",
    ]
    assert sink.events[-1]["goal_id"] == "g1"


def test_oversight_sink_level_threshold():
    store = OversightStore()
    telemetry = Telemetry(sinks=[OversightSink(store, min_level=LogLevel.WARNING)])

    telemetry.emit("router.command_received")
    telemetry.warning("router.command_cancelled", execution_id="cmd-1")

    assert [item["event"] for item in store.telemetry()] == ["router.command_cancelled"]
