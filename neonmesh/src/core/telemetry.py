"""Structured telemetry; the logging layer of the mesh.

Every service receives a :class:`Telemetry` dispatcher and emits dotted
``component.event`` names with keyword payloads.  Each event becomes a flat
dict carrying ``event``, ``level``, ``time``, any bound context and the
payload, and is handed to every sink.  A failing sink is skipped.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from threading import Lock
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Protocol, Sequence

from .clock import Clock, utcnow

if TYPE_CHECKING:
    from ..oversight.store import OversightStore


class LogLevel(IntEnum):
    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40

    @property
    def label(self) -> str:
        return self.name.lower()


class TelemetrySink(Protocol):
    def write(self, event: Dict[str, Any]) -> None:
        ...


def to_jsonable(value: Any) -> Any:
    """``json.dumps`` default: datetimes as ISO strings, enums by value."""

    if hasattr(value, "isoformat"):
        return value.isoformat()
    if hasattr(value, "value"):
        return value.value
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    return str(value)


@dataclass
class Telemetry:
    sinks: Sequence[TelemetrySink] = field(default_factory=tuple)
    context: Mapping[str, Any] = field(default_factory=dict)
    min_level: LogLevel = LogLevel.DEBUG
    clock: Clock = utcnow

    def emit(self, event: str, *, level: LogLevel = LogLevel.INFO, **payload: Any) -> None:
        if not self.sinks or level < self.min_level:
            return
        record: Dict[str, Any] = {"event": event, "level": level.label, "time": self.clock().isoformat()}
        record.update(self.context)
        record.update(payload)
        for sink in self.sinks:
            try:
                sink.write(dict(record))
            except Exception:  # pragma: no cover - a broken sink must not abort the mesh
                continue

    def warning(self, event: str, **payload: Any) -> None:
        self.emit(event, level=LogLevel.WARNING, **payload)

    def error(self, event: str, **payload: Any) -> None:
        self.emit(event, level=LogLevel.ERROR, **payload)

    def bind(self, **context: Any) -> "Telemetry":
        """Child dispatcher sharing the sinks, with ``context`` added to every event."""

        return Telemetry(
            sinks=self.sinks,
            context={**self.context, **context},
            min_level=self.min_level,
            clock=self.clock,
        )


@dataclass
class InMemorySink:
    events: List[Dict[str, Any]] = field(default_factory=list)

    def write(self, event: Dict[str, Any]) -> None:
        self.events.append(event)

    def named(self, event: str) -> List[Dict[str, Any]]:
        return [item for item in self.events if item["event"] == event]

    def at_least(self, level: LogLevel) -> List[Dict[str, Any]]:
        return [item for item in self.events if LogLevel[item["level"].upper()] >= level]


@dataclass
class JsonLinesSink:
    """Append one JSON object per line, creating parent directories on demand."""

    path: Path
    _lock: Lock = field(default_factory=Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        self.path = Path(self.path)

    def write(self, event: Dict[str, Any]) -> None:
        line = json.dumps(event, sort_keys=True, default=to_jsonable)
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")


@dataclass
class OversightSink:
    store: "OversightStore"
    min_level: Optional[LogLevel] = None

    def write(self, event: Dict[str, Any]) -> None:
        if self.min_level is not None and LogLevel[event["level"].upper()] < self.min_level:
            return
        self.store.record_telemetry(json.loads(json.dumps(event, default=to_jsonable)))


__all__ = [
    "InMemorySink",
    "JsonLinesSink",
    "LogLevel",
    "OversightSink",
    "Telemetry",
    "TelemetrySink",
    "to_jsonable",
]
