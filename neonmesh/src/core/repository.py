"""Persistence backends for goals, consensus rounds, executions and memories."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Iterable, List, Optional, Type, TypeVar

from pydantic import BaseModel

from .clock import Clock, coerce_datetime, utcnow
from .types import ConsensusRound, Goal, GoalStatus, MemoryEntry, MemoryOutcome, PlanExecution

_Model = TypeVar("_Model", bound=BaseModel)


def _apply_changes(goal: Goal, changes: Dict[str, Any], now: datetime) -> Goal:
    payload = goal.model_dump()
    payload.update(changes)
    payload["updated_at"] = changes.get("updated_at") or now
    return Goal.model_validate(payload)


def _filter_memories(
    entries: Iterable[MemoryEntry],
    *,
    since: Optional[datetime],
    outcomes: Optional[Iterable[MemoryOutcome]],
    limit: int,
) -> List[MemoryEntry]:
    wanted = set(outcomes) if outcomes is not None else None
    selected: List[MemoryEntry] = []
    for entry in sorted(entries, key=lambda item: item.temporal.created_at, reverse=True):
        if since is not None and entry.temporal.created_at < since:
            continue
        if wanted is not None and entry.outcome not in wanted:
            continue
        selected.append(entry)
        if len(selected) >= limit:
            break
    return selected


@dataclass
class InMemoryRepository:
    """Dictionary-backed repository; the default for tests and dry runs."""

    clock: Clock = utcnow
    _goals: Dict[str, Goal] = field(default_factory=dict, init=False)
    _rounds: List[ConsensusRound] = field(default_factory=list, init=False)
    _executions: Dict[str, PlanExecution] = field(default_factory=dict, init=False)
    _memories: Dict[str, MemoryEntry] = field(default_factory=dict, init=False)
    _lock: Lock = field(default_factory=Lock, init=False)

    async def create_goal(self, goal: Goal) -> Goal:
        with self._lock:
            if goal.id in self._goals:
                raise ValueError(f"Goal already exists: {goal.id}")
            self._goals[goal.id] = goal
        return goal

    async def get_goal(self, goal_id: str) -> Optional[Goal]:
        with self._lock:
            return self._goals.get(goal_id)

    async def update_goal(self, goal_id: str, **changes: Any) -> Goal:
        with self._lock:
            current = self._goals.get(goal_id)
            if current is None:
                raise KeyError(goal_id)
            updated = _apply_changes(current, changes, self.clock())
            self._goals[goal_id] = updated
            return updated

    async def list_goals(
        self, *, statuses: Optional[Iterable[GoalStatus]] = None, limit: Optional[int] = None
    ) -> List[Goal]:
        wanted = set(statuses) if statuses is not None else None
        with self._lock:
            goals = [goal for goal in self._goals.values() if wanted is None or goal.status in wanted]
        goals.sort(key=lambda goal: goal.updated_at, reverse=True)
        return goals[:limit] if limit else goals

    async def create_round(self, round_: ConsensusRound) -> ConsensusRound:
        with self._lock:
            for existing in self._rounds:
                if existing.goal_plan_id == round_.goal_plan_id and existing.round_number == round_.round_number:
                    raise ValueError(
                        f"Round {round_.round_number} already recorded for goal {round_.goal_plan_id}"
                    )
            self._rounds.append(round_)
        return round_

    async def list_rounds(self, goal_plan_id: Optional[str] = None, *, limit: Optional[int] = None) -> List[ConsensusRound]:
        with self._lock:
            rounds = [item for item in self._rounds if goal_plan_id is None or item.goal_plan_id == goal_plan_id]
        rounds.sort(key=lambda item: (item.created_at, item.round_number), reverse=True)
        return rounds[:limit] if limit else rounds

    async def create_execution(self, execution: PlanExecution) -> PlanExecution:
        with self._lock:
            self._executions[execution.id] = execution
        return execution

    async def update_execution(self, execution: PlanExecution) -> PlanExecution:
        with self._lock:
            if execution.id not in self._executions:
                raise KeyError(execution.id)
            self._executions[execution.id] = execution
        return execution

    async def recent_executions(self, goal_plan_id: str, *, limit: int = 5) -> List[PlanExecution]:
        with self._lock:
            executions = [item for item in self._executions.values() if item.goal_plan_id == goal_plan_id]
        executions.sort(key=lambda item: (item.started_at, item.attempt), reverse=True)
        return executions[:limit]

    async def save_memory(self, entry: MemoryEntry) -> None:
        with self._lock:
            self._memories[entry.id] = entry.model_copy(deep=True)

    async def get_memory(self, memory_id: str) -> Optional[MemoryEntry]:
        with self._lock:
            entry = self._memories.get(memory_id)
        return entry.model_copy(deep=True) if entry is not None else None

    async def recent_memories(
        self,
        *,
        since: Optional[datetime] = None,
        outcomes: Optional[Iterable[MemoryOutcome]] = None,
        limit: int = 100,
    ) -> List[MemoryEntry]:
        with self._lock:
            entries = list(self._memories.values())
        return [entry.model_copy(deep=True) for entry in _filter_memories(entries, since=since, outcomes=outcomes, limit=limit)]

    async def delete_memory(self, memory_id: str) -> None:
        with self._lock:
            self._memories.pop(memory_id, None)


class SQLiteRepository:
    """SQLite-backed repository storing each record as a JSON payload."""

    def __init__(self, path: Path | str, *, clock: Clock = utcnow) -> None:
        self.path = Path(path)
        self.clock = clock
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._db_lock = Lock()
        self._conn = sqlite3.connect(str(self.path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=NORMAL;")
        self._init_db()

    def _init_db(self) -> None:
        with self._db_lock:
            self._conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS goals (
                    id TEXT PRIMARY KEY,
                    status TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    payload TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS consensus_rounds (
                    id TEXT PRIMARY KEY,
                    goal_plan_id TEXT NOT NULL,
                    round_number INTEGER NOT NULL,
                    created_at TEXT NOT NULL,
                    payload TEXT NOT NULL,
                    UNIQUE (goal_plan_id, round_number)
                );

                CREATE TABLE IF NOT EXISTS plan_executions (
                    id TEXT PRIMARY KEY,
                    goal_plan_id TEXT NOT NULL,
                    attempt INTEGER NOT NULL,
                    started_at TEXT NOT NULL,
                    payload TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS memories (
                    id TEXT PRIMARY KEY,
                    outcome TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    payload TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_rounds_goal ON consensus_rounds (goal_plan_id);
                CREATE INDEX IF NOT EXISTS idx_executions_goal ON plan_executions (goal_plan_id);
                """
            )
            self._conn.commit()

    def _execute(self, sql: str, params: Iterable[Any] = ()) -> None:
        with self._db_lock:
            self._conn.execute(sql, tuple(params))
            self._conn.commit()

    def _query(self, sql: str, params: Iterable[Any] = ()) -> List[sqlite3.Row]:
        with self._db_lock:
            return self._conn.execute(sql, tuple(params)).fetchall()

    @staticmethod
    def _load(model: Type[_Model], rows: Iterable[sqlite3.Row]) -> List[_Model]:
        return [model.model_validate_json(row["payload"]) for row in rows]

    def close(self) -> None:
        with self._db_lock:
            self._conn.close()

    # Goals ------------------------------------------------------------
    async def create_goal(self, goal: Goal) -> Goal:
        try:
            self._execute(
                "INSERT INTO goals (id, status, updated_at, payload) VALUES (?, ?, ?, ?)",
                (goal.id, goal.status.value, goal.updated_at.isoformat(), goal.model_dump_json()),
            )
        except sqlite3.IntegrityError as exc:
            raise ValueError(f"Goal already exists: {goal.id}") from exc
        return goal

    async def get_goal(self, goal_id: str) -> Optional[Goal]:
        rows = self._query("SELECT payload FROM goals WHERE id = ?", (goal_id,))
        goals = self._load(Goal, rows)
        return goals[0] if goals else None

    async def update_goal(self, goal_id: str, **changes: Any) -> Goal:
        current = await self.get_goal(goal_id)
        if current is None:
            raise KeyError(goal_id)
        updated = _apply_changes(current, changes, self.clock())
        self._execute(
            "UPDATE goals SET status = ?, updated_at = ?, payload = ? WHERE id = ?",
            (updated.status.value, updated.updated_at.isoformat(), updated.model_dump_json(), goal_id),
        )
        return updated

    async def list_goals(
        self, *, statuses: Optional[Iterable[GoalStatus]] = None, limit: Optional[int] = None
    ) -> List[Goal]:
        sql = "SELECT payload FROM goals"
        params: List[Any] = []
        if statuses is not None:
            values = [status.value for status in statuses]
            if not values:
                return []
            sql += f" WHERE status IN ({', '.join('?' for _ in values)})"
            params.extend(values)
        sql += " ORDER BY updated_at DESC"
        if limit:
            sql += " LIMIT ?"
            params.append(limit)
        return self._load(Goal, self._query(sql, params))

    # Consensus rounds ------------------------------------------------
    async def create_round(self, round_: ConsensusRound) -> ConsensusRound:
        try:
            self._execute(
                """
                INSERT INTO consensus_rounds (id, goal_plan_id, round_number, created_at, payload)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    round_.id,
                    round_.goal_plan_id,
                    round_.round_number,
                    round_.created_at.isoformat(),
                    round_.model_dump_json(),
                ),
            )
        except sqlite3.IntegrityError as exc:
            raise ValueError(
                f"Round {round_.round_number} already recorded for goal {round_.goal_plan_id}"
            ) from exc
        return round_

    async def list_rounds(self, goal_plan_id: Optional[str] = None, *, limit: Optional[int] = None) -> List[ConsensusRound]:
        sql = "SELECT payload FROM consensus_rounds"
        params: List[Any] = []
        if goal_plan_id is not None:
            sql += " WHERE goal_plan_id = ?"
            params.append(goal_plan_id)
        sql += " ORDER BY created_at DESC, round_number DESC"
        if limit:
            sql += " LIMIT ?"
            params.append(limit)
        return self._load(ConsensusRound, self._query(sql, params))

    # Executions ------------------------------------------------------
    async def create_execution(self, execution: PlanExecution) -> PlanExecution:
        self._execute(
            "INSERT INTO plan_executions (id, goal_plan_id, attempt, started_at, payload) VALUES (?, ?, ?, ?, ?)",
            (
                execution.id,
                execution.goal_plan_id,
                execution.attempt,
                execution.started_at.isoformat(),
                execution.model_dump_json(),
            ),
        )
        return execution

    async def update_execution(self, execution: PlanExecution) -> PlanExecution:
        if not self._query("SELECT id FROM plan_executions WHERE id = ?", (execution.id,)):
            raise KeyError(execution.id)
        self._execute(
            "UPDATE plan_executions SET payload = ? WHERE id = ?",
            (execution.model_dump_json(), execution.id),
        )
        return execution

    async def recent_executions(self, goal_plan_id: str, *, limit: int = 5) -> List[PlanExecution]:
        rows = self._query(
            """
            SELECT payload FROM plan_executions
            WHERE goal_plan_id = ?
            ORDER BY started_at DESC, attempt DESC
            LIMIT ?
            """,
            (goal_plan_id, limit),
        )
        return self._load(PlanExecution, rows)

    # Memories --------------------------------------------------------
    async def save_memory(self, entry: MemoryEntry) -> None:
        self._execute(
            """
            INSERT INTO memories (id, outcome, created_at, payload) VALUES (?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET outcome = excluded.outcome, payload = excluded.payload
            """,
            (entry.id, entry.outcome.value, entry.temporal.created_at.isoformat(), entry.model_dump_json()),
        )

    async def get_memory(self, memory_id: str) -> Optional[MemoryEntry]:
        entries = self._load(MemoryEntry, self._query("SELECT payload FROM memories WHERE id = ?", (memory_id,)))
        return entries[0] if entries else None

    async def recent_memories(
        self,
        *,
        since: Optional[datetime] = None,
        outcomes: Optional[Iterable[MemoryOutcome]] = None,
        limit: int = 100,
    ) -> List[MemoryEntry]:
        entries = self._load(MemoryEntry, self._query("SELECT payload FROM memories"))
        cutoff = coerce_datetime(since) if since is not None else None
        return _filter_memories(entries, since=cutoff, outcomes=outcomes, limit=limit)

    async def delete_memory(self, memory_id: str) -> None:
        self._execute("DELETE FROM memories WHERE id = ?", (memory_id,))


__all__ = ["InMemoryRepository", "SQLiteRepository"]
