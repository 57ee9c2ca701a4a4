from __future__ import annotations

import json
import sqlite3
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Any, Deque, Dict, Iterable, List, Mapping, Optional

from .models import ApprovalDecision, ApprovalRequest, ApprovalStatus


@dataclass
class ApprovalTicket:
    """A filed request and, once a reviewer acts, its decision.

    Approvals are records only. Nothing blocks on them: the router holds the
    command and the caller resubmits it after the console approves.
    """

    request: ApprovalRequest
    decision: Optional[ApprovalDecision] = None

    @property
    def resolved(self) -> bool:
        return self.decision is not None

    def resolve(self, decision: ApprovalDecision) -> None:
        self.decision = decision


class OversightStore:
    """Approvals raised by the router plus a bounded telemetry buffer.

    With ``db_path`` (or ``base_dir``) every request, decision and telemetry
    event is also written to SQLite and reloaded on construction, so pending
    approvals survive a restart of the console.
    """

    def __init__(
        self,
        *,
        base_dir: Optional[Path] = None,
        db_path: Optional[Path] = None,
        telemetry_limit: int = 2000,
    ) -> None:
        if db_path is None and base_dir is not None:
            db_path = Path(base_dir) / "oversight.db"
        self.db_path = Path(db_path) if db_path is not None else None
        self.telemetry_limit = telemetry_limit

        self._events: Deque[Dict[str, Any]] = deque(maxlen=telemetry_limit)
        self._tickets: Dict[str, ApprovalTicket] = {}
        self._decisions: Dict[str, ApprovalDecision] = {}
        self._lock = Lock()

        self._conn: Optional[sqlite3.Connection] = None
        if self.db_path is not None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL;")
            self._init_db()
            self._hydrate()

    # Persistence ------------------------------------------------------
    def _init_db(self) -> None:
        assert self._conn is not None
        with self._lock:
            self._conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS approval_requests (
                    id TEXT PRIMARY KEY,
                    status TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    payload TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS approval_decisions (
                    approval_id TEXT PRIMARY KEY,
                    decided_at TEXT NOT NULL,
                    payload TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS telemetry (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    event TEXT NOT NULL
                );
                """
            )
            self._conn.commit()

    def _write(self, sql: str, params: Iterable[Any]) -> None:
        if self._conn is None:
            return
        with self._lock:
            self._conn.execute(sql, tuple(params))
            self._conn.commit()

    def _rows(self, sql: str, params: Iterable[Any] = ()) -> List[sqlite3.Row]:
        assert self._conn is not None
        with self._lock:
            return self._conn.execute(sql, tuple(params)).fetchall()

    def _hydrate(self) -> None:
        rows = self._rows("SELECT event FROM telemetry ORDER BY id DESC LIMIT ?", (self.telemetry_limit,))
        self._events.extend(json.loads(row["event"]) for row in reversed(rows))
        for row in self._rows("SELECT payload FROM approval_decisions ORDER BY decided_at"):
            decision = ApprovalDecision.model_validate_json(row["payload"])
            self._decisions[decision.approval_id] = decision
        pending = self._rows(
            "SELECT payload FROM approval_requests WHERE status = ? ORDER BY created_at",
            (ApprovalStatus.PENDING.value,),
        )
        for row in pending:
            request = ApprovalRequest.model_validate_json(row["payload"])
            self._tickets[request.id] = ApprovalTicket(request=request)

    def close(self) -> None:
        if self._conn is None:
            return
        with self._lock:
            self._conn.close()
        self._conn = None

    # Telemetry --------------------------------------------------------
    def record_telemetry(self, event: Mapping[str, Any]) -> None:
        payload = dict(event)
        self._write("INSERT INTO telemetry (event) VALUES (?)", (json.dumps(payload, default=str),))
        with self._lock:
            self._events.append(payload)

    def telemetry(self, *, limit: Optional[int] = None, event: Optional[str] = None) -> List[Dict[str, Any]]:
        with self._lock:
            records = [item for item in self._events if event is None or item.get("event") == event]
        if limit:
            records = records[-limit:]
        return records

    # Approvals --------------------------------------------------------
    def create_approval_request(self, request: ApprovalRequest) -> ApprovalTicket:
        with self._lock:
            if request.id in self._tickets or request.id in self._decisions:
                raise ValueError(f"Approval id already tracked: {request.id}")
            ticket = self._tickets[request.id] = ApprovalTicket(request=request)
        self._write(
            "INSERT INTO approval_requests (id, status, created_at, payload) VALUES (?, ?, ?, ?)",
            (request.id, ApprovalStatus.PENDING.value, request.created_at.isoformat(), request.model_dump_json()),
        )
        return ticket

    def get_approval(self, approval_id: str) -> Optional[ApprovalTicket]:
        with self._lock:
            return self._tickets.get(approval_id)

    def list_pending_approvals(self) -> List[ApprovalRequest]:
        with self._lock:
            return [ticket.request for ticket in self._tickets.values()]

    def list_decisions(self) -> List[ApprovalDecision]:
        with self._lock:
            return list(self._decisions.values())

    def resolve_approval(self, approval_id: str, decision: ApprovalDecision) -> None:
        with self._lock:
            ticket = self._tickets.pop(approval_id, None)
            if ticket is None:
                raise KeyError(approval_id)
            self._decisions[approval_id] = decision
        self._write(
            "UPDATE approval_requests SET status = ? WHERE id = ?",
            (decision.status.value, approval_id),
        )
        self._write(
            "INSERT INTO approval_decisions (approval_id, decided_at, payload) VALUES (?, ?, ?)",
            (approval_id, decision.decided_at.isoformat(), decision.model_dump_json()),
        )
        ticket.resolve(decision)


__all__ = ["ApprovalTicket", "OversightStore"]
