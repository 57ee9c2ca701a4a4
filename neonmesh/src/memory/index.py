"""Cross-agent memory index.

The index is an explicitly constructed service: callers own an instance and
pass it to the planner, reasoning protocol and router.  Entries live in an
in-process cache keyed by id with inverted indexes for category, tag, agent
type and goal plan.  Every mutation of a cached entry (ingest, access
bookkeeping, decay recomputation) happens under that entry's lock.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from threading import Lock
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..core.clock import Clock, utcnow
from ..core.collaborators import MeshRepository
from ..core.config import MemoryConfig
from ..core.telemetry import Telemetry
from ..core.types import (
    AgentType,
    MemoryContent,
    MemoryEntry,
    MemoryOutcome,
    MemoryRecord,
    MemoryTemporal,
)
from .insights import KnowledgeGraph, MemoryInsight, build_knowledge_graph, generate_insights
from .scoring import (
    compute_confidence,
    days_between,
    decay_score,
    extract_semantic_content,
    ranking_key,
    relevance_score,
)


# Successes below this confidence do not inform contextual prompts.
PROMPT_CONFIDENCE_FLOOR = 0.7

SUCCESS_PATTERNS = (
    "High confidence scores (>0.8) correlate with success",
    "Fast execution times improve outcomes",
    "Content-creation tasks benefit from brand alignment",
)

FAILURE_PATTERNS = (
    "Complex goals without proper decomposition tend to fail",
    "Resource conflicts lead to execution failures",
    "Insufficient context often results in poor outcomes",
)

BEST_PRACTICES = (
    "Break complex goals into smaller, manageable subgoals",
    "Ensure adequate resource allocation before execution",
    "Validate brand alignment early in the process",
    "Use fallback agents for critical path activities",
    "Monitor execution progress and adapt as needed",
)

_OPPOSITE_OUTCOMES = {
    MemoryOutcome.SUCCESS: MemoryOutcome.FAILURE,
    MemoryOutcome.FAILURE: MemoryOutcome.SUCCESS,
}


@dataclass
class MemoryQuery:
    goal_type: Optional[str] = None
    agent_types: Sequence[AgentType] = ()
    categories: Sequence[str] = ()
    tags: Sequence[str] = ()
    outcomes: Sequence[MemoryOutcome] = ()
    time_range: Optional[Tuple[datetime, datetime]] = None
    confidence_threshold: float = 0.0
    limit: int = 10
    include_related: bool = False


@dataclass
class ContextualPrompts:
    success_patterns: List[str] = field(default_factory=list)
    pitfalls: List[str] = field(default_factory=list)
    best_practices: List[str] = field(default_factory=list)
    related_experiences: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, List[str]]:
        return {
            "success_patterns": list(self.success_patterns),
            "pitfalls": list(self.pitfalls),
            "best_practices": list(self.best_practices),
            "related_experiences": list(self.related_experiences),
        }


@dataclass
class MemoryIndex:
    repository: Optional[MeshRepository] = None
    telemetry: Telemetry = field(default_factory=Telemetry)
    config: MemoryConfig = field(default_factory=MemoryConfig)
    clock: Clock = utcnow

    _entries: Dict[str, MemoryEntry] = field(default_factory=dict, init=False)
    _entry_locks: Dict[str, Lock] = field(default_factory=dict, init=False)
    _category_index: Dict[str, List[str]] = field(default_factory=dict, init=False)
    _tag_index: Dict[str, List[str]] = field(default_factory=dict, init=False)
    _agent_index: Dict[str, List[str]] = field(default_factory=dict, init=False)
    _goal_index: Dict[str, List[str]] = field(default_factory=dict, init=False)
    _campaign_patterns: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict, init=False)
    _lock: Lock = field(default_factory=Lock, init=False)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # ------------------------------------------------------------------
    # Index maintenance
    # ------------------------------------------------------------------
    def _index_entry(self, entry: MemoryEntry) -> None:
        for category in entry.categories:
            self._category_index.setdefault(category, []).append(entry.id)
        for tag in entry.tags:
            self._tag_index.setdefault(tag, []).append(entry.id)
        self._agent_index.setdefault(entry.agent_type.value, []).append(entry.id)
        if entry.goal_plan_id:
            self._goal_index.setdefault(entry.goal_plan_id, []).append(entry.id)

    def _rebuild_indexes(self) -> None:
        self._category_index.clear()
        self._tag_index.clear()
        self._agent_index.clear()
        self._goal_index.clear()
        for entry in sorted(self._entries.values(), key=lambda item: item.temporal.created_at):
            self._index_entry(entry)

    def _link_relationships(self, entry: MemoryEntry) -> List[MemoryEntry]:
        """Link ``entry`` to earlier executions of the same goal plan.

        Returns the earlier entries whose relationships changed.
        """

        if not entry.goal_plan_id:
            return []
        touched: List[MemoryEntry] = []
        opposite = _OPPOSITE_OUTCOMES.get(entry.outcome)
        for prior_id in self._goal_index.get(entry.goal_plan_id, [])[-5:]:
            prior = self._entries.get(prior_id)
            if prior is None:
                continue
            entry.relationships.dependencies.append(prior_id)
            with self._entry_locks[prior_id]:
                prior.relationships.influences.append(entry.id)
                if opposite is not None and prior.agent_type is entry.agent_type and prior.outcome is opposite:
                    prior.relationships.conflicts.append(entry.id)
                    entry.relationships.conflicts.append(prior_id)
            touched.append(prior)
        return touched

    def _store(self, entry: MemoryEntry) -> List[MemoryEntry]:
        with self._lock:
            touched = self._link_relationships(entry)
            self._entries[entry.id] = entry
            self._entry_locks[entry.id] = Lock()
            self._index_entry(entry)
            if entry.campaign_id and entry.outcome is MemoryOutcome.SUCCESS:
                self._campaign_patterns.setdefault(entry.campaign_id, []).append(
                    {
                        "summary": f"Successful {entry.agent_type.value} execution",
                        "memory_id": entry.id,
                        "pattern_score": round(entry.confidence * 100),
                        "segments": entry.metadata.get("segments", {}),
                    }
                )
        return touched

    async def _persist(self, entries: Iterable[MemoryEntry]) -> None:
        if self.repository is None:
            return
        for entry in entries:
            await self.repository.save_memory(entry)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def ingest_memory(self, record: MemoryRecord | Mapping[str, Any]) -> str:
        """Cache an execution record and return the new memory id."""

        if not isinstance(record, MemoryRecord):
            record = MemoryRecord.model_validate(record)
        now = self.clock()
        tags, categories = extract_semantic_content(record.input, record.output)
        entry = MemoryEntry(
            id=f"mem_{uuid.uuid4().hex[:12]}",
            agent_id=record.agent_id,
            agent_type=record.agent_type,
            session_id=record.session_id,
            goal_plan_id=record.goal_plan_id,
            campaign_id=record.campaign_id,
            content=MemoryContent(input=record.input, output=record.output, context=dict(record.context)),
            tags=tags,
            categories=categories,
            outcome=record.outcome,
            confidence=compute_confidence(record.outcome, record.performance),
            performance=record.performance.model_copy(deep=True),
            temporal=MemoryTemporal(created_at=now, last_accessed=now, access_count=0, decay_score=1.0),
            metadata=dict(record.metadata),
        )
        touched = self._store(entry)
        await self._persist([entry, *touched])
        self.telemetry.emit(
            "memory.ingested",
            memory_id=entry.id,
            agent_type=entry.agent_type.value,
            outcome=entry.outcome.value,
            confidence=entry.confidence,
            categories=list(entry.categories),
            tags=list(entry.tags),
        )
        return entry.id

    async def hydrate(self, *, limit: int = 1000) -> int:
        """Load recent persisted entries into the cache."""

        if self.repository is None:
            return 0
        since = self.clock() - timedelta(days=self.config.retention_days)
        loaded = 0
        for entry in reversed(await self.repository.recent_memories(since=since, limit=limit)):
            with self._lock:
                if entry.id in self._entries:
                    continue
                self._entries[entry.id] = entry
                self._entry_locks[entry.id] = Lock()
                self._index_entry(entry)
            loaded += 1
        self.telemetry.emit("memory.hydrated", loaded=loaded)
        return loaded

    def _candidate_ids(self, query: MemoryQuery, now: datetime) -> List[str]:
        with self._lock:
            if query.categories or query.tags:
                seen: Dict[str, None] = {}
                for category in query.categories:
                    for memory_id in self._category_index.get(category, []):
                        seen.setdefault(memory_id, None)
                for tag in query.tags:
                    for memory_id in self._tag_index.get(tag, []):
                        seen.setdefault(memory_id, None)
                return list(seen)

            if query.time_range is not None:
                start = query.time_range[0]
            else:
                start = now - timedelta(days=self.config.default_window_days)
            outcomes = set(query.outcomes) if query.outcomes else {MemoryOutcome.SUCCESS}
            recent = [
                entry
                for entry in self._entries.values()
                if entry.temporal.created_at >= start and entry.outcome in outcomes
            ]
        recent.sort(key=lambda entry: entry.temporal.created_at, reverse=True)
        return [entry.id for entry in recent[: self.config.candidate_limit]]

    def _matches(self, entry: MemoryEntry, query: MemoryQuery) -> bool:
        if query.agent_types and entry.agent_type not in query.agent_types:
            return False
        if query.outcomes and entry.outcome not in query.outcomes:
            return False
        if entry.confidence < query.confidence_threshold:
            return False
        if query.time_range is not None:
            start, end = query.time_range
            if not (start <= entry.temporal.created_at <= end):
                return False
        if query.goal_type:
            goal_type = entry.metadata.get("goal_type") or entry.content.context.get("goal_type")
            if goal_type != query.goal_type:
                return False
        return True

    async def retrieve_memories(self, query: Optional[MemoryQuery] = None) -> List[MemoryEntry]:
        """Return the best matching entries, most relevant first.

        Access bookkeeping (``last_accessed``/``access_count``) is updated for
        every returned entry; callers receive copies.
        """

        query = query or MemoryQuery()
        now = self.clock()
        scored: List[MemoryEntry] = []
        for memory_id in self._candidate_ids(query, now):
            entry = self._entries.get(memory_id)
            if entry is None or not self._matches(entry, query):
                continue
            snapshot = entry.model_copy(deep=True)
            snapshot.relevance_score = relevance_score(
                entry,
                categories=query.categories,
                tags=query.tags,
                now=now,
                recency_horizon_days=self.config.recency_horizon_days,
            )
            scored.append(snapshot)

        scored.sort(key=ranking_key, reverse=True)
        selected = scored[: max(0, query.limit)]

        if query.include_related and selected:
            selected.extend(self._related(selected, now))

        returned: List[MemoryEntry] = []
        for snapshot in selected:
            entry = self._entries.get(snapshot.id)
            lock = self._entry_locks.get(snapshot.id)
            if entry is None or lock is None:
                continue
            with lock:
                entry.temporal.last_accessed = now
                entry.temporal.access_count += 1
                copy = entry.model_copy(deep=True)
            copy.relevance_score = snapshot.relevance_score
            returned.append(copy)

        await self._persist(self._entries[item.id] for item in returned if item.id in self._entries)
        self.telemetry.emit("memory.retrieved", returned=len(returned), candidates=len(scored))
        return returned

    def _related(self, selected: Sequence[MemoryEntry], now: datetime) -> List[MemoryEntry]:
        chosen = {entry.id for entry in selected}
        related: List[MemoryEntry] = []
        for entry in selected:
            for related_id in entry.relationships.influences:
                if len(related) >= self.config.related_limit:
                    return related
                if related_id in chosen or related_id not in self._entries:
                    continue
                chosen.add(related_id)
                snapshot = self._entries[related_id].model_copy(deep=True)
                snapshot.relevance_score = relevance_score(
                    snapshot, categories=(), tags=(), now=now, recency_horizon_days=self.config.recency_horizon_days
                )
                related.append(snapshot)
        return related

    async def get_contextual_prompts(self, goal_type: Optional[str], agent_type: AgentType) -> ContextualPrompts:
        successes = await self.retrieve_memories(
            MemoryQuery(
                goal_type=goal_type,
                agent_types=[agent_type],
                outcomes=[MemoryOutcome.SUCCESS],
                confidence_threshold=PROMPT_CONFIDENCE_FLOOR,
                limit=20,
            )
        )
        failures = await self.retrieve_memories(
            MemoryQuery(goal_type=goal_type, agent_types=[agent_type], outcomes=[MemoryOutcome.FAILURE], limit=10)
        )
        return ContextualPrompts(
            success_patterns=list(SUCCESS_PATTERNS) if successes else [],
            pitfalls=list(FAILURE_PATTERNS) if failures else [],
            best_practices=list(BEST_PRACTICES),
            related_experiences=[
                f"{entry.agent_type.value} successfully handled similar task with {round(entry.confidence * 100)}% confidence"
                for entry in successes[:5]
            ],
        )

    def snapshot(self) -> List[MemoryEntry]:
        """Copies of every cached entry, oldest first; no bookkeeping."""

        with self._lock:
            entries = [entry.model_copy(deep=True) for entry in self._entries.values()]
        entries.sort(key=lambda entry: entry.temporal.created_at)
        return entries

    def get(self, memory_id: str) -> MemoryEntry:
        with self._lock:
            entry = self._entries.get(memory_id)
            if entry is None:
                raise KeyError(memory_id)
            return entry.model_copy(deep=True)

    def campaign_patterns(self, campaign_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [dict(pattern) for pattern in self._campaign_patterns.get(campaign_id, [])]

    def generate_insights(self, agent_type: Optional[AgentType] = None) -> List[MemoryInsight]:
        insights = generate_insights(self.snapshot(), now=self.clock(), agent_type=agent_type)
        self.telemetry.emit("memory.insights", count=len(insights), agent_type=agent_type.value if agent_type else None)
        return insights

    def build_knowledge_graph(self) -> KnowledgeGraph:
        return build_knowledge_graph(self.snapshot())

    async def cleanup(self) -> int:
        """Recompute decay, evict stale or low-value entries and rebuild indexes."""

        now = self.clock()
        removed: List[str] = []
        with self._lock:
            for memory_id, entry in list(self._entries.items()):
                with self._entry_locks[memory_id]:
                    entry.temporal.decay_score = decay_score(
                        entry.temporal.created_at,
                        entry.temporal.last_accessed,
                        now,
                        age_horizon_days=self.config.age_decay_days,
                        access_horizon_days=self.config.access_decay_days,
                    )
                    value = entry.confidence * entry.temporal.decay_score
                    age = days_between(entry.temporal.created_at, now)
                    if value < self.config.eviction_floor or age > self.config.retention_days:
                        removed.append(memory_id)
            for memory_id in removed:
                del self._entries[memory_id]
                del self._entry_locks[memory_id]
            self._rebuild_indexes()
            survivors = list(self._entries.values())

        if self.repository is not None:
            for memory_id in removed:
                await self.repository.delete_memory(memory_id)
            await self._persist(survivors)
        self.telemetry.emit("memory.cleanup", removed=len(removed), remaining=len(survivors))
        return len(removed)


__all__ = [
    "BEST_PRACTICES",
    "ContextualPrompts",
    "FAILURE_PATTERNS",
    "MemoryIndex",
    "MemoryQuery",
    "PROMPT_CONFIDENCE_FLOOR",
    "SUCCESS_PATTERNS",
]
