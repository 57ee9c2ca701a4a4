"""Insight mining and knowledge-graph construction over cached memories."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from ..core.collaborators import AgentPerformance
from ..core.types import AgentType, MemoryEntry, MemoryOutcome

if TYPE_CHECKING:
    from .index import MemoryIndex


MIN_SAMPLES = 3


class InsightType(str, Enum):
    PATTERN = "pattern"
    ANOMALY = "anomaly"
    TREND = "trend"
    CORRELATION = "correlation"
    BEST_PRACTICE = "best_practice"


class NodeType(str, Enum):
    AGENT = "agent"
    GOAL = "goal"
    PATTERN = "pattern"
    OUTCOME = "outcome"


class EdgeType(str, Enum):
    DEPENDS_ON = "depends_on"
    INFLUENCES = "influences"
    CONFLICTS_WITH = "conflicts_with"
    SIMILAR_TO = "similar_to"


@dataclass(frozen=True)
class MemoryInsight:
    type: InsightType
    title: str
    description: str
    confidence: float
    actionable: bool
    evidence: Tuple[str, ...] = ()
    recommendations: Tuple[str, ...] = ()
    affected_agents: Tuple[AgentType, ...] = ()
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def rank(self) -> float:
        return self.confidence * (1.5 if self.actionable else 1.0)

    def as_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["type"] = self.type.value
        payload["affected_agents"] = [agent.value for agent in self.affected_agents]
        payload["rank"] = self.rank
        return payload


@dataclass(frozen=True)
class GraphNode:
    id: str
    type: NodeType
    label: str
    properties: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class GraphEdge:
    source: str
    target: str
    type: EdgeType
    weight: float


@dataclass
class KnowledgeGraph:
    nodes: List[GraphNode] = field(default_factory=list)
    edges: List[GraphEdge] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [
                {"id": node.id, "type": node.type.value, "label": node.label, "properties": dict(node.properties)}
                for node in self.nodes
            ],
            "edges": [
                {"source": edge.source, "target": edge.target, "type": edge.type.value, "weight": edge.weight}
                for edge in self.edges
            ],
        }


def _success_vector(entries: Sequence[MemoryEntry]) -> np.ndarray:
    return np.array([1.0 if entry.outcome is MemoryOutcome.SUCCESS else 0.0 for entry in entries])


def _group(entries: Iterable[MemoryEntry], key) -> Dict[Any, List[MemoryEntry]]:
    grouped: Dict[Any, List[MemoryEntry]] = defaultdict(list)
    for entry in entries:
        for value in key(entry):
            grouped[value].append(entry)
    return grouped


def _category_patterns(entries: Sequence[MemoryEntry]) -> List[MemoryInsight]:
    insights: List[MemoryInsight] = []
    for category, members in sorted(_group(entries, lambda item: item.categories).items()):
        if len(members) < MIN_SAMPLES:
            continue
        rate = float(_success_vector(members).mean())
        confidence = min(0.95, 0.5 + len(members) / 20.0)
        agents = tuple(sorted({item.agent_type for item in members}, key=lambda agent: agent.value))
        if rate >= 0.75:
            insights.append(
                MemoryInsight(
                    type=InsightType.PATTERN,
                    title=f"Reliable {category} executions",
                    description=f"{rate:.0%} of {len(members)} {category} executions succeeded",
                    confidence=confidence,
                    actionable=True,
                    evidence=(f"{len(members)} cached executions",),
                    recommendations=(f"Reuse approaches recorded for {category}",),
                    affected_agents=agents,
                    metadata={"category": category, "success_rate": rate},
                )
            )
        elif rate <= 0.4:
            insights.append(
                MemoryInsight(
                    type=InsightType.PATTERN,
                    title=f"Unreliable {category} executions",
                    description=f"Only {rate:.0%} of {len(members)} {category} executions succeeded",
                    confidence=confidence,
                    actionable=True,
                    evidence=(f"{len(members)} cached executions",),
                    recommendations=(f"Add review checkpoints to {category} tasks",),
                    affected_agents=agents,
                    metadata={"category": category, "success_rate": rate},
                )
            )
    return insights


def _failure_anomalies(entries: Sequence[MemoryEntry]) -> List[MemoryInsight]:
    by_agent = {
        agent: members
        for agent, members in _group(entries, lambda item: [item.agent_type]).items()
        if len(members) >= MIN_SAMPLES
    }
    if len(by_agent) < 2:
        return []
    agents = sorted(by_agent, key=lambda agent: agent.value)
    failure_rates = np.array([1.0 - float(_success_vector(by_agent[agent]).mean()) for agent in agents])
    spread = float(failure_rates.std())
    if spread == 0.0:
        return []
    mean = float(failure_rates.mean())
    insights: List[MemoryInsight] = []
    for agent, rate in zip(agents, failure_rates):
        z_score = (float(rate) - mean) / spread
        if z_score < 1.0 or rate < 0.3:
            continue
        insights.append(
            MemoryInsight(
                type=InsightType.ANOMALY,
                title=f"Elevated failure rate for {agent.value} agent",
                description=f"{agent.value} fails {rate:.0%} of executions against a mesh average of {mean:.0%}",
                confidence=min(0.95, 0.5 + 0.1 * z_score),
                actionable=True,
                evidence=(f"z-score {z_score:.2f}", f"{len(by_agent[agent])} executions"),
                recommendations=(f"Review {agent.value} agent configuration", "Route critical tasks to fallbacks"),
                affected_agents=(agent,),
                metadata={"failure_rate": float(rate), "z_score": z_score},
            )
        )
    return insights


def _success_trend(entries: Sequence[MemoryEntry], now: datetime) -> List[MemoryInsight]:
    recent_cutoff = now - timedelta(days=7)
    prior_cutoff = now - timedelta(days=30)
    recent = [entry for entry in entries if entry.temporal.created_at >= recent_cutoff]
    prior = [entry for entry in entries if prior_cutoff <= entry.temporal.created_at < recent_cutoff]
    if len(recent) < MIN_SAMPLES or len(prior) < MIN_SAMPLES:
        return []
    recent_rate = float(_success_vector(recent).mean())
    prior_rate = float(_success_vector(prior).mean())
    delta = recent_rate - prior_rate
    if abs(delta) < 0.1:
        return []
    improving = delta > 0
    return [
        MemoryInsight(
            type=InsightType.TREND,
            title="Success rate improving" if improving else "Success rate declining",
            description=f"Success rate moved from {prior_rate:.0%} to {recent_rate:.0%} over the last week",
            confidence=min(0.9, 0.5 + (len(recent) + len(prior)) / 40.0),
            actionable=not improving,
            evidence=(f"{len(recent)} recent executions", f"{len(prior)} earlier executions"),
            recommendations=(
                ("Continue current coordination strategies",)
                if improving
                else ("Investigate recent failures", "Tighten plan review before execution")
            ),
            affected_agents=tuple(sorted({entry.agent_type for entry in recent}, key=lambda agent: agent.value)),
            metadata={"recent_rate": recent_rate, "prior_rate": prior_rate, "delta": delta},
        )
    ]


def _time_correlation(entries: Sequence[MemoryEntry]) -> List[MemoryInsight]:
    timed = [entry for entry in entries if entry.performance.execution_time_ms > 0]
    if len(timed) < 5:
        return []
    durations = np.array([entry.performance.execution_time_ms for entry in timed])
    outcomes = _success_vector(timed)
    if float(durations.std()) == 0.0 or float(outcomes.std()) == 0.0:
        return []
    coefficient = float(np.corrcoef(durations, outcomes)[0, 1])
    if abs(coefficient) < 0.3:
        return []
    slower_fails = coefficient < 0
    return [
        MemoryInsight(
            type=InsightType.CORRELATION,
            title="Execution time correlates with outcome",
            description=(
                f"Longer executions are {'less' if slower_fails else 'more'} likely to succeed "
                f"(r={coefficient:.2f})"
            ),
            confidence=min(0.95, abs(coefficient)),
            actionable=True,
            evidence=(f"{len(timed)} timed executions",),
            recommendations=(
                ("Set tighter execution timeouts",) if slower_fails else ("Allow more time for complex tasks",)
            ),
            affected_agents=tuple(sorted({entry.agent_type for entry in timed}, key=lambda agent: agent.value)),
            metadata={"pearson_r": coefficient},
        )
    ]


def _tag_practices(entries: Sequence[MemoryEntry]) -> List[MemoryInsight]:
    insights: List[MemoryInsight] = []
    members = [entry for entry in entries if "time_efficient" in entry.tags]
    if len(members) >= MIN_SAMPLES:
        rate = float(_success_vector(members).mean())
        if rate >= 0.8:
            insights.append(
                MemoryInsight(
                    type=InsightType.BEST_PRACTICE,
                    title="Quick turnarounds succeed",
                    description=f"{rate:.0%} of time-efficient executions succeeded",
                    confidence=min(0.9, 0.5 + len(members) / 20.0),
                    actionable=False,
                    evidence=(f"{len(members)} tagged executions",),
                    recommendations=("Keep tasks small enough to finish quickly",),
                    affected_agents=tuple(sorted({item.agent_type for item in members}, key=lambda agent: agent.value)),
                    metadata={"success_rate": rate},
                )
            )
    return insights


def generate_insights(
    entries: Sequence[MemoryEntry], *, now: datetime, agent_type: Optional[AgentType] = None
) -> List[MemoryInsight]:
    """Derive insights from ``entries`` ranked by confidence and actionability."""

    scoped = [entry for entry in entries if agent_type is None or entry.agent_type is agent_type]
    insights: List[MemoryInsight] = []
    insights.extend(_category_patterns(scoped))
    insights.extend(_failure_anomalies(scoped))
    insights.extend(_success_trend(scoped, now))
    insights.extend(_time_correlation(scoped))
    insights.extend(_tag_practices(scoped))
    insights.sort(key=lambda insight: insight.rank, reverse=True)
    return insights


def build_knowledge_graph(entries: Sequence[MemoryEntry]) -> KnowledgeGraph:
    graph = KnowledgeGraph()
    by_id = {entry.id: entry for entry in entries}
    by_agent = _group(entries, lambda item: [item.agent_type])

    for agent in sorted(by_agent, key=lambda item: item.value):
        members = by_agent[agent]
        graph.nodes.append(
            GraphNode(
                id=f"agent:{agent.value}",
                type=NodeType.AGENT,
                label=agent.value,
                properties={
                    "executions": len(members),
                    "success_rate": float(_success_vector(members).mean()),
                },
            )
        )

    goals = _group(entries, lambda item: [item.goal_plan_id] if item.goal_plan_id else [])
    for goal_id in sorted(goals):
        members = goals[goal_id]
        graph.nodes.append(
            GraphNode(id=f"goal:{goal_id}", type=NodeType.GOAL, label=goal_id, properties={"executions": len(members)})
        )

    categories = _group(entries, lambda item: item.categories)
    for category in sorted(categories):
        graph.nodes.append(
            GraphNode(
                id=f"pattern:{category}",
                type=NodeType.PATTERN,
                label=category,
                properties={"executions": len(categories[category])},
            )
        )

    outcomes = _group(entries, lambda item: [item.outcome])
    for outcome in sorted(outcomes, key=lambda item: item.value):
        graph.nodes.append(
            GraphNode(
                id=f"outcome:{outcome.value}",
                type=NodeType.OUTCOME,
                label=outcome.value,
                properties={"executions": len(outcomes[outcome])},
            )
        )

    weights: Dict[Tuple[str, str, EdgeType], List[float]] = defaultdict(list)
    for entry in entries:
        agent_node = f"agent:{entry.agent_type.value}"
        if entry.goal_plan_id:
            weights[(agent_node, f"goal:{entry.goal_plan_id}", EdgeType.INFLUENCES)].append(entry.confidence)
        for category in entry.categories:
            weights[(agent_node, f"pattern:{category}", EdgeType.SIMILAR_TO)].append(entry.confidence)
        weights[(agent_node, f"outcome:{entry.outcome.value}", EdgeType.INFLUENCES)].append(1.0)
        for dependency_id in entry.relationships.dependencies:
            dependency = by_id.get(dependency_id)
            if dependency is not None and dependency.agent_type is not entry.agent_type:
                target = f"agent:{dependency.agent_type.value}"
                weights[(agent_node, target, EdgeType.DEPENDS_ON)].append(1.0)
        for conflict_id in entry.relationships.conflicts:
            if conflict_id in by_id and entry.goal_plan_id:
                weights[(agent_node, f"goal:{entry.goal_plan_id}", EdgeType.CONFLICTS_WITH)].append(1.0)

    for (source, target, edge_type), values in sorted(weights.items(), key=lambda item: (item[0][0], item[0][1], item[0][2].value)):
        if edge_type in (EdgeType.INFLUENCES, EdgeType.SIMILAR_TO) and not target.startswith("outcome:"):
            weight = float(np.mean(values))
        else:
            weight = float(len(values))
        graph.edges.append(GraphEdge(source=source, target=target, type=edge_type, weight=round(weight, 4)))
    return graph


@dataclass
class MemoryMetricsSource:
    """Agent performance derived from executions cached in a memory index."""

    index: "MemoryIndex"

    def agent_performance(self, agent_types: Sequence[AgentType]) -> List[AgentPerformance]:
        entries = self.index.snapshot()
        performance: List[AgentPerformance] = []
        for agent_type in agent_types:
            members = [entry for entry in entries if entry.agent_type is agent_type]
            if not members:
                performance.append(AgentPerformance(agent_type, 0, 0.0, 0.0))
                continue
            durations = np.array([entry.performance.execution_time_ms for entry in members])
            performance.append(
                AgentPerformance(
                    agent_type=agent_type,
                    executions=len(members),
                    success_rate=float(_success_vector(members).mean()),
                    average_execution_ms=float(durations.mean()),
                )
            )
        return performance


__all__ = [
    "EdgeType",
    "GraphEdge",
    "GraphNode",
    "InsightType",
    "KnowledgeGraph",
    "MemoryInsight",
    "MemoryMetricsSource",
    "NodeType",
    "build_knowledge_graph",
    "generate_insights",
]
