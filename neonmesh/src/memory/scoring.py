"""Pure scoring helpers for the cross-agent memory index."""

from __future__ import annotations

import json
import re
from datetime import datetime
from typing import Any, List, Sequence, Tuple

from ..core.types import MemoryEntry, MemoryOutcome, MemoryPerformance


_WORD_PATTERN = re.compile(r"\b\w+\b")

CATEGORY_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("content_creation", ("content", "post")),
    ("seo_optimization", ("seo", "optimization")),
    ("campaign_management", ("campaign", "marketing")),
    ("brand_management", ("brand", "voice")),
    ("trend_analysis", ("trend", "analysis")),
)

TAG_KEYWORDS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("high_performance", ("success", "good")),
    ("error_prone", ("error", "fail")),
    ("time_efficient", ("fast", "quick")),
    ("cost_sensitive", ("cost", "budget")),
)

_BASE_CONFIDENCE = {
    MemoryOutcome.SUCCESS: 0.9,
    MemoryOutcome.PARTIAL: 0.6,
    MemoryOutcome.FAILURE: 0.3,
}

_SECONDS_PER_DAY = 86400.0


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def days_between(earlier: datetime, later: datetime) -> float:
    return max(0.0, (later - earlier).total_seconds() / _SECONDS_PER_DAY)


def extract_semantic_content(input_value: Any, output_value: Any) -> Tuple[List[str], List[str]]:
    """Return ``(tags, categories)`` from word presence in input and output."""

    text = json.dumps({"input": input_value, "output": output_value}, default=str, sort_keys=True)
    words = set(_WORD_PATTERN.findall(text.lower()))
    categories = [name for name, keywords in CATEGORY_KEYWORDS if words.intersection(keywords)]
    tags = [name for name, keywords in TAG_KEYWORDS if words.intersection(keywords)]
    return tags, categories


def compute_confidence(outcome: MemoryOutcome, performance: MemoryPerformance) -> float:
    confidence = _BASE_CONFIDENCE.get(outcome, 0.5)
    if performance.execution_time_ms < 5000:
        confidence += 0.1
    if performance.cost is not None and performance.cost < 0.01:
        confidence += 0.05
    if performance.success_metrics:
        values = list(performance.success_metrics.values())
        if sum(values) / len(values) > 0.8:
            confidence += 0.1
    return _clamp(confidence)


def decay_score(
    created_at: datetime,
    last_accessed: datetime,
    now: datetime,
    *,
    age_horizon_days: float = 60.0,
    access_horizon_days: float = 14.0,
) -> float:
    """Freshness in [0, 1]; non-increasing in both age and idle time."""

    creation_decay = max(0.0, 1.0 - days_between(created_at, now) / age_horizon_days)
    access_decay = max(0.0, 1.0 - days_between(last_accessed, now) / access_horizon_days)
    return _clamp(0.6 * creation_decay + 0.4 * access_decay)


def _overlap(values: Sequence[str], wanted: Sequence[str]) -> float:
    if not wanted:
        return 0.0
    present = set(values)
    return sum(1 for item in wanted if item in present) / len(wanted)


def relevance_score(
    entry: MemoryEntry,
    *,
    categories: Sequence[str],
    tags: Sequence[str],
    now: datetime,
    recency_horizon_days: float = 30.0,
) -> float:
    recency = max(0.0, 1.0 - days_between(entry.temporal.created_at, now) / recency_horizon_days)
    access = min(1.0, entry.temporal.access_count / 10.0)
    score = (
        0.4 * _overlap(entry.categories, categories)
        + 0.3 * _overlap(entry.tags, tags)
        + 0.2 * recency
        + 0.1 * access
    )
    return _clamp(score)


def ranking_key(entry: MemoryEntry) -> float:
    return (entry.relevance_score or 0.0) * entry.confidence * entry.temporal.decay_score


__all__ = [
    "CATEGORY_KEYWORDS",
    "TAG_KEYWORDS",
    "compute_confidence",
    "days_between",
    "decay_score",
    "extract_semantic_content",
    "ranking_key",
    "relevance_score",
]
