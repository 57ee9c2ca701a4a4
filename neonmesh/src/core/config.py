"""Runtime configuration for the reasoning mesh.

Every tunable the planner, memory index and router read lives on
:class:`MeshConfig`.  Defaults reproduce the production behaviour; a JSON file
can override any subset of fields via :func:`load_config`.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


DEFAULT_BUDGET_IMPACTS: Dict[str, float] = {
    "create_campaign": 5000.0,
    "pause_campaign": 0.0,
    "update_campaign": 1000.0,
    "launch_campaign": 3000.0,
    "optimize_budget": 2000.0,
}


class MemoryConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    default_window_days: float = Field(default=7.0, gt=0)
    candidate_limit: int = Field(default=100, ge=1)
    recency_horizon_days: float = Field(default=30.0, gt=0)
    age_decay_days: float = Field(default=60.0, gt=0)
    access_decay_days: float = Field(default=14.0, gt=0)
    retention_days: float = Field(default=30.0, gt=0)
    eviction_floor: float = Field(default=0.1, ge=0.0, le=1.0)
    related_limit: int = Field(default=5, ge=0)


class PlannerConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    quorum: float = Field(default=0.7, gt=0.0, le=1.0)
    evaluation_timeout_s: float = Field(default=30.0, gt=0)
    monitor_interval_s: float = Field(default=300.0, gt=0)
    recent_execution_window: int = Field(default=5, ge=1)
    failure_threshold: int = Field(default=2, ge=1)
    insights_window: int = Field(default=100, ge=1)
    replan_time_factor: float = Field(default=1.2, gt=0)


class RouterConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    history_limit: int = Field(default=100, ge=1)
    approval_threshold: float = Field(default=1000.0, ge=0)
    default_step_timeout_s: float = Field(default=30.0, gt=0)
    budget_impacts: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_BUDGET_IMPACTS))

    @field_validator("budget_impacts")
    @classmethod
    def _normalise_actions(cls, value: Dict[str, float]) -> Dict[str, float]:
        return {str(key).lower(): float(amount) for key, amount in value.items()}


class MeshConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    planner: PlannerConfig = Field(default_factory=PlannerConfig)
    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    router: RouterConfig = Field(default_factory=RouterConfig)


def load_config(path: Optional[Path]) -> MeshConfig:
    """Load configuration from ``path``; ``None`` yields the defaults."""

    if path is None:
        return MeshConfig()
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    return MeshConfig.model_validate(payload)


__all__ = [
    "DEFAULT_BUDGET_IMPACTS",
    "MemoryConfig",
    "MeshConfig",
    "PlannerConfig",
    "RouterConfig",
    "load_config",
]
