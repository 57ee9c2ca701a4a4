"""Models consumed and produced by the command router."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from .clock import utcnow
from .types import AgentExecutionResult, AgentType, ExecutionError, ExecutionStatus


class IntentAction(str, Enum):
    GENERATE_REPORT = "generate_report"
    GET_INSIGHTS = "get_insights"
    VIEW_ANALYTICS = "view_analytics"
    DOWNLOAD_REPORT = "download_report"
    CREATE_CAMPAIGN = "create_campaign"
    UPDATE_CAMPAIGN = "update_campaign"
    PAUSE_CAMPAIGN = "pause_campaign"
    LAUNCH_CAMPAIGN = "launch_campaign"
    ANALYZE_CAMPAIGN = "analyze_campaign"
    GENERATE_CONTENT = "generate_content"
    REVIEW_CONTENT = "review_content"
    OPTIMIZE_CONTENT = "optimize_content"
    CREATE_FORECAST = "create_forecast"
    PLAN_STRATEGY = "plan_strategy"
    OPTIMIZE_BUDGET = "optimize_budget"
    GET_STATUS = "get_status"
    CONFIGURE_SETTINGS = "configure_settings"
    SCHEDULE_TASK = "schedule_task"
    EXPLAIN = "explain"
    CLARIFY = "clarify"
    HELP = "help"
    UNKNOWN = "unknown"


class EntityType(str, Enum):
    CAMPAIGN = "campaign"
    REPORT = "report"
    AGENT = "agent"
    CONTENT = "content"
    FORECAST = "forecast"
    BRAND = "brand"
    METRIC = "metric"
    TIMEFRAME = "timeframe"


CAMPAIGN_MUTATIONS = frozenset(
    {IntentAction.CREATE_CAMPAIGN, IntentAction.PAUSE_CAMPAIGN, IntentAction.UPDATE_CAMPAIGN}
)
REPORTING_ACTIONS = frozenset({IntentAction.GENERATE_REPORT, IntentAction.VIEW_ANALYTICS})


class RetryPolicy(BaseModel):
    max_attempts: int = Field(default=1, ge=1)
    backoff_multiplier: float = Field(default=1.0, ge=1.0)
    initial_delay_ms: float = Field(default=0.0, ge=0.0)

    def delay_seconds(self, attempt: int) -> float:
        """Delay before retrying after failed ``attempt`` (1-based)."""

        return self.initial_delay_ms * (self.backoff_multiplier ** (attempt - 1)) / 1000.0


class ExecutionStep(BaseModel):
    id: str
    description: str = ""
    agent_type: AgentType
    action: Optional[str] = None
    parameters: Dict[str, Any] = Field(default_factory=dict)
    dependencies: List[str] = Field(default_factory=list)
    timeout_ms: Optional[float] = Field(default=None, gt=0)
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)


class WorkflowDefinition(BaseModel):
    id: str
    name: str
    description: str = ""
    triggers: List[IntentAction] = Field(default_factory=list)
    steps: List[ExecutionStep]

    @field_validator("steps")
    @classmethod
    def _known_dependencies(cls, steps: List[ExecutionStep]) -> List[ExecutionStep]:
        ids = {step.id for step in steps}
        for step in steps:
            missing = [dep for dep in step.dependencies if dep not in ids]
            if missing:
                raise ValueError(f"Step {step.id} depends on unknown steps: {', '.join(missing)}")
        return steps


class ParsedIntent(BaseModel):
    primary_action: IntentAction
    entity_type: Optional[EntityType] = None
    entity_id: Optional[str] = None
    parameters: Dict[str, Any] = Field(default_factory=dict)
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    fallback_actions: List[IntentAction] = Field(default_factory=list)
    execution_plan: List[ExecutionStep] = Field(default_factory=list)


class UserPermissions(BaseModel):
    can_execute_commands: bool = True
    can_manage_campaigns: bool = False
    can_access_reports: bool = True
    can_modify_settings: bool = False
    allowed_agents: List[AgentType] = Field(default_factory=list)


class ExecutionConstraints(BaseModel):
    max_budget_impact: Optional[float] = Field(default=None, ge=0.0)
    requires_approval: bool = False
    approval_threshold: Optional[float] = Field(default=None, ge=0.0)
    max_execution_time_ms: Optional[float] = Field(default=None, gt=0)
    auto_approve: bool = False


class ExecutionContext(BaseModel):
    user_id: str
    session_id: str
    organization_id: Optional[str] = None
    permissions: UserPermissions = Field(default_factory=UserPermissions)
    constraints: ExecutionConstraints = Field(default_factory=ExecutionConstraints)
    dry_run: bool = False
    metadata: Dict[str, Any] = Field(default_factory=dict)


class CommandResult(BaseModel):
    id: str
    command: str
    user_id: str
    session_id: str
    intent: Optional[ParsedIntent] = None
    status: ExecutionStatus = ExecutionStatus.PENDING
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    duration_ms: Optional[float] = None
    routed_agent: Optional[AgentType] = None
    workflow_id: Optional[str] = None
    agent_results: List[AgentExecutionResult] = Field(default_factory=list)
    output: Optional[Dict[str, Any]] = None
    error: Optional[ExecutionError] = None
    budget_impact: float = 0.0
    approval_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


__all__ = [
    "CAMPAIGN_MUTATIONS",
    "CommandResult",
    "EntityType",
    "ExecutionConstraints",
    "ExecutionContext",
    "ExecutionStep",
    "IntentAction",
    "ParsedIntent",
    "REPORTING_ACTIONS",
    "RetryPolicy",
    "UserPermissions",
    "WorkflowDefinition",
]
