from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Optional

from ..core.commands import (
    CAMPAIGN_MUTATIONS,
    REPORTING_ACTIONS,
    ExecutionConstraints,
    IntentAction,
    ParsedIntent,
    UserPermissions,
)
from ..core.config import DEFAULT_BUDGET_IMPACTS
from ..core.types import AgentType


@dataclass(frozen=True)
class GateDecision:
    allowed: bool
    reason: Optional[str] = None
    budget_impact: float = 0.0


@dataclass(slots=True)
class CommandGatekeeper:
    """Policy checks applied to a parsed command before anything runs.

    Two independent gates are exposed:

    ``check_permissions``
        Role based: command execution rights, campaign management rights for
        campaign-mutating intents, report access for reporting intents and
        an optional allow-list of agent types.  An empty allow-list grants
        every agent.

    ``check_constraints``
        Budget based: the estimated impact of the intent (a static lookup per
        action) is compared against the caller's ``max_budget_impact`` and,
        when approval is requested, against the approval threshold.
        ``auto_approve`` waives the threshold but never the hard maximum.
    """

    budget_impacts: Mapping[str, float] = field(default_factory=lambda: dict(DEFAULT_BUDGET_IMPACTS))
    approval_threshold: float = 1000.0

    def check_permissions(
        self, intent: ParsedIntent, permissions: UserPermissions, agent_type: AgentType
    ) -> GateDecision:
        if not permissions.can_execute_commands:
            return GateDecision(False, "User does not have command execution permissions")
        if intent.primary_action in CAMPAIGN_MUTATIONS and not permissions.can_manage_campaigns:
            return GateDecision(False, "User does not have campaign management permissions")
        if intent.primary_action in REPORTING_ACTIONS and not permissions.can_access_reports:
            return GateDecision(False, "User does not have report access permissions")
        if permissions.allowed_agents and agent_type not in permissions.allowed_agents:
            return GateDecision(False, f"User does not have access to {agent_type.value} agent")
        return GateDecision(True)

    def estimate_budget_impact(self, action: IntentAction) -> float:
        return float(self.budget_impacts.get(action.value, 0.0))

    def check_constraints(self, intent: ParsedIntent, constraints: ExecutionConstraints) -> GateDecision:
        impact = self.estimate_budget_impact(intent.primary_action)
        limit = constraints.max_budget_impact
        if limit is not None and impact > limit:
            return GateDecision(False, f"Budget impact (${impact:g}) exceeds limit (${limit:g})", impact)
        threshold = constraints.approval_threshold
        if threshold is None:
            threshold = self.approval_threshold
        if constraints.requires_approval and not constraints.auto_approve and impact > threshold:
            return GateDecision(False, f"Budget impact exceeds approval threshold (${threshold:g})", impact)
        return GateDecision(True, budget_impact=impact)


__all__ = ["CommandGatekeeper", "GateDecision"]
