from __future__ import annotations

from neonmesh.src.core.commands import ExecutionConstraints, IntentAction, ParsedIntent, UserPermissions
from neonmesh.src.core.types import AgentType
from neonmesh.src.governance.gatekeeper import CommandGatekeeper


def _intent(action: IntentAction) -> ParsedIntent:
    return ParsedIntent(primary_action=action)


def test_budget_impacts_are_static_per_action():
    gatekeeper = CommandGatekeeper()

    assert gatekeeper.estimate_budget_impact(IntentAction.CREATE_CAMPAIGN) == 5000.0
    assert gatekeeper.estimate_budget_impact(IntentAction.LAUNCH_CAMPAIGN) == 3000.0
    assert gatekeeper.estimate_budget_impact(IntentAction.PAUSE_CAMPAIGN) == 0.0
    assert gatekeeper.estimate_budget_impact(IntentAction.GET_INSIGHTS) == 0.0


def test_allow_list_restricts_agents():
    gatekeeper = CommandGatekeeper()
    permissions = UserPermissions(allowed_agents=[AgentType.INSIGHT])

    assert gatekeeper.check_permissions(_intent(IntentAction.GET_INSIGHTS), permissions, AgentType.INSIGHT).allowed
    denied = gatekeeper.check_permissions(_intent(IntentAction.GET_INSIGHTS), permissions, AgentType.BOARDROOM)
    assert not denied.allowed
    assert denied.reason == "User does not have access to boardroom agent"


def test_threshold_only_applies_when_approval_requested():
    gatekeeper = CommandGatekeeper(approval_threshold=500.0)
    intent = _intent(IntentAction.UPDATE_CAMPAIGN)

    assert gatekeeper.check_constraints(intent, ExecutionConstraints()).allowed
    held = gatekeeper.check_constraints(intent, ExecutionConstraints(requires_approval=True))
    assert not held.allowed
    assert held.budget_impact == 1000.0
    assert held.reason == "Budget impact exceeds approval threshold ($500)"

    waived = gatekeeper.check_constraints(intent, ExecutionConstraints(requires_approval=True, auto_approve=True))
    assert waived.allowed and waived.budget_impact == 1000.0


def test_caller_threshold_overrides_default():
    gatekeeper = CommandGatekeeper()
    constraints = ExecutionConstraints(requires_approval=True, approval_threshold=2500.0)

    assert not gatekeeper.check_constraints(_intent(IntentAction.LAUNCH_CAMPAIGN), constraints).allowed
    assert gatekeeper.check_constraints(_intent(IntentAction.OPTIMIZE_BUDGET), constraints).allowed
