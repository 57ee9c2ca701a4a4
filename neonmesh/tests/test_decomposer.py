from __future__ import annotations

import pytest

from neonmesh.src.core.decomposer import (
    analyze_goal,
    assess_complexity,
    check_assignment_dag,
    decompose_goal,
    extract_intent,
)
from neonmesh.src.core.errors import PlanValidationError
from neonmesh.src.core.types import AgentAssignment, AgentType, GoalCategory, Level


def test_conversion_goal_is_decomposed_with_campaign_setup():
    decomposed = decompose_goal("Increase conversion sales by 20% in 2 weeks")

    analysis = decomposed.analysis
    assert analysis.category is GoalCategory.CONVERSION
    assert analysis.urgency is Level.HIGH
    assert analysis.human_oversight_required is True
    assert [(item.metric, item.target, item.unit, item.timeframe) for item in analysis.target_metrics] == [
        ("conversion_rate", 20.0, "%", "2 weeks")
    ]

    assert [item.id for item in decomposed.subgoals] == [
        "research_analysis",
        "strategy_development",
        "campaign_setup",
        "execution_launch",
        "monitoring_optimization",
    ]
    execution = next(item for item in decomposed.subgoals if item.id == "execution_launch")
    assert execution.estimated_time_minutes == 48

    assert [item.id for item in decomposed.agent_sequence] == [
        "trend_analysis",
        "insight_generation",
        "brand_validation",
        "strategy_finalization",
        "ad_setup",
        "seo_setup",
        "ad_launch",
        "email_marketing_launch",
    ]
    assert decomposed.estimated_time == 468
    assert decomposed.complexity is Level.HIGH
    assert decomposed.risk_factors == ["Requires human oversight for critical decisions"]
    assert decomposed.title == "Goal: conversion sales"
    assert decomposed.success_metrics[-1] == "conversion_rate: 20% in 2 weeks"
    assert decomposed.dependencies == [
        "trend_analysis",
        "insight_generation",
        "brand_validation",
        "strategy_finalization",
        "ad_setup",
        "seo_setup",
        "ad_launch",
    ]


def test_estimated_time_is_max_not_sum():
    decomposed = decompose_goal("Launch brand awareness campaign asap")

    subgoal_total = sum(item.estimated_time_minutes for item in decomposed.subgoals)
    assignment_total = sum(item.estimated_duration_minutes for item in decomposed.agent_sequence)
    assert decomposed.estimated_time == max(subgoal_total, assignment_total)
    assert decomposed.estimated_time == 492
    assert decomposed.analysis.urgency is Level.CRITICAL
    assert decomposed.risk_factors == [
        "Tight timeline may impact quality",
        "Requires human oversight for critical decisions",
    ]


def test_phase_one_is_research_with_insight_after_trend():
    decomposed = decompose_goal("Grow our community")

    phase_one = [item for item in decomposed.agent_sequence if item.phase == 1]
    assert [item.agent_type for item in phase_one] == [AgentType.TREND, AgentType.INSIGHT]
    assert phase_one[0].fallback_agents == [AgentType.INSIGHT]
    assert phase_one[1].dependencies == ["trend_analysis"]
    phase_two = [item.agent_type for item in decomposed.agent_sequence if item.phase == 2]
    assert phase_two == [AgentType.BRAND_VOICE, AgentType.GOAL_PLANNER]


def test_category_specific_subgoals_and_agents():
    retention = decompose_goal("Improve customer loyalty")
    assert retention.analysis.category is GoalCategory.RETENTION
    assert "content_strategy" not in {item.id for item in retention.subgoals}
    assert "campaign_setup" not in {item.id for item in retention.subgoals}
    launches = [item.agent_type for item in retention.agent_sequence if item.phase == 5]
    assert launches == [AgentType.EMAIL_MARKETING, AgentType.CUSTOMER_SUPPORT]

    growth = decompose_goal("Expand retail presence within 1 year")
    assert growth.analysis.category is GoalCategory.GROWTH
    assert growth.analysis.urgency is Level.LOW
    execution = next(item for item in growth.subgoals if item.id == "execution_launch")
    assert execution.estimated_time_minutes == 90
    assert "campaign_setup" in {item.id for item in growth.subgoals}


def test_urgency_rules():
    assert analyze_goal("Boost reach immediately").urgency is Level.CRITICAL
    assert analyze_goal("Boost reach soon").urgency is Level.HIGH
    assert analyze_goal("Boost reach in 10 days").urgency is Level.HIGH
    assert analyze_goal("Boost reach in 3 months").urgency is Level.MEDIUM
    assert analyze_goal("Boost reach in 2 years").urgency is Level.LOW
    assert analyze_goal("Boost reach").urgency is Level.MEDIUM


def test_conversion_without_targets_is_flagged():
    decomposed = decompose_goal("Drive more sales")
    assert "No specific conversion targets defined" in decomposed.risk_factors


def test_explicit_target_metrics_extend_success_metrics():
    decomposed = decompose_goal("Grow our community", target_metrics={"leads": 500})
    assert decomposed.success_metrics[:3] == [
        "Goal completion rate",
        "Time to completion",
        "Resource efficiency",
    ]
    assert decomposed.success_metrics[-1] == "leads: 500"


def test_decomposition_is_deterministic():
    text = "Increase engagement by 15% in 3 weeks"
    assert decompose_goal(text) == decompose_goal(text)


def test_extract_intent_truncates_long_text():
    text = "A" * 80
    assert extract_intent(text) == "A" * 50 + "..."
    assert extract_intent("Generate leads for the spring launch") == "leads"


def test_complexity_thresholds():
    assert assess_complexity(3, 3, 180) is Level.LOW
    assert assess_complexity(4, 3, 180) is Level.MEDIUM
    assert assess_complexity(5, 6, 360) is Level.MEDIUM
    assert assess_complexity(8, 10, 600) is Level.HIGH
    assert assess_complexity(8, 10, 601) is Level.CRITICAL


def test_assignment_cycle_is_rejected():
    assignments = [
        AgentAssignment(id="a", agent_type=AgentType.TREND, phase=1, dependencies=["b"], estimated_duration_minutes=10),
        AgentAssignment(id="b", agent_type=AgentType.INSIGHT, phase=1, dependencies=["a"], estimated_duration_minutes=10),
    ]
    with pytest.raises(PlanValidationError):
        check_assignment_dag(assignments)


def test_assignment_order_follows_dependencies():
    assignments = [
        {"id": "late", "dependencies": ["early"]},
        {"id": "early", "dependencies": ["external_milestone"]},
    ]
    assert check_assignment_dag(assignments) == ["early", "late"]
