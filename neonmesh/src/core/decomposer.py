"""Deterministic goal decomposition.

Turns a free-text marketing goal into subgoals, a phased agent sequence and
a complexity/risk estimate.  Nothing here performs I/O so the whole module
is a pure function of its input text and the lookup tables below.
"""

from __future__ import annotations

import re
from collections import deque
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .errors import PlanValidationError
from .types import (
    AgentAssignment,
    AgentType,
    DecomposedGoal,
    GoalAnalysis,
    GoalCategory,
    Level,
    SubGoal,
    TargetMetric,
)


_NUMERIC_PATTERN = re.compile(r"(\d+)(%|k|million|thousand|x)", re.IGNORECASE)
_TIME_PATTERN = re.compile(r"(\d+)\s*(day|week|month|year)s?", re.IGNORECASE)

_CATEGORY_KEYWORDS: Tuple[Tuple[GoalCategory, Tuple[str, ...]], ...] = (
    (GoalCategory.AWARENESS, ("awareness", "reach", "impressions")),
    (GoalCategory.CONVERSION, ("conversion", "sales", "revenue")),
    (GoalCategory.RETENTION, ("retention", "loyalty", "repeat")),
    (GoalCategory.GROWTH, ("growth", "scale", "expand")),
)

_METRIC_BY_CATEGORY = {
    GoalCategory.CONVERSION: "conversion_rate",
    GoalCategory.ENGAGEMENT: "engagement_rate",
    GoalCategory.AWARENESS: "reach",
    GoalCategory.GROWTH: "revenue",
}

_SKILLS_BY_CATEGORY: Dict[GoalCategory, List[str]] = {
    GoalCategory.AWARENESS: ["content_creation", "social_media", "brand_messaging", "audience_targeting"],
    GoalCategory.ENGAGEMENT: ["content_creation", "community_management", "social_media", "analytics"],
    GoalCategory.CONVERSION: ["ad_optimization", "landing_pages", "funnel_analysis", "copywriting"],
    GoalCategory.RETENTION: ["email_marketing", "customer_support", "personalization", "analytics"],
    GoalCategory.GROWTH: ["paid_acquisition", "seo", "market_expansion", "analytics"],
}

_URGENCY_MULTIPLIER = {
    Level.CRITICAL: 0.7,
    Level.HIGH: 0.8,
    Level.MEDIUM: 1.0,
    Level.LOW: 1.5,
}

_EXECUTION_AGENTS: Dict[GoalCategory, List[AgentType]] = {
    GoalCategory.AWARENESS: [AgentType.SOCIAL_POSTING, AgentType.CONTENT],
    GoalCategory.ENGAGEMENT: [AgentType.SOCIAL_POSTING, AgentType.CONTENT],
    GoalCategory.CONVERSION: [AgentType.AD, AgentType.EMAIL_MARKETING],
    GoalCategory.RETENTION: [AgentType.EMAIL_MARKETING, AgentType.CUSTOMER_SUPPORT],
    GoalCategory.GROWTH: [AgentType.AD, AgentType.SEO, AgentType.SOCIAL_POSTING],
}

_EXECUTION_CAPABILITIES: Dict[GoalCategory, List[str]] = {
    GoalCategory.AWARENESS: ["social_posting", "content_distribution"],
    GoalCategory.ENGAGEMENT: ["social_posting", "community_engagement"],
    GoalCategory.CONVERSION: ["ad_management", "email_campaigns"],
    GoalCategory.RETENTION: ["email_campaigns", "customer_support"],
    GoalCategory.GROWTH: ["ad_management", "seo_optimization", "social_posting"],
}

_PLATFORM_TASKS: Dict[AgentType, List[str]] = {
    AgentType.SOCIAL_POSTING: ["Publish scheduled posts", "Engage with audience responses"],
    AgentType.CONTENT: ["Publish long-form content", "Repurpose assets across channels"],
    AgentType.AD: ["Launch ad campaigns", "Monitor bid performance"],
    AgentType.EMAIL_MARKETING: ["Send campaign emails", "Track open and click rates"],
    AgentType.CUSTOMER_SUPPORT: ["Run retention outreach", "Resolve escalated tickets"],
    AgentType.SEO: ["Publish optimised pages", "Track keyword rankings"],
}

_COMPLEXITY_THRESHOLDS: Tuple[Tuple[Level, int, int, int], ...] = (
    (Level.LOW, 3, 3, 180),
    (Level.MEDIUM, 5, 6, 360),
    (Level.HIGH, 8, 10, 600),
)

_INTENT_PATTERNS = (
    re.compile(r"(?:increase|boost|improve)\s+(.+?)(?:\s+by|\s+to|$)", re.IGNORECASE),
    re.compile(r"(?:generate|create)\s+(.+?)(?:\s+for|\s+in|$)", re.IGNORECASE),
    re.compile(r"(?:launch|start)\s+(.+?)(?:\s+for|\s+in|$)", re.IGNORECASE),
)

DEFAULT_SUCCESS_METRICS = ("Goal completion rate", "Time to completion", "Resource efficiency")


def _classify(text: str) -> GoalCategory:
    lowered = text.lower()
    for category, keywords in _CATEGORY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return category
    return GoalCategory.ENGAGEMENT


def _urgency(text: str, time_units: Sequence[str]) -> Level:
    lowered = text.lower()
    if any(keyword in lowered for keyword in ("urgent", "asap", "immediate")):
        return Level.CRITICAL
    units = {unit.lower() for unit in time_units}
    if "soon" in lowered or units.intersection({"day", "week"}):
        return Level.HIGH
    if "month" in units:
        return Level.MEDIUM
    if "year" in units:
        return Level.LOW
    return Level.MEDIUM


def extract_intent(text: str) -> str:
    for pattern in _INTENT_PATTERNS:
        match = pattern.search(text)
        if match and match.group(1).strip():
            return match.group(1).strip()
    stripped = text.strip()
    if len(stripped) <= 50:
        return stripped
    return stripped[:50] + "..."


def analyze_goal(text: str) -> GoalAnalysis:
    numbers = _NUMERIC_PATTERN.findall(text)
    times = list(_TIME_PATTERN.finditer(text))
    category = _classify(text)
    urgency = _urgency(text, [match.group(2) for match in times])
    timeframe = times[0].group(0) if times else "30 days"
    metric_name = _METRIC_BY_CATEGORY.get(category, "general")
    metrics = [
        TargetMetric(metric=metric_name, target=float(value), unit=unit.lower() or "count", timeframe=timeframe)
        for value, unit in numbers
    ]
    return GoalAnalysis(
        intent=extract_intent(text),
        category=category,
        urgency=urgency,
        target_metrics=metrics,
        required_skills=list(_SKILLS_BY_CATEGORY[category]),
        human_oversight_required=urgency is Level.CRITICAL or category is GoalCategory.CONVERSION,
    )


def generate_subgoals(analysis: GoalAnalysis) -> List[SubGoal]:
    category = analysis.category
    subgoals = [
        SubGoal(
            id="research_analysis",
            title="Market Research & Analysis",
            description=f"Research the market landscape and audience for: {analysis.intent}",
            priority=10,
            estimated_time_minutes=60,
            required_capabilities=["trend_analysis", "market_intelligence", "competitive_research"],
            success_criteria=[
                "Market trends identified",
                "Target audience profiled",
                "Competitor landscape mapped",
                "Opportunities prioritised",
            ],
        ),
        SubGoal(
            id="strategy_development",
            title="Strategy Development",
            description=f"Develop a {category.value} strategy aligned with brand guidelines",
            priority=9,
            estimated_time_minutes=90,
            required_capabilities=["strategic_planning", "brand_alignment"],
            success_criteria=["Strategy approved", "Brand alignment validated", "KPIs defined"],
        ),
    ]
    if category in (GoalCategory.AWARENESS, GoalCategory.ENGAGEMENT):
        subgoals.append(
            SubGoal(
                id="content_strategy",
                title="Content Strategy & Creation",
                description="Plan and produce the content mix for each channel",
                priority=8,
                estimated_time_minutes=120,
                required_capabilities=["content_creation", "visual_design", "copywriting"],
                success_criteria=["Content calendar created", "Assets produced", "Brand voice consistent"],
            )
        )
    if category in (GoalCategory.CONVERSION, GoalCategory.GROWTH):
        subgoals.append(
            SubGoal(
                id="campaign_setup",
                title="Campaign Infrastructure Setup",
                description="Configure campaigns, tracking and conversion funnels",
                priority=8,
                estimated_time_minutes=90,
                required_capabilities=["ad_management", "tracking_setup", "funnel_optimization"],
                success_criteria=["Campaigns configured", "Tracking verified", "Budgets allocated"],
            )
        )
    subgoals.append(
        SubGoal(
            id="execution_launch",
            title="Execution & Launch",
            description="Launch the planned activities across channels",
            priority=7,
            estimated_time_minutes=round(60 * _URGENCY_MULTIPLIER[analysis.urgency]),
            required_capabilities=["campaign_execution", "quality_assurance", *_EXECUTION_CAPABILITIES[category]],
            success_criteria=["All channels live", "Quality checks passed", "Launch metrics captured"],
        )
    )
    subgoals.append(
        SubGoal(
            id="monitoring_optimization",
            title="Monitoring & Optimisation",
            description="Track performance against targets and optimise continuously",
            priority=6,
            estimated_time_minutes=180,
            required_capabilities=["performance_monitoring", "analytics", "optimization"],
            success_criteria=["Dashboards live", "Weekly optimisation cycle", "Targets tracked"],
        )
    )
    return subgoals


def generate_assignments(analysis: GoalAnalysis) -> List[AgentAssignment]:
    category = analysis.category
    assignments = [
        AgentAssignment(
            id="trend_analysis",
            agent_type=AgentType.TREND,
            phase=1,
            tasks=["Analyze market trends", "Identify emerging opportunities"],
            estimated_duration_minutes=30,
            fallback_agents=[AgentType.INSIGHT],
        ),
        AgentAssignment(
            id="insight_generation",
            agent_type=AgentType.INSIGHT,
            phase=1,
            tasks=["Generate audience insights", "Benchmark historical performance"],
            dependencies=["trend_analysis"],
            estimated_duration_minutes=30,
        ),
        AgentAssignment(
            id="brand_validation",
            agent_type=AgentType.BRAND_VOICE,
            phase=2,
            tasks=["Validate brand alignment", "Define messaging guidelines"],
            dependencies=["insight_generation"],
            estimated_duration_minutes=20,
        ),
        AgentAssignment(
            id="strategy_finalization",
            agent_type=AgentType.GOAL_PLANNER,
            phase=2,
            tasks=["Finalize strategic plan", "Allocate resources across phases"],
            dependencies=["brand_validation"],
            estimated_duration_minutes=40,
        ),
    ]
    setup_anchor = "strategy_finalization"
    if category in (GoalCategory.AWARENESS, GoalCategory.ENGAGEMENT):
        assignments.append(
            AgentAssignment(
                id="content_creation",
                agent_type=AgentType.CONTENT,
                phase=3,
                tasks=["Create content concepts", "Write channel copy"],
                dependencies=["strategy_finalization"],
                estimated_duration_minutes=60,
                fallback_agents=[AgentType.DESIGN],
            )
        )
        assignments.append(
            AgentAssignment(
                id="visual_design",
                agent_type=AgentType.DESIGN,
                phase=3,
                tasks=["Design visual assets", "Adapt assets per platform"],
                dependencies=["content_creation"],
                estimated_duration_minutes=45,
            )
        )
        setup_anchor = "visual_design"
    if category is GoalCategory.CONVERSION:
        assignments.append(
            AgentAssignment(
                id="ad_setup",
                agent_type=AgentType.AD,
                phase=4,
                tasks=["Configure ad campaigns", "Set up conversion tracking"],
                dependencies=[setup_anchor],
                estimated_duration_minutes=45,
            )
        )
        assignments.append(
            AgentAssignment(
                id="seo_setup",
                agent_type=AgentType.SEO,
                phase=4,
                tasks=["Optimise landing pages", "Align keywords with ad groups"],
                dependencies=["ad_setup"],
                estimated_duration_minutes=30,
            )
        )
        setup_anchor = "seo_setup"

    previous = setup_anchor
    for agent_type in _EXECUTION_AGENTS[category]:
        assignment_id = f"{agent_type.value}_launch"
        assignments.append(
            AgentAssignment(
                id=assignment_id,
                agent_type=agent_type,
                phase=5,
                tasks=list(_PLATFORM_TASKS.get(agent_type, ["Execute launch tasks"])),
                dependencies=[previous],
                estimated_duration_minutes=30,
            )
        )
        previous = assignment_id
    return assignments


def check_assignment_dag(assignments: Iterable[AgentAssignment | Mapping[str, Any]]) -> List[str]:
    """Return assignment ids in dependency order or raise on a cycle.

    Dependencies that do not name another assignment in the sequence are
    treated as external milestones and ignored for ordering.
    """

    edges: Dict[str, List[str]] = {}
    indegree: Dict[str, int] = {}
    items = [
        (item.id, list(item.dependencies))
        if isinstance(item, AgentAssignment)
        else (str(item.get("id")), list(item.get("dependencies") or []))
        for item in assignments
    ]
    for ident, _ in items:
        if ident in indegree:
            raise PlanValidationError(f"Duplicate agent assignment id: {ident}")
        indegree[ident] = 0
        edges[ident] = []
    for ident, dependencies in items:
        for dependency in dependencies:
            if dependency in indegree:
                edges[dependency].append(ident)
                indegree[ident] += 1

    ready = deque(ident for ident, _ in items if indegree[ident] == 0)
    ordered: List[str] = []
    while ready:
        current = ready.popleft()
        ordered.append(current)
        for follower in edges[current]:
            indegree[follower] -= 1
            if indegree[follower] == 0:
                ready.append(follower)
    if len(ordered) != len(items):
        cyclic = sorted(ident for ident, degree in indegree.items() if degree > 0)
        raise PlanValidationError(f"Agent assignments contain a dependency cycle: {', '.join(cyclic)}")
    return ordered


def assess_complexity(subgoal_count: int, agent_count: int, total_minutes: int) -> Level:
    for level, max_subgoals, max_agents, max_minutes in _COMPLEXITY_THRESHOLDS:
        if subgoal_count <= max_subgoals and agent_count <= max_agents and total_minutes <= max_minutes:
            return level
    return Level.CRITICAL


def identify_risks(analysis: GoalAnalysis, subgoals: Sequence[SubGoal]) -> List[str]:
    risks: List[str] = []
    if analysis.urgency is Level.CRITICAL:
        risks.append("Tight timeline may impact quality")
    if analysis.category is GoalCategory.CONVERSION and not analysis.target_metrics:
        risks.append("No specific conversion targets defined")
    if len(subgoals) > 6:
        risks.append("Complex goal with many dependencies")
    if analysis.human_oversight_required:
        risks.append("Requires human oversight for critical decisions")
    return risks


def decompose_goal(description: str, *, target_metrics: Optional[Mapping[str, Any]] = None) -> DecomposedGoal:
    """Decompose ``description`` into a :class:`DecomposedGoal`.

    ``target_metrics`` supplied by the caller are appended to the success
    metrics alongside the ones detected in the text.
    """

    analysis = analyze_goal(description)
    subgoals = generate_subgoals(analysis)
    assignments = generate_assignments(analysis)
    check_assignment_dag(assignments)

    subgoal_minutes = sum(item.estimated_time_minutes for item in subgoals)
    assignment_minutes = sum(item.estimated_duration_minutes for item in assignments)
    estimated_time = max(subgoal_minutes, assignment_minutes)

    dependencies: List[str] = []
    for assignment in assignments:
        for dependency in assignment.dependencies:
            if dependency not in dependencies:
                dependencies.append(dependency)

    success_metrics = list(DEFAULT_SUCCESS_METRICS)
    for metric in analysis.target_metrics:
        success_metrics.append(f"{metric.metric}: {metric.target:g}{metric.unit} in {metric.timeframe}")
    for name, value in (target_metrics or {}).items():
        success_metrics.append(f"{name}: {value}")

    return DecomposedGoal(
        title=f"Goal: {analysis.intent}",
        description=description,
        analysis=analysis,
        subgoals=subgoals,
        agent_sequence=assignments,
        estimated_time=estimated_time,
        complexity=assess_complexity(len(subgoals), len(assignments), estimated_time),
        risk_factors=identify_risks(analysis, subgoals),
        dependencies=dependencies,
        success_metrics=success_metrics,
    )


__all__ = [
    "DEFAULT_SUCCESS_METRICS",
    "analyze_goal",
    "assess_complexity",
    "check_assignment_dag",
    "decompose_goal",
    "extract_intent",
    "generate_assignments",
    "generate_subgoals",
    "identify_risks",
]
