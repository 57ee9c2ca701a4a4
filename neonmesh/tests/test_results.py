from __future__ import annotations

import pytest
from pydantic import ValidationError

from neonmesh.src.core.results import (
    ContentResult,
    GenericResult,
    ReportResult,
    SeoResult,
    capability_for,
    coerce_response,
    parse_agent_result,
)
from neonmesh.src.core.types import AgentType


def test_results_are_keyed_by_agent_capability():
    content = parse_agent_result(AgentType.SOCIAL_POSTING, {"title": "Launch", "body": "We are live"})
    assert isinstance(content, ContentResult)
    assert content.body == "We are live"

    report = parse_agent_result(AgentType.EXECUTIVE, {"report_type": "weekly", "sections": ["kpis"]})
    assert isinstance(report, ReportResult)
    assert capability_for(AgentType.GOAL_PLANNER) == "generic"


def test_generic_results_wrap_unknown_fields():
    result = parse_agent_result(AgentType.CUSTOMER_SUPPORT, {"summary": "resolved", "ticket": 42})
    assert isinstance(result, GenericResult)
    assert result.summary == "resolved"
    assert result.payload == {"ticket": 42}


def test_non_mapping_payloads_become_summaries():
    assert parse_agent_result(AgentType.TREND, "rising interest").summary == "rising interest"
    assert parse_agent_result(AgentType.INSIGHT, None).insights == []


def test_mismatched_capability_is_rejected():
    with pytest.raises(ValueError):
        parse_agent_result(AgentType.SEO, {"capability": "ad"})


def test_invalid_payload_raises_validation_error():
    with pytest.raises(ValidationError):
        parse_agent_result(AgentType.SEO, {"score": 250})
    assert isinstance(parse_agent_result(AgentType.SEO, {"score": 80, "keywords": ["spring"]}), SeoResult)


def test_coerce_response_validates_envelope():
    response = coerce_response({"success": True, "data": {"a": 1}, "confidence": 0.4})
    assert response.success is True
    assert coerce_response(response) is response
    with pytest.raises(ValidationError):
        coerce_response({"data": {}})
