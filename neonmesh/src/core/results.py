"""Typed agent results validated at the capability boundary.

Capabilities return loosely shaped payloads.  Before a payload is recorded
or handed to another agent it is validated into one member of the
:data:`AgentResult` union, keyed by the capability that produced it.
"""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from .types import AgentType


class CapabilityResponse(BaseModel):
    """Envelope every capability returns: ``{success, data|error, confidence?}``."""

    success: bool
    data: Any = None
    error: Optional[str] = None
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class _ResultBase(BaseModel):
    model_config = ConfigDict(extra="allow")

    summary: Optional[str] = None


class ContentResult(_ResultBase):
    capability: Literal["content"] = "content"
    title: Optional[str] = None
    body: str = ""
    channel: Optional[str] = None


class SeoResult(_ResultBase):
    capability: Literal["seo"] = "seo"
    keywords: List[str] = Field(default_factory=list)
    score: Optional[float] = Field(default=None, ge=0.0, le=100.0)


class AdResult(_ResultBase):
    capability: Literal["ad"] = "ad"
    platform: Optional[str] = None
    campaign_id: Optional[str] = None
    budget: Optional[float] = Field(default=None, ge=0.0)


class BrandVoiceResult(_ResultBase):
    capability: Literal["brand_voice"] = "brand_voice"
    alignment_score: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    issues: List[str] = Field(default_factory=list)


class TrendResult(_ResultBase):
    capability: Literal["trend"] = "trend"
    trends: List[str] = Field(default_factory=list)
    momentum: Optional[float] = None


class InsightResult(_ResultBase):
    capability: Literal["insight"] = "insight"
    insights: List[str] = Field(default_factory=list)
    metrics: Dict[str, float] = Field(default_factory=dict)


class DesignResult(_ResultBase):
    capability: Literal["design"] = "design"
    assets: List[str] = Field(default_factory=list)


class CampaignResult(_ResultBase):
    capability: Literal["campaign"] = "campaign"
    campaign_id: Optional[str] = None
    status: Optional[str] = None


class ReportResult(_ResultBase):
    capability: Literal["report"] = "report"
    report_type: Optional[str] = None
    sections: List[str] = Field(default_factory=list)


class GenericResult(_ResultBase):
    capability: Literal["generic"] = "generic"
    payload: Dict[str, Any] = Field(default_factory=dict)


AgentResult = Annotated[
    Union[
        ContentResult,
        SeoResult,
        AdResult,
        BrandVoiceResult,
        TrendResult,
        InsightResult,
        DesignResult,
        CampaignResult,
        ReportResult,
        GenericResult,
    ],
    Field(discriminator="capability"),
]

_RESULT_ADAPTER: TypeAdapter[Any] = TypeAdapter(AgentResult)

CAPABILITY_BY_AGENT: Dict[AgentType, str] = {
    AgentType.CONTENT: "content",
    AgentType.SOCIAL_POSTING: "content",
    AgentType.EMAIL_MARKETING: "content",
    AgentType.SEO: "seo",
    AgentType.AD: "ad",
    AgentType.BRAND_VOICE: "brand_voice",
    AgentType.TREND: "trend",
    AgentType.INSIGHT: "insight",
    AgentType.DESIGN: "design",
    AgentType.CAMPAIGN: "campaign",
    AgentType.BOARDROOM: "report",
    AgentType.EXECUTIVE: "report",
}


def capability_for(agent_type: AgentType) -> str:
    return CAPABILITY_BY_AGENT.get(agent_type, "generic")


def parse_agent_result(agent_type: AgentType, data: Any) -> Any:
    """Validate ``data`` into the :data:`AgentResult` member for ``agent_type``.

    Raises :class:`pydantic.ValidationError` when the payload does not match
    and :class:`ValueError` when it claims a different capability.
    """

    capability = capability_for(agent_type)
    if isinstance(data, BaseModel):
        data = data.model_dump()
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        data = {"summary": str(data)}
    payload: Dict[str, Any] = dict(data)
    claimed = payload.setdefault("capability", capability)
    if claimed != capability:
        raise ValueError(f"{agent_type.value} agents produce {capability!r} results, got {claimed!r}")
    if capability == "generic" and "payload" not in payload:
        summary = payload.pop("summary", None)
        payload = {
            "capability": "generic",
            "summary": summary,
            "payload": {key: value for key, value in payload.items() if key != "capability"},
        }
    return _RESULT_ADAPTER.validate_python(payload)


def coerce_response(raw: Any) -> CapabilityResponse:
    if isinstance(raw, CapabilityResponse):
        return raw
    return CapabilityResponse.model_validate(raw)


__all__ = [
    "AdResult",
    "AgentResult",
    "BrandVoiceResult",
    "CAPABILITY_BY_AGENT",
    "CampaignResult",
    "CapabilityResponse",
    "ContentResult",
    "DesignResult",
    "GenericResult",
    "InsightResult",
    "ReportResult",
    "SeoResult",
    "TrendResult",
    "capability_for",
    "coerce_response",
    "parse_agent_result",
]
