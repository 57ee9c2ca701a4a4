"""Approval records exchanged between the command router and reviewers."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..core.clock import utcnow


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApprovalRequest(BaseModel):
    """A command held back by budget gating until a reviewer decides."""

    model_config = ConfigDict(frozen=True)

    id: str
    execution_id: str
    action: str
    budget_impact: float = Field(ge=0.0)
    reason: str
    requested_by: str
    context: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def build(
        cls,
        *,
        execution_id: str,
        action: str,
        budget_impact: float,
        reason: str,
        requested_by: str,
        context: Mapping[str, Any] | None = None,
        ident: Optional[str] = None,
    ) -> "ApprovalRequest":
        return cls(
            id=ident or f"approval_{uuid.uuid4().hex[:12]}",
            execution_id=execution_id,
            action=action,
            budget_impact=float(budget_impact),
            reason=reason,
            requested_by=requested_by,
            context=dict(context or {}),
        )


class ApprovalDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    approval_id: str
    approved: bool
    reviewer: str
    message: Optional[str] = None
    decided_at: datetime = Field(default_factory=utcnow)

    @property
    def status(self) -> ApprovalStatus:
        return ApprovalStatus.APPROVED if self.approved else ApprovalStatus.REJECTED

    @classmethod
    def build(
        cls,
        *,
        approval_id: str,
        approved: bool,
        reviewer: str,
        message: Optional[str] = None,
        decided_at: Optional[datetime] = None,
    ) -> "ApprovalDecision":
        return cls(
            approval_id=approval_id,
            approved=approved,
            reviewer=reviewer,
            message=message,
            decided_at=decided_at or utcnow(),
        )


__all__ = ["ApprovalDecision", "ApprovalRequest", "ApprovalStatus"]
