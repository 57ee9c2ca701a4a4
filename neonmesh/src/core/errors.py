"""Exception taxonomy for the reasoning mesh.

Expected outcomes (quorum not met, permission denied, budget exceeded) are
returned as typed results.  The exceptions below cover malformed input and
failures that callers are expected to branch on explicitly.
"""

from __future__ import annotations

from typing import Any, List, Optional


class PlanValidationError(ValueError):
    """A proposed plan is malformed; raised before anything is persisted."""

    def __init__(self, message: str, *, problems: Optional[List[str]] = None) -> None:
        super().__init__(message)
        self.problems = list(problems or [message])


class AvailabilityError(RuntimeError):
    """An agent could not be recruited or is not currently available."""

    def __init__(self, agent_id: str, message: Optional[str] = None) -> None:
        super().__init__(message or f"Agent {agent_id} is not available")
        self.agent_id = agent_id


class EvaluationError(RuntimeError):
    """A single evaluator failed or timed out during a consensus round."""

    def __init__(self, agent_id: str, message: str, *, timed_out: bool = False) -> None:
        super().__init__(message)
        self.agent_id = agent_id
        self.timed_out = timed_out


class WorkflowStepError(RuntimeError):
    """A workflow step exhausted its retries; the whole workflow is aborted."""

    def __init__(self, step_id: str, message: str, *, results: Optional[List[Any]] = None) -> None:
        super().__init__(f"Workflow step {step_id} failed: {message}")
        self.step_id = step_id
        self.results = list(results or [])


class PlannerError(RuntimeError):
    """Raised when a goal is driven through an illegal state transition."""


__all__ = [
    "AvailabilityError",
    "EvaluationError",
    "PlanValidationError",
    "PlannerError",
    "WorkflowStepError",
]
