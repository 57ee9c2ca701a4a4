from .models import ApprovalDecision, ApprovalRequest, ApprovalStatus
from .server import create_app
from .store import ApprovalTicket, OversightStore

__all__ = [
    "ApprovalDecision",
    "ApprovalRequest",
    "ApprovalStatus",
    "ApprovalTicket",
    "create_app",
    "OversightStore",
]
