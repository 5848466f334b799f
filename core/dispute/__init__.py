"""
Disputes raised against properties.
"""

from .schema import (
    Dispute,
    DisputeStatus,
    DisputeType,
    Evidence,
    Priority,
    Resolution,
    ResolutionDecision,
)
from .priority import get_dispute_priority
from .workflow import DisputeWorkflow

__all__ = [
    "Dispute",
    "DisputeStatus",
    "DisputeType",
    "DisputeWorkflow",
    "Evidence",
    "Priority",
    "Resolution",
    "ResolutionDecision",
    "get_dispute_priority",
]
