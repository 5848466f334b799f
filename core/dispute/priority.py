"""
Dispute priority.

Never stored: always derived at read time from the dispute type and age, so
every viewer sees the same value.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Final

from core.dispute.schema import DisputeType, Priority


HIGH_PRIORITY_TYPES: Final[frozenset[DisputeType]] = frozenset(
    {DisputeType.FRAUDULENT_REGISTRATION, DisputeType.OWNERSHIP_DISPUTE}
)
HIGH_AFTER: Final[timedelta] = timedelta(days=30)
MEDIUM_AFTER: Final[timedelta] = timedelta(days=14)


def get_dispute_priority(dispute_type: DisputeType, created_at: datetime, now: datetime) -> Priority:
    """
    Priority for a dispute.

    high: fraudulent registration or ownership dispute, or older than 30 days
    medium: older than 14 days
    low: everything else
    """
    age = now - created_at
    if dispute_type in HIGH_PRIORITY_TYPES or age > HIGH_AFTER:
        return Priority.HIGH
    if age > MEDIUM_AFTER:
        return Priority.MEDIUM
    return Priority.LOW
