"""
Timeline entries shared by transfers and disputes.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from utils.clock import parse_timestamp


@dataclass(frozen=True)
class TimelineEntry:
    """One append-only step in an entity's history."""

    action: str
    performed_by: str
    performed_by_role: str
    timestamp: datetime
    notes: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "notes": self.notes,
            "performed_by": self.performed_by,
            "performed_by_role": self.performed_by_role,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TimelineEntry":
        return cls(
            action=data["action"],
            notes=data.get("notes"),
            performed_by=data["performed_by"],
            performed_by_role=data["performed_by_role"],
            timestamp=parse_timestamp(data["timestamp"]),
        )
