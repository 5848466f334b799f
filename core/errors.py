"""
Workflow Error Taxonomy

Every guard or transition failure raises one of these with its specific
kind. Callers (the web layer included) must never collapse them into a
generic failure.
"""

from __future__ import annotations

from typing import Any, Optional


class RegistryError(Exception):
    """Base class for all workflow errors."""

    kind: str = "registry_error"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        data: dict[str, Any] = {"error": self.kind, "detail": self.message}
        data.update(self.context)
        return data


class NotFoundError(RegistryError):
    """Unknown entity id."""

    kind = "not_found"

    def __init__(self, entity_type: str, entity_id: str):
        super().__init__(
            f"{entity_type} {entity_id} not found",
            entity_type=entity_type,
            entity_id=entity_id,
        )


class ForbiddenError(RegistryError):
    """Role or ownership guard failed."""

    kind = "forbidden"


class ValidationError(RegistryError):
    """Missing or malformed required field."""

    kind = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None):
        if field:
            super().__init__(message, field=field)
        else:
            super().__init__(message)
        self.field = field


class InvalidAmountError(ValidationError):
    """Payment amount is non-positive or does not match the computed fee."""

    kind = "invalid_amount"


class ConflictError(RegistryError):
    """Duplicate identity or re-transition of a terminal entity."""

    kind = "conflict"


class PreconditionFailedError(RegistryError):
    """A required condition for the transition does not hold yet."""

    kind = "precondition_failed"

    def __init__(self, message: str, missing: Optional[list[str]] = None):
        missing = list(missing or [])
        super().__init__(message, missing=missing)
        self.missing = missing


class InvalidStateError(RegistryError):
    """Transition is not legal from the entity's current state."""

    kind = "invalid_state"

    def __init__(self, entity_type: str, current: str, target: str, reason: str = ""):
        message = f"{entity_type} cannot move from '{current}' to '{target}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, current_status=current, target_status=target)
        self.current = current
        self.target = target


def require_text(value: Optional[str], field: str, label: Optional[str] = None) -> str:
    """
    Return the stripped value, or raise ValidationError if blank.

    Used for mandatory free-text fields like rejection reasons and notes.
    """
    if value is None or not str(value).strip():
        raise ValidationError(f"{label or field} is required", field=field)
    return str(value).strip()
