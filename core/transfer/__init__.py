"""
Ownership transfers of approved properties.
"""

from .schema import (
    ComplianceChecks,
    Money,
    RiskLevel,
    Transfer,
    TransferDocument,
    TransferParty,
    TransferStatus,
    TransferType,
)
from .workflow import DocumentDecision, TransferWorkflow

__all__ = [
    "ComplianceChecks",
    "DocumentDecision",
    "Money",
    "RiskLevel",
    "Transfer",
    "TransferDocument",
    "TransferParty",
    "TransferStatus",
    "TransferType",
    "TransferWorkflow",
]
