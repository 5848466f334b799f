"""
Property registration: applications, documents and payments.

Records only. Workflows are imported from their own modules.
"""

from .schema import (
    ALLOWED_MIME_TYPES,
    MAX_FILE_SIZE_BYTES,
    REQUIRED_DOCUMENTS,
    Document,
    DocumentStatus,
    DocumentType,
    Location,
    OwnershipRecord,
    Payment,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
    PropertyApplication,
    PropertyStatus,
    PropertyType,
    VerificationStatus,
)

__all__ = [
    "ALLOWED_MIME_TYPES",
    "MAX_FILE_SIZE_BYTES",
    "REQUIRED_DOCUMENTS",
    "Document",
    "DocumentStatus",
    "DocumentType",
    "Location",
    "OwnershipRecord",
    "Payment",
    "PaymentMethod",
    "PaymentStatus",
    "PaymentType",
    "PropertyApplication",
    "PropertyStatus",
    "PropertyType",
    "VerificationStatus",
]
