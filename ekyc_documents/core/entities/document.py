"""
Entity: Document

One uploaded KYC file and its verification lifecycle.
Pure model, no framework or database dependency.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class DocumentType(str, Enum):
    ID_CARD = "ID_CARD"
    PASSPORT = "PASSPORT"
    DRIVERS_LICENSE = "DRIVERS_LICENSE"
    BUSINESS_LICENSE = "BUSINESS_LICENSE"
    TAX_CERTIFICATE = "TAX_CERTIFICATE"
    BANK_STATEMENT = "BANK_STATEMENT"
    UTILITY_BILL = "UTILITY_BILL"
    PROOF_OF_ADDRESS = "PROOF_OF_ADDRESS"
    REGISTRATION_CERTIFICATE = "REGISTRATION_CERTIFICATE"
    FINANCIAL_STATEMENT = "FINANCIAL_STATEMENT"
    OTHER = "OTHER"


class DocumentStatus(str, Enum):
    UPLOADED = "UPLOADED"
    PROCESSING = "PROCESSING"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"                 # reserved, set only by an administrator
    PENDING_REVIEW = "PENDING_REVIEW"   # reserved, set only by an administrator


TERMINAL_STATUSES = frozenset({DocumentStatus.VERIFIED, DocumentStatus.REJECTED})

DEFAULT_REJECTION_REASON = "Document verification failed"
FAILED_PROCESS_REASON = "Verification process failed"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def status_fields(
    status: DocumentStatus,
    reason: str | None = None,
    at: datetime | None = None,
) -> dict:
    """
    Column values for moving a document into `status`.

    verified_at is set only for VERIFIED; rejected_at/rejection_reason
    only for REJECTED. Every other status clears all three.
    """
    at = at or utcnow()
    if status == DocumentStatus.VERIFIED:
        return {"status": status, "verified_at": at, "rejected_at": None, "rejection_reason": None}
    if status == DocumentStatus.REJECTED:
        return {
            "status": status,
            "verified_at": None,
            "rejected_at": at,
            "rejection_reason": reason or DEFAULT_REJECTION_REASON,
        }
    return {"status": status, "verified_at": None, "rejected_at": None, "rejection_reason": None}


@dataclass
class Document:
    """Domain entity: Document."""
    id: str
    owner_id: str
    document_type: DocumentType
    storage_key: str                     # {owner_id}/{document_type}/{uuid}.{ext}
    storage_location: str
    original_name: str
    mime_type: str
    size_bytes: int
    status: DocumentStatus = DocumentStatus.UPLOADED
    uploaded_at: datetime = field(default_factory=utcnow)
    verified_at: datetime | None = None
    rejected_at: datetime | None = None
    rejection_reason: str | None = None
    processing_metadata: dict = field(default_factory=dict)
    version: int = 1

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
