"""
Contract: Document Verification

Decides whether a stored document is authentic. Implementations are the
tiers of the verification cascade (external provider, basic structural
checks, deterministic mock) and the engine that chains them.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from ekyc_documents.core.entities.document import DocumentType


@dataclass
class VerificationResult:
    """Outcome of a verification attempt. Confidence and details are kept on rejection too."""
    is_valid: bool
    confidence: float                       # 0.0 to 1.0
    reason: str | None = None
    details: dict = field(default_factory=dict)   # extracted_fields, quality_score, tampering_detected
    tier: str = ""                          # "external", "basic", "mock"

    def to_dict(self) -> dict:
        return {
            "isValid": self.is_valid,
            "confidence": round(self.confidence, 4),
            "reason": self.reason,
            "tier": self.tier,
            "details": self.details,
        }


class IDocumentVerifier(ABC):
    """
    Port: Document Verifier

    `storage_key` identifies the stored object; implementations fetch or
    presign it as they need.
    """

    @abstractmethod
    def verify(self, storage_key: str, document_type: DocumentType | None = None) -> VerificationResult:
        ...
