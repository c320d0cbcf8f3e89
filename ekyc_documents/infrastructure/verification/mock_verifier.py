"""
Deterministic mock verifier (verification tier 3).

For environments without a live provider. Never selected while the
provider is enabled and configured.
"""

import hashlib

from ekyc_documents.core.entities.document import DocumentType
from ekyc_documents.core.interfaces.verification import IDocumentVerifier, VerificationResult

MOCK_CONFIDENCE = 0.9


class MockVerifier(IDocumentVerifier):
    """Always accepts; the same key always yields the same reference."""

    def verify(self, storage_key: str, document_type: DocumentType | None = None) -> VerificationResult:
        reference = hashlib.sha256(storage_key.encode("utf-8")).hexdigest()[:16]
        return VerificationResult(
            is_valid=True,
            confidence=MOCK_CONFIDENCE,
            details={
                "mode": "mock",
                "provider_reference": f"mock-{reference}",
                "quality_score": MOCK_CONFIDENCE,
                "tampering_detected": False,
                "extracted_fields": {},
            },
            tier="mock",
        )
