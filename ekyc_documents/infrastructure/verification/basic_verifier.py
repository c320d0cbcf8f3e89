"""
Basic structural verification (verification tier 2).

Re-downloads the stored object and re-runs the upload checks (size, type,
integrity, security). Confidence is the fraction of checks passed; the
document is accepted when that fraction reaches `pass_ratio`.
"""

import logging

from ekyc_documents.core.entities.document import DocumentType
from ekyc_documents.core.interfaces.quality_gate import IQualityGate
from ekyc_documents.core.interfaces.storage_service import IStorageService
from ekyc_documents.core.interfaces.verification import IDocumentVerifier, VerificationResult
from ekyc_documents.infrastructure.validation.upload_validator import UploadValidator, detect_mime_type

logger = logging.getLogger(__name__)


class BasicVerifier(IDocumentVerifier):

    def __init__(
        self,
        storage: IStorageService,
        validator: UploadValidator,
        quality_gate: IQualityGate | None = None,
        pass_ratio: float = 0.75,
    ):
        self._storage = storage
        self._validator = validator
        self._quality_gate = quality_gate
        self._pass_ratio = pass_ratio

    def verify(self, storage_key: str, document_type: DocumentType | None = None) -> VerificationResult:
        data = self._storage.get(storage_key)
        checks = self._validator.run_checks(data)
        passed = sum(1 for c in checks if c.passed)
        confidence = passed / len(checks)

        details: dict = {
            "checks": {c.name: c.passed for c in checks},
            "extracted_fields": {},
            "tampering_detected": None,
        }
        mime = detect_mime_type(data)
        if self._quality_gate is not None and mime and mime.startswith("image/"):
            details["quality_score"] = self._quality_gate.evaluate(data).quality_score

        is_valid = confidence >= self._pass_ratio
        reason = None
        if not is_valid:
            failed = [c.detail or c.name for c in checks if not c.passed]
            reason = "Basic verification failed: " + "; ".join(failed)

        logger.info(f"Basic verification of {storage_key}: {passed}/{len(checks)} checks passed")
        return VerificationResult(
            is_valid=is_valid,
            confidence=confidence,
            reason=reason,
            details=details,
            tier="basic",
        )
