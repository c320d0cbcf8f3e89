"""
Use Case: Verify Document: the status state machine.

Automatic path:   UPLOADED → PROCESSING → VERIFIED | REJECTED
Manual override:  any status → any status, by an administrator.

Every write is a compare-and-set on the document version, so a duplicate
trigger cannot run verification twice and a racing administrator update
is never overwritten by the automatic path.
"""

import logging
import time

from ekyc_documents.core.entities.document import (
    FAILED_PROCESS_REASON,
    Document,
    DocumentStatus,
    status_fields,
    utcnow,
)
from ekyc_documents.core.exceptions import DocumentServiceError, NotFound, ValidationError
from ekyc_documents.core.interfaces.document_repository import IDocumentRepository
from ekyc_documents.core.interfaces.verification import IDocumentVerifier

logger = logging.getLogger(__name__)

MAX_REASON_LENGTH = 500
MAX_OVERRIDE_ATTEMPTS = 5


class VerifyDocumentUseCase:

    def __init__(self, repository: IDocumentRepository, verifier: IDocumentVerifier):
        self._repo = repository
        self._verifier = verifier

    def execute(self, document_id: str) -> Document | None:
        """
        Run the automatic verification once. Never raises: any failure
        after PROCESSING ends in REJECTED("Verification process failed").
        """
        document = self._repo.get(document_id)
        if document is None:
            logger.warning(f"Verification skipped, document {document_id} no longer exists")
            return None
        if document.status != DocumentStatus.UPLOADED:
            logger.info(
                f"Verification skipped for {document_id}: status is {document.status.value} [stage=verification]"
            )
            return document

        processing = self._repo.compare_and_set(
            document_id, document.version, **status_fields(DocumentStatus.PROCESSING)
        )
        if processing is None:
            logger.info(f"Verification of {document_id} already claimed elsewhere")
            return self._repo.get(document_id)

        logger.info(f"Verification started for {document_id} (owner {processing.owner_id})")
        try:
            return self._verify(processing)
        except Exception as e:
            logger.error(
                f"Verification failed for {document_id} (owner {processing.owner_id}) "
                f"[stage=verification]: {type(e).__name__}: {e}"
            )
            return self._fail(processing)

    def _verify(self, document: Document) -> Document | None:
        t0 = time.perf_counter()
        result = self._verifier.verify(document.storage_key, document.document_type)
        elapsed_ms = round((time.perf_counter() - t0) * 1000, 2)

        status = DocumentStatus.VERIFIED if result.is_valid else DocumentStatus.REJECTED
        metadata = dict(document.processing_metadata)
        metadata["verification"] = result.to_dict()

        final = self._repo.compare_and_set(
            document.id,
            document.version,
            processing_metadata=metadata,
            **status_fields(status, result.reason),
        )
        if final is None:
            logger.warning(
                f"Document {document.id} changed during verification, {status.value} result discarded"
            )
            return self._repo.get(document.id)

        logger.info(
            f"Document {document.id} {status.value} by {result.tier} tier "
            f"(confidence {result.confidence:.2f}, {elapsed_ms} ms)"
        )
        return final

    def _fail(self, document: Document) -> Document | None:
        try:
            failed = self._repo.compare_and_set(
                document.id,
                document.version,
                **status_fields(DocumentStatus.REJECTED, FAILED_PROCESS_REASON),
            )
        except Exception:
            logger.exception(f"Could not record failed verification for {document.id}")
            return None
        if failed is None:
            logger.warning(f"Document {document.id} changed during verification, failure not recorded")
            return self._repo.get(document.id)
        return failed

    # ── Administrative override ──────────────────────────

    def override_status(
        self,
        document_id: str,
        status: DocumentStatus | str,
        reason: str | None = None,
        actor_id: str | None = None,
    ) -> Document:
        """Set any status directly. Always wins over an in-flight automatic run."""
        try:
            target = DocumentStatus(status)
        except ValueError:
            raise ValidationError(f"Invalid document status: {status}", code="INVALID_STATUS") from None

        reason = (reason or "").strip() or None
        if target == DocumentStatus.REJECTED and not reason:
            raise ValidationError("Rejection reason is required when status is REJECTED")
        if reason and len(reason) > MAX_REASON_LENGTH:
            raise ValidationError(f"Rejection reason cannot exceed {MAX_REASON_LENGTH} characters")

        for _ in range(MAX_OVERRIDE_ATTEMPTS):
            current = self._repo.get(document_id)
            if current is None:
                raise NotFound("Document not found")

            metadata = dict(current.processing_metadata)
            metadata["statusOverride"] = {
                "by": actor_id,
                "at": utcnow().isoformat(),
                "from": current.status.value,
                "to": target.value,
            }
            updated = self._repo.compare_and_set(
                document_id,
                current.version,
                processing_metadata=metadata,
                **status_fields(target, reason),
            )
            if updated is not None:
                logger.info(
                    f"Document {document_id} status {current.status.value} -> {target.value} "
                    f"set by {actor_id}"
                )
                return updated

        raise DocumentServiceError(
            f"Document {document_id} is being updated concurrently", code="STATUS_UPDATE_CONFLICT"
        )
