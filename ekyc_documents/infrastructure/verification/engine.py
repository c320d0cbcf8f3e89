"""
Verification Engine: the external → basic → mock cascade.

  - Provider enabled and configured: external tier; on ProviderUnavailable,
    the basic tier. If that fails too, VerificationUnavailable.
  - Provider disabled or unconfigured: the mock tier, and only then.
"""

import logging
import time

from ekyc_documents.core.entities.document import DocumentType
from ekyc_documents.core.exceptions import VerificationUnavailable
from ekyc_documents.core.interfaces.verification import IDocumentVerifier, VerificationResult
from ekyc_documents.infrastructure.verification.external_client import ProviderUnavailable

logger = logging.getLogger(__name__)


class VerificationEngine(IDocumentVerifier):

    def __init__(
        self,
        basic: IDocumentVerifier,
        mock: IDocumentVerifier,
        external: IDocumentVerifier | None = None,
    ):
        self._external = external
        self._basic = basic
        self._mock = mock

    @property
    def mode(self) -> str:
        return "external" if self._external is not None else "mock"

    def verify(self, storage_key: str, document_type: DocumentType | None = None) -> VerificationResult:
        t0 = time.perf_counter()
        if self._external is None:
            result = self._mock.verify(storage_key, document_type)
        else:
            result = self._cascade(storage_key, document_type)
        result.details.setdefault("latency_ms", round((time.perf_counter() - t0) * 1000, 2))
        return result

    def _cascade(self, storage_key: str, document_type: DocumentType | None) -> VerificationResult:
        try:
            return self._external.verify(storage_key, document_type)
        except ProviderUnavailable as e:
            logger.warning(f"External verification unavailable for {storage_key}, falling back: {e}")

        try:
            result = self._basic.verify(storage_key, document_type)
        except Exception as e:
            raise VerificationUnavailable(
                f"All verification tiers failed for {storage_key}: {type(e).__name__}"
            ) from e
        result.details["fallback_from"] = "external"
        return result
