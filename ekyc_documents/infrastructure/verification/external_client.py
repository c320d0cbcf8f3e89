"""
External authenticity service client (verification tier 1).

Submits a time-bounded download URL for the stored document and reads
back an authenticity/tamper verdict. A document is accepted only if the
service says it is authentic AND its quality score is >= min_quality.

A 4xx answer is a definitive rejection. Timeouts, transport errors, 5xx,
unreadable bodies and a document URL that cannot be presigned raise
ProviderUnavailable so the caller can fall back to the next tier.
"""

import logging

import httpx

from ekyc_documents.core.entities.document import DocumentType
from ekyc_documents.core.exceptions import StorageFailure
from ekyc_documents.core.interfaces.storage_service import IStorageService
from ekyc_documents.core.interfaces.verification import IDocumentVerifier, VerificationResult

logger = logging.getLogger(__name__)

VERIFY_PATH = "/v1/documents/verify"


class ProviderUnavailable(Exception):
    """The provider could not give a verdict (retry elsewhere)."""


class ExternalVerificationClient(IDocumentVerifier):
    """Tier 1: remote authenticity/tamper analysis over HTTP."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        storage: IStorageService,
        timeout_seconds: float = 30.0,
        min_quality: float = 0.7,
        url_ttl_seconds: int = 900,
        transport: httpx.BaseTransport | None = None,
    ):
        self._storage = storage
        self._min_quality = min_quality
        self._url_ttl = url_ttl_seconds
        self._http = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers={"Authorization": f"Bearer {api_key}", "Accept": "application/json"},
            timeout=timeout_seconds,
            transport=transport,
        )

    def close(self) -> None:
        self._http.close()

    def verify(self, storage_key: str, document_type: DocumentType | None = None) -> VerificationResult:
        try:
            document_url = self._storage.presign_download(storage_key, self._url_ttl)
        except StorageFailure as e:
            raise ProviderUnavailable(f"could not presign document URL: {e.message}") from e
        payload = {
            "document_url": document_url,
            "document_type": document_type.value if document_type else None,
        }

        try:
            response = self._http.post(VERIFY_PATH, json=payload)
        except httpx.HTTPError as e:
            raise ProviderUnavailable(f"{type(e).__name__}: {e}") from e

        if 400 <= response.status_code < 500:
            body = self._json_or_empty(response)
            reason = body.get("message") or body.get("reason") or (
                f"Verification service rejected the document (HTTP {response.status_code})"
            )
            logger.info(f"Provider rejected {storage_key} with HTTP {response.status_code}")
            return VerificationResult(
                is_valid=False,
                confidence=0.0,
                reason=reason,
                details={"provider_status": response.status_code},
                tier="external",
            )

        if response.status_code >= 500:
            raise ProviderUnavailable(f"provider answered HTTP {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            raise ProviderUnavailable("provider returned an unreadable body") from e
        if not isinstance(body, dict):
            raise ProviderUnavailable("provider returned an unexpected body")

        return self._interpret(body)

    def _interpret(self, body: dict) -> VerificationResult:
        authentic = bool(body.get("authentic", False))
        quality = _as_float(body.get("quality_score"), 0.0)
        confidence = _as_float(body.get("confidence"), quality)
        tampering = bool(body.get("tampering_detected", False))

        is_valid = authentic and not tampering and quality >= self._min_quality
        reason = None
        if not is_valid:
            if tampering:
                reason = "Document shows signs of tampering"
            elif not authentic:
                reason = body.get("reason") or "Document could not be authenticated"
            else:
                reason = f"Document quality too low ({quality:.2f} < {self._min_quality:.2f})"

        return VerificationResult(
            is_valid=is_valid,
            confidence=max(0.0, min(confidence, 1.0)),
            reason=reason,
            details={
                "quality_score": quality,
                "tampering_detected": tampering,
                "extracted_fields": body.get("extracted_fields") or {},
                "provider_reference": body.get("reference"),
            },
            tier="external",
        )

    @staticmethod
    def _json_or_empty(response: httpx.Response) -> dict:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}


def _as_float(value, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default
