"""
Use Case: Direct Upload

Two steps:
  1. issue_url: a presigned POST bound to one key, one content type and
     a content-length range; the browser uploads straight to storage.
  2. confirm: the client reports the key back; the stored object is
     validated and a Document is created in UPLOADED.

Directly uploaded objects are not re-processed: stored objects are never
rewritten in place.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from ekyc_documents.core.entities.document import Document, DocumentType, utcnow
from ekyc_documents.core.exceptions import DuplicateDocument, FileRejected, ValidationError
from ekyc_documents.core.interfaces.document_repository import IDocumentRepository
from ekyc_documents.core.interfaces.storage_service import IStorageService
from ekyc_documents.core.use_cases.upload_document import (
    build_storage_key,
    checksum,
    extension_for,
    parse_document_type,
    sanitize_filename,
)
from ekyc_documents.infrastructure.validation.upload_validator import UploadValidator

logger = logging.getLogger(__name__)


@dataclass
class DirectUploadTicket:
    url: str
    fields: dict
    key: str
    expires_at: datetime


class DirectUploadUseCase:

    def __init__(
        self,
        validator: UploadValidator,
        storage: IStorageService,
        repository: IDocumentRepository,
        max_size_bytes: int,
        allowed_mime_types: frozenset[str],
        url_ttl_seconds: int = 3600,
    ):
        self._validator = validator
        self._storage = storage
        self._repo = repository
        self._max_size = max_size_bytes
        self._allowed = allowed_mime_types
        self._ttl = url_ttl_seconds

    def issue_url(
        self,
        owner_id: str,
        file_name: str,
        file_type: str,
        document_type: DocumentType | str,
    ) -> DirectUploadTicket:
        doc_type = parse_document_type(document_type)
        content_type = (file_type or "").strip().lower()
        if not content_type:
            raise ValidationError("fileType is required")
        if content_type not in self._allowed:
            raise FileRejected(
                "type",
                f"File type {content_type} is not allowed. Allowed types: {', '.join(sorted(self._allowed))}",
            )

        key = build_storage_key(owner_id, doc_type, extension_for(content_type, sanitize_filename(file_name)))
        presigned = self._storage.presign_upload(key, content_type, self._max_size, self._ttl)
        logger.info(f"Issued direct upload URL for owner {owner_id} [{doc_type.value}]")
        return DirectUploadTicket(
            url=presigned.url,
            fields=presigned.fields,
            key=key,
            expires_at=presigned.expires_at,
        )

    def confirm(
        self,
        owner_id: str,
        storage_key: str,
        original_name: str,
        document_type: DocumentType | str,
        size: int | None = None,
    ) -> Document:
        doc_type = parse_document_type(document_type)
        key = (storage_key or "").strip()
        if not key.startswith(f"{owner_id}/") or ".." in key.split("/"):
            raise ValidationError("Storage key does not belong to the caller", code="INVALID_STORAGE_KEY")
        if self._repo.get_by_storage_key(key) is not None:
            raise ValidationError("Upload has already been confirmed", code="UPLOAD_ALREADY_CONFIRMED")
        if not self._storage.exists(key):
            raise ValidationError("File not found in storage", code="FILE_NOT_FOUND")

        head = self._storage.head(key)
        data = self._storage.get(key)
        validation = self._validator.validate(data, head.content_type, size)
        if not validation.ok:
            logger.info(
                f"Direct upload {key} rejected [stage=validation kind={validation.kind}], removing object"
            )
            self._storage.delete(key)
            raise FileRejected(validation.kind, validation.error)

        name = sanitize_filename(original_name)
        metadata = {
            "originalSize": head.length,
            "processedSize": head.length,
            "dimensions": _dimensions(validation.details),
            "stepsApplied": [],
            "checksum": checksum(data),
            "detectedType": validation.detected_type,
            "directUpload": True,
        }
        document = Document(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            document_type=doc_type,
            storage_key=key,
            storage_location=self._storage.location_for(key),
            original_name=name,
            mime_type=head.content_type,
            size_bytes=head.length,
            uploaded_at=utcnow(),
            processing_metadata=metadata,
        )
        # a racing confirm may already own this object, so it is kept
        try:
            saved = self._repo.add(document)
        except DuplicateDocument:
            logger.info(f"Direct upload {key} was confirmed concurrently")
            raise ValidationError("Upload has already been confirmed", code="UPLOAD_ALREADY_CONFIRMED") from None
        logger.info(f"Document {saved.id} confirmed by {owner_id} [{doc_type.value}, direct upload]")
        return saved


def _dimensions(details: dict) -> dict | None:
    if "width" in details and "height" in details:
        return {"width": details["width"], "height": details["height"]}
    return None
