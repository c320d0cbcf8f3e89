"""
Use Case: Upload Document

Orchestrates: Validator → Processor → Storage → Document record.
The record is created in UPLOADED; verification is scheduled by the
caller after the response is sent.
"""

import hashlib
import logging
import re
import time
import uuid
from pathlib import PurePosixPath

from ekyc_documents.core.entities.document import Document, DocumentType, utcnow
from ekyc_documents.core.exceptions import FileRejected, ValidationError
from ekyc_documents.core.interfaces.document_repository import IDocumentRepository
from ekyc_documents.core.interfaces.storage_service import IStorageService
from ekyc_documents.infrastructure.processing.content_processor import ContentProcessor, ProcessedFile
from ekyc_documents.infrastructure.validation.upload_validator import UploadValidator

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 255

EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/tiff": "tiff",
    "image/bmp": "bmp",
    "application/pdf": "pdf",
}


def sanitize_filename(name: str | None) -> str:
    """Keep letters, digits, dot, dash and underscore; everything else becomes '_'."""
    base = PurePosixPath((name or "").replace("\\", "/")).name
    cleaned = re.sub(r"[^A-Za-z0-9._-]", "_", base)
    cleaned = re.sub(r"_+", "_", cleaned).strip("._")
    if not cleaned:
        cleaned = "document"
    if len(cleaned) > MAX_NAME_LENGTH:
        stem, dot, ext = cleaned.rpartition(".")
        if dot and 0 < len(ext) <= 10:
            cleaned = stem[:MAX_NAME_LENGTH - len(ext) - 1] + "." + ext
        else:
            cleaned = cleaned[:MAX_NAME_LENGTH]
    return cleaned


def extension_for(content_type: str, original_name: str | None = None) -> str:
    ext = EXTENSIONS.get((content_type or "").lower())
    if ext:
        return ext
    suffix = PurePosixPath(original_name or "").suffix.lstrip(".").lower()
    return suffix if suffix.isalnum() and len(suffix) <= 10 else "bin"


def build_storage_key(owner_id: str, document_type: DocumentType, extension: str) -> str:
    """{ownerId}/{documentType}/{uuid}.{ext}"""
    return f"{owner_id}/{document_type.value}/{uuid.uuid4()}.{extension}"


def parse_document_type(value: DocumentType | str | None) -> DocumentType:
    if isinstance(value, DocumentType):
        return value
    if not value:
        raise ValidationError("documentType is required")
    try:
        return DocumentType(str(value).strip().upper())
    except ValueError:
        raise ValidationError(f"Invalid document type: {value}") from None


def checksum(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def persist_with_compensation(
    repository: IDocumentRepository,
    storage: IStorageService,
    document: Document,
) -> Document:
    """Insert the record; if that fails, remove the already stored object."""
    try:
        return repository.add(document)
    except Exception:
        logger.error(
            f"Could not persist document {document.id} (owner {document.owner_id}), "
            f"removing stored object"
        )
        try:
            storage.delete(document.storage_key)
        except Exception as cleanup_error:
            logger.error(
                f"Cleanup of object for document {document.id} failed: {type(cleanup_error).__name__}"
            )
        raise


class UploadDocumentUseCase:
    """
    Use Case: raw bytes in, UPLOADED Document out.

    Dependency Injection: every collaborator comes through the constructor.
    """

    def __init__(
        self,
        validator: UploadValidator,
        processor: ContentProcessor,
        storage: IStorageService,
        repository: IDocumentRepository,
    ):
        self._validator = validator
        self._processor = processor
        self._storage = storage
        self._repo = repository

    def execute(
        self,
        owner_id: str,
        data: bytes,
        original_name: str | None,
        document_type: DocumentType | str,
        declared_mime_type: str | None = None,
    ) -> Document:
        """
        1. Validate: rejected files never reach storage
        2. Process: best effort, original bytes kept on failure
        3. Store the object
        4. Persist the record (object removed if this fails)
        """
        doc_type = parse_document_type(document_type)
        document_id = str(uuid.uuid4())
        name = sanitize_filename(original_name)
        stage_latencies: dict[str, float] = {}

        # ── 1. Validation ────────────────────────────────
        t0 = time.perf_counter()
        validation = self._validator.validate(data, declared_mime_type, len(data))
        stage_latencies["validation_ms"] = round((time.perf_counter() - t0) * 1000, 2)
        if not validation.ok:
            logger.info(
                f"Upload rejected for owner {owner_id} [stage=validation kind={validation.kind}]: "
                f"{validation.error}"
            )
            raise FileRejected(validation.kind, validation.error)

        # ── 2. Processing ────────────────────────────────
        t0 = time.perf_counter()
        processed = self._processor.process(data, doc_type, validation.detected_type)
        stage_latencies["processing_ms"] = round((time.perf_counter() - t0) * 1000, 2)
        if processed.degraded:
            logger.warning(f"Document {document_id} stored unprocessed [stage=processing]")

        # ── 3. Storage ───────────────────────────────────
        uploaded_at = utcnow()
        key = build_storage_key(owner_id, doc_type, extension_for(processed.content_type, name))
        t0 = time.perf_counter()
        stored = self._storage.put(
            key,
            processed.data,
            processed.content_type,
            metadata={"original-name": name, "uploaded-at": uploaded_at.isoformat()},
        )
        stage_latencies["storage_ms"] = round((time.perf_counter() - t0) * 1000, 2)

        # ── 4. Record ────────────────────────────────────
        metadata = build_processing_metadata(len(data), processed, validation.detected_type)
        metadata["stageLatencies"] = stage_latencies
        document = Document(
            id=document_id,
            owner_id=owner_id,
            document_type=doc_type,
            storage_key=stored.key,
            storage_location=stored.location,
            original_name=name,
            mime_type=processed.content_type,
            size_bytes=processed.size_bytes,
            uploaded_at=uploaded_at,
            processing_metadata=metadata,
        )
        saved = persist_with_compensation(self._repo, self._storage, document)
        logger.info(
            f"Document {saved.id} uploaded by {owner_id} [{doc_type.value}, {saved.size_bytes} bytes]"
        )
        return saved


def build_processing_metadata(original_size: int, processed: ProcessedFile, detected_type: str | None) -> dict:
    metadata = {
        "originalSize": original_size,
        "processedSize": processed.size_bytes,
        "dimensions": processed.dimensions,
        "stepsApplied": list(processed.steps_applied),
        "checksum": checksum(processed.data),
        "detectedType": detected_type,
    }
    if processed.quality is not None:
        metadata["qualityScore"] = processed.quality.quality_score
        metadata["qualityReasons"] = list(processed.quality.reasons)
    return metadata
