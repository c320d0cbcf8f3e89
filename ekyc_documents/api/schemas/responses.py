"""
Pydantic schemas: request and response models for the API.

JSON on the wire is camelCase; Python attributes stay snake_case.
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ekyc_documents.core.entities.document import Document, DocumentStatus, DocumentType


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ── Envelope ──

class Envelope(CamelModel):
    success: bool
    message: str
    data: Any | None = None
    error: str | None = None
    timestamp: str = Field(default_factory=now_iso)


def ok(message: str, data: Any = None) -> dict:
    exclude = {"error"} if data is not None else {"error", "data"}
    return Envelope(success=True, message=message, data=data).model_dump(
        mode="json", by_alias=True, exclude=exclude
    )


def fail(message: str, error: str) -> dict:
    return Envelope(success=False, message=message, error=error).model_dump(
        mode="json", by_alias=True, exclude={"data"}
    )


# ── Documents ──

class DocumentSummary(CamelModel):
    id: str
    document_type: DocumentType
    original_name: str
    mime_type: str
    size_bytes: int
    status: DocumentStatus
    uploaded_at: datetime

    @classmethod
    def from_entity(cls, doc: Document) -> "DocumentSummary":
        return cls(
            id=doc.id,
            document_type=doc.document_type,
            original_name=doc.original_name,
            mime_type=doc.mime_type,
            size_bytes=doc.size_bytes,
            status=doc.status,
            uploaded_at=doc.uploaded_at,
        )


class DocumentDetail(DocumentSummary):
    storage_key: str
    verified_at: datetime | None = None
    rejected_at: datetime | None = None
    rejection_reason: str | None = None
    processing_metadata: dict = {}

    @classmethod
    def from_entity(cls, doc: Document) -> "DocumentDetail":
        return cls(
            id=doc.id,
            document_type=doc.document_type,
            original_name=doc.original_name,
            mime_type=doc.mime_type,
            size_bytes=doc.size_bytes,
            status=doc.status,
            uploaded_at=doc.uploaded_at,
            storage_key=doc.storage_key,
            verified_at=doc.verified_at,
            rejected_at=doc.rejected_at,
            rejection_reason=doc.rejection_reason,
            processing_metadata=doc.processing_metadata,
        )


class UploadedDocument(DocumentSummary):
    processing_metadata: dict = {}

    @classmethod
    def from_entity(cls, doc: Document) -> "UploadedDocument":
        base = DocumentSummary.from_entity(doc).model_dump()
        return cls(**base, processing_metadata=doc.processing_metadata)


class StatusUpdateResult(CamelModel):
    id: str
    status: DocumentStatus
    verified_at: datetime | None = None
    rejected_at: datetime | None = None
    rejection_reason: str | None = None


class DownloadLinkResponse(CamelModel):
    download_url: str
    expires_at: datetime


class DirectUploadResponse(CamelModel):
    upload_url: str
    fields: dict
    s3_key: str
    expires_at: datetime


class DocumentStats(CamelModel):
    total: int
    by_status: dict[str, int]
    by_type: dict[str, int]
    total_size: int
    recent_uploads: int


# ── Requests ──

class UploadUrlRequest(CamelModel):
    file_name: str = Field(min_length=1, max_length=255)
    file_type: str = Field(min_length=1)
    document_type: DocumentType


class ConfirmUploadRequest(CamelModel):
    s3_key: str = Field(min_length=1)
    original_name: str = Field(min_length=1, max_length=255)
    document_type: DocumentType
    size: int | None = Field(default=None, ge=0)


class StatusUpdateRequest(CamelModel):
    status: DocumentStatus
    rejection_reason: str | None = Field(default=None, max_length=500)


def dump(model: BaseModel) -> dict:
    return model.model_dump(mode="json", by_alias=True)
