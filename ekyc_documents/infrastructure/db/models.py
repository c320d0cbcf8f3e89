"""
Database Models: SQLAlchemy.

Tables:
  - documents: one row per stored KYC document
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, JSON, String, Text
from sqlalchemy.orm import DeclarativeBase

from ekyc_documents.core.entities.document import Document, DocumentStatus, DocumentType


class Base(DeclarativeBase):
    pass


def to_db_time(value: datetime | None) -> datetime | None:
    """Timestamps are stored as naive UTC (SQLite keeps no offset)."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def from_db_time(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def to_db_value(value):
    if isinstance(value, (DocumentStatus, DocumentType)):
        return value.value
    if isinstance(value, datetime):
        return to_db_time(value)
    return value


class DocumentRecord(Base):
    """Stores every accepted upload."""
    __tablename__ = "documents"

    id = Column(String(36), primary_key=True)
    owner_id = Column(String(128), nullable=False, index=True)
    document_type = Column(String(40), nullable=False, index=True)
    storage_key = Column(String(512), unique=True, nullable=False)
    storage_location = Column(String(1024), nullable=False)
    original_name = Column(String(255), nullable=False)
    mime_type = Column(String(100), nullable=False)
    size_bytes = Column(Integer, nullable=False)

    # Lifecycle
    status = Column(String(20), nullable=False, index=True, default=DocumentStatus.UPLOADED.value)
    uploaded_at = Column(DateTime, nullable=False, index=True)
    verified_at = Column(DateTime, nullable=True)
    rejected_at = Column(DateTime, nullable=True)
    rejection_reason = Column(Text, nullable=True)

    processing_metadata = Column(JSON, default=dict)

    # Optimistic concurrency token
    version = Column(Integer, nullable=False, default=1)

    def __repr__(self):
        return f"<Document {self.id} [{self.status}] v{self.version}>"

    @classmethod
    def from_entity(cls, doc: Document) -> "DocumentRecord":
        return cls(
            id=doc.id,
            owner_id=doc.owner_id,
            document_type=doc.document_type.value,
            storage_key=doc.storage_key,
            storage_location=doc.storage_location,
            original_name=doc.original_name,
            mime_type=doc.mime_type,
            size_bytes=doc.size_bytes,
            status=doc.status.value,
            uploaded_at=to_db_time(doc.uploaded_at),
            verified_at=to_db_time(doc.verified_at),
            rejected_at=to_db_time(doc.rejected_at),
            rejection_reason=doc.rejection_reason,
            processing_metadata=dict(doc.processing_metadata or {}),
            version=doc.version,
        )

    def to_entity(self) -> Document:
        return Document(
            id=self.id,
            owner_id=self.owner_id,
            document_type=DocumentType(self.document_type),
            storage_key=self.storage_key,
            storage_location=self.storage_location,
            original_name=self.original_name,
            mime_type=self.mime_type,
            size_bytes=self.size_bytes,
            status=DocumentStatus(self.status),
            uploaded_at=from_db_time(self.uploaded_at),
            verified_at=from_db_time(self.verified_at),
            rejected_at=from_db_time(self.rejected_at),
            rejection_reason=self.rejection_reason,
            processing_metadata=dict(self.processing_metadata or {}),
            version=self.version,
        )
