"""
Document Repository: CRUD, owner scoping and optimistic updates.

Handles:
  - Storing accepted uploads
  - Owner-scoped reads, listing and deletion
  - Versioned status transitions (compare-and-set)
  - Per-owner statistics
"""

import logging
from datetime import timedelta

from sqlalchemy import desc, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from ekyc_documents.core.entities.document import Document, DocumentStatus, DocumentType, utcnow
from ekyc_documents.core.exceptions import DuplicateDocument
from ekyc_documents.core.interfaces.document_repository import IDocumentRepository
from ekyc_documents.infrastructure.db.database import session_scope
from ekyc_documents.infrastructure.db.models import DocumentRecord, to_db_time, to_db_value

logger = logging.getLogger(__name__)

UPDATABLE_COLUMNS = {
    "status", "verified_at", "rejected_at", "rejection_reason", "processing_metadata",
}


class DocumentRepository(IDocumentRepository):
    """Repository for documents."""

    def __init__(self, session_factory: sessionmaker):
        self._factory = session_factory

    def add(self, document: Document) -> Document:
        """Insert a new record. DuplicateDocument if the id or storage key is taken."""
        try:
            with session_scope(self._factory) as db:
                record = DocumentRecord.from_entity(document)
                db.add(record)
                db.flush()
                saved = record.to_entity()
        except IntegrityError as e:
            raise DuplicateDocument(f"Document for key {document.storage_key} already exists") from e
        logger.info(f"Saved document {saved.id} [{saved.document_type.value}] for owner {saved.owner_id}")
        return saved

    def get(self, document_id: str, owner_id: str | None = None) -> Document | None:
        with session_scope(self._factory) as db:
            query = select(DocumentRecord).where(DocumentRecord.id == document_id)
            if owner_id is not None:
                query = query.where(DocumentRecord.owner_id == owner_id)
            record = db.execute(query).scalar_one_or_none()
            return record.to_entity() if record else None

    def get_by_storage_key(self, storage_key: str) -> Document | None:
        with session_scope(self._factory) as db:
            record = db.execute(
                select(DocumentRecord).where(DocumentRecord.storage_key == storage_key)
            ).scalar_one_or_none()
            return record.to_entity() if record else None

    def list_for_owner(
        self,
        owner_id: str,
        document_type: DocumentType | None = None,
        status: DocumentStatus | None = None,
    ) -> list[Document]:
        with session_scope(self._factory) as db:
            query = select(DocumentRecord).where(DocumentRecord.owner_id == owner_id)
            if document_type is not None:
                query = query.where(DocumentRecord.document_type == document_type.value)
            if status is not None:
                query = query.where(DocumentRecord.status == status.value)
            query = query.order_by(desc(DocumentRecord.uploaded_at), desc(DocumentRecord.id))
            return [r.to_entity() for r in db.execute(query).scalars().all()]

    def delete(self, document_id: str, owner_id: str) -> bool:
        with session_scope(self._factory) as db:
            record = db.execute(
                select(DocumentRecord).where(
                    DocumentRecord.id == document_id,
                    DocumentRecord.owner_id == owner_id,
                )
            ).scalar_one_or_none()
            if record is None:
                return False
            db.delete(record)
            logger.info(f"Deleted document record {document_id}")
            return True

    def compare_and_set(self, document_id: str, expected_version: int, **changes) -> Document | None:
        unknown = set(changes) - UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update columns: {sorted(unknown)}")

        values = {k: to_db_value(v) for k, v in changes.items()}
        values["version"] = expected_version + 1

        with session_scope(self._factory) as db:
            result = db.execute(
                update(DocumentRecord)
                .where(
                    DocumentRecord.id == document_id,
                    DocumentRecord.version == expected_version,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                logger.debug(f"Version conflict on document {document_id} (expected v{expected_version})")
                return None
            record = db.get(DocumentRecord, document_id, populate_existing=True)
            return record.to_entity()

    def stats_for_owner(self, owner_id: str, recent_days: int = 30) -> dict:
        cutoff = to_db_time(utcnow() - timedelta(days=recent_days))
        with session_scope(self._factory) as db:
            owned = DocumentRecord.owner_id == owner_id

            by_status = dict(db.execute(
                select(DocumentRecord.status, func.count()).where(owned).group_by(DocumentRecord.status)
            ).all())
            by_type = dict(db.execute(
                select(DocumentRecord.document_type, func.count()).where(owned).group_by(DocumentRecord.document_type)
            ).all())
            total_size = db.execute(
                select(func.coalesce(func.sum(DocumentRecord.size_bytes), 0)).where(owned)
            ).scalar_one()
            recent = db.execute(
                select(func.count()).where(owned, DocumentRecord.uploaded_at >= cutoff)
            ).scalar_one()

            return {
                "total": sum(by_status.values()),
                "by_status": by_status,
                "by_type": by_type,
                "total_size": int(total_size),
                "recent_uploads": int(recent),
            }
