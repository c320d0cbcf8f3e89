"""
Use Case: Document Access

Owner-scoped reads, download links, deletion and statistics. A document
owned by someone else is reported exactly like a missing one.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from ekyc_documents.core.entities.document import Document, DocumentStatus, DocumentType, utcnow
from ekyc_documents.core.exceptions import NotFound
from ekyc_documents.core.interfaces.document_repository import IDocumentRepository
from ekyc_documents.core.interfaces.storage_service import IStorageService

logger = logging.getLogger(__name__)

RECENT_UPLOAD_DAYS = 30


@dataclass
class DownloadLink:
    url: str
    expires_at: datetime


class DocumentAccessUseCase:

    def __init__(self, repository: IDocumentRepository, storage: IStorageService, url_ttl_seconds: int = 3600):
        self._repo = repository
        self._storage = storage
        self._ttl = url_ttl_seconds

    def get(self, owner_id: str, document_id: str) -> Document:
        document = self._repo.get(document_id, owner_id=owner_id)
        if document is None:
            raise NotFound("Document not found")
        return document

    def list_documents(
        self,
        owner_id: str,
        document_type: DocumentType | None = None,
        status: DocumentStatus | None = None,
    ) -> list[Document]:
        return self._repo.list_for_owner(owner_id, document_type=document_type, status=status)

    def download_url(self, owner_id: str, document_id: str) -> DownloadLink:
        document = self.get(owner_id, document_id)
        expires_at = utcnow() + timedelta(seconds=self._ttl)
        url = self._storage.presign_download(document.storage_key, self._ttl)
        logger.info(f"Download link issued for document {document_id} to {owner_id}")
        return DownloadLink(url=url, expires_at=expires_at)

    def delete(self, owner_id: str, document_id: str) -> None:
        """Object first, then the record: a record never outlives its object."""
        document = self.get(owner_id, document_id)
        self._storage.delete(document.storage_key)
        if not self._repo.delete(document_id, owner_id):
            raise NotFound("Document not found")
        logger.info(f"Document {document_id} deleted by {owner_id} (status was {document.status.value})")

    def stats(self, owner_id: str) -> dict:
        return self._repo.stats_for_owner(owner_id, recent_days=RECENT_UPLOAD_DAYS)
