"""
Contract: Document Repository

Persistence of Document entities. Reads and deletes that take an
`owner_id` must never return or touch another owner's document.
"""

from abc import ABC, abstractmethod

from ekyc_documents.core.entities.document import Document, DocumentStatus, DocumentType


class IDocumentRepository(ABC):
    """Port: Document Repository"""

    @abstractmethod
    def add(self, document: Document) -> Document:
        """Insert a new record; DuplicateDocument if its id or storage key exists."""
        ...

    @abstractmethod
    def get(self, document_id: str, owner_id: str | None = None) -> Document | None:
        """Fetch by id; when `owner_id` is given, only that owner's document."""
        ...

    @abstractmethod
    def get_by_storage_key(self, storage_key: str) -> Document | None:
        ...

    @abstractmethod
    def list_for_owner(
        self,
        owner_id: str,
        document_type: DocumentType | None = None,
        status: DocumentStatus | None = None,
    ) -> list[Document]:
        """Newest first."""
        ...

    @abstractmethod
    def delete(self, document_id: str, owner_id: str) -> bool:
        ...

    @abstractmethod
    def compare_and_set(self, document_id: str, expected_version: int, **changes) -> Document | None:
        """
        Apply `changes` only if the stored version still equals
        `expected_version`; bumps the version. Returns the updated
        document, or None when the version moved (or the row is gone).
        """
        ...

    @abstractmethod
    def stats_for_owner(self, owner_id: str, recent_days: int = 30) -> dict:
        ...
