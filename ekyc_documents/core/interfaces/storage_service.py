"""
Contract: Storage Service

Durable object storage for uploaded documents (MinIO/S3 or any
compatible backend). Objects are written once and never mutated.

Keys follow `{owner_id}/{document_type}/{uuid}.{extension}`.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class StoredObject:
    """Result of a write."""
    key: str
    location: str
    etag: str


@dataclass
class ObjectHead:
    """Object metadata, without the body."""
    content_type: str
    length: int
    etag: str
    last_modified: datetime | None = None


@dataclass
class PresignedUpload:
    """Direct browser upload: POST the form `fields` plus the file to `url`."""
    url: str
    fields: dict[str, str] = field(default_factory=dict)
    expires_at: datetime | None = None


class IStorageService(ABC):
    """
    Port: Storage Service

    Every method raises StorageFailure when the backend is unreachable
    or the operation fails.
    """

    @abstractmethod
    def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> StoredObject:
        """Write `data` under `key`."""
        ...

    @abstractmethod
    def location_for(self, key: str) -> str:
        """Resolvable location of `key` (not a signed URL)."""
        ...

    @abstractmethod
    def get(self, key: str) -> bytes:
        """Read the whole object."""
        ...

    @abstractmethod
    def exists(self, key: str) -> bool:
        ...

    @abstractmethod
    def head(self, key: str) -> ObjectHead:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        ...

    @abstractmethod
    def presign_upload(
        self,
        key: str,
        content_type: str,
        max_length: int,
        expires_seconds: int = 3600,
    ) -> PresignedUpload:
        """
        Time-bounded direct-upload grant.

        The grant pins the exact content type and a content-length range
        of [1, max_length] so the client cannot substitute another file.
        """
        ...

    @abstractmethod
    def presign_download(self, key: str, expires_seconds: int = 3600) -> str:
        """Time-bounded download URL (served as an attachment)."""
        ...
