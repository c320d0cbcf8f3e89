"""
Adapter: MinIO Storage Service

Concrete IStorageService over MinIO (S3-compatible API). Pointing it at
real S3 only changes the endpoint and credentials.
"""

import io
import logging
from datetime import datetime, timedelta, timezone

from minio import Minio
from minio.datatypes import PostPolicy
from minio.error import MinioException, S3Error
from minio.sse import SseS3
from urllib3.exceptions import HTTPError as TransportError

from ekyc_documents.core.exceptions import StorageFailure
from ekyc_documents.core.interfaces.storage_service import (
    IStorageService,
    ObjectHead,
    PresignedUpload,
    StoredObject,
)

logger = logging.getLogger(__name__)

MISSING_OBJECT_CODES = {"NoSuchKey", "NoSuchObject", "NotFound", "ResourceNotFound"}
BACKEND_ERRORS = (MinioException, TransportError, OSError, ValueError)


class MinIOStorageService(IStorageService):
    """
    Document storage on MinIO.

    A pre-built `client` may be injected (tests, custom transports);
    otherwise one is created from the connection settings.
    """

    def __init__(
        self,
        endpoint: str,
        access_key: str,
        secret_key: str,
        bucket: str,
        secure: bool = False,
        region: str | None = None,
        server_side_encryption: bool = False,
        client: Minio | None = None,
    ):
        self._bucket = bucket
        self._endpoint = endpoint
        self._secure = secure
        self._sse = SseS3() if server_side_encryption else None
        self._client = client or Minio(
            endpoint,
            access_key=access_key,
            secret_key=secret_key,
            secure=secure,
            region=region,
        )

    @property
    def bucket(self) -> str:
        return self._bucket

    def ensure_bucket(self) -> None:
        """Create the bucket if missing. Called once at startup."""
        try:
            if not self._client.bucket_exists(self._bucket):
                self._client.make_bucket(self._bucket)
                logger.info(f"Created bucket {self._bucket}")
        except BACKEND_ERRORS as e:
            raise StorageFailure(f"Bucket check failed: {e}") from e

    def location_for(self, key: str) -> str:
        scheme = "https" if self._secure else "http"
        return f"{scheme}://{self._endpoint}/{self._bucket}/{key}"

    def put(self, key, data, content_type, metadata=None) -> StoredObject:
        try:
            result = self._client.put_object(
                self._bucket,
                key,
                io.BytesIO(data),
                length=len(data),
                content_type=content_type,
                metadata=metadata or None,
                sse=self._sse,
            )
        except BACKEND_ERRORS as e:
            logger.error(f"Storage write failed for key {key}: {type(e).__name__}")
            raise StorageFailure(f"Failed to upload file to storage: {e}") from e

        logger.info(f"Stored object {key} ({len(data)} bytes, {content_type})")
        return StoredObject(key=key, location=self.location_for(key), etag=result.etag or "")

    def get(self, key: str) -> bytes:
        response = None
        try:
            response = self._client.get_object(self._bucket, key)
            return response.read()
        except BACKEND_ERRORS as e:
            raise StorageFailure(f"Failed to read file from storage: {e}") from e
        finally:
            if response is not None:
                response.close()
                response.release_conn()

    def exists(self, key: str) -> bool:
        try:
            self._client.stat_object(self._bucket, key)
            return True
        except S3Error as e:
            if e.code in MISSING_OBJECT_CODES:
                return False
            raise StorageFailure(f"Failed to check file existence: {e}") from e
        except BACKEND_ERRORS as e:
            raise StorageFailure(f"Failed to check file existence: {e}") from e

    def head(self, key: str) -> ObjectHead:
        try:
            stat = self._client.stat_object(self._bucket, key)
        except BACKEND_ERRORS as e:
            raise StorageFailure(f"Failed to get file metadata: {e}") from e
        return ObjectHead(
            content_type=stat.content_type or "application/octet-stream",
            length=stat.size or 0,
            etag=stat.etag or "",
            last_modified=stat.last_modified,
        )

    def delete(self, key: str) -> None:
        try:
            self._client.remove_object(self._bucket, key)
        except BACKEND_ERRORS as e:
            raise StorageFailure(f"Failed to delete file from storage: {e}") from e
        logger.info(f"Deleted object {key}")

    def presign_upload(self, key, content_type, max_length, expires_seconds=3600) -> PresignedUpload:
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_seconds)
        policy = PostPolicy(self._bucket, expires_at)
        policy.add_equals_condition("key", key)
        policy.add_equals_condition("Content-Type", content_type)
        policy.add_content_length_range_condition(1, max_length)
        try:
            form = self._client.presigned_post_policy(policy)
        except BACKEND_ERRORS as e:
            raise StorageFailure(f"Failed to generate upload URL: {e}") from e

        fields = {"key": key, "Content-Type": content_type, **form}
        scheme = "https" if self._secure else "http"
        return PresignedUpload(
            url=f"{scheme}://{self._endpoint}/{self._bucket}",
            fields=fields,
            expires_at=expires_at,
        )

    def presign_download(self, key: str, expires_seconds: int = 3600) -> str:
        try:
            return self._client.presigned_get_object(
                self._bucket,
                key,
                expires=timedelta(seconds=expires_seconds),
                response_headers={"response-content-disposition": "attachment"},
            )
        except BACKEND_ERRORS as e:
            raise StorageFailure(f"Failed to generate download URL: {e}") from e
