"""
Composition root: builds every adapter and use case from Settings.

Adapters may be injected (tests, alternative backends); everything else
is constructed from configuration.
"""

import logging
from dataclasses import dataclass

import httpx
from sqlalchemy.engine import Engine

from ekyc_documents.config.settings import Settings
from ekyc_documents.core.interfaces.storage_service import IStorageService
from ekyc_documents.core.use_cases.direct_upload import DirectUploadUseCase
from ekyc_documents.core.use_cases.manage_documents import DocumentAccessUseCase
from ekyc_documents.core.use_cases.upload_document import UploadDocumentUseCase
from ekyc_documents.core.use_cases.verify_document import VerifyDocumentUseCase
from ekyc_documents.infrastructure.db.database import create_db_engine, make_session_factory
from ekyc_documents.infrastructure.db.repository import DocumentRepository
from ekyc_documents.infrastructure.processing.content_processor import ContentProcessor
from ekyc_documents.infrastructure.quality.opencv_quality_gate import OpenCVQualityGate
from ekyc_documents.infrastructure.storage.minio_storage import MinIOStorageService
from ekyc_documents.infrastructure.tasks.verification_pool import VerificationWorkerPool
from ekyc_documents.infrastructure.validation.upload_validator import UploadValidator
from ekyc_documents.infrastructure.verification.basic_verifier import BasicVerifier
from ekyc_documents.infrastructure.verification.engine import VerificationEngine
from ekyc_documents.infrastructure.verification.external_client import ExternalVerificationClient
from ekyc_documents.infrastructure.verification.mock_verifier import MockVerifier

logger = logging.getLogger(__name__)


@dataclass
class Container:
    settings: Settings
    engine: Engine
    repository: DocumentRepository
    storage: IStorageService
    storage_injected: bool
    verifier: VerificationEngine
    external_client: ExternalVerificationClient | None
    upload: UploadDocumentUseCase
    direct_upload: DirectUploadUseCase
    access: DocumentAccessUseCase
    verify: VerifyDocumentUseCase
    pool: VerificationWorkerPool

    def close(self) -> None:
        self.pool.shutdown(wait=True)
        if self.external_client is not None:
            self.external_client.close()
        self.engine.dispose()


def build_container(
    settings: Settings,
    storage: IStorageService | None = None,
    verification_transport: httpx.BaseTransport | None = None,
) -> Container:
    engine = create_db_engine(settings.database_url)
    repository = DocumentRepository(make_session_factory(engine))

    quality_gate = OpenCVQualityGate(
        blur_threshold=settings.blur_threshold,
        brightness_min=settings.brightness_min,
        brightness_max=settings.brightness_max,
        min_resolution=settings.min_resolution,
        min_doc_area_ratio=settings.min_doc_area_ratio,
    )
    validator = UploadValidator(settings.max_file_size, settings.allowed_mime_types)
    processor = ContentProcessor(
        max_upload_size=settings.max_file_size,
        optimization_enabled=settings.enable_image_optimization,
        quality_gate=quality_gate,
    )

    storage_injected = storage is not None
    if storage is None:
        storage = MinIOStorageService(
            endpoint=settings.minio_endpoint,
            access_key=settings.minio_access_key,
            secret_key=settings.minio_secret_key,
            bucket=settings.minio_bucket,
            secure=settings.minio_secure,
            region=settings.minio_region,
            server_side_encryption=settings.storage_server_side_encryption,
        )

    # ── Verification cascade ──
    external = None
    if settings.verification_provider_configured:
        external = ExternalVerificationClient(
            base_url=settings.verification_api_url,
            api_key=settings.verification_api_key,
            storage=storage,
            timeout_seconds=settings.verification_timeout_seconds,
            min_quality=settings.verification_min_quality,
            transport=verification_transport,
        )
    verifier = VerificationEngine(
        basic=BasicVerifier(storage, validator, quality_gate, settings.basic_verification_pass_ratio),
        mock=MockVerifier(),
        external=external,
    )
    logger.info(f"Verification mode: {verifier.mode}")

    verify = VerifyDocumentUseCase(repository, verifier)
    return Container(
        settings=settings,
        engine=engine,
        repository=repository,
        storage=storage,
        storage_injected=storage_injected,
        verifier=verifier,
        external_client=external,
        upload=UploadDocumentUseCase(validator, processor, storage, repository),
        direct_upload=DirectUploadUseCase(
            validator,
            storage,
            repository,
            max_size_bytes=settings.max_file_size,
            allowed_mime_types=settings.allowed_mime_types,
            url_ttl_seconds=settings.presigned_url_expiry,
        ),
        access=DocumentAccessUseCase(repository, storage, settings.presigned_url_expiry),
        verify=verify,
        pool=VerificationWorkerPool(verify.execute, max_workers=settings.verification_workers),
    )
