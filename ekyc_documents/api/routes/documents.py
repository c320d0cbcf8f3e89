"""
Routes for /documents. Upload, direct upload, read, download, delete,
statistics and the administrative status override.

Validation, processing and storage calls are blocking; they run in a
worker thread so the event loop keeps serving other requests.
Verification is handed to the worker pool after the response is sent.
"""

import asyncio
import logging
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Query, Request, UploadFile, status
from fastapi.responses import JSONResponse

from ekyc_documents.api.auth import CurrentUser, get_current_user, require_admin
from ekyc_documents.api.container import Container
from ekyc_documents.api.schemas.responses import (
    ConfirmUploadRequest,
    DirectUploadResponse,
    DocumentDetail,
    DocumentStats,
    DocumentSummary,
    DownloadLinkResponse,
    StatusUpdateRequest,
    StatusUpdateResult,
    UploadedDocument,
    UploadUrlRequest,
    dump,
    ok,
)
from ekyc_documents.core.entities.document import DocumentStatus, DocumentType
from ekyc_documents.core.exceptions import ValidationError

logger = logging.getLogger(__name__)
router = APIRouter()


def get_container(request: Request) -> Container:
    return request.app.state.container


ContainerDep = Annotated[Container, Depends(get_container)]
UserDep = Annotated[CurrentUser, Depends(get_current_user)]


def schedule_verification(background_tasks: BackgroundTasks, container: Container, document_id: str) -> None:
    if container.settings.enable_document_verification:
        background_tasks.add_task(container.pool.submit, document_id)


def _parse_enum(enum_cls, value: str | None, field: str):
    if value is None or value == "":
        return None
    try:
        return enum_cls(value.strip().upper())
    except ValueError:
        raise ValidationError(f"Invalid {field}: {value}") from None


# ── Upload ──

@router.post("/upload", status_code=status.HTTP_201_CREATED)
async def upload_document(
    background_tasks: BackgroundTasks,
    container: ContainerDep,
    user: UserDep,
    file: Annotated[UploadFile | None, File()] = None,
    document_type: Annotated[str | None, Form(alias="documentType")] = None,
):
    """
    Upload a KYC document (multipart `file` + `documentType`).

    validate → process → store → record. Returns 201 with the document in
    UPLOADED; verification, when enabled, runs afterwards.
    """
    if file is None:
        raise ValidationError("No file uploaded", code="NO_FILE")
    if not document_type:
        raise ValidationError("documentType is required")

    # at most one byte past the limit
    data = await file.read(container.settings.max_file_size + 1)
    document = await asyncio.to_thread(
        container.upload.execute,
        user.id,
        data,
        file.filename,
        document_type,
        file.content_type,
    )
    schedule_verification(background_tasks, container, document.id)
    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content=ok("Document uploaded successfully", dump(UploadedDocument.from_entity(document))),
    )


@router.post("/upload-url")
async def get_upload_url(body: UploadUrlRequest, container: ContainerDep, user: UserDep):
    """Presigned POST for a direct browser upload."""
    ticket = await asyncio.to_thread(
        container.direct_upload.issue_url,
        user.id,
        body.file_name,
        body.file_type,
        body.document_type,
    )
    data = DirectUploadResponse(
        upload_url=ticket.url,
        fields=ticket.fields,
        s3_key=ticket.key,
        expires_at=ticket.expires_at,
    )
    return ok("Upload URL generated successfully", dump(data))


@router.post("/confirm-upload", status_code=status.HTTP_201_CREATED)
async def confirm_upload(
    body: ConfirmUploadRequest,
    background_tasks: BackgroundTasks,
    container: ContainerDep,
    user: UserDep,
):
    """Register a directly uploaded object as a Document."""
    document = await asyncio.to_thread(
        container.direct_upload.confirm,
        user.id,
        body.s3_key,
        body.original_name,
        body.document_type,
        body.size,
    )
    schedule_verification(background_tasks, container, document.id)
    return JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content=ok("Document upload confirmed successfully", dump(UploadedDocument.from_entity(document))),
    )


# ── Read ──

@router.get("")
async def list_documents(
    container: ContainerDep,
    user: UserDep,
    document_type: Annotated[str | None, Query(alias="documentType")] = None,
    doc_status: Annotated[str | None, Query(alias="status")] = None,
):
    """Caller's documents, newest first. Filters: documentType, status."""
    doc_type = _parse_enum(DocumentType, document_type, "document type")
    doc_state = _parse_enum(DocumentStatus, doc_status, "status")
    documents = await asyncio.to_thread(
        container.access.list_documents, user.id, doc_type, doc_state
    )
    return ok(
        "Documents retrieved successfully",
        {
            "documents": [dump(DocumentSummary.from_entity(d)) for d in documents],
            "total": len(documents),
        },
    )


@router.get("/stats")
async def document_stats(container: ContainerDep, user: UserDep):
    stats = await asyncio.to_thread(container.access.stats, user.id)
    return ok("Document statistics retrieved successfully", dump(DocumentStats(**stats)))


@router.get("/{document_id}")
async def get_document(document_id: str, container: ContainerDep, user: UserDep):
    document = await asyncio.to_thread(container.access.get, user.id, document_id)
    return ok("Document retrieved successfully", dump(DocumentDetail.from_entity(document)))


@router.get("/{document_id}/download")
async def download_document(document_id: str, container: ContainerDep, user: UserDep):
    link = await asyncio.to_thread(container.access.download_url, user.id, document_id)
    data = DownloadLinkResponse(download_url=link.url, expires_at=link.expires_at)
    return ok("Download URL generated successfully", dump(data))


# ── Delete ──

@router.delete("/{document_id}")
async def delete_document(document_id: str, container: ContainerDep, user: UserDep):
    await asyncio.to_thread(container.access.delete, user.id, document_id)
    return ok("Document deleted successfully")


# ── Admin ──

@router.put("/{document_id}/status")
async def update_document_status(
    document_id: str,
    body: StatusUpdateRequest,
    container: ContainerDep,
    admin: Annotated[CurrentUser, Depends(require_admin)],
):
    """Manual status transition. Wins over any in-flight automatic verification."""
    document = await asyncio.to_thread(
        container.verify.override_status,
        document_id,
        body.status,
        body.rejection_reason,
        admin.id,
    )
    data = StatusUpdateResult(
        id=document.id,
        status=document.status,
        verified_at=document.verified_at,
        rejected_at=document.rejected_at,
        rejection_reason=document.rejection_reason,
    )
    return ok("Document status updated successfully", dump(data))
