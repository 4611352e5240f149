from __future__ import annotations

import hashlib
import logging
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, ConfigDict, Field

from ..dependencies.services import get_orchestrator, get_record_store
from ..services.documents import DocumentRecordStore, RecordStoreError, serialize_document
from ..services.uploads import (
    CompletionReport,
    FileDescriptor,
    UploadOrchestrator,
    UploadRequestError,
    UploadValidationError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/documents")


class FilePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    filename: str = ""
    file_type: str = Field(default="", alias="fileType")
    size: Optional[int] = Field(default=None, ge=0)


class RequestUploadPayload(BaseModel):
    email: Optional[str] = None
    files: list[FilePayload] = Field(default_factory=list)


class DocumentMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    size: Optional[int] = None
    type: Optional[str] = None
    last_modified: Optional[str] = Field(default=None, alias="lastModified")


class CompletedDocumentPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    document_id: str = Field(alias="documentId")
    s3_key: str = Field(alias="s3Key")
    status: Literal["success", "failed"]
    error: Optional[str] = None
    metadata: DocumentMetadata = Field(default_factory=DocumentMetadata)


class ConfirmUploadPayload(BaseModel):
    email: Optional[str] = None
    documents: list[CompletedDocumentPayload] = Field(default_factory=list)


def _tag_owner(request: Request, email: Optional[str]) -> None:
    if email:
        request.state.owner_id = hashlib.sha256(email.strip().lower().encode()).hexdigest()[:16]


@router.post("/request-upload")
def request_upload(
    payload: RequestUploadPayload,
    request: Request,
    orchestrator: UploadOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    _tag_owner(request, payload.email)
    descriptors = [FileDescriptor(filename=f.filename, file_type=f.file_type, size=f.size) for f in payload.files]
    try:
        slots = orchestrator.request_upload(payload.email, descriptors)
    except UploadValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except UploadRequestError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    return {
        "uploads": [
            {
                "documentId": str(slot.document_id),
                "presignedUrl": slot.presigned_url,
                "s3Key": slot.storage_key,
            }
            for slot in slots
        ]
    }


@router.post("/confirm-upload")
def confirm_upload(
    payload: ConfirmUploadPayload,
    request: Request,
    orchestrator: UploadOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    _tag_owner(request, payload.email)
    reports = [
        CompletionReport(
            document_id=doc.document_id,
            storage_key=doc.s3_key,
            status=doc.status,
            error=doc.error,
            metadata=doc.metadata.model_dump(by_alias=True, exclude_none=True),
        )
        for doc in payload.documents
    ]
    try:
        results = orchestrator.confirm_upload(payload.email, reports)
    except UploadValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return {
        "message": "Upload completion processed successfully",
        "results": [
            {
                "documentId": result.document_id,
                "status": result.status,
                "recorded": result.recorded,
                "error": result.error,
            }
            for result in results
        ],
    }


@router.get("")
def list_documents(
    request: Request,
    email: Optional[str] = Query(default=None),
    records: DocumentRecordStore = Depends(get_record_store),
) -> Dict[str, Any]:
    if not email or not email.strip():
        raise HTTPException(status_code=400, detail="Email is required")
    _tag_owner(request, email)

    try:
        documents = records.list_for_owner(email)
    except RecordStoreError as exc:
        raise HTTPException(status_code=500, detail="Failed to fetch documents") from exc

    return {"documents": [serialize_document(document) for document in documents]}
