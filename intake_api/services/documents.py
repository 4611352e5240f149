from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..models.documents import TERMINAL_STATUSES, Document, UploadStatusEnum

logger = logging.getLogger(__name__)

STALE_PENDING_ERROR = "Upload was never confirmed"


class RecordStoreError(RuntimeError):
    """Raised when the document table cannot be read or written."""


class DocumentRecordStore:
    """Durable per-document upload records.

    Every method opens its own short session, so calls are safe to issue from
    the orchestrator's worker threads. A write touches exactly one row except
    for the stale-pending sweep.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def create_pending(
        self,
        owner_email: str,
        filename: str,
        storage_key: str,
        declared_size: Optional[int],
        declared_type: Optional[str],
    ) -> uuid.UUID:
        document = Document(
            id=uuid.uuid4(),
            user_email=owner_email,
            filename=filename,
            s3_key=storage_key,
            file_size=declared_size,
            file_type=declared_type,
            upload_status=UploadStatusEnum.PENDING,
        )
        try:
            with self._session_factory() as db:
                db.add(document)
                db.commit()
        except SQLAlchemyError as exc:
            logger.exception("Failed to create pending document for key %s", storage_key)
            raise RecordStoreError("Failed to create pending document") from exc
        return document.id

    def update_status(
        self,
        document_id: uuid.UUID,
        owner_email: str,
        status: UploadStatusEnum,
        error: Optional[str] = None,
    ) -> bool:
        """Write a terminal status. Returns False when no row matches id and owner."""
        if status not in TERMINAL_STATUSES:
            raise ValueError(f"{status!r} is not a terminal upload status")

        values = {
            "upload_status": status,
            "error": error if status == UploadStatusEnum.FAILED else None,
            "updated_at": datetime.now(timezone.utc),
        }
        try:
            with self._session_factory() as db:
                result = db.execute(
                    update(Document)
                    .where(Document.id == document_id, Document.user_email == owner_email)
                    .values(**values)
                )
                db.commit()
        except SQLAlchemyError as exc:
            logger.exception("Failed to update status for document %s", document_id)
            raise RecordStoreError("Failed to update document status") from exc
        return result.rowcount > 0

    def list_for_owner(self, owner_email: str) -> list[Document]:
        try:
            with self._session_factory() as db:
                rows = db.execute(
                    select(Document)
                    .where(Document.user_email == owner_email)
                    .order_by(Document.created_at.desc())
                )
                return list(rows.scalars())
        except SQLAlchemyError as exc:
            logger.exception("Failed to fetch documents")
            raise RecordStoreError("Failed to fetch documents") from exc

    def expire_stale_pending(self, older_than: timedelta, now: Optional[datetime] = None) -> int:
        """Mark pending records created before ``now - older_than`` as failed."""
        now = now or datetime.now(timezone.utc)
        cutoff = now - older_than
        try:
            with self._session_factory() as db:
                result = db.execute(
                    update(Document)
                    .where(
                        Document.upload_status == UploadStatusEnum.PENDING,
                        Document.created_at < cutoff,
                    )
                    .values(
                        upload_status=UploadStatusEnum.FAILED,
                        error=STALE_PENDING_ERROR,
                        updated_at=now,
                    )
                )
                db.commit()
        except SQLAlchemyError as exc:
            logger.exception("Failed to expire stale pending documents")
            raise RecordStoreError("Failed to expire pending documents") from exc

        expired = result.rowcount or 0
        if expired:
            logger.info("Expired %d stale pending documents older than %s", expired, cutoff.isoformat())
        return expired


def serialize_document(document: Document) -> dict:
    status = document.upload_status
    return {
        "id": str(document.id),
        "user_email": document.user_email,
        "filename": document.filename,
        "s3_key": document.s3_key,
        "file_size": document.file_size,
        "file_type": document.file_type,
        "upload_status": status.value if isinstance(status, UploadStatusEnum) else status,
        "error": document.error,
        "created_at": document.created_at.isoformat() if document.created_at else None,
        "updated_at": document.updated_at.isoformat() if document.updated_at else None,
    }
