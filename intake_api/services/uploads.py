from __future__ import annotations

import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Sequence

from ..models.documents import UploadStatusEnum
from . import metrics
from .documents import DocumentRecordStore, RecordStoreError
from .storage import StorageError, StorageGateway

logger = logging.getLogger(__name__)

MISSING_OBJECT_ERROR = "File not found in S3"
UNVERIFIED_ERROR = "Could not verify uploaded object"


class UploadValidationError(ValueError):
    """Raised before any side effect when a request is missing required input."""


class UploadRequestError(RuntimeError):
    """Raised when any file in a slot request could not be prepared."""


@dataclass(frozen=True)
class FileDescriptor:
    filename: str
    file_type: str
    size: Optional[int] = None


@dataclass(frozen=True)
class UploadSlot:
    document_id: uuid.UUID
    presigned_url: str
    storage_key: str


@dataclass
class CompletionReport:
    document_id: str
    storage_key: str
    status: str
    error: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ConfirmationResult:
    document_id: str
    status: str
    recorded: bool
    error: Optional[str] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UploadOrchestrator:
    """Two-phase presigned upload protocol.

    ``request_upload`` issues one presigned URL and one pending record per
    file; ``confirm_upload`` re-checks every reported success against storage
    and writes the terminal status. Per-file work runs on a thread pool and
    never shares state between files.
    """

    def __init__(
        self,
        storage: StorageGateway,
        records: DocumentRecordStore,
        *,
        max_workers: int = 8,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.storage = storage
        self.records = records
        self.max_workers = max(1, max_workers)
        self._clock = clock

    def _pool(self, size: int) -> ThreadPoolExecutor:
        return ThreadPoolExecutor(max_workers=min(size, self.max_workers), thread_name_prefix="upload-fanout")

    # --- Request phase ---------------------------------------------------
    def request_upload(self, email: Optional[str], files: Optional[Sequence[FileDescriptor]]) -> list[UploadSlot]:
        if not files:
            raise UploadValidationError("No files specified")
        if not email or not email.strip():
            raise UploadValidationError("Email is required")
        for descriptor in files:
            if not descriptor.filename or not descriptor.file_type:
                raise UploadValidationError("Each file requires a filename and fileType")

        requested_at = self._clock()

        def issue(indexed: tuple[int, FileDescriptor]) -> UploadSlot:
            sequence, descriptor = indexed
            return self._issue_slot(email, requested_at, sequence, descriptor)

        try:
            with self._pool(len(files)) as pool:
                slots = list(pool.map(issue, enumerate(files)))
        except (StorageError, RecordStoreError) as exc:
            metrics.record_request_failed()
            logger.error("Upload request for %d files failed: %s", len(files), exc)
            raise UploadRequestError("Failed to process upload request") from exc

        metrics.record_slots_issued(len(slots))
        logger.info("Issued %d upload slots", len(slots))
        return slots

    def _issue_slot(self, email: str, requested_at: datetime, sequence: int, descriptor: FileDescriptor) -> UploadSlot:
        key = self.storage.build_key(email, descriptor.filename, requested_at, sequence)
        url = self.storage.generate_upload_url(key, descriptor.file_type)
        document_id = self.records.create_pending(
            email,
            descriptor.filename,
            key,
            descriptor.size,
            descriptor.file_type,
        )
        return UploadSlot(document_id=document_id, presigned_url=url, storage_key=key)

    # --- Confirm phase ---------------------------------------------------
    def confirm_upload(
        self, email: Optional[str], documents: Optional[Sequence[CompletionReport]]
    ) -> list[ConfirmationResult]:
        if not email or not email.strip():
            raise UploadValidationError("Email is required")
        if not documents:
            raise UploadValidationError("No documents specified")

        with self._pool(len(documents)) as pool:
            results = list(pool.map(lambda report: self._confirm_safely(email, report), documents))

        unrecorded = sum(1 for result in results if not result.recorded)
        if unrecorded:
            logger.warning("%d of %d confirmations were not recorded", unrecorded, len(results))
        return results

    def _confirm_safely(self, email: str, report: CompletionReport) -> ConfirmationResult:
        try:
            return self._confirm_one(email, report)
        except Exception:
            logger.exception("Unexpected failure confirming document %s", report.document_id)
            metrics.record_confirmation("unrecorded")
            return ConfirmationResult(
                document_id=report.document_id,
                status=UploadStatusEnum.PENDING.value,
                recorded=False,
                error="Failed to record upload status",
            )

    def _confirm_one(self, email: str, report: CompletionReport) -> ConfirmationResult:
        try:
            document_id = uuid.UUID(str(report.document_id))
        except ValueError:
            logger.warning("Rejected confirmation with malformed document id %r", report.document_id)
            metrics.record_confirmation("unrecorded")
            return ConfirmationResult(report.document_id, UploadStatusEnum.PENDING.value, False, "Invalid document id")

        outcome: str
        if report.status == "success":
            try:
                exists = self.storage.object_exists(report.storage_key)
            except StorageError:
                # record stays pending
                metrics.record_confirmation("unrecorded")
                return ConfirmationResult(report.document_id, UploadStatusEnum.PENDING.value, False, UNVERIFIED_ERROR)
            if exists:
                status, error, outcome = UploadStatusEnum.COMPLETED, None, "completed"
            else:
                status, error, outcome = UploadStatusEnum.FAILED, MISSING_OBJECT_ERROR, "downgraded"
        elif report.status == "failed":
            status, error, outcome = UploadStatusEnum.FAILED, report.error or "Upload failed", "failed"
        else:
            metrics.record_confirmation("unrecorded")
            return ConfirmationResult(
                report.document_id, UploadStatusEnum.PENDING.value, False, f"Unknown status {report.status!r}"
            )

        try:
            matched = self.records.update_status(document_id, email, status, error)
        except RecordStoreError as exc:
            logger.error("Could not record %s for document %s: %s", status.value, document_id, exc)
            metrics.record_confirmation("unrecorded")
            return ConfirmationResult(report.document_id, status.value, False, str(exc))

        if not matched:
            logger.warning("No document %s owned by the confirming caller", document_id)
            metrics.record_confirmation("unrecorded")
            return ConfirmationResult(report.document_id, status.value, False, "Document not found")

        metrics.record_confirmation(outcome)
        return ConfirmationResult(report.document_id, status.value, True, error)
