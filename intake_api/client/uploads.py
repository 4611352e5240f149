from __future__ import annotations

import logging
import mimetypes
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Iterator, Optional, Sequence

import httpx

logger = logging.getLogger(__name__)

ALLOWED_TYPES = (
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
)
MAX_FILE_SIZE = 5 * 1024 * 1024
MAX_FILES = 2
CHUNK_SIZE = 64 * 1024

ProgressCallback = Callable[[dict[str, int]], None]


class DocumentUploadError(Exception):
    """Structured upload failure surfaced to the caller.

    ``filename`` is set when the failure can be attributed to one file.
    ``batch`` is set once slots were issued, so failed files can be retried.
    """

    def __init__(
        self,
        message: str,
        code: str,
        filename: Optional[str] = None,
        batch: Optional["UploadBatch"] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.filename = filename
        self.batch = batch


class FileState(str, Enum):
    QUEUED = "queued"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    FAILED = "failed"


@dataclass
class UploadFile:
    filename: str
    content: bytes
    content_type: str
    last_modified: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    state: FileState = FileState.QUEUED
    progress: int = 0
    error: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.content)

    @classmethod
    def from_path(cls, path: str | Path, content_type: Optional[str] = None) -> "UploadFile":
        path = Path(path)
        guessed, _ = mimetypes.guess_type(path.name)
        stat = path.stat()
        return cls(
            filename=path.name,
            content=path.read_bytes(),
            content_type=content_type or guessed or "application/octet-stream",
            last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
        )


@dataclass
class UploadTarget:
    file: UploadFile
    document_id: str
    presigned_url: str
    storage_key: str


@dataclass
class UploadBatch:
    email: str
    targets: list[UploadTarget]
    confirmations: list[dict[str, Any]] = field(default_factory=list)

    @property
    def failed(self) -> list[UploadTarget]:
        return [target for target in self.targets if target.file.state == FileState.FAILED]


class DocumentUploadClient:
    """Drive request-upload, the direct storage PUT and confirm-upload.

    ``api`` must carry the API base URL, including any configured prefix.
    """

    def __init__(
        self,
        api: httpx.Client,
        storage: Optional[httpx.Client] = None,
        *,
        max_files: int = MAX_FILES,
        max_file_size: int = MAX_FILE_SIZE,
        allowed_types: Sequence[str] = ALLOWED_TYPES,
        max_workers: int = 4,
    ) -> None:
        self._api = api
        self._owns_storage = storage is None
        self._storage = storage if storage is not None else httpx.Client(timeout=httpx.Timeout(60.0, connect=10.0))
        self.max_files = max_files
        self.max_file_size = max_file_size
        self.allowed_types = tuple(allowed_types)
        self.max_workers = max(1, max_workers)

    def close(self) -> None:
        if self._owns_storage:
            self._storage.close()

    def __enter__(self) -> "DocumentUploadClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def validate_files(self, files: Sequence[UploadFile]) -> None:
        if not files:
            raise DocumentUploadError("No files selected", "NO_FILES")
        if len(files) > self.max_files:
            raise DocumentUploadError(f"Maximum {self.max_files} files allowed", "TOO_MANY_FILES")
        for upload in files:
            if upload.content_type not in self.allowed_types:
                raise DocumentUploadError(
                    f"File type not supported: {upload.content_type}. Please upload PDF or DOC files only.",
                    "INVALID_FILE_TYPE",
                    upload.filename,
                )
            if upload.size > self.max_file_size:
                raise DocumentUploadError(
                    f"File size exceeds {self.max_file_size / (1024 * 1024):.0f}MB limit: "
                    f"{upload.size / (1024 * 1024):.2f}MB",
                    "FILE_TOO_LARGE",
                    upload.filename,
                )

    def upload_documents(
        self,
        files: Sequence[UploadFile],
        email: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> UploadBatch:
        """Upload ``files`` for ``email`` and record every outcome server-side.

        Failed transfers are still confirmed as failed before
        ``DocumentUploadError`` is raised, so no record is left pending by a
        transfer error. ``on_progress`` may be called from worker threads.
        """
        self.validate_files(files)

        slots = self._request_slots(files, email)
        batch = UploadBatch(
            email=email,
            targets=[
                UploadTarget(
                    file=upload,
                    document_id=slot["documentId"],
                    presigned_url=slot["presignedUrl"],
                    storage_key=slot["s3Key"],
                )
                for upload, slot in zip(files, slots)
            ],
        )

        self._transfer_all(batch.targets, on_progress)
        self._confirm(batch, batch.targets)
        self._raise_for_failures(batch)
        return batch

    def retry_failed(self, batch: UploadBatch, on_progress: Optional[ProgressCallback] = None) -> UploadBatch:
        targets = batch.failed
        if not targets:
            return batch
        self._transfer_all(targets, on_progress)
        self._confirm(batch, targets)
        self._raise_for_failures(batch)
        return batch

    def get_documents(self, email: str) -> list[dict[str, Any]]:
        try:
            response = self._api.get("/documents", params={"email": email})
            response.raise_for_status()
            return response.json()["documents"]
        except (httpx.HTTPError, KeyError, ValueError) as exc:
            logger.warning("Error fetching documents: %s", exc)
            raise DocumentUploadError("Failed to fetch documents", "FETCH_ERROR") from exc

    def _request_slots(self, files: Sequence[UploadFile], email: str) -> list[dict[str, Any]]:
        payload = {
            "email": email,
            "files": [
                {"filename": upload.filename, "fileType": upload.content_type, "size": upload.size}
                for upload in files
            ],
        }
        try:
            response = self._api.post("/documents/request-upload", json=payload)
            response.raise_for_status()
            uploads = response.json()["uploads"]
        except (httpx.HTTPError, KeyError, ValueError) as exc:
            logger.warning("Error requesting presigned URLs: %s", exc)
            raise DocumentUploadError("Failed to initiate upload", "PRESIGNED_URL_ERROR") from exc

        if len(uploads) != len(files):
            raise DocumentUploadError("Failed to initiate upload", "PRESIGNED_URL_ERROR")
        return uploads

    def _transfer_all(self, targets: Sequence[UploadTarget], on_progress: Optional[ProgressCallback]) -> None:
        with ThreadPoolExecutor(max_workers=min(len(targets), self.max_workers)) as pool:
            list(pool.map(lambda target: self._transfer(target, on_progress), targets))

    def _transfer(self, target: UploadTarget, on_progress: Optional[ProgressCallback]) -> None:
        upload = target.file
        upload.state = FileState.UPLOADING
        upload.error = None

        try:
            self._report(upload, 0, on_progress)
            response = self._storage.put(
                target.presigned_url,
                content=self._body(upload, on_progress),
                headers={"Content-Type": upload.content_type, "Content-Length": str(upload.size)},
            )
            response.raise_for_status()
            upload.state = FileState.UPLOADED
            self._report(upload, 100, on_progress)
        except Exception as exc:
            # every outcome must reach confirm-upload
            logger.warning("Error uploading %s to storage: %s", upload.filename, exc)
            upload.state = FileState.FAILED
            upload.error = "Failed to upload file to storage"

    def _body(self, upload: UploadFile, on_progress: Optional[ProgressCallback]) -> Iterator[bytes]:
        total = upload.size
        sent = 0
        for offset in range(0, total, CHUNK_SIZE):
            chunk = upload.content[offset : offset + CHUNK_SIZE]
            yield chunk
            sent += len(chunk)
            self._report(upload, round(sent * 100 / total), on_progress)

    @staticmethod
    def _report(upload: UploadFile, progress: int, on_progress: Optional[ProgressCallback]) -> None:
        if progress == upload.progress and progress != 0:
            return
        upload.progress = progress
        if on_progress is not None:
            on_progress({upload.filename: progress})

    def _confirm(self, batch: UploadBatch, targets: Sequence[UploadTarget]) -> None:
        documents = []
        for target in targets:
            upload = target.file
            entry: dict[str, Any] = {
                "documentId": target.document_id,
                "s3Key": target.storage_key,
                "status": "success" if upload.state == FileState.UPLOADED else "failed",
                "metadata": {
                    "size": upload.size,
                    "type": upload.content_type,
                    "lastModified": upload.last_modified.isoformat(),
                },
            }
            if upload.state != FileState.UPLOADED:
                entry["error"] = upload.error or "Upload failed"
            documents.append(entry)

        try:
            response = self._api.post("/documents/confirm-upload", json={"email": batch.email, "documents": documents})
            response.raise_for_status()
            batch.confirmations.extend(response.json().get("results", []))
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Error confirming upload: %s", exc)
            raise DocumentUploadError("Failed to confirm upload", "CONFIRMATION_ERROR", batch=batch) from exc

    @staticmethod
    def _raise_for_failures(batch: UploadBatch) -> None:
        failed = batch.failed
        if failed:
            raise DocumentUploadError(
                "Failed to upload file to storage",
                "S3_UPLOAD_ERROR",
                failed[0].file.filename,
                batch=batch,
            )
