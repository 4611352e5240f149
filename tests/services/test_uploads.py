from __future__ import annotations

import threading
from datetime import datetime, timezone

import pytest

from intake_api.models.documents import UploadStatusEnum
from intake_api.services.documents import DocumentRecordStore, RecordStoreError
from intake_api.services.storage import StorageError, StorageGateway
from intake_api.services.uploads import (
    MISSING_OBJECT_ERROR,
    CompletionReport,
    FileDescriptor,
    UploadOrchestrator,
    UploadRequestError,
    UploadValidationError,
)

from ..conftest import OWNER_EMAIL, fetch_document

FIXED_NOW = datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)


class FakeStorage:
    """In-memory stand-in for the S3 gateway."""

    build_key = staticmethod(StorageGateway.build_key)

    def __init__(self) -> None:
        self.objects: set[str] = set()
        self.unreachable: set[str] = set()
        self.fail_generation = False
        self._lock = threading.Lock()
        self.issued: list[tuple[str, str]] = []

    def generate_upload_url(self, key: str, content_type: str) -> str:
        if self.fail_generation:
            raise StorageError("Failed to generate presigned URL")
        with self._lock:
            self.issued.append((key, content_type))
        return f"https://uploads.example.com/{key}?signature=abc"

    def object_exists(self, key: str) -> bool:
        if key in self.unreachable:
            raise StorageError("Failed to verify uploaded object")
        return key in self.objects


class FlakyRecordStore(DocumentRecordStore):
    def __init__(self, session_factory, failing_ids) -> None:
        super().__init__(session_factory)
        self.failing_ids = set(failing_ids)

    def update_status(self, document_id, owner_email, status, error=None):
        if document_id in self.failing_ids:
            raise RecordStoreError("Failed to update document status")
        return super().update_status(document_id, owner_email, status, error)


@pytest.fixture()
def fake_storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture()
def orchestrator(fake_storage, record_store) -> UploadOrchestrator:
    return UploadOrchestrator(fake_storage, record_store, max_workers=4, clock=lambda: FIXED_NOW)


def _descriptors(*names: str) -> list[FileDescriptor]:
    return [FileDescriptor(filename=name, file_type="application/pdf", size=2048) for name in names]


def _success(slot) -> CompletionReport:
    return CompletionReport(document_id=str(slot.document_id), storage_key=slot.storage_key, status="success")


def test_request_upload_issues_one_slot_per_file(orchestrator, record_store, fake_storage):
    slots = orchestrator.request_upload(OWNER_EMAIL, _descriptors("a.pdf", "b.pdf", "c.pdf"))

    assert len(slots) == 3
    assert len({slot.storage_key for slot in slots}) == 3
    assert all(slot.presigned_url.startswith("https://uploads.example.com/") for slot in slots)
    assert sorted(key for key, _ in fake_storage.issued) == sorted(slot.storage_key for slot in slots)

    documents = record_store.list_for_owner(OWNER_EMAIL)
    assert len(documents) == 3
    assert {document.upload_status for document in documents} == {UploadStatusEnum.PENDING}
    assert {document.s3_key for document in documents} == {slot.storage_key for slot in slots}


def test_request_upload_keeps_duplicate_names_apart(orchestrator):
    slots = orchestrator.request_upload(OWNER_EMAIL, _descriptors("report.pdf", "report.pdf"))
    assert slots[0].storage_key != slots[1].storage_key


def test_request_upload_keeps_descriptor_order(orchestrator):
    slots = orchestrator.request_upload(OWNER_EMAIL, _descriptors("one.pdf", "two.pdf", "three.pdf"))
    assert [slot.storage_key.rsplit("_", 1)[-1] for slot in slots] == ["one.pdf", "two.pdf", "three.pdf"]


@pytest.mark.parametrize(
    ("email", "files", "message"),
    [
        ("", _descriptors("a.pdf"), "Email is required"),
        (None, _descriptors("a.pdf"), "Email is required"),
        (OWNER_EMAIL, [], "No files specified"),
        (OWNER_EMAIL, [FileDescriptor(filename="", file_type="application/pdf")], "Each file requires a filename and fileType"),
    ],
)
def test_request_upload_validation_has_no_side_effects(orchestrator, record_store, fake_storage, email, files, message):
    with pytest.raises(UploadValidationError, match=message):
        orchestrator.request_upload(email, files)

    assert fake_storage.issued == []
    assert record_store.list_for_owner(OWNER_EMAIL) == []


def test_request_upload_fails_whole_batch_on_generation_error(orchestrator, fake_storage):
    fake_storage.fail_generation = True
    with pytest.raises(UploadRequestError, match="Failed to process upload request"):
        orchestrator.request_upload(OWNER_EMAIL, _descriptors("a.pdf", "b.pdf"))


def test_confirm_marks_verified_upload_completed(orchestrator, record_store, session_factory, fake_storage):
    (slot,) = orchestrator.request_upload(OWNER_EMAIL, _descriptors("a.pdf"))
    fake_storage.objects.add(slot.storage_key)

    (result,) = orchestrator.confirm_upload(OWNER_EMAIL, [_success(slot)])

    assert result.recorded is True
    assert result.status == "completed"
    assert fetch_document(session_factory, slot.document_id).upload_status == UploadStatusEnum.COMPLETED


def test_confirm_downgrades_success_without_object(orchestrator, record_store, session_factory):
    (slot,) = orchestrator.request_upload(OWNER_EMAIL, _descriptors("a.pdf"))

    (result,) = orchestrator.confirm_upload(OWNER_EMAIL, [_success(slot)])

    assert result.status == "failed"
    assert result.error == MISSING_OBJECT_ERROR
    document = fetch_document(session_factory, slot.document_id)
    assert document.upload_status == UploadStatusEnum.FAILED
    assert document.error == MISSING_OBJECT_ERROR


def test_confirm_records_client_reported_failure(orchestrator, record_store, session_factory):
    (slot,) = orchestrator.request_upload(OWNER_EMAIL, _descriptors("a.pdf"))
    report = CompletionReport(
        document_id=str(slot.document_id),
        storage_key=slot.storage_key,
        status="failed",
        error="Failed to upload file to storage",
    )

    orchestrator.confirm_upload(OWNER_EMAIL, [report])

    document = fetch_document(session_factory, slot.document_id)
    assert document.upload_status == UploadStatusEnum.FAILED
    assert document.error == "Failed to upload file to storage"


def test_confirm_is_idempotent_for_same_report(orchestrator, record_store, session_factory, fake_storage):
    (slot,) = orchestrator.request_upload(OWNER_EMAIL, _descriptors("a.pdf"))
    fake_storage.objects.add(slot.storage_key)

    first = orchestrator.confirm_upload(OWNER_EMAIL, [_success(slot)])
    second = orchestrator.confirm_upload(OWNER_EMAIL, [_success(slot)])

    assert first[0].status == second[0].status == "completed"
    assert fetch_document(session_factory, slot.document_id).upload_status == UploadStatusEnum.COMPLETED


def test_confirm_leaves_record_pending_when_storage_cannot_answer(orchestrator, record_store, session_factory, fake_storage):
    (slot,) = orchestrator.request_upload(OWNER_EMAIL, _descriptors("a.pdf"))
    fake_storage.unreachable.add(slot.storage_key)

    (result,) = orchestrator.confirm_upload(OWNER_EMAIL, [_success(slot)])

    assert result.recorded is False
    assert fetch_document(session_factory, slot.document_id).upload_status == UploadStatusEnum.PENDING


def test_confirm_isolates_record_store_failures(session_factory, fake_storage):
    store = DocumentRecordStore(session_factory)
    slots = UploadOrchestrator(fake_storage, store, clock=lambda: FIXED_NOW).request_upload(
        OWNER_EMAIL, _descriptors("bad.pdf", "good.pdf")
    )
    for slot in slots:
        fake_storage.objects.add(slot.storage_key)

    flaky = FlakyRecordStore(session_factory, failing_ids={slots[0].document_id})
    results = UploadOrchestrator(fake_storage, flaky).confirm_upload(OWNER_EMAIL, [_success(s) for s in slots])

    assert [result.recorded for result in results] == [False, True]
    assert fetch_document(session_factory, slots[0].document_id).upload_status == UploadStatusEnum.PENDING
    assert fetch_document(session_factory, slots[1].document_id).upload_status == UploadStatusEnum.COMPLETED


def test_confirm_does_not_touch_other_owners_documents(orchestrator, record_store, session_factory, fake_storage):
    (slot,) = orchestrator.request_upload(OWNER_EMAIL, _descriptors("a.pdf"))
    fake_storage.objects.add(slot.storage_key)

    (result,) = orchestrator.confirm_upload("intruder@example.com", [_success(slot)])

    assert result.recorded is False
    assert result.error == "Document not found"
    assert fetch_document(session_factory, slot.document_id).upload_status == UploadStatusEnum.PENDING


def test_confirm_rejects_malformed_ids_without_aborting_batch(orchestrator, record_store, fake_storage):
    (slot,) = orchestrator.request_upload(OWNER_EMAIL, _descriptors("a.pdf"))
    fake_storage.objects.add(slot.storage_key)
    bogus = CompletionReport(document_id="not-a-uuid", storage_key="x", status="success")

    results = orchestrator.confirm_upload(OWNER_EMAIL, [bogus, _success(slot)])

    assert results[0].recorded is False
    assert results[0].error == "Invalid document id"
    assert results[1].recorded is True


@pytest.mark.parametrize(("email", "documents"), [("", None), (OWNER_EMAIL, []), (None, [])])
def test_confirm_validation_writes_nothing(orchestrator, email, documents):
    with pytest.raises(UploadValidationError):
        orchestrator.confirm_upload(email, documents)
