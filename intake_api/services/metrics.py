from __future__ import annotations

from prometheus_client import Counter

UPLOAD_SLOTS_ISSUED_COUNTER = Counter(
    "intake_upload_slots_issued_total",
    "Presigned upload slots issued",
)

UPLOAD_REQUESTS_FAILED_COUNTER = Counter(
    "intake_upload_requests_failed_total",
    "Upload slot requests that failed as a batch",
)

UPLOAD_CONFIRMATIONS_COUNTER = Counter(
    "intake_upload_confirmations_total",
    "Confirmed documents by outcome",
    ["outcome"],
)


def record_slots_issued(count: int) -> None:
    if count <= 0:
        return
    UPLOAD_SLOTS_ISSUED_COUNTER.inc(count)


def record_request_failed() -> None:
    UPLOAD_REQUESTS_FAILED_COUNTER.inc()


def record_confirmation(outcome: str) -> None:
    """``outcome`` is one of completed, failed, downgraded, unrecorded."""
    UPLOAD_CONFIRMATIONS_COUNTER.labels(outcome=outcome).inc()
