from __future__ import annotations

from fastapi import Request

from ..services.documents import DocumentRecordStore
from ..services.uploads import UploadOrchestrator
from ..services.waitlist import WaitlistService


def get_orchestrator(request: Request) -> UploadOrchestrator:
    return request.app.state.orchestrator


def get_record_store(request: Request) -> DocumentRecordStore:
    return request.app.state.record_store


def get_waitlist_service(request: Request) -> WaitlistService:
    return request.app.state.waitlist
