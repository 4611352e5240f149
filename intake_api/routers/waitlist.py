from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, EmailStr, Field

from ..dependencies.services import get_waitlist_service
from ..services.waitlist import WaitlistError, WaitlistService, serialize_entry

router = APIRouter(prefix="/waitlist")


class WaitlistSubmission(BaseModel):
    email: EmailStr
    name: str = Field(..., min_length=1)
    position: Optional[str] = None
    industry: Optional[str] = None
    leads_per_week: Optional[int] = Field(default=None, ge=0)
    company_size: Optional[str] = None
    use_case: Optional[str] = None


@router.post("/submit", status_code=201)
def submit_entry(
    payload: WaitlistSubmission,
    waitlist: WaitlistService = Depends(get_waitlist_service),
) -> Dict[str, Any]:
    try:
        entry = waitlist.create_entry(**payload.model_dump())
    except WaitlistError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return serialize_entry(entry)


@router.get("/entries")
def list_entries(waitlist: WaitlistService = Depends(get_waitlist_service)) -> List[Dict[str, Any]]:
    try:
        entries = waitlist.list_entries()
    except WaitlistError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return [serialize_entry(entry) for entry in entries]
