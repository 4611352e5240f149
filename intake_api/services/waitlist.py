from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..models.waitlist import WaitlistEntry

logger = logging.getLogger(__name__)


class WaitlistError(RuntimeError):
    pass


class WaitlistService:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def create_entry(
        self,
        email: str,
        name: str,
        position: Optional[str] = None,
        industry: Optional[str] = None,
        leads_per_week: Optional[int] = None,
        company_size: Optional[str] = None,
        use_case: Optional[str] = None,
    ) -> WaitlistEntry:
        entry = WaitlistEntry(
            email=email.strip().lower(),
            name=name.strip(),
            position=position,
            industry=industry,
            leads_per_week=leads_per_week,
            company_size=company_size,
            use_case=use_case,
        )
        try:
            with self._session_factory() as db:
                db.add(entry)
                db.commit()
        except SQLAlchemyError as exc:
            logger.exception("Error submitting waitlist entry")
            raise WaitlistError("Failed to submit waitlist entry") from exc

        logger.info("Waitlist entry %s created", entry.id)
        return entry

    def list_entries(self) -> list[WaitlistEntry]:
        try:
            with self._session_factory() as db:
                rows = db.execute(select(WaitlistEntry).order_by(WaitlistEntry.created_at.asc()))
                return list(rows.scalars())
        except SQLAlchemyError as exc:
            logger.exception("Error fetching waitlist entries")
            raise WaitlistError("Failed to fetch waitlist entries") from exc


def serialize_entry(entry: WaitlistEntry) -> dict[str, Any]:
    return {
        "id": str(entry.id),
        "email": entry.email,
        "name": entry.name,
        "position": entry.position,
        "industry": entry.industry,
        "leads_per_week": entry.leads_per_week,
        "company_size": entry.company_size,
        "use_case": entry.use_case,
        "created_at": entry.created_at.isoformat() if entry.created_at else None,
    }
