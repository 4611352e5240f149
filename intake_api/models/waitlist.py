from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String, Text, Uuid

from .base import Base


class WaitlistEntry(Base):
    __tablename__ = "waitlist"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    position = Column(String, nullable=True)
    industry = Column(String, nullable=True)
    leads_per_week = Column(Integer, nullable=True)
    company_size = Column(String, nullable=True)
    use_case = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
