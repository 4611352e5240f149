from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import BigInteger, Column, DateTime, Enum as SAEnum, String, Text, Uuid

from .base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UploadStatusEnum(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({UploadStatusEnum.COMPLETED, UploadStatusEnum.FAILED})


class Document(Base):
    __tablename__ = "documents"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_email = Column(String, nullable=False, index=True)  # partition key, not an identity
    filename = Column(String, nullable=False)
    s3_key = Column(String, nullable=False, unique=True)
    file_size = Column(BigInteger, nullable=True)
    file_type = Column(String, nullable=True)
    upload_status = Column(
        SAEnum(
            UploadStatusEnum,
            name="upload_status",
            values_callable=lambda members: [member.value for member in members],
        ),
        nullable=False,
        default=UploadStatusEnum.PENDING,
    )
    error = Column(Text, nullable=True)
    # set client-side so newest-first ordering keeps sub-second precision
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)
