from .documents import TERMINAL_STATUSES, Document, UploadStatusEnum
from .waitlist import WaitlistEntry

__all__ = [
    "Document",
    "TERMINAL_STATUSES",
    "UploadStatusEnum",
    "WaitlistEntry",
]
