from .uploads import (
    DocumentUploadClient,
    DocumentUploadError,
    FileState,
    UploadBatch,
    UploadFile,
    UploadTarget,
)

__all__ = [
    "DocumentUploadClient",
    "DocumentUploadError",
    "FileState",
    "UploadBatch",
    "UploadFile",
    "UploadTarget",
]
