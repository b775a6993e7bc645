"""gphotos_upload – bulk upload of local media to Google Photos."""

from .job_queue import JobQueue
from .models import (
    AttachError,
    AttachExhaustedError,
    AttachResult,
    JobOutcome,
    JobStatus,
    MediaJob,
    QueueClosedError,
    UploadError,
    UploadToken,
)
from .photos_client import PhotosLibraryClient
from .upload_engine import RetryPolicy, RunResult, UploadEngine, attach_media, upload_media

__all__ = [
    "JobQueue",
    "MediaJob",
    "UploadToken",
    "AttachResult",
    "JobStatus",
    "JobOutcome",
    "UploadError",
    "AttachError",
    "AttachExhaustedError",
    "QueueClosedError",
    "PhotosLibraryClient",
    "RetryPolicy",
    "RunResult",
    "UploadEngine",
    "upload_media",
    "attach_media",
]
