"""Data model for upload jobs and their outcomes."""

from __future__ import annotations

import enum
import os
from dataclasses import dataclass
from pathlib import Path


def display_name_for(path: str | os.PathLike) -> str:
    """Return the name shown in the Photos library for *path* (its base name)."""
    return os.path.basename(os.fspath(path))


@dataclass(frozen=True)
class MediaJob:
    """One local file to upload and attach."""

    path: Path

    @property
    def display_name(self) -> str:
        return display_name_for(self.path)


@dataclass(frozen=True)
class UploadToken:
    """Bytes staged on the Photos service, not yet attached to a library item."""

    display_name: str
    value: str

    def __repr__(self) -> str:
        # token values are long opaque blobs; keep log lines readable
        return f"UploadToken(display_name={self.display_name!r}, value=<{len(self.value)} chars>)"


@dataclass(frozen=True)
class AttachResult:
    """Outcome of a successful batchCreate call."""

    item_id: str
    description: str
    status_code: int


class JobStatus(enum.Enum):
    ATTACHED = "attached"
    UPLOAD_FAILED = "upload_failed"
    ATTACH_EXHAUSTED = "attach_exhausted"


@dataclass(frozen=True)
class JobOutcome:
    """Terminal record for a single job."""

    job: MediaJob
    status: JobStatus
    result: AttachResult | None = None
    error: Exception | None = None
    retries: int = 0

    @property
    def ok(self) -> bool:
        return self.status is JobStatus.ATTACHED


# ── errors ───────────────────────────────────────────────────────────


class UploadError(Exception):
    """Raw-bytes upload failed; terminal for the job."""

    def __init__(self, path: str | os.PathLike, cause: object):
        self.path = Path(path)
        self.cause = cause
        super().__init__(f"Failed to upload bytes for {self.path}: {cause}")


class AttachError(Exception):
    """A single batchCreate attempt failed."""

    def __init__(self, display_name: str, cause: object):
        self.display_name = display_name
        self.cause = cause
        super().__init__(f"Failed to create media item {display_name!r}: {cause}")


class AttachExhaustedError(Exception):
    """Every allowed batchCreate attempt failed for one upload token."""

    def __init__(self, display_name: str, last_error: AttachError, attempts: int):
        self.display_name = display_name
        self.last_error = last_error
        self.attempts = attempts
        super().__init__(
            f"Gave up creating media item {display_name!r} after {attempts} attempt(s): {last_error.cause}"
        )


class QueueClosedError(RuntimeError):
    """Raised on enqueue after close, or on closing a queue twice."""
