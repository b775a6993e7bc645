"""Upload engine – feeds local media through a worker pool that uploads bytes and attaches them to Google Photos."""

from __future__ import annotations

import logging
import os
import threading
import time
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

import requests
from google.auth.exceptions import GoogleAuthError
from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeRemainingColumn,
)

from gphotos_upload.job_queue import DEFAULT_CAPACITY, JobQueue
from gphotos_upload.models import (
    AttachError,
    AttachExhaustedError,
    AttachResult,
    JobOutcome,
    JobStatus,
    MediaJob,
    UploadError,
    UploadToken,
)
from gphotos_upload.photos_client import (
    DEFAULT_TIMEOUT,
    PHOTOS_UPLOAD_URL,
    PhotosLibraryClient,
    new_media_item,
    upload_headers,
)

logger = logging.getLogger(__name__)

DEFAULT_WORKERS = 10
DEFAULT_ATTACH_ATTEMPTS = 4

# How often a blocked producer checks that at least one worker is still alive
_PRODUCER_POLL_INTERVAL = 1.0


# ── retry policy ─────────────────────────────────────────────────────


@dataclass
class RetryPolicy:
    """How many batchCreate attempts a job gets and how long to wait between them.

    The delay before retry *n* (1-based) is ``delay * backoff ** (n - 1)``.
    A zero delay gives the tight retry loop of the original uploader.
    """

    max_attempts: int = DEFAULT_ATTACH_ATTEMPTS
    delay: float = 0.0
    backoff: float = 1.0
    sleep: Callable[[float], None] = time.sleep

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.delay < 0 or self.backoff < 1:
            raise ValueError("delay must be >= 0 and backoff >= 1")

    def delay_for(self, retry: int) -> float:
        return self.delay * self.backoff ** (retry - 1)

    def wait(self, retry: int) -> None:
        seconds = self.delay_for(retry)
        if seconds > 0:
            self.sleep(seconds)


# ── phase 1: upload bytes ────────────────────────────────────────────


def upload_media(
    job: MediaJob,
    session: requests.Session,
    upload_url: str = PHOTOS_UPLOAD_URL,
    timeout: float | None = DEFAULT_TIMEOUT,
) -> UploadToken:
    """Stream the job's file to the uploads endpoint and return the upload token.

    The file is opened here and closed as soon as the request finishes,
    whatever the outcome. The response body is the token, as plain text.
    """
    name = job.display_name
    try:
        with open(job.path, "rb") as fh:
            resp = session.post(
                upload_url,
                headers=upload_headers(name),
                data=fh,
                timeout=timeout,
            )
        resp.raise_for_status()
        token = resp.text
    except (OSError, requests.RequestException, GoogleAuthError) as exc:
        raise UploadError(job.path, exc) from exc

    if not token:
        raise UploadError(job.path, "empty upload token in response")
    return UploadToken(display_name=name, value=token)


# ── phase 2: attach ──────────────────────────────────────────────────


def attach_media(
    token: UploadToken,
    display_name: str,
    library: PhotosLibraryClient,
    strict_item_status: bool = False,
) -> AttachResult:
    """Commit *token* as a new library item described by *display_name*.

    Only the call itself decides success unless *strict_item_status* is set,
    in which case a non-zero embedded status for the item is a failure too.
    """
    try:
        response = library.batch_create([new_media_item(token.value, display_name)])
    except (requests.RequestException, GoogleAuthError, ValueError) as exc:
        raise AttachError(display_name, exc) from exc

    if not response.results:
        raise AttachError(display_name, "batchCreate returned no results")

    entry = response.results[0]
    status = entry.get("status") or {}
    code = status.get("code", 0)
    if code:
        if strict_item_status:
            raise AttachError(display_name, f"item status {code}: {status.get('message', '')}")
        logger.warning(
            "batchCreate succeeded but item %s reports status %s: %s",
            display_name, code, status.get("message", ""),
        )

    media_item = entry.get("mediaItem") or {}
    return AttachResult(
        item_id=media_item.get("id", ""),
        description=media_item.get("description", display_name),
        status_code=response.status_code,
    )


def attach_with_retry(
    token: UploadToken,
    display_name: str,
    library: PhotosLibraryClient,
    policy: RetryPolicy,
    strict_item_status: bool = False,
) -> tuple[AttachResult, int]:
    """Run :func:`attach_media` up to ``policy.max_attempts`` times with the same token.

    Returns the result and the number of retries it took.
    """
    last_error: AttachError | None = None
    for attempt in range(1, policy.max_attempts + 1):
        if attempt > 1:
            policy.wait(attempt - 1)
        try:
            result = attach_media(token, display_name, library, strict_item_status)
        except AttachError as exc:
            last_error = exc
            logger.warning(
                "Attach attempt %d/%d failed for %s: %s",
                attempt, policy.max_attempts, display_name, exc.cause,
            )
            continue
        return result, attempt - 1

    raise AttachExhaustedError(display_name, last_error, policy.max_attempts)


# ── aggregation ──────────────────────────────────────────────────────


@dataclass
class RunResult:
    """Aggregated outcomes of an upload run. Safe to update from worker threads."""

    outcomes: list[JobOutcome] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record(self, outcome: JobOutcome) -> None:
        with self._lock:
            self.outcomes.append(outcome)

    @property
    def succeeded(self) -> list[JobOutcome]:
        return [o for o in self.outcomes if o.ok]

    @property
    def failed(self) -> list[JobOutcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def failed_paths(self) -> list[Path]:
        return [o.job.path for o in self.failed]

    @property
    def all_ok(self) -> bool:
        return not self.failed

    def count(self, status: JobStatus) -> int:
        return sum(1 for o in self.outcomes if o.status is status)

    def summary(self) -> str:
        lines = [
            f"Uploaded    : {len(self.succeeded)}",
            f"Failed      : {len(self.failed)}",
            f"  upload    : {self.count(JobStatus.UPLOAD_FAILED)}",
            f"  attach    : {self.count(JobStatus.ATTACH_EXHAUSTED)}",
        ]
        if self.failed:
            lines.append("\nFailed files:")
            for outcome in self.failed:
                lines.append(f"  - {outcome.job.path}")
        return "\n".join(lines)


# ── engine ───────────────────────────────────────────────────────────


class UploadEngine:
    """Runs a fixed pool of workers over a bounded job queue.

    Each worker loops: take a job, upload its bytes, attach the token (with
    retry), record the outcome. The caller is the single producer.
    """

    def __init__(
        self,
        session: requests.Session,
        library: PhotosLibraryClient,
        workers: int = DEFAULT_WORKERS,
        queue_size: int = DEFAULT_CAPACITY,
        retry_policy: RetryPolicy | None = None,
        upload_attempts: int = 1,
        strict_item_status: bool = False,
        upload_url: str = PHOTOS_UPLOAD_URL,
        timeout: float | None = DEFAULT_TIMEOUT,
        console: Console | None = None,
    ):
        if workers < 1:
            raise ValueError("workers must be at least 1")
        if queue_size < 1:
            raise ValueError("queue_size must be at least 1")
        if upload_attempts < 1:
            raise ValueError("upload_attempts must be at least 1")
        self._session = session
        self._library = library
        self._workers = workers
        self._queue_size = queue_size
        self._retry = retry_policy or RetryPolicy()
        self._upload_attempts = upload_attempts
        self._strict_item_status = strict_item_status
        self._upload_url = upload_url
        self._timeout = timeout
        self._console = console

    @property
    def workers(self) -> int:
        return self._workers

    # ── public API ───────────────────────────────────────────────────

    def run(
        self,
        paths: Iterable[str | os.PathLike],
        result: RunResult | None = None,
    ) -> RunResult:
        """Upload every path and block until all workers have exited.

        Outcomes are recorded into *result* as jobs finish, so a caller that
        passes its own keeps the partial results if the run aborts.
        """
        paths = [Path(p) for p in paths]
        if result is None:
            result = RunResult()
        logger.info("Uploading %d file(s) with %d worker(s).", len(paths), self._workers)

        if self._console:
            progress = Progress(
                SpinnerColumn(),
                TextColumn("[bold blue]{task.description}"),
                BarColumn(),
                MofNCompleteColumn(),
                TimeRemainingColumn(),
                console=self._console,
            )
            with progress:
                task = progress.add_task("Uploading", total=len(paths))

                def on_outcome(outcome: JobOutcome) -> None:
                    progress.advance(task)

                self._run_pool(paths, result, on_outcome)
        else:
            self._run_pool(paths, result, None)

        return result

    def process_job(self, job: MediaJob) -> JobOutcome:
        """Run both phases for one job and return its terminal outcome.

        Never raises: an unexpected error in either phase still ends the job
        with a failed outcome so the worker can move on.
        """
        try:
            token = self._upload_with_retry(job)
        except UploadError as exc:
            return JobOutcome(job, JobStatus.UPLOAD_FAILED, error=exc)
        except Exception as exc:
            logger.debug("Traceback for %s", job.path, exc_info=True)
            return JobOutcome(job, JobStatus.UPLOAD_FAILED, error=UploadError(job.path, exc))

        try:
            attached, retries = attach_with_retry(
                token,
                job.display_name,
                self._library,
                self._retry,
                strict_item_status=self._strict_item_status,
            )
        except AttachExhaustedError as exc:
            return JobOutcome(
                job, JobStatus.ATTACH_EXHAUSTED, error=exc, retries=exc.attempts - 1
            )
        except Exception as exc:
            logger.debug("Traceback for %s", job.path, exc_info=True)
            return JobOutcome(job, JobStatus.ATTACH_EXHAUSTED, error=AttachError(job.display_name, exc))
        return JobOutcome(job, JobStatus.ATTACHED, result=attached, retries=retries)

    # ── pool ─────────────────────────────────────────────────────────

    def _run_pool(
        self,
        paths: list[Path],
        result: RunResult,
        on_outcome: Callable[[JobOutcome], None] | None,
    ) -> None:
        job_queue: JobQueue[MediaJob] = JobQueue(self._queue_size)

        with ThreadPoolExecutor(
            max_workers=self._workers, thread_name_prefix="upload-worker"
        ) as executor:
            futures = [
                executor.submit(self._worker, n, job_queue, result, on_outcome)
                for n in range(1, self._workers + 1)
            ]

            for path in paths:
                job = MediaJob(path)
                while not job_queue.put(job, timeout=_PRODUCER_POLL_INTERVAL):
                    if all(f.done() for f in futures):
                        job_queue.close()
                        raise RuntimeError(
                            "all upload workers exited before the job queue was drained"
                        )
            job_queue.close()

            for future in futures:
                future.result()

    def _worker(
        self,
        worker_id: int,
        job_queue: JobQueue[MediaJob],
        result: RunResult,
        on_outcome: Callable[[JobOutcome], None] | None,
    ) -> int:
        handled = 0
        while True:
            job = job_queue.get()
            if job is None:
                logger.debug("Worker %d done after %d job(s).", worker_id, handled)
                return handled
            outcome = self.process_job(job)
            result.record(outcome)
            self._log_outcome(outcome)
            if on_outcome:
                on_outcome(outcome)
            handled += 1

    def _upload_with_retry(self, job: MediaJob) -> UploadToken:
        # each attempt reopens the file, so a fresh token comes back every time
        attempt = 1
        while True:
            try:
                return upload_media(job, self._session, self._upload_url, self._timeout)
            except UploadError as exc:
                if attempt >= self._upload_attempts:
                    raise
                logger.warning(
                    "Upload attempt %d/%d failed for %s: %s",
                    attempt, self._upload_attempts, job.display_name, exc.cause,
                )
                self._retry.wait(attempt)
                attempt += 1

    @staticmethod
    def _log_outcome(outcome: JobOutcome) -> None:
        name = outcome.job.display_name
        if outcome.status is JobStatus.ATTACHED:
            logger.info(
                "  OK  %s  (id=%s, HTTP %s, retries=%d)",
                name,
                outcome.result.item_id or "<none>",
                outcome.result.status_code,
                outcome.retries,
            )
        elif outcome.status is JobStatus.UPLOAD_FAILED:
            logger.error("  FAIL upload  %s: %s", outcome.job.path, outcome.error)
        else:
            logger.error(
                "  FAIL attach  %s after %d attempt(s): %s",
                outcome.job.path, outcome.retries + 1, outcome.error,
            )
