"""CLI entry point for bulk uploads of local media to Google Photos."""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time
from datetime import datetime
from pathlib import Path

from dotenv import load_dotenv
from google.auth.exceptions import GoogleAuthError
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from gphotos_upload.auth import (
    DEFAULT_CREDENTIALS_FILE,
    DEFAULT_TOKEN_FILE,
    AuthenticationError,
    authenticate,
    authorized_session,
)
from gphotos_upload.discovery import SUPPORTED_EXTENSIONS, find_media, parse_extensions
from gphotos_upload.job_queue import DEFAULT_CAPACITY
from gphotos_upload.photos_client import PhotosLibraryClient
from gphotos_upload.upload_engine import (
    DEFAULT_ATTACH_ATTEMPTS,
    DEFAULT_WORKERS,
    RetryPolicy,
    RunResult,
    UploadEngine,
)

LOG_DIR = "logs"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gphotos-upload",
        description="Upload local photos and videos to Google Photos with a pool of parallel workers.",
    )
    parser.add_argument(
        "paths",
        nargs="*",
        default=[os.getenv("GPHOTOS_SOURCE_DIR", ".")],
        help="Files or directories to upload (default: current directory)",
    )
    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=int(os.getenv("GPHOTOS_WORKERS", DEFAULT_WORKERS)),
        help=f"Parallel upload workers (default: {DEFAULT_WORKERS})",
    )
    parser.add_argument(
        "--queue-size",
        type=int,
        default=DEFAULT_CAPACITY,
        help=f"Pending jobs buffered ahead of the workers (default: {DEFAULT_CAPACITY})",
    )
    parser.add_argument(
        "--attach-attempts",
        type=int,
        default=DEFAULT_ATTACH_ATTEMPTS,
        help=f"batchCreate attempts per file, first try included (default: {DEFAULT_ATTACH_ATTEMPTS})",
    )
    parser.add_argument(
        "--retry-delay",
        type=float,
        default=0.0,
        help="Seconds to wait before the first retry (default: 0, retry immediately)",
    )
    parser.add_argument(
        "--retry-backoff",
        type=float,
        default=1.0,
        help="Multiplier applied to the delay on each further retry (default: 1.0)",
    )
    parser.add_argument(
        "--upload-attempts",
        type=int,
        default=1,
        help="Raw upload attempts per file; each retry reopens the file (default: 1, no retry)",
    )
    parser.add_argument(
        "--extensions",
        type=parse_extensions,
        default=SUPPORTED_EXTENSIONS,
        help="Comma-separated file extensions to upload (default: common photo and video types)",
    )
    parser.add_argument(
        "--no-recursive",
        action="store_true",
        help="Do not descend into subdirectories",
    )
    parser.add_argument(
        "--credentials-file",
        default=os.getenv("GOOGLE_CREDENTIALS_FILE", DEFAULT_CREDENTIALS_FILE),
        help="OAuth client secrets JSON (ignored when GPHOTOS_CLIENTID/GPHOTOS_CLIENTSECRET are set)",
    )
    parser.add_argument(
        "--token-file",
        default=os.getenv("GPHOTOS_TOKEN_FILE", DEFAULT_TOKEN_FILE),
        help=f"Cached OAuth token (default: {DEFAULT_TOKEN_FILE})",
    )
    parser.add_argument(
        "--strict-item-status",
        action="store_true",
        help="Treat a failed per-item status inside a successful batchCreate response as a failure",
    )
    parser.add_argument(
        "--failed-list",
        metavar="FILE",
        help="Write the paths of failed files to FILE, one per line, for a follow-up run",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable colored output and progress bars",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List files that would be uploaded without uploading",
    )
    return parser


def _setup_logging(
    verbose: bool,
    console: Console,
    log_filename: str,
) -> None:
    """Configure dual logging: rich console + plain-text log file."""
    log_level = logging.DEBUG if verbose else logging.INFO
    plain_format = "%(asctime)s  %(levelname)-8s  %(threadName)s  %(message)s"

    root = logging.getLogger()
    root.setLevel(log_level)

    rich_handler = RichHandler(
        console=console,
        show_time=True,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )
    rich_handler.setLevel(log_level)
    root.addHandler(rich_handler)

    file_handler = logging.FileHandler(log_filename, encoding="utf-8")
    file_handler.setLevel(log_level)
    file_handler.setFormatter(logging.Formatter(plain_format, datefmt="%H:%M:%S"))
    root.addHandler(file_handler)

    # urllib3 logs every connection at DEBUG; too noisy with many workers
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def _print_summary(
    console: Console,
    result: RunResult,
    elapsed: float,
    log_filename: str,
    aborted: bool = False,
) -> None:
    """Print a rich summary panel at the end of an upload run."""
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Uploaded", f"[green]{len(result.succeeded)}[/green]")
    failed_style = "red bold" if result.failed else "green"
    table.add_row("Failed", f"[{failed_style}]{len(result.failed)}[/{failed_style}]")
    retried = sum(1 for o in result.succeeded if o.retries)
    if retried:
        table.add_row("Needed retries", str(retried))
    table.add_row("Elapsed", f"{elapsed:.1f}s")

    ok = result.all_ok and not aborted
    panel_style = "green" if ok else "red"
    if aborted:
        title = "Upload Aborted"
    else:
        title = "Upload Complete" if ok else "Upload Complete (with errors)"
    console.print()
    console.print(Panel(table, title=title, border_style=panel_style, padding=(1, 2)))

    if result.failed:
        console.print()
        console.print(Text("Failed files:", style="red bold"))
        for outcome in result.failed:
            console.print(f"  - {outcome.job.path}  ({outcome.status.value})", style="red")

    console.print(f"\nFull log saved to: {log_filename}", style="dim")


def _print_dry_run(console: Console, files: list[Path]) -> None:
    """Print a table of files that would be uploaded."""
    table = Table(title="Files to upload (dry run)", show_lines=False)
    table.add_column("#", style="dim", justify="right")
    table.add_column("Name", style="cyan")
    table.add_column("Path", style="dim")

    for i, path in enumerate(files, 1):
        table.add_row(str(i), path.name, str(path))

    console.print()
    console.print(table)
    console.print(f"\n[bold]{len(files)}[/bold] file(s)")


def _write_failed_list(path: str, failed: list[Path]) -> None:
    with open(path, "w", encoding="utf-8") as fh:
        for failed_path in failed:
            fh.write(f"{failed_path}\n")
    logging.info("Wrote %d failed path(s) to %s", len(failed), path)


def _unfinished(files: list[Path], result: RunResult) -> list[Path]:
    """Files that failed plus files the run never reached."""
    done = {o.job.path for o in result.succeeded}
    return [p for p in files if p not in done]


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    args = _build_parser().parse_args(argv)

    # ── console setup ────────────────────────────────────────────────
    use_color = sys.stdout.isatty() and not args.no_color and not os.getenv("NO_COLOR")
    console = Console(force_terminal=use_color, no_color=not use_color)

    # ── logging setup ────────────────────────────────────────────────
    os.makedirs(LOG_DIR, exist_ok=True)
    log_filename = os.path.join(
        LOG_DIR, f"upload_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
    )
    _setup_logging(args.verbose, console, log_filename)
    logging.info("Log file: %s", log_filename)

    # ── discover media ───────────────────────────────────────────────
    try:
        files = find_media(args.paths, args.extensions, recursive=not args.no_recursive)
    except FileNotFoundError as e:
        logging.error("%s", e)
        return 1

    if args.dry_run:
        logging.info("Dry-run mode: listing files without uploading.")
        _print_dry_run(console, files)
        return 0

    if not files:
        logging.info("Nothing to upload.")
        return 0

    # ── build engine ─────────────────────────────────────────────────
    try:
        creds = authenticate(
            credentials_file=args.credentials_file,
            token_file=args.token_file,
            client_id=os.getenv("GPHOTOS_CLIENTID"),
            client_secret=os.getenv("GPHOTOS_CLIENTSECRET"),
        )
    except (AuthenticationError, GoogleAuthError) as e:
        logging.error("Authentication failed: %s", e)
        return 1

    session = authorized_session(creds)
    try:
        engine = UploadEngine(
            session=session,
            library=PhotosLibraryClient(session),
            workers=args.workers,
            queue_size=args.queue_size,
            retry_policy=RetryPolicy(
                max_attempts=args.attach_attempts,
                delay=args.retry_delay,
                backoff=args.retry_backoff,
            ),
            upload_attempts=args.upload_attempts,
            strict_item_status=args.strict_item_status,
            console=console if use_color else None,
        )
    except ValueError as e:
        logging.error("Invalid settings: %s", e)
        return 1

    # ── run upload ───────────────────────────────────────────────────
    console.print(Panel("Local -> Google Photos Upload", style="bold blue", padding=(0, 2)))
    logging.info("Workers: %d, queue size: %d, attach attempts: %d",
                 args.workers, args.queue_size, args.attach_attempts)

    start = time.monotonic()
    result = RunResult()
    aborted = False
    try:
        engine.run(files, result)
    except Exception as e:
        logging.error("Upload run aborted: %s", e)
        logging.debug("Traceback for aborted run", exc_info=True)
        aborted = True
    elapsed = time.monotonic() - start

    _print_summary(console, result, elapsed, log_filename, aborted=aborted)
    if args.failed_list:
        _write_failed_list(args.failed_list, _unfinished(files, result))

    return 0 if result.all_ok and not aborted else 1


if __name__ == "__main__":
    sys.exit(main())
