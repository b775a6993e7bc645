"""Local media discovery – walks directories and keeps files Google Photos accepts."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from pathlib import Path

logger = logging.getLogger(__name__)

# Media types the Photos Library API accepts for upload
SUPPORTED_EXTENSIONS = frozenset({
    ".jpg", ".jpeg", ".png", ".gif", ".webp", ".heic", ".heif",
    ".bmp", ".tif", ".tiff", ".ico", ".avif",
    ".mp4", ".m4v", ".mov", ".avi", ".mpg", ".mpeg", ".3gp", ".3g2",
    ".mkv", ".mts", ".m2ts", ".wmv", ".asf", ".divx",
})


def parse_extensions(text: str) -> frozenset[str]:
    """Parse ``"jpg, .PNG,mp4"`` into ``{".jpg", ".png", ".mp4"}``."""
    exts = set()
    for part in text.split(","):
        part = part.strip().lower()
        if not part:
            continue
        exts.add(part if part.startswith(".") else f".{part}")
    if not exts:
        raise ValueError(f"no extensions in {text!r}")
    return frozenset(exts)


def is_media(path: Path, extensions: Iterable[str] = SUPPORTED_EXTENSIONS) -> bool:
    return path.suffix.lower() in extensions


def _walk(root: Path, extensions: frozenset[str], recursive: bool) -> Iterable[Path]:
    for dirpath, dirnames, filenames in os.walk(root):
        # sorted in place so os.walk descends in a stable order
        dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
        if not recursive:
            dirnames[:] = []
        for name in sorted(filenames):
            if name.startswith("."):
                continue
            path = Path(dirpath) / name
            if is_media(path, extensions):
                yield path
            else:
                logger.debug("Skipping unsupported file: %s", path)


def find_media(
    paths: Iterable[str | os.PathLike],
    extensions: Iterable[str] = SUPPORTED_EXTENSIONS,
    recursive: bool = True,
) -> list[Path]:
    """Return media files under *paths*, in a stable order, without duplicates.

    Directories are walked (hidden entries skipped); explicit files are kept
    when their extension is supported. Raises FileNotFoundError for a path
    that does not exist.
    """
    extensions = frozenset(e.lower() for e in extensions)
    found: list[Path] = []
    seen: set[Path] = set()

    for raw in paths:
        root = Path(raw)
        if not root.exists():
            raise FileNotFoundError(f"No such file or directory: {root}")
        if root.is_dir():
            logger.info("  Scanning: %s", root)
            candidates = _walk(root, extensions, recursive)
        elif is_media(root, extensions):
            candidates = [root]
        else:
            logger.warning("Skipping unsupported file: %s", root)
            continue

        for path in candidates:
            key = path.resolve()
            if key in seen:
                continue
            seen.add(key)
            found.append(path)

    logger.info("Found %d media file(s).", len(found))
    return found
