"""Google Photos Library API wire protocol: upload headers and the batchCreate client."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import requests

logger = logging.getLogger(__name__)

# Google Photos API endpoints
PHOTOS_UPLOAD_URL = "https://photoslibrary.googleapis.com/v1/uploads"
PHOTOS_BATCH_CREATE_URL = "https://photoslibrary.googleapis.com/v1/mediaItems:batchCreate"

DEFAULT_TIMEOUT = 300.0  # seconds; raw uploads of large videos are slow


def upload_headers(display_name: str) -> dict[str, str]:
    """Headers for a single-shot (non-resumable) raw bytes upload."""
    return {
        "Content-type": "application/octet-stream",
        "X-Goog-Upload-File-Name": display_name,
        "X-Goog-Upload-Protocol": "raw",
    }


def new_media_item(upload_token: str, description: str) -> dict:
    """Build one ``newMediaItems`` entry for batchCreate."""
    return {
        "description": description,
        "simpleMediaItem": {"uploadToken": upload_token},
    }


@dataclass
class BatchCreateResponse:
    """HTTP status plus the ``newMediaItemResults`` list of a batchCreate call."""

    status_code: int
    results: list[dict] = field(default_factory=list)


class PhotosLibraryClient:
    """Thin typed wrapper around ``mediaItems:batchCreate``.

    *session* must add bearer credentials to outgoing requests (in practice a
    ``google.auth.transport.requests.AuthorizedSession``). It is shared by all
    upload workers.
    """

    def __init__(
        self,
        session: requests.Session,
        batch_create_url: str = PHOTOS_BATCH_CREATE_URL,
        timeout: float | None = DEFAULT_TIMEOUT,
    ):
        self._session = session
        self._batch_create_url = batch_create_url
        self._timeout = timeout

    @property
    def session(self) -> requests.Session:
        return self._session

    def batch_create(self, new_media_items: list[dict]) -> BatchCreateResponse:
        """Create library items from upload tokens.

        Raises ``requests.HTTPError`` on a non-success status and
        ``ValueError`` if the body is not JSON.
        """
        resp = self._session.post(
            self._batch_create_url,
            headers={"Content-type": "application/json"},
            json={"newMediaItems": new_media_items},
            timeout=self._timeout,
        )
        if not resp.ok:
            logger.debug("batchCreate failed (HTTP %s): %s", resp.status_code, resp.text[:120])
        resp.raise_for_status()
        body = resp.json()
        return BatchCreateResponse(
            status_code=resp.status_code,
            results=list(body.get("newMediaItemResults", [])),
        )
