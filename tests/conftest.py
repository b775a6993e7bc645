from __future__ import annotations

import itertools
import json
import threading
from pathlib import Path

import pytest
import requests
import responses

from gphotos_upload.photos_client import (
    PHOTOS_BATCH_CREATE_URL,
    PHOTOS_UPLOAD_URL,
    PhotosLibraryClient,
)
from gphotos_upload.upload_engine import RetryPolicy


@pytest.fixture
def session():
    with requests.Session() as s:
        yield s


@pytest.fixture
def library(session):
    return PhotosLibraryClient(session, timeout=5)


@pytest.fixture
def no_wait_policy():
    sleeps: list[float] = []
    policy = RetryPolicy(max_attempts=4, sleep=sleeps.append)
    policy.sleeps = sleeps
    return policy


@pytest.fixture
def make_media(tmp_path: Path):
    def _make(count: int, prefix: str = "IMG_", suffix: str = ".jpg") -> list[Path]:
        paths = []
        for i in range(count):
            path = tmp_path / f"{prefix}{i:04d}{suffix}"
            path.write_bytes(f"fake image {i}".encode() * 8)
            paths.append(path)
        return paths

    return _make


class FakePhotosService:
    """Registers ``responses`` callbacks that mimic the uploads and batchCreate endpoints."""

    def __init__(self, rsps, attach_failures: int = 0, attach_status: int = 500):
        self.attach_failures = attach_failures
        self.attach_status = attach_status
        self.uploaded: list[str] = []
        self.attached: list[dict] = []
        self.attach_calls = 0
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        rsps.add_callback(responses.POST, PHOTOS_UPLOAD_URL, callback=self._upload)
        rsps.add_callback(
            responses.POST,
            PHOTOS_BATCH_CREATE_URL,
            callback=self._batch_create,
            content_type="application/json",
        )

    def _upload(self, request):
        name = request.headers["X-Goog-Upload-File-Name"]
        with self._lock:
            self.uploaded.append(name)
        return 200, {}, f"token-{name}"

    def _batch_create(self, request):
        body = json.loads(request.body)
        (item,) = body["newMediaItems"]
        with self._lock:
            self.attach_calls += 1
            if self.attach_calls <= self.attach_failures:
                return self.attach_status, {}, json.dumps({"error": {"message": "backend error"}})
            item_id = f"item-{next(self._ids)}"
            self.attached.append({"id": item_id, **item})
        result = {
            "uploadToken": item["simpleMediaItem"]["uploadToken"],
            "status": {"message": "Success"},
            "mediaItem": {"id": item_id, "description": item["description"]},
        }
        return 200, {}, json.dumps({"newMediaItemResults": [result]})


@pytest.fixture
def photos_service():
    return FakePhotosService
