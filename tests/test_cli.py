from __future__ import annotations

import logging

import pytest
import requests
from google.auth.exceptions import RefreshError

responses = pytest.importorskip("responses")

from gphotos_upload import cli
from gphotos_upload.auth import AuthenticationError
from gphotos_upload.models import AttachResult, JobOutcome, JobStatus, MediaJob
from gphotos_upload.photos_client import PHOTOS_BATCH_CREATE_URL, PHOTOS_UPLOAD_URL


@pytest.fixture(autouse=True)
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for var in ("GPHOTOS_CLIENTID", "GPHOTOS_CLIENTSECRET", "GPHOTOS_WORKERS"):
        monkeypatch.delenv(var, raising=False)
    root = logging.getLogger()
    before = list(root.handlers)
    yield tmp_path
    for handler in root.handlers[:]:
        if handler not in before:
            root.removeHandler(handler)
            handler.close()


@pytest.fixture
def photos_dir(workdir):
    media = workdir / "photos"
    media.mkdir()
    for name in ("a.jpg", "b.png", "c.mp4", "readme.txt"):
        (media / name).write_bytes(b"data")
    return media


@pytest.fixture
def fake_auth(monkeypatch):
    session = requests.Session()
    monkeypatch.setattr(cli, "authenticate", lambda **kwargs: object())
    monkeypatch.setattr(cli, "authorized_session", lambda creds: session)
    return session


def test_parser_defaults():
    args = cli._build_parser().parse_args([])
    assert args.paths == ["."]
    assert args.workers == 10
    assert args.queue_size == 10
    assert args.attach_attempts == 4
    assert args.retry_delay == 0.0
    assert args.upload_attempts == 1


def test_dry_run_lists_without_authenticating(photos_dir, monkeypatch):
    def fail(**kwargs):
        raise AssertionError("dry run must not authenticate")

    monkeypatch.setattr(cli, "authenticate", fail)

    assert cli.main(["--dry-run", "--no-color", str(photos_dir)]) == 0


def test_missing_path_exits_nonzero(workdir):
    assert cli.main(["--no-color", str(workdir / "missing")]) == 1


def test_authentication_failure_exits_nonzero(photos_dir, monkeypatch):
    def fail(**kwargs):
        raise AuthenticationError("no client configured")

    monkeypatch.setattr(cli, "authenticate", fail)

    assert cli.main(["--no-color", str(photos_dir)]) == 1


def test_invalid_worker_count_exits_nonzero(photos_dir, fake_auth):
    assert cli.main(["--no-color", "--workers", "0", str(photos_dir)]) == 1


@responses.activate
def test_successful_run(photos_dir, fake_auth):
    responses.add(responses.POST, PHOTOS_UPLOAD_URL, body="tok", status=200)
    responses.add(
        responses.POST,
        PHOTOS_BATCH_CREATE_URL,
        json={"newMediaItemResults": [{"mediaItem": {"id": "m", "description": "x"}}]},
    )

    assert cli.main(["--no-color", "--workers", "2", str(photos_dir)]) == 0
    uploads = [c for c in responses.calls if c.request.url == PHOTOS_UPLOAD_URL]
    assert len(uploads) == 3


@responses.activate
def test_failed_files_are_written_for_a_follow_up_run(photos_dir, fake_auth, workdir):
    responses.add(responses.POST, PHOTOS_UPLOAD_URL, body="tok", status=200)
    responses.add(responses.POST, PHOTOS_BATCH_CREATE_URL, json={}, status=500)
    failed_list = workdir / "failed.txt"

    code = cli.main(["--no-color", "--attach-attempts", "2", "--failed-list", str(failed_list), str(photos_dir)])

    assert code == 1
    attaches = [c for c in responses.calls if c.request.url == PHOTOS_BATCH_CREATE_URL]
    assert len(attaches) == 6
    assert sorted(failed_list.read_text().splitlines()) == sorted(
        str(photos_dir / n) for n in ("a.jpg", "b.png", "c.mp4")
    )


def test_revoked_refresh_token_exits_nonzero(photos_dir, monkeypatch):
    def revoked(**kwargs):
        raise RefreshError("invalid_grant: Token has been expired or revoked.")

    monkeypatch.setattr(cli, "authenticate", revoked)

    assert cli.main(["--no-color", str(photos_dir)]) == 1


def test_aborted_run_still_writes_unfinished_files(photos_dir, fake_auth, monkeypatch, workdir):
    def partial_run(self, paths, result=None):
        first = list(paths)[0]
        result.record(JobOutcome(MediaJob(first), JobStatus.ATTACHED, result=AttachResult("m1", first.name, 200)))
        raise RuntimeError("all upload workers exited before the job queue was drained")

    monkeypatch.setattr(cli.UploadEngine, "run", partial_run)
    failed_list = workdir / "failed.txt"

    code = cli.main(["--no-color", "--failed-list", str(failed_list), str(photos_dir)])

    assert code == 1
    assert failed_list.read_text().splitlines() == [str(photos_dir / "b.png"), str(photos_dir / "c.mp4")]
