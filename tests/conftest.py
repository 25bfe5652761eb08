"""Shared fixtures: isolated settings, test images and a fake EquiDuty backend."""

import json
import logging
import os
from collections.abc import Callable
from io import BytesIO

import httpx
import pytest
from PIL import Image

from equiduty_uploads.config import get_settings
from equiduty_uploads.logging import UploadJsonFormatter
from equiduty_uploads.sync import KeyValueStore, UploadQueue

API_BASE_URL = "https://api.equiduty.test"
STORAGE_HOST = "storage.equiduty.test"


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Keep host EQUIDUTY_* variables and .env files out of every test."""
    for key in list(os.environ):
        if key.startswith("EQUIDUTY_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("EQUIDUTY_DATA_DIR", str(tmp_path / "data"))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def restore_root_logger():
    """Undo setup_logging() changes to the root logger."""
    root = logging.getLogger()
    level = root.level
    yield root
    for handler in root.handlers[:]:
        if isinstance(handler.formatter, UploadJsonFormatter):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


def make_image(width: int = 2400, height: int = 1600, mode: str = "RGB") -> Image.Image:
    color = (120, 80, 40, 255)[: len(mode)] if mode in ("RGB", "RGBA") else 128
    return Image.new(mode, (width, height), color=color)


def jpeg_bytes(width: int = 640, height: int = 480) -> bytes:
    buffer = BytesIO()
    make_image(width, height).save(buffer, format="JPEG", quality=80)
    return buffer.getvalue()


@pytest.fixture
def photo() -> Image.Image:
    """A landscape photo larger than every preset."""
    return make_image()


@pytest.fixture
def queue(tmp_path) -> UploadQueue:
    store = KeyValueStore(tmp_path / "queue.db")
    yield UploadQueue(store)
    store.close()


class FakeBackend:
    """In-process stand-in for the EquiDuty API and the storage bucket.

    Used as an httpx.MockTransport handler. Every request is recorded.
    Behaviour is scripted through the public attributes:

    - put_outcomes: consumed per storage PUT; an exception instance is
      raised, an int is returned as the status code. Empty means 200.
    - fail_upload_url: callable(body) -> bool; True answers the signed-URL
      request with HTTP 500.
    - metadata_status / horse_status: status for media record and horse PATCH.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.put_outcomes: list[Exception | int] = []
        self.fail_upload_url: Callable[[dict], bool] = lambda body: False
        self.signed_url_overrides: dict = {}
        self.metadata_status = 201
        self.horse_status = 200
        self.health_status = 200
        self._counter = 0

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.url.host == STORAGE_HOST and request.method == "PUT":
            if self.put_outcomes:
                outcome = self.put_outcomes.pop(0)
                if isinstance(outcome, Exception):
                    raise outcome
                return httpx.Response(outcome)
            return httpx.Response(200)

        if request.method == "POST" and path.endswith("/upload-url"):
            body = json.loads(request.content)
            if self.fail_upload_url(body):
                return httpx.Response(500, json={"error": "boom"})
            self._counter += 1
            name = f"object-{self._counter}.jpg"
            payload = {
                "uploadUrl": f"https://{STORAGE_HOST}/bucket/{name}?signature=secret",
                "readUrl": f"https://{STORAGE_HOST}/read/{name}",
                "storagePath": f"uploads/{name}",
                "expiresAt": "2030-01-01T00:00:00Z",
            }
            payload.update(self.signed_url_overrides)
            return httpx.Response(200, json=payload)

        if request.method == "POST" and path == "/api/v1/horse-media":
            return httpx.Response(self.metadata_status, json={"id": "media-1"})

        if request.method == "PATCH" and path.startswith("/api/v1/horses/"):
            return httpx.Response(self.horse_status, json={})

        if request.method == "GET" and path == "/health":
            return httpx.Response(self.health_status, json={"status": "ok"})

        return httpx.Response(404)

    def sent(self, method: str, path_suffix: str = "") -> list[httpx.Request]:
        """Recorded requests with the given method whose path ends with path_suffix."""
        return [
            r for r in self.requests if r.method == method and r.url.path.endswith(path_suffix)
        ]

    @property
    def puts(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == "PUT"]


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()
