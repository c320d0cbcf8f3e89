# tests/conftest.py
from __future__ import annotations

import io
from datetime import datetime, timedelta, timezone

import jwt
import numpy as np
import pytest
from fastapi.testclient import TestClient
from PIL import Image

from ekyc_documents.api.main import create_app
from ekyc_documents.config.settings import Settings
from ekyc_documents.core.exceptions import StorageFailure
from ekyc_documents.core.interfaces.storage_service import (
    IStorageService,
    ObjectHead,
    PresignedUpload,
    StoredObject,
)

JWT_SECRET = "test-secret"


# ── Fakes ──

class InMemoryStorage(IStorageService):
    """Object store kept in a dict; flags simulate backend outages."""

    def __init__(self):
        self.objects: dict[str, tuple[bytes, str, dict]] = {}
        self.put_calls = 0
        self.fail_writes = False
        self.fail_reads = False

    def location_for(self, key):
        return f"http://storage.test/documents/{key}"

    def put(self, key, data, content_type, metadata=None):
        self.put_calls += 1
        if self.fail_writes:
            raise StorageFailure("Failed to upload file to storage")
        self.objects[key] = (bytes(data), content_type, dict(metadata or {}))
        return StoredObject(key=key, location=self.location_for(key), etag=f"etag-{len(data)}")

    def get(self, key):
        if self.fail_reads:
            raise StorageFailure("Failed to read file from storage")
        if key not in self.objects:
            raise StorageFailure(f"No such object: {key}")
        return self.objects[key][0]

    def exists(self, key):
        return key in self.objects

    def head(self, key):
        if key not in self.objects:
            raise StorageFailure(f"No such object: {key}")
        data, content_type, _ = self.objects[key]
        return ObjectHead(content_type=content_type, length=len(data), etag=f"etag-{len(data)}")

    def delete(self, key):
        self.objects.pop(key, None)

    def presign_upload(self, key, content_type, max_length, expires_seconds=3600):
        return PresignedUpload(
            url="http://storage.test/documents",
            fields={"key": key, "Content-Type": content_type, "policy": "signed-policy"},
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=expires_seconds),
        )

    def presign_download(self, key, expires_seconds=3600):
        return f"http://storage.test/documents/{key}?X-Amz-Expires={expires_seconds}"


# ── Builders ──

def make_settings(tmp_path, **overrides) -> Settings:
    values = dict(
        database_url=f"sqlite:///{tmp_path / 'documents.db'}",
        jwt_secret=JWT_SECRET,
        enable_document_verification=False,
        verification_api_url="",
        verification_api_key="",
        verification_workers=2,
        log_level="WARNING",
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_token(sub: str, role: str | None = None, secret: str = JWT_SECRET, expires_in: int = 3600) -> str:
    claims = {"sub": sub, "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in)}
    if role:
        claims["role"] = role
    return jwt.encode(claims, secret, algorithm="HS256")


def auth(sub: str, role: str | None = None) -> dict:
    return {"Authorization": f"Bearer {make_token(sub, role)}"}


def jpeg_bytes(width: int = 64, height: int = 48, quality: int = 90) -> bytes:
    x = np.linspace(0, 255, width, dtype=np.uint8)
    y = np.linspace(0, 255, height, dtype=np.uint8)
    rgb = np.dstack([np.tile(x, (height, 1)), np.tile(y[:, None], (1, width)), np.full((height, width), 128, np.uint8)])
    buf = io.BytesIO()
    Image.fromarray(rgb, "RGB").save(buf, "JPEG", quality=quality)
    return buf.getvalue()


def noisy_jpeg_bytes(width: int = 400, height: int = 400, quality: int = 95, seed: int = 7) -> bytes:
    rng = np.random.default_rng(seed)
    rgb = rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8)
    buf = io.BytesIO()
    Image.fromarray(rgb, "RGB").save(buf, "JPEG", quality=quality)
    return buf.getvalue()


def alpha_png_bytes(width: int = 40, height: int = 40) -> bytes:
    img = Image.new("RGBA", (width, height), (200, 30, 30, 255))
    for i in range(width):
        img.putpixel((i, i % height), (0, 0, 0, 0))
    buf = io.BytesIO()
    img.save(buf, "PNG")
    return buf.getvalue()


def pdf_bytes(body: bytes = b"") -> bytes:
    return (
        b"%PDF-1.4\n"
        b"1 0 obj\n<< /Type /Catalog /Pages 2 0 R >>\nendobj\n"
        b"2 0 obj\n<< /Type /Pages /Kids [] /Count 0 >>\nendobj\n"
        + body
        + b"\ntrailer\n<< /Root 1 0 R >>\n%%EOF\n"
    )


# ── Fixtures ──

@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return make_settings(tmp_path)


@pytest.fixture
def make_client(tmp_path, storage):
    """Factory: TestClient over a fresh app; settings overrides as kwargs."""
    opened: list[TestClient] = []

    def _make(transport=None, **overrides) -> TestClient:
        app = create_app(make_settings(tmp_path, **overrides), storage=storage, verification_transport=transport)
        client = TestClient(app)
        client.__enter__()
        opened.append(client)
        return client

    yield _make
    for client in opened:
        client.__exit__(None, None, None)


@pytest.fixture
def client(make_client) -> TestClient:
    return make_client()
