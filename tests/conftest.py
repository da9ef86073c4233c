"""
Shared fixtures: a fake OrganLink backend behind ``httpx.MockTransport``,
a signed-in hospital session, and an isolated encrypted SQLite store.
"""

from __future__ import annotations

import asyncio
import json
import re
from io import BytesIO
from typing import Any

import httpx
import pytest
from cryptography.fernet import Fernet
from PIL import Image

from client.api import ANCHOR_PATH, UPLOAD_PATH, HospitalApi
from client.config import ClientConfig
from client.session import HospitalSession
from storage import crypto

API_URL = "http://organlink.test"
HOSPITAL = {"hospital_id": "HOSP001", "hospital_name": "City General Hospital"}

PATIENT_REGISTER = "/api/hospital/patients/register"
DONOR_REGISTER = "/api/hospital/donors/register"
_SIGNATURE_UPDATE = re.compile(r"^/api/hospital/(patients|donors)/[^/]+/signature$")


class FakeBackend:
    """
    In-memory stand-in for the hospital API.

    ``queue(path, status, body)`` or ``queue(path, exception)`` makes the next
    request to *path* fail; afterwards the route answers normally again.
    """

    def __init__(self) -> None:
        self.valid_token = "test-token"
        self.password = "secret"
        self.patient_id = "PAT_123"
        self.donor_id = "DON_456"
        self.ipfs_hash = "QmXoypizjW3WknFiJnKLwHCnL72vedxjQkDDP1mXWo6uco"
        self.confidence: Any = 0.91
        self.ocr_valid = True
        self.tx_hash = "0xabc123def456"
        self.delay = 0.0
        self.requests: list[httpx.Request] = []
        self._queued: dict[str, list[Any]] = {}

    # -- configuration ---------------------------------------------------
    def queue(self, path: str, status_or_exc: Any, body: dict | None = None) -> None:
        item = status_or_exc if isinstance(status_or_exc, Exception) else (status_or_exc, body or {})
        self._queued.setdefault(path, []).append(item)

    def count(self, path: str) -> int:
        return sum(1 for r in self.requests if r.url.path == path)

    def bodies(self, path: str) -> list[dict]:
        return [json.loads(r.content) for r in self.requests if r.url.path == path]

    def signature_updates(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests if _SIGNATURE_UPDATE.match(r.url.path)]

    # -- transport -------------------------------------------------------
    async def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)

        queued = self._queued.get(path)
        if queued:
            item = queued.pop(0)
            if isinstance(item, Exception):
                raise item
            status, body = item
            return httpx.Response(status, json=body)

        if path == "/api/hospital/auth/login":
            data = json.loads(request.content)
            if data.get("password") != self.password:
                return httpx.Response(401, json={"success": False, "error": "Invalid credentials"})
            return httpx.Response(200, json={"success": True, "token": self.valid_token, "hospital": HOSPITAL})
        if path == "/api/hospital/auth/forgot-password":
            return httpx.Response(200, json={"success": True})

        if request.headers.get("Authorization") != f"Bearer {self.valid_token}":
            return httpx.Response(401, json={"success": False, "error": "Invalid or expired token"})

        if path == "/api/hospital/auth/verify":
            return httpx.Response(200, json={"success": True, "hospital": HOSPITAL})
        if path == PATIENT_REGISTER:
            body = json.loads(request.content)
            return httpx.Response(201, json={"success": True, "patient": {"patient_id": self.patient_id, **body}})
        if path == DONOR_REGISTER:
            body = json.loads(request.content)
            return httpx.Response(201, json={"success": True, "donor": {"donor_id": self.donor_id, **body}})
        if path == UPLOAD_PATH:
            return httpx.Response(
                200,
                json={
                    "success": True,
                    "ipfsHash": self.ipfs_hash,
                    "fileName": "signature.png",
                    "ocrVerification": {"confidence": self.confidence, "isValid": self.ocr_valid},
                },
            )
        if path == ANCHOR_PATH:
            return httpx.Response(200, json={"success": True, "blockchainTxHash": self.tx_hash})
        if _SIGNATURE_UPDATE.match(path):
            return httpx.Response(200, json={"success": True})

        return httpx.Response(404, json={"success": False, "error": f"No route for {path}"})


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def session() -> HospitalSession:
    return HospitalSession(token="test-token", hospital=dict(HOSPITAL))


@pytest.fixture
def config() -> ClientConfig:
    return ClientConfig(api_url=API_URL, timeout=5)


@pytest.fixture
def api(session: HospitalSession, config: ClientConfig, backend: FakeBackend) -> HospitalApi:
    return HospitalApi(session, config, transport=httpx.MockTransport(backend.handle))


@pytest.fixture
def store(tmp_path, monkeypatch):
    """Point the checkpoint store at a fresh database with a known key."""
    monkeypatch.setenv("ORGANLINK_DB_PATH", str(tmp_path / "workflows.db"))
    monkeypatch.setenv("APP_DATA_KEY", Fernet.generate_key().decode())
    crypto._get_fernet.cache_clear()
    yield tmp_path / "workflows.db"
    crypto._get_fernet.cache_clear()


def _image_bytes(fmt: str, color: str = "white", size: tuple[int, int] = (64, 32)) -> bytes:
    buf = BytesIO()
    Image.new("RGB", size, color).save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    return _image_bytes("PNG")


@pytest.fixture
def other_png_bytes() -> bytes:
    return _image_bytes("PNG", color="black")


@pytest.fixture
def jpeg_bytes() -> bytes:
    return _image_bytes("JPEG")


@pytest.fixture
def patient_fields() -> dict:
    return {
        "full_name": "Jane Doe",
        "age": 34,
        "gender": "Female",
        "blood_type": "O+",
        "organ_needed": "Kidney",
        "urgency_level": "high",
        "contact_phone": "+91 98765 43210",
        "contact_email": "jane.doe@example.com",
    }


@pytest.fixture
def donor_fields() -> dict:
    return {
        "full_name": "John Roe",
        "age": 42,
        "gender": "Male",
        "blood_type": "A-",
        "organs_to_donate": ["Kidney", "Liver"],
        "contact_phone": "+91 91234 56789",
        "contact_email": "john.roe@example.com",
    }
