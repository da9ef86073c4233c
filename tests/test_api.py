import json

import httpx
import pytest

from client.api import ANCHOR_PATH, UPLOAD_PATH, HospitalApi
from client.session import HospitalSession
from registration.documents import DocumentAsset
from registration.errors import (
    AuthError,
    LedgerError,
    NetworkError,
    OcrError,
    ServerError,
    UploadError,
    ValidationError,
)
from registration.schemas import EntityKind

PATIENT_REGISTER = "/api/hospital/patients/register"
DONOR_REGISTER = "/api/hospital/donors/register"

pytestmark = pytest.mark.anyio


@pytest.fixture
def asset(png_bytes):
    return DocumentAsset(png_bytes, "signature.png", "image/png")


async def test_login_sets_session(config, backend):
    session = HospitalSession()
    api = HospitalApi(session, config, transport=httpx.MockTransport(backend.handle))
    hospital = await api.login("HOSP001", "secret")
    assert hospital["hospital_id"] == "HOSP001"
    assert session.authenticated
    assert session.token == "test-token"
    assert session.display_name == "City General Hospital"


async def test_login_with_wrong_password(config, backend):
    session = HospitalSession()
    api = HospitalApi(session, config, transport=httpx.MockTransport(backend.handle))
    with pytest.raises(AuthError, match="Invalid credentials"):
        await api.login("HOSP001", "wrong")
    assert not session.authenticated


async def test_verify_session(api):
    hospital = await api.verify_session()
    assert hospital["hospital_name"] == "City General Hospital"


async def test_password_reset(api):
    assert await api.request_password_reset("HOSP001", "admin@citygeneral.example") is True


async def test_create_patient(api, backend):
    created = await api.create_entity(EntityKind.patient, {"full_name": "Jane Doe"})
    assert created.id == "PAT_123"
    request = backend.requests[-1]
    assert request.headers["Authorization"] == "Bearer test-token"
    assert json.loads(request.content) == {"full_name": "Jane Doe"}


async def test_create_donor(api):
    created = await api.create_entity(EntityKind.donor, {"full_name": "John Roe"})
    assert created.id == "DON_456"


async def test_create_client_error_is_validation_error(api, backend):
    backend.queue(PATIENT_REGISTER, 400, {"error": "Invalid email", "fields": ["contact_email"]})
    with pytest.raises(ValidationError) as exc:
        await api.create_entity(EntityKind.patient, {})
    assert exc.value.fields == ["contact_email"]
    assert exc.value.status_code == 400
    assert exc.value.phase == "submit"


async def test_create_server_error(api, backend):
    backend.queue(DONOR_REGISTER, 500, {"error": "database unavailable"})
    with pytest.raises(ServerError, match="database unavailable") as exc:
        await api.create_entity(EntityKind.donor, {})
    assert exc.value.retryable


async def test_create_without_id_is_server_error(api, backend):
    backend.queue(PATIENT_REGISTER, 201, {"success": True, "patient": {}})
    with pytest.raises(ServerError):
        await api.create_entity(EntityKind.patient, {})


async def test_upload_returns_receipt(api, backend, asset):
    receipt = await api.upload_document(EntityKind.patient, "PAT_123", asset, full_name="Jane Doe")
    assert receipt.storage_address == backend.ipfs_hash
    assert receipt.confidence.unit == "fraction"
    assert receipt.confidence.bps == 9100
    assert receipt.verified is True

    request = backend.requests[-1]
    assert request.url.path == UPLOAD_PATH
    assert request.headers["Content-Type"].startswith("multipart/form-data")
    assert b'name="signature"; filename="signature.png"' in request.content
    assert b"PAT_123" in request.content


async def test_upload_percentage_confidence(api, backend, asset):
    backend.confidence = 87
    receipt = await api.upload_document(EntityKind.patient, "PAT_123", asset, full_name="Jane Doe")
    assert receipt.confidence.unit == "percent"
    assert receipt.confidence.bps == 8700


@pytest.mark.parametrize(
    "status, body, error",
    [
        (413, {"error": "File too large"}, UploadError),
        (503, {"error": "OCR service unavailable"}, OcrError),
        (200, {"success": False, "error": "Could not read signature"}, OcrError),
        (200, {"success": True}, OcrError),
    ],
)
async def test_upload_errors(api, backend, asset, status, body, error):
    backend.queue(UPLOAD_PATH, status, body)
    with pytest.raises(error) as exc:
        await api.upload_document(EntityKind.patient, "PAT_123", asset, full_name="Jane Doe")
    assert exc.value.phase == "upload"


async def test_anchor_sends_digest_and_score(api, backend):
    receipt = await api.anchor_to_ledger(EntityKind.patient, "PAT_123", "QmHash", "0xfeed", 9100, True)
    assert receipt.ledger_tx_hash == backend.tx_hash
    assert backend.bodies(ANCHOR_PATH)[-1] == {
        "record_type": "patient",
        "record_id": "PAT_123",
        "ipfs_hash": "QmHash",
        "doc_hash": "0xfeed",
        "ocr_score_bps": 9100,
        "verified": True,
    }


@pytest.mark.parametrize(
    "status, body",
    [
        (500, {"error": "Blockchain registration failed"}),
        (200, {"success": True}),
    ],
)
async def test_anchor_errors(api, backend, status, body):
    backend.queue(ANCHOR_PATH, status, body)
    with pytest.raises(LedgerError):
        await api.anchor_to_ledger(EntityKind.patient, "PAT_123", "QmHash", "0xfeed", 9100, True)


async def test_update_signature(api, backend):
    await api.update_signature(EntityKind.donor, "DON_456", "QmHash", True, "0xtx")
    assert backend.requests[-1].url.path == "/api/hospital/donors/DON_456/signature"
    assert backend.signature_updates()[-1] == {
        "signature_ipfs_hash": "QmHash",
        "signature_verified": True,
        "blockchain_hash": "0xtx",
    }


async def test_unauthorized_invalidates_session(api, backend, session):
    backend.valid_token = "rotated"
    with pytest.raises(AuthError) as exc:
        await api.create_entity(EntityKind.patient, {})
    assert exc.value.status_code == 401
    assert not session.authenticated


async def test_missing_token_sends_nothing(config, backend):
    api = HospitalApi(HospitalSession(), config, transport=httpx.MockTransport(backend.handle))
    with pytest.raises(AuthError):
        await api.create_entity(EntityKind.patient, {})
    assert backend.requests == []


async def test_timeout_is_network_error(api, backend, asset):
    backend.queue(UPLOAD_PATH, httpx.ConnectTimeout("timed out"))
    with pytest.raises(NetworkError) as exc:
        await api.upload_document(EntityKind.patient, "PAT_123", asset, full_name="Jane Doe")
    assert exc.value.retryable


async def test_connection_failure_is_network_error(api, backend):
    backend.queue(ANCHOR_PATH, httpx.ConnectError("connection refused"))
    with pytest.raises(NetworkError):
        await api.anchor_to_ledger(EntityKind.patient, "PAT_123", "QmHash", "0xfeed", 9100, True)
