"""
client/api.py

Async adapter for the OrganLink hospital REST API.

Each call opens a short-lived ``httpx.AsyncClient`` (so the adapter is safe
to use from separate event loops) and converts every failure into one of the
workflow error kinds:

    missing token / HTTP 401        -> AuthError
    timeout / transport failure     -> NetworkError
    create entity 4xx / 5xx         -> ValidationError / ServerError
    upload 4xx / 5xx, success=false -> UploadError / OcrError
    ledger anchoring, any failure   -> LedgerError
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from client.config import ClientConfig
from client.session import HospitalSession
from registration.confidence import Confidence
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
from registration.schemas import AnchorReceipt, CreatedEntity, EntityKind, UploadReceipt

logger = logging.getLogger(__name__)

_REGISTER_PATH = {
    EntityKind.patient: "/api/hospital/patients/register",
    EntityKind.donor: "/api/hospital/donors/register",
}
_COLLECTION = {
    EntityKind.patient: "patients",
    EntityKind.donor: "donors",
}
UPLOAD_PATH = "/api/hospital/upload/signature"
ANCHOR_PATH = "/api/hospital/upload/blockchain-register"


def _json_body(response: httpx.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _server_message(body: dict[str, Any], fallback: str) -> str:
    msg = body.get("error") or body.get("message")
    return str(msg) if msg else fallback


def _error_fields(body: dict[str, Any]) -> list[str]:
    fields = body.get("fields") or body.get("errors")
    if isinstance(fields, dict):
        return [str(k) for k in fields]
    if isinstance(fields, list):
        return [str(f.get("field")) if isinstance(f, dict) else str(f) for f in fields]
    return []


class HospitalApi:
    """Hospital-portal endpoints used by the registration workflow."""

    def __init__(
        self,
        session: HospitalSession,
        config: Optional[ClientConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.session = session
        self.config = config or ClientConfig.from_env()
        self._transport = transport

    # -----------------------------------------------------------------
    # Transport
    # -----------------------------------------------------------------
    async def _send(
        self,
        method: str,
        path: str,
        phase: str,
        *,
        authenticated: bool = True,
        **kwargs: Any,
    ) -> tuple[httpx.Response, dict[str, Any]]:
        headers = self.session.auth_headers(phase) if authenticated else {}
        try:
            async with httpx.AsyncClient(
                base_url=self.config.api_url,
                timeout=self.config.timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(method, path, headers=headers, **kwargs)
        except httpx.TimeoutException as exc:
            logger.warning("%s %s timed out", method, path)
            raise NetworkError("The server did not respond in time.", phase=phase) from exc
        except httpx.TransportError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise NetworkError(f"Network error: {exc}", phase=phase) from exc

        body = _json_body(response)
        logger.info("%s %s -> %d", method, path, response.status_code)

        if authenticated and response.status_code == 401:
            self.session.invalidate()
            raise AuthError(
                _server_message(body, "Session expired; please sign in again."),
                phase=phase,
                status_code=401,
            )
        return response, body

    # -----------------------------------------------------------------
    # Authentication
    # -----------------------------------------------------------------
    async def login(self, hospital_id: str, password: str) -> dict[str, Any]:
        response, body = await self._send(
            "POST",
            "/api/hospital/auth/login",
            "login",
            authenticated=False,
            json={"hospital_id": hospital_id, "password": password},
        )
        if not response.is_success or not body.get("success") or not body.get("token"):
            raise AuthError(
                _server_message(body, f"Login failed with status {response.status_code}"),
                phase="login",
                status_code=response.status_code,
            )
        hospital = body.get("hospital") or {"hospital_id": hospital_id}
        self.session.sign_in(body["token"], hospital)
        return hospital

    async def verify_session(self) -> dict[str, Any]:
        response, body = await self._send("GET", "/api/hospital/auth/verify", "login")
        if not response.is_success:
            self.session.invalidate()
            raise AuthError(
                _server_message(body, f"Session check failed with status {response.status_code}"),
                phase="login",
                status_code=response.status_code,
            )
        hospital = body.get("hospital") or self.session.hospital
        self.session.hospital = hospital
        return hospital

    async def request_password_reset(self, hospital_id: str, email: str) -> bool:
        response, body = await self._send(
            "POST",
            "/api/hospital/auth/forgot-password",
            "login",
            authenticated=False,
            json={"hospital_id": hospital_id, "email": email},
        )
        if not response.is_success:
            raise ServerError(
                _server_message(body, f"Request failed with status {response.status_code}"),
                phase="login",
                status_code=response.status_code,
            )
        return bool(body.get("success"))

    # -----------------------------------------------------------------
    # Phase 1: entity creation
    # -----------------------------------------------------------------
    async def create_entity(self, kind: EntityKind, payload: dict[str, Any]) -> CreatedEntity:
        kind = EntityKind(kind)
        phase = "submit"
        response, body = await self._send("POST", _REGISTER_PATH[kind], phase, json=payload)

        if response.is_client_error:
            raise ValidationError(
                _server_message(body, f"Registration failed with status {response.status_code}"),
                phase=phase,
                status_code=response.status_code,
                fields=_error_fields(body),
                details=body.get("details") if isinstance(body.get("details"), dict) else None,
            )
        if not response.is_success:
            raise ServerError(
                _server_message(body, f"Registration failed with status {response.status_code}"),
                phase=phase,
                status_code=response.status_code,
            )
        if body.get("success") is False:
            raise ServerError(_server_message(body, "Registration was not accepted."), phase=phase)

        record = body.get(kind.value) or {}
        entity_id = record.get(f"{kind.value}_id") or record.get("id") or body.get("id")
        if not entity_id:
            raise ServerError("Registration response did not include an id.", phase=phase)
        return CreatedEntity(id=str(entity_id), raw=body)

    # -----------------------------------------------------------------
    # Phase 2: document upload + OCR / IPFS
    # -----------------------------------------------------------------
    async def upload_document(
        self,
        kind: EntityKind,
        entity_id: str,
        document: DocumentAsset,
        full_name: str,
        verification_type: str = "signature",
        aadhaar_last4: str = "",
    ) -> UploadReceipt:
        kind = EntityKind(kind)
        phase = "upload"
        form_fields = {
            "record_type": kind.value,
            "record_id": entity_id,
            "patient_name": full_name,
            "verification_type": verification_type,
        }
        if verification_type == "aadhaar" and aadhaar_last4:
            form_fields["aadhaar_last4"] = aadhaar_last4

        response, body = await self._send(
            "POST",
            UPLOAD_PATH,
            phase,
            data=form_fields,
            files={"signature": (document.filename, document.data, document.content_type)},
        )

        if response.is_client_error:
            raise UploadError(
                _server_message(body, f"Upload failed with status {response.status_code}"),
                phase=phase,
                status_code=response.status_code,
            )
        if not response.is_success:
            raise OcrError(
                _server_message(body, f"Verification service failed with status {response.status_code}"),
                phase=phase,
                status_code=response.status_code,
            )
        if not body.get("success") or not body.get("ipfsHash"):
            raise OcrError(_server_message(body, "Document verification did not complete."), phase=phase)

        ocr = body.get("ocrVerification") or {}
        return UploadReceipt(
            storage_address=str(body["ipfsHash"]),
            confidence=Confidence.from_raw(ocr.get("confidence")),
            verified=bool(ocr.get("isValid")),
            file_name=body.get("fileName"),
        )

    # -----------------------------------------------------------------
    # Phase 3: ledger anchoring
    # -----------------------------------------------------------------
    async def anchor_to_ledger(
        self,
        kind: EntityKind,
        entity_id: str,
        storage_address: str,
        digest: str,
        confidence_bps: int,
        verified: bool,
    ) -> AnchorReceipt:
        kind = EntityKind(kind)
        phase = "anchor"
        response, body = await self._send(
            "POST",
            ANCHOR_PATH,
            phase,
            json={
                "record_type": kind.value,
                "record_id": entity_id,
                "ipfs_hash": storage_address,
                "doc_hash": digest,
                "ocr_score_bps": confidence_bps,
                "verified": verified,
            },
        )
        if not response.is_success:
            raise LedgerError(
                _server_message(body, f"Blockchain registration failed with status {response.status_code}"),
                phase=phase,
                status_code=response.status_code,
            )
        tx_hash = body.get("blockchainTxHash")
        if not body.get("success") or not tx_hash:
            raise LedgerError(_server_message(body, "Blockchain registration was not confirmed."), phase=phase)
        return AnchorReceipt(ledger_tx_hash=str(tx_hash))

    # -----------------------------------------------------------------
    # Entity signature fields
    # -----------------------------------------------------------------
    async def update_signature(
        self,
        kind: EntityKind,
        entity_id: str,
        ipfs_hash: str,
        verified: bool,
        blockchain_hash: Optional[str] = None,
    ) -> None:
        kind = EntityKind(kind)
        payload: dict[str, Any] = {
            "signature_ipfs_hash": ipfs_hash,
            "signature_verified": verified,
        }
        if blockchain_hash:
            payload["blockchain_hash"] = blockchain_hash
        response, body = await self._send(
            "POST",
            f"/api/hospital/{_COLLECTION[kind]}/{entity_id}/signature",
            "sync",
            json=payload,
        )
        if not response.is_success:
            raise ServerError(
                _server_message(body, f"Signature update failed with status {response.status_code}"),
                phase="sync",
                status_code=response.status_code,
            )
