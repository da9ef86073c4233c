"""
storage/checkpoints.py

Typed checkpoint layer between the registration workflow and db.py.

Responsibilities
----------------
- Persisting ``WorkflowSnapshot`` objects after every phase attempt so a
  registration can be resumed from its last committed phase.
- Reading them back as typed records for the UI and the exporters.
- Remembering the hospital session token between runs (encrypted), in
  place of browser local storage.
"""

from __future__ import annotations

import logging

from cryptography.fernet import InvalidToken

from client.session import HospitalSession
from registration.schemas import EntityKind, WorkflowSnapshot
from storage import db as _db
from storage.models import AuditEntry, WorkflowRecord

logger = logging.getLogger(__name__)


class WorkflowCheckpointer:
    """Save / audit hooks handed to ``VerificationOrchestrator``."""

    def __init__(self) -> None:
        _db.init_db()

    def save(self, snapshot: WorkflowSnapshot) -> None:
        entity_id = snapshot.entity.id if snapshot.entity is not None else None
        _db.upsert_workflow(
            workflow_id=snapshot.workflow_id,
            entity_kind=snapshot.kind.value,
            phase=snapshot.phase.value,
            entity_id=entity_id,
            payload=snapshot.model_dump(mode="json"),
            created_at=snapshot.created_at.isoformat(),
        )

    def record(self, workflow_id: str, action: str, phase: str, detail: str | None = None) -> None:
        _db.append_audit(workflow_id, action, phase, detail)


def load_snapshot(workflow_id: str) -> WorkflowSnapshot | None:
    """
    Return the saved snapshot, or ``None`` if it is missing or cannot be
    decrypted with the current key.
    """
    try:
        row = _db.get_workflow(workflow_id)
    except InvalidToken:
        logger.error("Checkpoint %s cannot be decrypted with the current APP_DATA_KEY.", workflow_id)
        return None
    if row is None:
        return None
    return WorkflowSnapshot.model_validate(row["payload"])


def list_records(kind: EntityKind | str | None = None) -> list[WorkflowRecord]:
    value = EntityKind(kind).value if kind else None
    return [WorkflowRecord(**row) for row in _db.list_workflows(value)]


def audit_trail(workflow_id: str) -> list[AuditEntry]:
    return [AuditEntry(**row) for row in _db.get_audit(workflow_id)]


# ---------------------------------------------------------------------------
# Session token
# ---------------------------------------------------------------------------


def remember_session(session: HospitalSession) -> None:
    if not session.token:
        return
    _db.save_session_token(session.portal, session.token)


def restore_session(portal: str = HospitalSession.portal) -> HospitalSession | None:
    """
    Rebuild a session from the stored token.  The hospital profile is not
    stored; callers should confirm the token with ``HospitalApi.verify_session``.
    """
    try:
        token = _db.load_session_token(portal)
    except InvalidToken:
        _db.clear_session_token(portal)
        return None
    if not token:
        return None
    return HospitalSession(token=token)


def forget_session(session: HospitalSession) -> None:
    _db.clear_session_token(session.portal)
    session.sign_out()
