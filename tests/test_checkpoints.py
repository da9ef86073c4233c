import sqlite3

import pytest
from cryptography.fernet import Fernet

from client.session import HospitalSession
from registration.schemas import EntityKind, RegistrationEntity, WorkflowPhase, WorkflowSnapshot
from storage import crypto
from storage.checkpoints import (
    WorkflowCheckpointer,
    audit_trail,
    forget_session,
    list_records,
    load_snapshot,
    remember_session,
    restore_session,
)


@pytest.fixture
def checkpointer(store):
    return WorkflowCheckpointer()


def _snapshot(kind=EntityKind.patient, phase=WorkflowPhase.ENTITY_CREATED, entity_id="PAT_123"):
    return WorkflowSnapshot(
        kind=kind,
        phase=phase,
        national_id="PAT_1_abcdef",
        form={"full_name": "Jane Doe", "age": 34},
        entity=RegistrationEntity(kind=kind, id=entity_id),
    )


def test_save_and_load(checkpointer):
    snap = _snapshot()
    checkpointer.save(snap)
    loaded = load_snapshot(snap.workflow_id)
    assert loaded.workflow_id == snap.workflow_id
    assert loaded.phase is WorkflowPhase.ENTITY_CREATED
    assert loaded.entity.id == "PAT_123"
    assert loaded.form["full_name"] == "Jane Doe"


def test_save_overwrites_phase(checkpointer):
    snap = _snapshot()
    checkpointer.save(snap)
    checkpointer.save(snap.model_copy(update={"phase": WorkflowPhase.DOCUMENT_UPLOADED}))
    records = list_records()
    assert len(records) == 1
    assert records[0].phase is WorkflowPhase.DOCUMENT_UPLOADED


def test_names_are_not_stored_in_the_clear(checkpointer, store):
    checkpointer.save(_snapshot())
    with sqlite3.connect(str(store)) as conn:
        blobs = [row[0] for row in conn.execute("SELECT encrypted_blob FROM workflow_payloads")]
    assert blobs and all("Jane" not in b for b in blobs)


def test_list_records_by_kind(checkpointer):
    checkpointer.save(_snapshot())
    checkpointer.save(_snapshot(EntityKind.donor, WorkflowPhase.LEDGER_ANCHORED, "DON_456"))
    assert [r.entity_id for r in list_records(EntityKind.donor)] == ["DON_456"]
    assert [r.entity_id for r in list_records("patient")] == ["PAT_123"]
    donor = list_records(EntityKind.donor)[0]
    assert donor.completed


def test_unknown_workflow(checkpointer):
    assert load_snapshot("does-not-exist") is None


def test_wrong_key_returns_none(checkpointer, monkeypatch):
    snap = _snapshot()
    checkpointer.save(snap)
    monkeypatch.setenv("APP_DATA_KEY", Fernet.generate_key().decode())
    crypto._get_fernet.cache_clear()
    assert load_snapshot(snap.workflow_id) is None


def test_audit_trail_order(checkpointer):
    snap = _snapshot()
    checkpointer.save(snap)
    checkpointer.record(snap.workflow_id, "upload", "entity_created", "ocr_error")
    checkpointer.record(snap.workflow_id, "upload", "document_uploaded", "ok")
    trail = audit_trail(snap.workflow_id)
    assert [(a.action, a.phase, a.detail) for a in trail] == [
        ("upload", "entity_created", "ocr_error"),
        ("upload", "document_uploaded", "ok"),
    ]


def test_session_token_round_trip(checkpointer):
    session = HospitalSession(token="tok-1", hospital={"hospital_id": "HOSP001"})
    remember_session(session)

    restored = restore_session()
    assert restored.token == "tok-1"
    assert restored.hospital == {}

    forget_session(session)
    assert not session.authenticated
    assert restore_session() is None


def test_unauthenticated_session_is_not_stored(checkpointer):
    remember_session(HospitalSession())
    assert restore_session() is None
