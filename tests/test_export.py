import json

import pytest

from registration.orchestrator import VerificationOrchestrator
from registration.schemas import EntityKind
from storage.checkpoints import WorkflowCheckpointer
from storage.export import export_json, export_pdf

pytestmark = pytest.mark.anyio


@pytest.fixture
async def completed(anyio_backend, store, api, patient_fields, png_bytes):
    orch = VerificationOrchestrator(EntityKind.patient, api, checkpointer=WorkflowCheckpointer())
    orch.update_fields(patient_fields)
    orch.attach_document(png_bytes, "signature.png")
    await orch.submit()
    await orch.upload_document()
    await orch.anchor_to_ledger()
    return orch


async def test_json_receipt(completed, backend):
    receipt = json.loads(export_json(completed.workflow_id))
    assert receipt["workflow"]["phase"] == "ledger_anchored"
    assert receipt["entity"]["id"] == "PAT_123"
    assert receipt["entity"]["full_name"] == "Jane Doe"
    assert receipt["verification"]["confidence_bps"] == 9100
    assert receipt["verification"]["ledger_tx_hash"] == backend.tx_hash
    assert receipt["verification"]["document_digest"] == completed.digest
    assert [a["action"] for a in receipt["audit"]] == ["submit", "upload", "anchor"]


async def test_pdf_receipt(completed):
    pdf = export_pdf(completed.workflow_id)
    assert pdf.startswith(b"%PDF")


async def test_unknown_workflow(store):
    WorkflowCheckpointer()
    assert export_json("missing") is None
    assert export_pdf("missing") is None
