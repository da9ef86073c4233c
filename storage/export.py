"""
storage/export.py

Verification receipts for a saved registration, as a JSON string or PDF
bytes.

Dependencies
------------
- reportlab  (PDF generation)
- storage.checkpoints  (data access)
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from io import BytesIO
from typing import Any

from storage.checkpoints import audit_trail, load_snapshot

logger = logging.getLogger(__name__)

_DISCLAIMER = (
    "This receipt summarises the client-side record of a registration. "
    "The ledger transaction and IPFS content are authoritative; verify them "
    "on the network before relying on this document."
)


def _build_receipt(workflow_id: str) -> dict[str, Any] | None:
    snapshot = load_snapshot(workflow_id)
    if snapshot is None:
        return None

    entity = snapshot.entity
    verification = snapshot.verification
    form = snapshot.form or {}
    document = snapshot.document

    return {
        "export_generated_at": datetime.now(tz=timezone.utc).isoformat(),
        "workflow": {
            "workflow_id": snapshot.workflow_id,
            "entity_kind": snapshot.kind.value,
            "phase": snapshot.phase.value,
            "created_at": snapshot.created_at.isoformat(),
            "updated_at": snapshot.updated_at.isoformat(),
            "sync_pending": snapshot.sync_pending,
        },
        "entity": {
            "id": entity.id if entity else None,
            "full_name": form.get("full_name"),
            "blood_type": form.get("blood_type"),
            "national_id": snapshot.national_id,
            "signature_ipfs_hash": entity.signature_ipfs_hash if entity else None,
            "signature_verified": entity.signature_verified if entity else False,
            "blockchain_hash": entity.blockchain_hash if entity else None,
        },
        "verification": {
            "storage_address": verification.storage_address,
            "confidence_bps": verification.confidence_bps,
            "verified": verification.verified,
            "ledger_tx_hash": verification.ledger_tx_hash,
            "document_digest": document.digest if document else None,
            "document_name": document.filename if document else None,
        },
        "audit": [
            {"action": a.action, "phase": a.phase, "detail": a.detail, "timestamp": a.timestamp}
            for a in audit_trail(workflow_id)
        ],
        "disclaimer": _DISCLAIMER,
    }


# ---------------------------------------------------------------------------
# JSON export
# ---------------------------------------------------------------------------


def export_json(workflow_id: str) -> str | None:
    """Pretty-printed JSON receipt, or ``None`` if the workflow is unknown."""
    receipt = _build_receipt(workflow_id)
    if receipt is None:
        return None
    return json.dumps(receipt, indent=2, ensure_ascii=False, default=str)


# ---------------------------------------------------------------------------
# PDF export
# ---------------------------------------------------------------------------


def export_pdf(workflow_id: str) -> bytes | None:
    """PDF receipt rendered with reportlab, or ``None`` if the workflow is unknown."""
    from reportlab.lib import colors
    from reportlab.lib.pagesizes import A4
    from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
    from reportlab.lib.units import inch
    from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

    receipt = _build_receipt(workflow_id)
    if receipt is None:
        return None

    buf = BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=A4,
        leftMargin=inch,
        rightMargin=inch,
        topMargin=inch,
        bottomMargin=inch,
    )

    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        "ReceiptTitle",
        parent=styles["Title"],
        fontSize=18,
        textColor=colors.HexColor("#1a3a5c"),
        spaceAfter=6,
    )
    heading_style = ParagraphStyle(
        "ReceiptHeading",
        parent=styles["Heading2"],
        fontSize=12,
        textColor=colors.HexColor("#1a3a5c"),
        spaceBefore=12,
        spaceAfter=4,
    )
    small = ParagraphStyle("Small", parent=styles["Normal"], fontSize=8, textColor=colors.grey)
    mono = ParagraphStyle("Mono", parent=styles["Normal"], fontName="Courier", fontSize=8)

    def kv_table(rows: list[list[Any]], header_color: str) -> Table:
        data = [["Field", "Value"]] + [[k, Paragraph(str(v) if v not in (None, "") else "—", mono)] for k, v in rows]
        table = Table(data, colWidths=[1.8 * inch, 4.4 * inch])
        table.setStyle(
            TableStyle([
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor(header_color)),
                ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("FONTSIZE", (0, 0), (-1, -1), 9),
                ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#f0f4f8")]),
                ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#cccccc")),
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
                ("LEFTPADDING", (0, 0), (-1, -1), 6),
                ("TOPPADDING", (0, 0), (-1, -1), 4),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
            ])
        )
        return table

    wf = receipt["workflow"]
    entity = receipt["entity"]
    ver = receipt["verification"]

    story = [
        Paragraph("OrganLink Registration Verification Receipt", title_style),
        Paragraph(f"Generated: {receipt['export_generated_at']}", small),
        Spacer(1, 0.15 * inch),
        Paragraph("Registration", heading_style),
        kv_table(
            [
                ["Record type", wf["entity_kind"]],
                ["Record ID", entity["id"]],
                ["Name", entity["full_name"]],
                ["Blood type", entity["blood_type"]],
                ["National ID", entity["national_id"]],
                ["Phase", wf["phase"]],
                ["Started", wf["created_at"]],
            ],
            "#1a3a5c",
        ),
        Paragraph("Verification", heading_style),
        kv_table(
            [
                ["IPFS hash", ver["storage_address"]],
                ["OCR score", f"{ver['confidence_bps'] / 100:.2f}% ({ver['confidence_bps']} bps)"],
                ["OCR verified", "yes" if ver["verified"] else "no"],
                ["Document", ver["document_name"]],
                ["Document digest", ver["document_digest"]],
                ["Ledger tx", ver["ledger_tx_hash"]],
            ],
            "#2d6a4f",
        ),
    ]

    if receipt["audit"]:
        story.append(Paragraph("Audit trail", heading_style))
        audit_data = [["Time", "Action", "Phase", "Result"]] + [
            [a["timestamp"], a["action"], a["phase"], a["detail"] or ""] for a in receipt["audit"]
        ]
        audit_table = Table(audit_data, colWidths=[2.4 * inch, 0.9 * inch, 1.6 * inch, 1.3 * inch])
        audit_table.setStyle(
            TableStyle([
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#1a3a5c")),
                ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("FONTSIZE", (0, 0), (-1, -1), 8),
                ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#cccccc")),
            ])
        )
        story.append(audit_table)

    story.append(Spacer(1, 0.3 * inch))
    story.append(Paragraph(receipt["disclaimer"], small))

    doc.build(story)
    logger.info("Exported PDF receipt for workflow %s", workflow_id)
    return buf.getvalue()
