# app/renderers.py
from __future__ import annotations

import streamlit as st

from app.ui import card_close, card_open, metric_card, phase_stepper, pill
from registration.progress import ProgressReport, StepResult


def render_step_result(result: StepResult) -> None:
    """Flash message for the outcome of the button that was just pressed."""
    if result.status == "ok":
        st.success(f"{result.trigger.capitalize()} completed.")
    elif result.status == "duplicate":
        st.info("That step is already running.")
    elif result.error is not None:
        fields = getattr(result.error, "fields", None)
        suffix = f" ({', '.join(fields)})" if fields else ""
        st.error(f"{result.error.message}{suffix}")


def render_progress(report: ProgressReport) -> None:
    """
    Phase stepper, status line, and the verification facts known so far.
    Never shows raw JSON.
    """
    phase_stepper(report.phase, failed=report.last_error is not None)

    if report.completed:
        st.success(report.status_text)
    elif report.last_error is not None:
        st.warning(report.status_text)
    else:
        st.info(report.status_text)

    if report.auth_required:
        st.error("Your session has expired. Sign in again; the registration will continue where it stopped.")
    if report.sync_pending:
        st.markdown(
            pill("Record update pending", "warn") + " The signature fields on the record are not saved yet.",
            unsafe_allow_html=True,
        )


def render_verification(orch) -> None:
    v = orch.verification
    card_open("Verification", "IPFS storage, OCR score and blockchain anchor for this registration.")
    c1, c2 = st.columns(2)
    with c1:
        metric_card("Record ID", orch.entity_id or "—", foot=orch.national_id)
        metric_card(
            "OCR score",
            f"{v.confidence_bps / 100:.2f}%" if v.storage_address else "—",
            foot=("verified" if v.verified else "not verified") if v.storage_address else None,
        )
    with c2:
        metric_card("IPFS hash", v.storage_address or "—")
        metric_card("Blockchain tx", v.ledger_tx_hash or "—", foot=orch.digest)
    card_close()
