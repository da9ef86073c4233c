"""
app/pages/register.py

Register Patient / Register Donor.

One page per entity kind, driving the registration workflow phase by phase:
details + document -> record created -> document verified -> anchored.
Each phase has its own button, which doubles as the retry button after a
failure; earlier phases are never repeated.
"""

from __future__ import annotations

import streamlit as st

from registration.schemas import (
    BLOOD_TYPES,
    ORGAN_TYPES,
    URGENCY_LEVELS,
    EntityKind,
    VerificationType,
    WorkflowPhase,
)

try:
    from app.renderers import render_progress, render_step_result, render_verification
    from app.state import get_session, get_workflow, run
    from app.ui import card_close, card_open, inject_theme, option_index
except ModuleNotFoundError:
    from renderers import render_progress, render_step_result, render_verification  # type: ignore
    from state import get_session, get_workflow, run  # type: ignore
    from ui import card_close, card_open, inject_theme, option_index  # type: ignore

_GENDERS = ("Male", "Female", "Other")


def _details_form(orch) -> dict | None:
    """Render the details form.  Returns the submitted values, or None."""
    kind = orch.kind
    current = orch.form.fields

    with st.form(f"details_{kind.value}"):
        c1, c2 = st.columns(2)
        with c1:
            full_name = st.text_input("Full name", value=current.get("full_name", ""))
            age = st.number_input("Age", min_value=0, max_value=120, step=1, value=int(current.get("age") or 0))
            genders = ("",) + _GENDERS
            gender = st.selectbox("Gender", options=genders, index=option_index(genders, current.get("gender")))
            blood_types = ("",) + BLOOD_TYPES
            blood_type = st.selectbox(
                "Blood type", options=blood_types, index=option_index(blood_types, current.get("blood_type"))
            )
            contact_phone = st.text_input("Contact phone", value=current.get("contact_phone", ""))
            contact_email = st.text_input("Contact email", value=current.get("contact_email", ""))
        with c2:
            values: dict = {}
            if kind is EntityKind.patient:
                organs = ("",) + ORGAN_TYPES
                values["organ_needed"] = st.selectbox(
                    "Organ needed", options=organs, index=option_index(organs, current.get("organ_needed"))
                )
                values["urgency_level"] = st.selectbox(
                    "Urgency",
                    options=URGENCY_LEVELS,
                    index=option_index(
                        URGENCY_LEVELS, current.get("urgency_level"), URGENCY_LEVELS.index("medium")
                    ),
                )
                values["medical_condition"] = st.text_area(
                    "Medical condition", value=current.get("medical_condition") or "", height=90
                )
            else:
                values["organs_to_donate"] = st.multiselect(
                    "Organs to donate",
                    options=ORGAN_TYPES,
                    default=[o for o in current.get("organs_to_donate") or [] if o in ORGAN_TYPES],
                )
                values["medical_history"] = st.text_area(
                    "Medical history", value=current.get("medical_history") or "", height=90
                )
            guardian_name = st.text_input("Guardian name (optional)", value=current.get("guardian_name") or "")
            guardian_phone = st.text_input("Guardian phone (optional)", value=current.get("guardian_phone") or "")

        verification_types = [v.value for v in VerificationType]
        verification_type = st.radio(
            "Identity verification",
            options=verification_types,
            index=option_index(verification_types, current.get("verification_type")),
            format_func=lambda v: "Signature" if v == "signature" else "Aadhaar card",
            horizontal=True,
        )
        aadhaar_last4 = st.text_input(
            "Aadhaar last 4 digits (Aadhaar only)", value=current.get("aadhaar_last4") or "", max_chars=4
        )
        document = st.file_uploader(
            "Signature or Aadhaar image (PNG/JPG)",
            type=["png", "jpg", "jpeg"],
        )
        submitted = st.form_submit_button("Create record", type="primary", use_container_width=True)

    if not submitted:
        return None

    values.update(
        full_name=full_name,
        age=int(age),
        gender=gender,
        blood_type=blood_type,
        contact_phone=contact_phone,
        contact_email=contact_email,
        guardian_name=guardian_name,
        guardian_phone=guardian_phone,
        verification_type=verification_type,
        aadhaar_last4=aadhaar_last4,
    )
    values["_document"] = document
    return values


def _document_preview(orch) -> None:
    asset = orch.document.asset
    if asset is None:
        st.caption("No document attached.")
        return
    if orch.document.preview_png:
        st.image(orch.document.preview_png, caption=asset.filename, width=220)
    else:
        st.caption(asset.filename)


def _act(kind: EntityKind, result) -> None:
    """Keep the outcome for the next run and redraw in the new phase."""
    st.session_state[f"last_step_{kind.value}"] = result
    st.rerun()


def render(kind: EntityKind) -> None:
    inject_theme()
    kind = EntityKind(kind)
    label = "Patient" if kind is EntityKind.patient else "Donor"
    st.title(f"Register {label}")
    st.caption("Create the record, verify the identity document, then anchor it on the blockchain.")

    if not get_session().authenticated:
        st.warning("Please sign in.")
        st.session_state["current_page"] = "auth"
        st.rerun()
        return

    orch = get_workflow(kind)
    render_progress(orch.progress())
    last = st.session_state.pop(f"last_step_{kind.value}", None)
    if last is not None:
        render_step_result(last)

    if orch.sync_pending and st.button("Retry record update", use_container_width=True):
        _act(kind, run(orch.sync_entity()))

    if orch.phase is WorkflowPhase.COLLECTING_FORM:
        values = _details_form(orch)
        if values is None:
            return
        uploaded = values.pop("_document")
        if uploaded is not None:
            attached = orch.attach_document(uploaded.getvalue(), uploaded.name, uploaded.type)
            if not attached.ok:
                _act(kind, attached)
        orch.update_fields(values)
        with st.spinner("Creating the registration record…"):
            _act(kind, run(orch.submit()))

    elif orch.phase is WorkflowPhase.ENTITY_CREATED:
        card_open("Document", "This exact file is sent for OCR verification and pinned to IPFS.")
        _document_preview(orch)
        replacement = st.file_uploader("Use a different file", type=["png", "jpg", "jpeg"])
        card_close()
        report = orch.progress()
        busy = bool(report.in_flight) or report.auth_required
        button_text = "Retry upload" if report.last_error else "Upload & verify document"
        if st.button(button_text, type="primary", disabled=busy, use_container_width=True):
            if replacement is not None:
                attached = orch.attach_document(replacement.getvalue(), replacement.name, replacement.type)
                if not attached.ok:
                    _act(kind, attached)
            with st.spinner("Uploading document for OCR verification…"):
                _act(kind, run(orch.upload_document()))

    elif orch.phase is WorkflowPhase.DOCUMENT_UPLOADED:
        render_verification(orch)
        report = orch.progress()
        busy = bool(report.in_flight) or report.auth_required
        button_text = "Retry blockchain anchoring" if report.last_error else "Anchor on blockchain"
        if st.button(button_text, type="primary", disabled=busy, use_container_width=True):
            with st.spinner("Anchoring the verified document on the blockchain…"):
                _act(kind, run(orch.anchor_to_ledger()))

    else:
        render_verification(orch)
        if st.button(f"Register another {label.lower()}", type="primary", use_container_width=True):
            _act(kind, orch.restart())
