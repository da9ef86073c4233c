"""
app/pages/registrations.py

Saved registrations on this machine:
- List checkpoints (newest first), filterable by patient / donor
- Resume an unfinished registration in its last committed phase
- Download a JSON or PDF verification receipt
"""

from __future__ import annotations

import streamlit as st

from registration.orchestrator import VerificationOrchestrator
from registration.schemas import EntityKind
from storage.checkpoints import list_records, load_snapshot
from storage.export import export_json, export_pdf

try:
    from app.state import get_api, get_checkpointer, get_session, set_workflow
    from app.ui import card_close, card_open, inject_theme, pill
except ModuleNotFoundError:
    from state import get_api, get_checkpointer, get_session, set_workflow  # type: ignore
    from ui import card_close, card_open, inject_theme, pill  # type: ignore


def _resume(workflow_id: str) -> None:
    snapshot = load_snapshot(workflow_id)
    if snapshot is None:
        st.error("This registration cannot be read with the current data key.")
        return
    orch = VerificationOrchestrator.resume(snapshot, get_api(), checkpointer=get_checkpointer())
    set_workflow(orch)
    st.session_state["current_page"] = f"register_{orch.kind.value}"
    st.rerun()


def render() -> None:
    inject_theme()
    st.title("Registrations")
    st.caption("Registrations started on this machine. Unfinished ones can be resumed where they stopped.")

    if not get_session().authenticated:
        st.warning("Please sign in.")
        st.session_state["current_page"] = "auth"
        st.rerun()
        return

    get_checkpointer()
    choice = st.radio("Show", options=["all", "patient", "donor"], horizontal=True)
    records = list_records(None if choice == "all" else EntityKind(choice))

    if not records:
        st.info("No registrations saved yet.")
        return

    for rec in records:
        card_open(
            f"{rec.entity_kind.value.capitalize()} · {rec.entity_id or 'not created yet'}",
            f"Started {rec.created_at[:19].replace('T', ' ')} · updated {rec.updated_at[:19].replace('T', ' ')}",
        )
        tone = "ok" if rec.completed else "warn"
        st.markdown(pill(rec.phase.value.replace("_", " "), tone), unsafe_allow_html=True)

        c1, c2, c3 = st.columns(3)
        with c1:
            if not rec.completed and st.button("Resume", key=f"resume_{rec.workflow_id}", use_container_width=True):
                _resume(rec.workflow_id)
        with c2:
            data = export_json(rec.workflow_id)
            if data is not None:
                st.download_button(
                    "Receipt (JSON)",
                    data=data,
                    file_name=f"organlink_{rec.workflow_id}.json",
                    mime="application/json",
                    key=f"json_{rec.workflow_id}",
                    use_container_width=True,
                )
        with c3:
            if rec.completed and st.button("Build PDF", key=f"pdfbuild_{rec.workflow_id}", use_container_width=True):
                pdf = export_pdf(rec.workflow_id)
                if pdf is not None:
                    st.download_button(
                        "Download PDF",
                        data=pdf,
                        file_name=f"organlink_{rec.workflow_id}.pdf",
                        mime="application/pdf",
                        key=f"pdf_{rec.workflow_id}",
                        use_container_width=True,
                    )
        card_close()
