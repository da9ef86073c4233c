"""
app/pages/auth.py

Hospital sign-in:
- Hospital ID + password against the OrganLink API
- Optional "remember me" (encrypted token in the local store)
- Password reset request
"""

from __future__ import annotations

import streamlit as st

from registration.errors import WorkflowError
from registration.schemas import EntityKind
from storage.checkpoints import remember_session

try:
    from app.state import get_api, get_session, get_workflow, run
    from app.ui import card_close, card_open, inject_theme
except ModuleNotFoundError:
    from state import get_api, get_session, get_workflow, run  # type: ignore
    from ui import card_close, card_open, inject_theme  # type: ignore


def _resume_paused_workflows() -> None:
    """A workflow stopped by an expired session continues in the same phase."""
    for kind in EntityKind:
        key = f"workflow_{kind.value}"
        if key in st.session_state:
            get_workflow(kind).reauthenticate()


def render() -> None:
    inject_theme()
    session = get_session()
    api = get_api()

    colL, colR = st.columns([1.1, 1], gap="large")

    with colL:
        st.markdown(
            """
<div style="padding: 10px 4px;">
  <div style="font-weight:1000; font-size:40px; line-height:1.05;">OrganLink<br>hospital portal</div>
  <div style="margin-top:12px; color: rgba(15,23,42,0.60); font-size:15px; max-width:460px;">
    Register patients and donors, verify their signature or Aadhaar document,
    and anchor the verified record on the blockchain.
  </div>
</div>
            """,
            unsafe_allow_html=True,
        )

    with colR:
        if session.authenticated and session.hospital:
            card_open("Signed in", session.display_name)
            st.write(f"Hospital ID: **{session.hospital_id or '—'}**")
            card_close()
            return

        if session.authenticated and not session.hospital:
            # token restored from the local store; confirm it is still valid
            try:
                run(api.verify_session())
                st.session_state["current_page"] = "register_patient"
                st.rerun()
            except WorkflowError as exc:
                st.info(f"Saved session could not be restored: {exc.message}")

        card_open("Sign in", "Use the credentials issued to your hospital.")
        with st.form("hospital_login"):
            hospital_id = st.text_input("Hospital ID")
            password = st.text_input("Password", type="password")
            remember = st.checkbox("Keep me signed in on this machine", value=False)
            submitted = st.form_submit_button("Sign in", type="primary", use_container_width=True)
        card_close()

        if submitted:
            if not hospital_id.strip() or not password:
                st.error("Enter both hospital ID and password.")
                return
            try:
                run(api.login(hospital_id.strip(), password))
            except WorkflowError as exc:
                st.error(exc.message)
                return
            if remember:
                remember_session(session)
            _resume_paused_workflows()
            st.session_state["current_page"] = "register_patient"
            st.rerun()

        with st.expander("Forgot password?"):
            reset_id = st.text_input("Hospital ID", key="reset_hospital_id")
            reset_email = st.text_input("Registered email", key="reset_email")
            if st.button("Send reset link", use_container_width=True):
                try:
                    sent = run(api.request_password_reset(reset_id.strip(), reset_email.strip()))
                except WorkflowError as exc:
                    st.error(exc.message)
                else:
                    if sent:
                        st.success("If the details match, a reset link has been sent.")
                    else:
                        st.warning("The reset request was not accepted.")
