"""
app/main.py

OrganLink hospital registration: Streamlit entry point.
- Hospital sign-in gate
- Register Patient / Register Donor workflows
- Saved registrations (resume + receipts)
- Global theme injection
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import streamlit as st

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

from registration.schemas import EntityKind  # noqa: E402
from storage.checkpoints import forget_session  # noqa: E402

# ---------------------------------------------------------------------------
# Page config
# ---------------------------------------------------------------------------
st.set_page_config(
    page_title="OrganLink Hospital",
    page_icon="🫀",
    layout="wide",
    initial_sidebar_state="expanded",
)

# ---------------------------------------------------------------------------
# Session defaults
# ---------------------------------------------------------------------------
if "current_page" not in st.session_state:
    st.session_state["current_page"] = "auth"


# ---------------------------------------------------------------------------
# Import helper (package vs script-root)
# ---------------------------------------------------------------------------
def _import(module_name: str, attr: str = "render"):
    """
    Import *attr* from a page module, handling both:
    - package-style imports: app.pages.<module>
    - script-root imports: pages.<module>
    """
    try:
        mod = __import__(f"app.pages.{module_name}", fromlist=[attr])
    except ModuleNotFoundError:
        mod = __import__(f"pages.{module_name}", fromlist=[attr])
    return getattr(mod, attr)


try:
    from app.state import clear_workflows, get_session
    from app.ui import inject_theme
except ModuleNotFoundError:
    from state import clear_workflows, get_session  # type: ignore
    from ui import inject_theme  # type: ignore


def _logout() -> None:
    forget_session(get_session())
    clear_workflows()
    st.session_state["current_page"] = "auth"
    st.rerun()


inject_theme()
session = get_session()

# ---------------------------------------------------------------------------
# Sidebar
# ---------------------------------------------------------------------------
st.sidebar.title("🫀 OrganLink")
st.sidebar.markdown("Patient and donor registration with document verification and blockchain anchoring.")
st.sidebar.divider()

if session.authenticated:
    st.sidebar.success(f"**{session.display_name}**\n\nHospital ID: **{session.hospital_id or '—'}**")
    if st.sidebar.button("↩️ Sign out"):
        _logout()
else:
    st.sidebar.info("Not signed in")

st.sidebar.divider()

# ---------------------------------------------------------------------------
# Navigation + routing
# ---------------------------------------------------------------------------
# key -> (label, render callable); only "auth" is reachable while signed out
PAGES = {
    "auth": ("Sign in", lambda: _import("auth")()),
    "register_patient": ("Register Patient", lambda: _import("register")(EntityKind.patient)),
    "register_donor": ("Register Donor", lambda: _import("register")(EntityKind.donor)),
    "registrations": ("Registrations", lambda: _import("registrations")()),
}

available = list(PAGES) if session.authenticated else ["auth"]
if st.session_state["current_page"] not in available:
    st.session_state["current_page"] = available[0]

page_key = st.sidebar.radio(
    "Navigate",
    options=available,
    index=available.index(st.session_state["current_page"]),
    format_func=lambda key: PAGES[key][0],
)
st.session_state["current_page"] = page_key

st.sidebar.divider()
st.sidebar.caption(
    "Documents are verified by the OrganLink service and pinned to IPFS. "
    "Saved registrations on this machine are encrypted with APP_DATA_KEY."
)

PAGES[page_key][1]()
