"""
app/state.py

Per-browser-session objects for the Streamlit app.

Streamlit reruns the script on every interaction, so the hospital session,
the API adapter and the live registration workflows are kept in
``st.session_state``.  The checkpointer is process-wide (one SQLite file).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine, TypeVar

import streamlit as st

from client.api import HospitalApi
from client.config import ClientConfig
from client.session import HospitalSession
from registration.orchestrator import VerificationOrchestrator
from registration.schemas import EntityKind
from storage.checkpoints import WorkflowCheckpointer, restore_session

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CHECKPOINTER: WorkflowCheckpointer | None = None


def get_checkpointer() -> WorkflowCheckpointer:
    global _CHECKPOINTER
    if _CHECKPOINTER is None:
        _CHECKPOINTER = WorkflowCheckpointer()
    return _CHECKPOINTER


def run(coro: Coroutine[Any, Any, T]) -> T:
    """Run one orchestrator coroutine to completion from a Streamlit callback."""
    return asyncio.run(coro)


def get_session() -> HospitalSession:
    if "hospital_session" not in st.session_state:
        get_checkpointer()
        st.session_state["hospital_session"] = restore_session() or HospitalSession()
    return st.session_state["hospital_session"]


def get_api() -> HospitalApi:
    if "hospital_api" not in st.session_state:
        st.session_state["hospital_api"] = HospitalApi(get_session(), ClientConfig.from_env())
    return st.session_state["hospital_api"]


def _workflow_key(kind: EntityKind) -> str:
    return f"workflow_{EntityKind(kind).value}"


def get_workflow(kind: EntityKind) -> VerificationOrchestrator:
    key = _workflow_key(kind)
    if key not in st.session_state:
        st.session_state[key] = VerificationOrchestrator(kind, get_api(), checkpointer=get_checkpointer())
    return st.session_state[key]


def set_workflow(orch: VerificationOrchestrator) -> None:
    st.session_state[_workflow_key(orch.kind)] = orch


def clear_workflows() -> None:
    for kind in EntityKind:
        st.session_state.pop(_workflow_key(kind), None)
