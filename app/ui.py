# =========================
# app/ui.py
# =========================
from __future__ import annotations

import html

import streamlit as st

from registration.schemas import PHASE_ORDER, WorkflowPhase

_PHASE_LABELS = {
    WorkflowPhase.COLLECTING_FORM: "Details",
    WorkflowPhase.ENTITY_CREATED: "Record created",
    WorkflowPhase.DOCUMENT_UPLOADED: "Document verified",
    WorkflowPhase.LEDGER_ANCHORED: "Anchored",
}


def inject_theme() -> None:
    st.markdown(
        """
<style>
/* ============================================================
   OrganLink hospital portal theme
   - Dark sidebar, light canvas, white cards
   - Green accent
   - Phase stepper + status pills
   ============================================================ */

[data-testid="stSidebarNav"] { display: none !important; }

:root{
  --primary: 158 64% 18%;
  --primary-2: 158 64% 13%;
  --accent: 152 56% 36%;
  --sidebar-text: 150 30% 92%;

  --canvas: #F5F8F6;
  --card: #FFFFFF;
  --border: rgba(15,23,42,0.10);
  --muted: rgba(15,23,42,0.55);
  --text: rgba(15,23,42,0.92);

  --ok: 142 70% 33%;
  --ok-bg: 142 70% 95%;
  --warn: 38 92% 45%;
  --warn-bg: 38 92% 95%;
  --fail: 0 72% 45%;
  --fail-bg: 0 72% 95%;
}

.stApp { background: var(--canvas); }
.stApp, .stMarkdown, .stMarkdown p, .stCaption, label,
h1, h2, h3, h4, div[data-testid="stMarkdownContainer"] {
  color: var(--text) !important;
}
div.block-container { padding-top: 2.2rem; padding-bottom: 2.2rem; }

div[data-testid="stTextInput"] input,
div[data-testid="stNumberInput"] input,
div[data-testid="stTextArea"] textarea {
  background: #FFFFFF !important;
  color: var(--text) !important;
  border: 1px solid var(--border) !important;
  border-radius: 12px !important;
}

section[data-testid="stSidebar"]{
  background: hsl(var(--primary-2)) !important;
  border-right: 1px solid rgba(255,255,255,0.07);
}
section[data-testid="stSidebar"] *{ color: hsl(var(--sidebar-text)) !important; }
section[data-testid="stSidebar"] hr{ border-color: rgba(255,255,255,0.10) !important; }
section[data-testid="stSidebar"] .stRadio div[role="radiogroup"] > label{
  background: rgba(255,255,255,0.03);
  border: 1px solid rgba(255,255,255,0.08);
  border-radius: 14px;
  padding: 10px 12px;
  margin-bottom: 8px;
}

.stButton>button{ border-radius: 12px; border: 1px solid rgba(15,23,42,0.14); }
.stButton>button[kind="primary"]{
  background: hsl(var(--accent)) !important;
  border: 1px solid hsl(var(--accent)) !important;
  color: white !important;
}

.ol-card{
  background: var(--card);
  border: 1px solid var(--border);
  border-radius: 16px;
  padding: 16px;
}
.ol-title{ font-weight: 800; font-size: 16px; margin-bottom: 2px; color: var(--text); }
.ol-sub{ color: var(--muted); font-size: 13px; }

.ol-metric-label{ color: var(--muted); font-size: 13px; margin-bottom: 6px; }
.ol-metric-value{ font-size: 26px; font-weight: 900; color: var(--text); line-height: 1.0; word-break: break-all; }
.ol-metric-foot{ margin-top: 6px; color: var(--muted); font-size: 12px; }

.ol-pill{
  display:inline-block;
  padding: 6px 10px;
  border-radius: 999px;
  font-size: 12px;
  font-weight: 800;
  border: 1px solid rgba(15,23,42,0.08);
}
.ol-ok{ background: hsl(var(--ok-bg)); color: hsl(var(--ok)); }
.ol-warn{ background: hsl(var(--warn-bg)); color: hsl(var(--warn)); }
.ol-fail{ background: hsl(var(--fail-bg)); color: hsl(var(--fail)); }
.ol-todo{ background: #EEF2F7; color: rgba(15,23,42,0.60); }

.ol-steps{ display:flex; gap:8px; flex-wrap:wrap; margin: 6px 0 14px 0; }
</style>
        """,
        unsafe_allow_html=True,
    )


def _esc(x: str) -> str:
    """Escape any user/server-provided strings before injecting into HTML."""
    return html.escape(str(x or ""), quote=True)


def option_index(options, value, default: int = 0) -> int:
    """Position of *value* in *options* for a selectbox, or *default*."""
    try:
        return list(options).index(value)
    except ValueError:
        return default


def card_open(title: str, subtitle: str = "") -> None:
    sub = f'<div class="ol-sub">{_esc(subtitle)}</div>' if subtitle else ""
    st.markdown(
        f'<div class="ol-card"><div class="ol-title">{_esc(title)}</div>{sub}',
        unsafe_allow_html=True,
    )


def card_close() -> None:
    st.markdown("</div>", unsafe_allow_html=True)


def pill(text: str, tone: str = "todo") -> str:
    return f'<span class="ol-pill ol-{_esc(tone)}">{_esc(text)}</span>'


def phase_stepper(phase: WorkflowPhase, failed: bool = False) -> None:
    """One pill per phase: done, current (or failed), still to do."""
    current = WorkflowPhase(phase).index
    pills = []
    for p in PHASE_ORDER:
        if p.index < current or (p is WorkflowPhase.LEDGER_ANCHORED and p.index == current):
            tone = "ok"
        elif p.index == current:
            tone = "fail" if failed else "warn"
        else:
            tone = "todo"
        pills.append(pill(_PHASE_LABELS[p], tone))
    st.markdown(f'<div class="ol-steps">{"".join(pills)}</div>', unsafe_allow_html=True)


def metric_card(label: str, value: str, foot: str | None = None) -> None:
    """Plain-text metric (escaped)."""
    foot_html = f'<div class="ol-metric-foot">{_esc(foot)}</div>' if foot else ""
    st.markdown(
        f"""
<div class="ol-card">
  <div class="ol-metric-label">{_esc(label)}</div>
  <div class="ol-metric-value">{_esc(value)}</div>
  {foot_html}
</div>
        """,
        unsafe_allow_html=True,
    )
