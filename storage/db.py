"""
storage/db.py

SQLite backend for registration checkpoints.

Schema
------
workflows          : one row per registration (non-PHI metadata in the clear)
workflow_payloads  : encrypted snapshot per registration
audit_log          : append-only record of phase attempts and outcomes
sessions           : encrypted bearer token per portal

Names, contact details and document bytes only ever appear inside
workflow_payloads.encrypted_blob, which is encrypted by storage.crypto.

Usage
-----
    from storage.db import init_db, upsert_workflow, get_workflow, ...
    init_db()                  # once at startup
"""

import logging
import os
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from storage.crypto import decrypt_json, decrypt_text, encrypt_json, encrypt_text

logger = logging.getLogger(__name__)

_PROJECT_ROOT = Path(__file__).resolve().parents[1]
_DEFAULT_DB_PATH: Path = _PROJECT_ROOT / "data" / "organlink_workflows.db"


def db_path() -> Path:
    """ORGANLINK_DB_PATH if set, else data/organlink_workflows.db in the project."""
    override = os.environ.get("ORGANLINK_DB_PATH")
    return Path(override) if override else _DEFAULT_DB_PATH


def _connect() -> sqlite3.Connection:
    path = db_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA foreign_keys=ON;")
    return conn


_DDL = """
CREATE TABLE IF NOT EXISTS workflows (
    workflow_id  TEXT PRIMARY KEY,
    entity_kind  TEXT NOT NULL CHECK(entity_kind IN ('patient', 'donor')),
    phase        TEXT NOT NULL,
    entity_id    TEXT,                       -- server id, NULL until created
    created_at   TEXT NOT NULL,              -- ISO-8601 UTC
    updated_at   TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS workflow_payloads (
    workflow_id    TEXT PRIMARY KEY REFERENCES workflows(workflow_id) ON DELETE CASCADE,
    encrypted_blob TEXT NOT NULL             -- Fernet token from crypto.py
);

CREATE TABLE IF NOT EXISTS audit_log (
    id           INTEGER PRIMARY KEY AUTOINCREMENT,
    workflow_id  TEXT NOT NULL REFERENCES workflows(workflow_id) ON DELETE CASCADE,
    action       TEXT NOT NULL,              -- submit | upload | anchor | sync
    phase        TEXT NOT NULL,              -- phase after the action
    detail       TEXT,                       -- 'ok' or the error kind
    timestamp    TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS sessions (
    portal          TEXT PRIMARY KEY,
    encrypted_token TEXT NOT NULL,
    updated_at      TEXT NOT NULL
);
"""


def init_db() -> None:
    """Create all tables if missing.  Idempotent."""
    with _connect() as conn:
        conn.executescript(_DDL)
    logger.info("Database initialised at %s", db_path())


def _now() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Workflows
# ---------------------------------------------------------------------------

def upsert_workflow(
    workflow_id: str,
    entity_kind: str,
    phase: str,
    entity_id: str | None,
    payload: dict,
    created_at: str | None = None,
) -> dict[str, Any]:
    """
    Insert or update a workflow row and replace its encrypted payload.

    Returns:
        The metadata row as a dict (no payload).
    """
    now = _now()
    encrypted = encrypt_json(payload)

    with _connect() as conn:
        conn.execute(
            """
            INSERT INTO workflows (workflow_id, entity_kind, phase, entity_id, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(workflow_id) DO UPDATE SET
                phase = excluded.phase,
                entity_id = excluded.entity_id,
                updated_at = excluded.updated_at
            """,
            (workflow_id, entity_kind, phase, entity_id, created_at or now, now),
        )
        conn.execute(
            """
            INSERT INTO workflow_payloads (workflow_id, encrypted_blob) VALUES (?, ?)
            ON CONFLICT(workflow_id) DO UPDATE SET encrypted_blob = excluded.encrypted_blob
            """,
            (workflow_id, encrypted),
        )
        row = conn.execute("SELECT * FROM workflows WHERE workflow_id = ?", (workflow_id,)).fetchone()

    logger.debug("Saved workflow %s (phase=%s)", workflow_id, phase)
    return dict(row)


def get_workflow(workflow_id: str) -> dict[str, Any] | None:
    """
    Return the metadata row plus the decrypted payload under ``'payload'``,
    or ``None`` if the workflow does not exist.
    """
    with _connect() as conn:
        row = conn.execute(
            """
            SELECT w.*, p.encrypted_blob
            FROM workflows w
            JOIN workflow_payloads p ON p.workflow_id = w.workflow_id
            WHERE w.workflow_id = ?
            """,
            (workflow_id,),
        ).fetchone()

    if row is None:
        return None
    data = dict(row)
    data["payload"] = decrypt_json(data.pop("encrypted_blob"))
    return data


def list_workflows(entity_kind: str | None = None) -> list[dict[str, Any]]:
    """Metadata rows, most recently updated first.  Payloads are not decrypted."""
    sql = "SELECT * FROM workflows"
    params: tuple = ()
    if entity_kind:
        sql += " WHERE entity_kind = ?"
        params = (entity_kind,)
    sql += " ORDER BY updated_at DESC"
    with _connect() as conn:
        rows = conn.execute(sql, params).fetchall()
    return [dict(r) for r in rows]


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------

def append_audit(
    workflow_id: str,
    action: str,
    phase: str,
    detail: str | None = None,
    *,
    _conn: sqlite3.Connection | None = None,
) -> None:
    sql = """
        INSERT INTO audit_log (workflow_id, action, phase, detail, timestamp)
        VALUES (?, ?, ?, ?, ?)
    """
    params = (workflow_id, action, phase, detail, _now())

    if _conn is not None:
        _conn.execute(sql, params)
    else:
        with _connect() as conn:
            conn.execute(sql, params)

    logger.debug("Audit: workflow=%s action=%s phase=%s detail=%s", workflow_id, action, phase, detail)


def get_audit(workflow_id: str) -> list[dict[str, Any]]:
    with _connect() as conn:
        rows = conn.execute(
            "SELECT * FROM audit_log WHERE workflow_id = ? ORDER BY id ASC",
            (workflow_id,),
        ).fetchall()
    return [dict(r) for r in rows]


# ---------------------------------------------------------------------------
# Session tokens
# ---------------------------------------------------------------------------

def save_session_token(portal: str, token: str) -> None:
    with _connect() as conn:
        conn.execute(
            """
            INSERT INTO sessions (portal, encrypted_token, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(portal) DO UPDATE SET
                encrypted_token = excluded.encrypted_token,
                updated_at = excluded.updated_at
            """,
            (portal, encrypt_text(token), _now()),
        )
    logger.info("Stored session token for portal '%s'.", portal)


def load_session_token(portal: str) -> str | None:
    with _connect() as conn:
        row = conn.execute(
            "SELECT encrypted_token FROM sessions WHERE portal = ?", (portal,)
        ).fetchone()
    if row is None:
        return None
    return decrypt_text(row["encrypted_token"])


def clear_session_token(portal: str) -> None:
    with _connect() as conn:
        conn.execute("DELETE FROM sessions WHERE portal = ?", (portal,))
    logger.info("Cleared session token for portal '%s'.", portal)
