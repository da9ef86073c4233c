"""
storage/models.py

Pydantic v2 records returned by the checkpoint layer (checkpoints.py).

These are NOT ORM models; persistence is handled entirely by db.py.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from registration.schemas import EntityKind, WorkflowPhase


class WorkflowRecord(BaseModel):
    """Metadata row of a saved registration (no PHI)."""
    workflow_id: str
    entity_kind: EntityKind
    phase: WorkflowPhase
    entity_id: str | None = None
    created_at: str = Field(description="ISO-8601 UTC timestamp.")
    updated_at: str = Field(description="ISO-8601 UTC timestamp.")

    @property
    def completed(self) -> bool:
        return self.phase is WorkflowPhase.LEDGER_ANCHORED


class AuditEntry(BaseModel):
    """One row of the append-only audit log."""
    id: int
    workflow_id: str
    action: str
    phase: str
    detail: str | None = None
    timestamp: str
