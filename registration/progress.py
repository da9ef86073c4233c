"""
registration/progress.py

Phase bookkeeping for one registration workflow.

The tracker owns the current ``WorkflowPhase``, the per-trigger in-flight
flags, and the last failure.  It knows which trigger is legal in which phase
and whether the current phase may be retried; it performs no I/O.
"""

from __future__ import annotations

import logging
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from registration.errors import AuthError, InvalidTransitionError, WorkflowError
from registration.schemas import WorkflowPhase

logger = logging.getLogger(__name__)

Trigger = Literal["submit", "upload", "anchor"]

# trigger -> (phase it must start from, phase it moves to)
TRANSITIONS: dict[str, tuple[WorkflowPhase, WorkflowPhase]] = {
    "submit": (WorkflowPhase.COLLECTING_FORM, WorkflowPhase.ENTITY_CREATED),
    "upload": (WorkflowPhase.ENTITY_CREATED, WorkflowPhase.DOCUMENT_UPLOADED),
    "anchor": (WorkflowPhase.DOCUMENT_UPLOADED, WorkflowPhase.LEDGER_ANCHORED),
}

_IN_FLIGHT_TEXT = {
    "submit": "Creating the registration record…",
    "upload": "Uploading document for OCR verification…",
    "anchor": "Anchoring the verified document on the blockchain…",
}


class StepResult(BaseModel):
    """Outcome of one orchestrator call.  Never raised, always returned."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    trigger: str
    phase: WorkflowPhase
    status: Literal["ok", "failed", "duplicate", "rejected"]
    error: Optional[WorkflowError] = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"


class ProgressReport(BaseModel):
    phase: WorkflowPhase
    status_text: str
    entity_id: Optional[str] = None
    retryable: dict[str, bool] = Field(default_factory=dict)
    in_flight: Optional[str] = None
    last_error: Optional[dict] = None
    auth_required: bool = False
    sync_pending: bool = False
    completed: bool = False


class PhaseTracker:
    """Forward-only state machine with per-trigger in-flight flags."""

    def __init__(self, phase: WorkflowPhase = WorkflowPhase.COLLECTING_FORM) -> None:
        self.phase = WorkflowPhase(phase)
        self.last_error: Optional[WorkflowError] = None
        self.auth_required = False
        self._in_flight: set[str] = set()

    @property
    def in_flight(self) -> Optional[str]:
        return next(iter(self._in_flight), None)

    @property
    def completed(self) -> bool:
        return self.phase is WorkflowPhase.LEDGER_ANCHORED

    def is_in_flight(self, trigger: str) -> bool:
        return trigger in self._in_flight

    def check(self, trigger: str) -> None:
        """
        Raise ``InvalidTransitionError`` unless *trigger* is legal right now.
        """
        source, _ = TRANSITIONS[trigger]
        if self.auth_required:
            raise AuthError(
                "Session expired or rejected; sign in again to continue.",
                phase=self.phase.value,
            )
        if self.phase is not source:
            raise InvalidTransitionError(
                f"'{trigger}' is only allowed in phase {source.value}; current phase is {self.phase.value}",
                phase=self.phase.value,
            )

    def begin(self, trigger: str) -> bool:
        """Mark *trigger* in flight.  Returns False if it already was."""
        if trigger in self._in_flight:
            return False
        self._in_flight.add(trigger)
        return True

    def end(self, trigger: str) -> None:
        self._in_flight.discard(trigger)

    def advance(self, trigger: str) -> WorkflowPhase:
        source, target = TRANSITIONS[trigger]
        if self.phase is not source:
            raise InvalidTransitionError(
                f"cannot move from {self.phase.value} to {target.value}",
                phase=self.phase.value,
            )
        logger.info("Workflow phase %s -> %s", self.phase.value, target.value)
        self.phase = target
        self.last_error = None
        return target

    def fail(self, error: WorkflowError) -> None:
        self.last_error = error
        if isinstance(error, AuthError):
            self.auth_required = True

    def reauthenticated(self) -> None:
        self.auth_required = False
        if isinstance(self.last_error, AuthError):
            self.last_error = None

    def retryable(self, trigger: str) -> bool:
        """
        True when *trigger* is the pending step and it may be attempted again
        without any other action from the user.
        """
        source, _ = TRANSITIONS[trigger]
        if self.phase is not source or self.auth_required or trigger in self._in_flight:
            return False
        if self.last_error is None:
            return True
        return bool(self.last_error.retryable)

    def status_text(self, entity_id: Optional[str] = None, confidence_bps: Optional[int] = None) -> str:
        if self._in_flight:
            return _IN_FLIGHT_TEXT[self.in_flight]

        if self.phase is WorkflowPhase.COLLECTING_FORM:
            text = "Fill in the registration details and attach the document."
        elif self.phase is WorkflowPhase.ENTITY_CREATED:
            text = f"Registered as {entity_id}. Upload the document for verification."
        elif self.phase is WorkflowPhase.DOCUMENT_UPLOADED:
            score = f" ({confidence_bps / 100:.2f}% confidence)" if confidence_bps is not None else ""
            text = f"Document verified{score}. Anchor it on the blockchain to finish."
        else:
            text = f"Registration {entity_id} is anchored on the blockchain."

        if self.auth_required:
            text += " Sign in again to continue."
        elif self.last_error is not None:
            text += f" Last attempt failed: {self.last_error.message}"
        return text

    def report(
        self,
        entity_id: Optional[str] = None,
        confidence_bps: Optional[int] = None,
        sync_pending: bool = False,
    ) -> ProgressReport:
        return ProgressReport(
            phase=self.phase,
            status_text=self.status_text(entity_id, confidence_bps),
            entity_id=entity_id,
            retryable={t: self.retryable(t) for t in TRANSITIONS},
            in_flight=self.in_flight,
            last_error=self.last_error.to_dict() if self.last_error else None,
            auth_required=self.auth_required,
            sync_pending=sync_pending,
            completed=self.completed,
        )
