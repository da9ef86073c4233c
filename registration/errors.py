"""
registration/errors.py

Failure kinds surfaced by the registration workflow.

Every error carries the phase it happened in (``phase``) and whether the
same phase may simply be attempted again (``retryable``).  The orchestrator
never lets these escape: they are returned inside a ``StepResult``.
"""

from __future__ import annotations

from typing import Any


class WorkflowError(Exception):
    """Base class for every workflow failure."""

    retryable: bool = True
    kind: str = "workflow_error"

    def __init__(
        self,
        message: str,
        *,
        phase: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.phase = phase
        self.status_code = status_code
        self.details = details or {}

    def with_phase(self, phase: str) -> "WorkflowError":
        if self.phase is None:
            self.phase = phase
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "phase": self.phase,
            "retryable": self.retryable,
            "status_code": self.status_code,
            "details": self.details,
        }

    def __str__(self) -> str:
        if self.phase:
            return f"[{self.phase}] {self.message}"
        return self.message


class ValidationError(WorkflowError):
    """
    Client-correctable input problem.

    Raised locally (no network call) for missing/out-of-range fields, and by
    the API adapter for 4xx responses to entity creation.  ``fields`` lists
    the offending field names when known.
    """

    retryable = False
    kind = "validation_error"

    def __init__(self, message: str, *, fields: list[str] | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.fields = list(fields or [])

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["fields"] = self.fields
        return data


class ServerError(WorkflowError):
    kind = "server_error"


class UploadError(WorkflowError):
    """Malformed or oversized document rejected by the upload endpoint."""
    kind = "upload_error"


class OcrError(WorkflowError):
    """Verification engine unavailable or unable to process the document."""
    kind = "ocr_error"


class LedgerError(WorkflowError):
    """Ledger anchoring failed (network congestion, signer unavailable)."""
    kind = "ledger_error"


class AuthError(WorkflowError):
    """Missing or rejected bearer token.  The caller must re-authenticate."""

    retryable = False
    kind = "auth_error"


class NetworkError(WorkflowError):
    """Timeout or transport failure.  Always retryable at the current phase."""
    kind = "network_error"


class InvalidTransitionError(WorkflowError):
    """The state machine rejected the call; nothing was sent."""

    retryable = False
    kind = "invalid_transition"


class DocumentLockedError(ValidationError):
    kind = "document_locked"


class FormLockedError(ValidationError):
    kind = "form_locked"
