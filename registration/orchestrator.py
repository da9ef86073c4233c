"""
registration/orchestrator.py

Drives one patient / donor registration through its three network phases:

    submit()            COLLECTING_FORM   -> ENTITY_CREATED     create the record
    upload_document()   ENTITY_CREATED    -> DOCUMENT_UPLOADED  OCR + IPFS pinning
    anchor_to_ledger()  DOCUMENT_UPLOADED -> LEDGER_ANCHORED    digest on the ledger

Rules
-----
- One network call per phase.  A failure never rolls back an earlier phase
  and a retry only re-attempts the failed phase (no duplicate records).
- A call for a phase that is already in flight is a no-op (``duplicate``),
  and field or document edits are rejected while any phase is in flight.
- Calls out of order are rejected without touching the network.
- Failures are returned inside a ``StepResult``; nothing is raised to the
  caller.
- The content digest is computed once, from the exact uploaded bytes, and is
  reused by every anchoring attempt.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Protocol
from uuid import uuid4

from registration.documents import DocumentAsset, DocumentCapture
from registration.errors import (
    AuthError,
    InvalidTransitionError,
    ValidationError,
    WorkflowError,
)
from registration.forms import FormCollector, creation_payload, generate_national_id
from registration.confidence import confidence_bps
from registration.progress import PhaseTracker, ProgressReport, StepResult
from registration.schemas import (
    DonorForm,
    EntityKind,
    PatientForm,
    RegistrationEntity,
    VerificationResult,
    WorkflowPhase,
    WorkflowSnapshot,
)

logger = logging.getLogger(__name__)


class Checkpointer(Protocol):
    def save(self, snapshot: WorkflowSnapshot) -> None: ...

    def record(self, workflow_id: str, action: str, phase: str, detail: str | None = None) -> None: ...


class VerificationOrchestrator:
    """One registration workflow instance.  Instances share no state."""

    def __init__(
        self,
        kind: EntityKind,
        api: Any,
        *,
        checkpointer: Optional[Checkpointer] = None,
        workflow_id: Optional[str] = None,
        digest_algorithm: Optional[str] = None,
        max_document_bytes: Optional[int] = None,
    ) -> None:
        self.kind = EntityKind(kind)
        self.api = api
        self.checkpointer = checkpointer
        config = getattr(api, "config", None)
        self.digest_algorithm = digest_algorithm or getattr(config, "digest_algorithm", "sha256")
        self.max_document_bytes = max_document_bytes or getattr(config, "max_document_bytes", 10 * 1024 * 1024)
        self._reset(workflow_id)

    def _reset(self, workflow_id: Optional[str] = None) -> None:
        self.workflow_id = workflow_id or str(uuid4())
        self.form = FormCollector(self.kind)
        self.document = DocumentCapture(max_bytes=self.max_document_bytes)
        self.tracker = PhaseTracker()
        self.entity = RegistrationEntity(kind=self.kind)
        self.verification = VerificationResult()
        self.national_id: Optional[str] = None
        self.sync_pending = False
        # the exact asset sent to OCR; anchoring always hashes this one
        self._uploaded_asset: Optional[DocumentAsset] = None
        self.created_at = datetime.now(tz=timezone.utc)

    # -----------------------------------------------------------------
    # Read-only views
    # -----------------------------------------------------------------
    @property
    def phase(self) -> WorkflowPhase:
        return self.tracker.phase

    @property
    def entity_id(self) -> Optional[str]:
        return self.entity.id

    @property
    def digest(self) -> Optional[str]:
        asset = self._uploaded_asset or self.document.asset
        return asset.digest if asset is not None else None

    @property
    def session(self):
        return self.api.session

    def progress(self) -> ProgressReport:
        bps = self.verification.confidence_bps if self.verification.storage_address else None
        return self.tracker.report(self.entity.id, bps, self.sync_pending)

    # -----------------------------------------------------------------
    # Client-side input (no network)
    # -----------------------------------------------------------------
    def update_field(self, field: str, value: Any) -> StepResult:
        return self._local("update", lambda: self.form.update(field, value))

    def update_fields(self, values: dict[str, Any]) -> StepResult:
        return self._local("update", lambda: self.form.update_many(values))

    def attach_document(self, data: bytes, filename: str, content_type: str | None = None) -> StepResult:
        return self._local("attach", lambda: self.document.select(data, filename, content_type))

    def _local(self, trigger: str, fn: Callable[[], Any]) -> StepResult:
        if self.tracker.in_flight:
            err = InvalidTransitionError(
                f"Cannot change the registration while '{self.tracker.in_flight}' is in progress.",
                phase=trigger,
            )
            return StepResult(trigger=trigger, phase=self.phase, status="rejected", error=err)
        try:
            fn()
        except ValidationError as exc:
            exc.with_phase(trigger)
            return StepResult(trigger=trigger, phase=self.phase, status="rejected", error=exc)
        return StepResult(trigger=trigger, phase=self.phase, status="ok")

    # -----------------------------------------------------------------
    # Phases
    # -----------------------------------------------------------------
    async def submit(self) -> StepResult:
        return await self._run("submit", self._create_entity)

    async def upload_document(self) -> StepResult:
        return await self._run("upload", self._upload_document)

    async def anchor_to_ledger(self) -> StepResult:
        return await self._run("anchor", self._anchor)

    async def sync_entity(self) -> StepResult:
        """Retry pushing the signature fields to the entity record."""
        trigger = "sync"
        if not self.sync_pending:
            return StepResult(trigger=trigger, phase=self.phase, status="ok")
        if not self.tracker.begin(trigger):
            return StepResult(trigger=trigger, phase=self.phase, status="duplicate")
        try:
            error = await self._push_signature()
        finally:
            self.tracker.end(trigger)
        self._checkpoint("sync", "ok" if error is None else error.kind)
        if error is not None:
            return StepResult(trigger=trigger, phase=self.phase, status="failed", error=error)
        return StepResult(trigger=trigger, phase=self.phase, status="ok")

    async def _run(self, trigger: str, action: Callable[[], Awaitable[None]]) -> StepResult:
        try:
            self.tracker.check(trigger)
        except (InvalidTransitionError, AuthError) as exc:
            logger.warning("Workflow %s: %s rejected: %s", self.workflow_id, trigger, exc.message)
            return StepResult(trigger=trigger, phase=self.phase, status="rejected", error=exc)

        if not self.tracker.begin(trigger):
            logger.info("Workflow %s: %s already in flight; ignoring duplicate call.", self.workflow_id, trigger)
            return StepResult(trigger=trigger, phase=self.phase, status="duplicate")

        try:
            await action()
        except WorkflowError as exc:
            exc.with_phase(trigger)
            self.tracker.fail(exc)
            logger.warning("Workflow %s: %s failed (%s): %s", self.workflow_id, trigger, exc.kind, exc.message)
            self._checkpoint(trigger, exc.kind)
            return StepResult(trigger=trigger, phase=self.phase, status="failed", error=exc)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Workflow %s: unexpected error during %s", self.workflow_id, trigger)
            err = WorkflowError(f"Unexpected error: {exc}", phase=trigger)
            self.tracker.fail(err)
            self._checkpoint(trigger, err.kind)
            return StepResult(trigger=trigger, phase=self.phase, status="failed", error=err)
        finally:
            self.tracker.end(trigger)

        self.tracker.advance(trigger)
        if self.tracker.completed:
            self.document.release()
        self._checkpoint(trigger, "ok")
        return StepResult(trigger=trigger, phase=self.phase, status="ok")

    async def _create_entity(self) -> None:
        form = self.form.validate(has_document=self.document.has_document)
        if self.national_id is None:
            self.national_id = generate_national_id(self.kind)
        payload = creation_payload(form, self.national_id)

        created = await self.api.create_entity(self.kind, payload)

        self.form.mark_submitted(form)
        self.entity = RegistrationEntity(kind=self.kind, id=created.id, attributes=payload)
        logger.info("Workflow %s: %s record created as %s.", self.workflow_id, self.kind.value, created.id)

    async def _upload_document(self) -> None:
        asset = self.document.asset
        if asset is None or not asset.data:
            raise ValidationError("No document attached.", fields=["document"])
        form = self.form.form
        asset.fingerprint(self.digest_algorithm)

        receipt = await self.api.upload_document(
            self.kind,
            self.entity.id,
            asset,
            full_name=form.full_name,
            verification_type=getattr(form.verification_type, "value", form.verification_type),
            aadhaar_last4=form.aadhaar_last4,
        )

        self.document.lock(asset)
        self._uploaded_asset = asset
        self.verification = VerificationResult(
            storage_address=receipt.storage_address,
            confidence_bps=confidence_bps(receipt.confidence),
            verified=receipt.verified,
            file_name=receipt.file_name,
        )
        self.entity.signature_ipfs_hash = receipt.storage_address
        self.entity.signature_verified = receipt.verified
        logger.info(
            "Workflow %s: document pinned at %s (score %d bps, verified=%s).",
            self.workflow_id, receipt.storage_address, self.verification.confidence_bps, receipt.verified,
        )
        await self._sync_after_phase()

    async def _anchor(self) -> None:
        if not self.verification.storage_address:
            raise InvalidTransitionError("Upload the document before anchoring.", phase="anchor")
        asset = self._uploaded_asset
        if asset is None:
            raise ValidationError("The uploaded document is no longer available.", fields=["document"])
        digest = asset.fingerprint(self.digest_algorithm)

        receipt = await self.api.anchor_to_ledger(
            self.kind,
            self.entity.id,
            self.verification.storage_address,
            digest,
            self.verification.confidence_bps,
            self.verification.verified,
        )

        self.verification.ledger_tx_hash = receipt.ledger_tx_hash
        self.entity.blockchain_hash = receipt.ledger_tx_hash
        self.entity.signature_verified = True
        logger.info("Workflow %s: anchored in tx %s.", self.workflow_id, receipt.ledger_tx_hash)
        await self._sync_after_phase()

    async def _sync_after_phase(self) -> None:
        self.sync_pending = True
        error = await self._push_signature()
        if error is not None:
            logger.warning(
                "Workflow %s: entity %s signature fields not updated (%s); marked for sync.",
                self.workflow_id, self.entity.id, error.kind,
            )

    async def _push_signature(self) -> Optional[WorkflowError]:
        try:
            await self.api.update_signature(
                self.kind,
                self.entity.id,
                self.entity.signature_ipfs_hash,
                self.entity.signature_verified,
                self.entity.blockchain_hash,
            )
        except WorkflowError as exc:
            return exc.with_phase("sync")
        self.sync_pending = False
        return None

    # -----------------------------------------------------------------
    # Session / lifecycle
    # -----------------------------------------------------------------
    def reauthenticate(self) -> bool:
        """Resume after the caller has signed in again.  The phase is unchanged."""
        if not getattr(self.session, "authenticated", False):
            return False
        self.tracker.reauthenticated()
        logger.info("Workflow %s: re-authenticated in phase %s.", self.workflow_id, self.phase.value)
        return True

    def restart(self) -> StepResult:
        """Start a fresh registration ("register another")."""
        if self.tracker.in_flight:
            err = InvalidTransitionError("Cannot restart while a step is in progress.", phase="restart")
            return StepResult(trigger="restart", phase=self.phase, status="rejected", error=err)
        previous = self.workflow_id
        self._reset()
        logger.info("Workflow %s restarted as %s.", previous, self.workflow_id)
        return StepResult(trigger="restart", phase=self.phase, status="ok")

    # -----------------------------------------------------------------
    # Checkpoints
    # -----------------------------------------------------------------
    def snapshot(self) -> WorkflowSnapshot:
        form = self.form.form
        return WorkflowSnapshot(
            workflow_id=self.workflow_id,
            kind=self.kind,
            phase=self.phase,
            national_id=self.national_id,
            form=form.model_dump(mode="json") if form is not None else self.form.fields,
            entity=self.entity.model_copy(deep=True),
            verification=self.verification.model_copy(),
            document=self.document.snapshot(include_bytes=not self.tracker.completed),
            sync_pending=self.sync_pending,
            created_at=self.created_at,
            updated_at=datetime.now(tz=timezone.utc),
        )

    @classmethod
    def resume(
        cls,
        snapshot: WorkflowSnapshot,
        api: Any,
        *,
        checkpointer: Optional[Checkpointer] = None,
        digest_algorithm: Optional[str] = None,
    ) -> "VerificationOrchestrator":
        """Rebuild a workflow in its last committed phase."""
        orch = cls(
            snapshot.kind,
            api,
            checkpointer=checkpointer,
            workflow_id=snapshot.workflow_id,
            digest_algorithm=digest_algorithm,
        )
        orch.tracker = PhaseTracker(snapshot.phase)
        orch.national_id = snapshot.national_id
        orch.created_at = snapshot.created_at
        orch.sync_pending = snapshot.sync_pending
        orch.verification = snapshot.verification.model_copy()
        if snapshot.entity is not None:
            orch.entity = snapshot.entity.model_copy(deep=True)
        orch.document = DocumentCapture.restore(snapshot.document, max_bytes=orch.max_document_bytes)
        if orch.document.locked:
            orch._uploaded_asset = orch.document.asset

        orch.form = FormCollector(orch.kind, initial=snapshot.form or {})
        if orch.phase is not WorkflowPhase.COLLECTING_FORM and snapshot.form:
            model = PatientForm if orch.kind is EntityKind.patient else DonorForm
            orch.form.mark_submitted(model(**snapshot.form))
        logger.info("Workflow %s resumed in phase %s.", orch.workflow_id, orch.phase.value)
        return orch

    def _checkpoint(self, action: str, outcome: str) -> None:
        if self.checkpointer is None:
            return
        try:
            self.checkpointer.save(self.snapshot())
            self.checkpointer.record(self.workflow_id, action, self.phase.value, outcome)
        except Exception:  # noqa: BLE001
            logger.exception("Workflow %s: checkpoint after %s could not be saved.", self.workflow_id, action)
