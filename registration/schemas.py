"""
registration/schemas.py

Pydantic models for the hospital registration workflow:
- Patient / donor forms (frozen once validated)
- The server-side registration entity as seen by the client
- Verification result and phase bookkeeping
- Checkpoint snapshot used to resume a workflow
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from registration.confidence import Confidence


BLOOD_TYPES = ("A+", "A-", "B+", "B-", "AB+", "AB-", "O+", "O-")
ORGAN_TYPES = ("Kidney", "Liver", "Heart", "Lung", "Pancreas", "Cornea", "Bone Marrow")
URGENCY_LEVELS = ("low", "medium", "high", "critical")


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class EntityKind(str, Enum):
    """Which kind of record hospital staff are registering."""
    patient = "patient"
    donor = "donor"

    @property
    def id_prefix(self) -> str:
        return "PAT" if self is EntityKind.patient else "DON"


class VerificationType(str, Enum):
    signature = "signature"
    aadhaar = "aadhaar"


class WorkflowPhase(str, Enum):
    """Strictly forward-moving phases of one registration."""
    COLLECTING_FORM = "collecting_form"
    ENTITY_CREATED = "entity_created"
    DOCUMENT_UPLOADED = "document_uploaded"
    LEDGER_ANCHORED = "ledger_anchored"

    @property
    def index(self) -> int:
        return PHASE_ORDER.index(self)

    def next(self) -> Optional["WorkflowPhase"]:
        i = self.index
        return PHASE_ORDER[i + 1] if i + 1 < len(PHASE_ORDER) else None


PHASE_ORDER: list[WorkflowPhase] = [
    WorkflowPhase.COLLECTING_FORM,
    WorkflowPhase.ENTITY_CREATED,
    WorkflowPhase.DOCUMENT_UPLOADED,
    WorkflowPhase.LEDGER_ANCHORED,
]


# ---------------------------------------------------------------------------
# Forms
# ---------------------------------------------------------------------------


class _FormBase(BaseModel):
    model_config = ConfigDict(frozen=True, use_enum_values=True)

    full_name: str
    age: int
    gender: str
    blood_type: str
    contact_phone: str
    contact_email: str
    guardian_name: str = ""
    guardian_phone: str = ""
    verification_type: VerificationType = VerificationType.signature
    aadhaar_last4: str = ""


class PatientForm(_FormBase):
    organ_needed: str
    urgency_level: str = "medium"
    medical_condition: str = ""


class DonorForm(_FormBase):
    organs_to_donate: tuple[str, ...]
    medical_history: str = ""


# ---------------------------------------------------------------------------
# Server-side entity + verification state
# ---------------------------------------------------------------------------


class RegistrationEntity(BaseModel):
    """The patient/donor record as last confirmed by the backend."""
    model_config = ConfigDict(validate_assignment=True)

    kind: EntityKind
    id: Optional[str] = Field(default=None, description="Server-assigned; unknown until the entity is created.")
    attributes: dict[str, Any] = Field(default_factory=dict)
    signature_ipfs_hash: Optional[str] = None
    signature_verified: bool = False
    blockchain_hash: Optional[str] = None


class VerificationResult(BaseModel):
    """
    Built up incrementally: storage address, score and flag after the upload,
    ledger transaction hash after anchoring.
    """
    model_config = ConfigDict(validate_assignment=True)

    storage_address: Optional[str] = None
    confidence_bps: int = Field(default=0, ge=0, le=10000)
    verified: bool = False
    ledger_tx_hash: Optional[str] = None
    file_name: Optional[str] = None

    @model_validator(mode="after")
    def _ledger_requires_storage(self) -> "VerificationResult":
        if self.ledger_tx_hash and not self.storage_address:
            raise ValueError("ledger_tx_hash cannot be set before storage_address")
        return self


# ---------------------------------------------------------------------------
# Adapter return shapes
# ---------------------------------------------------------------------------


class CreatedEntity(BaseModel):
    id: str
    raw: dict[str, Any] = Field(default_factory=dict)


class UploadReceipt(BaseModel):
    storage_address: str
    confidence: Confidence
    verified: bool
    file_name: Optional[str] = None


class AnchorReceipt(BaseModel):
    ledger_tx_hash: str


# ---------------------------------------------------------------------------
# Checkpoint snapshot
# ---------------------------------------------------------------------------


class DocumentSnapshot(BaseModel):
    filename: str
    content_type: str
    data_b64: Optional[str] = None  # dropped once the workflow is complete
    digest: Optional[str] = None
    locked: bool = False


class WorkflowSnapshot(BaseModel):
    """Everything needed to resume a workflow in its last committed phase."""
    workflow_id: str = Field(default_factory=lambda: str(uuid4()))
    kind: EntityKind
    phase: WorkflowPhase = WorkflowPhase.COLLECTING_FORM
    national_id: Optional[str] = None
    form: Optional[dict[str, Any]] = None
    entity: Optional[RegistrationEntity] = None
    verification: VerificationResult = Field(default_factory=VerificationResult)
    document: Optional[DocumentSnapshot] = None
    sync_pending: bool = False
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)
