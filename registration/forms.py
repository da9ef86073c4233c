"""
registration/forms.py

Form collection for patient / donor registration.

Fields can be updated freely while the form is open; nothing is checked per
keystroke.  ``validate()`` runs every check at once and returns the immutable
form model.  Once the record exists, ``mark_submitted()`` locks the collector
and it refuses edits; changing data means restarting the workflow.
"""

from __future__ import annotations

import logging
import re
import secrets
import time
from datetime import date
from typing import Any, Union

import pydantic

from registration.errors import FormLockedError, ValidationError
from registration.schemas import (
    BLOOD_TYPES,
    ORGAN_TYPES,
    URGENCY_LEVELS,
    DonorForm,
    EntityKind,
    PatientForm,
    VerificationType,
)

logger = logging.getLogger(__name__)

RegistrationForm = Union[PatientForm, DonorForm]

_REQUIRED: dict[EntityKind, tuple[str, ...]] = {
    EntityKind.patient: (
        "full_name", "age", "gender", "blood_type", "organ_needed",
        "urgency_level", "contact_phone", "contact_email",
    ),
    EntityKind.donor: (
        "full_name", "age", "gender", "blood_type", "contact_phone", "contact_email",
    ),
}

_AGE_RANGE: dict[EntityKind, tuple[int, int]] = {
    EntityKind.patient: (1, 120),
    EntityKind.donor: (18, 80),
}

_AADHAAR_LAST4 = re.compile(r"^\d{4}$")


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set)):
        return len(value) == 0
    # age 0 is the untouched default of the form
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value == 0
    return False


def _coerce_age(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class FormCollector:
    """Collects field updates for one registration and validates them on submit."""

    def __init__(self, kind: EntityKind, initial: dict[str, Any] | None = None) -> None:
        self.kind = EntityKind(kind)
        self._fields: dict[str, Any] = {"urgency_level": "medium"} if self.kind is EntityKind.patient else {}
        self._fields.update(initial or {})
        self._frozen: RegistrationForm | None = None

    @property
    def fields(self) -> dict[str, Any]:
        return dict(self._fields)

    @property
    def frozen(self) -> bool:
        return self._frozen is not None

    @property
    def form(self) -> RegistrationForm | None:
        return self._frozen

    def update(self, field: str, value: Any) -> None:
        if self._frozen is not None:
            raise FormLockedError(
                "Registration details are already submitted; restart to change them.",
                fields=[field],
            )
        self._fields[field] = value

    def update_many(self, values: dict[str, Any]) -> None:
        for k, v in values.items():
            self.update(k, v)

    # -----------------------------------------------------------------
    # Submit-time validation
    # -----------------------------------------------------------------
    def validate(self, has_document: bool) -> RegistrationForm:
        """
        Run every submit-time check and build the form model.

        Raises:
            ValidationError: listing the offending fields.  No network call
                is ever made on this path.
        """
        if self._frozen is not None:
            return self._frozen

        data = dict(self._fields)

        missing = [f for f in _REQUIRED[self.kind] if _is_blank(data.get(f))]
        if missing:
            raise ValidationError(
                f"Please fill in required fields: {', '.join(missing)}",
                fields=missing,
            )

        age = _coerce_age(data.get("age"))
        low, high = _AGE_RANGE[self.kind]
        if age is None or not (low <= age <= high):
            label = "Patient" if self.kind is EntityKind.patient else "Donor"
            raise ValidationError(
                f"{label} age must be between {low} and {high} years",
                fields=["age"],
            )
        data["age"] = age

        if data.get("blood_type") not in BLOOD_TYPES:
            raise ValidationError(f"Unknown blood type '{data.get('blood_type')}'", fields=["blood_type"])

        if self.kind is EntityKind.patient:
            if data.get("organ_needed") not in ORGAN_TYPES:
                raise ValidationError(f"Unknown organ '{data.get('organ_needed')}'", fields=["organ_needed"])
            urgency = str(data.get("urgency_level", "")).strip().lower()
            if urgency not in URGENCY_LEVELS:
                raise ValidationError(f"Unknown urgency level '{data.get('urgency_level')}'", fields=["urgency_level"])
            data["urgency_level"] = urgency
        else:
            organs = list(data.get("organs_to_donate") or [])
            if not organs:
                raise ValidationError("Please select at least one organ to donate", fields=["organs_to_donate"])
            unknown = [o for o in organs if o not in ORGAN_TYPES]
            if unknown:
                raise ValidationError(f"Unknown organs: {', '.join(unknown)}", fields=["organs_to_donate"])
            data["organs_to_donate"] = tuple(organs)

        verification_type = data.get("verification_type") or VerificationType.signature.value
        if verification_type == VerificationType.aadhaar.value:
            if not _AADHAAR_LAST4.match(str(data.get("aadhaar_last4") or "")):
                raise ValidationError("Aadhaar verification needs the last 4 digits", fields=["aadhaar_last4"])
        data["verification_type"] = verification_type

        if not has_document:
            label = "Aadhaar card image" if verification_type == VerificationType.aadhaar.value else "signature image"
            raise ValidationError(f"Please upload a {label}", fields=["document"])

        model = PatientForm if self.kind is EntityKind.patient else DonorForm
        try:
            return model(**data)
        except pydantic.ValidationError as exc:
            fields = [str(err["loc"][0]) for err in exc.errors() if err.get("loc")]
            raise ValidationError(f"Invalid registration details: {exc.error_count()} error(s)", fields=fields) from exc

    def mark_submitted(self, form: RegistrationForm) -> None:
        """Lock the collector on an already-validated form (e.g. when resuming)."""
        self._frozen = form
        self._fields = form.model_dump(mode="json")
        logger.debug("Form frozen for %s registration.", self.kind.value)


# ---------------------------------------------------------------------------
# Creation payload
# ---------------------------------------------------------------------------


def generate_national_id(kind: EntityKind) -> str:
    """Client-side identifier, fixed once per workflow so a retried create is recognisable."""
    return f"{EntityKind(kind).id_prefix}_{int(time.time() * 1000)}_{secrets.token_hex(3)}"


def approximate_date_of_birth(age: int, today: date | None = None) -> str:
    year = (today or date.today()).year - int(age)
    return f"{year:04d}-01-01"


def creation_payload(form: RegistrationForm, national_id: str, today: date | None = None) -> dict[str, Any]:
    """JSON body for the entity-creation call."""
    payload = form.model_dump(mode="json")
    if isinstance(form, DonorForm):
        payload["organs_to_donate"] = list(form.organs_to_donate)
    if payload.get("verification_type") != VerificationType.aadhaar.value:
        payload.pop("aadhaar_last4", None)
    payload["date_of_birth"] = approximate_date_of_birth(form.age, today)
    payload["national_id"] = national_id
    return payload
