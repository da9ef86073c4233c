"""
client/session.py

Explicit hospital session passed to the API adapter and orchestrator.

Holds the bearer token and the signed-in hospital profile.  Nothing here is
global: each signed-in staff member gets their own object.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from registration.errors import AuthError

logger = logging.getLogger(__name__)


class HospitalSession:
    portal = "hospital"

    def __init__(self, token: Optional[str] = None, hospital: Optional[dict[str, Any]] = None) -> None:
        self.token = token or None
        self.hospital = hospital or {}

    @property
    def authenticated(self) -> bool:
        return bool(self.token)

    @property
    def hospital_id(self) -> Optional[str]:
        return self.hospital.get("hospital_id")

    @property
    def display_name(self) -> str:
        return self.hospital.get("hospital_name") or self.hospital.get("hospital_id") or "Hospital"

    def sign_in(self, token: str, hospital: Optional[dict[str, Any]] = None) -> None:
        self.token = token
        if hospital is not None:
            self.hospital = hospital
        logger.info("Hospital session established for %s.", self.hospital_id or "unknown hospital")

    def invalidate(self) -> None:
        """Forget the token (after a 401 or an explicit logout)."""
        if self.token:
            logger.info("Hospital session invalidated for %s.", self.hospital_id or "unknown hospital")
        self.token = None

    def sign_out(self) -> None:
        self.invalidate()
        self.hospital = {}

    def auth_headers(self, phase: Optional[str] = None) -> dict[str, str]:
        if not self.token:
            raise AuthError("Not signed in: no hospital session token.", phase=phase)
        return {"Authorization": f"Bearer {self.token}"}
