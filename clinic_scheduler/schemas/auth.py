"""Caller identity schemas."""

from enum import Enum

from pydantic import BaseModel, Field


class UserRole(str, Enum):
    """Role carried in the access token."""

    PATIENT = "patient"
    DOCTOR = "doctor"
    STAFF = "staff"
    ADMIN = "admin"


ELEVATED_ROLES = frozenset({UserRole.DOCTOR, UserRole.STAFF, UserRole.ADMIN})


class Caller(BaseModel):
    """Authenticated identity on whose behalf the core acts."""

    user_id: int = Field(..., ge=1)
    role: UserRole = UserRole.PATIENT

    model_config = {"frozen": True}

    @property
    def is_elevated(self) -> bool:
        """Whether the caller may act on other patients' appointments."""
        return self.role in ELEVATED_ROLES

    def can_manage(self, patient_id: int) -> bool:
        """Owner-or-elevated check for an appointment belonging to ``patient_id``."""
        return self.is_elevated or self.user_id == patient_id
