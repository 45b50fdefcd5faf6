"""Pydantic schemas for the admission and renewal wizards.

The wizard itself lives server-side; these are the views returned after
every event and the request bodies that drive it.
"""

import re
from typing import Any

from pydantic import BaseModel, Field, field_validator

from admissions.services.wizard import StepStatus, WizardPhase

APPLICANT_ID_REGEX = re.compile(r"^[A-Za-z0-9_.@+-]{1,80}$")


# ── Views ───────────────────────────────────────────────────

class StepView(BaseModel):
    index: int
    id: str
    title: str
    description: str = ""
    status: StepStatus
    is_current: bool
    clickable: bool


class StepSlice(BaseModel):
    """The active step's share of the form state."""
    id: str
    title: str
    description: str = ""
    values: dict[str, Any] = {}
    errors: dict[str, str] = {}
    files_to_reselect: list[str] = []


class WizardView(BaseModel):
    wizard_id: str
    kind: str
    draft_key: str
    phase: WizardPhase
    current_index: int
    total_steps: int
    is_last_step: bool
    can_go_back: bool
    steps: list[StepView]
    current: StepSlice
    data: dict[str, Any]
    errors: dict[str, str] = {}
    notice: str | None = None
    submit_error: str | None = None
    reference: str | None = None
    redirect_url: str | None = None


class SubmitResponse(BaseModel):
    ok: bool
    reference: str | None = None
    redirect_url: str | None = None
    error: str | None = None
    aborted: bool = False
    wizard: WizardView


# ── Requests ────────────────────────────────────────────────

class StartApplicationRequest(BaseModel):
    applicant_id: str | None = Field(
        default=None,
        description="Stable id for the applicant's device or session; scopes the draft key",
    )

    @field_validator("applicant_id")
    @classmethod
    def _check_applicant_id(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if not APPLICANT_ID_REGEX.match(v):
            raise ValueError("applicant_id may only contain letters, digits and _.@+-")
        return v


class FieldUpdate(BaseModel):
    """PATCH body: one or more plain form fields. Files use the upload endpoint."""
    fields: dict[str, str | int | float | bool | None]

    @field_validator("fields")
    @classmethod
    def _not_empty(cls, v: dict) -> dict:
        if not v:
            raise ValueError("At least one field is required")
        return v
