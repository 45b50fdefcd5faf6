"""Pydantic schemas for application tracking."""

from pydantic import BaseModel, field_validator

from admissions.schemas.validators import validate_mobile, validate_tracking_number


class TrackingStartRequest(BaseModel):
    tracking_number: str
    mobile: str

    @field_validator("tracking_number")
    @classmethod
    def _check_tracking_number(cls, v: str) -> str:
        return validate_tracking_number(v)

    @field_validator("mobile")
    @classmethod
    def _check_mobile(cls, v: str) -> str:
        return validate_mobile(v)


class OTPVerifyRequest(BaseModel):
    # Format is checked by the service so the message matches the form's
    code: str


class TrackingSessionView(BaseModel):
    session_id: str
    tracking_number: str
    verified: bool
    resend_available_in: int
    message: str | None = None


class TrackingStatusResponse(BaseModel):
    tracking_number: str
    status: str | None = None
    vertical: str | None = None
    submitted_at: str | None = None
    application: dict
