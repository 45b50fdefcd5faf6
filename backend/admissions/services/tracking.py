"""Application tracking behind an OTP check.

Flow:
  1. ``start``: look up the application by tracking number, confirm the
     mobile number on file (ignoring a leading +91), ask the backend to
     send an OTP and open a verification session.
  2. ``verify``: check the 6-digit code with the backend.
  3. ``status``: only a verified session may read the application.

Sessions live in process memory; the backend owns the codes themselves.
Resends are throttled to one per cooldown window per session.
"""

import logging
import math
import secrets
import time
from dataclasses import dataclass, field
from typing import Callable

from admissions.config import settings
from admissions.middleware.exceptions import GatewayError, OTPCooldownError, TrackingError
from admissions.schemas.validators import normalize_mobile, validate_otp_code
from admissions.services.gateway import BackendGateway

logger = logging.getLogger(__name__)

OTP_MAX_ATTEMPTS = 3
SESSION_TTL_SECONDS = 10 * 60

MOBILE_FIELDS = ("applicant_mobile", "applicantMobile", "mobile", "phone")


@dataclass
class TrackingSession:
    session_id: str
    tracking_number: str
    mobile: str
    vertical: str | None
    token: str = field(repr=False)
    sent_at: float
    created_at: float
    verified: bool = False
    attempts: int = 0


def _recorded_mobile(application: dict) -> str:
    for name in MOBILE_FIELDS:
        if application.get(name):
            return str(application[name])
    return ""


class TrackingService:
    def __init__(
        self,
        gateway: BackendGateway,
        cooldown_seconds: int | None = None,
        session_ttl_seconds: int = SESSION_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.gateway = gateway
        self.cooldown_seconds = (
            settings.otp_resend_cooldown_seconds if cooldown_seconds is None else cooldown_seconds
        )
        self.session_ttl_seconds = session_ttl_seconds
        self._clock = clock
        self._sessions: dict[str, TrackingSession] = {}

    def cooldown_remaining(self, session: TrackingSession) -> int:
        elapsed = self._clock() - session.sent_at
        return max(0, math.ceil(self.cooldown_seconds - elapsed))

    def purge_expired(self) -> None:
        now = self._clock()
        expired = [
            sid for sid, s in self._sessions.items()
            if now - s.created_at > self.session_ttl_seconds
        ]
        for sid in expired:
            self._sessions.pop(sid, None)

    def get_session(self, session_id: str) -> TrackingSession:
        self.purge_expired()
        session = self._sessions.get(session_id)
        if session is None:
            raise TrackingError(
                "Verification session expired. Please start again.",
                error_code="TRACKING_SESSION_NOT_FOUND",
            )
        return session

    async def start(self, tracking_number: str, mobile: str) -> TrackingSession:
        try:
            application = await self.gateway.track_application(tracking_number)
        except GatewayError as e:
            raise TrackingError("Failed to verify application. Please try again.") from e

        if not application:
            raise TrackingError(
                "Application not found with this tracking ID",
                error_code="APPLICATION_NOT_FOUND",
            )

        if normalize_mobile(_recorded_mobile(application)) != normalize_mobile(mobile):
            logger.info(
                f"Mobile mismatch for tracking number {tracking_number}",
                extra={"tracking_number": tracking_number},
            )
            raise TrackingError(
                "Mobile number does not match the application",
                error_code="MOBILE_MISMATCH",
            )

        vertical = application.get("vertical")
        try:
            token = await self.gateway.send_otp(mobile, vertical)
        except GatewayError as e:
            raise TrackingError("Failed to send OTP. Please try again.") from e

        now = self._clock()
        session = TrackingSession(
            session_id=secrets.token_urlsafe(16),
            tracking_number=tracking_number,
            mobile=mobile,
            vertical=vertical,
            token=token,
            sent_at=now,
            created_at=now,
        )
        self.purge_expired()
        self._sessions[session.session_id] = session
        logger.info(f"OTP sent for tracking number {tracking_number}")
        return session

    async def verify(self, session_id: str, code: str) -> TrackingSession:
        session = self.get_session(session_id)
        if session.verified:
            return session

        try:
            code = validate_otp_code(code)
        except ValueError as e:
            raise TrackingError(str(e), error_code="INVALID_OTP") from e

        if session.attempts >= OTP_MAX_ATTEMPTS:
            raise TrackingError(
                "Invalid OTP. Maximum attempts reached. Please request a new OTP.",
                error_code="OTP_ATTEMPTS_EXCEEDED",
            )
        session.attempts += 1

        try:
            await self.gateway.verify_otp(code, session.token)
        except GatewayError as e:
            if e.upstream_status in (400, 401, 403):
                raise TrackingError("Invalid OTP. Please try again.", error_code="INVALID_OTP") from e
            raise TrackingError("Failed to verify OTP. Please try again.") from e

        session.verified = True
        logger.info(f"Tracking session verified for {session.tracking_number}")
        return session

    async def resend(self, session_id: str) -> TrackingSession:
        session = self.get_session(session_id)
        remaining = self.cooldown_remaining(session)
        if remaining > 0:
            raise OTPCooldownError(remaining)

        try:
            session.token = await self.gateway.resend_otp(session.token)
        except GatewayError as e:
            raise TrackingError("Failed to resend OTP. Please try again.") from e

        session.sent_at = self._clock()
        session.attempts = 0
        return session

    async def status(self, session_id: str) -> dict:
        session = self.get_session(session_id)
        if not session.verified:
            raise TrackingError(
                "Verify the OTP sent to your mobile first",
                error_code="NOT_VERIFIED",
            )
        try:
            application = await self.gateway.track_application(session.tracking_number)
        except GatewayError as e:
            raise TrackingError("Failed to load application status. Please try again.") from e
        if not application:
            raise TrackingError(
                "Application not found with this tracking ID",
                error_code="APPLICATION_NOT_FOUND",
            )
        return application
