"""Application tracking with OTP verification.

  POST /api/tracking                      → check tracking id + mobile, send OTP
  POST /api/tracking/{session_id}/verify  → verify the OTP
  POST /api/tracking/{session_id}/resend  → resend (60 s cooldown)
  GET  /api/tracking/{session_id}         → application status (verified sessions only)
"""

from fastapi import APIRouter, Depends, status

from admissions.deps import get_tracking_service
from admissions.schemas.tracking import (
    OTPVerifyRequest,
    TrackingSessionView,
    TrackingStartRequest,
    TrackingStatusResponse,
)
from admissions.services.tracking import TrackingService, TrackingSession

router = APIRouter()


def _session_view(service: TrackingService, session: TrackingSession, message: str | None = None) -> TrackingSessionView:
    return TrackingSessionView(
        session_id=session.session_id,
        tracking_number=session.tracking_number,
        verified=session.verified,
        resend_available_in=service.cooldown_remaining(session),
        message=message,
    )


@router.post("", response_model=TrackingSessionView, status_code=status.HTTP_201_CREATED)
async def start_tracking(
    body: TrackingStartRequest,
    service: TrackingService = Depends(get_tracking_service),
):
    session = await service.start(body.tracking_number, body.mobile)
    return _session_view(service, session, "OTP sent to your registered mobile number")


@router.post("/{session_id}/verify", response_model=TrackingSessionView)
async def verify_otp(
    session_id: str,
    body: OTPVerifyRequest,
    service: TrackingService = Depends(get_tracking_service),
):
    session = await service.verify(session_id, body.code)
    return _session_view(service, session, "OTP verified successfully")


@router.post("/{session_id}/resend", response_model=TrackingSessionView)
async def resend_otp(
    session_id: str,
    service: TrackingService = Depends(get_tracking_service),
):
    session = await service.resend(session_id)
    return _session_view(service, session, "A new OTP has been sent")


@router.get("/{session_id}", response_model=TrackingStatusResponse)
async def get_status(
    session_id: str,
    service: TrackingService = Depends(get_tracking_service),
):
    application = await service.status(session_id)
    session = service.get_session(session_id)
    submitted_at = application.get("submitted_at") or application.get("submittedAt")
    return TrackingStatusResponse(
        tracking_number=session.tracking_number,
        status=application.get("current_status") or application.get("status"),
        vertical=application.get("vertical"),
        submitted_at=str(submitted_at) if submitted_at else None,
        application=application,
    )
