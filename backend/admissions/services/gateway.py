"""HTTP client for the records backend.

The backend owns applications, documents, renewals and OTP delivery.
Every response is read as a ``BackendEnvelope``; transport failures,
non-2xx statuses and ``success: false`` all surface as ``GatewayError``
with a message fit to show the applicant.
"""

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from admissions.config import settings
from admissions.middleware.exceptions import DocumentUploadError, GatewayError
from admissions.schemas.common import BackendEnvelope
from admissions.schemas.documents import DocumentDescriptor
from admissions.services.documents import PendingFile

logger = logging.getLogger(__name__)

UPLOAD_PATH = "/api/applications/documents/upload"
APPLICATIONS_PATH = "/api/applications"
RENEWALS_PATH = "/api/renewals"
ALLOCATIONS_PATH = "/api/allocations"
TRACK_PATH = "/api/applications/track/{tracking_number}"
OTP_SEND_PATH = "/api/otp/send"
OTP_VERIFY_PATH = "/api/otp/verify"
OTP_RESEND_PATH = "/api/otp/resend"
HEALTH_PATH = "/api/health"


def _pick(source: Any, *names: str) -> Any:
    if not isinstance(source, dict):
        return None
    for name in names:
        if source.get(name) not in (None, ""):
            return source[name]
    return None


def _envelope_value(envelope: BackendEnvelope, *names: str) -> Any:
    """Look a key up in ``data`` first, then at the top level of the body."""
    value = _pick(envelope.data, *names)
    if value is None:
        value = _pick(envelope.model_extra or {}, *names)
    return value


class BackendGateway:
    def __init__(self, client: httpx.AsyncClient):
        self._client = client

    @classmethod
    def from_settings(cls, transport: httpx.AsyncBaseTransport | None = None) -> "BackendGateway":
        client = httpx.AsyncClient(
            base_url=settings.backend_api_url,
            timeout=settings.backend_timeout_seconds,
            transport=transport,
        )
        return cls(client)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> BackendEnvelope:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.warning(
                f"Backend request failed: {method} {path}: {e}",
                extra={"method": method, "path": path},
            )
            raise GatewayError("Could not reach the admissions server. Please try again.") from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if isinstance(body, dict):
            try:
                envelope = BackendEnvelope.model_validate(body)
            except ValidationError:
                envelope = BackendEnvelope(data=body)
        else:
            envelope = BackendEnvelope(data=body)

        if response.is_error or envelope.success is False:
            message = envelope.failure_message or f"Request failed with status {response.status_code}"
            logger.warning(
                f"Backend rejected {method} {path}: {response.status_code} {message}",
                extra={"method": method, "path": path, "upstream_status": response.status_code},
            )
            raise GatewayError(message, upstream_status=response.status_code)
        return envelope

    # ── Applications ─────────────────────────────────────────

    async def upload_document(
        self,
        file: PendingFile,
        document_type: str,
        correlation_id: str,
    ) -> DocumentDescriptor:
        try:
            envelope = await self._request(
                "POST",
                UPLOAD_PATH,
                files={"file": (file.filename, file.content, file.content_type)},
                data={"document_type": document_type, "temp_id": correlation_id},
            )
        except GatewayError as e:
            raise DocumentUploadError(document_type, e.message, e.upstream_status) from e

        try:
            return DocumentDescriptor.model_validate(envelope.data)
        except ValidationError as e:
            raise DocumentUploadError(document_type, "the server did not return a document id") from e

    async def submit_application(self, payload: dict, idempotency_key: str | None = None) -> str:
        """POST the assembled application; returns its tracking number."""
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else None
        envelope = await self._request("POST", APPLICATIONS_PATH, json=payload, headers=headers)

        tracking_number = _envelope_value(envelope, "trackingNumber", "tracking_number")
        if tracking_number is None:
            raise GatewayError("The server did not return a tracking number")
        return str(tracking_number)

    async def track_application(self, tracking_number: str) -> dict | None:
        try:
            envelope = await self._request(
                "GET", TRACK_PATH.format(tracking_number=tracking_number)
            )
        except GatewayError as e:
            if e.upstream_status == 404:
                return None
            raise

        data = envelope.data
        # Some deployments nest the record one level deeper
        if isinstance(data, dict) and isinstance(data.get("data"), dict):
            data = data["data"]
        if isinstance(data, list):
            data = data[0] if data else None
        return data or None

    # ── Renewals ─────────────────────────────────────────────

    async def submit_renewal(self, payload: dict, idempotency_key: str | None = None) -> str:
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else None
        envelope = await self._request("POST", RENEWALS_PATH, json=payload, headers=headers)

        reference = _envelope_value(envelope, "renewalId", "renewal_id", "id")
        if reference is None:
            raise GatewayError("The server did not return a renewal reference")
        return str(reference)

    async def list_active_allocations(self) -> list[dict]:
        envelope = await self._request("GET", ALLOCATIONS_PATH, params={"status": "ACTIVE"})
        data = envelope.data
        if not isinstance(data, list):
            return []
        return [row for row in data if isinstance(row, dict) and row.get("status", "ACTIVE") == "ACTIVE"]

    # ── OTP ──────────────────────────────────────────────────

    async def send_otp(self, phone: str, vertical: str | None = None) -> str:
        envelope = await self._request(
            "POST", OTP_SEND_PATH, json={"phone": phone, "vertical": vertical}
        )
        token = _envelope_value(envelope, "token")
        if token is None:
            raise GatewayError("The server did not return a verification token")
        return token

    async def verify_otp(self, code: str, token: str) -> str | None:
        """Returns the backend's session token, if it issues one."""
        envelope = await self._request(
            "POST", OTP_VERIFY_PATH, json={"code": code, "token": token}
        )
        return _envelope_value(envelope, "sessionToken", "session_token")

    async def resend_otp(self, token: str) -> str:
        envelope = await self._request("POST", OTP_RESEND_PATH, json={"token": token})
        return _envelope_value(envelope, "token") or token

    async def ping(self) -> bool:
        try:
            await self._request("GET", HEALTH_PATH)
        except GatewayError:
            return False
        return True
