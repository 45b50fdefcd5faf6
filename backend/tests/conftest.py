"""Pytest configuration and fixtures for admissions tests.

Provides a fake records backend (served through httpx.MockTransport),
draft stores, wizard controllers and an API client wired to them.
"""

import json
import re
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from admissions.deps import get_draft_store, get_gateway, get_registry, get_tracking_service
from admissions.main import app
from admissions.services.documents import PendingFile
from admissions.services.drafts import MemoryDraftStore
from admissions.services.gateway import BackendGateway
from admissions.services.sessions import WizardSessionRegistry
from admissions.services.tracking import TrackingService
from admissions.services.wizard import SubmissionReceipt


# ── Fake records backend ─────────────────────────────────────────

UPLOAD_TYPE_RE = re.compile(rb'name="document_type"\r\n\r\n([^\r]+)')
UPLOAD_TEMP_ID_RE = re.compile(rb'name="temp_id"\r\n\r\n([^\r]+)')


class FakeBackend:
    """In-memory stand-in for the records backend's HTTP API."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.uploads: list[dict] = []
        self.submissions: list[dict] = []
        self.renewals: list[dict] = []
        self.applications: dict[str, dict] = {}
        self.allocations: list[dict] = []
        self.fail_uploads: set[str] = set()
        self.otp_code = "123456"
        self.healthy = True
        self._by_idempotency_key: dict[str, str] = {}
        self._tokens = 0

    def add_application(self, tracking_number: str, mobile: str, **fields) -> dict:
        record = {
            "tracking_number": tracking_number,
            "applicant_mobile": mobile,
            "vertical": "boys-hostel",
            "current_status": "SUBMITTED",
            **fields,
        }
        self.applications[tracking_number] = record
        return record

    def paths(self) -> list[str]:
        return [f"{r.method} {r.url.path}" for r in self.requests]

    def _next_token(self) -> str:
        self._tokens += 1
        return f"otp-token-{self._tokens}"

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/api/health":
            if not self.healthy:
                return httpx.Response(503, json={"success": False, "error": "down"})
            return httpx.Response(200, json={"success": True})

        if path == "/api/applications/documents/upload":
            doc_type = UPLOAD_TYPE_RE.search(request.content).group(1).decode()
            temp_id = UPLOAD_TEMP_ID_RE.search(request.content).group(1).decode()
            if doc_type in self.fail_uploads:
                return httpx.Response(500, json={"success": False, "error": "Storage unavailable"})
            doc_id = f"doc-{len(self.uploads) + 1}"
            self.uploads.append({"type": doc_type, "temp_id": temp_id, "id": doc_id})
            return httpx.Response(200, json={
                "success": True,
                "data": {"id": doc_id, "url": f"https://files.test/{doc_id}"},
            })

        if path == "/api/applications" and request.method == "POST":
            payload = json.loads(request.content)
            key = request.headers.get("Idempotency-Key")
            if key and key in self._by_idempotency_key:
                number = self._by_idempotency_key[key]
            else:
                number = f"HG-2026-{len(self.submissions) + 1:04d}"
                self.submissions.append(payload)
                if key:
                    self._by_idempotency_key[key] = number
            return httpx.Response(201, json={"success": True, "data": {"trackingNumber": number}})

        if path.startswith("/api/applications/track/"):
            number = path.rsplit("/", 1)[-1]
            record = self.applications.get(number)
            if record is None:
                return httpx.Response(404, json={"success": False, "error": "Application not found"})
            return httpx.Response(200, json={"success": True, "data": record})

        if path == "/api/renewals" and request.method == "POST":
            payload = json.loads(request.content)
            self.renewals.append(payload)
            return httpx.Response(201, json={"success": True, "data": {"renewalId": f"RN-{len(self.renewals)}"}})

        if path == "/api/allocations":
            return httpx.Response(200, json={"success": True, "data": self.allocations})

        if path == "/api/otp/send":
            return httpx.Response(200, json={"success": True, "data": {"token": self._next_token()}})

        if path == "/api/otp/verify":
            body = json.loads(request.content)
            if body["code"] != self.otp_code:
                return httpx.Response(400, json={"success": False, "error": "Invalid OTP"})
            return httpx.Response(200, json={"success": True, "data": {"sessionToken": "verified"}})

        if path == "/api/otp/resend":
            return httpx.Response(200, json={"success": True, "data": {"token": self._next_token()}})

        return httpx.Response(404, json={"success": False, "error": f"No route {path}"})


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest_asyncio.fixture
async def gateway(backend: FakeBackend) -> AsyncGenerator[BackendGateway, None]:
    """Real gateway talking to the fake backend."""
    gw = BackendGateway.from_settings(transport=httpx.MockTransport(backend.handler))
    yield gw
    await gw.aclose()


# ── Wizard fixtures ──────────────────────────────────────────────

class FakeClock:
    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSubmitter:
    """Submitter that records calls and can be held open or made to fail."""

    def __init__(self, reference: str = "HG-2026-0001", error: Exception | None = None, gate=None):
        self.reference = reference
        self.error = error
        self.gate = gate
        self.calls: list[tuple[dict, str | None]] = []

    async def submit(self, data, idempotency_key=None) -> SubmissionReceipt:
        self.calls.append((data, idempotency_key))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return SubmissionReceipt(reference=self.reference, redirect_url=f"/done?ref={self.reference}")


def make_file(field: str, content_type: str = "application/pdf", size: int = 1024, filename: str | None = None) -> PendingFile:
    return PendingFile(
        field=field,
        filename=filename or f"{field}.pdf",
        content_type=content_type,
        content=b"%" * size,
    )


def complete_application_data(vertical: str = "boys-hostel") -> dict:
    """Form data that passes every application step."""
    return {
        "vertical": vertical,
        "firstName": "Asha",
        "lastName": "Shah",
        "dob": "2006-04-12",
        "gender": "female",
        "bloodGroup": "B+",
        "addressLine1": "12 Station Road",
        "city": "Ahmedabad",
        "state": "Gujarat",
        "pinCode": "380001",
        "fatherName": "Ramesh Shah",
        "fatherMobile": "9876543210",
        "motherName": "Meena Shah",
        "emergencyContactPerson": "Ramesh Shah",
        "emergencyMobile": "9876543210",
        "emergencyRelationship": "Father",
        "institution": "Gujarat University",
        "course": "B.Com",
        "year": "1",
        "percentage": "82",
        "qualification": "HSC",
        "board": "GSEB",
        "passingYear": "2025",
        "roomType": "shared",
        "duration": "6 months",
        "joiningDate": "2026-06-01",
        "ref1Name": "Kiran Patel",
        "ref1Mobile": "9123456780",
        "ref1Year": "2020",
        "photoFile": make_file("photoFile", "image/jpeg", filename="photo.jpg"),
        "birthCertificate": make_file("birthCertificate"),
        "marksheet": make_file("marksheet"),
        "declarationAccepted": True,
    }


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def draft_store() -> MemoryDraftStore:
    return MemoryDraftStore()


@pytest.fixture
def registry(clock: FakeClock) -> WizardSessionRegistry:
    return WizardSessionRegistry(ttl_seconds=3600, clock=clock)


@pytest.fixture
def tracking_service(gateway: BackendGateway, clock: FakeClock) -> TrackingService:
    return TrackingService(gateway, cooldown_seconds=60, session_ttl_seconds=600, clock=clock)


# ── API client ───────────────────────────────────────────────────

@pytest_asyncio.fixture
async def client(
    draft_store: MemoryDraftStore,
    gateway: BackendGateway,
    registry: WizardSessionRegistry,
    tracking_service: TrackingService,
) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with shared services swapped for test doubles."""
    app.dependency_overrides[get_draft_store] = lambda: draft_store
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_tracking_service] = lambda: tracking_service

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow tests")
    config.addinivalue_line("markers", "api: HTTP API tests")
