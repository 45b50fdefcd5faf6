"""Tests for final submission: uploads, payload assembly and receipts."""

import re
from datetime import datetime, timezone

import pytest

from admissions.middleware.exceptions import DocumentUploadError
from admissions.schemas.documents import DocumentDescriptor
from admissions.services.submission import (
    ApplicationSubmitter,
    RenewalSubmitter,
    build_application_payload,
)
from admissions.utils.numbering import (
    generate_correlation_id,
    generate_idempotency_key,
)

from conftest import complete_application_data, make_file


@pytest.mark.unit
class TestIdentifiers:
    def test_correlation_id_format(self):
        value = generate_correlation_id(now_ms=1767225600000)
        assert re.fullmatch(r"app_1767225600000_[0-9a-z]{9}", value)

    def test_idempotency_keys_are_unique(self):
        assert generate_idempotency_key() != generate_idempotency_key()
        assert len(generate_idempotency_key()) == 32


@pytest.mark.unit
class TestBuildPayload:
    def test_files_replaced_by_descriptors(self):
        data = {"firstName": "Asha", "photoFile": make_file("photoFile"), "vertical": "stale"}
        descriptors = {"photoFile": DocumentDescriptor(id="doc-1", url="https://files.test/doc-1")}
        submitted_at = datetime(2026, 1, 5, 10, 0, tzinfo=timezone.utc)

        payload = build_application_payload(data, "girls-ashram", descriptors, submitted_at=submitted_at)

        assert payload["firstName"] == "Asha"
        assert payload["photoFile"] == {"id": "doc-1", "url": "https://files.test/doc-1"}
        assert payload["documents"] == [{"type": "photoFile", "id": "doc-1", "url": "https://files.test/doc-1"}]
        assert payload["vertical"] == "girls-ashram"
        assert payload["status"] == "SUBMITTED"
        assert payload["submittedAt"] == "2026-01-05T10:00:00+00:00"

    def test_restored_metadata_is_not_sent(self):
        data = {"marksheet": {"type": "marksheet", "fileName": "m.pdf", "status": "needs_reselect"}}
        payload = build_application_payload(data, "boys-hostel", {})
        assert "marksheet" not in payload
        assert payload["documents"] == []


@pytest.mark.asyncio
class TestApplicationSubmitter:
    """Test sequential uploads followed by the application POST."""

    async def test_uploads_then_posts(self, gateway, backend):
        submitter = ApplicationSubmitter(gateway, "boys-hostel")
        receipt = await submitter.submit(complete_application_data(), idempotency_key="key-1")

        assert receipt.reference == "HG-2026-0001"
        assert receipt.redirect_url == "/apply/boys-hostel/success?trackingNumber=HG-2026-0001"

        # Uploads in field order, sharing one correlation id, before the POST
        assert [u["type"] for u in backend.uploads] == ["photoFile", "birthCertificate", "marksheet"]
        assert len({u["temp_id"] for u in backend.uploads}) == 1
        assert backend.paths()[-1] == "POST /api/applications"

        payload = backend.submissions[0]
        assert payload["photoFile"]["id"] == "doc-1"
        assert payload["marksheet"]["id"] == "doc-3"
        assert len(payload["documents"]) == 3
        assert payload["firstName"] == "Asha"

    async def test_failed_upload_stops_submission(self, gateway, backend):
        backend.fail_uploads.add("birthCertificate")
        submitter = ApplicationSubmitter(gateway, "boys-hostel")

        with pytest.raises(DocumentUploadError, match="Failed to upload birthCertificate"):
            await submitter.submit(complete_application_data(), idempotency_key="key-1")

        # The photo already uploaded stays behind; nothing was posted
        assert [u["type"] for u in backend.uploads] == ["photoFile"]
        assert backend.submissions == []

    async def test_retry_with_same_key_is_deduplicated(self, gateway, backend):
        submitter = ApplicationSubmitter(gateway, "boys-hostel")
        first = await submitter.submit(complete_application_data(), idempotency_key="key-1")
        second = await submitter.submit(complete_application_data(), idempotency_key="key-1")
        assert first.reference == second.reference
        assert len(backend.submissions) == 1


@pytest.mark.asyncio
class TestRenewalSubmitter:
    async def test_renewal_payload(self, gateway, backend):
        data = {
            "infoConfirmed": True,
            "marksheet_latest": make_file("marksheet_latest"),
            "id_proof": make_file("id_proof", "image/jpeg"),
            "paymentStatus": "PAID",
            "paymentReference": "PAY-77",
        }
        receipt = await RenewalSubmitter(gateway, "alloc-9").submit(data, idempotency_key="k")

        assert receipt.reference == "RN-1"
        assert receipt.redirect_url == "/dashboard/student?renewal=RN-1"
        payload = backend.renewals[0]
        assert payload["allocation_id"] == "alloc-9"
        assert [d["type"] for d in payload["documents"]] == ["marksheet_latest", "id_proof"]
        assert "marksheet_latest" not in payload
        assert payload["paymentReference"] == "PAY-77"
