"""Final submission: upload documents, then post the assembled record.

Uploads run one at a time under a single correlation id before the
record is posted. This is not transactional: if upload N of M fails the
earlier uploads stay on the server as orphans, and the applicant is
told which document failed. The idempotency key created when the wizard
started goes out with the final POST so a retried submit after an
ambiguous network failure does not create a second application.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Sequence
from urllib.parse import quote

from admissions.schemas.documents import DocumentDescriptor
from admissions.services.documents import PendingFile
from admissions.services.gateway import BackendGateway
from admissions.services.steps import APPLICATION_DOCUMENT_FIELDS, RENEWAL_DOCUMENT_FIELDS
from admissions.services.wizard import SubmissionReceipt
from admissions.utils.numbering import generate_correlation_id

logger = logging.getLogger(__name__)


def _descriptor_json(descriptor: DocumentDescriptor) -> dict:
    return descriptor.model_dump(mode="json", exclude_none=True)


def build_application_payload(
    data: Mapping[str, Any],
    vertical: str,
    descriptors: Mapping[str, DocumentDescriptor],
    document_fields: Sequence[str] = APPLICATION_DOCUMENT_FIELDS,
    submitted_at: datetime | None = None,
) -> dict:
    """Swap files for their descriptors and add the submission envelope fields."""
    payload = {key: value for key, value in data.items() if key not in document_fields}
    for field_name, descriptor in descriptors.items():
        payload[field_name] = _descriptor_json(descriptor)

    payload["documents"] = [
        {"type": field_name, **_descriptor_json(descriptor)}
        for field_name, descriptor in descriptors.items()
    ]
    payload["vertical"] = vertical
    payload["status"] = "SUBMITTED"
    payload["submittedAt"] = (submitted_at or datetime.now(timezone.utc)).isoformat()
    return payload


async def upload_documents(
    gateway: BackendGateway,
    data: Mapping[str, Any],
    document_fields: Sequence[str],
    correlation_id: str,
) -> dict[str, DocumentDescriptor]:
    """Upload each selected file in field order; the first failure aborts."""
    descriptors: dict[str, DocumentDescriptor] = {}
    for field_name in document_fields:
        value = data.get(field_name)
        if not isinstance(value, PendingFile):
            continue
        descriptors[field_name] = await gateway.upload_document(value, field_name, correlation_id)
        logger.info(
            f"Uploaded {field_name} for {correlation_id}",
            extra={"correlation_id": correlation_id, "field": field_name},
        )
    return descriptors


class ApplicationSubmitter:
    def __init__(self, gateway: BackendGateway, vertical: str):
        self.gateway = gateway
        self.vertical = vertical

    def redirect_url(self, tracking_number: str) -> str:
        return f"/apply/{self.vertical}/success?trackingNumber={quote(tracking_number)}"

    async def submit(self, data: Mapping[str, Any], idempotency_key: str | None = None) -> SubmissionReceipt:
        correlation_id = generate_correlation_id()
        descriptors = await upload_documents(
            self.gateway, data, APPLICATION_DOCUMENT_FIELDS, correlation_id
        )
        payload = build_application_payload(data, self.vertical, descriptors)
        tracking_number = await self.gateway.submit_application(payload, idempotency_key)
        logger.info(
            f"Application submitted: {tracking_number}",
            extra={"vertical": self.vertical, "correlation_id": correlation_id},
        )
        return SubmissionReceipt(
            reference=tracking_number,
            redirect_url=self.redirect_url(tracking_number),
        )


class RenewalSubmitter:
    def __init__(self, gateway: BackendGateway, allocation_id: str):
        self.gateway = gateway
        self.allocation_id = allocation_id

    async def submit(self, data: Mapping[str, Any], idempotency_key: str | None = None) -> SubmissionReceipt:
        correlation_id = generate_correlation_id()
        descriptors = await upload_documents(
            self.gateway, data, RENEWAL_DOCUMENT_FIELDS, correlation_id
        )

        payload = {key: value for key, value in data.items() if key not in RENEWAL_DOCUMENT_FIELDS}
        payload["allocation_id"] = self.allocation_id
        payload["documents"] = [
            {"type": field_name, **_descriptor_json(descriptor)}
            for field_name, descriptor in descriptors.items()
        ]
        payload["status"] = "SUBMITTED"
        payload["submittedAt"] = datetime.now(timezone.utc).isoformat()

        reference = await self.gateway.submit_renewal(payload, idempotency_key)
        return SubmissionReceipt(
            reference=reference,
            redirect_url=f"/dashboard/student?renewal={quote(reference)}",
        )
