"""Six-month stay renewals.

  GET  /api/renewals                       → active allocations with urgency, most urgent first
  GET  /api/renewals/fees                  → fee top-up breakdown
  GET  /api/renewals/tracker               → status tracker rows for a renewal status
  POST /api/renewals/{allocation_id}/wizard → start a renewal wizard (resuming a saved draft)
"""

import logging

from fastapi import APIRouter, Depends, Query, status

from admissions.deps import get_draft_store, get_gateway, get_registry
from admissions.routers.wizard import view_of
from admissions.schemas.renewal import FeeBreakdown, RenewalSummary, TrackerStep
from admissions.schemas.wizard import WizardView
from admissions.services.drafts import DraftStore, renewal_draft_key
from admissions.services.gateway import BackendGateway
from admissions.services.renewal import FEE_BREAKDOWN, RenewalStatus, fee_total, list_renewals, tracker_steps
from admissions.services.sessions import WizardSessionRegistry
from admissions.services.steps import RENEWAL_STEPS
from admissions.services.submission import RenewalSubmitter
from admissions.services.wizard import WizardController

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=list[RenewalSummary])
async def get_renewals(
    renewal_status: str | None = Query(None, alias="status"),
    vertical: str | None = Query(None),
    gateway: BackendGateway = Depends(get_gateway),
):
    allocations = await gateway.list_active_allocations()
    return list_renewals(allocations, status=renewal_status, vertical=vertical)


@router.get("/fees", response_model=FeeBreakdown)
async def get_fee_breakdown():
    return FeeBreakdown(items=list(FEE_BREAKDOWN), total=fee_total())


@router.get("/tracker", response_model=list[TrackerStep])
async def get_tracker(renewal_status: RenewalStatus = Query(..., alias="status")):
    return tracker_steps(renewal_status)


@router.post("/{allocation_id}/wizard", response_model=WizardView, status_code=status.HTTP_201_CREATED)
async def start_renewal(
    allocation_id: str,
    draft_store: DraftStore = Depends(get_draft_store),
    gateway: BackendGateway = Depends(get_gateway),
    registry: WizardSessionRegistry = Depends(get_registry),
):
    controller = await WizardController.resume(
        RENEWAL_STEPS,
        draft_store,
        renewal_draft_key(allocation_id),
        RenewalSubmitter(gateway, allocation_id),
    )
    session = registry.create("renewal", controller)
    logger.info(f"Renewal wizard {session.wizard_id} started for allocation {allocation_id}")
    return view_of(session)
