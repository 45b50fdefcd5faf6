"""Admission application entry point.

  POST /api/applications/{vertical}/wizard → start a wizard (resuming a saved draft)

Once started, the wizard is driven through /api/applications/wizard/{id}.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from admissions.deps import get_draft_store, get_gateway, get_registry
from admissions.routers.wizard import view_of
from admissions.schemas.wizard import StartApplicationRequest, WizardView
from admissions.services.drafts import DraftStore, application_draft_key
from admissions.services.gateway import BackendGateway
from admissions.services.sessions import WizardSessionRegistry
from admissions.services.steps import APPLICATION_STEPS, VERTICALS
from admissions.services.submission import ApplicationSubmitter
from admissions.services.wizard import WizardController

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/{vertical}/wizard", response_model=WizardView, status_code=status.HTTP_201_CREATED)
async def start_application(
    vertical: str,
    body: StartApplicationRequest | None = None,
    draft_store: DraftStore = Depends(get_draft_store),
    gateway: BackendGateway = Depends(get_gateway),
    registry: WizardSessionRegistry = Depends(get_registry),
):
    """Start an application wizard for one hostel, restoring any saved draft."""
    if vertical not in VERTICALS:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown hostel: {vertical}",
        )

    controller = await WizardController.resume(
        APPLICATION_STEPS,
        draft_store,
        application_draft_key(vertical, body.applicant_id if body else None),
        ApplicationSubmitter(gateway, vertical),
        pinned={"vertical": vertical},
    )
    session = registry.create("application", controller)
    logger.info(
        f"Application wizard {session.wizard_id} started for {vertical}",
        extra={"vertical": vertical, "step": controller.current_index},
    )
    return view_of(session)
