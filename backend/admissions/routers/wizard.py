"""Wizard event endpoints, shared by the application and renewal wizards.

Each request is one user event on a live wizard:

  GET    /wizard/{id}                   → current view
  PATCH  /wizard/{id}                   → edit plain fields (no validation)
  POST   /wizard/{id}/next              → validate active step, advance
  POST   /wizard/{id}/previous          → step back (never validates)
  POST   /wizard/{id}/goto/{index}      → jump back to a visited step
  POST   /wizard/{id}/draft             → save a draft
  POST   /wizard/{id}/submit            → final submission
  POST   /wizard/{id}/abort             → cancel an in-flight submission
  POST   /wizard/{id}/documents/{field} → attach a file (multipart)
  DELETE /wizard/{id}/documents/{field} → remove a file
  DELETE /wizard/{id}                   → drop the live wizard

``build_wizard_router(kind)`` is mounted once per wizard kind so a
renewal wizard is never reachable under the application prefix.
"""

import logging

from fastapi import APIRouter, Depends, File, UploadFile, status

from admissions.config import settings
from admissions.deps import get_registry
from admissions.middleware.exceptions import (
    FieldLockedError,
    UploadRejectedError,
    WizardBusyError,
    WizardNotFoundError,
)
from admissions.schemas.wizard import FieldUpdate, SubmitResponse, WizardView
from admissions.services.documents import remove_document, select_document
from admissions.services.sessions import WizardSession, WizardSessionRegistry
from admissions.services.stepper import build_wizard_view, handle_step_click
from admissions.services.wizard import WizardController

logger = logging.getLogger(__name__)


# ── Helpers ──────────────────────────────────────────────────

def view_of(session: WizardSession) -> WizardView:
    return build_wizard_view(session.wizard_id, session.kind, session.controller)


def _ensure_idle(controller: WizardController) -> None:
    if controller.is_completed:
        raise WizardBusyError("This form has already been submitted")
    if controller.is_busy:
        raise WizardBusyError()


def _file_fields(controller: WizardController) -> set[str]:
    return {key for step in controller.steps for key in step.file_fields}


def _check_file_field(controller: WizardController, field: str) -> None:
    if field not in _file_fields(controller):
        raise UploadRejectedError(field, f"{field} is not a document field")


def build_wizard_router(kind: str) -> APIRouter:
    router = APIRouter()

    async def get_session(
        wizard_id: str,
        registry: WizardSessionRegistry = Depends(get_registry),
    ) -> WizardSession:
        session = registry.get(wizard_id)
        if session.kind != kind:
            raise WizardNotFoundError(wizard_id)
        return session

    # ── Reads and edits ──────────────────────────────────────

    @router.get("/{wizard_id}", response_model=WizardView)
    async def get_wizard(session: WizardSession = Depends(get_session)):
        return view_of(session)

    @router.patch("/{wizard_id}", response_model=WizardView)
    async def update_fields(body: FieldUpdate, session: WizardSession = Depends(get_session)):
        controller = session.controller
        file_fields = _file_fields(controller)
        for key, value in body.fields.items():
            if key in file_fields:
                raise UploadRejectedError(key, "Use the document upload endpoint for files")
            if key in controller.pinned and value != controller.pinned[key]:
                raise FieldLockedError(key)

        for key, value in body.fields.items():
            if not controller.on_change(key, value):
                _ensure_idle(controller)
        return view_of(session)

    # ── Navigation ───────────────────────────────────────────

    @router.post("/{wizard_id}/next", response_model=WizardView)
    async def next_step(session: WizardSession = Depends(get_session)):
        _ensure_idle(session.controller)
        session.controller.next()
        return view_of(session)

    @router.post("/{wizard_id}/previous", response_model=WizardView)
    async def previous_step(session: WizardSession = Depends(get_session)):
        _ensure_idle(session.controller)
        session.controller.previous()
        return view_of(session)

    @router.post("/{wizard_id}/goto/{index}", response_model=WizardView)
    async def go_to_step(index: int, session: WizardSession = Depends(get_session)):
        _ensure_idle(session.controller)
        handle_step_click(session.controller, index)
        return view_of(session)

    # ── Draft and submission ─────────────────────────────────

    @router.post("/{wizard_id}/draft", response_model=WizardView)
    async def save_draft(session: WizardSession = Depends(get_session)):
        _ensure_idle(session.controller)
        await session.controller.save_draft()
        return view_of(session)

    @router.post("/{wizard_id}/submit", response_model=SubmitResponse)
    async def submit(session: WizardSession = Depends(get_session)):
        result = await session.controller.submit()
        return SubmitResponse(
            ok=result.ok,
            reference=result.reference,
            redirect_url=result.redirect_url,
            error=result.error,
            aborted=result.aborted,
            wizard=view_of(session),
        )

    @router.post("/{wizard_id}/abort", response_model=WizardView)
    async def abort(session: WizardSession = Depends(get_session)):
        if session.controller.abort():
            logger.info(f"Submission aborted for wizard {session.wizard_id}")
        return view_of(session)

    # ── Documents ────────────────────────────────────────────

    @router.post("/{wizard_id}/documents/{field}", response_model=WizardView)
    async def upload_document(
        field: str,
        file: UploadFile = File(...),
        session: WizardSession = Depends(get_session),
    ):
        controller = session.controller
        _ensure_idle(controller)
        _check_file_field(controller, field)

        # One byte past the limit is enough to reject
        content = await file.read(settings.max_upload_bytes + 1)
        rejection: list[str] = []
        selected = select_document(
            controller,
            field,
            file.filename or field,
            file.content_type,
            content,
            on_validation_error=rejection.append,
        )
        if selected is None:
            raise UploadRejectedError(field, rejection[0] if rejection else "File rejected")
        return view_of(session)

    @router.delete("/{wizard_id}/documents/{field}", response_model=WizardView)
    async def delete_document(field: str, session: WizardSession = Depends(get_session)):
        controller = session.controller
        _ensure_idle(controller)
        _check_file_field(controller, field)
        remove_document(controller, field)
        return view_of(session)

    @router.delete("/{wizard_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def discard_wizard(
        wizard_id: str,
        registry: WizardSessionRegistry = Depends(get_registry),
        session: WizardSession = Depends(get_session),
    ):
        registry.discard(wizard_id)

    return router
