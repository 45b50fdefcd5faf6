"""Multi-step wizard state machine.

One ``WizardController`` owns a single applicant's progress through an
ordered list of steps: the flat form data shared by every step, the
active step index, the current field errors and a per-step validity
cache. Routers drive it one user event at a time.

Phases:
  IDLE        → navigation and edits allowed
  SAVING      → draft write in flight; navigation disabled
  SUBMITTING  → final submission in flight; navigation and edits disabled
  COMPLETED   → submission accepted; terminal

Forward movement is always gated by the active step's validator; going
back never is.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Mapping, Sequence

from admissions.middleware.exceptions import (
    DraftSaveError,
    FieldLockedError,
    GatewayError,
    WizardBusyError,
)
from admissions.services.documents import NEEDS_RESELECT
from admissions.services.drafts import Draft, DraftStore
from admissions.utils.numbering import generate_idempotency_key

logger = logging.getLogger(__name__)

Validator = Callable[[Mapping[str, Any]], dict[str, str] | None]


class WizardPhase(str, Enum):
    IDLE = "idle"
    SAVING = "saving"
    SUBMITTING = "submitting"
    COMPLETED = "completed"


class StepStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(frozen=True)
class Step:
    id: str
    title: str
    validate: Validator | None = None
    description: str = ""
    # Form keys this step writes; used for namespace checks and rendering
    fields: tuple[str, ...] = ()
    file_fields: tuple[str, ...] = ()

    @property
    def owned_keys(self) -> tuple[str, ...]:
        return self.fields + self.file_fields


@dataclass
class SubmissionReceipt:
    reference: str
    redirect_url: str | None = None


@dataclass
class SubmitResult:
    ok: bool
    reference: str | None = None
    redirect_url: str | None = None
    error: str | None = None
    aborted: bool = False


class WizardController:
    """Single source of truth for one wizard instance.

    ``submitter`` is any object exposing
    ``async submit(data, idempotency_key) -> SubmissionReceipt`` and
    raising ``GatewayError`` on failure.
    """

    def __init__(
        self,
        steps: Sequence[Step],
        draft_store: DraftStore,
        draft_key: str,
        submitter,
        initial_data: Mapping[str, Any] | None = None,
        initial_step: int = 0,
        idempotency_key: str | None = None,
        pinned: Mapping[str, Any] | None = None,
    ):
        if not steps:
            raise ValueError("A wizard needs at least one step")

        self.steps = list(steps)
        self.draft_store = draft_store
        self.draft_key = draft_key
        self.submitter = submitter
        self.idempotency_key = idempotency_key or generate_idempotency_key()

        # Values fixed for the life of the wizard, e.g. the hostel it was started for
        self.pinned: dict[str, Any] = dict(pinned or {})
        self.data: dict[str, Any] = {**(initial_data or {}), **self.pinned}
        self.current_index = self._clamp(initial_step)
        self.errors: dict[str, str] = {}
        self.phase = WizardPhase.IDLE
        self.notice: str | None = None
        self.submit_error: str | None = None
        self.receipt: SubmissionReceipt | None = None

        self._validity: dict[int, bool] = {}
        self._field_owner = {
            key: index
            for index, step in enumerate(self.steps)
            for key in step.owned_keys
        }
        self._submit_task: asyncio.Task | None = None
        self._aborted_task: asyncio.Task | None = None

    # ── Derived state ────────────────────────────────────────

    @property
    def current_step(self) -> Step:
        return self.steps[self.current_index]

    @property
    def last_index(self) -> int:
        return len(self.steps) - 1

    @property
    def is_last_step(self) -> bool:
        return self.current_index == self.last_index

    @property
    def is_busy(self) -> bool:
        return self.phase in (WizardPhase.SAVING, WizardPhase.SUBMITTING)

    @property
    def is_completed(self) -> bool:
        return self.phase == WizardPhase.COMPLETED

    @property
    def files_to_reselect(self) -> list[str]:
        """File fields restored from a draft as metadata only."""
        return [
            key for key, value in self.data.items()
            if isinstance(value, dict) and value.get("status") == NEEDS_RESELECT
        ]

    def step_status(self, index: int) -> StepStatus:
        if index < self.current_index or (self.is_completed and index == self.current_index):
            if self._validity.get(index) is False:
                return StepStatus.ERROR
            return StepStatus.COMPLETED
        if index == self.current_index:
            return StepStatus.ERROR if self.errors else StepStatus.IN_PROGRESS
        return StepStatus.PENDING

    def step_statuses(self) -> list[StepStatus]:
        return [self.step_status(i) for i in range(len(self.steps))]

    def _clamp(self, index: int) -> int:
        return max(0, min(index, len(self.steps) - 1))

    # ── Editing ──────────────────────────────────────────────

    def on_change(self, key: str, value: Any) -> bool:
        """Merge one field into the form data. ``None`` removes the key.

        No validation runs here; an existing error for the key is cleared.
        Changing a pinned field raises FieldLockedError.
        """
        if self.phase in (WizardPhase.SUBMITTING, WizardPhase.COMPLETED):
            logger.info(f"Ignoring change to {key} while {self.phase.value}")
            return False
        if key in self.pinned and value != self.pinned[key]:
            raise FieldLockedError(key)

        if value is None:
            self.data.pop(key, None)
        else:
            self.data[key] = value
        self.errors.pop(key, None)

        owner = self._field_owner.get(key)
        if owner is not None:
            self._validity.pop(owner, None)
        return True

    def validate_current_step(self) -> bool:
        step = self.current_step
        errors = step.validate(MappingProxyType(self.data)) if step.validate else None

        if errors:
            self.errors = dict(errors)
            self._validity[self.current_index] = False
            logger.info(
                f"Step {step.id} failed validation",
                extra={"step": step.id, "fields": sorted(errors)},
            )
            return False

        self.errors = {}
        self._validity[self.current_index] = True
        return True

    # ── Navigation ───────────────────────────────────────────

    def next(self) -> bool:
        """Validate the active step and advance one step, clamped to the last.

        Returns whether the step validated.
        """
        if self.phase != WizardPhase.IDLE:
            return False
        if not self.validate_current_step():
            return False
        self.current_index = self._clamp(self.current_index + 1)
        return True

    def previous(self) -> bool:
        if self.phase != WizardPhase.IDLE or self.current_index == 0:
            return False
        self.current_index -= 1
        self.errors = {}
        return True

    def go_to_step(self, index: int) -> bool:
        """Jump back to any visited step. Jumping ahead is refused."""
        if self.phase != WizardPhase.IDLE:
            return False
        if index < 0 or index > self.current_index:
            return False
        if index != self.current_index:
            self.current_index = index
            self.errors = {}
        return True

    def restore(self, draft: Draft) -> None:
        """Load a saved draft over the current data."""
        if self.phase != WizardPhase.IDLE:
            raise WizardBusyError()
        self.data.update(draft.data)
        self.data.update(self.pinned)
        self.current_index = self._clamp(draft.step_index)
        self.errors = {}
        self._validity = {}
        if draft.files_to_reselect:
            self.notice = "Please re-select your documents before submitting"

    @classmethod
    async def resume(
        cls,
        steps: Sequence[Step],
        draft_store: DraftStore,
        draft_key: str,
        submitter,
        initial_data: Mapping[str, Any] | None = None,
        idempotency_key: str | None = None,
        pinned: Mapping[str, Any] | None = None,
    ) -> "WizardController":
        """Build a controller, restoring the saved draft if there is one."""
        controller = cls(
            steps,
            draft_store,
            draft_key,
            submitter,
            initial_data=initial_data,
            idempotency_key=idempotency_key,
            pinned=pinned,
        )
        draft = await draft_store.load(draft_key)
        if draft is not None:
            controller.restore(draft)
            logger.info(
                f"Resumed draft {draft_key} at step {controller.current_index}",
                extra={"draft_key": draft_key, "reselect": draft.files_to_reselect},
            )
        return controller

    # ── Persistence ──────────────────────────────────────────

    async def save_draft(self) -> bool:
        """Persist a snapshot. Failure only sets ``notice``."""
        if self.phase != WizardPhase.IDLE:
            return False

        self.phase = WizardPhase.SAVING
        self.notice = None
        try:
            await self.draft_store.save(self.draft_key, dict(self.data), self.current_index)
        except DraftSaveError as e:
            logger.warning(
                f"Draft save failed for {self.draft_key}: {e.message}",
                extra={"draft_key": self.draft_key},
            )
            self.notice = "Failed to save draft. Your answers are still here, please try again."
            return False
        finally:
            if self.phase == WizardPhase.SAVING:
                self.phase = WizardPhase.IDLE

        self.notice = "Draft saved successfully"
        return True

    # ── Submission ───────────────────────────────────────────

    async def submit(self) -> SubmitResult:
        if self.is_completed:
            return self._success_result()
        if self.is_busy:
            raise WizardBusyError()
        if not self.is_last_step:
            return SubmitResult(ok=False, error="Complete all steps before submitting")
        if not self.validate_current_step():
            return SubmitResult(ok=False, error="Please fix the highlighted fields")

        self.phase = WizardPhase.SUBMITTING
        self.submit_error = None
        task = asyncio.ensure_future(
            self.submitter.submit(dict(self.data), self.idempotency_key)
        )
        self._submit_task = task

        try:
            receipt = await task
        except asyncio.CancelledError:
            if self._aborted_task is not task:
                raise
            logger.info(f"Submission for {self.draft_key} aborted")
            return SubmitResult(ok=False, aborted=True, error="Submission cancelled")
        except GatewayError as e:
            logger.warning(
                f"Submission failed for {self.draft_key}: {e.message}",
                extra={"draft_key": self.draft_key, "upstream_status": e.upstream_status},
            )
            self.submit_error = e.message
            return SubmitResult(ok=False, error=e.message)
        else:
            if self._aborted_task is task:
                # Finished after abort(); the caller has moved on
                return SubmitResult(ok=False, aborted=True, error="Submission cancelled")
            self.receipt = receipt
            self.phase = WizardPhase.COMPLETED
        finally:
            if self._submit_task is task:
                self._submit_task = None
                if self.phase == WizardPhase.SUBMITTING:
                    self.phase = WizardPhase.IDLE

        try:
            await self.draft_store.clear(self.draft_key)
        except DraftSaveError as e:
            logger.warning(f"Could not clear draft {self.draft_key}: {e.message}")

        logger.info(
            f"Submitted {self.draft_key} as {receipt.reference}",
            extra={"draft_key": self.draft_key, "reference": receipt.reference},
        )
        return self._success_result()

    def abort(self) -> bool:
        """Cancel an in-flight submission and return to IDLE with data intact."""
        task = self._submit_task
        if self.phase != WizardPhase.SUBMITTING or task is None:
            return False
        self._aborted_task = task
        self._submit_task = None
        task.cancel()
        self.phase = WizardPhase.IDLE
        return True

    def _success_result(self) -> SubmitResult:
        return SubmitResult(
            ok=True,
            reference=self.receipt.reference,
            redirect_url=self.receipt.redirect_url,
        )
