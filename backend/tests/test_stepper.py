"""Tests for stepper display state and the live session registry."""

import asyncio

import pytest

from admissions.middleware.exceptions import WizardNotFoundError
from admissions.services.drafts import MemoryDraftStore
from admissions.services.sessions import WizardSessionRegistry
from admissions.services.stepper import build_stepper, build_wizard_view, handle_step_click, render_step
from admissions.services.steps import APPLICATION_STEPS
from admissions.services.wizard import StepStatus, WizardController, WizardPhase

from conftest import RecordingSubmitter, complete_application_data


def _application(submitter=None, **kwargs) -> WizardController:
    return WizardController(
        APPLICATION_STEPS,
        MemoryDraftStore(),
        "application_draft_boys-hostel",
        submitter or RecordingSubmitter(),
        **kwargs,
    )


@pytest.mark.unit
class TestStepper:
    """Test derived stepper rows and click handling."""

    def test_only_visited_steps_are_clickable(self):
        controller = _application(initial_data=complete_application_data(), initial_step=2)
        rows = build_stepper(controller)

        assert [r.clickable for r in rows] == [True, True, True, False, False, False]
        assert [r.status for r in rows[:4]] == [
            StepStatus.COMPLETED, StepStatus.COMPLETED, StepStatus.IN_PROGRESS, StepStatus.PENDING,
        ]
        assert rows[2].is_current

    def test_click_ahead_is_ignored(self):
        controller = _application(initial_step=2)
        assert handle_step_click(controller, 4) is False
        assert controller.current_index == 2
        assert handle_step_click(controller, 0) is True
        assert controller.current_index == 0

    def test_render_step_shows_owned_keys_only(self):
        controller = _application(initial_data=complete_application_data(), initial_step=4)
        view = render_step(controller)

        assert view.id == "documents"
        assert set(view.values) == {"photoFile", "birthCertificate", "marksheet"}
        assert view.values["marksheet"]["status"] == "selected"
        assert view.files_to_reselect == []

    def test_view_after_failed_next(self):
        controller = _application()
        controller.next()
        view = build_wizard_view("w1", "application", controller)

        assert view.steps[0].status == StepStatus.ERROR
        assert view.current.errors["firstName"] == "First name is required"
        assert view.can_go_back is False
        assert view.total_steps == 6


@pytest.mark.asyncio
class TestCompletedView:
    async def test_receipt_in_view(self):
        data = complete_application_data()
        controller = _application(initial_data=data, initial_step=5)
        await controller.submit()

        view = build_wizard_view("w1", "application", controller)
        assert view.phase == WizardPhase.COMPLETED
        assert view.reference == "HG-2026-0001"
        assert not any(r.clickable for r in view.steps)
        assert view.steps[5].status == StepStatus.COMPLETED


@pytest.mark.unit
class TestSessionRegistry:
    def test_get_refreshes_and_expires(self, clock):
        registry = WizardSessionRegistry(ttl_seconds=100, clock=clock)
        session = registry.create("application", _application())

        clock.advance(90)
        assert registry.get(session.wizard_id) is session
        clock.advance(90)
        assert registry.get(session.wizard_id) is session

        clock.advance(101)
        with pytest.raises(WizardNotFoundError):
            registry.get(session.wizard_id)
        assert len(registry) == 0

    def test_purge_expired(self, clock):
        registry = WizardSessionRegistry(ttl_seconds=100, clock=clock)
        registry.create("application", _application())
        registry.create("renewal", _application())
        clock.advance(101)
        assert registry.purge_expired() == 2

    def test_discard(self, clock):
        registry = WizardSessionRegistry(ttl_seconds=100, clock=clock)
        session = registry.create("application", _application())
        assert registry.discard(session.wizard_id) is True
        assert registry.discard(session.wizard_id) is False


@pytest.mark.asyncio
class TestSessionRegistryBusy:
    async def test_submitting_session_never_expires(self, clock):
        gate = asyncio.Event()
        controller = _application(
            submitter=RecordingSubmitter(gate=gate),
            initial_data=complete_application_data(),
            initial_step=5,
        )
        registry = WizardSessionRegistry(ttl_seconds=100, clock=clock)
        session = registry.create("application", controller)

        pending = asyncio.create_task(controller.submit())
        for _ in range(3):
            await asyncio.sleep(0)
        clock.advance(500)
        assert registry.purge_expired() == 0

        registry.discard(session.wizard_id)
        result = await pending
        assert result.aborted is True
        gate.set()
