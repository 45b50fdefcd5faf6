"""Display state for the wizard stepper.

Everything here is derived from the controller; nothing is stored and no
business rule lives here. Steps after the active one are never clickable.
"""

from admissions.schemas.wizard import StepSlice, StepView, WizardView
from admissions.services.drafts import snapshot_form_data
from admissions.services.wizard import WizardController


def is_clickable(controller: WizardController, index: int) -> bool:
    return (
        not controller.is_busy
        and not controller.is_completed
        and 0 <= index <= controller.current_index
    )


def build_stepper(controller: WizardController) -> list[StepView]:
    return [
        StepView(
            index=index,
            id=step.id,
            title=step.title,
            description=step.description,
            status=controller.step_status(index),
            is_current=index == controller.current_index,
            clickable=is_clickable(controller, index),
        )
        for index, step in enumerate(controller.steps)
    ]


def handle_step_click(controller: WizardController, index: int) -> bool:
    """Dispatch a stepper click to ``go_to_step`` if the step is reachable."""
    if not is_clickable(controller, index):
        return False
    return controller.go_to_step(index)


def render_step(controller: WizardController) -> StepSlice:
    step = controller.current_step
    data = snapshot_form_data(controller.data, file_status="selected")
    owned = step.owned_keys
    reselect = set(controller.files_to_reselect)
    return StepSlice(
        id=step.id,
        title=step.title,
        description=step.description,
        values={key: data[key] for key in owned if key in data},
        errors=dict(controller.errors),
        files_to_reselect=[key for key in step.file_fields if key in reselect],
    )


def build_wizard_view(wizard_id: str, kind: str, controller: WizardController) -> WizardView:
    receipt = controller.receipt
    return WizardView(
        wizard_id=wizard_id,
        kind=kind,
        draft_key=controller.draft_key,
        phase=controller.phase,
        current_index=controller.current_index,
        total_steps=len(controller.steps),
        is_last_step=controller.is_last_step,
        can_go_back=controller.current_index > 0 and not controller.is_busy and not controller.is_completed,
        steps=build_stepper(controller),
        current=render_step(controller),
        data=snapshot_form_data(controller.data, file_status="selected"),
        errors=dict(controller.errors),
        notice=controller.notice,
        submit_error=controller.submit_error,
        reference=receipt.reference if receipt else None,
        redirect_url=receipt.redirect_url if receipt else None,
    )
