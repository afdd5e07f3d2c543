"""Unit tests for the pure studio transition function."""

import pytest

from salon_workers.studio.models import (
    PipelineState,
    StudioStage,
    SourceImage,
    GeneratedImage,
    AngleView,
)
from salon_workers.studio.catalog import MAGIC_STYLES
from salon_workers.studio.errors import InvalidTransition, NO_STYLES_MESSAGE
from salon_workers.studio.events import (
    ClientSelected,
    PhotoCaptured,
    MagicCaptureEntered,
    MagicCaptureExited,
    MagicStyleChosen,
    StyleChosen,
    PromptEdited,
    ModifierApplied,
    Finalized,
    RetryRequested,
    ResetRequested,
    InitialStylesGenerated,
    MagicCaptureGenerated,
    FinalViewsGenerated,
    GenerationFailed,
)
from salon_workers.studio.transitions import (
    transition,
    initial_state,
    pending_effect,
    append_modifier,
)


PHOTO = SourceImage(image_data="cGhvdG8=")


def _image(name: str, prompt: str = "a sleek bob") -> GeneratedImage:
    return GeneratedImage(image_data=f"img-{name}", prompt_used=prompt, style_id=name, style_name=name.title())


def _generating_initial() -> PipelineState:
    state = transition(initial_state(), ClientSelected(client_id="client-1"))
    return transition(state, PhotoCaptured(source_image=PHOTO))


def _show_initial() -> PipelineState:
    state = _generating_initial()
    return transition(state, InitialStylesGenerated(
        run_token=state.run_token,
        images=[_image("bob"), _image("lob", "a wavy lob")],
    ))


def _refining() -> PipelineState:
    state = _show_initial()
    return transition(state, StyleChosen(image=state.initial_styles[0]))


def _generating_final() -> PipelineState:
    return transition(_refining(), Finalized())


class TestAppendModifier:
    """Tests for append_modifier."""

    def test_appends_with_comma(self):
        """A new phrase is joined with ', '."""
        assert append_modifier("a sleek bob", "in a jet black color") == "a sleek bob, in a jet black color"

    def test_idempotent(self):
        """Applying the same phrase twice leaves the prompt as after once."""
        once = append_modifier("a sleek bob", "in a jet black color")
        assert append_modifier(once, "in a jet black color") == once

    def test_empty_prompt(self):
        """An empty prompt becomes just the phrase."""
        assert append_modifier("", "with subtle highlights") == "with subtle highlights"


class TestForwardFlow:
    """Tests for the happy-path stage sequence."""

    def test_initial_state(self):
        """A fresh state starts at client selection with nothing accumulated."""
        state = initial_state()
        assert state.stage == StudioStage.SELECT_CLIENT
        assert state.step == 1
        assert state.client_id is None
        assert state.initial_styles == []

    def test_client_selected_moves_to_upload(self):
        """Selecting a client records it and moves to UPLOAD."""
        state = transition(initial_state(), ClientSelected(client_id="client-1"))
        assert state.stage == StudioStage.UPLOAD
        assert state.client_id == "client-1"

    def test_photo_starts_initial_generation(self):
        """A photo moves to GENERATING_INITIAL and requests the effect."""
        before = transition(initial_state(), ClientSelected(client_id="client-1"))
        after = transition(before, PhotoCaptured(source_image=PHOTO))

        assert after.stage == StudioStage.GENERATING_INITIAL
        assert after.source_image == PHOTO
        assert after.run_token == before.run_token + 1
        assert pending_effect(before, after) == StudioStage.GENERATING_INITIAL

    def test_initial_results_move_to_show_initial(self):
        """Completed initial styles are stored in order."""
        state = _show_initial()
        assert state.stage == StudioStage.SHOW_INITIAL
        assert [img.style_id for img in state.initial_styles] == ["bob", "lob"]

    def test_style_chosen_seeds_refinement(self):
        """Choosing a style sets base, refined and prompt."""
        state = _refining()
        assert state.stage == StudioStage.REFINING
        assert state.base_style.style_id == "bob"
        assert state.style_being_refined == state.base_style
        assert state.refined_prompt == "a sleek bob"

    def test_prompt_edit_and_modifier(self):
        """Edits replace the prompt; modifiers append once."""
        state = transition(_refining(), PromptEdited(prompt="a sharp bob"))
        state = transition(state, ModifierApplied(phrase="with sharp, blunt-cut bangs"))
        state = transition(state, ModifierApplied(phrase="with sharp, blunt-cut bangs"))
        assert state.refined_prompt == "a sharp bob, with sharp, blunt-cut bangs"

    def test_finalize_carries_refined_prompt(self):
        """Finalizing copies the refined prompt onto the style being refined."""
        refining = transition(_refining(), ModifierApplied(phrase="in a jet black color"))
        state = transition(refining, Finalized())

        assert state.stage == StudioStage.GENERATING_FINAL
        assert state.style_being_refined.prompt_used == "a sleek bob, in a jet black color"
        assert state.base_style.prompt_used == "a sleek bob"
        assert pending_effect(refining, state) == StudioStage.GENERATING_FINAL

    def test_final_views_move_to_show_final(self):
        """The final look is stored with whatever views succeeded."""
        state = _generating_final()
        main = state.style_being_refined.model_copy(update={"image_data": "img-main"})
        views = [AngleView(view_label="Side", image_data="img-side")]
        state = transition(state, FinalViewsGenerated(run_token=state.run_token, main_image=main, angle_views=views))

        assert state.stage == StudioStage.SHOW_FINAL
        assert state.final_look.main_image.image_data == "img-main"
        assert [v.view_label for v in state.final_look.angle_views] == ["Side"]


class TestInvalidTransitions:
    """Tests for actions requested in the wrong stage."""

    def test_finalize_from_upload(self):
        """Finalize is only accepted while refining."""
        state = transition(initial_state(), ClientSelected(client_id="client-1"))
        with pytest.raises(InvalidTransition) as exc:
            transition(state, Finalized())
        assert exc.value.stage == StudioStage.UPLOAD
        assert exc.value.action == "Finalized"

    def test_select_client_twice(self):
        """Client selection cannot be repeated without a reset."""
        state = transition(initial_state(), ClientSelected(client_id="client-1"))
        with pytest.raises(InvalidTransition):
            transition(state, ClientSelected(client_id="client-2"))

    def test_unknown_style_chosen(self):
        """Only one of the shown initial styles can be chosen."""
        with pytest.raises(InvalidTransition):
            transition(_show_initial(), StyleChosen(image=_image("mullet")))

    def test_blank_prompt_cannot_finalize(self):
        """A whitespace-only prompt is rejected."""
        state = transition(_refining(), PromptEdited(prompt="   "))
        with pytest.raises(ValueError):
            transition(state, Finalized())

    def test_retry_outside_error(self):
        """Retry is only accepted from ERROR."""
        with pytest.raises(InvalidTransition):
            transition(_refining(), RetryRequested())


class TestRunToken:
    """Tests for stale completion events."""

    def test_stale_initial_results_ignored(self):
        """Results from an older token leave the state unchanged."""
        state = _generating_initial()
        stale = InitialStylesGenerated(run_token=state.run_token - 1, images=[_image("bob")])
        assert transition(state, stale) == state

    def test_result_after_reset_ignored(self):
        """A completion for a reset run does not revive it."""
        generating = _generating_initial()
        reset = transition(generating, ResetRequested())
        late = InitialStylesGenerated(run_token=generating.run_token, images=[_image("bob")])

        assert transition(reset, late) == reset
        assert reset.stage == StudioStage.SELECT_CLIENT

    def test_stale_failure_ignored(self):
        """A failure for an older token cannot push the run into ERROR."""
        state = _refining()
        assert transition(state, GenerationFailed(run_token=state.run_token - 1, message="boom")) == state

    def test_empty_results_fail(self):
        """An empty result list is a zero-success failure."""
        state = _generating_initial()
        state = transition(state, InitialStylesGenerated(run_token=state.run_token, images=[]))
        assert state.stage == StudioStage.ERROR
        assert state.error_message == NO_STYLES_MESSAGE


class TestRecovery:
    """Tests for retry and reset."""

    def test_retry_initial(self):
        """Retry after an initial failure regenerates from the same photo."""
        state = _generating_initial()
        failed = transition(state, GenerationFailed(run_token=state.run_token, message="boom"))
        assert failed.stage == StudioStage.ERROR
        assert failed.failed_stage == StudioStage.GENERATING_INITIAL
        assert failed.step == 0

        retried = transition(failed, RetryRequested())
        assert retried.stage == StudioStage.GENERATING_INITIAL
        assert retried.source_image == PHOTO
        assert retried.error_message is None
        assert pending_effect(failed, retried) == StudioStage.GENERATING_INITIAL

    def test_retry_final(self):
        """Retry after a final failure keeps the refined prompt."""
        state = _generating_final()
        failed = transition(state, GenerationFailed(run_token=state.run_token, message="boom"))
        retried = transition(failed, RetryRequested())

        assert retried.stage == StudioStage.GENERATING_FINAL
        assert retried.style_being_refined == state.style_being_refined
        assert pending_effect(failed, retried) == StudioStage.GENERATING_FINAL

    def test_retry_magic_waits_for_new_frame(self):
        """Retry after a magic failure reopens the camera without generating."""
        state = transition(initial_state(), ClientSelected(client_id="client-1"))
        state = transition(state, MagicCaptureEntered())
        state = transition(state, MagicStyleChosen(source_image=PHOTO, style=MAGIC_STYLES[0]))
        failed = transition(state, GenerationFailed(run_token=state.run_token, message="boom"))
        retried = transition(failed, RetryRequested())

        assert retried.stage == StudioStage.MAGIC_CAPTURE
        assert retried.source_image is None
        assert pending_effect(failed, retried) is None

    def test_reset_from_anywhere(self):
        """Reset returns to a pristine state with a new token."""
        for state in (_generating_initial(), _show_initial(), _refining(), _generating_final()):
            reset = transition(state, ResetRequested())
            assert reset == initial_state(run_token=state.run_token + 1)


class TestMagicCapture:
    """Tests for the camera shortcut into refinement."""

    def test_enter_and_exit(self):
        """Entering and leaving magic capture stays on step 2."""
        upload = transition(initial_state(), ClientSelected(client_id="client-1"))
        magic = transition(upload, MagicCaptureEntered())
        assert magic.stage == StudioStage.MAGIC_CAPTURE
        assert magic.step == 2
        assert pending_effect(upload, magic) is None

        back = transition(magic, MagicCaptureExited())
        assert back.stage == StudioStage.UPLOAD

    def test_style_chosen_launches_generation(self):
        """Capturing a frame with a style requests the magic effect."""
        magic = transition(transition(initial_state(), ClientSelected(client_id="c")), MagicCaptureEntered())
        chosen = transition(magic, MagicStyleChosen(source_image=PHOTO, style=MAGIC_STYLES[4]))

        assert chosen.stage == StudioStage.MAGIC_CAPTURE
        assert chosen.magic_style.id == "curly-shag"
        assert pending_effect(magic, chosen) == StudioStage.MAGIC_CAPTURE

    def test_second_capture_while_generating(self):
        """Only one magic generation runs at a time."""
        magic = transition(transition(initial_state(), ClientSelected(client_id="c")), MagicCaptureEntered())
        chosen = transition(magic, MagicStyleChosen(source_image=PHOTO, style=MAGIC_STYLES[0]))
        with pytest.raises(InvalidTransition):
            transition(chosen, MagicStyleChosen(source_image=PHOTO, style=MAGIC_STYLES[1]))

    def test_result_goes_to_refining(self):
        """The magic result becomes the base style."""
        magic = transition(transition(initial_state(), ClientSelected(client_id="c")), MagicCaptureEntered())
        chosen = transition(magic, MagicStyleChosen(source_image=PHOTO, style=MAGIC_STYLES[0]))
        result = _image("sleek-bob", MAGIC_STYLES[0].text_prompt)
        state = transition(chosen, MagicCaptureGenerated(run_token=chosen.run_token, image=result))

        assert state.stage == StudioStage.REFINING
        assert state.base_style == result
        assert state.refined_prompt == MAGIC_STYLES[0].text_prompt
        assert state.magic_style is None
