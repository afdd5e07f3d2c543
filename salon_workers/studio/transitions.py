"""
Pure transition function for the Design Studio pipeline.

    transition(state, event) -> state

No I/O happens here. Entering GENERATING_INITIAL, GENERATING_FINAL or a
magic-capture generation bumps run_token; the orchestrator sees the new token
and launches the matching effect. Completion events whose token is not the
current one are stale (the run was reset or retried) and leave the state
untouched.
"""

import logging
from typing import Optional

from .models import PipelineState, StudioStage, FinalLook
from .errors import InvalidTransition, NO_STYLES_MESSAGE
from .events import (
    StudioEvent,
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
    COMPLETION_EVENTS,
)

logger = logging.getLogger(__name__)

GENERATING_STAGES = (
    StudioStage.GENERATING_INITIAL,
    StudioStage.GENERATING_FINAL,
    StudioStage.MAGIC_CAPTURE,
)


def append_modifier(prompt: str, phrase: str) -> str:
    """Append a modifier phrase unless the prompt already contains it."""
    phrase = phrase.strip()
    if not phrase or phrase in prompt:
        return prompt
    base = prompt.strip()
    return f"{base}, {phrase}" if base else phrase


def initial_state(run_token: int = 0) -> PipelineState:
    return PipelineState(run_token=run_token)


def _require(state: PipelineState, event: StudioEvent, *stages: StudioStage):
    if state.stage not in stages:
        raise InvalidTransition(state.stage, type(event).__name__)


def _is_current(state: PipelineState, event, *stages: StudioStage) -> bool:
    if event.run_token != state.run_token or state.stage not in stages:
        logger.debug(
            f"Ignoring stale {type(event).__name__} (token {event.run_token}, "
            f"current {state.run_token}, stage {state.stage.value})"
        )
        return False
    return True


def _fail(state: PipelineState, message: str) -> PipelineState:
    return state.model_copy(update={
        "stage": StudioStage.ERROR,
        "error_message": message,
        "failed_stage": state.stage,
        "magic_style": None,
    })


def transition(state: PipelineState, event: StudioEvent) -> PipelineState:
    """Apply one event. Raises InvalidTransition for misplaced user actions."""

    # ── Reset (from anywhere) ────────────────────────────────────────────
    if isinstance(event, ResetRequested):
        return initial_state(run_token=state.run_token + 1)

    # ── Completion events ────────────────────────────────────────────────
    if isinstance(event, COMPLETION_EVENTS):
        return _complete(state, event)

    # ── Step 1: client + photo ───────────────────────────────────────────
    if isinstance(event, ClientSelected):
        _require(state, event, StudioStage.SELECT_CLIENT)
        return state.model_copy(update={
            "stage": StudioStage.UPLOAD,
            "client_id": event.client_id,
        })

    if isinstance(event, PhotoCaptured):
        _require(state, event, StudioStage.UPLOAD)
        return state.model_copy(update={
            "stage": StudioStage.GENERATING_INITIAL,
            "source_image": event.source_image,
            "initial_styles": [],
            "run_token": state.run_token + 1,
        })

    if isinstance(event, MagicCaptureEntered):
        _require(state, event, StudioStage.UPLOAD)
        return state.model_copy(update={"stage": StudioStage.MAGIC_CAPTURE})

    if isinstance(event, MagicCaptureExited):
        _require(state, event, StudioStage.MAGIC_CAPTURE)
        return state.model_copy(update={
            "stage": StudioStage.UPLOAD,
            "source_image": None,
            "magic_style": None,
            "run_token": state.run_token + 1,
        })

    if isinstance(event, MagicStyleChosen):
        _require(state, event, StudioStage.MAGIC_CAPTURE)
        if state.magic_style is not None:
            raise InvalidTransition(state.stage, "MagicStyleChosen (generation in progress)")
        return state.model_copy(update={
            "source_image": event.source_image,
            "magic_style": event.style,
            "run_token": state.run_token + 1,
        })

    # ── Step 3: pick a base style ────────────────────────────────────────
    if isinstance(event, StyleChosen):
        _require(state, event, StudioStage.SHOW_INITIAL)
        if event.image not in state.initial_styles:
            raise InvalidTransition(state.stage, "StyleChosen (unknown image)")
        return state.model_copy(update={
            "stage": StudioStage.REFINING,
            "base_style": event.image,
            "style_being_refined": event.image,
            "refined_prompt": event.image.prompt_used,
        })

    # ── Step 4: refinement ───────────────────────────────────────────────
    if isinstance(event, PromptEdited):
        _require(state, event, StudioStage.REFINING)
        return state.model_copy(update={"refined_prompt": event.prompt})

    if isinstance(event, ModifierApplied):
        _require(state, event, StudioStage.REFINING)
        return state.model_copy(update={
            "refined_prompt": append_modifier(state.refined_prompt, event.phrase),
        })

    if isinstance(event, Finalized):
        _require(state, event, StudioStage.REFINING)
        if not state.refined_prompt.strip():
            raise ValueError("The prompt can't be empty")
        refined = state.style_being_refined.model_copy(update={"prompt_used": state.refined_prompt})
        return state.model_copy(update={
            "stage": StudioStage.GENERATING_FINAL,
            "style_being_refined": refined,
            "run_token": state.run_token + 1,
        })

    # ── Error recovery ───────────────────────────────────────────────────
    if isinstance(event, RetryRequested):
        _require(state, event, StudioStage.ERROR)
        return _retry(state, event)

    raise InvalidTransition(state.stage, type(event).__name__)


def _complete(state: PipelineState, event) -> PipelineState:
    if isinstance(event, InitialStylesGenerated):
        if not _is_current(state, event, StudioStage.GENERATING_INITIAL):
            return state
        if not event.images:
            return _fail(state, NO_STYLES_MESSAGE)
        return state.model_copy(update={
            "stage": StudioStage.SHOW_INITIAL,
            "initial_styles": list(event.images),
        })

    if isinstance(event, MagicCaptureGenerated):
        if not _is_current(state, event, StudioStage.MAGIC_CAPTURE) or state.magic_style is None:
            return state
        return state.model_copy(update={
            "stage": StudioStage.REFINING,
            "base_style": event.image,
            "style_being_refined": event.image,
            "refined_prompt": event.image.prompt_used,
            "magic_style": None,
        })

    if isinstance(event, FinalViewsGenerated):
        if not _is_current(state, event, StudioStage.GENERATING_FINAL):
            return state
        return state.model_copy(update={
            "stage": StudioStage.SHOW_FINAL,
            "final_look": FinalLook(main_image=event.main_image, angle_views=list(event.angle_views)),
        })

    if isinstance(event, GenerationFailed):
        if not _is_current(state, event, *GENERATING_STAGES):
            return state
        return _fail(state, event.message)

    return state


def _retry(state: PipelineState, event: StudioEvent) -> PipelineState:
    failed = state.failed_stage
    cleared = {"error_message": None, "failed_stage": None, "run_token": state.run_token + 1}

    if failed == StudioStage.GENERATING_INITIAL and state.source_image is not None:
        return state.model_copy(update={**cleared, "stage": failed, "initial_styles": []})

    if failed == StudioStage.GENERATING_FINAL and state.style_being_refined is not None:
        return state.model_copy(update={**cleared, "stage": failed, "final_look": None})

    if failed == StudioStage.MAGIC_CAPTURE:
        return state.model_copy(update={**cleared, "stage": failed, "source_image": None})

    raise InvalidTransition(state.stage, type(event).__name__)


def pending_effect(previous: PipelineState, current: PipelineState) -> Optional[StudioStage]:
    """Which generation the runner must launch after a transition, if any."""
    if current.run_token == previous.run_token:
        return None
    if current.stage in (StudioStage.GENERATING_INITIAL, StudioStage.GENERATING_FINAL):
        return current.stage
    if current.stage == StudioStage.MAGIC_CAPTURE and current.magic_style is not None:
        return current.stage
    return None
