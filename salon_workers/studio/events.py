"""
Events accepted by the studio transition function.

User actions come from the stylist; completion events come from the effect
runner and carry the run_token of the stage they were launched for.
"""

from pydantic import BaseModel, ConfigDict, Field

from .models import SourceImage, StyleDescriptor, GeneratedImage, AngleView


class StudioEvent(BaseModel):
    model_config = ConfigDict(frozen=True)


# ── User actions ─────────────────────────────────────────────────────────────

class ClientSelected(StudioEvent):
    client_id: str = Field(..., min_length=1)


class PhotoCaptured(StudioEvent):
    source_image: SourceImage


class MagicCaptureEntered(StudioEvent):
    pass


class MagicCaptureExited(StudioEvent):
    pass


class MagicStyleChosen(StudioEvent):
    source_image: SourceImage
    style: StyleDescriptor


class StyleChosen(StudioEvent):
    image: GeneratedImage


class PromptEdited(StudioEvent):
    prompt: str


class ModifierApplied(StudioEvent):
    phrase: str = Field(..., min_length=1)


class Finalized(StudioEvent):
    pass


class RetryRequested(StudioEvent):
    pass


class ResetRequested(StudioEvent):
    pass


# ── Completion events ────────────────────────────────────────────────────────

class InitialStylesGenerated(StudioEvent):
    run_token: int
    images: list[GeneratedImage]


class MagicCaptureGenerated(StudioEvent):
    run_token: int
    image: GeneratedImage


class FinalViewsGenerated(StudioEvent):
    run_token: int
    main_image: GeneratedImage
    angle_views: list[AngleView] = Field(default_factory=list)


class GenerationFailed(StudioEvent):
    run_token: int
    message: str


COMPLETION_EVENTS = (
    InitialStylesGenerated,
    MagicCaptureGenerated,
    FinalViewsGenerated,
    GenerationFailed,
)
