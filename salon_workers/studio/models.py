"""
Pydantic models and enums for the Design Studio pipeline.
"""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


# ── Studio Stage ─────────────────────────────────────────────────────────────

class StudioStage(str, Enum):
    SELECT_CLIENT = "SELECT_CLIENT"
    UPLOAD = "UPLOAD"
    MAGIC_CAPTURE = "MAGIC_CAPTURE"
    GENERATING_INITIAL = "GENERATING_INITIAL"
    SHOW_INITIAL = "SHOW_INITIAL"
    REFINING = "REFINING"
    GENERATING_FINAL = "GENERATING_FINAL"
    SHOW_FINAL = "SHOW_FINAL"
    ERROR = "ERROR"


# Stepper position shown to the stylist (0 = not on the stepper)
STAGE_STEP = {
    StudioStage.SELECT_CLIENT: 1,
    StudioStage.UPLOAD: 2,
    StudioStage.MAGIC_CAPTURE: 2,
    StudioStage.GENERATING_INITIAL: 3,
    StudioStage.SHOW_INITIAL: 3,
    StudioStage.REFINING: 4,
    StudioStage.GENERATING_FINAL: 5,
    StudioStage.SHOW_FINAL: 5,
    StudioStage.ERROR: 0,
}


# ── Images ───────────────────────────────────────────────────────────────────

class SourceImage(BaseModel):
    """The client's captured or uploaded photo."""
    model_config = ConfigDict(frozen=True)

    image_data: str = Field(..., min_length=1, description="Base64 image payload")
    mime_type: str = "image/jpeg"

    @classmethod
    def from_data_url(cls, value: str, mime_type: Optional[str] = None) -> "SourceImage":
        """Accept either a `data:<mime>;base64,<payload>` URL or bare base64."""
        if value.startswith("data:"):
            header, payload = value.split(",", 1)
            return cls(image_data=payload, mime_type=header.split(":")[1].split(";")[0])
        return cls(image_data=value, mime_type=mime_type or "image/jpeg")

    def as_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.image_data}"


class ReferenceBundle(BaseModel):
    """Reference shots of a user-authored hairstyle."""
    model_config = ConfigDict(frozen=True)

    style_id: str
    name: str
    front: SourceImage
    back: Optional[SourceImage] = None
    left: Optional[SourceImage] = None
    right: Optional[SourceImage] = None
    top: Optional[SourceImage] = None


class StyleDescriptor(BaseModel):
    """A catalog entry used to seed one generation call."""
    model_config = ConfigDict(frozen=True)

    id: str
    display_name: str
    text_prompt: str = Field(..., min_length=1)
    reference_image: Optional[SourceImage] = None
    origin_style_id: Optional[str] = None  # set for user-authored styles


class GeneratedImage(BaseModel):
    """One output of a single gateway call."""
    model_config = ConfigDict(frozen=True)

    image_data: str
    prompt_used: str
    style_id: str
    style_name: str
    origin_style_id: Optional[str] = None


class AngleView(BaseModel):
    model_config = ConfigDict(frozen=True)

    view_label: str  # "Side", "Angled", "Back"
    image_data: str
    prompt_used: str = ""


class FinalLook(BaseModel):
    model_config = ConfigDict(frozen=True)

    main_image: GeneratedImage
    angle_views: list[AngleView] = Field(default_factory=list)


class Lookbook(BaseModel):
    """The persisted composite result of one completed run."""
    model_config = ConfigDict(frozen=True)

    id: str
    client_id: str
    source_image: SourceImage
    base_style: GeneratedImage
    final_image: GeneratedImage
    angle_views: list[AngleView] = Field(default_factory=list)
    created_at: str  # ISO timestamp


# ── Pipeline State ───────────────────────────────────────────────────────────

class PipelineState(BaseModel):
    """Stage tag plus everything accumulated during the current run."""
    model_config = ConfigDict(frozen=True)

    stage: StudioStage = StudioStage.SELECT_CLIENT
    client_id: Optional[str] = None
    source_image: Optional[SourceImage] = None
    initial_styles: list[GeneratedImage] = Field(default_factory=list)
    base_style: Optional[GeneratedImage] = None
    style_being_refined: Optional[GeneratedImage] = None
    refined_prompt: str = ""
    final_look: Optional[FinalLook] = None
    error_message: Optional[str] = None
    failed_stage: Optional[StudioStage] = None
    magic_style: Optional[StyleDescriptor] = None
    run_token: int = 0

    @property
    def step(self) -> int:
        return STAGE_STEP[self.stage]


# ── API Request Models ───────────────────────────────────────────────────────

class SessionCreateRequest(BaseModel):
    user_id: str = Field(..., description="Salon owner whose library and lookbooks are used")


class ClientSelectRequest(BaseModel):
    """Either pick an existing client or create one from name + email."""
    client_id: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None


class PhotoRequest(BaseModel):
    image: str = Field(..., min_length=1, description="Data URL or bare base64")
    mime_type: Optional[str] = None


class MagicCaptureRequest(PhotoRequest):
    style_id: str


class SelectStyleRequest(BaseModel):
    index: int = Field(..., ge=0)


class PromptRequest(BaseModel):
    prompt: str


class ModifierRequest(BaseModel):
    """Free-text phrase, or the name of a modifier chip (e.g. "Jet Black")."""
    phrase: Optional[str] = None
    chip: Optional[str] = None


# ── API Response Models ──────────────────────────────────────────────────────

class SessionResponse(BaseModel):
    session_id: str
    stage: StudioStage
    step: int
    client_id: Optional[str] = None
    initial_styles: list[GeneratedImage] = Field(default_factory=list)
    base_style: Optional[GeneratedImage] = None
    refined_prompt: str = ""
    final_look: Optional[FinalLook] = None
    error_message: Optional[str] = None
    can_retry: bool = False
    celebrate: bool = False
    history: list[dict] = Field(default_factory=list)
