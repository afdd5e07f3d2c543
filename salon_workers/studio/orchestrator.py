"""
DesignStudioService — the Design Studio pipeline orchestrator.

Walks one stylist through:
  Step 1: Select client
  Step 2: Capture / upload photo (or magic capture from the live camera)
  Step 3: Generate candidate styles in parallel → pick one
  Step 4: Refine the prompt
  Step 5: Generate main image + side/angled/back views in parallel → lookbook

State changes go through transitions.transition(); this class is the effect
runner around it. Entering a generating stage launches one asyncio task; its
result comes back as a completion event tagged with the run_token it was
launched for, so results that arrive after a reset or retry are ignored.
"""

import os
import time
import uuid
import asyncio
import logging
from enum import Enum
from typing import Callable, Optional

from .. import metrics
from ..gemini import RateLimited, generate_hairstyle
from .models import PipelineState, StudioStage, SourceImage, AngleView, Lookbook
from .batch import Gateway, GenerationRequest, generate_batch
from .catalog import ANGLE_VIEWS, find_magic_style, view_reference
from .collaborators import ClientRoster, StyleCatalog, UsageCounter, LookbookStore
from .history import SessionHistory
from .lookbook import LookbookAssembler
from .errors import (
    StudioError,
    InvalidTransition,
    ZeroSuccessError,
    MainImageFailure,
    EmptyStyleLibrary,
    NO_STYLES_MESSAGE,
    MAIN_IMAGE_MESSAGE,
    RATE_LIMITED_MESSAGE,
    EMPTY_LIBRARY_MESSAGE,
    MAGIC_CAPTURE_MESSAGE,
    GENERIC_MESSAGE,
)
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
)
from .transitions import transition, initial_state, pending_effect

logger = logging.getLogger(__name__)

_env_generations = os.getenv("STUDIO_INITIAL_GENERATIONS")
STUDIO_INITIAL_GENERATIONS = int(_env_generations) if _env_generations else None


class StudioSignal(str, Enum):
    LOOKBOOK_PERSISTED = "lookbook_persisted"
    RUN_ABANDONED = "run_abandoned"


Listener = Callable[[StudioSignal, Optional[Lookbook]], None]


class DesignStudioService:
    """
    One studio session for one stylist.

    Usage:
        studio = DesignStudioService(catalog=..., lookbooks=..., usage=..., roster=...)

        await studio.select_client("client-123")
        studio.capture_photo(SourceImage.from_data_url(data_url))
        await studio.settle()                 # initial styles generated
        studio.choose_style(0)
        studio.apply_modifier("in a jet black color")
        studio.finalize()
        await studio.settle()                 # final look + lookbook
    """

    def __init__(
        self,
        *,
        catalog: StyleCatalog,
        lookbooks: LookbookStore,
        usage: UsageCounter,
        roster: ClientRoster,
        generate: Gateway = generate_hairstyle,
        initial_generations: Optional[int] = STUDIO_INITIAL_GENERATIONS,
        listener: Optional[Listener] = None,
        session_id: Optional[str] = None,
    ):
        self.session_id = session_id or str(uuid.uuid4())
        self.catalog = catalog
        self.usage = usage
        self.roster = roster
        self.generate = generate
        self.initial_generations = initial_generations
        self.listener = listener

        self.state: PipelineState = initial_state()
        self.history = SessionHistory()
        self.assembler = LookbookAssembler(lookbooks)
        self.lookbook: Optional[Lookbook] = None

        self._effect: Optional[asyncio.Task] = None
        self._background: set[asyncio.Task] = set()
        self._celebrate = False

    # ── Dispatch ─────────────────────────────────────────────────────────

    def dispatch(self, event: StudioEvent) -> PipelineState:
        """Apply an event, update history, and launch any effect it triggers."""
        previous = self.state
        self.state = transition(previous, event)

        if isinstance(event, MagicCaptureExited):
            self._cancel_effect()

        if isinstance(event, ResetRequested):
            self._on_reset(previous)
        elif self.state.stage != previous.stage:
            self._on_enter(previous, self.state)
            logger.info(f"[studio:{self.session_id}] {previous.stage.value} → {self.state.stage.value}")

        effect = pending_effect(previous, self.state)
        if effect is not None:
            self._launch(effect, self.state.run_token)
        return self.state

    def _on_enter(self, previous: PipelineState, current: PipelineState):
        if current.stage == StudioStage.SHOW_INITIAL:
            self.history.append(*current.initial_styles)
        elif current.stage == StudioStage.REFINING and previous.stage == StudioStage.MAGIC_CAPTURE:
            self.history.append(current.base_style)
        elif current.stage == StudioStage.SHOW_FINAL:
            self.history.append(current.final_look.main_image, *current.final_look.angle_views)
            self._celebrate = True
        elif current.stage == StudioStage.ERROR:
            logger.warning(f"[studio:{self.session_id}] {previous.stage.value} failed: {current.error_message}")

    def _on_reset(self, previous: PipelineState):
        self._cancel_effect()
        self.history.clear()
        self.lookbook = None
        self._celebrate = False
        if previous.stage != StudioStage.SELECT_CLIENT:
            logger.info(f"[studio:{self.session_id}] Run abandoned at {previous.stage.value}")
            self._emit(StudioSignal.RUN_ABANDONED, None)

    def _emit(self, signal: StudioSignal, lookbook: Optional[Lookbook]):
        if self.listener is None:
            return
        try:
            self.listener(signal, lookbook)
        except Exception as e:
            logger.error(f"[studio:{self.session_id}] Listener failed on {signal.value}: {e}", exc_info=True)

    # ── Effects ──────────────────────────────────────────────────────────

    def _cancel_effect(self):
        effect, self._effect = self._effect, None
        if effect is not None and not effect.done():
            effect.cancel()
            # settle() still waits for the cancellation to unwind
            self._background.add(effect)
            effect.add_done_callback(self._background.discard)

    def _launch(self, stage: StudioStage, token: int):
        self._cancel_effect()
        runners = {
            StudioStage.GENERATING_INITIAL: self._generate_initial,
            StudioStage.GENERATING_FINAL: self._generate_final,
            StudioStage.MAGIC_CAPTURE: self._generate_magic,
        }
        self._effect = asyncio.get_running_loop().create_task(self._guarded(stage, token, runners[stage]))

    def _spawn(self, coro):
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _guarded(self, stage: StudioStage, token: int, run):
        started = time.time()
        outcome = "completed"
        try:
            await run(token)
        except asyncio.CancelledError:
            outcome = "cancelled"
            raise
        except StudioError as e:
            outcome = "failed"
            self.dispatch(GenerationFailed(run_token=token, message=str(e)))
        except Exception as e:
            outcome = "crashed"
            logger.error(f"[studio:{self.session_id}] Generation effect crashed: {e}", exc_info=True)
            metrics.record_error("studio", type(e).__name__, str(e), self.session_id)
            self.dispatch(GenerationFailed(run_token=token, message=GENERIC_MESSAGE))
        finally:
            metrics.record_stage(stage.value, outcome, (time.time() - started) * 1000)

    async def _generate_initial(self, token: int):
        source = self.state.source_image
        styles = await self.catalog.initial_styles(self.initial_generations)
        if not styles:
            raise EmptyStyleLibrary(EMPTY_LIBRARY_MESSAGE)

        requests = [
            GenerationRequest(
                prompt=style.text_prompt,
                style_id=style.id,
                style_name=style.display_name,
                reference_image=style.reference_image,
                origin_style_id=style.origin_style_id,
            )
            for style in styles
        ]
        logger.info(f"[studio:{self.session_id}] Generating {len(requests)} initial style(s)")
        batch = await generate_batch(self.generate, source, requests)
        self._count_usage(len(batch.successes))

        if not batch.successes:
            raise ZeroSuccessError(RATE_LIMITED_MESSAGE if batch.rate_limited else NO_STYLES_MESSAGE)

        self.dispatch(InitialStylesGenerated(run_token=token, images=batch.successes))

    async def _generate_final(self, token: int):
        source = self.state.source_image
        refined = self.state.style_being_refined
        prompt = refined.prompt_used

        bundle = None
        if refined.origin_style_id:
            bundle = await self.catalog.reference_bundle(refined.origin_style_id)

        requests = [GenerationRequest(
            prompt=prompt,
            style_id=refined.style_id,
            style_name=refined.style_name,
            reference_image=bundle.front if bundle else None,
            origin_style_id=refined.origin_style_id,
        )]
        for label, suffix, attrs in ANGLE_VIEWS:
            requests.append(GenerationRequest(
                prompt=prompt + suffix,
                style_id=refined.style_id,
                style_name=label,
                reference_image=view_reference(bundle, attrs),
                origin_style_id=refined.origin_style_id,
            ))

        logger.info(f"[studio:{self.session_id}] Generating final look + {len(ANGLE_VIEWS)} angle views")
        batch = await generate_batch(self.generate, source, requests)
        self._count_usage(len(batch.successes))

        main = batch[0]
        if main is None:
            rate_limited = isinstance(batch.errors[0], RateLimited)
            raise MainImageFailure(RATE_LIMITED_MESSAGE if rate_limited else MAIN_IMAGE_MESSAGE)

        angle_views = [
            AngleView(view_label=label, image_data=image.image_data, prompt_used=image.prompt_used)
            for (label, _, _), image in zip(ANGLE_VIEWS, batch.results[1:])
            if image is not None
        ]
        main_image = refined.model_copy(update={"image_data": main.image_data})

        self.dispatch(FinalViewsGenerated(run_token=token, main_image=main_image, angle_views=angle_views))

        if self.state.stage == StudioStage.SHOW_FINAL and self.state.run_token == token:
            self.lookbook = self.assembler.assemble(self.state)
            # Runs outside the effect task; reset does not cancel the save
            self._spawn(self._persist(self.lookbook))

    async def _generate_magic(self, token: int):
        style = self.state.magic_style
        request = GenerationRequest(
            prompt=style.text_prompt,
            style_id=style.id,
            style_name=style.display_name,
            reference_image=style.reference_image,
            origin_style_id=style.origin_style_id,
        )
        batch = await generate_batch(self.generate, self.state.source_image, [request])
        self._count_usage(len(batch.successes))

        if batch[0] is None:
            raise StudioError(RATE_LIMITED_MESSAGE if batch.rate_limited else MAGIC_CAPTURE_MESSAGE)

        self.dispatch(MagicCaptureGenerated(run_token=token, image=batch[0]))

    async def _persist(self, lookbook: Lookbook):
        if await self.assembler.persist(lookbook):
            self._emit(StudioSignal.LOOKBOOK_PERSISTED, lookbook)

    def _count_usage(self, successes: int):
        if successes:
            self._spawn(self._increment_usage(successes))

    async def _increment_usage(self, amount: int):
        try:
            await self.usage.increment(amount)
        except Exception as e:
            logger.warning(f"[studio:{self.session_id}] Usage counter increment failed: {e}")

    async def settle(self):
        """Wait until the running effect and all background work have finished."""
        while True:
            pending = [t for t in (self._effect, *self._background) if t is not None and not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # ── Stylist actions ──────────────────────────────────────────────────

    async def list_clients(self) -> list[dict]:
        return await self.roster.list_clients()

    async def select_client(self, client_id: str) -> PipelineState:
        return self.dispatch(ClientSelected(client_id=client_id))

    async def create_client(self, name: str, email: str) -> PipelineState:
        if self.state.stage != StudioStage.SELECT_CLIENT:
            raise InvalidTransition(self.state.stage, "ClientSelected")
        if not name or not email:
            raise ValueError("Name and email are required to add a client")
        client_id = await self.roster.add_client(name, email)
        return self.dispatch(ClientSelected(client_id=client_id))

    def capture_photo(self, image: SourceImage) -> PipelineState:
        return self.dispatch(PhotoCaptured(source_image=image))

    def enter_magic_capture(self) -> PipelineState:
        return self.dispatch(MagicCaptureEntered())

    def exit_magic_capture(self) -> PipelineState:
        return self.dispatch(MagicCaptureExited())

    def magic_capture(self, image: SourceImage, style_id: str) -> PipelineState:
        style = find_magic_style(style_id)
        if style is None:
            raise ValueError(f"Unknown hairstyle '{style_id}'")
        return self.dispatch(MagicStyleChosen(source_image=image, style=style))

    def choose_style(self, index: int) -> PipelineState:
        if self.state.stage != StudioStage.SHOW_INITIAL:
            raise InvalidTransition(self.state.stage, "StyleChosen")
        styles = self.state.initial_styles
        if not 0 <= index < len(styles):
            raise ValueError(f"Invalid style index {index}. Valid range: 0–{len(styles) - 1}")
        return self.dispatch(StyleChosen(image=styles[index]))

    def edit_prompt(self, prompt: str) -> PipelineState:
        return self.dispatch(PromptEdited(prompt=prompt))

    def apply_modifier(self, phrase: str) -> PipelineState:
        return self.dispatch(ModifierApplied(phrase=phrase))

    def finalize(self) -> PipelineState:
        return self.dispatch(Finalized())

    def retry(self) -> PipelineState:
        return self.dispatch(RetryRequested())

    def reset(self) -> PipelineState:
        return self.dispatch(ResetRequested())

    def consume_celebration(self) -> bool:
        """One-shot flag raised when a run reaches SHOW_FINAL."""
        celebrate, self._celebrate = self._celebrate, False
        return celebrate
