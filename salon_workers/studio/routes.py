"""
FastAPI routes for the Design Studio.

Session Endpoints:
  POST   /studio/sessions                     — Start a studio session for a salon user
  GET    /studio/sessions/{id}                — Current stage, results and history
  DELETE /studio/sessions/{id}                — Leave the studio (abandons the run)
  GET    /studio/sessions/{id}/clients        — Client roster
  GET    /studio/modifiers                    — Colour and style modifier chips

Step Endpoints:
  POST /studio/sessions/{id}/client           — Step 1: pick or create a client
  POST /studio/sessions/{id}/photo            — Step 2: photo → initial styles
  POST /studio/sessions/{id}/magic            — Step 2: open magic capture
  POST /studio/sessions/{id}/magic/exit       — Step 2: back to upload
  POST /studio/sessions/{id}/magic/capture    — Step 2: camera frame + style → refine
  POST /studio/sessions/{id}/select           — Step 3: choose the base style
  POST /studio/sessions/{id}/prompt           — Step 4: edit the prompt
  POST /studio/sessions/{id}/modifier         — Step 4: append a modifier chip
  POST /studio/sessions/{id}/finalize         — Step 5: final look + angle views
  POST /studio/sessions/{id}/retry            — Re-run the stage that failed
  POST /studio/sessions/{id}/reset            — Start over

Generation endpoints return immediately with the generating stage; pass
?wait=true to block until the generation has finished.

Sessions idle for STUDIO_SESSION_TTL_SECONDS are dropped, and at most
STUDIO_MAX_SESSIONS are kept (least recently used goes first).
"""

import os
import time
import inspect
import logging
from typing import Optional

from fastapi import APIRouter, HTTPException

from .. import metrics
from ..gemini import generate_hairstyle
from .models import (
    SourceImage,
    StudioStage,
    Lookbook,
    SessionCreateRequest,
    ClientSelectRequest,
    PhotoRequest,
    MagicCaptureRequest,
    SelectStyleRequest,
    PromptRequest,
    ModifierRequest,
    SessionResponse,
)
from .catalog import COLOR_MODIFIERS, STYLE_MODIFIERS, resolve_modifier
from .errors import InvalidTransition
from .collaborators import (
    InMemoryClientRoster,
    StaticStyleCatalog,
    InMemoryUsageCounter,
    InMemoryLookbookStore,
)
from .orchestrator import DesignStudioService, StudioSignal

logger = logging.getLogger(__name__)

STUDIO_STORE = os.getenv("STUDIO_STORE", "memory")
STUDIO_SESSION_TTL_SECONDS = float(os.getenv("STUDIO_SESSION_TTL_SECONDS", "3600"))
STUDIO_MAX_SESSIONS = int(os.getenv("STUDIO_MAX_SESSIONS", "500"))

studio_router = APIRouter(prefix="/studio", tags=["studio"])

# Gateway used by new sessions
_gateway = generate_hairstyle

# session_id → service
_sessions: dict[str, DesignStudioService] = {}

# session_id → monotonic time of last request
_last_seen: dict[str, float] = {}

# user_id → in-memory collaborators (STUDIO_STORE=memory)
_memory_stores: dict[str, dict] = {}


def _collaborators(user_id: str) -> dict:
    if STUDIO_STORE == "supabase":
        from .supabase_store import (
            SupabaseClientRoster,
            SupabaseStyleCatalog,
            SupabaseUsageCounter,
            SupabaseLookbookStore,
        )
        return {
            "roster": SupabaseClientRoster(user_id),
            "catalog": SupabaseStyleCatalog(user_id),
            "usage": SupabaseUsageCounter(user_id),
            "lookbooks": SupabaseLookbookStore(user_id),
        }

    if user_id not in _memory_stores:
        _memory_stores[user_id] = {
            "roster": InMemoryClientRoster(),
            "catalog": StaticStyleCatalog(),
            "usage": InMemoryUsageCounter(),
            "lookbooks": InMemoryLookbookStore(),
        }
    return _memory_stores[user_id]


def _log_signal(signal: StudioSignal, lookbook: Optional[Lookbook]):
    if lookbook is not None:
        logger.info(f"Studio signal {signal.value}: lookbook {lookbook.id}")
    else:
        logger.info(f"Studio signal {signal.value}")


def _drop_session(session_id: str, reason: str):
    studio = _sessions.pop(session_id, None)
    _last_seen.pop(session_id, None)
    if studio is not None:
        studio.reset()
        logger.info(f"[studio:{session_id}] Session {reason}")
    metrics.set_sessions(len(_sessions))


def _expire_sessions():
    cutoff = time.monotonic() - STUDIO_SESSION_TTL_SECONDS
    for session_id in [sid for sid, seen in _last_seen.items() if seen < cutoff]:
        _drop_session(session_id, "expired")


def _get_session(session_id: str) -> DesignStudioService:
    _expire_sessions()
    studio = _sessions.get(session_id)
    if studio is None:
        raise HTTPException(status_code=404, detail="Session not found")
    _last_seen[session_id] = time.monotonic()
    return studio


def _to_response(studio: DesignStudioService) -> SessionResponse:
    state = studio.state
    return SessionResponse(
        session_id=studio.session_id,
        stage=state.stage,
        step=state.step,
        client_id=state.client_id,
        initial_styles=state.initial_styles,
        base_style=state.base_style,
        refined_prompt=state.refined_prompt,
        final_look=state.final_look,
        error_message=state.error_message,
        can_retry=state.stage == StudioStage.ERROR,
        celebrate=studio.consume_celebration(),
        history=studio.history.to_display(),
    )


async def _apply(session_id: str, action: str, *args, wait: bool = False) -> SessionResponse:
    """Run one studio action and translate its errors to HTTP status codes."""
    studio = _get_session(session_id)
    try:
        result = getattr(studio, action)(*args)
        if inspect.isawaitable(result):
            await result
        if wait:
            await studio.settle()
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"[studio:{session_id}] {action} failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))
    return _to_response(studio)


def _source_image(request: PhotoRequest) -> SourceImage:
    try:
        return SourceImage.from_data_url(request.image, request.mime_type)
    except (ValueError, IndexError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid image: {e}")


# ── Sessions ─────────────────────────────────────────────────────────────────

@studio_router.post("/sessions", response_model=SessionResponse)
async def create_session(request: SessionCreateRequest):
    _expire_sessions()
    while _sessions and len(_sessions) >= STUDIO_MAX_SESSIONS:
        oldest = min(_sessions, key=lambda sid: _last_seen.get(sid, 0.0))
        _drop_session(oldest, "evicted")

    studio = DesignStudioService(
        generate=_gateway,
        listener=_log_signal,
        **_collaborators(request.user_id),
    )
    _sessions[studio.session_id] = studio
    _last_seen[studio.session_id] = time.monotonic()
    metrics.set_sessions(len(_sessions))
    logger.info(f"[studio:{studio.session_id}] Session started for user {request.user_id}")
    return _to_response(studio)


@studio_router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str):
    return _to_response(_get_session(session_id))


@studio_router.delete("/sessions/{session_id}")
async def close_session(session_id: str):
    """Leave the studio. Any in-flight run is abandoned."""
    _get_session(session_id)
    _drop_session(session_id, "closed")
    return {"status": "closed", "session_id": session_id}


@studio_router.get("/sessions/{session_id}/clients")
async def list_clients(session_id: str):
    studio = _get_session(session_id)
    try:
        return {"clients": await studio.list_clients()}
    except Exception as e:
        logger.error(f"[studio:{session_id}] Listing clients failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))


@studio_router.get("/modifiers")
async def list_modifiers():
    return {"color": COLOR_MODIFIERS, "style": STYLE_MODIFIERS}


# ── Step 1 + 2 ───────────────────────────────────────────────────────────────

@studio_router.post("/sessions/{session_id}/client", response_model=SessionResponse)
async def select_client(session_id: str, request: ClientSelectRequest):
    if request.client_id:
        return await _apply(session_id, "select_client", request.client_id)
    if request.name and request.email:
        return await _apply(session_id, "create_client", request.name, request.email)
    raise HTTPException(status_code=400, detail="Provide client_id, or name and email for a new client")


@studio_router.post("/sessions/{session_id}/photo", response_model=SessionResponse)
async def capture_photo(session_id: str, request: PhotoRequest, wait: bool = False):
    return await _apply(session_id, "capture_photo", _source_image(request), wait=wait)


@studio_router.post("/sessions/{session_id}/magic", response_model=SessionResponse)
async def enter_magic_capture(session_id: str):
    return await _apply(session_id, "enter_magic_capture")


@studio_router.post("/sessions/{session_id}/magic/exit", response_model=SessionResponse)
async def exit_magic_capture(session_id: str):
    return await _apply(session_id, "exit_magic_capture")


@studio_router.post("/sessions/{session_id}/magic/capture", response_model=SessionResponse)
async def magic_capture(session_id: str, request: MagicCaptureRequest, wait: bool = False):
    return await _apply(session_id, "magic_capture", _source_image(request), request.style_id, wait=wait)


# ── Step 3 + 4 ───────────────────────────────────────────────────────────────

@studio_router.post("/sessions/{session_id}/select", response_model=SessionResponse)
async def choose_style(session_id: str, request: SelectStyleRequest):
    return await _apply(session_id, "choose_style", request.index)


@studio_router.post("/sessions/{session_id}/prompt", response_model=SessionResponse)
async def edit_prompt(session_id: str, request: PromptRequest):
    return await _apply(session_id, "edit_prompt", request.prompt)


@studio_router.post("/sessions/{session_id}/modifier", response_model=SessionResponse)
async def apply_modifier(session_id: str, request: ModifierRequest):
    if request.chip:
        phrase = resolve_modifier(request.chip)
        if phrase is None:
            raise HTTPException(status_code=400, detail=f"Unknown modifier: {request.chip}")
    elif request.phrase and request.phrase.strip():
        phrase = request.phrase
    else:
        raise HTTPException(status_code=400, detail="Provide a modifier chip or phrase")
    return await _apply(session_id, "apply_modifier", phrase)


# ── Step 5 + recovery ────────────────────────────────────────────────────────

@studio_router.post("/sessions/{session_id}/finalize", response_model=SessionResponse)
async def finalize(session_id: str, wait: bool = False):
    return await _apply(session_id, "finalize", wait=wait)


@studio_router.post("/sessions/{session_id}/retry", response_model=SessionResponse)
async def retry(session_id: str, wait: bool = False):
    return await _apply(session_id, "retry", wait=wait)


@studio_router.post("/sessions/{session_id}/reset", response_model=SessionResponse)
async def reset(session_id: str):
    return await _apply(session_id, "reset")
