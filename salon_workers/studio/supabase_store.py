"""
Supabase-backed studio collaborators.

Tables used (all scoped by the salon owner's user_id):
  clients        — client roster
  lookbooks      — one row per completed studio run
  user_profiles  — settings JSON: imageCount, customHairstyles, studioInitialGenerations

All calls go through the Supabase service role client. The client is
synchronous, so queries run in a worker thread to keep the event loop free
while other generations are in flight.
"""

import os
import asyncio
import logging
from typing import Optional

from supabase import create_client, Client

from .models import StyleDescriptor, ReferenceBundle, SourceImage, Lookbook
from .catalog import INITIAL_STYLES, DEFAULT_INITIAL_GENERATIONS, custom_style_descriptor

logger = logging.getLogger(__name__)

# ── Supabase Service Client (bypasses RLS) ───────────────────────────────────

_service_client: Optional[Client] = None


def _get_service_client() -> Client:
    """Lazy-init Supabase client using service role key."""
    global _service_client
    if _service_client is None:
        url = os.getenv("SUPABASE_URL", "")
        key = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")
        if not url or not key:
            raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")
        _service_client = create_client(url, key)
    return _service_client


async def _execute(query):
    return await asyncio.to_thread(query.execute)


# user_id → lock around the read-modify-write of user_profiles.settings
_settings_locks: dict[str, asyncio.Lock] = {}


def _settings_lock(user_id: str) -> asyncio.Lock:
    return _settings_locks.setdefault(user_id, asyncio.Lock())


def _image_from_row(value: Optional[dict]) -> Optional[SourceImage]:
    """Settings store images as {base64, mimeType}; base64 may be a data URL."""
    if not value or not value.get("base64"):
        return None
    return SourceImage.from_data_url(value["base64"], value.get("mimeType"))


def _bundle_from_row(row: dict) -> Optional[ReferenceBundle]:
    front = _image_from_row(row.get("frontView"))
    if front is None or not row.get("id"):
        logger.warning(f"Skipping custom hairstyle without id or front view: {row.get('name')}")
        return None
    return ReferenceBundle(
        style_id=row["id"],
        name=row.get("name") or row["id"],
        front=front,
        back=_image_from_row(row.get("backView")),
        left=_image_from_row(row.get("leftView")),
        right=_image_from_row(row.get("rightView")),
        top=_image_from_row(row.get("topView")),
    )


class _SettingsMixin:
    user_id: str

    async def _load_settings(self) -> dict:
        sb = _get_service_client()
        result = await _execute(
            sb.table("user_profiles").select("settings").eq("id", self.user_id).single()
        )
        return (result.data or {}).get("settings") or {}

    async def _write_settings(self, settings: dict):
        sb = _get_service_client()
        await _execute(
            sb.table("user_profiles").update({"settings": settings}).eq("id", self.user_id)
        )


# ═════════════════════════════════════════════════════════════════════════════
# Client roster
# ═════════════════════════════════════════════════════════════════════════════

class SupabaseClientRoster:
    def __init__(self, user_id: str):
        self.user_id = user_id

    async def list_clients(self) -> list[dict]:
        sb = _get_service_client()
        result = await _execute(
            sb.table("clients").select("*").eq("user_id", self.user_id).order("name")
        )
        return [{**row, "id": row.get("client_id") or row.get("id")} for row in result.data or []]

    async def add_client(self, name: str, email: str) -> str:
        sb = _get_service_client()
        result = await _execute(
            sb.table("clients").insert({"name": name, "email": email, "user_id": self.user_id})
        )
        if not result.data:
            raise RuntimeError(f"Client insert returned no row for {email}")
        row = result.data[0]
        client_id = row.get("client_id") or row["id"]
        logger.info(f"Created client {client_id} for user {self.user_id}")
        return client_id


# ═════════════════════════════════════════════════════════════════════════════
# Style catalog (custom hairstyle library in user settings)
# ═════════════════════════════════════════════════════════════════════════════

class SupabaseStyleCatalog(_SettingsMixin):
    def __init__(self, user_id: str):
        self.user_id = user_id
        self._bundles: Optional[list[ReferenceBundle]] = None
        self._initial_generations = DEFAULT_INITIAL_GENERATIONS

    async def _library(self) -> list[ReferenceBundle]:
        if self._bundles is None:
            settings = await self._load_settings()
            rows = settings.get("customHairstyles") or []
            self._bundles = [b for b in (_bundle_from_row(r) for r in rows) if b is not None]
            self._initial_generations = int(
                settings.get("studioInitialGenerations") or DEFAULT_INITIAL_GENERATIONS
            )
        return self._bundles

    async def initial_styles(self, limit: Optional[int] = None) -> list[StyleDescriptor]:
        bundles = await self._library()
        limit = self._initial_generations if limit is None else limit
        if bundles:
            return [custom_style_descriptor(b) for b in bundles[:limit]]
        return INITIAL_STYLES[:limit]

    async def reference_bundle(self, style_id: str) -> Optional[ReferenceBundle]:
        for bundle in await self._library():
            if bundle.style_id == style_id:
                return bundle
        return None


# ═════════════════════════════════════════════════════════════════════════════
# Usage counter + lookbooks
# ═════════════════════════════════════════════════════════════════════════════

class SupabaseUsageCounter(_SettingsMixin):
    def __init__(self, user_id: str):
        self.user_id = user_id

    async def increment(self, amount: int = 1) -> None:
        async with _settings_lock(self.user_id):
            settings = await self._load_settings()
            count = int(settings.get("imageCount") or 0) + amount
            await self._write_settings({**settings, "imageCount": count})
        logger.debug(f"Image count for user {self.user_id} → {count}")


class SupabaseLookbookStore:
    def __init__(self, user_id: str):
        self.user_id = user_id

    async def save(self, lookbook: Lookbook) -> None:
        sb = _get_service_client()
        row = lookbook.model_dump()
        await _execute(sb.table("lookbooks").insert({
            "id": row["id"],
            "user_id": self.user_id,
            "client_id": row["client_id"],
            "user_image": row["source_image"],
            "base_style": row["base_style"],
            "final_image": row["final_image"],
            "angle_views": row["angle_views"],
            "created_at": row["created_at"],
        }))
