"""
The four narrow collaborators the studio depends on, plus in-memory versions.

The Supabase-backed versions live in supabase_store.py.
"""

import logging
from typing import Optional, Protocol
from uuid import uuid4

from .models import StyleDescriptor, ReferenceBundle, Lookbook
from .catalog import INITIAL_STYLES, DEFAULT_INITIAL_GENERATIONS, custom_style_descriptor

logger = logging.getLogger(__name__)


class ClientRoster(Protocol):
    async def list_clients(self) -> list[dict]: ...

    async def add_client(self, name: str, email: str) -> str: ...


class StyleCatalog(Protocol):
    async def initial_styles(self, limit: Optional[int] = None) -> list[StyleDescriptor]: ...

    async def reference_bundle(self, style_id: str) -> Optional[ReferenceBundle]: ...


class UsageCounter(Protocol):
    async def increment(self, amount: int = 1) -> None: ...


class LookbookStore(Protocol):
    async def save(self, lookbook: Lookbook) -> None: ...


# ── In-memory implementations ────────────────────────────────────────────────

class InMemoryClientRoster:
    def __init__(self, clients: Optional[list[dict]] = None):
        self.clients = list(clients or [])

    async def list_clients(self) -> list[dict]:
        return list(self.clients)

    async def add_client(self, name: str, email: str) -> str:
        client_id = str(uuid4())
        self.clients.append({"id": client_id, "name": name, "email": email})
        return client_id


class StaticStyleCatalog:
    """User-authored styles first; the built-in catalog when the library is empty."""

    def __init__(
        self,
        custom_styles: Optional[list[ReferenceBundle]] = None,
        built_in: Optional[list[StyleDescriptor]] = None,
        initial_generations: int = DEFAULT_INITIAL_GENERATIONS,
    ):
        self.custom_styles = list(custom_styles or [])
        self.built_in = list(INITIAL_STYLES if built_in is None else built_in)
        self.initial_generations = initial_generations

    async def initial_styles(self, limit: Optional[int] = None) -> list[StyleDescriptor]:
        limit = self.initial_generations if limit is None else limit
        if self.custom_styles:
            return [custom_style_descriptor(b) for b in self.custom_styles[:limit]]
        return self.built_in[:limit]

    async def reference_bundle(self, style_id: str) -> Optional[ReferenceBundle]:
        for bundle in self.custom_styles:
            if bundle.style_id == style_id:
                return bundle
        return None


class InMemoryUsageCounter:
    def __init__(self):
        self.count = 0

    async def increment(self, amount: int = 1) -> None:
        self.count += amount


class InMemoryLookbookStore:
    def __init__(self):
        self.lookbooks: list[Lookbook] = []

    async def save(self, lookbook: Lookbook) -> None:
        self.lookbooks.append(lookbook)
        logger.info(f"Lookbook {lookbook.id} stored in memory ({len(self.lookbooks)} total)")
