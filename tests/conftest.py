"""Shared pytest fixtures for Design Studio tests."""

import asyncio
from typing import Optional

import pytest

from salon_workers import metrics
from salon_workers.studio.models import SourceImage
from salon_workers.studio.collaborators import (
    InMemoryClientRoster,
    StaticStyleCatalog,
    InMemoryUsageCounter,
    InMemoryLookbookStore,
)
from salon_workers.studio.orchestrator import DesignStudioService


class FakeGateway:
    """Stand-in for gemini.generate_hairstyle.

    Args:
        outcomes: exact prompt → returned image data, None, or an exception to raise
        delays:   exact prompt → seconds to sleep before answering
        gate:     optional event every call waits on before answering
    """

    def __init__(self, outcomes: Optional[dict] = None, delays: Optional[dict] = None,
                 gate: Optional[asyncio.Event] = None):
        self.outcomes = outcomes or {}
        self.delays = delays or {}
        self.gate = gate
        self.calls = []

    async def __call__(self, image_data, mime_type, prompt, reference_image=None):
        self.calls.append({
            "image_data": image_data,
            "mime_type": mime_type,
            "prompt": prompt,
            "reference_image": reference_image,
        })
        if prompt in self.delays:
            await asyncio.sleep(self.delays[prompt])
        if self.gate is not None:
            await self.gate.wait()
        if prompt in self.outcomes:
            outcome = self.outcomes[prompt]
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome
        return f"img:{prompt}"

    def prompts(self) -> list[str]:
        return [call["prompt"] for call in self.calls]


@pytest.fixture(autouse=True)
def clean_metrics():
    """Metrics are module-global; start every test from zero."""
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def source_image() -> SourceImage:
    return SourceImage(image_data="c291cmNlLXBob3Rv", mime_type="image/jpeg")


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def collaborators() -> dict:
    return {
        "roster": InMemoryClientRoster([{"id": "client-1", "name": "Ada", "email": "ada@example.com"}]),
        "catalog": StaticStyleCatalog(),
        "usage": InMemoryUsageCounter(),
        "lookbooks": InMemoryLookbookStore(),
    }


@pytest.fixture
def make_studio(collaborators):
    """Factory for a DesignStudioService wired to in-memory collaborators."""

    def _make(generate, **overrides) -> DesignStudioService:
        kwargs = {**collaborators, "initial_generations": None}
        kwargs.update(overrides)
        return DesignStudioService(generate=generate, **kwargs)

    return _make


@pytest.fixture
def gateway_factory():
    """The FakeGateway class, for tests that need custom outcomes."""
    return FakeGateway
