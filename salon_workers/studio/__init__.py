"""
Design Studio Pipeline

Guided hairstyle try-on for salon stylists:
  Step 1 — Select client
  Step 2 — Capture photo (or magic capture from the live camera)
  Step 3 — Generate candidate styles in parallel → pick one
  Step 4 — Refine the prompt with free text and modifier chips
  Step 5 — Final look + side/angled/back views → lookbook
"""

from .orchestrator import DesignStudioService, StudioSignal
from .routes import studio_router
from .models import StudioStage, PipelineState

__all__ = [
    "DesignStudioService",
    "StudioSignal",
    "studio_router",
    "StudioStage",
    "PipelineState",
]
