"""
Lookbook Assembler.

Builds the one composite record of a completed run and hands it to the
LookbookStore. Saving is best-effort: a failure is logged and counted but
never turns a finished run into an error.
"""

import logging
from datetime import datetime, timezone
from uuid import uuid4

from .. import metrics
from .models import Lookbook, PipelineState, StudioStage
from .collaborators import LookbookStore

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class LookbookAssembler:
    def __init__(self, store: LookbookStore):
        self.store = store

    def assemble(self, state: PipelineState) -> Lookbook:
        """Build the lookbook for a run that has reached SHOW_FINAL."""
        if state.stage != StudioStage.SHOW_FINAL or state.final_look is None:
            raise ValueError(f"Cannot assemble a lookbook in stage {state.stage.value}")
        if not state.client_id or state.source_image is None or state.base_style is None:
            raise ValueError("Run is missing its client, photo or base style")

        return Lookbook(
            id=str(uuid4()),
            client_id=state.client_id,
            source_image=state.source_image,
            base_style=state.base_style,
            final_image=state.final_look.main_image,
            angle_views=list(state.final_look.angle_views),
            created_at=_now_iso(),
        )

    async def persist(self, lookbook: Lookbook) -> bool:
        """Save the lookbook. Returns False (after logging) if the store fails."""
        try:
            await self.store.save(lookbook)
        except Exception as e:
            logger.error(f"Lookbook {lookbook.id} save failed for client {lookbook.client_id}: {e}", exc_info=True)
            metrics.inc_counter("errors.lookbook_save")
            metrics.record_error("lookbook", "save_failed", str(e))
            return False

        metrics.inc_counter("lookbooks.saved")
        logger.info(f"Lookbook {lookbook.id} saved: client={lookbook.client_id}, {len(lookbook.angle_views)} angle view(s)")
        return True
