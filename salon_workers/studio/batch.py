"""
Batch Generator — concurrent gateway calls against one source image.

Every request is dispatched before any is awaited, then the whole set is
joined. A failed item (None result or raised error) becomes a None slot and
never aborts its siblings. Results are position-aligned to the requests.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from ..gemini import RateLimited
from .models import SourceImage, GeneratedImage

logger = logging.getLogger(__name__)

# generate(image_data, mime_type, prompt, reference_image) -> image_data | None
Gateway = Callable[..., Awaitable[Optional[str]]]


@dataclass(frozen=True)
class GenerationRequest:
    """One slot of a batch: the prompt plus the labels its result carries."""
    prompt: str
    style_id: str
    style_name: str
    reference_image: Optional[SourceImage] = None
    origin_style_id: Optional[str] = None


@dataclass
class BatchResult:
    results: list[Optional[GeneratedImage]]
    errors: list[Optional[BaseException]] = field(default_factory=list)

    @property
    def successes(self) -> list[GeneratedImage]:
        return [r for r in self.results if r is not None]

    @property
    def rate_limited(self) -> bool:
        return any(isinstance(e, RateLimited) for e in self.errors)

    def __len__(self) -> int:
        return len(self.results)

    def __getitem__(self, index: int) -> Optional[GeneratedImage]:
        return self.results[index]


async def _generate_one(
    generate: Gateway,
    source: SourceImage,
    request: GenerationRequest,
) -> tuple[Optional[GeneratedImage], Optional[BaseException]]:
    try:
        image_data = await generate(
            source.image_data,
            source.mime_type,
            request.prompt,
            request.reference_image,
        )
    except Exception as e:
        logger.warning(f"Failed to generate style \"{request.style_name}\": {e}")
        return None, e

    if not image_data:
        logger.info(f"No image returned for style \"{request.style_name}\"")
        return None, None

    return GeneratedImage(
        image_data=image_data,
        prompt_used=request.prompt,
        style_id=request.style_id,
        style_name=request.style_name,
        origin_style_id=request.origin_style_id,
    ), None


async def generate_batch(
    generate: Gateway,
    source: SourceImage,
    requests: list[GenerationRequest],
) -> BatchResult:
    """
    Run one gateway call per request concurrently and wait for all of them.

    Args:
        generate: The gateway coroutine function.
        source:   The client's photo, shared by every call.
        requests: Ordered requests; slot i of the result belongs to requests[i].

    Returns:
        BatchResult with one result (or None) and one error (or None) per request.
    """
    outcomes = await asyncio.gather(
        *(_generate_one(generate, source, request) for request in requests)
    )
    results = [image for image, _ in outcomes]
    errors = [error for _, error in outcomes]

    logger.info(f"Batch settled: {sum(r is not None for r in results)}/{len(requests)} succeeded")
    return BatchResult(results=results, errors=errors)
