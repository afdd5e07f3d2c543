"""
Gemini integration for hairstyle generation.

- Image Generation: Gemini native image output via the generateContent REST endpoint
- One call per hairstyle: source photo + optional style reference + instruction prompt

The gateway is stateless. It returns base64 image data, returns None when the
model answers without an image (soft failure), and raises RateLimited or
TransportFailure for everything the caller should report to the user.
"""

import os
import time
import logging
from typing import Optional

import httpx

from . import metrics

logger = logging.getLogger(__name__)

# ── Config ───────────────────────────────────────────────────────────────────

GEMINI_API_KEY = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY", "")
GEMINI_IMAGE_MODEL = os.getenv("GEMINI_IMAGE_MODEL", "gemini-2.5-flash-image")
GEMINI_TIMEOUT_SECONDS = float(os.getenv("GEMINI_TIMEOUT_SECONDS", "120"))
API_BASE = "https://generativelanguage.googleapis.com/v1beta"

HAIRSTYLE_INSTRUCTIONS = """Edit the photo of the person in IMAGE 1 so they have the hairstyle described below.

Rules:
- Preserve the person's face, skin tone, expression, clothing and background exactly
- Only change the hair: cut, length, texture, color and styling
- Photorealistic salon-quality result with natural hairline and lighting
- Return a single image"""

REFERENCE_NOTE = "IMAGE 2 is the hairstyle reference. Match its cut, shape and texture."


# ── Errors ───────────────────────────────────────────────────────────────────

class GenerationError(Exception):
    """Base class for failures the gateway reports to callers."""


class RateLimited(GenerationError):
    """The generation API rejected the call because of rate limiting."""


class TransportFailure(GenerationError):
    """Network error or an unexpected response from the generation API."""


# ── Helpers ──────────────────────────────────────────────────────────────────

def _api_url(model: str) -> str:
    return f"{API_BASE}/models/{model}:generateContent"


def _inline_part(image_data: str, mime_type: str) -> dict:
    if image_data.startswith("data:"):
        header, image_data = image_data.split(",", 1)
        mime_type = header.split(":")[1].split(";")[0]
    return {"inlineData": {"mimeType": mime_type, "data": image_data}}


def build_request_body(
    image_data: str,
    mime_type: str,
    prompt: str,
    reference_image=None,
) -> dict:
    """Build the generateContent body for one hairstyle generation."""
    parts = [_inline_part(image_data, mime_type)]
    if reference_image is not None:
        parts.append(_inline_part(reference_image.image_data, reference_image.mime_type))
        parts.append({"text": REFERENCE_NOTE})
    parts.append({"text": f"{HAIRSTYLE_INSTRUCTIONS}\n\nHairstyle: {prompt}"})

    return {
        "contents": [{"parts": parts}],
        "generationConfig": {
            "responseModalities": ["TEXT", "IMAGE"],
        },
    }


def extract_image_data(result: dict) -> Optional[str]:
    """Return the first inline image payload of a generateContent response, if any."""
    candidates = result.get("candidates") or []
    if not candidates:
        return None

    parts = (candidates[0].get("content") or {}).get("parts") or []
    for part in parts:
        inline = part.get("inlineData") or part.get("inline_data")
        if inline and inline.get("data"):
            return inline["data"]
    return None


def _is_rate_limited(response: httpx.Response) -> bool:
    if response.status_code == 429:
        return True
    if response.status_code < 400:
        return False
    text = response.text[:500].lower()
    return "rate limit" in text or "resource_exhausted" in text


# =========================================================================
# Generate Hairstyle: one gateway call
# =========================================================================

async def generate_hairstyle(
    image_data: str,
    mime_type: str,
    prompt: str,
    reference_image=None,
    client: Optional[httpx.AsyncClient] = None,
) -> Optional[str]:
    """
    Generate one hairstyle variation of the source photo.

    Args:
        image_data:      Base64 (or data URL) of the client's photo.
        mime_type:       Mime type of the photo.
        prompt:          The exact hairstyle prompt.
        reference_image: Optional style reference (anything with image_data and mime_type).
        client:          Optional shared httpx client.

    Returns:
        Base64 image data, or None if the model produced no image.

    Raises:
        ValueError:       Empty image or prompt.
        RateLimited:      The API answered 429 / rate limit.
        TransportFailure: Network error or non-2xx response.
    """
    if not image_data:
        raise ValueError("Source image is required for hairstyle generation")
    if not prompt or not prompt.strip():
        raise ValueError("Prompt is required for hairstyle generation")
    if not GEMINI_API_KEY:
        raise TransportFailure("GEMINI_API_KEY not set")

    body = build_request_body(image_data, mime_type, prompt, reference_image)
    metrics.inc_counter("requests.generate")
    logger.info(f"[Gemini] Generating hairstyle: ref={'yes' if reference_image else 'no'}, prompt={prompt[:60]}...")
    started = time.time()

    try:
        if client is None:
            async with httpx.AsyncClient(timeout=GEMINI_TIMEOUT_SECONDS) as owned:
                response = await owned.post(
                    _api_url(GEMINI_IMAGE_MODEL),
                    params={"key": GEMINI_API_KEY},
                    json=body,
                )
        else:
            response = await client.post(
                _api_url(GEMINI_IMAGE_MODEL),
                params={"key": GEMINI_API_KEY},
                json=body,
            )
    except httpx.HTTPError as e:
        metrics.inc_counter("errors.transport")
        metrics.record_error("generate", "transport", str(e))
        raise TransportFailure(f"Gemini request failed: {e}") from e
    finally:
        metrics.record_latency("gateway", (time.time() - started) * 1000)

    if _is_rate_limited(response):
        metrics.inc_counter("errors.rate_limited")
        metrics.record_error("generate", "rate_limited", response.text)
        logger.warning(f"[Gemini] Rate limited ({response.status_code})")
        raise RateLimited("API rate limit exceeded. Please wait a moment before trying again.")

    if response.status_code != 200:
        metrics.inc_counter("errors.transport")
        metrics.record_error("generate", f"http_{response.status_code}", response.text)
        raise TransportFailure(f"Gemini API error {response.status_code}: {response.text[:500]}")

    try:
        result = response.json()
    except ValueError as e:
        metrics.inc_counter("errors.transport")
        raise TransportFailure(f"Gemini returned invalid JSON: {response.text[:200]}") from e

    image = extract_image_data(result)
    if image is None:
        metrics.inc_counter("generations.empty")
        logger.warning("[Gemini] Response contained no image data")
        return None

    metrics.inc_counter("generations.success")
    return image
