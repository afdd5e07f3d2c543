"""
Built-in hairstyle catalog, refinement modifiers and final angle views.
"""

from typing import Optional

from .models import StyleDescriptor, ReferenceBundle, SourceImage


DEFAULT_INITIAL_GENERATIONS = 4

CUSTOM_STYLE_PROMPT = "A high-quality photo of a person with a {name} hairstyle."


# ── Initial styles (used when the salon has no style library) ────────────────

INITIAL_STYLES = [
    StyleDescriptor(
        id="sleek-bob",
        display_name="Sleek Bob",
        text_prompt="a sleek, sharp, chin-length bob haircut, very straight and glossy",
    ),
    StyleDescriptor(
        id="wavy-lob",
        display_name="Wavy Lob",
        text_prompt="a shoulder-length lob with soft, beachy waves and natural-looking texture",
    ),
    StyleDescriptor(
        id="long-layers",
        display_name="Long Layers",
        text_prompt="long hair with face-framing layers that create movement and volume",
    ),
    StyleDescriptor(
        id="pixie-cut",
        display_name="Textured Pixie",
        text_prompt="a short, textured pixie cut with volume on top and slightly tousled styling",
    ),
]


# ── Magic capture catalog ────────────────────────────────────────────────────

MAGIC_STYLES = INITIAL_STYLES + [
    StyleDescriptor(
        id="curly-shag",
        display_name="Curly Shag",
        text_prompt="a modern shag haircut with lots of layers, designed for naturally curly hair to enhance definition and reduce bulk",
    ),
    StyleDescriptor(
        id="curtain-bangs",
        display_name="Curtain Bangs",
        text_prompt="long hair with trendy, 70s-style curtain bangs that part in the middle and sweep to the sides",
    ),
    StyleDescriptor(
        id="hollywood-waves",
        display_name="Hollywood Waves",
        text_prompt="glamorous, vintage Hollywood waves in long hair, with a deep side part and glossy finish",
    ),
    StyleDescriptor(
        id="classic-taper",
        display_name="Classic Taper",
        text_prompt="a classic taper haircut, short on the sides and back, longer on top, neatly combed",
    ),
    StyleDescriptor(
        id="modern-pompadour",
        display_name="Modern Pompadour",
        text_prompt="a modern pompadour with faded sides and significant volume on top, styled upwards and back",
    ),
    StyleDescriptor(
        id="undercut",
        display_name="Slicked Undercut",
        text_prompt="a disconnected undercut with shaved sides and a long top, slicked back for a dramatic contrast",
    ),
    StyleDescriptor(
        id="buzz-cut-male",
        display_name="Clean Buzz Cut",
        text_prompt="a very short, clean and uniform buzz cut",
    ),
]


def find_magic_style(style_id: str) -> Optional[StyleDescriptor]:
    for style in MAGIC_STYLES:
        if style.id == style_id:
            return style
    return None


# ── Refinement modifiers ─────────────────────────────────────────────────────

COLOR_MODIFIERS = {
    "Platinum Blonde": "in a platinum blonde color",
    "Rich Brunette": "in a rich brunette color",
    "Jet Black": "in a jet black color",
    "Vibrant Red": "in a vibrant red color",
    "Pastel Pink": "in a pastel pink color",
    "Metallic Silver": "in a metallic silver color",
}

STYLE_MODIFIERS = {
    "Wavier": "with more defined waves",
    "Curlier": "with tighter, more defined curls",
    "Straighter": "but make it perfectly straight and sleek",
    "Add Bangs": "with sharp, blunt-cut bangs",
    "More Volume": "with significantly more volume and texture",
    "Highlights": "with subtle highlights",
}


def resolve_modifier(chip: str) -> Optional[str]:
    """Phrase for a modifier chip name, e.g. "Jet Black" → "in a jet black color"."""
    return COLOR_MODIFIERS.get(chip) or STYLE_MODIFIERS.get(chip)


# ── Final angle views ────────────────────────────────────────────────────────
# (label, prompt suffix, reference attributes tried in order)

ANGLE_VIEWS = [
    ("Side", ", side view, from the left", ("left",)),
    ("Angled", ", 45-degree angle view", ("right", "left")),
    ("Back", ", from the back", ("back",)),
]


def view_reference(bundle: Optional[ReferenceBundle], attrs: tuple) -> Optional[SourceImage]:
    """Pick the first reference shot of the bundle that exists for a view."""
    if bundle is None:
        return None
    for attr in attrs:
        image = getattr(bundle, attr)
        if image is not None:
            return image
    return None


def custom_style_descriptor(bundle: ReferenceBundle) -> StyleDescriptor:
    """Descriptor for a user-authored style; seeded with its front view."""
    return StyleDescriptor(
        id=bundle.style_id,
        display_name=bundle.name,
        text_prompt=CUSTOM_STYLE_PROMPT.format(name=bundle.name),
        reference_image=bundle.front,
        origin_style_id=bundle.style_id,
    )
