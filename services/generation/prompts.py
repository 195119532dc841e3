"""Prompt builders for virtual try-on generation."""

from typing import Optional

TRY_ON_INSTRUCTIONS = """VIRTUAL TRY-ON - EXACT GARMENT REPLACEMENT ONLY

RULES:
- Do not add any clothing items that are not present in Image 2 (the garment).
- Do not reinterpret or restyle the outfit. This is a swap, not a styling session.

PERSON (Image 1):
Keep identical: face, skin tone, hair, body pose, background, lighting.
Preserve visible accessories such as glasses, earrings and jewelry.

GARMENT (Image 2):
Use only this item. Copy its exact color, pattern, fabric texture, cut and sleeve length.
If it is a dress, output a dress. If it is a top, output a top. Do not add layers.

REPLACEMENT:
1. Remove the existing outfit from Image 1.
2. Place the garment from Image 2 onto the person's body.
3. Ensure natural draping that matches their pose.
4. Blend skin at neckline and shoulders to match Image 1.

OUTPUT: High-quality editorial photo, photorealistic skin texture."""


def build_try_on_instructions(style_hint: Optional[str] = None) -> str:
    """Return the fixed try-on instructions with the user's style hint appended."""
    hint = (style_hint or "").strip()
    if not hint:
        return TRY_ON_INSTRUCTIONS
    return f"{TRY_ON_INSTRUCTIONS}\n\nSTYLING CONTEXT FROM USER: {hint}"


def build_system_prompt() -> str:
    """Return the system prompt used by chat-style image backends."""
    return (
        "You are a fashion photo editor performing virtual try-on. "
        "You always return an edited photograph and never change the person's identity."
    )
