from __future__ import annotations

import hashlib
from enum import Enum
from typing import Iterable, Mapping, Sequence

from google.genai import types

from .errors import ValidationError

STYLE_FIELDS: tuple[str, ...] = ("style", "subject", "composition", "lighting", "colors", "mood")

STYLE_FIELD_HINTS: Mapping[str, str] = {
    "style": "e.g., 'photorealistic', 'oil painting', 'anime', 'art deco'",
    "subject": "A detailed description of the main subject and background elements.",
    "composition": "e.g., 'centered', 'rule of thirds', 'dynamic angle'",
    "lighting": "e.g., 'soft morning light', 'dramatic backlighting', 'neon glow'",
    "colors": "Description of the color palette, e.g., 'warm palette with dominant oranges and yellows'.",
    "mood": "The overall mood or feeling, e.g., 'serene', 'nostalgic', 'energetic'.",
}

STYLE_ANALYSIS_INSTRUCTION = (
    "Analyze this image in extreme detail. Create a JSON object describing its artistic style, "
    "subject, composition, lighting, color palette, and mood. This JSON will be used as a style "
    "guide for another AI to generate a new image."
)

FUSION_TEMPLATE = """Instructions:
1.  **Primary Goal:** Recreate the person from the provided image within a new setting.
2.  **Person Replication:** The person's face, body, and clothing must be an EXACT replica of the person in the provided image. DO NOT change their appearance in any way. This is the most important rule.
3.  **New Scene:** Generate a new background and scene that strictly adheres to the style guide below.
4.  **Integration:** Seamlessly blend the person into the new scene, ensuring lighting and shadows on the person match the new environment.
5.  **Aspect Ratio:** The final image must have an aspect ratio of {aspect_ratio}.

**Style Guide (for the new scene):**
{style_guide}"""


class AspectRatio(str, Enum):
    """The fixed set of ratios offered to the user; advisory to the model."""

    SQUARE = "1:1"
    LANDSCAPE = "4:3"
    PORTRAIT = "3:4"
    WIDESCREEN = "16:9"
    TALL = "9:16"

    @property
    def label(self) -> str:
        return f"{self.name.title()} ({self.value})"

    @classmethod
    def parse(cls, value: "AspectRatio | str") -> "AspectRatio":
        if isinstance(value, AspectRatio):
            return value
        cleaned = str(value or "").strip()
        for ratio in cls:
            if ratio.value == cleaned:
                return ratio
        allowed = ", ".join(ratio.value for ratio in cls)
        raise ValidationError(f"Unsupported aspect ratio {cleaned!r}; choose one of {allowed}.")

    @classmethod
    def choices(cls) -> Sequence["AspectRatio"]:
        return tuple(cls)


def style_response_schema(fields: Iterable[str] = STYLE_FIELDS) -> types.Schema:
    names = list(fields)
    return types.Schema(
        type=types.Type.OBJECT,
        properties={
            name: types.Schema(type=types.Type.STRING, description=STYLE_FIELD_HINTS.get(name, name))
            for name in names
        },
        required=names,
    )


def compose_fusion_prompt(style_guide: str, aspect_ratio: AspectRatio | str) -> str:
    """Embed the style guide text and the requested ratio into the fixed instruction."""

    ratio = AspectRatio.parse(aspect_ratio)
    guide = style_guide.strip()
    if not guide:
        raise ValidationError("Style guide is empty; cannot construct fusion prompt.")
    return FUSION_TEMPLATE.format(aspect_ratio=ratio.value, style_guide=guide)


def image_part(data: bytes, mime_type: str) -> types.Part:
    return types.Part.from_bytes(data=data, mime_type=mime_type)


def style_analysis_call(client, model_name: str, image: types.Part):
    """Issue the schema-constrained analysis request; returns an awaitable."""

    cfg = types.GenerateContentConfig(
        response_mime_type="application/json",
        response_schema=style_response_schema(),
    )
    return client.aio.models.generate_content(
        model=model_name,
        contents=[image, STYLE_ANALYSIS_INSTRUCTION],
        config=cfg,
    )


def fusion_call(client, model_name: str, image: types.Part, prompt: str):
    """Issue one image-generation request; returns an awaitable."""

    cfg = types.GenerateContentConfig(response_modalities=["IMAGE"])
    return client.aio.models.generate_content(
        model=model_name,
        contents=[image, prompt],
        config=cfg,
    )


def prompt_hash(prompt: str) -> str:
    return hashlib.sha256(prompt.encode("utf-8")).hexdigest()[:12]


__all__ = [
    "AspectRatio",
    "FUSION_TEMPLATE",
    "STYLE_ANALYSIS_INSTRUCTION",
    "STYLE_FIELDS",
    "STYLE_FIELD_HINTS",
    "compose_fusion_prompt",
    "fusion_call",
    "image_part",
    "prompt_hash",
    "style_analysis_call",
    "style_response_schema",
]
