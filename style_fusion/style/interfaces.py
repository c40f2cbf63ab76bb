from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Mapping, Protocol

from ..encoding import EncodedImage


@dataclass(frozen=True)
class StyleDescriptor:
    style: str
    subject: str
    composition: str
    lighting: str
    colors: str
    mood: str
    raw_text: str = ""

    def as_dict(self) -> Mapping[str, str]:
        return {
            "style": self.style,
            "subject": self.subject,
            "composition": self.composition,
            "lighting": self.lighting,
            "colors": self.colors,
            "mood": self.mood,
        }

    def to_prompt_text(self) -> str:
        """The JSON text handed to the fusion instruction, unparsed downstream."""

        if self.raw_text.strip():
            return self.raw_text.strip()
        return json.dumps(self.as_dict(), ensure_ascii=False, indent=2)


class StyleExtractorProtocol(Protocol):
    async def extract_style(self, image: EncodedImage) -> StyleDescriptor:
        """Describe the artistic style of ``image``."""
