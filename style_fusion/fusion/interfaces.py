from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence

from ..encoding import EncodedImage
from ..prompting import AspectRatio
from ..style.interfaces import StyleDescriptor


@dataclass(frozen=True)
class GenerationRequest:
    style: StyleDescriptor
    subject: EncodedImage
    aspect_ratio: AspectRatio
    variants: int = 4


@dataclass(frozen=True)
class GenerationResult:
    """Images in call-issue order; ``failures`` counts dropped calls under best effort."""

    images: Sequence[EncodedImage]
    prompt: str
    failures: int = 0

    def __len__(self) -> int:
        return len(self.images)


class FusionEngineProtocol(Protocol):
    async def fuse(self, request: GenerationRequest) -> GenerationResult:
        """Generate ``request.variants`` images of the subject in the described style."""
