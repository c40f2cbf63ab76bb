from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Sequence

from ..encoding import EncodedImage

STYLE_PROGRESS = "Step 1/2: Analyzing reference image for style..."
FUSION_PROGRESS = "Step 2/2: Fusing images and generating {count} new versions..."


class RunPhase(str, Enum):
    IDLE = "idle"
    AWAITING_STYLE_ANALYSIS = "awaiting_style_analysis"
    AWAITING_FUSION = "awaiting_fusion"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def active(self) -> bool:
        return self in {RunPhase.AWAITING_STYLE_ANALYSIS, RunPhase.AWAITING_FUSION}


@dataclass(frozen=True)
class RunState:
    """Exactly one of these is current; results and error are phase-exclusive."""

    phase: RunPhase = RunPhase.IDLE
    run_id: Optional[str] = None
    progress: str = ""
    images: Sequence[EncodedImage] = field(default_factory=tuple)
    error: Optional[str] = None

    @classmethod
    def idle(cls) -> "RunState":
        return cls()

    @classmethod
    def awaiting_style(cls, run_id: str) -> "RunState":
        return cls(phase=RunPhase.AWAITING_STYLE_ANALYSIS, run_id=run_id, progress=STYLE_PROGRESS)

    @classmethod
    def awaiting_fusion(cls, run_id: str, variants: int) -> "RunState":
        return cls(
            phase=RunPhase.AWAITING_FUSION,
            run_id=run_id,
            progress=FUSION_PROGRESS.format(count=variants),
        )

    @classmethod
    def succeeded(cls, run_id: str, images: Sequence[EncodedImage]) -> "RunState":
        return cls(phase=RunPhase.SUCCEEDED, run_id=run_id, images=tuple(images))

    @classmethod
    def failed(cls, run_id: Optional[str], message: str) -> "RunState":
        return cls(phase=RunPhase.FAILED, run_id=run_id, error=message)

    @property
    def is_running(self) -> bool:
        return self.phase.active

    def as_dict(self) -> Mapping[str, Any]:
        return {
            "phase": self.phase.value,
            "run_id": self.run_id,
            "progress": self.progress,
            "image_count": len(self.images),
            "images": [
                {"index": index, "mime_type": image.mime_type}
                for index, image in enumerate(self.images, start=1)
            ],
            "error": self.error,
        }
