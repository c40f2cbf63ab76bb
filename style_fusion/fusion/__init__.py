"""Subject/style fusion with a fixed fan-out of generation calls."""

from .adapter import GeminiFusionEngine, extract_inline_image
from .interfaces import FusionEngineProtocol, GenerationRequest, GenerationResult

__all__ = [
    "FusionEngineProtocol",
    "GeminiFusionEngine",
    "GenerationRequest",
    "GenerationResult",
    "extract_inline_image",
]
