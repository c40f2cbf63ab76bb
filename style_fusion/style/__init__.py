"""Reference-image style extraction."""

from .adapter import GeminiStyleExtractor
from .contract import parse_style_descriptor
from .interfaces import StyleDescriptor, StyleExtractorProtocol

__all__ = [
    "GeminiStyleExtractor",
    "StyleDescriptor",
    "StyleExtractorProtocol",
    "parse_style_descriptor",
]
