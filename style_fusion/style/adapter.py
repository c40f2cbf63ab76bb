from __future__ import annotations

from dataclasses import dataclass, field

from google.genai import errors as genai_errors

from ..encoding import EncodedImage
from ..errors import EncodingError, StyleAnalysisFailed
from ..logging_utils import RunLogger
from ..prompting import image_part, style_analysis_call
from .contract import parse_style_descriptor
from .interfaces import StyleDescriptor, StyleExtractorProtocol


def _response_text(response) -> str | None:
    text = getattr(response, "text", None)
    if isinstance(text, str):
        return text
    return None


@dataclass
class GeminiStyleExtractor(StyleExtractorProtocol):
    """Single request/response analysis of a reference image; no retries."""

    client: object
    model: str
    log: RunLogger = field(default_factory=lambda: RunLogger.for_area("style"))

    async def extract_style(self, image: EncodedImage) -> StyleDescriptor:
        try:
            part = image_part(image.raw_bytes(), image.mime_type)
        except EncodingError as exc:
            raise StyleAnalysisFailed() from exc
        try:
            response = await style_analysis_call(self.client, self.model, part)
        except genai_errors.APIError as exc:
            self.log.log("STYLE", f"model={self.model} api error code={exc.code}: {exc.message}", level="ERROR")
            raise StyleAnalysisFailed() from exc
        except Exception as exc:
            self.log.log("STYLE", f"model={self.model} request failed: {exc}", level="ERROR")
            raise StyleAnalysisFailed() from exc

        text = _response_text(response)
        if text is None:
            feedback = getattr(response, "prompt_feedback", None)
            reason = getattr(feedback, "block_reason", None) if feedback is not None else None
            self.log.log("STYLE", f"model={self.model} returned no text block_reason={reason}", level="WARN")
        return parse_style_descriptor(text)
