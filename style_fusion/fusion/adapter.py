from __future__ import annotations

import asyncio
import base64
from dataclasses import dataclass, field

from ..encoding import EncodedImage
from ..errors import EncodingError, FusionFailed, NoImageDataError
from ..logging_utils import RunLogger
from ..prompting import compose_fusion_prompt, fusion_call, image_part, prompt_hash
from .interfaces import FusionEngineProtocol, GenerationRequest, GenerationResult

DEFAULT_OUTPUT_MIME = "image/png"


def _coerce_base64(blob) -> str | None:
    if isinstance(blob, (bytes, bytearray)):
        return base64.b64encode(bytes(blob)).decode("ascii") if blob else None
    if isinstance(blob, str):
        return blob or None
    return None


def extract_inline_image(response) -> EncodedImage:
    """Return the first candidate part that carries inline image data."""

    candidates = getattr(response, "candidates", None) or []
    if candidates:
        content = getattr(candidates[0], "content", None)
        for part in getattr(content, "parts", None) or []:
            inline = getattr(part, "inline_data", None)
            if inline is None:
                continue
            data = _coerce_base64(getattr(inline, "data", None))
            if data is None:
                continue
            mime_type = getattr(inline, "mime_type", None) or DEFAULT_OUTPUT_MIME
            return EncodedImage(data=data, mime_type=mime_type)
    raise NoImageDataError()


@dataclass
class GeminiFusionEngine(FusionEngineProtocol):
    client: object
    model: str
    policy: str = "all_or_nothing"
    log: RunLogger = field(default_factory=lambda: RunLogger.for_area("fusion"))

    async def _generate_one(self, index: int, part, prompt: str) -> EncodedImage:
        response = await fusion_call(self.client, self.model, part, prompt)
        image = extract_inline_image(response)
        self.log.log("FUSION", f"call={index} ok mime={image.mime_type}", level="DEBUG")
        return image

    async def fuse(self, request: GenerationRequest) -> GenerationResult:
        prompt = compose_fusion_prompt(request.style.to_prompt_text(), request.aspect_ratio)
        try:
            part = image_part(request.subject.raw_bytes(), request.subject.mime_type)
        except EncodingError as exc:
            raise FusionFailed() from exc

        self.log.log(
            "FUSION",
            f"model={self.model} variants={request.variants} ratio={request.aspect_ratio.value} "
            f"prompt={prompt_hash(prompt)}",
        )
        # Fan out, then wait for every call to settle before deciding.
        outcomes = await asyncio.gather(
            *(self._generate_one(index, part, prompt) for index in range(1, request.variants + 1)),
            return_exceptions=True,
        )

        images: list[EncodedImage] = []
        errors: list[BaseException] = []
        for index, outcome in enumerate(outcomes, start=1):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                self.log.log("FUSION", f"call={index} failed: {outcome!r}", level="WARN")
                errors.append(outcome)
            else:
                images.append(outcome)

        if errors and (self.policy == "all_or_nothing" or not images):
            raise FusionFailed() from errors[0]
        return GenerationResult(images=tuple(images), prompt=prompt, failures=len(errors))
