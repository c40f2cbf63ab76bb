from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Callable, List

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from style_fusion.config import AppConfig
from style_fusion.encoding import UploadedImage
from style_fusion.pipeline_factory import PipelineContainer, create_pipeline_container

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 24

STYLE_PAYLOAD = {
    "style": "oil painting",
    "subject": "a lighthouse on a cliff at dusk",
    "composition": "rule of thirds",
    "lighting": "soft golden hour light",
    "colors": "warm oranges against deep blues",
    "mood": "nostalgic",
}


def style_response(payload: Any = None) -> SimpleNamespace:
    body = STYLE_PAYLOAD if payload is None else payload
    text = body if isinstance(body, str) else json.dumps(body)
    return SimpleNamespace(text=text, prompt_feedback=None)


def blocked_response() -> SimpleNamespace:
    return SimpleNamespace(text=None, prompt_feedback=SimpleNamespace(block_reason="SAFETY"))


def image_response(blob: bytes, mime_type: str = "image/png") -> SimpleNamespace:
    parts = [
        SimpleNamespace(inline_data=None, text="Here is your image."),
        SimpleNamespace(inline_data=SimpleNamespace(data=blob, mime_type=mime_type), text=None),
    ]
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=parts))])


def text_only_response() -> SimpleNamespace:
    parts = [SimpleNamespace(inline_data=None, text="I can't help with that.")]
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=parts))])


def fake_image_bytes(call_index: int) -> bytes:
    return f"fused-image-{call_index}".encode("ascii")


def is_fusion_call(config: Any) -> bool:
    return bool(getattr(config, "response_modalities", None))


def default_handler(index: int, model: str, contents: List[Any], config: Any) -> Any:
    if is_fusion_call(config):
        return image_response(fake_image_bytes(index))
    return style_response()


class FakeModels:
    """Stands in for ``client.aio.models``; records every call in issue order."""

    def __init__(self, handler: Callable[..., Any]):
        self.handler = handler
        self.calls: List[SimpleNamespace] = []

    async def generate_content(self, *, model: str, contents: List[Any], config: Any = None) -> Any:
        index = len(self.calls) + 1
        self.calls.append(SimpleNamespace(index=index, model=model, contents=contents, config=config))
        result = self.handler(index, model, contents, config)
        if asyncio.iscoroutine(result):
            result = await result
        return result


class FakeGenaiClient:
    def __init__(self, handler: Callable[..., Any] = default_handler):
        self.models = FakeModels(handler)
        self.aio = SimpleNamespace(models=self.models)

    @property
    def calls(self) -> List[SimpleNamespace]:
        return self.models.calls

    def fusion_calls(self) -> List[SimpleNamespace]:
        return [call for call in self.calls if is_fusion_call(call.config)]


def make_upload(role: str, content: bytes = PNG_BYTES, mime_type: str = "image/png") -> UploadedImage:
    return UploadedImage.create(
        filename=f"{role}.png",
        content=content,
        mime_type=mime_type,
        display_url=f"/uploads/{role}",
    )


def make_container(
    client: FakeGenaiClient,
    config: AppConfig | None = None,
) -> PipelineContainer:
    return create_pipeline_container(config or AppConfig(), client=client)


@pytest.fixture()
def fake_client() -> FakeGenaiClient:
    return FakeGenaiClient()


@pytest.fixture()
def container(fake_client: FakeGenaiClient) -> PipelineContainer:
    return make_container(fake_client)
