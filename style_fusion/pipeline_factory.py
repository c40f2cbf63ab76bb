from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from google import genai
from google.genai import types

from .config import AppConfig, resolve_api_key
from .fusion.adapter import GeminiFusionEngine
from .fusion.interfaces import FusionEngineProtocol
from .pipeline.orchestrator import FusionOrchestrator
from .style.adapter import GeminiStyleExtractor
from .style.interfaces import StyleExtractorProtocol


@dataclass
class PipelineContainer:
    config: AppConfig
    client: object
    style_extractor: StyleExtractorProtocol
    fusion_engine: FusionEngineProtocol

    def new_orchestrator(self) -> FusionOrchestrator:
        """One orchestrator per browser session; the remote client is shared."""

        return FusionOrchestrator(
            self.style_extractor,
            self.fusion_engine,
            variants=self.config.fusion.variants,
            aspect_ratio=self.config.fusion.default_aspect_ratio,
        )


def create_client(config: AppConfig) -> genai.Client:
    http_options = None
    if config.client.timeout_ms is not None:
        http_options = types.HttpOptions(timeout=config.client.timeout_ms)
    return genai.Client(api_key=resolve_api_key(config), http_options=http_options)


def create_pipeline_container(config: AppConfig, *, client: Optional[object] = None) -> PipelineContainer:
    remote = client if client is not None else create_client(config)
    style_extractor = GeminiStyleExtractor(client=remote, model=config.models.style_model)
    fusion_engine = GeminiFusionEngine(
        client=remote,
        model=config.models.fusion_model,
        policy=config.fusion.policy,
    )
    return PipelineContainer(
        config=config,
        client=remote,
        style_extractor=style_extractor,
        fusion_engine=fusion_engine,
    )


__all__ = ["PipelineContainer", "create_client", "create_pipeline_container"]
