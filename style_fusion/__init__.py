from __future__ import annotations

"""High-level helpers for the Style Fusion pipeline."""

from importlib import import_module
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:  # pragma: no cover - type checking helper
    from .config import AppConfig, load_config
    from .pipeline.orchestrator import FusionOrchestrator
    from .pipeline_factory import create_pipeline_container

__all__ = ["AppConfig", "load_config", "FusionOrchestrator", "create_pipeline_container"]


def __getattr__(name: str) -> Any:  # pragma: no cover - dispatch helper
    if name in {"AppConfig", "load_config"}:
        module = import_module(".config", __name__)
    elif name == "FusionOrchestrator":
        module = import_module(".pipeline.orchestrator", __name__)
    elif name == "create_pipeline_container":
        module = import_module(".pipeline_factory", __name__)
    else:
        raise AttributeError(name)

    value = getattr(module, name)
    globals()[name] = value
    return value
