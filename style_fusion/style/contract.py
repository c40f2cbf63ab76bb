"""Validation of the structured style response."""

from __future__ import annotations

import json
from typing import Any, Mapping

from ..errors import StyleAnalysisFailed
from ..prompting import STYLE_FIELDS
from .interfaces import StyleDescriptor


def _as_mapping(text: str) -> Mapping[str, Any]:
    try:
        data = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise StyleAnalysisFailed() from exc
    if not isinstance(data, Mapping):
        raise StyleAnalysisFailed()
    return data


def missing_fields(data: Mapping[str, Any]) -> list[str]:
    missing: list[str] = []
    for name in STYLE_FIELDS:
        value = data.get(name)
        if not isinstance(value, str) or not value.strip():
            missing.append(name)
    return missing


def parse_style_descriptor(text: str | None) -> StyleDescriptor:
    """Build a descriptor from the model's JSON text.

    Any absent or empty required field is a contract violation and raises
    :class:`StyleAnalysisFailed`; nothing is defaulted.
    """

    if not text or not text.strip():
        raise StyleAnalysisFailed()
    data = _as_mapping(text)
    missing = missing_fields(data)
    if missing:
        raise StyleAnalysisFailed(
            f"{StyleAnalysisFailed.default_message} (missing: {', '.join(missing)})"
        )
    values = {name: str(data[name]).strip() for name in STYLE_FIELDS}
    return StyleDescriptor(raw_text=text.strip(), **values)


__all__ = ["missing_fields", "parse_style_descriptor"]
