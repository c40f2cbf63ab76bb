from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar, Union

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

T = TypeVar("T")

_LOG_LEVELS = {"DEBUG": logging.DEBUG, "INFO": logging.INFO, "WARN": logging.WARNING, "WARNING": logging.WARNING, "ERROR": logging.ERROR}
_ROOT_LOGGER = "style_fusion"
_PLAIN_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"


def _normalize_level(level: str) -> int:
    return _LOG_LEVELS.get(level.upper().strip(), logging.INFO)


def configure_logging(level: str = "INFO", logfile: Optional[Path] = None) -> logging.Logger:
    """Install a rich console handler (and an optional plain file handler) once."""

    root = logging.getLogger(_ROOT_LOGGER)
    root.setLevel(_normalize_level(level))
    if not any(getattr(handler, "_style_fusion", False) for handler in root.handlers):
        console = Console(theme=Theme({"repr.number": "cyan"}), stderr=True)
        handler = RichHandler(console=console, show_path=False, rich_tracebacks=True, markup=False)
        handler._style_fusion = True  # type: ignore[attr-defined]
        root.addHandler(handler)
    if logfile is not None:
        resolved = logfile.resolve()
        if not any(
            isinstance(handler, logging.FileHandler) and Path(handler.baseFilename) == resolved
            for handler in root.handlers
        ):
            resolved.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(resolved, encoding="utf-8")
            file_handler.setFormatter(logging.Formatter(_PLAIN_FORMAT))
            root.addHandler(file_handler)
    return root


@dataclass
class RunLogger:
    """Step-tagged log lines, e.g. ``[STYLE  ] run=ab12 ok (ms=812)``."""

    logger: logging.Logger

    @classmethod
    def for_area(cls, area: str) -> "RunLogger":
        return cls(logging.getLogger(f"{_ROOT_LOGGER}.{area}"))

    def log(
        self,
        step: str,
        message: str,
        level: str = "INFO",
        elapsed_ms: Optional[float] = None,
        exc_info: bool = False,
    ) -> None:
        step_fmt = step.upper().ljust(7)
        suffix = f" (ms={elapsed_ms:.0f})" if elapsed_ms is not None else ""
        self.logger.log(_normalize_level(level), f"[{step_fmt}] {message}{suffix}", exc_info=exc_info)

    async def timed(
        self,
        step: str,
        message: Union[str, Callable[[T], str]],
        awaitable: Awaitable[T],
        *,
        level: str = "INFO",
    ) -> T:
        start = time.perf_counter()
        try:
            result = await awaitable
        except Exception as exc:
            elapsed = (time.perf_counter() - start) * 1000.0
            self.log(step, f"error: {exc}", level="ERROR", elapsed_ms=elapsed)
            raise
        elapsed = (time.perf_counter() - start) * 1000.0
        msg = message(result) if callable(message) else message
        self.log(step, msg, level=level, elapsed_ms=elapsed)
        return result


__all__ = ["RunLogger", "configure_logging"]
