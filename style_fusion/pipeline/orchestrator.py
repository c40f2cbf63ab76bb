"""Sequencing of encode → style extraction → fusion and the run state machine."""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from typing import Optional

from ..encoding import EncodedImage, UploadedImage
from ..errors import FusionError, ValidationError
from ..fusion.interfaces import FusionEngineProtocol, GenerationRequest
from ..logging_utils import RunLogger
from ..prompting import AspectRatio
from ..style.interfaces import StyleExtractorProtocol
from .state import RunState

__all__ = ["FusionOrchestrator", "RunTicket"]

UNKNOWN_ERROR = "An unknown error occurred during image generation."


@dataclass(frozen=True)
class RunTicket:
    """Inputs captured when a run starts; later uploads do not affect it."""

    run_id: str
    reference: UploadedImage
    subject: UploadedImage
    aspect_ratio: AspectRatio


async def _encode(upload: UploadedImage) -> EncodedImage:
    return await asyncio.to_thread(lambda: upload.encoded)


class FusionOrchestrator:
    """Owns the uploads and the single current :class:`RunState`.

    Every state change made by a run is checked against the current run id,
    so a run superseded by :meth:`reset` or a newer run never overwrites what
    is displayed.
    """

    def __init__(
        self,
        style_extractor: StyleExtractorProtocol,
        fusion_engine: FusionEngineProtocol,
        *,
        variants: int = 4,
        aspect_ratio: AspectRatio | str = AspectRatio.SQUARE,
        log: Optional[RunLogger] = None,
    ) -> None:
        self.style_extractor = style_extractor
        self.fusion_engine = fusion_engine
        self.variants = int(variants)
        self.log = log or RunLogger.for_area("pipeline")
        self._aspect_ratio = AspectRatio.parse(aspect_ratio)
        self._reference: Optional[UploadedImage] = None
        self._subject: Optional[UploadedImage] = None
        self._state = RunState.idle()
        self._current_run: Optional[str] = None

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------
    @property
    def state(self) -> RunState:
        return self._state

    @property
    def reference(self) -> Optional[UploadedImage]:
        return self._reference

    @property
    def subject(self) -> Optional[UploadedImage]:
        return self._subject

    @property
    def aspect_ratio(self) -> AspectRatio:
        return self._aspect_ratio

    @property
    def can_start(self) -> bool:
        return self._reference is not None and self._subject is not None and not self._state.is_running

    def upload_reference(self, upload: UploadedImage) -> None:
        self._reference = upload
        self._after_upload("reference", upload)

    def upload_subject(self, upload: UploadedImage) -> None:
        self._subject = upload
        self._after_upload("subject", upload)

    def _after_upload(self, role: str, upload: UploadedImage) -> None:
        self.log.log("UPLOAD", f"{role}={upload.filename} mime={upload.mime_type} bytes={len(upload.content)}")
        if not self._state.is_running:
            self._state = RunState.idle()

    def set_aspect_ratio(self, value: AspectRatio | str) -> AspectRatio:
        self._aspect_ratio = AspectRatio.parse(value)
        return self._aspect_ratio

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def begin_run(self) -> RunTicket:
        """Leave Idle synchronously, or raise :class:`ValidationError` without touching state."""

        if self._reference is None or self._subject is None:
            raise ValidationError()
        if self._state.is_running:
            raise ValidationError("A generation run is already in progress.")
        run_id = uuid.uuid4().hex[:8]
        self._current_run = run_id
        self._state = RunState.awaiting_style(run_id)
        self.log.log("RUN", f"run={run_id} start ratio={self._aspect_ratio.value}")
        return RunTicket(
            run_id=run_id,
            reference=self._reference,
            subject=self._subject,
            aspect_ratio=self._aspect_ratio,
        )

    def reset(self) -> RunState:
        if self._state.is_running:
            self.log.log("RUN", f"run={self._current_run} superseded by reset", level="WARN")
        self._current_run = None
        self._state = RunState.idle()
        return self._state

    def is_current(self, ticket: RunTicket) -> bool:
        return ticket.run_id == self._current_run

    def _commit(self, ticket: RunTicket, state: RunState) -> bool:
        if not self.is_current(ticket):
            self.log.log(
                "RUN",
                f"run={ticket.run_id} dropped stale {state.phase.value} result",
                level="WARN",
            )
            return False
        self._state = state
        return True

    async def execute(self, ticket: RunTicket) -> RunState:
        if not self.is_current(ticket):
            return self._state
        run_id = ticket.run_id
        try:
            reference = await _encode(ticket.reference)
            style = await self.log.timed(
                "STYLE",
                lambda descriptor: f"run={run_id} style={descriptor.style[:48]!r}",
                self.style_extractor.extract_style(reference),
            )
            if not self._commit(ticket, RunState.awaiting_fusion(run_id, self.variants)):
                return self._state

            subject = await _encode(ticket.subject)
            request = GenerationRequest(
                style=style,
                subject=subject,
                aspect_ratio=ticket.aspect_ratio,
                variants=self.variants,
            )
            result = await self.log.timed(
                "FUSION",
                lambda res: f"run={run_id} images={len(res)} failures={res.failures}",
                self.fusion_engine.fuse(request),
            )
            self._commit(ticket, RunState.succeeded(run_id, result.images))
        except FusionError as exc:
            self.log.log("RUN", f"run={run_id} failed: {exc.message}", level="ERROR")
            self._commit(ticket, RunState.failed(run_id, exc.message))
        except Exception:
            self.log.log("RUN", f"run={run_id} crashed", level="ERROR", exc_info=True)
            self._commit(ticket, RunState.failed(run_id, UNKNOWN_ERROR))
        return self._state

    async def run(self) -> RunState:
        return await self.execute(self.begin_run())
