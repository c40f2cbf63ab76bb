from __future__ import annotations

import asyncio

import pytest

from conftest import (
    STYLE_PAYLOAD,
    FakeGenaiClient,
    fake_image_bytes,
    image_response,
    is_fusion_call,
    make_container,
    make_upload,
    style_response,
)

from style_fusion.config import AppConfig
from style_fusion.errors import FusionFailed, StyleAnalysisFailed, ValidationError
from style_fusion.fusion import GenerationResult
from style_fusion.pipeline import FusionOrchestrator, RunPhase
from style_fusion.pipeline.orchestrator import UNKNOWN_ERROR
from style_fusion.pipeline.state import FUSION_PROGRESS, STYLE_PROGRESS


class _Recorder:
    """Handler that remembers which phase the orchestrator was in for each call."""

    def __init__(self, style=None, fusion=None):
        self.orchestrator: FusionOrchestrator | None = None
        self.phases: list[RunPhase] = []
        self._style = style or (lambda index: style_response())
        self._fusion = fusion or (lambda index: image_response(fake_image_bytes(index)))

    def __call__(self, index, model, contents, config):
        self.phases.append(self.orchestrator.state.phase)
        if is_fusion_call(config):
            return self._fusion(index)
        return self._style(index)


def _setup(recorder: _Recorder, config: AppConfig | None = None, uploads: bool = True):
    client = FakeGenaiClient(recorder)
    orchestrator = make_container(client, config).new_orchestrator()
    recorder.orchestrator = orchestrator
    if uploads:
        orchestrator.upload_reference(make_upload("reference"))
        orchestrator.upload_subject(make_upload("subject"))
    return client, orchestrator


def test_begin_run_requires_both_uploads() -> None:
    client, orchestrator = _setup(_Recorder(), uploads=False)

    with pytest.raises(ValidationError):
        orchestrator.begin_run()
    orchestrator.upload_reference(make_upload("reference"))
    with pytest.raises(ValidationError, match="reference and a subject"):
        orchestrator.begin_run()

    assert orchestrator.state.phase is RunPhase.IDLE
    assert orchestrator.can_start is False
    assert client.calls == []


def test_begin_run_leaves_idle_synchronously() -> None:
    _, orchestrator = _setup(_Recorder())

    ticket = orchestrator.begin_run()

    assert orchestrator.state.phase is RunPhase.AWAITING_STYLE_ANALYSIS
    assert orchestrator.state.progress == STYLE_PROGRESS
    assert orchestrator.state.run_id == ticket.run_id
    assert orchestrator.can_start is False
    with pytest.raises(ValidationError, match="already in progress"):
        orchestrator.begin_run()


def test_successful_run_walks_every_phase() -> None:
    recorder = _Recorder()
    client, orchestrator = _setup(recorder)
    orchestrator.set_aspect_ratio("4:3")

    state = asyncio.run(orchestrator.run())

    assert recorder.phases == [RunPhase.AWAITING_STYLE_ANALYSIS] + [RunPhase.AWAITING_FUSION] * 4
    assert state.phase is RunPhase.SUCCEEDED
    assert state.error is None
    assert [image.raw_bytes() for image in state.images] == [fake_image_bytes(i) for i in range(2, 6)]
    fusion_prompt = client.fusion_calls()[0].contents[1]
    assert "aspect ratio of 4:3." in fusion_prompt
    assert STYLE_PAYLOAD["lighting"] in fusion_prompt


def test_fusion_progress_names_the_variant_count() -> None:
    progress: list[str] = []
    recorder = _Recorder()

    def fusion(index):
        progress.append(recorder.orchestrator.state.progress)
        return image_response(fake_image_bytes(index))

    recorder._fusion = fusion
    _, orchestrator = _setup(recorder)

    asyncio.run(orchestrator.run())

    assert set(progress) == {FUSION_PROGRESS.format(count=4)}
    assert "generating 4 new versions" in progress[0]


def test_style_contract_violation_fails_before_fusion() -> None:
    payload = {key: value for key, value in STYLE_PAYLOAD.items() if key != "composition"}
    recorder = _Recorder(style=lambda index: style_response(payload))
    client, orchestrator = _setup(recorder)

    state = asyncio.run(orchestrator.run())

    assert state.phase is RunPhase.FAILED
    assert state.error.startswith(StyleAnalysisFailed.default_message)
    assert state.images == ()
    assert RunPhase.AWAITING_FUSION not in recorder.phases
    assert client.fusion_calls() == []


def test_any_failed_fusion_call_fails_the_run() -> None:
    def fusion(index):
        if index == 4:
            raise RuntimeError("blocked")
        return image_response(fake_image_bytes(index))

    _, orchestrator = _setup(_Recorder(fusion=fusion))

    state = asyncio.run(orchestrator.run())

    assert state.phase is RunPhase.FAILED
    assert state.error == FusionFailed.default_message
    assert state.images == ()


def test_unexpected_errors_surface_the_generic_message() -> None:
    class _BrokenEngine:
        async def fuse(self, request) -> GenerationResult:
            raise KeyError("boom")

    container = make_container(FakeGenaiClient())
    orchestrator = FusionOrchestrator(container.style_extractor, _BrokenEngine())
    orchestrator.upload_reference(make_upload("reference"))
    orchestrator.upload_subject(make_upload("subject"))

    state = asyncio.run(orchestrator.run())

    assert state.phase is RunPhase.FAILED
    assert state.error == UNKNOWN_ERROR


def test_reset_during_style_analysis_discards_the_run() -> None:
    recorder = _Recorder()

    def style(index):
        recorder.orchestrator.reset()
        return style_response()

    recorder._style = style
    client, orchestrator = _setup(recorder)

    state = asyncio.run(orchestrator.run())

    assert state.phase is RunPhase.IDLE
    assert client.fusion_calls() == []


def test_results_of_a_superseded_run_are_dropped() -> None:
    recorder = _Recorder()
    tickets = []

    def fusion(index):
        if not tickets:
            recorder.orchestrator.reset()
            tickets.append(recorder.orchestrator.begin_run())
        return image_response(fake_image_bytes(index))

    recorder._fusion = fusion
    _, orchestrator = _setup(recorder)
    first = orchestrator.begin_run()

    state = asyncio.run(orchestrator.execute(first))

    assert state.phase is RunPhase.AWAITING_STYLE_ANALYSIS
    assert state.run_id == tickets[0].run_id
    assert not orchestrator.is_current(first)
    assert asyncio.run(orchestrator.execute(first)) is state


def test_upload_after_a_finished_run_returns_to_idle() -> None:
    _, orchestrator = _setup(_Recorder())
    asyncio.run(orchestrator.run())
    assert orchestrator.state.phase is RunPhase.SUCCEEDED

    orchestrator.upload_subject(make_upload("subject"))

    assert orchestrator.state.phase is RunPhase.IDLE
    assert orchestrator.state.images == ()
    assert orchestrator.can_start is True


def test_a_new_run_may_start_after_failure() -> None:
    attempts = []

    def style(index):
        attempts.append(index)
        if len(attempts) == 1:
            raise RuntimeError("first attempt blocked")
        return style_response()

    _, orchestrator = _setup(_Recorder(style=style))

    assert asyncio.run(orchestrator.run()).phase is RunPhase.FAILED
    state = asyncio.run(orchestrator.run())

    assert state.phase is RunPhase.SUCCEEDED
    assert len(state.images) == 4


def test_best_effort_policy_reaches_the_orchestrator() -> None:
    def fusion(index):
        if index == 3:
            raise RuntimeError("blocked")
        return image_response(fake_image_bytes(index))

    config = AppConfig()
    config.apply_overrides(policy="best_effort")
    _, orchestrator = _setup(_Recorder(fusion=fusion), config=config)

    state = asyncio.run(orchestrator.run())

    assert state.phase is RunPhase.SUCCEEDED
    assert len(state.images) == 3


def test_state_as_dict_lists_images_without_payloads() -> None:
    _, orchestrator = _setup(_Recorder())

    payload = asyncio.run(orchestrator.run()).as_dict()

    assert payload["phase"] == "succeeded"
    assert payload["image_count"] == 4
    assert payload["images"][0] == {"index": 1, "mime_type": "image/png"}
    assert payload["error"] is None
