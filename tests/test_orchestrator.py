from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Tuple

import httpx
import pytest

from reel_engine.core.errors import SubmissionError
from reel_engine.pipeline.orchestrator import PipelineOrchestrator
from reel_engine.pipeline.schema import BatchProgress, ConversionRequest, GenerationParameters, PipelineStage
from reel_engine.session.credentials import CookieBundle
from reel_engine.utils.logging_utils import RunLogger
from tests.fakes import FakeClock, FakeDriver, ready_driver

VIDEO_URL = "https://assets.grok.com/users/u1/generated/abc/generated_video.mp4"
BIG = b"\x00" * 600_000


def _orchestrator(
    tmp_path: Path,
    *,
    driver: FakeDriver | None = None,
    status: int = 200,
    payload: bytes = BIG,
    settings: Dict[str, Any] | None = None,
) -> Tuple[PipelineOrchestrator, FakeDriver, FakeClock]:
    driver = driver or ready_driver()
    clock = FakeClock()

    def _serve(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, content=payload if status == 200 else b"")

    orchestrator = PipelineOrchestrator(
        driver,
        CookieBundle(values={"sso": "abc"}),
        settings=settings or {},
        run_logger=RunLogger(base_dir=tmp_path / "run"),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(_serve)),
        sleep_fn=clock.sleep,
        clock=clock,
    )
    return orchestrator, driver, clock


def _text_request(tmp_path: Path, prompt: str = "a cat surfing a wave", **params: Any) -> ConversionRequest:
    return ConversionRequest(
        input_ref=prompt,
        destination_path=tmp_path / "out" / "clip.mp4",
        parameters=GenerationParameters(mode="text_to_video", **params),
    )


def _recorder() -> Tuple[List[Tuple[str, int]], Any]:
    events: List[Tuple[str, int]] = []

    def _callback(stage: str, percent: int) -> None:
        events.append((stage, percent))

    return events, _callback


@pytest.mark.asyncio
async def test_convert_completes_end_to_end(tmp_path: Path) -> None:
    orchestrator, driver, clock = _orchestrator(tmp_path)
    clock.at(30, lambda: driver.values.append(VIDEO_URL))
    events, callback = _recorder()
    request = _text_request(tmp_path)

    result = await orchestrator.convert(request, callback)

    assert result.success is True
    assert result.attempts == 1
    assert result.artifact_ref == VIDEO_URL
    assert result.output_path == request.destination_path
    assert request.destination_path.read_bytes() == BIG
    assert driver.filled == ["a cat surfing a wave"]
    percents = [percent for _, percent in events]
    assert percents[0] == 5
    assert percents[-1] == 100
    assert percents == sorted(percents)
    assert orchestrator.stage is PipelineStage.COMPLETE


@pytest.mark.asyncio
async def test_recoverable_submission_errors_are_retried(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    orchestrator, driver, clock = _orchestrator(tmp_path)
    clock.at(100, lambda: driver.values.append(VIDEO_URL))
    real_submit = orchestrator.submitter.submit
    calls = {"count": 0}

    async def _flaky_submit(request: ConversionRequest, **kwargs: Any) -> None:
        calls["count"] += 1
        if calls["count"] <= 2:
            raise SubmissionError("Could not find text input field")
        await real_submit(request, **kwargs)

    monkeypatch.setattr(orchestrator.submitter, "submit", _flaky_submit)

    result = await orchestrator.convert(_text_request(tmp_path))

    assert result.success is True
    assert result.attempts == 3
    assert driver.open_calls == 1
    assert driver.new_page_calls == 2


@pytest.mark.asyncio
async def test_download_failure_short_circuits_with_preserved_reference(tmp_path: Path) -> None:
    orchestrator, driver, clock = _orchestrator(tmp_path, status=500)
    clock.at(30, lambda: driver.values.append(VIDEO_URL))
    events, callback = _recorder()
    request = _text_request(tmp_path)

    result = await orchestrator.convert(request, callback)

    assert result.success is False
    assert result.download_failed is True
    assert result.artifact_ref == VIDEO_URL
    assert result.attempts == 1
    assert driver.filled == ["a cat surfing a wave"]
    assert not request.destination_path.exists()
    assert [percent for _, percent in events].count(-1) == 1


@pytest.mark.asyncio
async def test_generation_timeouts_exhaust_attempts(tmp_path: Path) -> None:
    orchestrator, driver, _ = _orchestrator(tmp_path, settings={"pipeline": {"retry_limit": 2}})
    events, callback = _recorder()

    result = await orchestrator.convert(_text_request(tmp_path, timeout_seconds=30), callback)

    assert result.success is False
    assert result.download_failed is False
    assert result.attempts == 2
    assert "timed out" in (result.error or "")
    assert events[-1][1] == -1
    assert [percent for _, percent in events].count(-1) == 1
    assert (tmp_path / "run" / "screenshots" / "attempt_01.png").exists()
    attempts = (tmp_path / "run" / "attempts.jsonl").read_text(encoding="utf-8").splitlines()
    assert [json.loads(line)["outcome"] for line in attempts] == ["error", "error"]
    summary = json.loads((tmp_path / "run" / "run_summary.json").read_text(encoding="utf-8"))
    assert summary["attempts"] == 2


@pytest.mark.asyncio
async def test_progress_callback_errors_do_not_break_conversion(tmp_path: Path) -> None:
    orchestrator, driver, clock = _orchestrator(tmp_path)
    clock.at(30, lambda: driver.values.append(VIDEO_URL))

    def _broken(stage: str, percent: int) -> None:
        raise RuntimeError("ui went away")

    result = await orchestrator.convert(_text_request(tmp_path), _broken)

    assert result.success is True


@pytest.mark.asyncio
async def test_image_request_uploads_before_generating(tmp_path: Path) -> None:
    image = tmp_path / "portrait.jpg"
    image.write_bytes(b"jpeg")
    orchestrator, driver, clock = _orchestrator(tmp_path)
    clock.at(30, lambda: driver.values.append(VIDEO_URL))
    request = ConversionRequest(
        input_ref=str(image),
        destination_path=tmp_path / "portrait.mp4",
        parameters=GenerationParameters(mode="image_to_video"),
    )

    result = await orchestrator.convert(request)

    assert result.success is True
    assert driver.uploads == [image]


@pytest.mark.asyncio
async def test_cancelled_orchestrator_reports_one_aborted_attempt(tmp_path: Path) -> None:
    orchestrator, driver, _ = _orchestrator(tmp_path)
    orchestrator.cancel()

    result = await orchestrator.convert(_text_request(tmp_path))

    assert result.success is False
    assert result.error == "Cancelled"
    assert result.attempts == 1
    assert driver.open_calls == 0


@pytest.mark.asyncio
async def test_batch_truncates_when_liveness_drops(tmp_path: Path) -> None:
    orchestrator, driver, clock = _orchestrator(tmp_path)
    clock.at(30, lambda: driver.values.append(VIDEO_URL))
    requests = [
        ConversionRequest(
            input_ref=f"prompt number {index}",
            destination_path=tmp_path / f"item_{index}.mp4",
            parameters=GenerationParameters(mode="text_to_video"),
        )
        for index in range(1, 4)
    ]
    seen: List[BatchProgress] = []

    def _on_progress(progress: BatchProgress) -> None:
        seen.append(progress)
        if progress.current == 2 and progress.stage.startswith("Generating"):
            orchestrator.cancel()

    results = await orchestrator.convert_batch(requests, _on_progress)

    assert len(results) == 2
    assert results[0].result.success is True
    assert results[1].result.success is False
    assert all(progress.current in (1, 2) for progress in seen)
    assert "prompt number 3" not in driver.filled
    assert [progress.percent for progress in seen if progress.current == 1][-1] == 33


@pytest.mark.asyncio
async def test_cancel_during_cold_start_truncates_batch(tmp_path: Path) -> None:
    orchestrator, driver, clock = _orchestrator(tmp_path)
    clock.at(30, lambda: driver.values.append(VIDEO_URL))
    requests = [
        ConversionRequest(
            input_ref=f"prompt number {index}",
            destination_path=tmp_path / f"item_{index}.mp4",
            parameters=GenerationParameters(mode="text_to_video"),
        )
        for index in range(1, 4)
    ]

    def _on_progress(progress: BatchProgress) -> None:
        if progress.stage == "Starting browser...":
            orchestrator.cancel()

    results = await orchestrator.convert_batch(requests, _on_progress)

    assert len(results) == 1
    assert results[0].result.success is False
    assert results[0].result.error == "Cancelled"
    assert driver.filled == ["prompt number 1"]
    assert orchestrator.state.is_running is False


@pytest.mark.asyncio
async def test_validation_leaves_orchestrator_usable(tmp_path: Path) -> None:
    orchestrator, driver, clock = _orchestrator(tmp_path)
    clock.at(30, lambda: driver.values.append(VIDEO_URL))

    assert await orchestrator.validate_session() is True
    assert driver.is_open is False

    result = await orchestrator.convert(_text_request(tmp_path))

    assert result.success is True
    assert result.attempts == 1
    assert driver.open_calls == 2


@pytest.mark.asyncio
async def test_undersized_artifact_preserves_reference(tmp_path: Path) -> None:
    orchestrator, driver, clock = _orchestrator(tmp_path, payload=b"\x00" * 100_000)
    clock.at(30, lambda: driver.values.append(VIDEO_URL))
    request = _text_request(tmp_path)

    result = await orchestrator.convert(request)

    assert result.success is False
    assert result.download_failed is True
    assert result.artifact_ref == VIDEO_URL
    assert result.attempts == 1
    assert not request.destination_path.exists()


@pytest.mark.asyncio
@pytest.mark.parametrize("name", ["again.png", "again.jpg", "again.webp"])
async def test_retry_download_uses_image_threshold_for_image_files(tmp_path: Path, name: str) -> None:
    orchestrator, driver, _ = _orchestrator(tmp_path, payload=b"\x01" * 20_000)

    ok = await orchestrator.retry_download("https://assets.grok.com/users/u1/generated/abc/image.jpg", tmp_path / name)

    assert ok is True
    assert (tmp_path / name).stat().st_size == 20_000
    await orchestrator.close()


@pytest.mark.asyncio
async def test_retry_download_runs_only_the_download_stage(tmp_path: Path) -> None:
    orchestrator, driver, _ = _orchestrator(tmp_path)

    ok = await orchestrator.retry_download(VIDEO_URL, tmp_path / "again.mp4")

    assert ok is True
    assert driver.open_calls == 0
    await orchestrator.close()


def test_batch_progress_maps_item_percent_proportionally() -> None:
    halfway = BatchProgress.from_item(2, 4, "b", "Generating video...", 50)
    failed = BatchProgress.from_item(3, 4, "c", "Failed after 3 attempts", -1)

    assert halfway.percent == 37
    assert failed.percent == 50
    assert failed.item_percent == -1
