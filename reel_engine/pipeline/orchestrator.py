"""End-to-end conversion pipeline with attempt-level retry and recovery."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from time import monotonic
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import httpx

from reel_engine.browser.driver import PlaywrightDriver
from reel_engine.config_loader import load_settings, section
from reel_engine.core.errors import GenerationTimeoutError
from reel_engine.core.types import AutomationDriver, ProgressCallback
from reel_engine.detection.artifact_detector import ArtifactDetector
from reel_engine.detection.profiles import ArtifactProfile, image_profile, video_profile
from reel_engine.download.download_manager import DownloadManager
from reel_engine.pipeline.naming import IMAGE_EXTENSIONS, slugify_prompt
from reel_engine.pipeline.schema import (
    FAILURE_PERCENT,
    BatchItemResult,
    BatchProgress,
    ConversionRequest,
    ConversionResult,
    PipelineStage,
    ProgressEvent,
)
from reel_engine.pipeline.submission import InputSubmitter
from reel_engine.session.credentials import CookieBundle, load_cookie_bundle
from reel_engine.session.session_manager import SessionManager
from reel_engine.session.state import SessionState
from reel_engine.utils.logging_utils import RunLogger

SleepFn = Callable[[float], Awaitable[None]]
ClockFn = Callable[[], float]
BatchProgressCallback = Callable[[BatchProgress], None]

logger = logging.getLogger(__name__)


class PipelineOrchestrator:
    """Drives conversion requests through one owned session.

    Only the orchestrator decides whether a failure ends the call or earns
    another attempt. Lower layers report through return values and typed
    errors.
    """

    def __init__(
        self,
        driver: AutomationDriver | None = None,
        credentials: CookieBundle | None = None,
        *,
        settings: Dict[str, Any] | None = None,
        run_logger: RunLogger | None = None,
        http_client: httpx.AsyncClient | None = None,
        sleep_fn: Optional[SleepFn] = None,
        clock: Optional[ClockFn] = None,
        headless: bool | None = None,
    ) -> None:
        self.settings = settings or {}
        pipeline_cfg = section(self.settings, "pipeline")
        batch_cfg = section(self.settings, "batch")
        self.retry_limit = max(int(pipeline_cfg.get("retry_limit", 3)), 1)
        self.retry_pause = float(pipeline_cfg.get("retry_pause_seconds", 2.0))
        self.delay_between = float(batch_cfg.get("delay_between_seconds", 5))
        self._sleep = sleep_fn or asyncio.sleep
        clock = clock or monotonic

        self.driver = driver or PlaywrightDriver(settings=self.settings, headless=headless)
        self.credentials = credentials or load_cookie_bundle(self.settings)
        self.state = SessionState()
        self.run_logger = run_logger
        self.session = SessionManager(
            self.driver,
            self.credentials,
            self.state,
            settings=self.settings,
            sleep_fn=self._sleep,
            clock=clock,
        )
        self.profiles: Dict[str, ArtifactProfile] = {
            "video": video_profile(self.settings),
            "image": image_profile(self.settings),
        }
        self.detectors: Dict[str, ArtifactDetector] = {
            kind: ArtifactDetector(
                self.driver,
                self.state,
                profile=profile,
                settings=self.settings,
                sleep_fn=self._sleep,
                clock=clock,
            )
            for kind, profile in self.profiles.items()
        }
        self.downloads = DownloadManager(
            self.driver,
            self.state,
            settings=self.settings,
            http_client=http_client,
            sleep_fn=self._sleep,
        )
        self.submitter = InputSubmitter(self.driver, settings=self.settings, sleep_fn=self._sleep)
        self.stage = PipelineStage.IDLE
        self._entry_recovered = False

    async def convert(
        self,
        request: ConversionRequest,
        progress_callback: ProgressCallback | None = None,
    ) -> ConversionResult:
        """Convert one request, retrying recoverable failures up to ``retry_limit`` times."""

        kind = "video" if request.parameters.produces_video else "image"
        profile = self.profiles[kind]
        detector = self.detectors[kind]
        destination = Path(request.destination_path)
        attempts = 1
        last_error: Optional[str] = None
        logger.info(
            "Conversion started",
            extra={"mode": request.parameters.mode, "destination": str(destination)},
        )

        for attempt in range(1, self.retry_limit + 1):
            attempts = attempt
            if not self.state.is_running:
                last_error = last_error or "Cancelled"
                break
            emit = self._emitter(progress_callback, attempt)
            try:
                if attempt > 1:
                    emit(f"Retry {attempt}/{self.retry_limit}...", 5)
                await self._enter_session(emit)

                self._set_stage(PipelineStage.SUBMITTING)
                await self.submitter.submit(request, on_stage=emit)

                self._set_stage(PipelineStage.AWAITING_GENERATION)
                emit(f"Generating {kind}...", 40)
                exclusions = self.state.replace_exclusions(await detector.snapshot_existing())
                artifact_ref = await detector.wait_for_artifact(
                    timeout_seconds=request.parameters.timeout_seconds,
                    exclusion_set=exclusions,
                )
                if artifact_ref is None:
                    if not self.state.is_running:
                        last_error = "Cancelled"
                        self._log_attempt(attempt, "cancelled", last_error)
                        break
                    raise GenerationTimeoutError(f"{kind.capitalize()} generation timed out")

                self._set_stage(PipelineStage.DOWNLOADING)
                emit(f"Downloading {kind}...", 85)
                downloaded = await self.downloads.fetch_with_retry(
                    artifact_ref,
                    destination,
                    self.downloads.max_retries,
                    min_bytes=profile.min_bytes,
                )
                if downloaded:
                    self._set_stage(PipelineStage.COMPLETE)
                    emit("Complete!", 100)
                    self._log_attempt(attempt, "complete", None, artifact_ref=artifact_ref)
                    return self._finish(
                        ConversionResult(
                            success=True,
                            artifact_ref=artifact_ref,
                            output_path=destination,
                            attempts=attempt,
                        )
                    )
                # generated but not transferred: keep the reference for retry_download
                self._set_stage(PipelineStage.FAILED)
                last_error = "Download failed after retries"
                self._log_attempt(attempt, "download_failed", last_error, artifact_ref=artifact_ref)
                emit(last_error, FAILURE_PERCENT)
                return self._finish(
                    ConversionResult(
                        success=False,
                        artifact_ref=artifact_ref,
                        error=last_error,
                        attempts=attempt,
                        download_failed=True,
                    )
                )
            except Exception as exc:  # noqa: BLE001 - every attempt failure is retried here
                last_error = str(exc) or exc.__class__.__name__
                logger.warning(
                    "Attempt %d/%d failed: %s",
                    attempt,
                    self.retry_limit,
                    last_error,
                    extra={"error_type": exc.__class__.__name__},
                )
                await self._save_failure_screenshot(attempt)
                self._log_attempt(attempt, "error", last_error, error_type=exc.__class__.__name__)
                if attempt < self.retry_limit and self.state.is_running:
                    await self._sleep(self.retry_pause)
                    await self.session.recover_to_entry()
                    self._entry_recovered = True

        self._set_stage(PipelineStage.FAILED)
        self._emitter(progress_callback, attempts)(f"Failed after {attempts} attempts", FAILURE_PERCENT)
        return self._finish(ConversionResult(success=False, error=last_error, attempts=attempts))

    async def convert_batch(
        self,
        requests: Sequence[ConversionRequest],
        progress_callback: BatchProgressCallback | None = None,
    ) -> List[BatchItemResult]:
        """Convert requests one after another on the shared session."""

        results: List[BatchItemResult] = []
        total = len(requests)
        for index, request in enumerate(requests, start=1):
            if not self.state.is_running:
                logger.info("Batch stopped before item %d/%d", index, total)
                break
            item_name = _item_name(request)
            logger.info("Processing %d/%d: %s", index, total, item_name)

            def _item_progress(stage: str, percent: int, *, _index: int = index, _name: str = item_name) -> None:
                if progress_callback is None:
                    return
                progress_callback(BatchProgress.from_item(_index, total, _name, stage, percent))

            result = await self.convert(request, _item_progress)
            results.append(BatchItemResult(request=request, result=result))
            if index < total and self.state.is_running:
                logger.info("Waiting %.0fs before next item", self.delay_between)
                await self._sleep(self.delay_between)

        if self.run_logger is not None:
            self.run_logger.write_summary(
                {
                    "total": total,
                    "processed": len(results),
                    "succeeded": sum(1 for item in results if item.result.success),
                    "items": [item.model_dump(mode="json") for item in results],
                }
            )
        return results

    async def retry_download(self, artifact_ref: str, destination: Path | str) -> bool:
        """Run only the download stage for a reference from a ``download_failed`` result."""

        target = Path(destination)
        profile = self.profiles["image"] if target.suffix.lower() in IMAGE_EXTENSIONS else self.profiles["video"]
        self._set_stage(PipelineStage.DOWNLOADING)
        ok = await self.downloads.retry_download(artifact_ref, target, min_bytes=profile.min_bytes)
        self._set_stage(PipelineStage.COMPLETE if ok else PipelineStage.FAILED)
        return ok

    async def validate_session(self) -> bool:
        return await self.session.validate()

    def cancel(self) -> None:
        """Stop waits cooperatively; the current item finishes as failed."""

        logger.info("Cancellation requested")
        self.state.cancel()

    async def close(self) -> None:
        await self.session.stop()
        await self.downloads.aclose()

    async def _enter_session(self, emit: ProgressCallback) -> None:
        self._set_stage(PipelineStage.STARTING)
        if not self.state.is_active:
            emit("Starting browser...", 5)
            await self.session.start()
        elif not self._entry_recovered:
            emit("Opening fresh tab...", 5)
            await self.session.recover_to_entry()
        self._entry_recovered = False

    def _emitter(self, callback: ProgressCallback | None, attempt: int) -> ProgressCallback:
        def _emit(stage: str, percent: int) -> None:
            event = ProgressEvent(stage=stage, percent=percent, attempt=attempt)
            logger.debug("progress %s %d", event.stage, event.percent, extra={"attempt": attempt})
            if self.run_logger is not None:
                self.run_logger.log_progress(event.stage, event.percent, attempt=event.attempt)
            if callback is None:
                return
            try:
                callback(stage, percent)
            except Exception:  # noqa: BLE001 - progress sinks are fire-and-forget
                logger.warning("progress callback failed", exc_info=True)

        return _emit

    def _set_stage(self, stage: PipelineStage) -> None:
        self.stage = stage

    def _log_attempt(self, attempt: int, outcome: str, error: str | None, **fields: Any) -> None:
        if self.run_logger is not None:
            self.run_logger.log_attempt(attempt, outcome=outcome, error=error, **fields)

    async def _save_failure_screenshot(self, attempt: int) -> None:
        if self.run_logger is None:
            return
        payload = await self.session.capture_screenshot()
        if payload:
            path = self.run_logger.save_screenshot(payload, name=f"attempt_{attempt:02d}.png")
            logger.info("Saved failure screenshot", extra={"path": str(path)})

    def _finish(self, result: ConversionResult) -> ConversionResult:
        if self.run_logger is not None:
            self.run_logger.write_summary(result.model_dump(mode="json"))
        return result


def build_orchestrator(
    settings: Dict[str, Any] | None = None,
    *,
    headless: bool | None = None,
    cookie_file: Path | str | None = None,
    artifacts_root: Path | str | None = None,
) -> PipelineOrchestrator:
    """Assemble an orchestrator from settings, a cookie source and a run directory."""

    resolved = settings if settings is not None else load_settings()
    logging_cfg = section(resolved, "logging")
    root = Path(artifacts_root or logging_cfg.get("artifact_root", "runs"))
    return PipelineOrchestrator(
        credentials=load_cookie_bundle(resolved, cookie_file=cookie_file),
        settings=resolved,
        run_logger=RunLogger(root=root, prefix="convert"),
        headless=headless,
    )


def run_convert_sync(
    request: ConversionRequest,
    orchestrator: PipelineOrchestrator | None = None,
    progress_callback: ProgressCallback | None = None,
) -> ConversionResult:
    """Convenience wrapper for synchronous callers (e.g., CLI)."""

    orchestrator = orchestrator or build_orchestrator()

    async def _run() -> ConversionResult:
        try:
            return await orchestrator.convert(request, progress_callback)
        finally:
            await orchestrator.close()

    return asyncio.run(_run())


def run_batch_sync(
    requests: Sequence[ConversionRequest],
    orchestrator: PipelineOrchestrator | None = None,
    progress_callback: BatchProgressCallback | None = None,
) -> List[BatchItemResult]:
    orchestrator = orchestrator or build_orchestrator()

    async def _run() -> List[BatchItemResult]:
        try:
            return await orchestrator.convert_batch(requests, progress_callback)
        finally:
            await orchestrator.close()

    return asyncio.run(_run())


def _item_name(request: ConversionRequest) -> str:
    if request.image_path is not None:
        return request.image_path.stem
    return slugify_prompt(request.input_ref)


__all__ = [
    "PipelineOrchestrator",
    "build_orchestrator",
    "run_batch_sync",
    "run_convert_sync",
]
