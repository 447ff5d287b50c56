"""Push a conversion request's inputs and parameters into the service surface."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional

from reel_engine.browser.strategies import aspect_ratio_strategies, resolve_strategies
from reel_engine.config_loader import section
from reel_engine.core.errors import SubmissionError
from reel_engine.core.types import AutomationDriver
from reel_engine.pipeline.schema import SERVICE_DEFAULT_ASPECT_RATIO, ConversionRequest

SleepFn = Callable[[float], Awaitable[None]]

logger = logging.getLogger(__name__)

MODE_DROPDOWN_MIN_Y = 300.0


class InputSubmitter:
    """Selects generation options, supplies the input and triggers generation.

    Option selection is best effort because the service remembers the last
    choice. Missing input controls raise ``SubmissionError``.
    """

    def __init__(
        self,
        driver: AutomationDriver,
        *,
        settings: Dict[str, Any] | None = None,
        sleep_fn: Optional[SleepFn] = None,
    ) -> None:
        service_cfg = section(settings, "service")
        overrides = section(settings, "selectors")
        self.driver = driver
        self.default_aspect_ratio = str(service_cfg.get("default_aspect_ratio", SERVICE_DEFAULT_ASPECT_RATIO))
        self.ui_pause = float(service_cfg.get("ui_pause_seconds", 0.8))
        self.upload_settle = float(service_cfg.get("upload_settle_seconds", 2.0))
        self.file_chooser_timeout_ms = int(service_cfg.get("file_chooser_timeout_ms", 5000))
        self._strategies = {
            role: resolve_strategies(role, overrides)
            for role in (
                "mode_dropdown",
                "video_option",
                "aspect_ratio_trigger",
                "file_input",
                "upload_menu_trigger",
                "upload_option",
                "prompt_input",
                "generate_button",
            )
        }
        self._sleep = sleep_fn or asyncio.sleep

    async def select_video_mode(self) -> bool:
        """Switch the surface from its default image mode to video mode."""

        opened = await self.driver.click(self._strategies["mode_dropdown"], min_y=MODE_DROPDOWN_MIN_Y)
        if not opened:
            logger.info("Mode dropdown not found, keeping current mode")
            return False
        await self._sleep(self.ui_pause)
        chosen = await self.driver.click(self._strategies["video_option"])
        if chosen:
            logger.info("Selected video mode", extra={"strategy": chosen})
            await self._sleep(self.ui_pause)
            return True
        # menu is open but the option did not resolve; keyboard selection
        await self.driver.press("ArrowUp")
        await self.driver.press("Enter")
        logger.warning("Could not confirm video mode selection")
        return False

    async def select_aspect_ratio(self, ratio: str) -> bool:
        if ratio == self.default_aspect_ratio:
            return True
        await self.driver.click(self._strategies["aspect_ratio_trigger"])
        await self._sleep(self.ui_pause)
        chosen = await self.driver.click(aspect_ratio_strategies(ratio), force=True)
        if chosen:
            logger.info("Selected aspect ratio %s", ratio)
            return True
        logger.warning("Could not find aspect ratio control for %s", ratio)
        return False

    async def upload_image(self, image_path: Path) -> None:
        """Attach the source image through a file input or the upload menu."""

        if not image_path.exists():
            raise SubmissionError(f"Input image not found: {image_path}")
        if await self.driver.set_input_files(self._strategies["file_input"], image_path):
            logger.info("Uploaded %s via file input", image_path.name)
            await self._sleep(self.upload_settle)
            return
        if await self.driver.click(self._strategies["upload_menu_trigger"]):
            await self._sleep(self.ui_pause)
            try:
                chosen = await self.driver.choose_file(
                    self._strategies["upload_option"],
                    image_path,
                    timeout_ms=self.file_chooser_timeout_ms,
                )
            except Exception as exc:  # noqa: BLE001 - fall through to the input retry
                logger.debug("file chooser did not open: %s", exc)
                chosen = None
            if not chosen:
                chosen = await self.driver.set_input_files(self._strategies["file_input"], image_path)
            if chosen:
                logger.info("Uploaded %s via upload menu", image_path.name)
                await self._sleep(self.upload_settle)
                return
        raise SubmissionError(f"Failed to upload image {image_path.name}")

    async def type_prompt(self, prompt: str) -> None:
        preview = prompt[:50] + ("..." if len(prompt) > 50 else "")
        matched = await self.driver.fill(self._strategies["prompt_input"], prompt)
        if not matched:
            raise SubmissionError("Could not find text input field")
        logger.info("Entered prompt: %s", preview, extra={"strategy": matched})

    async def click_generate(self) -> None:
        """Trigger generation, falling back to the Enter key."""

        await self._sleep(self.ui_pause)
        matched = await self.driver.click(self._strategies["generate_button"], require_enabled=True)
        if matched:
            logger.info("Clicked generate", extra={"strategy": matched})
            return
        logger.info("Generate control not found, pressing Enter")
        try:
            await self.driver.press("Enter")
        except Exception as exc:  # noqa: BLE001 - converted to a typed failure
            raise SubmissionError("Could not trigger generation") from exc

    async def submit(self, request: ConversionRequest, *, on_stage: Callable[[str, int], None] | None = None) -> None:
        """Run the whole submission sequence for ``request``."""

        notify = on_stage or (lambda _stage, _percent: None)
        params = request.parameters
        if params.produces_video:
            notify("Selecting video mode...", 10)
            await self.select_video_mode()
            if params.aspect_ratio != self.default_aspect_ratio:
                notify("Selecting aspect ratio...", 12)
                await self.select_aspect_ratio(params.aspect_ratio)
        image_path = request.image_path
        if image_path is not None:
            notify("Uploading image...", 20)
            await self.upload_image(image_path)
            if request.prompt_text:
                try:
                    await self.type_prompt(request.prompt_text)
                except SubmissionError:
                    logger.warning("Motion prompt skipped, no input field")
        else:
            notify("Entering prompt...", 20)
            await self.type_prompt(request.prompt_text or "")
        notify("Starting generation...", 30)
        await self.click_generate()


__all__ = ["InputSubmitter"]
