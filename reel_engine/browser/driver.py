"""Playwright-backed automation driver."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from reel_engine.config_loader import section
from reel_engine.core.errors import DriverError
from reel_engine.core.types import CookieSpec, ResponseEvent, ResponseHandler

try:  # pragma: no cover - optional runtime dependency
    from playwright.async_api import async_playwright
except Exception:  # pragma: no cover - Playwright not installed
    async_playwright = None  # type: ignore[assignment]

logger = logging.getLogger(__name__)

MAX_ELEMENTS_PER_STRATEGY = 10

ANCHOR_DOWNLOAD_SCRIPT = """
(url) => {
    const a = document.createElement('a');
    a.href = url;
    a.download = '';
    document.body.appendChild(a);
    a.click();
    document.body.removeChild(a);
}
"""


@dataclass
class BrowserSession:
    """Holds Playwright session objects for reuse."""

    playwright: Any
    browser: Any
    context: Any
    page: Any

    async def close(self) -> None:
        for label, closer in (
            ("page", getattr(self.page, "close", None)),
            ("context", getattr(self.context, "close", None)),
            ("browser", getattr(self.browser, "close", None)),
            ("playwright", getattr(self.playwright, "stop", None)),
        ):
            if closer is None:
                continue
            try:
                await closer()
            except Exception:  # noqa: BLE001 - teardown always completes
                logger.debug("failed to close %s", label, exc_info=True)


class PlaywrightDriver:
    """Drives a Chromium page through Playwright's async API."""

    def __init__(self, *, settings: Dict[str, Any] | None = None, headless: bool | None = None) -> None:
        browser_cfg = section(settings, "browser")
        self.headless = bool(browser_cfg.get("headless", True)) if headless is None else headless
        self.channel: Optional[str] = browser_cfg.get("channel") or None
        self.slow_mo = int(browser_cfg.get("slow_mo", 0))
        self.viewport = dict(browser_cfg.get("viewport") or {"width": 1920, "height": 1080})
        self.user_agent_override: Optional[str] = browser_cfg.get("user_agent") or None
        self.launch_args = list(browser_cfg.get("args") or ["--disable-blink-features=AutomationControlled"])
        self._session: BrowserSession | None = None

    @property
    def is_open(self) -> bool:
        return self._session is not None

    @property
    def page(self) -> Any:
        if self._session is None:
            raise DriverError("browser session is not open")
        return self._session.page

    async def open(self) -> None:
        if self._session is not None:
            return
        if async_playwright is None:
            raise DriverError("playwright is not installed")
        playwright = await async_playwright().start()
        try:
            browser = await playwright.chromium.launch(
                headless=self.headless,
                channel=self.channel,
                slow_mo=self.slow_mo,
                args=self.launch_args,
            )
        except Exception as exc:
            await playwright.stop()
            message = str(exc)
            if "Executable doesn't exist" in message or "executable" in message.lower():
                raise DriverError(f"Browser channel {self.channel or 'chromium'} is not installed") from exc
            raise DriverError(f"failed to launch browser: {message}") from exc
        context_kwargs: Dict[str, Any] = {"viewport": self.viewport, "accept_downloads": True}
        if self.user_agent_override:
            context_kwargs["user_agent"] = self.user_agent_override
        partial = BrowserSession(playwright=playwright, browser=browser, context=None, page=None)
        try:
            partial.context = await browser.new_context(**context_kwargs)
            partial.page = await partial.context.new_page()
        except Exception as exc:
            await partial.close()
            raise DriverError(f"failed to open browser page: {exc}") from exc
        self._session = partial
        logger.info("Browser launched", extra={"headless": self.headless, "channel": self.channel})

    async def close(self) -> None:
        session = self._session
        self._session = None
        if session:
            await session.close()

    async def add_cookies(self, cookies: Sequence[CookieSpec]) -> None:
        if self._session is None:
            raise DriverError("browser session is not open")
        await self._session.context.add_cookies(list(cookies))

    async def cookies(self) -> List[Dict[str, Any]]:
        if self._session is None:
            return []
        return list(await self._session.context.cookies())

    async def user_agent(self) -> str:
        if self.user_agent_override:
            return self.user_agent_override
        return str(await self.page.evaluate("navigator.userAgent"))

    async def navigate(self, url: str, *, wait_until: str = "load", timeout_ms: int = 30000) -> str:
        await self.page.goto(url, wait_until=wait_until, timeout=timeout_ms)
        return self.page.url

    async def new_page(self) -> None:
        if self._session is None:
            raise DriverError("browser session is not open")
        fresh = await self._session.context.new_page()
        stale = self._session.page
        self._session.page = fresh
        try:
            await stale.close()
        except Exception:  # noqa: BLE001 - stale tab may already be gone
            logger.debug("stale page close failed", exc_info=True)

    async def reload(self, *, timeout_ms: int = 30000) -> None:
        await self.page.reload(wait_until="domcontentloaded", timeout=timeout_ms)

    def current_url(self) -> str:
        if self._session is None:
            return ""
        return str(self._session.page.url)

    async def find(self, strategies: Sequence[str], *, visible: bool = True, min_y: float | None = None) -> Optional[str]:
        match = await self._first_usable(strategies, visible=visible, min_y=min_y)
        return match[0] if match else None

    async def click(
        self,
        strategies: Sequence[str],
        *,
        require_enabled: bool = False,
        min_y: float | None = None,
        force: bool = False,
    ) -> Optional[str]:
        match = await self._first_usable(strategies, min_y=min_y, require_enabled=require_enabled)
        if not match:
            return None
        strategy, element = match
        await element.click(force=force)
        return strategy

    async def fill(self, strategies: Sequence[str], text: str) -> Optional[str]:
        match = await self._first_usable(strategies)
        if not match:
            return None
        strategy, element = match
        try:
            await element.fill(text)
        except Exception:  # noqa: BLE001 - fall back to typing for custom editors
            logger.debug("fill rejected, typing instead", extra={"strategy": strategy}, exc_info=True)
            await element.click()
            await self.page.keyboard.press("Control+a")
            await self.page.keyboard.press("Backspace")
            await self.page.keyboard.type(text, delay=30)
        return strategy

    async def set_input_files(self, strategies: Sequence[str], path: Path) -> Optional[str]:
        match = await self._first_usable(strategies, visible=False)
        if not match:
            return None
        strategy, element = match
        await element.set_input_files(str(path))
        return strategy

    async def choose_file(self, strategies: Sequence[str], path: Path, *, timeout_ms: int = 5000) -> Optional[str]:
        match = await self._first_usable(strategies)
        if not match:
            return None
        strategy, element = match
        async with self.page.expect_file_chooser(timeout=timeout_ms) as chooser_info:
            await element.click()
        chooser = await chooser_info.value
        await chooser.set_files(str(path))
        return strategy

    async def press(self, key: str) -> None:
        await self.page.keyboard.press(key)

    async def read_values(self, strategies: Sequence[str], attributes: Sequence[str]) -> List[str]:
        values: List[str] = []
        for strategy in strategies:
            try:
                locator = self.page.locator(strategy)
                count = min(await locator.count(), MAX_ELEMENTS_PER_STRATEGY)
                for index in range(count):
                    element = locator.nth(index)
                    for attribute in attributes:
                        value = await element.get_attribute(attribute)
                        if value and value not in values:
                            values.append(value)
            except Exception:  # noqa: BLE001 - a broken strategy must not hide the others
                logger.debug("read_values strategy failed", extra={"strategy": strategy}, exc_info=True)
        return values

    async def content(self) -> str:
        return str(await self.page.content())

    def subscribe_responses(self, handler: ResponseHandler) -> Tuple[Any, Any]:
        page = self.page

        def _listener(response: Any) -> None:
            try:
                headers = response.headers or {}
                event = ResponseEvent(
                    url=str(response.url),
                    status=int(response.status),
                    content_type=str(headers.get("content-type", "")),
                )
                handler(event)
            except Exception:  # noqa: BLE001 - listener errors must not break the page loop
                logger.debug("response listener failed", exc_info=True)

        page.on("response", _listener)
        return page, _listener

    def unsubscribe_responses(self, token: Tuple[Any, Any]) -> None:
        page, listener = token
        try:
            page.remove_listener("response", listener)
        except Exception:  # noqa: BLE001 - page may be closed already
            logger.debug("response listener removal failed", exc_info=True)

    async def capture_download(
        self,
        *,
        strategies: Sequence[str] | None = None,
        url: str | None = None,
        save_to: Path | None = None,
        timeout_ms: int = 30000,
    ) -> Optional[str]:
        element = None
        if strategies:
            match = await self._first_usable(strategies)
            if not match:
                return None
            element = match[1]
        elif not url:
            raise ValueError("capture_download requires strategies or url")
        async with self.page.expect_download(timeout=timeout_ms) as download_info:
            if element is not None:
                await element.click()
            else:
                await self.page.evaluate(ANCHOR_DOWNLOAD_SCRIPT, url)
        download = await download_info.value
        download_url = str(download.url)
        if save_to is not None:
            await download.save_as(str(save_to))
        else:
            await download.cancel()
        return download_url

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        if arg is None:
            return await self.page.evaluate(script)
        return await self.page.evaluate(script, arg)

    async def screenshot(self) -> bytes:
        return await self.page.screenshot(full_page=False)

    async def _first_usable(
        self,
        strategies: Sequence[str],
        *,
        visible: bool = True,
        min_y: float | None = None,
        require_enabled: bool = False,
    ) -> Optional[Tuple[str, Any]]:
        for strategy in strategies:
            try:
                locator = self.page.locator(strategy)
                count = min(await locator.count(), MAX_ELEMENTS_PER_STRATEGY)
                for index in range(count):
                    element = locator.nth(index)
                    if visible and not await element.is_visible():
                        continue
                    if min_y is not None:
                        box = await element.bounding_box()
                        if not box or box["y"] < min_y:
                            continue
                    if require_enabled and not await element.is_enabled():
                        continue
                    return strategy, element
            except Exception:  # noqa: BLE001 - try the next strategy
                logger.debug("strategy failed", extra={"strategy": strategy}, exc_info=True)
        return None


__all__ = ["BrowserSession", "PlaywrightDriver"]
