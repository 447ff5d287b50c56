"""Lifecycle of the single automated session against the generation service."""

from __future__ import annotations

import asyncio
import logging
from time import monotonic
from typing import Any, Awaitable, Callable, Dict, List, Optional

from reel_engine.browser.strategies import resolve_strategies
from reel_engine.config_loader import section
from reel_engine.core.errors import AuthenticationError, DriverError
from reel_engine.core.types import AutomationDriver
from reel_engine.session.credentials import CookieBundle
from reel_engine.session.state import SessionState

SleepFn = Callable[[float], Awaitable[None]]
ClockFn = Callable[[], float]

logger = logging.getLogger(__name__)

DEFAULT_ENTRY_URL = "https://grok.com/imagine"
DEFAULT_LOGIN_MARKERS = ("login", "auth", "x.com/i/flow")


class SessionManager:
    """Connects, authenticates, verifies readiness and tears down one session."""

    def __init__(
        self,
        driver: AutomationDriver,
        credentials: CookieBundle,
        state: SessionState,
        *,
        settings: Dict[str, Any] | None = None,
        sleep_fn: Optional[SleepFn] = None,
        clock: Optional[ClockFn] = None,
    ) -> None:
        service_cfg = section(settings, "service")
        self.driver = driver
        self.credentials = credentials
        self.state = state
        self.entry_url = str(service_cfg.get("entry_url", DEFAULT_ENTRY_URL))
        self.login_markers = tuple(m.lower() for m in service_cfg.get("login_url_markers") or DEFAULT_LOGIN_MARKERS)
        self.auth_check_seconds = float(service_cfg.get("auth_check_seconds", 10))
        self.settle_seconds = float(service_cfg.get("settle_seconds", 2))
        self.navigation_timeout_ms = int(service_cfg.get("navigation_timeout_ms", 60000))
        self.recovery_timeout_ms = int(service_cfg.get("recovery_timeout_ms", 30000))
        overrides = section(settings, "selectors")
        self._ready_strategies = resolve_strategies("ready_surface", overrides)
        self._login_strategies = resolve_strategies("login_prompt", overrides)
        self._sleep = sleep_fn or asyncio.sleep
        self._clock = clock or monotonic

    def is_running(self) -> bool:
        return self.state.is_running

    async def start(self) -> None:
        """Open and authenticate the session. No-op when already active."""

        if self.state.is_active:
            return
        logger.info("Starting session", extra={"entry_url": self.entry_url})
        try:
            await self._open_authenticated()
        except Exception:
            await self._teardown()
            raise
        self.state.is_active = True
        logger.info("Session ready", extra={"url": self.driver.current_url()})

    async def stop(self) -> None:
        """Close every session resource. Safe to call repeatedly."""

        self.state.is_running = False
        await self._teardown()
        logger.info("Session closed")

    async def recover_to_entry(self) -> None:
        """Return to a clean entry surface between attempts. Never raises."""

        if not self.driver.is_open:
            return
        try:
            await self.driver.new_page()
            await self.driver.navigate(self.entry_url, wait_until="networkidle", timeout_ms=self.recovery_timeout_ms)
            await self._sleep(self.settle_seconds)
            logger.info("Fresh entry page loaded")
            return
        except Exception:  # noqa: BLE001 - recovery is best effort
            logger.warning("Fresh-tab recovery failed, retrying on current page", exc_info=True)
        try:
            await self.driver.navigate(self.entry_url, wait_until="domcontentloaded", timeout_ms=self.recovery_timeout_ms)
            await self._sleep(self.settle_seconds)
            return
        except Exception:  # noqa: BLE001 - recovery is best effort
            logger.warning("Entry navigation failed, reloading", exc_info=True)
        try:
            await self.driver.reload(timeout_ms=self.recovery_timeout_ms)
        except Exception:  # noqa: BLE001 - recovery is best effort
            logger.error("Reload during recovery failed", exc_info=True)

    async def validate(self) -> bool:
        """Return True when the supplied credentials yield a ready session."""

        try:
            await self.start()
            logger.info("Validation succeeded", extra={"url": self.driver.current_url()})
            return True
        except (AuthenticationError, DriverError) as exc:
            logger.info("Validation failed: %s", exc)
            return False
        finally:
            await self._teardown()

    async def capture_screenshot(self) -> Optional[bytes]:
        if not self.driver.is_open:
            return None
        try:
            return await self.driver.screenshot()
        except Exception:  # noqa: BLE001 - diagnostics are optional
            logger.debug("diagnostic screenshot failed", exc_info=True)
            return None

    async def _open_authenticated(self) -> None:
        cookies = self.credentials.require_cookies()
        await self.driver.open()
        await self.driver.add_cookies(cookies)
        logger.info("Applied %d cookies", len(cookies))
        resolved = await self.driver.navigate(
            self.entry_url,
            wait_until="networkidle",
            timeout_ms=self.navigation_timeout_ms,
        )
        await self._sleep(self.settle_seconds)
        current = (self.driver.current_url() or resolved or "").lower()
        if any(marker in current for marker in self.login_markers):
            raise AuthenticationError(f"Not logged in. Redirected to: {current}")
        await self._verify_ready_surface()

    async def _verify_ready_surface(self) -> None:
        started = self._clock()
        while True:
            matched = await self.driver.find(self._ready_strategies)
            if matched:
                logger.debug("Input surface found", extra={"strategy": matched})
                return
            if self._clock() - started >= self.auth_check_seconds:
                break
            await self._sleep(0.5)
        prompts = await self._visible_login_prompts()
        if prompts:
            raise AuthenticationError(f"Not logged in. Login prompt visible: {prompts[0]}")
        raise AuthenticationError("Not logged in. Expected input surface did not appear")

    async def _visible_login_prompts(self) -> List[str]:
        try:
            matched = await self.driver.find(self._login_strategies)
        except Exception:  # noqa: BLE001 - the primary failure is already known
            return []
        return [matched] if matched else []

    async def _teardown(self) -> None:
        self.state.is_active = False
        try:
            await self.driver.close()
        except Exception:  # noqa: BLE001 - teardown always completes
            logger.warning("driver close failed", exc_info=True)


__all__ = ["SessionManager"]
