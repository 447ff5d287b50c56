"""Dual-channel detection of a newly produced artifact reference.

Two observation tasks race inside one event loop:

* the push channel listens to the driver's network response stream and records
  the first response that names an artifact outside the exclusion set;
* the poll channel periodically scans the page (element attributes, markup and
  the download control) for a new reference.

Neither channel may report before the minimum-wait floor: the service needs
tens of seconds of real work, so an earlier match is a stale or premature hit.
The response listener is removed on every exit path so a late event can never
be attributed to a later attempt.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from time import monotonic
from typing import AbstractSet, Any, Awaitable, Callable, Dict, Iterable, Optional, Set

from reel_engine.browser.strategies import resolve_strategies
from reel_engine.config_loader import section
from reel_engine.core.types import AutomationDriver, ResponseEvent
from reel_engine.detection.profiles import ArtifactProfile, video_profile
from reel_engine.session.state import SessionState

SleepFn = Callable[[float], Awaitable[None]]
ClockFn = Callable[[], float]

logger = logging.getLogger(__name__)

LOG_EVERY_SECONDS = 15.0


@dataclass
class _PushCandidate:
    reference: Optional[str] = None
    signal: asyncio.Event = field(default_factory=asyncio.Event)


class ArtifactDetector:
    """Waits for a produced artifact and returns its reference."""

    def __init__(
        self,
        driver: AutomationDriver,
        state: SessionState,
        *,
        profile: ArtifactProfile | None = None,
        settings: Dict[str, Any] | None = None,
        sleep_fn: Optional[SleepFn] = None,
        clock: Optional[ClockFn] = None,
    ) -> None:
        generation_cfg = section(settings, "generation")
        self.driver = driver
        self.state = state
        self.profile = profile or video_profile(settings)
        self.poll_interval = max(float(generation_cfg.get("poll_interval_seconds", 2.0)), 0.01)
        self.blob_accept_after = float(generation_cfg.get("blob_accept_after_seconds", 35))
        self.download_probe_timeout_ms = int(generation_cfg.get("download_probe_timeout_ms", 10000))
        self._download_strategies = resolve_strategies("download_control", section(settings, "selectors"))
        self._sleep = sleep_fn or asyncio.sleep
        self._clock = clock or monotonic

    async def snapshot_existing(self) -> Set[str]:
        """Collect artifact references already present on the page."""

        references: Set[str] = set()
        try:
            values = await self.driver.read_values(self.profile.element_strategies, self.profile.element_attributes)
            references.update(value for value in values if value)
        except Exception:  # noqa: BLE001 - an empty snapshot only weakens exclusion
            logger.debug("element snapshot failed", exc_info=True)
        try:
            references.update(self.profile.find_in_content(await self.driver.content()))
        except Exception:  # noqa: BLE001 - an empty snapshot only weakens exclusion
            logger.debug("content snapshot failed", exc_info=True)
        logger.info("Found %d pre-existing %s references", len(references), self.profile.kind)
        return references

    async def wait_for_artifact(
        self,
        timeout_seconds: float | None = None,
        min_wait_seconds: float | None = None,
        exclusion_set: Iterable[str] | None = None,
    ) -> Optional[str]:
        """Return the first new artifact reference, or None on timeout or cancellation."""

        if not self.state.is_running:
            return None
        timeout = float(self.profile.timeout_seconds if timeout_seconds is None else timeout_seconds)
        floor = float(self.profile.min_wait_seconds if min_wait_seconds is None else min_wait_seconds)
        excluded = frozenset(exclusion_set or ())
        started = self._clock()
        candidate = _PushCandidate()
        logger.info(
            "Waiting for %s generation",
            self.profile.kind,
            extra={"timeout_seconds": timeout, "min_wait_seconds": floor, "excluded": len(excluded)},
        )

        def _on_response(event: ResponseEvent) -> None:
            if event.url in excluded:
                return
            if self.profile.matches_response(event.url, event.content_type):
                logger.info("Detected %s response: %s", self.profile.kind, event.url[:100])
                candidate.reference = event.url
                candidate.signal.set()

        token = self.driver.subscribe_responses(_on_response)
        push_task = asyncio.ensure_future(self._await_push(candidate, started, timeout, floor))
        poll_task = asyncio.ensure_future(self._poll(excluded, started, timeout, floor))
        try:
            done, _ = await asyncio.wait({push_task, poll_task}, return_when=asyncio.FIRST_COMPLETED)
            for task in (push_task, poll_task):
                if task in done:
                    reference = task.result()
                    if reference and reference not in excluded:
                        elapsed = self._clock() - started
                        source = "response" if task is push_task else "page"
                        logger.info("Artifact captured via %s after %.0fs", source, elapsed)
                        return reference
            if not self.state.is_running:
                logger.info("Detection cancelled")
            else:
                logger.warning("Timeout waiting for %s after %.0fs", self.profile.kind, timeout)
            return None
        finally:
            for task in (push_task, poll_task):
                if not task.done():
                    task.cancel()
            await asyncio.gather(push_task, poll_task, return_exceptions=True)
            self.driver.unsubscribe_responses(token)

    async def _await_push(self, candidate: _PushCandidate, started: float, timeout: float, floor: float) -> Optional[str]:
        while self.state.is_running:
            elapsed = self._clock() - started
            if elapsed >= timeout:
                return None
            if candidate.reference is not None:
                if elapsed >= floor:
                    return candidate.reference
                await self._sleep(min(self.poll_interval, floor - elapsed))
            else:
                await self._wait_for_signal(candidate.signal, min(self.poll_interval, timeout - elapsed))
        return None

    async def _poll(self, excluded: AbstractSet[str], started: float, timeout: float, floor: float) -> Optional[str]:
        last_log = 0.0
        while self.state.is_running:
            elapsed = self._clock() - started
            if elapsed >= timeout:
                return None
            if elapsed - last_log >= LOG_EVERY_SECONDS:
                logger.info("%.0fs elapsed waiting for %s", elapsed, self.profile.kind)
                last_log = elapsed
            if elapsed >= floor:
                found = await self._scan(excluded, elapsed)
                if found:
                    return found
                if not self.state.is_running:
                    return None
            await self._sleep(min(self.poll_interval, max(timeout - elapsed, 0.01)))
        return None

    async def _scan(self, excluded: AbstractSet[str], elapsed: float) -> Optional[str]:
        try:
            values = await self.driver.read_values(self.profile.element_strategies, self.profile.element_attributes)
            for value in values:
                if value not in excluded and self.profile.matches_reference(value):
                    logger.info("Found new %s element (%.0fs)", self.profile.kind, elapsed)
                    return value
        except Exception:  # noqa: BLE001 - the next channel may still succeed
            logger.debug("element scan failed", exc_info=True)
        try:
            for reference in self.profile.find_in_content(await self.driver.content()):
                if reference not in excluded:
                    logger.info("Found %s reference in page content (%.0fs)", self.profile.kind, elapsed)
                    return reference
        except Exception:  # noqa: BLE001 - the next channel may still succeed
            logger.debug("content scan failed", exc_info=True)
        if self.profile.kind == "video":
            return await self._probe_download_control(excluded, elapsed)
        return None

    async def _probe_download_control(self, excluded: AbstractSet[str], elapsed: float) -> Optional[str]:
        try:
            if not await self.driver.find(self._download_strategies):
                return None
            for href in await self.driver.read_values(self._download_strategies, ("href",)):
                if href not in excluded and self.profile.reference_token in href:
                    return href
            url = await self.driver.capture_download(
                strategies=self._download_strategies,
                timeout_ms=self.download_probe_timeout_ms,
            )
        except Exception:  # noqa: BLE001 - control may vanish between checks
            logger.debug("download control probe failed", exc_info=True)
            return None
        if not url or url in excluded:
            return None
        if url.startswith("blob:") and elapsed < self.blob_accept_after:
            logger.info("Ignoring early in-context reference (%.0fs)", elapsed)
            return None
        logger.info("Captured transfer reference from download control (%.0fs)", elapsed)
        return url

    async def _wait_for_signal(self, signal: asyncio.Event, seconds: float) -> None:
        waiter = asyncio.ensure_future(signal.wait())
        sleeper = asyncio.ensure_future(self._sleep(max(seconds, 0.0)))
        try:
            await asyncio.wait({waiter, sleeper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (waiter, sleeper):
                if not task.done():
                    task.cancel()
            await asyncio.gather(waiter, sleeper, return_exceptions=True)


__all__ = ["ArtifactDetector"]
