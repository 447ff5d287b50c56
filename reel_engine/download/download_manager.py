"""Materialize artifact references into files with plausibility checks and retries."""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from reel_engine.config_loader import section
from reel_engine.core.errors import CorruptArtifactError, ReelEngineError, TransportError
from reel_engine.core.types import AutomationDriver
from reel_engine.session.state import SessionState
from reel_engine.utils.file_ops import remove_quietly, write_bytes_atomic

SleepFn = Callable[[float], Awaitable[None]]

logger = logging.getLogger(__name__)

DEFAULT_MIN_BYTES = 500_000

IN_CONTEXT_FETCH_SCRIPT = """
async (url) => {
    const response = await fetch(url);
    const blob = await response.blob();
    return await new Promise((resolve, reject) => {
        const reader = new FileReader();
        reader.onloadend = () => resolve(String(reader.result).split(',')[1] || '');
        reader.onerror = () => reject(reader.error);
        reader.readAsDataURL(blob);
    });
}
"""


class ReferenceKind(str, Enum):
    IN_CONTEXT = "in_context"
    INLINE = "inline"
    REMOTE = "remote"


def classify_reference(reference: str) -> ReferenceKind:
    """Return how a reference must be dereferenced."""

    lowered = reference.strip().lower()
    if lowered.startswith("blob:"):
        return ReferenceKind.IN_CONTEXT
    if lowered.startswith("data:"):
        return ReferenceKind.INLINE
    if lowered.startswith(("http://", "https://")):
        return ReferenceKind.REMOTE
    raise TransportError(f"Unsupported artifact reference: {reference[:60]}")


class DownloadManager:
    """Fetches artifacts through the page context or a plain HTTP request."""

    def __init__(
        self,
        driver: AutomationDriver,
        state: SessionState,
        *,
        settings: Dict[str, Any] | None = None,
        min_bytes: int | None = None,
        http_client: httpx.AsyncClient | None = None,
        sleep_fn: Optional[SleepFn] = None,
    ) -> None:
        download_cfg = section(settings, "download")
        service_cfg = section(settings, "service")
        self.driver = driver
        self.state = state
        self.min_bytes = int(min_bytes if min_bytes is not None else download_cfg.get("min_bytes", DEFAULT_MIN_BYTES))
        self.max_retries = max(int(download_cfg.get("max_retries", 3)), 1)
        self.retry_delay = float(download_cfg.get("retry_delay_seconds", 2.0))
        self.timeout_seconds = float(download_cfg.get("timeout_seconds", 60))
        self.referer: Optional[str] = service_cfg.get("referer") or None
        self._http_client = http_client or httpx.AsyncClient(follow_redirects=True, timeout=self.timeout_seconds)
        self._sleep = sleep_fn or asyncio.sleep

    async def fetch(self, reference: str, destination: Path | str, *, min_bytes: int | None = None) -> bool:
        """Write the artifact to ``destination``. Returns False on any failure."""

        target = Path(destination)
        threshold = self.min_bytes if min_bytes is None else int(min_bytes)
        target.parent.mkdir(parents=True, exist_ok=True)
        logger.info("Downloading artifact to %s", target.name, extra={"reference": reference[:150]})
        try:
            kind = classify_reference(reference)
            if kind is ReferenceKind.IN_CONTEXT:
                payload = await self._fetch_in_context(reference)
            elif kind is ReferenceKind.INLINE:
                payload = _decode_data_reference(reference)
            else:
                payload = await self._fetch_remote(reference, target)
            if payload is not None:
                self._check_plausible(len(payload), threshold)
                write_bytes_atomic(target, payload)
                size = len(payload)
            else:
                size = target.stat().st_size
                self._check_plausible(size, threshold)
        except CorruptArtifactError as exc:
            remove_quietly(target)
            logger.warning("Discarded implausible artifact: %s", exc, extra={"size": exc.size})
            return False
        except ReelEngineError as exc:
            remove_quietly(target)
            logger.warning("Download failed: %s", exc)
            return False
        logger.info("Download complete (%.1f MB)", size / (1024 * 1024))
        return True

    async def fetch_with_retry(
        self,
        reference: str,
        destination: Path | str,
        max_retries: int | None = None,
        *,
        min_bytes: int | None = None,
    ) -> bool:
        """Call ``fetch`` up to ``max_retries`` times. Never raises."""

        attempts = max(int(max_retries if max_retries is not None else self.max_retries), 1)
        target = Path(destination)
        for attempt in range(1, attempts + 1):
            logger.info("Download attempt %d/%d", attempt, attempts)
            try:
                if await self.fetch(reference, target, min_bytes=min_bytes):
                    return True
            except Exception:  # noqa: BLE001 - callers interpret the boolean only
                logger.warning("Download attempt %d raised", attempt, exc_info=True)
            if attempt < attempts:
                await self._sleep(self.retry_delay)
        remove_quietly(target)
        logger.error("Download failed after %d attempts", attempts)
        return False

    async def retry_download(self, reference: str, destination: Path | str, *, min_bytes: int | None = None) -> bool:
        """Resume a known-good artifact reference whose earlier transfer failed."""

        logger.info("Retrying download for %s", Path(destination).name)
        return await self.fetch_with_retry(reference, destination, self.max_retries, min_bytes=min_bytes)

    async def aclose(self) -> None:
        await self._http_client.aclose()

    async def _fetch_in_context(self, reference: str) -> bytes:
        if not self.state.is_active or not self.driver.is_open:
            raise TransportError("In-context reference requires an active session")
        try:
            encoded = await self.driver.evaluate(IN_CONTEXT_FETCH_SCRIPT, reference)
        except Exception as exc:  # noqa: BLE001 - any page failure is a transport failure
            raise TransportError(f"In-context fetch failed: {exc}") from exc
        if not encoded:
            raise CorruptArtifactError("In-context fetch returned no data", size=0)
        try:
            return base64.b64decode(encoded)
        except (binascii.Error, ValueError) as exc:
            raise TransportError("In-context fetch returned undecodable data") from exc

    async def _fetch_remote(self, reference: str, target: Path) -> Optional[bytes]:
        try:
            return await self._fetch_http(reference)
        except TransportError as exc:
            if not (self.state.is_active and self.driver.is_open):
                raise
            logger.info("HTTP fetch failed (%s), trying browser transfer", exc)
        return await self._fetch_via_browser(reference, target)

    async def _fetch_http(self, reference: str) -> bytes:
        headers = {"Accept": "video/mp4,video/*,image/*,*/*"}
        if self.referer:
            headers["Referer"] = self.referer
        jar = httpx.Cookies()
        if self.state.is_active and self.driver.is_open:
            try:
                headers["User-Agent"] = await self.driver.user_agent()
                for cookie in await self.driver.cookies():
                    if cookie.get("name"):
                        jar.set(
                            str(cookie["name"]),
                            str(cookie.get("value", "")),
                            domain=str(cookie.get("domain") or ""),
                            path=str(cookie.get("path") or "/"),
                        )
            except Exception:  # noqa: BLE001 - fetch without session identity
                logger.debug("could not read session identity", exc_info=True)
        try:
            request = self._http_client.build_request("GET", reference, headers=headers, timeout=self.timeout_seconds)
            # only cookies whose domain and path match the artifact host are sent
            jar.set_cookie_header(request)
            response = await self._http_client.send(request)
        except httpx.HTTPError as exc:
            raise TransportError(f"HTTP fetch failed: {exc}") from exc
        logger.info("HTTP status: %s", response.status_code)
        if response.status_code >= 400:
            raise TransportError(f"HTTP {response.status_code} fetching artifact")
        return response.content

    async def _fetch_via_browser(self, reference: str, target: Path) -> None:
        partial = target.with_name(target.name + ".part")
        try:
            captured = await self.driver.capture_download(
                url=reference,
                save_to=partial,
                timeout_ms=int(self.timeout_seconds * 1000),
            )
        except Exception as exc:  # noqa: BLE001 - any page failure is a transport failure
            remove_quietly(partial)
            raise TransportError(f"Browser transfer failed: {exc}") from exc
        if captured is None or not partial.exists():
            remove_quietly(partial)
            raise TransportError("Browser transfer produced no file")
        partial.replace(target)
        return None

    def _check_plausible(self, size: int, threshold: int) -> None:
        if size < threshold:
            raise CorruptArtifactError(f"artifact too small ({size} < {threshold} bytes)", size=size)


def _decode_data_reference(reference: str) -> bytes:
    header, _, body = reference.partition(",")
    if not body:
        raise TransportError("Inline reference has no payload")
    try:
        if header.endswith(";base64"):
            return base64.b64decode(body)
        return body.encode("utf-8")
    except (binascii.Error, ValueError) as exc:
        raise TransportError("Inline reference is not valid base64") from exc


__all__ = ["DownloadManager", "ReferenceKind", "classify_reference"]
