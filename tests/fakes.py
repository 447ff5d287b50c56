from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from reel_engine.core.types import ResponseEvent, ResponseHandler


class FakeClock:
    """Virtual time source whose sleep advances time and fires scheduled actions."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start
        self.sleeps: List[float] = []
        self._scheduled: List[Tuple[float, Callable[[], None]]] = []

    def __call__(self) -> float:
        return self.now

    def at(self, when: float, action: Callable[[], None]) -> None:
        self._scheduled.append((when, action))
        self._scheduled.sort(key=lambda item: item[0])

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += max(seconds, 0.0)
        due = [action for when, action in self._scheduled if when <= self.now]
        self._scheduled = [(when, action) for when, action in self._scheduled if when > self.now]
        for action in due:
            action()
        await asyncio.sleep(0)


class FakeDriver:
    """Scripted stand-in for the Playwright driver."""

    def __init__(
        self,
        *,
        present: Sequence[str] = (),
        values: Sequence[str] = (),
        hrefs: Sequence[str] = (),
        html: str = "",
        url_after_navigate: str = "https://grok.com/imagine",
    ) -> None:
        self.present = set(present)
        self.values = list(values)
        self.hrefs = list(hrefs)
        self.html = html
        self.url_after_navigate = url_after_navigate
        self.url = ""
        self._open = False
        self.open_calls = 0
        self.close_calls = 0
        self.close_error: Optional[Exception] = None
        self.open_error: Optional[Exception] = None
        self.navigate_errors: List[Exception] = []
        self.navigations: List[Tuple[str, str]] = []
        self.new_page_calls = 0
        self.reload_calls = 0
        self.added_cookies: List[Dict[str, Any]] = []
        self.jar: List[Dict[str, Any]] = [{"name": "sso", "value": "abc", "domain": ".grok.com", "path": "/"}]
        self.clicks: List[str] = []
        self.filled: List[str] = []
        self.uploads: List[Path] = []
        self.pressed: List[str] = []
        self.read_calls = 0
        self.listeners: Dict[int, ResponseHandler] = {}
        self.subscribe_calls = 0
        self._next_token = 0
        self.download_url: Optional[str] = None
        self.download_payload: bytes = b""
        self.download_calls: List[Dict[str, Any]] = []
        self.evaluate_result: Any = None
        self.evaluate_calls: List[Tuple[str, Any]] = []
        self.screenshot_bytes = b"png"

    @property
    def is_open(self) -> bool:
        return self._open

    async def open(self) -> None:
        self.open_calls += 1
        if self.open_error is not None:
            raise self.open_error
        self._open = True

    async def close(self) -> None:
        self.close_calls += 1
        self._open = False
        if self.close_error is not None:
            raise self.close_error

    async def add_cookies(self, cookies: Sequence[Dict[str, Any]]) -> None:
        self.added_cookies.extend(cookies)

    async def cookies(self) -> List[Dict[str, Any]]:
        return list(self.jar)

    async def user_agent(self) -> str:
        return "FakeAgent/1.0"

    async def navigate(self, url: str, *, wait_until: str = "load", timeout_ms: int = 30000) -> str:
        self.navigations.append((url, wait_until))
        if self.navigate_errors:
            raise self.navigate_errors.pop(0)
        self.url = self.url_after_navigate
        return self.url

    async def new_page(self) -> None:
        self.new_page_calls += 1

    async def reload(self, *, timeout_ms: int = 30000) -> None:
        self.reload_calls += 1

    def current_url(self) -> str:
        return self.url

    def _first(self, strategies: Sequence[str]) -> Optional[str]:
        for strategy in strategies:
            if strategy in self.present:
                return strategy
        return None

    async def find(self, strategies: Sequence[str], *, visible: bool = True, min_y: float | None = None) -> Optional[str]:
        return self._first(strategies)

    async def click(self, strategies: Sequence[str], *, require_enabled: bool = False, min_y: float | None = None, force: bool = False) -> Optional[str]:
        matched = self._first(strategies)
        if matched:
            self.clicks.append(matched)
        return matched

    async def fill(self, strategies: Sequence[str], text: str) -> Optional[str]:
        matched = self._first(strategies)
        if matched:
            self.filled.append(text)
        return matched

    async def set_input_files(self, strategies: Sequence[str], path: Path) -> Optional[str]:
        matched = self._first(strategies)
        if matched:
            self.uploads.append(Path(path))
        return matched

    async def choose_file(self, strategies: Sequence[str], path: Path, *, timeout_ms: int = 5000) -> Optional[str]:
        return await self.set_input_files(strategies, path)

    async def press(self, key: str) -> None:
        self.pressed.append(key)

    async def read_values(self, strategies: Sequence[str], attributes: Sequence[str]) -> List[str]:
        self.read_calls += 1
        if "href" in attributes:
            return list(self.hrefs)
        return list(self.values)

    async def content(self) -> str:
        return self.html

    def subscribe_responses(self, handler: ResponseHandler) -> int:
        self.subscribe_calls += 1
        self._next_token += 1
        self.listeners[self._next_token] = handler
        return self._next_token

    def unsubscribe_responses(self, token: int) -> None:
        self.listeners.pop(token, None)

    def emit_response(self, url: str, content_type: str = "video/mp4") -> None:
        for handler in list(self.listeners.values()):
            handler(ResponseEvent(url=url, content_type=content_type))

    async def capture_download(
        self,
        *,
        strategies: Sequence[str] | None = None,
        url: str | None = None,
        save_to: Path | None = None,
        timeout_ms: int = 30000,
    ) -> Optional[str]:
        self.download_calls.append({"strategies": strategies, "url": url, "save_to": save_to})
        if strategies is not None and not self._first(strategies):
            return None
        if save_to is not None:
            Path(save_to).write_bytes(self.download_payload)
            return url
        return self.download_url

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        self.evaluate_calls.append((script, arg))
        return self.evaluate_result

    async def screenshot(self) -> bytes:
        return self.screenshot_bytes


READY = 'textarea[placeholder*="imagine" i]'
PROMPT = 'textarea[placeholder="Type to imagine"]'
FILE_INPUT = 'input[type="file"]'
GENERATE = 'button[type="submit"]'
DOWNLOAD = 'button:has-text("Download")'


def ready_driver(**kwargs: Any) -> FakeDriver:
    """Driver whose page shows the prompt surface and submission controls."""

    driver = FakeDriver(**kwargs)
    driver.present.update({READY, PROMPT, FILE_INPUT, GENERATE})
    return driver
