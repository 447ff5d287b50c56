"""Shared type declarations for the generation pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, TypedDict


@dataclass(frozen=True)
class ResponseEvent:
    """One network response observed by the driver."""

    url: str
    status: int = 200
    content_type: str = ""


ResponseHandler = Callable[[ResponseEvent], None]
ProgressCallback = Callable[[str, int], None]


class CookieSpec(TypedDict, total=False):
    """Cookie payload accepted by the driver."""

    name: str
    value: str
    domain: str
    path: str


class AutomationDriver(Protocol):
    """Capability set the pipeline consumes from a browser automation backend.

    Element lookups take an ordered list of resolution strategies. The first
    strategy that resolves to a usable element wins and is returned so callers
    can log it; the pipeline never branches on which one matched.
    """

    async def open(self) -> None:
        """Launch the browser and open a page."""

    async def close(self) -> None:
        """Release every browser resource, ignoring individual close errors."""

    @property
    def is_open(self) -> bool:
        """Return True while a page is available."""

    async def add_cookies(self, cookies: Sequence[CookieSpec]) -> None:
        """Install identity cookies into the browser context."""

    async def cookies(self) -> List[Dict[str, Any]]:
        """Return the cookies currently held by the browser context."""

    async def user_agent(self) -> str:
        """Return the page user agent string."""

    async def navigate(self, url: str, *, wait_until: str = "load", timeout_ms: int = 30000) -> str:
        """Navigate the current page and return the resolved URL."""

    async def new_page(self) -> None:
        """Replace the current page with a fresh tab."""

    async def reload(self, *, timeout_ms: int = 30000) -> None:
        """Reload the current page."""

    def current_url(self) -> str:
        """Return the URL of the current page."""

    async def find(self, strategies: Sequence[str], *, visible: bool = True, min_y: float | None = None) -> Optional[str]:
        """Return the first strategy resolving to an element, or None."""

    async def click(
        self,
        strategies: Sequence[str],
        *,
        require_enabled: bool = False,
        min_y: float | None = None,
        force: bool = False,
    ) -> Optional[str]:
        """Click the first resolvable element and return the matched strategy."""

    async def fill(self, strategies: Sequence[str], text: str) -> Optional[str]:
        """Replace the value of the first resolvable text input."""

    async def set_input_files(self, strategies: Sequence[str], path: Path) -> Optional[str]:
        """Attach a file to the first resolvable file input."""

    async def choose_file(self, strategies: Sequence[str], path: Path, *, timeout_ms: int = 5000) -> Optional[str]:
        """Click a control that opens a file chooser and answer it with ``path``."""

    async def press(self, key: str) -> None:
        """Press a keyboard key on the current page."""

    async def read_values(self, strategies: Sequence[str], attributes: Sequence[str]) -> List[str]:
        """Return non-empty attribute values from every element matching any strategy."""

    async def content(self) -> str:
        """Return the serialized page markup."""

    def subscribe_responses(self, handler: ResponseHandler) -> Any:
        """Register a response listener and return a token for unsubscribing."""

    def unsubscribe_responses(self, token: Any) -> None:
        """Deregister a listener previously returned by ``subscribe_responses``."""

    async def capture_download(
        self,
        *,
        strategies: Sequence[str] | None = None,
        url: str | None = None,
        save_to: Path | None = None,
        timeout_ms: int = 30000,
    ) -> Optional[str]:
        """Trigger a file transfer and return its URL.

        The transfer is started by clicking the first element matching
        ``strategies`` or by synthesizing an anchor for ``url``. It is saved to
        ``save_to`` when given and cancelled otherwise.
        """

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        """Evaluate a script inside the page context."""

    async def screenshot(self) -> bytes:
        """Capture a screenshot of the current page."""

