"""Browser automation driver and element strategies."""

from .driver import BrowserSession, PlaywrightDriver
from .strategies import DEFAULT_STRATEGIES, aspect_ratio_strategies, resolve_strategies

__all__ = [
    "BrowserSession",
    "DEFAULT_STRATEGIES",
    "PlaywrightDriver",
    "aspect_ratio_strategies",
    "resolve_strategies",
]
