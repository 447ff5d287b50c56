"""Artifact profiles describing what a produced artifact looks like."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Pattern, Sequence

from reel_engine.browser.strategies import resolve_strategies
from reel_engine.config_loader import section

VIDEO_RESPONSE_PATTERNS = (
    r"generated_video\.mp4",
    r"grok[^\s]*\.mp4|\.mp4[^\s]*grok",
)
VIDEO_CONTENT_PATTERN = r"https?://[^\s\"'<>]+generated_video\.mp4[^\s\"'<>]*"
IMAGE_RESPONSE_PATTERNS = (r"/generated/",)
IMAGE_CONTENT_PATTERN = r"https?://[^\s\"'<>]+/generated/[^\s\"'<>]+\.(?:png|jpe?g|webp)[^\s\"'<>]*"
IMAGE_EXCLUDE_TOKENS = ("avatar", "profile", "icon", "emoji", "logo")


@dataclass(frozen=True)
class ArtifactProfile:
    """Matching rules and thresholds for one artifact kind."""

    kind: str
    extension: str
    timeout_seconds: float
    min_wait_seconds: float
    min_bytes: int
    response_patterns: Sequence[Pattern[str]]
    content_pattern: Pattern[str] | None
    element_strategies: Sequence[str]
    element_attributes: Sequence[str]
    reference_token: str
    content_types: Sequence[str] = ()
    exclude_tokens: Sequence[str] = ()
    excluded_in_response: Sequence[str] = field(default=())

    def matches_response(self, url: str, content_type: str = "") -> bool:
        """Return True when a response URL plausibly names a produced artifact."""

        if any(token in url for token in self.excluded_in_response):
            return False
        if not any(pattern.search(url) for pattern in self.response_patterns):
            return False
        if self.content_types:
            lowered = content_type.lower()
            by_type = any(kind in lowered for kind in self.content_types)
            by_extension = re.search(r"\.(png|jpe?g|webp)(\?|$)", url, re.IGNORECASE) is not None
            return by_type or by_extension
        return True

    def matches_reference(self, reference: str) -> bool:
        """Return True when a scanned element value looks like an artifact."""

        if not reference or reference.startswith("blob:"):
            return False
        if any(token in reference.lower() for token in self.exclude_tokens):
            return False
        return self.reference_token in reference

    def find_in_content(self, html: str) -> List[str]:
        if self.content_pattern is None or not html:
            return []
        found: List[str] = []
        for match in self.content_pattern.findall(html):
            reference = match.replace("&amp;", "&")
            if reference not in found:
                found.append(reference)
        return found


def video_profile(settings: Dict[str, Any] | None = None) -> ArtifactProfile:
    cfg = section(section(settings, "generation"), "video")
    overrides = section(settings, "selectors")
    return ArtifactProfile(
        kind="video",
        extension=".mp4",
        timeout_seconds=float(cfg.get("timeout_seconds", 180)),
        min_wait_seconds=float(cfg.get("min_wait_seconds", 15)),
        min_bytes=int(cfg.get("min_bytes", 500_000)),
        response_patterns=_compile(cfg.get("response_patterns") or VIDEO_RESPONSE_PATTERNS),
        content_pattern=re.compile(cfg.get("content_pattern") or VIDEO_CONTENT_PATTERN),
        element_strategies=resolve_strategies("video_elements", overrides),
        element_attributes=("src", "data-video-url"),
        reference_token=".mp4",
    )


def image_profile(settings: Dict[str, Any] | None = None) -> ArtifactProfile:
    cfg = section(section(settings, "generation"), "image")
    overrides = section(settings, "selectors")
    return ArtifactProfile(
        kind="image",
        extension=".png",
        timeout_seconds=float(cfg.get("timeout_seconds", 120)),
        min_wait_seconds=float(cfg.get("min_wait_seconds", 5)),
        min_bytes=int(cfg.get("min_bytes", 10_000)),
        response_patterns=_compile(cfg.get("response_patterns") or IMAGE_RESPONSE_PATTERNS),
        content_pattern=re.compile(cfg.get("content_pattern") or IMAGE_CONTENT_PATTERN, re.IGNORECASE),
        element_strategies=resolve_strategies("image_elements", overrides),
        element_attributes=("src",),
        reference_token="/generated/",
        content_types=("image",),
        exclude_tokens=IMAGE_EXCLUDE_TOKENS,
        excluded_in_response=("video",),
    )


def _compile(patterns: Sequence[str]) -> List[Pattern[str]]:
    return [re.compile(pattern, re.IGNORECASE) for pattern in patterns]


__all__ = ["ArtifactProfile", "image_profile", "video_profile"]
