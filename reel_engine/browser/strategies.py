"""Prioritized element-resolution strategies for the generation surface."""

from __future__ import annotations

from typing import Any, Dict, List, Sequence

DEFAULT_STRATEGIES: Dict[str, List[str]] = {
    "prompt_input": [
        'textarea[placeholder="Type to imagine"]',
        'textarea[aria-label="Ask Grok anything"]',
        'textarea[placeholder*="imagine" i]',
        'textarea[placeholder*="type" i]',
        'textarea[placeholder*="customiz" i]',
        'textarea[placeholder*="describe" i]',
        'div[contenteditable="true"]',
        "textarea",
    ],
    "ready_surface": [
        'textarea[placeholder*="imagine" i]',
        'textarea[placeholder*="type" i]',
        'div[contenteditable="true"]',
        "[data-placeholder]",
    ],
    "login_prompt": [
        'text="Sign in"',
        'text="Log in"',
        'text="Sign up"',
    ],
    "mode_dropdown": [
        'button:has-text("Image"):near(textarea)',
        'button:has-text("Image")',
        '[aria-expanded]:has-text("Image")',
    ],
    "video_option": [
        'div:has(> span:text-is("Video"))',
        'label:has-text("Video"):has-text("Generate")',
        'div:has-text("VideoGenerate a video")',
        'input[type="radio"] + label:has-text("Video")',
        'input[type="radio"][value*="video" i]',
        '[role="menuitemradio"]:has-text("Video")',
        '[role="menuitem"]:has-text("Video")',
    ],
    "aspect_ratio_trigger": [
        'button:has-text("Video")',
        'button:has(span:text-is("Video"))',
        'button:near(textarea):has-text("Video")',
    ],
    "file_input": [
        'input[type="file"]',
    ],
    "upload_menu_trigger": [
        'button:has-text("Image")',
        '[aria-haspopup="menu"]',
        "button[aria-expanded]",
        "button:has(svg[viewBox])",
    ],
    "upload_option": [
        '[role="menuitem"]:has-text("Upload")',
        'text="Upload a file"',
        'div:has-text("Upload a file")',
        '[role="menu"] [role="menuitem"]:first-child',
    ],
    "generate_button": [
        'button[type="submit"]',
        'button:has-text("Make video")',
        'button:has-text("Generate")',
        'button:has-text("Send")',
        'button:has-text("Create")',
        'button:has-text("Redo")',
        '[aria-label*="send" i]',
        '[aria-label*="submit" i]',
        '[aria-label*="generate" i]',
        'button[data-testid*="send" i]',
        "form button:last-child",
    ],
    "download_control": [
        'button:has-text("Download")',
        '[aria-label*="download" i]',
        "a[download]",
    ],
    "video_elements": [
        'video[src*=".mp4"]',
        'video source[src*=".mp4"]',
        "[data-video-url]",
        "video",
        "video source",
    ],
    "image_elements": [
        'img[src*="/generated/"]',
        'img[src*="assets.grok.com"]',
    ],
}

ASPECT_RATIO_TEMPLATES: List[str] = [
    'button[aria-label="{ratio}"]',
    'button:has-text("{ratio}")',
    'span:text-is("{ratio}")',
    'div:text-is("{ratio}")',
]


def resolve_strategies(role: str, overrides: Dict[str, Any] | None = None) -> List[str]:
    """Return the ordered strategy list for ``role``.

    Configured overrides take priority and the built-in defaults follow, so a
    partial override never removes a known fallback.
    """

    configured = (overrides or {}).get(role) or []
    if isinstance(configured, str):
        configured = [configured]
    defaults = DEFAULT_STRATEGIES.get(role, [])
    if not configured and not defaults:
        raise KeyError(f"Unknown strategy role: {role}")
    return dedupe_strategies([*configured, *defaults])


def aspect_ratio_strategies(ratio: str) -> List[str]:
    """Expand the aspect-ratio templates for a concrete ratio label."""

    return dedupe_strategies([template.format(ratio=ratio) for template in ASPECT_RATIO_TEMPLATES])


def dedupe_strategies(strategies: Sequence[str]) -> List[str]:
    seen: set[str] = set()
    ordered: List[str] = []
    for candidate in strategies:
        normalized = str(candidate).strip()
        if normalized and normalized not in seen:
            ordered.append(normalized)
            seen.add(normalized)
    return ordered


__all__ = [
    "ASPECT_RATIO_TEMPLATES",
    "DEFAULT_STRATEGIES",
    "aspect_ratio_strategies",
    "dedupe_strategies",
    "resolve_strategies",
]
