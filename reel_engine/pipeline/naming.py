"""Output naming and batch request builders."""

from __future__ import annotations

import re
import time
from pathlib import Path
from typing import Iterable, List, Optional

from reel_engine.pipeline.schema import ConversionRequest, GenerationParameters

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp", ".bmp", ".gif")
_MEDIA_SUFFIX = re.compile(r"\.(mp4|png|jpg|jpeg)$", re.IGNORECASE)
_UNSAFE = re.compile(r"[^a-zA-Z0-9]")


def slugify_prompt(prompt: str, limit: int = 50) -> str:
    """Return a filesystem-safe slug built from the start of ``prompt``."""

    slug = _UNSAFE.sub("_", prompt[:limit])
    slug = re.sub(r"_+", "_", slug)
    return slug.rstrip("_") or "prompt"


def extension_for(parameters: GenerationParameters) -> str:
    return ".mp4" if parameters.produces_video else ".png"


def build_output_path(
    output_dir: Path | str,
    pattern: str,
    prompt: str,
    extension: str,
    timestamp: Optional[int] = None,
) -> Path:
    """Expand ``{prompt}`` and ``{timestamp}`` in ``pattern`` into an output path."""

    stamp = int(time.time() * 1000) if timestamp is None else timestamp
    base = pattern.replace("{prompt}", slugify_prompt(prompt)).replace("{timestamp}", str(stamp))
    base = _MEDIA_SUFFIX.sub("", base)
    return Path(output_dir) / f"{base}{extension}"


def _unique(destination: Path, seen: set[Path]) -> Path:
    counter = 2
    candidate = destination
    while candidate in seen:
        candidate = destination.with_name(f"{destination.stem}_{counter}{destination.suffix}")
        counter += 1
    seen.add(candidate)
    return candidate


def requests_from_images(
    images: Iterable[Path | str],
    output_dir: Path | str,
    parameters: GenerationParameters | None = None,
) -> List[ConversionRequest]:
    params = parameters or GenerationParameters()
    seen: set[Path] = set()
    requests: List[ConversionRequest] = []
    for image in images:
        path = Path(image)
        destination = _unique(Path(output_dir) / f"{path.stem}.mp4", seen)
        requests.append(ConversionRequest(input_ref=str(path), destination_path=destination, parameters=params))
    return requests


def requests_from_prompts(
    prompts: Iterable[str],
    output_dir: Path | str,
    parameters: GenerationParameters,
    naming_pattern: str = "{prompt}",
) -> List[ConversionRequest]:
    """Build one text-mode request per prompt.

    Duplicate names within one batch get a numeric suffix so no item
    overwrites another.
    """

    if parameters.mode == "image_to_video":
        raise ValueError("prompt batches need a text mode")
    extension = extension_for(parameters)
    seen: set[Path] = set()
    requests: List[ConversionRequest] = []
    for prompt in prompts:
        destination = _unique(build_output_path(output_dir, naming_pattern, prompt, extension), seen)
        requests.append(ConversionRequest(input_ref=prompt, destination_path=destination, parameters=parameters))
    return requests


def load_prompts_file(path: Path | str) -> List[str]:
    """Read one prompt per line, skipping blanks and ``#`` comments."""

    prompts: List[str] = []
    for line in Path(path).read_text(encoding="utf-8").splitlines():
        stripped = line.strip()
        if stripped and not stripped.startswith("#"):
            prompts.append(stripped)
    return prompts


def scan_images(folder: Path | str, include_subfolders: bool = False) -> List[Path]:
    root = Path(folder)
    if not root.is_dir():
        raise FileNotFoundError(f"Image folder not found: {root}")
    candidates = root.rglob("*") if include_subfolders else root.iterdir()
    return sorted(path for path in candidates if path.is_file() and path.suffix.lower() in IMAGE_EXTENSIONS)


__all__ = [
    "IMAGE_EXTENSIONS",
    "build_output_path",
    "extension_for",
    "load_prompts_file",
    "requests_from_images",
    "requests_from_prompts",
    "scan_images",
    "slugify_prompt",
]
