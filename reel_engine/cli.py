"""Command-line entrypoint for conversions."""

from __future__ import annotations

import argparse
import asyncio
import importlib
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Callable, Dict

from .config_loader import load_settings, section
from .pipeline.naming import (
    build_output_path,
    extension_for,
    load_prompts_file,
    requests_from_images,
    requests_from_prompts,
    scan_images,
)
from .pipeline.orchestrator import PipelineOrchestrator, build_orchestrator, run_batch_sync, run_convert_sync
from .pipeline.schema import SUPPORTED_ASPECT_RATIOS, BatchProgress, ConversionRequest, GenerationParameters

_TEST_ORCHESTRATOR_ENV = "REEL_TEST_ORCHESTRATOR"

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Browser-driven media generation CLI")
    parser.add_argument("--settings", default=None, help="Path to a settings YAML file")
    parser.add_argument("--cookie-file", default=None, help="JSON file with session cookie values")
    parser.add_argument("--artifacts-dir", default=None, help="Root directory for run artifacts")
    parser.add_argument("--headed", action="store_true", help="Show the browser window")
    parser.add_argument("--log-level", default=None, help="Logging level (default from settings)")
    sub = parser.add_subparsers(dest="command", required=True)

    convert = sub.add_parser("convert", help="Generate one artifact")
    source = convert.add_mutually_exclusive_group(required=True)
    source.add_argument("--image", help="Source image for image_to_video")
    source.add_argument("--prompt", help="Text description for text modes")
    convert.add_argument("--mode", choices=["image_to_video", "text_to_video", "text_to_image"], default=None)
    convert.add_argument("--motion-prompt", default=None, help="Optional prompt sent with an image")
    convert.add_argument("--aspect-ratio", choices=SUPPORTED_ASPECT_RATIOS, default="9:16")
    convert.add_argument("--timeout", type=float, default=None, help="Generation wait in seconds")
    convert.add_argument("--output", default=None, help="Destination file")

    batch = sub.add_parser("batch", help="Generate artifacts for a folder of images or a prompts file")
    items = batch.add_mutually_exclusive_group(required=True)
    items.add_argument("--images-dir", help="Folder of source images")
    items.add_argument("--prompts-file", help="Text file with one prompt per line")
    batch.add_argument("--output-dir", required=True, help="Destination folder")
    batch.add_argument("--mode", choices=["text_to_video", "text_to_image"], default="text_to_video")
    batch.add_argument("--aspect-ratio", choices=SUPPORTED_ASPECT_RATIOS, default="9:16")
    batch.add_argument("--naming-pattern", default="{prompt}", help="Uses {prompt} and {timestamp}")
    batch.add_argument("--recursive", action="store_true", help="Include images in subfolders")

    retry = sub.add_parser("retry-download", help="Download a previously generated artifact")
    retry.add_argument("--url", required=True, help="Artifact reference from a download_failed result")
    retry.add_argument("--output", required=True, help="Destination file")

    sub.add_parser("validate", help="Check that the supplied cookies open a ready session")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings = load_settings(args.settings)
    level = args.log_level or section(settings, "logging").get("level", "INFO")
    logging.basicConfig(level=getattr(logging, str(level).upper(), logging.INFO), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    orchestrator = _resolve_orchestrator(settings, args)

    if args.command == "convert":
        request = _build_request(args)
        result = run_convert_sync(request, orchestrator=orchestrator, progress_callback=_print_progress)
        _emit({"command": "convert", **result.model_dump(mode="json")})
        return 0 if result.success else 1
    if args.command == "batch":
        requests = _build_batch(args)
        if not requests:
            _emit({"command": "batch", "error": "no inputs found", "items": []})
            return 1
        results = run_batch_sync(requests, orchestrator=orchestrator, progress_callback=_print_batch_progress)
        payload = [item.model_dump(mode="json") for item in results]
        _emit({"command": "batch", "total": len(requests), "items": payload})
        return 0 if results and all(item.result.success for item in results) else 1
    if args.command == "retry-download":
        ok = asyncio.run(_retry_download(orchestrator, args.url, Path(args.output)))
        _emit({"command": "retry-download", "success": ok, "output_path": args.output})
        return 0 if ok else 1
    ok = asyncio.run(_validate(orchestrator))
    _emit({"command": "validate", "valid": ok})
    return 0 if ok else 1


def _build_request(args: argparse.Namespace) -> ConversionRequest:
    mode = args.mode or ("image_to_video" if args.image else "text_to_video")
    parameters = GenerationParameters(
        mode=mode,
        aspect_ratio=args.aspect_ratio,
        prompt=args.motion_prompt,
        timeout_seconds=args.timeout,
    )
    input_ref = args.image or args.prompt
    if args.output:
        destination = Path(args.output)
    elif args.image:
        destination = Path(args.image).with_suffix(".mp4")
    else:
        destination = build_output_path(Path.cwd(), "{prompt}", input_ref, extension_for(parameters))
    return ConversionRequest(input_ref=input_ref, destination_path=destination, parameters=parameters)


def _build_batch(args: argparse.Namespace) -> list[ConversionRequest]:
    if args.images_dir:
        parameters = GenerationParameters(mode="image_to_video", aspect_ratio=args.aspect_ratio)
        return requests_from_images(scan_images(args.images_dir, args.recursive), args.output_dir, parameters)
    parameters = GenerationParameters(mode=args.mode, aspect_ratio=args.aspect_ratio)
    prompts = load_prompts_file(args.prompts_file)
    return requests_from_prompts(prompts, args.output_dir, parameters, args.naming_pattern)


async def _retry_download(orchestrator: PipelineOrchestrator, url: str, output: Path) -> bool:
    try:
        return await orchestrator.retry_download(url, output)
    finally:
        await orchestrator.close()


async def _validate(orchestrator: PipelineOrchestrator) -> bool:
    try:
        return await orchestrator.validate_session()
    finally:
        await orchestrator.close()


def _print_progress(stage: str, percent: int) -> None:
    print(f"[{percent:>3}%] {stage}", file=sys.stderr)


def _print_batch_progress(progress: BatchProgress) -> None:
    print(
        f"[{progress.percent:>3}%] {progress.current}/{progress.total} {progress.item_name}: {progress.stage}",
        file=sys.stderr,
    )


def _emit(payload: Dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2))


def _resolve_orchestrator(settings: Dict[str, Any], args: argparse.Namespace) -> PipelineOrchestrator:
    hook = os.environ.get(_TEST_ORCHESTRATOR_ENV)
    if hook:
        module_name, _, attr = hook.partition(":")
        module = importlib.import_module(module_name)
        factory: Callable[[Dict[str, Any]], Any] = getattr(module, attr)
        return factory(settings)
    return build_orchestrator(
        settings,
        headless=False if args.headed else None,
        cookie_file=args.cookie_file,
        artifacts_root=args.artifacts_dir,
    )


if __name__ == "__main__":  # pragma: no cover - exercised via CLI test
    sys.exit(main())
