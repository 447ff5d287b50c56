"""Conversion pipeline: request models, submission and orchestration."""

from .schema import (
    BatchItemResult,
    BatchProgress,
    ConversionRequest,
    ConversionResult,
    GenerationParameters,
    PipelineStage,
    ProgressEvent,
)
from .naming import build_output_path, requests_from_images, requests_from_prompts, slugify_prompt
from .orchestrator import PipelineOrchestrator, build_orchestrator, run_batch_sync, run_convert_sync

__all__ = [
    "BatchItemResult",
    "BatchProgress",
    "ConversionRequest",
    "ConversionResult",
    "GenerationParameters",
    "PipelineOrchestrator",
    "PipelineStage",
    "ProgressEvent",
    "build_orchestrator",
    "build_output_path",
    "requests_from_images",
    "requests_from_prompts",
    "run_batch_sync",
    "run_convert_sync",
    "slugify_prompt",
]
