"""Data models for conversion requests, results and progress."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

GenerationMode = Literal["image_to_video", "text_to_video", "text_to_image"]
TEXT_MODES = ("text_to_video", "text_to_image")
SERVICE_DEFAULT_ASPECT_RATIO = "9:16"
SUPPORTED_ASPECT_RATIOS = ("2:3", "3:2", "1:1", "9:16", "16:9")
FAILURE_PERCENT = -1


class PipelineStage(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    SUBMITTING = "submitting"
    AWAITING_GENERATION = "awaiting_generation"
    DOWNLOADING = "downloading"
    COMPLETE = "complete"
    FAILED = "failed"


class GenerationParameters(BaseModel):
    """Service-side options for one generation."""

    model_config = ConfigDict(frozen=True)

    mode: GenerationMode = "image_to_video"
    aspect_ratio: str = SERVICE_DEFAULT_ASPECT_RATIO
    prompt: Optional[str] = None
    timeout_seconds: Optional[float] = Field(default=None, gt=0)

    @field_validator("aspect_ratio")
    @classmethod
    def _validate_aspect_ratio(cls, value: str) -> str:
        value = value.strip()
        if value not in SUPPORTED_ASPECT_RATIOS:
            raise ValueError(f"aspect_ratio must be one of {', '.join(SUPPORTED_ASPECT_RATIOS)}")
        return value

    @property
    def produces_video(self) -> bool:
        return self.mode != "text_to_image"


class ConversionRequest(BaseModel):
    """One unit of work: an input, its parameters and where the artifact goes."""

    model_config = ConfigDict(frozen=True)

    input_ref: str
    destination_path: Path
    parameters: GenerationParameters = Field(default_factory=GenerationParameters)

    @field_validator("input_ref")
    @classmethod
    def _validate_input_ref(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("input_ref cannot be empty")
        return value.strip()

    @model_validator(mode="after")
    def _check_mode_inputs(self) -> "ConversionRequest":
        if self.parameters.mode == "image_to_video" and not Path(self.input_ref).suffix:
            raise ValueError("image_to_video requires an image path as input_ref")
        return self

    @property
    def is_text_mode(self) -> bool:
        return self.parameters.mode in TEXT_MODES

    @property
    def prompt_text(self) -> Optional[str]:
        """Text typed into the prompt box, if any."""

        if self.is_text_mode:
            return self.input_ref
        return self.parameters.prompt or None

    @property
    def image_path(self) -> Optional[Path]:
        if self.is_text_mode:
            return None
        return Path(self.input_ref)


class ConversionResult(BaseModel):
    """Outcome of one ``convert`` call."""

    model_config = ConfigDict(frozen=True)

    success: bool
    artifact_ref: Optional[str] = None
    output_path: Optional[Path] = None
    error: Optional[str] = None
    attempts: int = Field(default=1, ge=1)
    download_failed: bool = False

    @model_validator(mode="after")
    def _check_consistency(self) -> "ConversionResult":
        if self.download_failed and (self.success or self.artifact_ref is None):
            raise ValueError("download_failed requires success=False and a preserved artifact_ref")
        if self.success and self.artifact_ref is None:
            raise ValueError("a successful result must carry artifact_ref")
        return self


class ProgressEvent(BaseModel):
    """One progress notification, kept by the run logger."""

    stage: str
    percent: int = Field(ge=FAILURE_PERCENT, le=100)
    attempt: int = Field(default=0, ge=0)


class BatchProgress(BaseModel):
    """Progress of one batch item mapped onto the whole batch."""

    current: int = Field(ge=1)
    total: int = Field(ge=1)
    item_name: str
    stage: str
    item_percent: int = Field(ge=FAILURE_PERCENT, le=100)
    percent: int = Field(ge=0, le=100)

    @classmethod
    def from_item(cls, current: int, total: int, item_name: str, stage: str, item_percent: int) -> "BatchProgress":
        """Build the overall percentage for item ``current`` (1-based) at ``item_percent``."""

        done = (current - 1) * 100 // total
        if item_percent >= 0:
            overall = ((current - 1) * 100 + item_percent) // total
        else:
            overall = done
        return cls(
            current=current,
            total=total,
            item_name=item_name,
            stage=stage,
            item_percent=item_percent,
            percent=min(max(overall, 0), 100),
        )


class BatchItemResult(BaseModel):
    request: ConversionRequest
    result: ConversionResult


__all__ = [
    "BatchItemResult",
    "BatchProgress",
    "ConversionRequest",
    "ConversionResult",
    "FAILURE_PERCENT",
    "GenerationMode",
    "GenerationParameters",
    "PipelineStage",
    "ProgressEvent",
    "SERVICE_DEFAULT_ASPECT_RATIO",
    "SUPPORTED_ASPECT_RATIOS",
    "TEXT_MODES",
]
