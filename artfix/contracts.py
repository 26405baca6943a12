from __future__ import annotations

from typing import Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .config import (
    DEFAULT_MODE,
    DEFAULT_SMOOTHING,
    DEFAULT_THRESHOLD,
    SMOOTHING_RANGE,
    THRESHOLD_RANGE,
)

MattingMode = Literal["luminance", "color"]


def _clamp(value: int, bounds: tuple) -> int:
    lo, hi = bounds
    return max(lo, min(hi, int(value)))


class MattingSettings(BaseModel):
    """
    Parameters of a single matting pass.

    Out-of-range values are accepted on purpose: the engine degrades to a hard
    step instead of failing. Use `clamped()` to snap them to the slider ranges.
    """

    model_config = ConfigDict(frozen=True)

    threshold: int = DEFAULT_THRESHOLD
    smoothing: int = DEFAULT_SMOOTHING
    mode: MattingMode = DEFAULT_MODE

    def clamped(self) -> "MattingSettings":
        return MattingSettings(
            threshold=_clamp(self.threshold, THRESHOLD_RANGE),
            smoothing=_clamp(self.smoothing, SMOOTHING_RANGE),
            mode=self.mode,
        )


class ProcessedImages(BaseModel):
    """Encoded artifacts produced along the upload -> restore -> matte flow."""

    original: Optional[bytes] = None
    restored: Optional[bytes] = None
    transparent: Optional[bytes] = None


class ImageMetadata(BaseModel):
    """Per-image record emitted by the batch pipeline."""

    image_id: str
    source_path: str
    transparent_path: str
    restored_path: Optional[str] = None
    settings: MattingSettings
    restored: bool
    status: Literal["ready", "flagged"]
    failure: str = ""
    timings: Dict[str, float] = Field(default_factory=dict)
