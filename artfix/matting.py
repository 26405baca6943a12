"""Threshold-band matting for artwork photographed on white paper."""

from __future__ import annotations

import logging
from typing import Union

import numpy as np

from .config import LUMA_WEIGHTS
from .contracts import MattingMode, MattingSettings
from .errors import ArtFixError, BackgroundRemovalError, InvalidInputError
from .io import decode_image, encode_png, to_rgba_array

logger = logging.getLogger(__name__)


def _validate_pixels(pixels: np.ndarray) -> None:
    if not isinstance(pixels, np.ndarray):
        raise InvalidInputError(f"Expected numpy RGBA buffer, got {type(pixels).__name__}")
    if pixels.ndim != 3 or pixels.shape[2] != 4:
        raise InvalidInputError(f"Expected RGBA buffer (H,W,4), got shape={pixels.shape}")
    if pixels.shape[0] < 1 or pixels.shape[1] < 1:
        raise InvalidInputError(f"Empty buffer: {pixels.shape[:2]}")
    if pixels.dtype != np.uint8:
        raise InvalidInputError(f"Expected uint8 buffer, got {pixels.dtype}")


def compute_brightness(rgb: np.ndarray, mode: MattingMode) -> np.ndarray:
    """
    Scalar brightness per pixel, float64 (H, W), roughly in [0, 255].

    - luminance: BT.601 luma
    - color: 255 minus the Euclidean distance to pure white, floored at 0
    """
    c = rgb[..., :3].astype(np.float64)
    r, g, b = c[..., 0], c[..., 1], c[..., 2]
    if mode == "luminance":
        wr, wg, wb = LUMA_WEIGHTS
        return wr * r + wg * g + wb * b
    if mode == "color":
        dist = np.sqrt((255.0 - r) ** 2 + (255.0 - g) ** 2 + (255.0 - b) ** 2)
        return np.maximum(0.0, 255.0 - dist)
    raise InvalidInputError(f"Unknown matting mode: {mode!r}")


def compute_alpha(brightness: np.ndarray, threshold: float, smoothing: float) -> np.ndarray:
    """
    Map brightness to alpha:
      - above threshold: 0 (background)
      - within `smoothing` units below threshold: linear ramp 0 -> 255
      - otherwise: 255 (foreground)

    smoothing <= 0 is a hard step at threshold.
    """
    cutoff = float(threshold)
    fade = float(smoothing)

    alpha = np.full(brightness.shape, 255.0, dtype=np.float64)
    if fade > 0:
        band = brightness > cutoff - fade
        alpha[band] = 255.0 * (1.0 - (brightness[band] - (cutoff - fade)) / fade)
    alpha[brightness > cutoff] = 0.0

    # Round half to even, like an 8-bit clamped store.
    return np.clip(np.rint(alpha), 0, 255).astype(np.uint8)


def matte(pixels: np.ndarray, settings: MattingSettings) -> np.ndarray:
    """
    Single-pass, per-pixel background removal.

    Returns a new (H, W, 4) uint8 buffer; RGB is copied unchanged and only the
    alpha channel is recomputed. The input buffer is not modified.
    """
    _validate_pixels(pixels)
    brightness = compute_brightness(pixels, settings.mode)
    out = pixels.copy()
    out[..., 3] = compute_alpha(brightness, settings.threshold, settings.smoothing)
    return out


def remove_background(image: Union[bytes, str], settings: MattingSettings) -> bytes:
    """
    Decode an encoded image (bytes, base64 or data URL), matte it and return PNG bytes.

    Every failure surfaces as BackgroundRemovalError so callers handle one kind.
    """
    try:
        pixels = to_rgba_array(decode_image(image))
        result = matte(pixels, settings)
        return encode_png(result)
    except (ArtFixError, OSError, ValueError, MemoryError) as e:
        logger.error("Background removal failed: %s", e)
        raise BackgroundRemovalError(f"Background removal failed: {e}") from e
