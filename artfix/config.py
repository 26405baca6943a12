"""
Centralized configuration constants for the artwork restoration + matting tool.

Ground rules:
- Matting operates on RGBA8 buffers only
- PNG for anything carrying alpha, JPEG only for opaque exports
"""

import os
from typing import Optional

# Matting defaults (white paper backgrounds are the common case).
DEFAULT_THRESHOLD = 240
DEFAULT_SMOOTHING = 20
DEFAULT_MODE = "luminance"

THRESHOLD_RANGE = (0, 255)
SMOOTHING_RANGE = (0, 100)

# ITU-R BT.601 luma weights.
LUMA_WEIGHTS = (0.299, 0.587, 0.114)

JPEG_QUALITY = 95
JPEG_BACKGROUND = (255, 255, 255)

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".bmp", ".tif", ".tiff"}

RESTORE_MODEL = "gemini-3-pro-image-preview"
RESTORE_TEMPERATURE = 0.4
RESTORE_INPUT_MIME = "image/jpeg"

# Markers that identify an authorization/billing failure from the Gemini API.
AUTH_FAILURE_MARKERS = ("403", "PERMISSION_DENIED", "not found")
AUTH_FAILURE_STATUS = (401, 403)

# Versioned prompt (keep changes explicit + centralized).
RESTORE_PROMPT = """You are an expert art conservator.
I will provide a photograph of a flat physical artwork (like calligraphy, ink painting, or watercolor).

Please perform the following restoration tasks strictly:
1. **Perspective Correction**: Make the artwork perfectly rectangular and flat, as if scanned. Crop out any background table or wall.
2. **Lighting Correction**: Remove uneven lighting, shadows, camera flash glare, and gradients. The background paper should be uniform.
3. **Physical Repair**: Digitally iron out any wrinkles, creases, or folds in the paper.
4. **Output**: Return ONLY the restored artwork on a clean, high-contrast white background. Do not alter the artistic strokes, signature, or ink details. Preserve the original resolution as much as possible.
"""


def get_api_key() -> Optional[str]:
    return os.getenv("GEMINI_API_KEY") or None


def get_base_url() -> str:
    return os.getenv("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com").rstrip("/")


def get_timeout_s() -> float:
    try:
        return float(os.getenv("GEMINI_TIMEOUT_S", "120"))
    except ValueError:
        return 120.0
