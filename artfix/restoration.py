from __future__ import annotations

import base64
import binascii
import logging
from typing import Optional, Union

import requests

from .config import (
    AUTH_FAILURE_MARKERS,
    AUTH_FAILURE_STATUS,
    RESTORE_INPUT_MIME,
    RESTORE_MODEL,
    RESTORE_PROMPT,
    RESTORE_TEMPERATURE,
    get_api_key,
    get_base_url,
    get_timeout_s,
)
from .errors import InvalidInputError, RestorationAuthError, RestorationError
from .io import decode_image, image_to_base64_jpeg

logger = logging.getLogger(__name__)


def _redact(text: str, secret: Optional[str]) -> str:
    if secret:
        return text.replace(secret, "***")
    return text


def _error_text(exc: BaseException) -> str:
    resp = getattr(exc, "response", None)
    if resp is not None:
        body = getattr(resp, "text", "") or ""
        return f"HTTP {getattr(resp, 'status_code', '?')} {body}".strip()
    return str(exc)


def classify_restoration_error(exc: BaseException, secret: Optional[str] = None) -> RestorationError:
    """
    Map any failure from the remote call onto the two user-visible classes:
    authorization/billing (forces key re-selection) vs. everything else.
    """
    if isinstance(exc, RestorationError):
        return exc

    resp = getattr(exc, "response", None)
    status = getattr(resp, "status_code", None)
    text = _redact(_error_text(exc), secret)

    if status in AUTH_FAILURE_STATUS or any(m in text for m in AUTH_FAILURE_MARKERS):
        return RestorationAuthError(f"Access denied by the restoration service: {text}")
    return RestorationError(text or f"Restoration failed: {type(exc).__name__}")


def _decode_image_part(part: dict) -> Optional[bytes]:
    inline = part.get("inlineData") if isinstance(part, dict) else None
    if not isinstance(inline, dict):
        return None
    data = inline.get("data")
    if not (isinstance(data, str) and data):
        return None
    mime = inline.get("mimeType", "image/png")
    if not (isinstance(mime, str) and mime.startswith("image/")):
        return None
    try:
        return base64.b64decode(data)
    except (binascii.Error, ValueError):
        return None


def _generate_restored_image(b64_jpeg: str, api_key: str) -> bytes:
    url = f"{get_base_url()}/v1beta/models/{RESTORE_MODEL}:generateContent"
    payload = {
        "contents": [
            {
                "role": "user",
                "parts": [
                    {"text": RESTORE_PROMPT},
                    {"inlineData": {"mimeType": RESTORE_INPUT_MIME, "data": b64_jpeg}},
                ],
            }
        ],
        "generationConfig": {"temperature": RESTORE_TEMPERATURE},
    }
    # Key travels in a header, never in the URL.
    resp = requests.post(url, headers={"x-goog-api-key": api_key}, json=payload, timeout=get_timeout_s())
    resp.raise_for_status()
    data = resp.json()
    if not isinstance(data, dict):
        raise RestorationError("Restoration returned a malformed response")

    candidates = data.get("candidates") or []
    if not (isinstance(candidates, list) and candidates):
        raise RestorationError("Restoration returned an empty response")
    first = candidates[0] if isinstance(candidates[0], dict) else {}
    content = first.get("content") or {}
    parts = content.get("parts") if isinstance(content, dict) else None
    if not (isinstance(parts, list) and parts):
        raise RestorationError("Restoration returned an empty response")

    for p in parts:
        raw = _decode_image_part(p)
        if raw is not None:
            return raw

    raise RestorationError("No image data found in restoration response")


def restore_artwork(image: Union[bytes, str]) -> bytes:
    """
    Ask the Gemini image model to flatten, relight and de-wrinkle the artwork.

    Accepts raw bytes, base64 or a data URL; returns the encoded restored image.
    Single attempt, no retries.
    """
    api_key = get_api_key()
    if not api_key:
        raise RestorationAuthError("Missing GEMINI_API_KEY")

    try:
        b64 = image_to_base64_jpeg(decode_image(image))
    except InvalidInputError as e:
        raise RestorationError(f"Could not read source image: {e}") from e

    logger.info("Requesting restoration from %s", RESTORE_MODEL)
    try:
        return _generate_restored_image(b64, api_key)
    except (requests.RequestException, ValueError, RestorationError) as e:
        err = classify_restoration_error(e, secret=api_key)
        logger.error("Restoration failed (%s): %s", type(err).__name__, err)
        if err is e:
            raise
        raise err from e
