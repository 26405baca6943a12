from __future__ import annotations

import base64
import binascii
import io
import json
import re
from pathlib import Path
from typing import Any, Dict, Union

import numpy as np
from PIL import Image, UnidentifiedImageError

from .config import JPEG_BACKGROUND, JPEG_QUALITY
from .errors import InvalidInputError

ImageLike = Union[Image.Image, np.ndarray]

_DATA_URL_RE = re.compile(r"^data:image/[\w.+-]+;base64,")


def strip_data_url(data: str) -> str:
    """Drop a `data:image/...;base64,` prefix if present."""
    return _DATA_URL_RE.sub("", data.strip())


def to_data_url(raw: bytes, mime: str = "image/png") -> str:
    return f"data:{mime};base64,{base64.b64encode(raw).decode('utf-8')}"


def decode_image(data: Union[bytes, str]) -> Image.Image:
    """
    Decode raw image bytes, a base64 string or a data URL into a PIL image.
    """
    if isinstance(data, str):
        try:
            raw = base64.b64decode(strip_data_url(data), validate=True)
        except (binascii.Error, ValueError) as e:
            raise InvalidInputError("Image string is not valid base64") from e
    else:
        raw = bytes(data)
    if not raw:
        raise InvalidInputError("Empty image payload")
    try:
        img = Image.open(io.BytesIO(raw))
        img.load()
    except Image.DecompressionBombError as e:
        raise InvalidInputError(f"Image exceeds the decoder pixel limit: {e}") from e
    except (UnidentifiedImageError, OSError) as e:
        raise InvalidInputError("Could not decode image payload") from e
    return img


def to_rgba_array(img: Image.Image) -> np.ndarray:
    """
    Convert any PIL image to an RGBA uint8 ndarray of shape (H, W, 4).
    """
    arr = np.array(img.convert("RGBA"), dtype=np.uint8)
    if arr.ndim != 3 or arr.shape[2] != 4:
        raise InvalidInputError(f"Expected RGBA image array, got shape={arr.shape}")
    return arr


def from_rgba_array(arr: np.ndarray) -> Image.Image:
    if arr.ndim != 3 or arr.shape[2] != 4 or arr.dtype != np.uint8:
        raise InvalidInputError(f"Expected RGBA uint8 array (H,W,4), got {arr.dtype} {arr.shape}")
    return Image.fromarray(arr)


def _as_image(img: ImageLike) -> Image.Image:
    if isinstance(img, np.ndarray):
        return from_rgba_array(img)
    return img


def _flatten_alpha_to_white(img: Image.Image) -> Image.Image:
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        rgba = img.convert("RGBA")
        bg = Image.new("RGBA", rgba.size, JPEG_BACKGROUND + (255,))
        comp = Image.alpha_composite(bg, rgba)
        return comp.convert("RGB")
    return img.convert("RGB")


def encode_png(img: ImageLike) -> bytes:
    """
    Lossless RGBA PNG bytes (alpha preserved).
    """
    img = _as_image(img)
    if img.mode != "RGBA":
        img = img.convert("RGBA")
    buf = io.BytesIO()
    img.save(buf, format="PNG", optimize=False)
    return buf.getvalue()


def encode_jpeg(img: ImageLike, quality: int = JPEG_QUALITY) -> bytes:
    """
    Opaque JPEG bytes; transparency is flattened onto white.
    """
    img = _flatten_alpha_to_white(_as_image(img))
    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=int(quality))
    return buf.getvalue()


def write_bytes(raw: bytes, path: str) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_bytes(raw)


def save_jpeg(img: ImageLike, path: str, quality: int = JPEG_QUALITY) -> None:
    write_bytes(encode_jpeg(img, quality=quality), path)


def image_to_base64_jpeg(img: Image.Image) -> str:
    return base64.b64encode(encode_jpeg(img)).decode("utf-8")


def write_json(path: str, data: Dict[str, Any]) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")


def safe_image_id_from_relpath(relpath: str) -> str:
    """
    Make a stable, filesystem-safe image_id from a relative path.
    Example: "scrolls/lan ting.jpg" -> "scrolls__lan_ting"
    """
    p = Path(relpath)
    stem = p.with_suffix("").as_posix()
    stem = stem.replace("/", "__")
    stem = "".join(ch if ch.isalnum() or ch in ("_", "-", ".") else "_" for ch in stem)
    return stem
