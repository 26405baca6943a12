from __future__ import annotations

import io

import pytest
from PIL import Image


@pytest.fixture
def artwork_png() -> bytes:
    """White paper with a black stroke and a red seal."""
    img = Image.new("RGB", (40, 30), (255, 255, 255))
    for x in range(5, 35):
        img.putpixel((x, 10), (0, 0, 0))
    for x in range(30, 36):
        for y in range(22, 28):
            img.putpixel((x, y), (200, 20, 20))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()
