"""Artwork restoration (remote) and threshold-band background removal (local)."""

from .contracts import MattingSettings, ProcessedImages
from .errors import (
    ArtFixError,
    BackgroundRemovalError,
    InvalidInputError,
    RestorationAuthError,
    RestorationError,
    SessionBusyError,
)
from .matting import matte, remove_background
from .restoration import restore_artwork
from .session import Session

__all__ = [
    "ArtFixError",
    "BackgroundRemovalError",
    "InvalidInputError",
    "MattingSettings",
    "ProcessedImages",
    "RestorationAuthError",
    "RestorationError",
    "Session",
    "SessionBusyError",
    "matte",
    "remove_background",
    "restore_artwork",
]
