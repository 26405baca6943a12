"""
Explicit session state for the upload -> restore -> matte -> export flow.

All mutable UI state lives on a `Session` instance passed to the handlers;
nothing is module-global.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Union

from .contracts import MattingSettings, ProcessedImages
from .errors import (
    ArtFixError,
    BackgroundRemovalError,
    InvalidInputError,
    RestorationAuthError,
    RestorationError,
    SessionBusyError,
)
from .io import decode_image, encode_jpeg
from .matting import remove_background
from .restoration import restore_artwork

logger = logging.getLogger(__name__)

AUTH_FAILURE_MESSAGE = "Access denied. Please select a paid API key that can use the Gemini image model."
RESTORE_FAILURE_MESSAGE = "AI restoration failed."
MATTING_FAILURE_MESSAGE = "Background removal failed."


class Stage(str, Enum):
    UPLOAD = "upload"
    RESTORE = "restore"
    MATTE = "matte"
    EXPORT = "export"


class AppState(str, Enum):
    IDLE = "idle"
    PROCESSING_RESTORE = "processing_restore"
    PROCESSING_MATTING = "processing_matting"
    ERROR = "error"
    SUCCESS = "success"


class Phase(str, Enum):
    """Coarse state-machine view derived from stage + state."""

    UPLOAD = "Upload"
    RESTORING = "Restoring"
    READY_TO_MATTE = "ReadyToMatte"
    MATTING = "Matting"
    EXPORT = "Export"


Restorer = Callable[[Union[bytes, str]], bytes]
Matter = Callable[[Union[bytes, str], MattingSettings], bytes]


@dataclass
class Session:
    images: ProcessedImages = field(default_factory=ProcessedImages)
    stage: Stage = Stage.UPLOAD
    state: AppState = AppState.IDLE
    error_message: Optional[str] = None
    key_selected: bool = False
    settings: MattingSettings = field(default_factory=MattingSettings)

    @property
    def busy(self) -> bool:
        return self.state in (AppState.PROCESSING_RESTORE, AppState.PROCESSING_MATTING)

    @property
    def phase(self) -> Phase:
        if self.state == AppState.PROCESSING_RESTORE:
            return Phase.RESTORING
        if self.state == AppState.PROCESSING_MATTING:
            return Phase.MATTING
        if self.stage == Stage.EXPORT:
            return Phase.EXPORT
        if self.stage == Stage.MATTE:
            return Phase.READY_TO_MATTE
        if self.stage == Stage.RESTORE:
            return Phase.RESTORING
        return Phase.UPLOAD

    @property
    def matting_source(self) -> Optional[bytes]:
        return self.images.restored or self.images.original

    @contextmanager
    def _operation(self, state: AppState):
        if self.busy:
            raise SessionBusyError(f"Cannot start {state.value}: {self.state.value} in progress")
        self.state = state
        self.error_message = None
        try:
            yield
        finally:
            # Never leave the session stuck mid-operation.
            if self.state == state:
                self.state = AppState.IDLE

    def _fail(self, message: str) -> None:
        self.state = AppState.ERROR
        self.error_message = message

    def select_key(self) -> None:
        self.key_selected = True
        self.error_message = None

    def update_settings(self, **changes) -> MattingSettings:
        self.settings = MattingSettings(**{**self.settings.model_dump(), **changes})
        return self.settings

    def load_original(self, data: bytes) -> None:
        """Start over with a freshly uploaded image."""
        if self.busy:
            raise SessionBusyError("Cannot upload while an operation is in progress")
        decode_image(data)
        self.images = ProcessedImages(original=bytes(data))
        self.stage = Stage.RESTORE
        self.state = AppState.IDLE
        self.error_message = None
        logger.info("Loaded original image (%d bytes)", len(data))

    def restore(self, restorer: Restorer = restore_artwork) -> bool:
        """
        Run remote restoration on the original image.

        Returns True on success. Failures are recorded on the session; an
        authorization failure also clears `key_selected`, and nothing runs
        until `select_key()` is called again.
        """
        if not self.images.original:
            return False
        if self.busy:
            raise SessionBusyError(f"Cannot restore: {self.state.value} in progress")
        if not self.key_selected:
            self._fail(AUTH_FAILURE_MESSAGE)
            return False
        with self._operation(AppState.PROCESSING_RESTORE):
            try:
                restored = restorer(self.images.original)
            except RestorationAuthError as e:
                logger.warning("Restoration rejected credential: %s", e)
                self._fail(AUTH_FAILURE_MESSAGE)
                self.key_selected = False
                return False
            except RestorationError as e:
                logger.warning("Restoration failed: %s", e)
                self._fail(str(e) or RESTORE_FAILURE_MESSAGE)
                return False
            self.images = self.images.model_copy(update={"restored": restored})
            self.state = AppState.SUCCESS
            self.stage = Stage.MATTE
        logger.info("Restoration complete, moving to %s", self.stage.value)
        return True

    def apply_matting(self, engine: Matter = remove_background) -> bool:
        """Matte whichever image is current (restored if present, else original)."""
        source = self.matting_source
        if not source:
            return False
        with self._operation(AppState.PROCESSING_MATTING):
            try:
                transparent = engine(source, self.settings)
            except BackgroundRemovalError as e:
                logger.warning("Matting failed: %s", e)
                self._fail(MATTING_FAILURE_MESSAGE)
                return False
            self.images = self.images.model_copy(update={"transparent": transparent})
            self.state = AppState.SUCCESS
            self.stage = Stage.EXPORT
        return True

    def can_navigate(self, target: Stage) -> bool:
        target = Stage(target)
        if target == Stage.UPLOAD:
            return True
        if target == Stage.RESTORE:
            return bool(self.images.original)
        if target == Stage.MATTE:
            return bool(self.images.restored or self.images.original)
        if target == Stage.EXPORT:
            return bool(self.images.transparent or self.images.restored)
        return False

    def navigate(self, target: Stage) -> bool:
        if self.busy or not self.can_navigate(target):
            return False
        self.stage = Stage(target)
        return True

    def export_transparent(self) -> bytes:
        """Final transparent result as PNG bytes."""
        if not self.images.transparent:
            raise ArtFixError("No transparent result to export")
        return self.images.transparent

    def export_restored(self) -> bytes:
        """Restored-only result as an opaque JPEG on white."""
        if not self.images.restored:
            raise ArtFixError("No restored image to export")
        try:
            return encode_jpeg(decode_image(self.images.restored))
        except InvalidInputError as e:
            raise ArtFixError(f"Restored image could not be exported: {e}") from e
