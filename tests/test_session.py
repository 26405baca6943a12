from __future__ import annotations

import io

import pytest
from PIL import Image

from artfix.contracts import MattingSettings
from artfix.errors import (
    ArtFixError,
    BackgroundRemovalError,
    InvalidInputError,
    RestorationAuthError,
    RestorationError,
    SessionBusyError,
)
from artfix.session import AppState, Phase, Session, Stage


def _png(color=(255, 255, 255), size=(16, 12)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


def test_new_session_defaults():
    s = Session()
    assert s.stage == Stage.UPLOAD
    assert s.state == AppState.IDLE
    assert s.phase == Phase.UPLOAD
    assert s.settings == MattingSettings(threshold=240, smoothing=20, mode="luminance")
    assert s.key_selected is False


def test_load_original_resets_artifacts(artwork_png):
    s = Session()
    s.load_original(artwork_png)
    s.images = s.images.model_copy(update={"restored": b"r", "transparent": b"t"})

    s.load_original(artwork_png)
    assert s.images.original == artwork_png
    assert s.images.restored is None
    assert s.images.transparent is None
    assert s.stage == Stage.RESTORE


def test_load_original_rejects_garbage():
    s = Session()
    with pytest.raises(InvalidInputError):
        s.load_original(b"not an image")
    assert s.images.original is None
    assert s.stage == Stage.UPLOAD


def test_restore_success_moves_to_matte(artwork_png):
    s = Session(key_selected=True)
    s.load_original(artwork_png)
    restored = _png((250, 250, 250))

    assert s.restore(restorer=lambda _img: restored) is True
    assert s.images.restored == restored
    assert s.state == AppState.SUCCESS
    assert s.stage == Stage.MATTE
    assert s.phase == Phase.READY_TO_MATTE


def test_restore_auth_failure_forces_key_reselection(artwork_png):
    s = Session(key_selected=True)
    s.load_original(artwork_png)

    def _denied(_img):
        raise RestorationAuthError("HTTP 403 PERMISSION_DENIED")

    assert s.restore(restorer=_denied) is False
    assert s.state == AppState.ERROR
    assert s.key_selected is False
    assert "API key" in s.error_message
    assert s.images.restored is None

    s.select_key()
    assert s.key_selected is True
    assert s.error_message is None
    assert s.restore(restorer=lambda _img: _png()) is True


def test_restore_generic_failure_keeps_key(artwork_png):
    s = Session(key_selected=True)
    s.load_original(artwork_png)

    def _broken(_img):
        raise RestorationError("No image data found in restoration response")

    assert s.restore(restorer=_broken) is False
    assert s.state == AppState.ERROR
    assert s.key_selected is True
    assert s.error_message == "No image data found in restoration response"
    assert s.stage == Stage.RESTORE


def test_restore_without_original_is_noop():
    s = Session()
    assert s.restore(restorer=lambda _img: pytest.fail("should not be called")) is False
    assert s.state == AppState.IDLE


def test_matting_uses_restored_when_present(artwork_png):
    s = Session(key_selected=True)
    s.load_original(artwork_png)
    restored = _png((250, 250, 250))
    s.restore(restorer=lambda _img: restored)

    seen = {}

    def _engine(source, settings):
        seen["source"] = source
        seen["settings"] = settings
        return b"png"

    s.update_settings(threshold=200, mode="color")
    assert s.apply_matting(engine=_engine) is True
    assert seen["source"] == restored
    assert seen["settings"] == MattingSettings(threshold=200, smoothing=20, mode="color")
    assert s.images.transparent == b"png"
    assert s.stage == Stage.EXPORT
    assert s.phase == Phase.EXPORT


def test_matting_falls_back_to_original(artwork_png):
    s = Session()
    s.load_original(artwork_png)
    assert s.apply_matting() is True

    img = Image.open(io.BytesIO(s.export_transparent()))
    assert img.mode == "RGBA"
    assert img.getpixel((0, 0))[3] == 0


def test_matting_failure_reports_generic_message(artwork_png):
    s = Session()
    s.load_original(artwork_png)

    def _fail(_source, _settings):
        raise BackgroundRemovalError("decoder exploded")

    assert s.apply_matting(engine=_fail) is False
    assert s.state == AppState.ERROR
    assert s.error_message == "Background removal failed."
    assert s.images.transparent is None


def test_one_operation_in_flight(artwork_png):
    s = Session(key_selected=True)
    s.load_original(artwork_png)

    def _reentrant(_img):
        assert s.phase == Phase.RESTORING
        assert s.navigate(Stage.UPLOAD) is False
        s.apply_matting()
        return b"unreachable"

    with pytest.raises(SessionBusyError):
        s.restore(restorer=_reentrant)
    # rolled back to a retryable state
    assert s.state == AppState.IDLE
    assert s.busy is False


def test_navigation_gating(artwork_png):
    s = Session(key_selected=True)
    assert s.can_navigate(Stage.UPLOAD)
    assert not s.can_navigate(Stage.RESTORE)
    assert not s.can_navigate(Stage.MATTE)
    assert not s.can_navigate(Stage.EXPORT)

    s.load_original(artwork_png)
    assert s.can_navigate(Stage.RESTORE)
    assert s.can_navigate(Stage.MATTE)
    assert not s.can_navigate(Stage.EXPORT)
    assert s.navigate("export") is False

    s.restore(restorer=lambda _img: _png())
    assert s.can_navigate(Stage.EXPORT)
    assert s.navigate(Stage.UPLOAD) is True
    assert s.stage == Stage.UPLOAD


def test_update_settings_validates_mode():
    s = Session()
    with pytest.raises(ValueError):
        s.update_settings(mode="hsv")
    assert s.settings.mode == "luminance"


def test_settings_clamped_to_slider_ranges():
    s = MattingSettings(threshold=300, smoothing=-5).clamped()
    assert (s.threshold, s.smoothing) == (255, 0)


def test_exports(artwork_png):
    s = Session(key_selected=True)
    with pytest.raises(ArtFixError):
        s.export_transparent()
    with pytest.raises(ArtFixError):
        s.export_restored()

    s.load_original(artwork_png)
    s.restore(restorer=lambda _img: _png((240, 240, 240)))
    jpeg = Image.open(io.BytesIO(s.export_restored()))
    assert jpeg.format == "JPEG"
    assert jpeg.size == (16, 12)


def test_restore_blocked_until_key_reselected(artwork_png):
    s = Session(key_selected=True)
    s.load_original(artwork_png)

    def _denied(_img):
        raise RestorationAuthError("HTTP 403 PERMISSION_DENIED")

    assert s.restore(restorer=_denied) is False
    assert s.key_selected is False

    calls = {"n": 0}

    def _ok(_img):
        calls["n"] += 1
        return _png()

    assert s.restore(restorer=_ok) is False
    assert calls["n"] == 0
    assert s.state == AppState.ERROR
    assert "API key" in s.error_message
    assert s.images.restored is None

    s.select_key()
    assert s.restore(restorer=_ok) is True
    assert calls["n"] == 1


def test_restore_requires_selected_key_from_the_start(artwork_png):
    s = Session()
    s.load_original(artwork_png)
    assert s.restore(restorer=lambda _img: pytest.fail("should not be called")) is False
    assert s.stage == Stage.RESTORE


def test_oversized_upload_fails_matting_with_generic_message(monkeypatch, artwork_png):
    s = Session()
    s.load_original(artwork_png)
    # 40x30 is more than twice this limit, so PIL refuses to decode it.
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 100)

    assert s.apply_matting() is False
    assert s.state == AppState.ERROR
    assert s.error_message == "Background removal failed."
