from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Optional, Tuple

from .contracts import ImageMetadata, MattingSettings
from .errors import RestorationAuthError, RestorationError
from .io import decode_image, safe_image_id_from_relpath, save_jpeg, write_bytes, write_json
from .matting import remove_background
from .restoration import restore_artwork

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StageTimings:
    load_s: float
    restore_s: float
    matte_s: float
    save_s: float
    total_s: float


def process_image(
    image_path: str,
    output_root: str,
    settings: MattingSettings,
    *,
    image_id: Optional[str] = None,
    restore: bool = True,
    export_restored: bool = False,
) -> Tuple[ImageMetadata, StageTimings]:
    """
    Deterministic, linear pipeline:
      1) Load image
      2) Restore remotely (optional; falls back to the original on failure)
      3) Matte (restored if present, else original)
      4) Save PNG (+ restored JPEG)
      5) Emit metadata JSON

    RestorationAuthError propagates: every later image would fail the same way.
    """
    if image_id is None:
        image_id = safe_image_id_from_relpath(Path(image_path).name)
    out = Path(output_root)
    transparent_path = str((out / "transparent" / f"{image_id}.png").resolve())
    restored_path = str((out / "restored" / f"{image_id}.jpg").resolve())
    meta_path = str((out / "metadata" / f"{image_id}.json").resolve())

    t0 = time.perf_counter()

    t_load0 = time.perf_counter()
    original = Path(image_path).read_bytes()
    t_load1 = time.perf_counter()

    # Restore
    t_res0 = time.perf_counter()
    restored = None
    status = "ready"
    failure = ""
    if restore:
        try:
            restored = restore_artwork(original)
        except RestorationAuthError:
            raise
        except RestorationError as e:
            logger.warning("%s: restoration failed, matting original instead: %s", image_id, e)
            status = "flagged"
            failure = f"restoration: {e}"
    t_res1 = time.perf_counter()

    # Matte
    t_mat0 = time.perf_counter()
    transparent = remove_background(restored or original, settings)
    t_mat1 = time.perf_counter()

    # Save
    t_save0 = time.perf_counter()
    write_bytes(transparent, transparent_path)
    wrote_restored = False
    if export_restored and restored is not None:
        save_jpeg(decode_image(restored), restored_path)
        wrote_restored = True
    t_save1 = time.perf_counter()

    t1 = time.perf_counter()
    timings = StageTimings(
        load_s=t_load1 - t_load0,
        restore_s=t_res1 - t_res0,
        matte_s=t_mat1 - t_mat0,
        save_s=t_save1 - t_save0,
        total_s=t1 - t0,
    )

    meta = ImageMetadata(
        image_id=image_id,
        source_path=str(Path(image_path).resolve()),
        transparent_path=transparent_path,
        restored_path=restored_path if wrote_restored else None,
        settings=settings,
        restored=restored is not None,
        status=status,
        failure=failure,
        timings=asdict(timings),
    )
    write_json(meta_path, meta.model_dump())
    logger.info("%s: %s in %.3fs", image_id, status, timings.total_s)
    return meta, timings
