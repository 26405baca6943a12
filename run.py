from __future__ import annotations

import argparse
import logging
import time
from pathlib import Path

from dotenv import load_dotenv
from tqdm import tqdm

from artfix.config import DEFAULT_MODE, DEFAULT_SMOOTHING, DEFAULT_THRESHOLD, IMAGE_EXTENSIONS
from artfix.contracts import MattingSettings
from artfix.errors import ArtFixError, RestorationAuthError
from artfix.io import safe_image_id_from_relpath
from artfix.pipeline import process_image


def _iter_images(input_dir: Path):
    for p in sorted(input_dir.rglob("*")):
        if p.is_file() and p.suffix.lower() in IMAGE_EXTENSIONS:
            yield p


def _int_in_range(lo: int, hi: int):
    def parse(value: str) -> int:
        n = int(value)
        if not lo <= n <= hi:
            raise argparse.ArgumentTypeError(f"must be in [{lo}, {hi}], got {n}")
        return n

    return parse


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Restore photographed artwork and remove its white paper background.")
    parser.add_argument("--input", required=True, type=str, help="Input directory containing images.")
    parser.add_argument("--output", required=True, type=str, help="Output directory (creates transparent/ + metadata/).")
    parser.add_argument("--threshold", type=_int_in_range(0, 255), default=DEFAULT_THRESHOLD, help="Brightness above which pixels become transparent.")
    parser.add_argument("--smoothing", type=_int_in_range(0, 100), default=DEFAULT_SMOOTHING, help="Width of the soft edge band below the threshold.")
    parser.add_argument("--mode", choices=("luminance", "color"), default=DEFAULT_MODE, help="luminance for ink/calligraphy, color for paintings.")
    parser.add_argument("--skip-restore", action="store_true", help="Matte the originals without calling the restoration model.")
    parser.add_argument("--export-restored", action="store_true", help="Also write restored images as JPEG under restored/.")
    parser.add_argument("--log-level", default="WARNING", help="Python logging level.")
    return parser


def main(argv=None) -> int:
    load_dotenv()

    args = build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    input_dir = Path(args.input)
    output_dir = Path(args.output)
    if not input_dir.exists():
        raise FileNotFoundError(f"Input dir not found: {input_dir}")

    images = list(_iter_images(input_dir))
    if not images:
        print(f"No images found under {input_dir}")
        return 0

    settings = MattingSettings(threshold=args.threshold, smoothing=args.smoothing, mode=args.mode)
    stats = {"total": 0, "restored": 0, "flagged": 0, "failed": 0}

    t0 = time.perf_counter()
    for img_path in tqdm(images, desc="Processing", unit="img"):
        rel = img_path.relative_to(input_dir).as_posix()
        image_id = safe_image_id_from_relpath(rel)
        stats["total"] += 1
        try:
            meta, timings = process_image(
                str(img_path),
                str(output_dir),
                settings,
                image_id=image_id,
                restore=not args.skip_restore,
                export_restored=args.export_restored,
            )
        except RestorationAuthError as e:
            print(f"Access denied by the restoration service, check GEMINI_API_KEY: {e}")
            return 2
        except (ArtFixError, OSError) as e:
            stats["failed"] += 1
            tqdm.write(f"{img_path.name}: {e}")
            continue

        if meta.restored:
            stats["restored"] += 1
        if meta.status == "flagged":
            stats["flagged"] += 1
        tqdm.write(
            f"{img_path.name}: total={timings.total_s:.3f}s "
            f"(restore={timings.restore_s:.3f}s matte={timings.matte_s:.3f}s save={timings.save_s:.3f}s)"
        )

    t1 = time.perf_counter()
    print(
        "Done.\n"
        f"- total:    {stats['total']}\n"
        f"- restored: {stats['restored']}\n"
        f"- flagged:  {stats['flagged']}\n"
        f"- failed:   {stats['failed']}\n"
        f"- elapsed_s: {t1 - t0:.2f}\n"
        f"- output: {output_dir.resolve()}"
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
