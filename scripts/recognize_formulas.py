"""
Detect math formulas in an image and print their LaTeX.

Usage:
    python scripts/recognize_formulas.py page.jpg \
        --config configs/app.yaml \
        --format json
"""

import argparse
import json
import sys
from pathlib import Path

from data.errors import FormulaOCRError
from pipeline import FormulaPipeline
from preproc.image_buffer import RasterImage
from util.config import load_settings
from util.logging import setup_logging


def main():
    parser = argparse.ArgumentParser(description="Recognize math formulas in an image")
    parser.add_argument(
        "image",
        type=Path,
        help="Input image file",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Configuration file (default: configs/app.yaml)",
    )
    parser.add_argument(
        "--format",
        type=str,
        choices=["text", "json"],
        default="text",
        help="Output format",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Regions recognized concurrently (overrides the config)",
    )

    args = parser.parse_args()

    settings = load_settings(args.config)
    if args.workers is not None:
        settings.pipeline.max_workers = args.workers

    setup_logging(
        log_level=settings.logging.level,
        log_dir=settings.logging.log_dir,
        log_format=settings.logging.format,
    )

    try:
        image = RasterImage.open(args.image)
        with FormulaPipeline.from_settings(settings) as pipeline:
            results = pipeline.run(image)
    except FormulaOCRError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.format == "json":
        print(json.dumps([r.to_dict() for r in results], ensure_ascii=False, indent=2))
    else:
        for result in results:
            x1, y1, x2, y2 = result.region.to_crop_box()
            print(f"[{x1},{y1},{x2},{y2}] {result.region.label}: {result.latex}")

    return 0


if __name__ == '__main__':
    sys.exit(main())
