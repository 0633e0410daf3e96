"""
Command line entry point.

    smartscan scan brief.jpg --out flat.png
    smartscan analyze brief.jpg
    smartscan classify --text "Rechnung vom 15.03.2024 über 49,99 €"
"""

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

from loguru import logger

from smartscan.config import load_config
from smartscan.document_processor import DocumentProcessor, ProcessingContext, ScanOptions
from smartscan.exceptions import ImageLoadError, SmartScanError
from smartscan.image_enhancer import EnhanceOptions
from smartscan.raster import RasterImage
from smartscan.utils import format_processing_time, setup_logging, validate_image_file


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="smartscan",
        description="Detect, flatten, enhance, OCR and classify document photos.",
    )
    p.add_argument("--config", type=Path, default=None, help="Path to smartscan.yaml.")
    p.add_argument("--log-level", default=None, help="Override the configured log level.")
    sub = p.add_subparsers(dest="command", required=True)

    scan = sub.add_parser("scan", help="Crop and enhance a photo, write the result image.")
    scan.add_argument("image", type=Path)
    scan.add_argument("--out", type=Path, required=True, help="Output image path (.png/.jpg).")
    scan.add_argument("--no-crop", action="store_true", help="Skip perspective correction.")
    scan.add_argument("--no-enhance", action="store_true", help="Skip enhancement.")
    scan.add_argument("--black-white", action="store_true", help="Adaptive-threshold document mode.")

    analyze = sub.add_parser("analyze", help="Full pipeline; print the analysis as JSON.")
    analyze.add_argument("image", type=Path)
    analyze.add_argument("--no-crop", action="store_true", help="Skip perspective correction.")

    classify = sub.add_parser("classify", help="Classify text; print the analysis as JSON.")
    classify.add_argument("--text", default=None, help="Text to classify (default: read stdin).")

    return p


def _load_image(path: Path) -> RasterImage:
    is_valid, msg = validate_image_file(str(path))
    if not is_valid:
        raise ImageLoadError(f"{path}: {msg}")
    return RasterImage.from_file(path)


def _print_progress(stage: str, message: str):
    logger.info(f"[{stage}] {message}")


def main(argv: Optional[List[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)

    config = load_config(args.config)
    setup_logging(None, args.log_level or config["logging"].get("level", "INFO"), stream=sys.stderr)

    context = ProcessingContext(progress=_print_progress)

    try:
        processor = DocumentProcessor.from_config(config)
        if args.command == "scan":
            options = ScanOptions(
                auto_crop=not args.no_crop,
                auto_enhance=not args.no_enhance,
                enhance=EnhanceOptions.from_config(
                    config.get("enhancement"), black_white=args.black_white or None
                ),
            )
            result = processor.scan(_load_image(args.image), options, context)
            written = result.image.save(args.out)
            print(json.dumps({**result.to_dict(), "output": written,
                              "warnings": context.warnings}, indent=2, ensure_ascii=False))

        elif args.command == "analyze":
            analysis = processor.process(
                _load_image(args.image),
                ScanOptions(auto_crop=not args.no_crop),
                context,
            )
            print(json.dumps(analysis.to_dict(), indent=2, ensure_ascii=False))
            logger.info(f"Done in {format_processing_time(context.timings.get('total', 0))}")

        else:
            text = args.text if args.text is not None else sys.stdin.read()
            analysis = processor.analyze_text(text, context)
            print(json.dumps(analysis.to_dict(), indent=2, ensure_ascii=False))

    except SmartScanError as e:
        logger.error(str(e))
        return 1

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
