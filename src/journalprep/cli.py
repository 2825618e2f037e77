#!/usr/bin/env python3
"""
JournalPrep CLI - prepare photographed journal pages for handwriting OCR.

Usage:
    python -m journalprep <command> [options]

Commands:
    process     Detect, crop/rectify and enhance page photos
    detect      Report what the geometry detector finds, without writing images
    presets     List enhancement presets

Examples:
    # Default (strong preset)
    journalprep process IMG_0412.jpg -o prepared/

    # Several photos in parallel with a gentler preset
    journalprep process photos/*.jpg -o prepared/ --preset moderate --workers 8

    # Fine tuning
    journalprep process page.png -o out/ --posterize 6 --contrast 1.8 --gamma 0.5

    # Crop only, no enhancement
    journalprep process page.png -o out/ --no-enhance --detection-mode lenient

    # Inspect detection
    journalprep detect IMG_0412.jpg -v
"""

import argparse
import logging
import sys
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import replace
from pathlib import Path

from journalprep.config import APP_DESCRIPTION, APP_VERSION
from journalprep.services.document_detection import (
    GeometryDetector,
    PageBottomEdge,
    SegmentationMask,
)
from journalprep.services.geometry import Quadrilateral
from journalprep.services.pipeline import PreprocessingPipeline
from journalprep.services.preprocessing_config import (
    CONTRAST_RANGE,
    DETECTION_MODES,
    GAMMA_RANGE,
    POSTERIZE_RANGE,
    PRESETS,
    DetectionConfig,
    EnhancementParameters,
)
from journalprep.services.raster import load_image, save_image
from journalprep.utils.config_manager import ConfigManager
from journalprep.utils.exceptions import ConfigurationError, JournalPrepError
from journalprep.utils.logger import setup_logger

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with subcommands."""
    p = argparse.ArgumentParser(
        prog="journalprep",
        description=f"JournalPrep: {APP_DESCRIPTION.lower()}.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Verbose logging (DEBUG)")
    p.add_argument("--version", action="version", version=f"%(prog)s {APP_VERSION}")

    sub = p.add_subparsers(dest="command", help="Available commands")

    # --- process ---
    proc_p = sub.add_parser("process", help="Prepare page photos for recognition")
    proc_p.add_argument("inputs", nargs="+", type=Path, help="Input image files")
    proc_p.add_argument("-o", "--output", type=Path, required=True, help="Output directory")
    proc_p.add_argument(
        "--suffix",
        default=None,
        help="Suffix appended to output file names (default: from settings, 'prepared')",
    )
    proc_p.add_argument(
        "--workers", type=int, default=None, help="Images processed in parallel (default: 4)"
    )
    proc_p.add_argument("--config", type=str, default=None, help="Settings JSON file")

    proc_e = proc_p.add_argument_group("Enhancement")
    proc_e.add_argument(
        "--preset",
        choices=list(PRESETS),
        default=None,
        help="Enhancement preset (default: strong)",
    )
    proc_e.add_argument(
        "--posterize",
        type=int,
        default=None,
        help=f"Posterize levels per channel ({POSTERIZE_RANGE[0]}-{POSTERIZE_RANGE[1]})",
    )
    proc_e.add_argument(
        "--contrast",
        type=float,
        default=None,
        help=f"Contrast level ({CONTRAST_RANGE[0]}-{CONTRAST_RANGE[1]})",
    )
    proc_e.add_argument(
        "--gamma",
        type=float,
        default=None,
        help=f"Gamma level ({GAMMA_RANGE[0]}-{GAMMA_RANGE[1]}, lower is more bitonal)",
    )
    proc_e.add_argument("--no-enhance", action="store_true", help="Only crop/rectify")

    proc_g = proc_p.add_argument_group("Geometry")
    _add_detection_arguments(proc_g)

    # --- detect ---
    det_p = sub.add_parser("detect", help="Show detected page geometry")
    det_p.add_argument("inputs", nargs="+", type=Path, help="Input image files")
    det_p.add_argument("--config", type=str, default=None, help="Settings JSON file")
    _add_detection_arguments(det_p)

    # --- presets ---
    sub.add_parser("presets", help="List enhancement presets")

    return p


def _add_detection_arguments(parser) -> None:
    parser.add_argument(
        "--detection-mode",
        choices=list(DETECTION_MODES),
        default=None,
        help="Rectangle detection thresholds (default: strict)",
    )
    parser.add_argument(
        "--edge-fallback",
        action="store_true",
        help="Crop below a detected page-bottom line when no rectangle is found",
    )


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


def _detection_config(args, settings: ConfigManager) -> DetectionConfig:
    config = settings.detection_config(args.detection_mode)
    if args.edge_fallback:
        config = replace(config, enable_edge_fallback=True)
    return config


def _enhancement_parameters(args, settings: ConfigManager) -> EnhancementParameters:
    params = settings.enhancement_parameters()
    if args.preset:
        params = EnhancementParameters.from_preset(args.preset)
    return params.with_overrides(
        posterize_levels=args.posterize,
        contrast_level=args.contrast,
        gamma_level=args.gamma,
    )


def output_path_for(input_path: Path, output_dir: Path, suffix: str) -> Path:
    """<output_dir>/<stem>_<suffix>.png"""
    return output_dir / f"{input_path.stem}_{suffix}.png"


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _process_one(pipeline: PreprocessingPipeline, source: Path, out: Path, enhance: bool) -> str:
    """Load, process and save one file; only a short summary is kept."""
    result = pipeline.process_file(source, enhance=enhance)
    try:
        save_image(result.image, out)
    except OSError as e:
        raise JournalPrepError(f"Could not write {out}", details=str(e)) from e

    if result.skipped_stages:
        logger.warning(f"{source.name}: skipped stages {', '.join(result.skipped_stages)}")
    return (
        f"{source.name}: {result.path_taken.value}, "
        f"{result.image.width}x{result.image.height}, "
        f"{result.timings.get('total', 0.0):.2f}s → {out}"
    )


def _cmd_process(args, logger) -> int:
    settings = ConfigManager(args.config)
    try:
        params = _enhancement_parameters(args, settings)
        detection = _detection_config(args, settings)
        band = settings.band_trim_config()
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    suffix = args.suffix or settings.get("output.suffix", "prepared")
    workers = args.workers or settings.get("output.workers", 4)
    pipeline = PreprocessingPipeline(detection, band, params=params)

    # Inputs that share a stem would overwrite each other's output
    failures = 0
    jobs: list[tuple[Path, Path]] = []
    claimed: dict[Path, Path] = {}
    for path in args.inputs:
        out = output_path_for(path, args.output, suffix)
        key = out.resolve()
        if key in claimed:
            print(
                f"Error: {path} would overwrite the output of {claimed[key]} ({out})",
                file=sys.stderr,
            )
            failures += 1
            continue
        claimed[key] = path
        jobs.append((path, out))

    logger.info(
        f"Config: posterize={params.posterize_levels}, contrast={params.contrast_level}, "
        f"gamma={params.gamma_level}, enhance={not args.no_enhance}, workers={workers}"
    )

    t0 = time.perf_counter()
    done = 0
    if jobs:
        with ThreadPoolExecutor(max_workers=max(1, min(workers, len(jobs)))) as pool:
            futures = [
                pool.submit(_process_one, pipeline, source, out, not args.no_enhance)
                for source, out in jobs
            ]
            for future in as_completed(futures):
                done += 1
                print(f"\r[{done}/{len(jobs)}] processed", end="", flush=True)
                try:
                    summary = future.result()
                except JournalPrepError as e:
                    print(f"\nError: {e}", file=sys.stderr)
                    failures += 1
                    continue
                logger.info(summary)
        print()  # newline after progress

    elapsed = time.perf_counter() - t0
    logger.info(f"Done: {len(jobs)} image(s), {failures} failure(s), {elapsed:.1f}s total")
    return 1 if failures else 0


def _describe(detection) -> str:
    if isinstance(detection, Quadrilateral):
        corners = ", ".join(f"({x:.3f},{y:.3f})" for x, y in detection.corners())
        return f"rectangle confidence={detection.confidence:.2f} corners=[{corners}]"
    if isinstance(detection, SegmentationMask):
        b = detection.largest_component_bounds()
        return f"foreground x={b.x} y={b.y} w={b.width} h={b.height}"
    if isinstance(detection, PageBottomEdge):
        return f"page bottom edge at y={detection.y}"
    return "nothing detected"


def _cmd_detect(args, _logger) -> int:
    settings = ConfigManager(args.config)
    try:
        detector = GeometryDetector(_detection_config(args, settings))
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    failures = 0
    for path in args.inputs:
        try:
            image = load_image(path)
        except JournalPrepError as e:
            print(f"Error: {e}", file=sys.stderr)
            failures += 1
            continue
        print(f"{path}: {image.width}x{image.height} {_describe(detector.detect(image))}")
    return 1 if failures else 0


def _cmd_presets(_args, _logger) -> int:
    print(f"{'Preset':<10} {'Levels':>6} {'Contrast':>9} {'Gamma':>6} {'Colors':>7}")
    for name, preset in PRESETS.items():
        print(
            f"{name:<10} {preset.posterize_levels:>6} {preset.contrast_level:>9.1f} "
            f"{preset.gamma_level:>6.1f} {preset.total_colors:>7}"
        )
    return 0


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    # Configure logging
    setup_logger(logging.DEBUG if args.verbose else logging.INFO)

    handlers = {
        "process": _cmd_process,
        "detect": _cmd_detect,
        "presets": _cmd_presets,
    }

    handler = handlers.get(args.command)
    if handler:
        return handler(args, logger)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
