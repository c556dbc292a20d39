import argparse
import math
import signal
import sys
import threading
import traceback
from pathlib import Path
from typing import Optional

import utils
from calibration import CalibrationError, calibrate_from_file
from color_ranges import parse_hex_color
from config import (
    ACCENT_TOLERANCE,
    BACKGROUND_TOLERANCE,
    CLUSTER_TOLERANCE,
    MENU_DARK_RGB,
    MENU_LIGHT_RGB,
    MIN_KEEP_SEGMENT,
    OUTPUT_DIR,
    PROCESS_WIDTH,
)
from exporter import extract_keep_clips, render_keep_ranges, save_timeline_json
from frame_source import iter_frames, probe_video
from scan_session import SessionAborted, scan_frames
from timeline import Timeline, build_timeline
from utils import format_timestamp, log, verbose_log

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CALIBRATION = 2
EXIT_ABORTED = 130


def print_summary(timeline: Timeline) -> None:
    log("\nMenu Detection Summary:")
    log(f"Menu ranges detected: {len(timeline.detections)}")
    for i, d in enumerate(timeline.detections, start=1):
        log(f"  Menu {i}: {format_timestamp(d.start)} to {format_timestamp(d.end)}")
    log(f"Keep ranges: {len(timeline.keep_ranges)}")
    for i, k in enumerate(timeline.keep_ranges, start=1):
        log(f"  Keep {i}: {format_timestamp(k.start)} to {format_timestamp(k.end)} ({k.duration:.2f}s)")


def _install_cancel_handler(cancel_event: threading.Event):
    """
    First Ctrl-C requests a cooperative stop between frames.
    """
    def handler(signum, frame):
        log("\n⏹️ Stop requested, finishing current frame...")
        cancel_event.set()

    return signal.signal(signal.SIGINT, handler)


def process_file(args: argparse.Namespace, cancel_event: Optional[threading.Event] = None) -> int:
    video_file = Path(args.video)
    reference_file = Path(args.reference)
    if not video_file.is_file():
        log(f"File not found: {video_file}")
        return EXIT_ERROR
    if not reference_file.is_file():
        log(f"File not found: {reference_file}")
        return EXIT_ERROR

    verbose_log(f"\n🔵 Starting processing for: {video_file}")
    output_dir = Path(args.output_dir) if args.output_dir else video_file.parent / OUTPUT_DIR
    analysis_dir = output_dir / "analysis"

    try:
        profile = calibrate_from_file(
            reference_file,
            background_rgb=args.background_color,
            accent_rgb=args.accent_color,
            background_tolerance=args.background_tolerance,
            accent_tolerance=ACCENT_TOLERANCE,
        )
    except CalibrationError as e:
        log(f"❌ Calibration failed: {e}")
        return EXIT_CALIBRATION

    info = probe_video(video_file)
    total_frames = math.ceil(info.frame_count / args.sample_every) if info.frame_count else None

    try:
        result = scan_frames(
            iter_frames(video_file, args.sample_every, args.process_width),
            profile,
            cancel_event=cancel_event,
            workers=args.workers,
            total_frames=total_frames,
            debug=args.debug,
        )
    except SessionAborted:
        log("⏹️ Scan aborted; nothing exported.")
        return EXIT_ABORTED

    duration = info.duration
    if duration <= 0 and result.events:
        duration = result.events[-1].timestamp
    timeline = build_timeline(result.events, duration, args.tolerance, args.min_segment)
    save_timeline_json(timeline, video_file, analysis_dir, result.hit_timestamps)
    print_summary(timeline)

    if args.dry_run:
        log("Dry run: skipping export.")
        return EXIT_OK
    if not timeline.keep_ranges:
        log("⚠️ Nothing left to keep; skipping export.")
        return EXIT_OK

    if args.clips:
        extract_keep_clips(video_file, timeline.keep_ranges, output_dir / f"{video_file.stem}_clips")
    else:
        output_file = Path(args.output) if args.output else output_dir / f"{video_file.stem}_clean.mp4"
        render_keep_ranges(video_file, timeline.keep_ranges, output_file)
    return EXIT_OK


def _hex_color(value: str):
    try:
        return parse_hex_color(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def _hsv_tolerance(value: str):
    parts = value.split(",")
    try:
        tolerance = tuple(float(p) for p in parts)
    except ValueError:
        tolerance = ()
    if len(tolerance) != 3 or any(t < 0 for t in tolerance):
        raise argparse.ArgumentTypeError(f"Expected H,S,V tolerances, got {value!r}")
    return tolerance


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Cut every stretch of a video where the on-screen menu is visible."
    )
    parser.add_argument("video", help="input video file")
    parser.add_argument("reference", help="screenshot showing the menu")
    parser.add_argument("-o", "--output", help="output file (default: <output-dir>/<stem>_clean.mp4)")
    parser.add_argument("--output-dir", help=f"directory for results (default: <video dir>/{OUTPUT_DIR})")
    parser.add_argument("--sample-every", type=int, default=1, help="scan every Nth frame")
    parser.add_argument("--process-width", type=int, default=PROCESS_WIDTH, help="downscale frames to this width")
    parser.add_argument("--tolerance", type=float, default=CLUSTER_TOLERANCE,
                        help="max gap (s) between hits in one menu range")
    parser.add_argument("--min-segment", type=float, default=MIN_KEEP_SEGMENT,
                        help="drop keep ranges shorter than this (s)")
    parser.add_argument("--workers", type=int, default=1, help="scan threads")
    parser.add_argument("--background-color", type=_hex_color, default=MENU_DARK_RGB,
                        help="menu background color as #rrggbb")
    parser.add_argument("--accent-color", type=_hex_color, default=MENU_LIGHT_RGB,
                        help="menu selection bar color as #rrggbb")
    parser.add_argument("--background-tolerance", type=_hsv_tolerance, default=BACKGROUND_TOLERANCE,
                        help="H,S,V tolerance for the background color")
    parser.add_argument("--clips", action="store_true", help="write each keep range as its own clip")
    parser.add_argument("--dry-run", action="store_true", help="analyze only, do not export")
    parser.add_argument("--debug", action="store_true", help="log per-candidate detection details")
    parser.add_argument("--quiet", action="store_true", help="only print errors and the summary")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    if args.sample_every < 1 or args.workers < 1:
        log("--sample-every and --workers must be at least 1")
        return EXIT_ERROR
    if args.tolerance < 0 or args.min_segment < 0:
        log("--tolerance and --min-segment must be non-negative")
        return EXIT_ERROR
    if args.quiet:
        utils.VERBOSE = False

    cancel_event = threading.Event()
    previous_handler = _install_cancel_handler(cancel_event)
    try:
        return process_file(args, cancel_event)
    except RuntimeError as e:
        log(f"❌ Error processing file {args.video}: {e}")
        verbose_log(traceback.format_exc())
        return EXIT_ERROR
    finally:
        signal.signal(signal.SIGINT, previous_handler)


if __name__ == "__main__":
    sys.exit(main())
