#!/usr/bin/env python3
"""
fit_overlay

Overlay FIT telemetry (power, heart rate, speed, ...) onto a video of the same activity.

What it does
- Reads the video's absolute start timestamp, frame rate and frame count (ffprobe).
- Reads absolute timestamps and metrics from the FIT file's record messages.
- Gives every video frame the time start + index / fps and aligns it to the
  telemetry: continuous metrics are interpolated between the two bracketing
  samples, sparse ones are held.
- Skips frames before the first sample and (by default) stops after the last one.
- Writes an .ass overlay and optionally burns it into a new video using ffmpeg.

Requirements
- Python 3.12+
- ffprobe + ffmpeg available on PATH (or pass --ffprobe-bin / --ffmpeg-bin)

Example
  fit-overlay ride.mp4 ride.fit -o ride.ass --burn-in ride_overlay.mp4
"""

from __future__ import annotations

import argparse
import shutil
import sys
from datetime import timedelta
from pathlib import Path

from .aligner import LINEAR, STEP, AlignedSample, Aligner
from .ass import DISPLAY_FIELDS, DEFAULT_FIELDS, generate_ass, resolve_fields
from .clock import frame_time, has_timezone, parse_iso8601, to_utc
from .errors import (
    AlignmentError,
    EmptySeriesError,
    FrameOrderError,
    IndexOutOfRangeError,
    MissingTimestampError,
    NonMonotonicSeriesError,
    SeriesExhaustedError,
    SeriesTooShortError,
)
from .fit import read_fit
from .frames import TAILS, align_frames, plan_frames
from .series import METRICS, Sample, Series, build_series
from .video import burn_in, get_video_metadata

__all__ = [
    "AlignedSample",
    "Aligner",
    "AlignmentError",
    "EmptySeriesError",
    "FrameOrderError",
    "IndexOutOfRangeError",
    "MissingTimestampError",
    "NonMonotonicSeriesError",
    "Sample",
    "Series",
    "SeriesExhaustedError",
    "SeriesTooShortError",
    "build_series",
    "main",
    "parse_iso8601",
    "to_utc",
]


def build_arg_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="fit-overlay",
        description="Overlay FIT telemetry on a video, aligned frame by frame using metadata timestamps.",
    )
    ap.add_argument("video", help="Input video file (mp4/mov/etc)")
    ap.add_argument("fit", help="Activity data file (.fit)")
    ap.add_argument(
        "-o",
        "--out-ass",
        default=None,
        help="Output .ass path (default: next to input video)",
    )

    ap.add_argument(
        "--offset",
        type=float,
        default=0.0,
        help="Manual offset adjustment in seconds. "
        "Positive makes data appear later; negative earlier.",
    )
    ap.add_argument(
        "--start",
        default=None,
        help="Video start time (ISO 8601), overriding the creation_time tag.",
    )
    ap.add_argument(
        "--fps",
        type=float,
        default=None,
        help="Frame rate override (default: probed with ffprobe)",
    )

    ap.add_argument(
        "--fields",
        default=",".join(DEFAULT_FIELDS),
        help=f"Comma-separated fields to display, top to bottom (choices: {', '.join(DISPLAY_FIELDS)}). "
        f"Default: {','.join(DEFAULT_FIELDS)}",
    )
    ap.add_argument(
        "--step",
        action="append",
        default=[],
        choices=METRICS,
        metavar="METRIC",
        help="Hold this metric at the current sample instead of interpolating (repeatable).",
    )
    ap.add_argument(
        "--linear",
        action="append",
        default=[],
        choices=METRICS,
        metavar="METRIC",
        help="Interpolate this metric between samples (repeatable).",
    )
    ap.add_argument(
        "--origin",
        choices=["sample", "advance"],
        default="sample",
        help="Measure progress through an interval from its first sample (default) "
        "or from the frame at which the interval became current.",
    )
    ap.add_argument(
        "--tail",
        choices=TAILS,
        default="stop",
        help="After the last sample: stop rendering (default) or hold the final values.",
    )

    ap.add_argument(
        "--label-font",
        default="Arial",
        help="Font for labels (must exist on your system)",
    )
    ap.add_argument(
        "--value-font",
        default="Arial",
        help="Font for values (must exist on your system)",
    )
    ap.add_argument(
        "--fontsize",
        type=int,
        default=None,
        help="Value font size (default: scaled from 48 @ 1080p)",
    )
    ap.add_argument(
        "--left-margin",
        type=int,
        default=None,
        help="Left margin in pixels (default: scaled from 20 @ 1080p)",
    )
    ap.add_argument(
        "--bottom-margin",
        type=int,
        default=None,
        help="Bottom margin in pixels (default: scaled from 20 @ 1080p)",
    )
    ap.add_argument(
        "--box-alpha",
        type=int,
        default=112,
        help="Background box transparency 0..255 (0=opaque, 255=fully transparent). Default: 112.",
    )

    ap.add_argument(
        "--burn-in",
        metavar="OUT_VIDEO",
        default=None,
        help="If set, burn the overlay into a new video using ffmpeg.",
    )
    ap.add_argument(
        "--crf", type=int, default=18, help="x264 CRF for burn-in (default: 18)"
    )
    ap.add_argument(
        "--preset",
        default="veryfast",
        help="x264 preset for burn-in (default: veryfast)",
    )
    ap.add_argument(
        "--reencode-audio",
        action="store_true",
        help="Re-encode audio to AAC instead of stream-copying it (use if -c:a copy fails).",
    )

    ap.add_argument(
        "--ffprobe-bin", default="ffprobe", help="Path to ffprobe (default: ffprobe)"
    )
    ap.add_argument(
        "--ffmpeg-bin", default="ffmpeg", help="Path to ffmpeg (default: ffmpeg)"
    )
    return ap


def policy_overrides(step: list[str], linear: list[str]) -> dict[str, str]:
    both = set(step) & set(linear)
    if both:
        raise ValueError(f"metric(s) given both --step and --linear: {', '.join(sorted(both))}")
    overrides = {name: STEP for name in step}
    overrides.update({name: LINEAR for name in linear})
    return overrides


def main(argv: list[str] | None = None) -> int:
    args = build_arg_parser().parse_args(argv)

    # Tools check
    if shutil.which(args.ffprobe_bin) is None:
        print(f"ERROR: ffprobe not found: {args.ffprobe_bin}", file=sys.stderr)
        return 2
    if args.burn_in and shutil.which(args.ffmpeg_bin) is None:
        print(f"ERROR: ffmpeg not found: {args.ffmpeg_bin}", file=sys.stderr)
        return 2

    video_path = args.video
    data_path = args.fit
    out_ass = args.out_ass or str(Path(video_path).with_suffix(".ass"))

    try:
        fields = resolve_fields(args.fields.split(","))
        policies = policy_overrides(args.step, args.linear)
        start_override = parse_iso8601(args.start) if args.start else None
        if args.start and not has_timezone(args.start):
            print(f"WARNING: --start has no timezone; assuming UTC: {args.start}", file=sys.stderr)
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    # Parse data (.fit)
    try:
        series = read_fit(data_path)
    except Exception as e:
        print(f"ERROR: Could not parse data file: {data_path}\n{e}", file=sys.stderr)
        return 2

    # Video metadata
    try:
        info = get_video_metadata(video_path, ffprobe_bin=args.ffprobe_bin, fps=args.fps)
    except (RuntimeError, ValueError) as e:
        print(f"ERROR: Could not read video metadata: {video_path}\n{e}", file=sys.stderr)
        return 2

    video_start = start_override or info.creation_time
    source = "--start" if start_override else info.source
    # Shifting the video start earlier makes data appear later on the video.
    start = video_start - timedelta(seconds=args.offset)

    try:
        plan = plan_frames(series, start, info.fps, info.frame_count, tail=args.tail)
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    print("== Alignment ==")
    print(f"Video start time (UTC):          {video_start.isoformat()}  [{source}]")
    if args.offset:
        print(f"Manual adjustment: {args.offset:+.3f} s")
    print(
        f"Video: {info.width}x{info.height}, {info.fps:.3f} fps, {info.frame_count} frames"
        + (f", duration ~ {info.duration:.2f} s" if info.duration is not None else "")
    )
    print(f"FIT file: {data_path}")
    print(f"FIT first timestamp (UTC):       {series.first.timestamp.isoformat()}")
    print(f"FIT last timestamp (UTC):        {series.last.timestamp.isoformat()}  [{len(series)} samples]")
    delta0 = (series.first.timestamp - start).total_seconds()
    if abs(delta0) >= 1.0:
        when = "after" if delta0 > 0 else "before"
        print(f"FIT starts {abs(delta0):.1f} s {when} video start (based on absolute timestamps).")
    print(
        f"Frames {plan.first}..{plan.stop - 1} aligned "
        f"(skipped {plan.skipped_head} before telemetry, {plan.skipped_tail} after; tail={args.tail})"
    )
    first_t = frame_time(start, plan.first, info.fps)
    print(f"First aligned frame at video t={(first_t - start).total_seconds():.2f} s")

    # Write ASS
    try:
        frames = align_frames(
            series,
            plan,
            start=start,
            fps=info.fps,
            policies=policies,
            origin=args.origin,
        )
        written = generate_ass(
            frames,
            out_ass,
            fps=info.fps,
            video_w=info.width,
            video_h=info.height,
            fields=fields,
            label_font=args.label_font,
            value_font=args.value_font,
            value_fs=args.fontsize,
            left_margin=args.left_margin,
            bottom_margin=args.bottom_margin,
            box_alpha=args.box_alpha,
        )
    except (AlignmentError, ValueError, OSError) as e:
        print(f"ERROR: Could not generate ASS overlay:\n{e}", file=sys.stderr)
        return 2
    print(f"Wrote ASS overlay: {out_ass}  [{written} value events]")

    # Burn-in (optional)
    if args.burn_in:
        print(f"Burning in subtitles to: {args.burn_in}")
        try:
            burn_in(
                video_in=video_path,
                ass_path=out_ass,
                video_out=args.burn_in,
                ffmpeg_bin=args.ffmpeg_bin,
                crf=args.crf,
                preset=args.preset,
                copy_audio=(not args.reencode_audio),
            )
        except RuntimeError as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 1
        print("Done.")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
