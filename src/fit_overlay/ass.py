"""
Render aligned frames as an ASS subtitle overlay.

The overlay is a single bottom-left panel with one row per displayed field
(POWER / HR / SPEED by default). Every frame's values are formatted to text;
consecutive frames that show the same text are merged into one Dialogue event,
so slowly changing values stay cheap while interpolated ones update per frame.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path

from .aligner import AlignedSample


def ass_time(sec: float) -> str:
    """ASS timestamps: H:MM:SS.cc (centiseconds)."""
    if sec < 0:
        sec = 0.0
    cs = int(round(sec * 100))
    h = cs // 360000
    m = (cs % 360000) // 6000
    s = (cs % 6000) // 100
    cc = cs % 100
    return f"{h}:{m:02d}:{s:02d}.{cc:02d}"


def format_number(v: float | None, decimals: int = 0, placeholder: str = "---") -> str:
    # Absent values are shown as dashes, never as a made-up zero.
    if v is None:
        return placeholder
    return f"{v:.{decimals}f}"


@dataclass(frozen=True)
class DisplayField:
    key: str
    label: str
    unit: str
    style: str
    color: str  # ASS &HAABBGGRR
    render: Callable[[AlignedSample], str]


def _scaled(metric: str, factor: float, decimals: int, placeholder: str):
    def render(s: AlignedSample) -> str:
        v = s.get(metric)
        return format_number(None if v is None else v * factor, decimals, placeholder)

    return render


DISPLAY_FIELDS: dict[str, DisplayField] = {
    f.key: f
    for f in (
        DisplayField("power", "POWER", "W", "Power", "&H0088FF88", _scaled("power", 1.0, 0, "---")),
        DisplayField("heart_rate", "HR", "bpm", "HeartRate", "&H004444FF", _scaled("heart_rate", 1.0, 0, "---")),
        DisplayField("speed", "SPEED", "km/h", "Speed", "&H00FFCC00", _scaled("enhanced_speed", 3.6, 1, "--.-")),
        DisplayField("cadence", "CADENCE", "rpm", "Cadence", "&H0066AAFF", _scaled("cadence", 1.0, 0, "--")),
        DisplayField("distance", "DIST", "km", "Distance", "&H00FFFFFF", _scaled("distance", 0.001, 2, "-.--")),
        DisplayField("altitude", "ALT", "m", "Altitude", "&H00FFFFFF", _scaled("enhanced_altitude", 1.0, 0, "---")),
        DisplayField("temperature", "TEMP", "°C", "Temperature", "&H00FFFFFF", _scaled("temperature", 1.0, 0, "--")),
    )
}

DEFAULT_FIELDS = ("power", "heart_rate", "speed")


def resolve_fields(keys: Iterable[str]) -> list[DisplayField]:
    out: list[DisplayField] = []
    for k in keys:
        k = k.strip()
        if not k:
            continue
        if k not in DISPLAY_FIELDS:
            raise ValueError(
                f"unknown display field: {k} (choose from {', '.join(DISPLAY_FIELDS)})"
            )
        if DISPLAY_FIELDS[k] not in out:
            out.append(DISPLAY_FIELDS[k])
    if not out:
        raise ValueError("no display fields selected")
    return out


@dataclass(frozen=True)
class ValueSpan:
    key: str
    start: int  # first frame
    end: int  # one past the last frame
    text: str


def merge_spans(
    frames: Iterable[tuple[int, AlignedSample]], fields: Sequence[DisplayField]
) -> list[ValueSpan]:
    """Collapse runs of consecutive frames with identical text, per field."""
    spans: list[ValueSpan] = []
    open_spans: dict[str, ValueSpan] = {}
    prev_idx: int | None = None
    for idx, sample in frames:
        contiguous = prev_idx is not None and idx == prev_idx + 1
        for f in fields:
            text = f.render(sample)
            cur = open_spans.get(f.key)
            if cur is not None and contiguous and cur.text == text:
                open_spans[f.key] = ValueSpan(f.key, cur.start, idx + 1, text)
                continue
            if cur is not None:
                spans.append(cur)
            open_spans[f.key] = ValueSpan(f.key, idx, idx + 1, text)
        prev_idx = idx
    spans.extend(open_spans.values())

    order = {f.key: i for i, f in enumerate(fields)}
    spans.sort(key=lambda sp: (sp.start, order[sp.key]))
    return spans


def generate_ass(
    frames: Iterable[tuple[int, AlignedSample]],
    out_ass: str,
    *,
    fps: float,
    video_w: int,
    video_h: int,
    fields: Sequence[DisplayField] | None = None,
    label_font: str = "Arial",
    value_font: str = "Arial",
    value_fs: int | None = None,
    left_margin: int | None = None,
    bottom_margin: int | None = None,
    box_alpha: int = 112,
) -> int:
    """
    Write the overlay for `(frame_index, AlignedSample)` pairs to `out_ass`.

    Frame i is shown from i / fps to (i + 1) / fps on the video timeline.
    Returns the number of value events written.
    """
    if fields is None:
        fields = resolve_fields(DEFAULT_FIELDS)
    spans = merge_spans(frames, fields)
    if not spans:
        raise ValueError("No aligned frames to render.")

    if video_w <= 0 or video_h <= 0:
        # If ffprobe couldn't determine, choose a reasonable default
        video_w, video_h = 1280, 720

    # Layout is authored at 1920x1080 and scaled.
    scale_x = video_w / 1920.0
    scale_y = video_h / 1080.0

    def px(x_1080p: int) -> int:
        return int(round(x_1080p * scale_x))

    def py(y_1080p: int) -> int:
        return int(round(y_1080p * scale_y))

    if value_fs is None:
        value_fs = max(18, py(48))
    label_fs = max(10, py(24))
    outline = max(1, py(3))
    shadow = max(0, py(2))
    if left_margin is None:
        left_margin = max(10, px(20))
    if bottom_margin is None:
        bottom_margin = max(10, py(20))

    row_h = py(64)
    pad = py(16)
    box_w = max(1, px(420))
    box_h = max(1, 2 * pad + row_h * len(fields))
    origin_x = int(left_margin)
    origin_y = max(0, int(video_h - bottom_margin - box_h))

    box_alpha = max(0, min(255, int(box_alpha)))

    first_visible = min(sp.start for sp in spans) / fps
    last_visible = max(sp.end for sp in spans) / fps
    shown = f"{ass_time(first_visible)},{ass_time(last_visible)}"

    lines: list[str] = [
        "[Script Info]",
        "Title: Telemetry Overlay",
        "ScriptType: v4.00+",
        f"PlayResX: {video_w}",
        f"PlayResY: {video_h}",
        "WrapStyle: 0",
        "ScaledBorderAndShadow: yes",
        "YCbCr Matrix: TV.709",
        "",
        "[V4+ Styles]",
        "Format: Name, Fontname, Fontsize, PrimaryColour, SecondaryColour, OutlineColour, BackColour, Bold, Italic, Underline, StrikeOut, ScaleX, ScaleY, Spacing, Angle, BorderStyle, Outline, Shadow, Alignment, MarginL, MarginR, MarginV, Encoding",
        "Style: Box,Arial,1,&H00000000,&H00000000,&H00000000,&H00000000,0,0,0,0,100,100,0,0,1,0,0,7,0,0,0,1",
        f"Style: Label,{label_font},{label_fs},&H22FFFFFF,&H00FFFFFF,&H00000000,&H00000000,0,0,0,0,100,100,1,0,1,0,0,4,0,0,0,1",
    ]
    for f in fields:
        lines.append(
            f"Style: {f.style},{value_font},{value_fs},{f.color},&H00FFFFFF,&HAA0B0B0B,&H66000000,-1,0,0,0,100,100,0,0,1,{outline},{shadow},6,0,0,0,1"
        )
    lines += [
        "",
        "[Events]",
        "Format: Layer, Start, End, Style, Name, MarginL, MarginR, MarginV, Effect, Text",
    ]

    # Static panel and labels spanning the whole aligned range.
    lines.append(
        f"Dialogue: 0,{shown},Box,,0,0,0,,"
        f"{{\\pos({origin_x},{origin_y})\\p1\\c&H101010&\\alpha&H{box_alpha:02X}&}}"
        f"m 0 0 l {box_w} 0 l {box_w} {box_h} l 0 {box_h}{{\\p0}}"
    )

    rows: dict[str, int] = {}
    for i, f in enumerate(fields):
        row_y = origin_y + pad + row_h * i + row_h // 2
        rows[f.key] = row_y
        lines.append(
            f"Dialogue: 5,{shown},Label,,0,0,0,,"
            f"{{\\pos({origin_x + px(20)},{row_y})\\c{f.color[:2]}{f.color[4:]}&}}{f.label}"
        )

    value_x = origin_x + box_w - px(20)
    by_key = {f.key: f for f in fields}
    written = 0
    for sp in spans:
        a = ass_time(sp.start / fps)
        b = ass_time(sp.end / fps)
        if a == b:
            # Shorter than the centisecond ASS resolution.
            continue
        f = by_key[sp.key]
        lines.append(
            f"Dialogue: 6,{a},{b},{f.style},,0,0,0,,"
            f"{{\\pos({value_x},{rows[sp.key]})}}{sp.text}{{\\fs{label_fs}}} {f.unit}"
        )
        written += 1

    Path(out_ass).write_text("\n".join(lines) + "\n", encoding="utf-8")
    return written
