import csv
import json
import subprocess
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from tqdm import tqdm

import utils
from config import AUDIO_CODEC, VIDEO_CODEC, VIDEO_CRF, VIDEO_PRESET
from timeline import KeepRange, Timeline, total_kept
from utils import ensure_dir, run_ffmpeg_command, seconds_to_iso8601, verbose_log


def _fmt(seconds: float) -> str:
    return f"{seconds:.3f}"


def has_audio_stream(input_file: Path) -> bool:
    """
    Uses ffprobe to check whether input_file carries at least one audio stream.
    """
    cmd = [
        "ffprobe",
        "-v", "error",
        "-select_streams", "a",
        "-show_entries", "stream=index",
        "-of", "json",
        str(input_file)
    ]
    result = run_ffmpeg_command(cmd)
    info = json.loads(result.stdout or "{}")
    return bool(info.get("streams"))


def build_edit_command(
    ranges: Sequence[KeepRange],
    input_file: Path,
    output_file: Path,
    include_audio: bool = True,
) -> List[str]:
    """
    Builds an ffmpeg command that keeps only `ranges` of input_file and
    joins them into output_file.

    Each range is trimmed from the source with its timestamps reset
    (PTS-STARTPTS) so the concat filter keeps audio and video in sync.
    With no ranges the input is transcoded as-is.
    """
    cmd = ["ffmpeg", "-hide_banner", "-loglevel", "error", "-y", "-i", str(input_file)]
    if not ranges:
        return cmd + [str(output_file)]

    filters = []
    inputs = ""
    for i, r in enumerate(ranges):
        filters.append(f"[0:v]trim=start={_fmt(r.start)}:end={_fmt(r.end)},setpts=PTS-STARTPTS[v{i}]")
        inputs += f"[v{i}]"
        if include_audio:
            filters.append(f"[0:a]atrim=start={_fmt(r.start)}:end={_fmt(r.end)},asetpts=PTS-STARTPTS[a{i}]")
            inputs += f"[a{i}]"

    if include_audio:
        filters.append(f"{inputs}concat=n={len(ranges)}:v=1:a=1[outv][outa]")
    else:
        filters.append(f"{inputs}concat=n={len(ranges)}:v=1:a=0[outv]")

    cmd += ["-filter_complex", ";".join(filters), "-map", "[outv]"]
    if include_audio:
        cmd += ["-map", "[outa]"]
    cmd += ["-c:v", VIDEO_CODEC, "-crf", VIDEO_CRF, "-preset", VIDEO_PRESET]
    if include_audio:
        cmd += ["-c:a", AUDIO_CODEC]
    cmd.append(str(output_file))
    return cmd


def _parse_out_time(line: str) -> Optional[float]:
    """
    Parses an ffmpeg -progress 'out_time=HH:MM:SS.micro' line into seconds.
    """
    if not line.startswith("out_time="):
        return None
    val = line.strip().split("=", 1)[1]
    try:
        h, m, s = val.split(":")
        return float(h) * 3600 + float(m) * 60 + float(s)
    except ValueError:
        return None


def render_keep_ranges(
    input_file: Path,
    ranges: Sequence[KeepRange],
    output_file: Path,
    include_audio: Optional[bool] = None,
) -> Path:
    """
    Renders the keep ranges of input_file into a single output file,
    showing a progress bar over the kept duration.
    Raises RuntimeError if ffmpeg fails or writes nothing.
    """
    if include_audio is None:
        include_audio = has_audio_stream(input_file)
    ensure_dir(output_file.parent)

    cmd = build_edit_command(ranges, input_file, output_file, include_audio)
    cmd = cmd[:-1] + ["-progress", "pipe:1", "-nostats", cmd[-1]]
    verbose_log(f"Running FFmpeg command to render {len(ranges)} keep ranges:\n{' '.join(cmd)}")

    total = total_kept(ranges) or None
    errors = []
    with tqdm(total=total, desc=f"🎞️ {output_file.stem}", unit="s", disable=not utils.VERBOSE) as pbar:
        with subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True, bufsize=1) as proc:
            last_seconds = 0.0
            for line in proc.stdout:
                sec = _parse_out_time(line)
                if sec is not None:
                    if sec > last_seconds:
                        pbar.update(sec - last_seconds)
                        last_seconds = sec
                elif "=" not in line:
                    errors.append(line.rstrip())
            proc.wait()

    if proc.returncode != 0:
        raise RuntimeError(f"FFmpeg render failed (exit {proc.returncode}):\n" + "\n".join(errors))
    if not output_file.exists() or output_file.stat().st_size == 0:
        raise RuntimeError(f"FFmpeg produced no output at {output_file}")
    verbose_log(f"✅ Created: {output_file}")
    return output_file


def extract_keep_clips(
    input_file: Path,
    ranges: Sequence[KeepRange],
    output_dir: Path,
    prefix: str = "clip",
) -> List[Path]:
    """
    Writes each keep range as its own stream-copied clip:
        {prefix}_01{suffix}, {prefix}_02{suffix}, ...
    Stream copy cuts on keyframes, so boundaries are approximate.
    """
    ensure_dir(output_dir)
    suffix = input_file.suffix or ".mp4"
    output_files = []
    for i, r in enumerate(tqdm(ranges, desc="🔪 Extracting clips", disable=not utils.VERBOSE), start=1):
        output_path = output_dir / f"{prefix}_{i:02d}{suffix}"
        cmd = [
            "ffmpeg",
            "-hide_banner", "-loglevel", "error", "-y",
            "-ss", _fmt(r.start),
            "-i", str(input_file),
            "-t", _fmt(r.duration),
            "-c", "copy",
            str(output_path)
        ]
        verbose_log(f"Extracting clip {i}: {r.start:.2f} to {r.end:.2f} → {output_path.name}")
        run_ffmpeg_command(cmd)
        output_files.append(output_path)
    verbose_log(f"Completed extraction of {len(output_files)} clips")
    return output_files


def timeline_to_dict(timeline: Timeline, video_file: Optional[Path] = None) -> dict:
    def span(start: float, end: float) -> dict:
        return {
            "start": round(start, 3),
            "end": round(end, 3),
            "start_iso": seconds_to_iso8601(start),
            "end_iso": seconds_to_iso8601(end),
        }

    return {
        "video_file": str(video_file) if video_file is not None else None,
        "duration": round(timeline.duration, 3),
        "kept_seconds": round(total_kept(timeline.keep_ranges), 3),
        "detections": [dict(span(d.start, d.end), confidence=d.confidence) for d in timeline.detections],
        "keep_ranges": [span(k.start, k.end) for k in timeline.keep_ranges],
    }


def save_timeline_json(
    timeline: Timeline,
    video_file: Path,
    output_dir: Path,
    hit_timestamps: Iterable[float] = (),
) -> Path:
    """
    Saves the menu ranges and keep ranges to {stem}_timeline.json and the raw
    hit timestamps to {stem}_hits.csv in output_dir.
    """
    ensure_dir(output_dir)
    stem = video_file.stem
    json_path = output_dir / f"{stem}_timeline.json"
    with open(json_path, "w") as f:
        json.dump(timeline_to_dict(timeline, video_file), f, indent=2)

    csv_path = output_dir / f"{stem}_hits.csv"
    with open(csv_path, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(["time_sec"])
        for t in hit_timestamps:
            writer.writerow([f"{t:.3f}"])

    verbose_log(f"Timeline saved to: {json_path}")
    return json_path
