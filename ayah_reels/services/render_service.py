from __future__ import annotations

import logging
import shlex
import subprocess
from collections import deque
from pathlib import Path
from typing import Callable

from ayah_reels.core.config import settings
from ayah_reels.core.errors import CompositionError
from ayah_reels.core.storage import ensure_dir
from ayah_reels.models.schemas import TimelineEntry

logger = logging.getLogger(__name__)

RENDER_PROGRESS_START = 50
RENDER_PROGRESS_END = 99
RENDER_PROGRESS_UNKNOWN = 75
STDERR_TAIL_LINES = 20


def render_percentage(out_time_seconds: float | None, total_duration: float) -> int:
    """Map encoder position into the rendering band of the overall progress."""
    if out_time_seconds is None or total_duration <= 0:
        return RENDER_PROGRESS_UNKNOWN
    fraction = max(0.0, min(1.0, out_time_seconds / total_duration))
    span = RENDER_PROGRESS_END - RENDER_PROGRESS_START
    return min(RENDER_PROGRESS_END, RENDER_PROGRESS_START + int(fraction * span))


def parse_progress_line(line: str) -> float | None:
    key, sep, value = line.strip().partition("=")
    if not sep or key not in {"out_time_us", "out_time_ms"}:
        return None
    try:
        return int(value) / 1_000_000
    except ValueError:
        return None


class CompositionPlanner:
    def build_filter_graph(
        self,
        *,
        audio_count: int,
        windows: list[tuple[float, float]],
        width: int,
        height: int,
        total_duration: float,
    ) -> list[str]:
        if audio_count < 1:
            raise CompositionError("No audio clips to concatenate", stage="plan")

        audio_labels = "".join(f"[{1 + i}:a]" for i in range(audio_count))
        chain = [
            f"{audio_labels}concat=n={audio_count}:v=0:a=1[maina]",
            f"[0:v]scale={width}:{height}:force_original_aspect_ratio=increase,crop={width}:{height},"
            f"trim=duration={total_duration:.3f},setpts=PTS-STARTPTS[bg]",
        ]

        image_start = 1 + audio_count
        prev = "bg"
        for idx, (start, end) in enumerate(windows):
            next_label = "outv" if idx == len(windows) - 1 else f"v{idx}"
            chain.append(
                f"[{prev}][{image_start + idx}:v]overlay=0:0:enable='gte(t,{start:.3f})*lt(t,{end:.3f})'[{next_label}]"
            )
            prev = next_label
        if not windows:
            chain.append("[bg]null[outv]")
        return chain

    def build_command(
        self,
        *,
        background: Path,
        audio_paths: list[Path],
        overlays: list[Path],
        timeline: list[TimelineEntry],
        width: int,
        height: int,
        output_path: Path,
    ) -> list[str]:
        if len(overlays) != len(timeline):
            raise CompositionError("Overlay count does not match timeline", stage="plan")
        total = timeline[-1].end_time if timeline else 0.0
        graph = self.build_filter_graph(
            audio_count=len(audio_paths),
            windows=[(entry.start_time, entry.end_time) for entry in timeline],
            width=width,
            height=height,
            total_duration=total,
        )

        cmd = [settings.ffmpeg_binary, "-y", "-loglevel", "error", "-nostats", "-progress", "pipe:1"]
        cmd.extend(["-stream_loop", "-1", "-i", str(background)])
        for path in audio_paths:
            cmd.extend(["-i", str(path)])
        for path in overlays:
            cmd.extend(["-i", str(path)])
        cmd.extend(
            [
                "-filter_complex",
                ";".join(graph),
                "-map",
                "[outv]",
                "-map",
                "[maina]",
                "-c:v",
                settings.video_codec,
                "-c:a",
                settings.audio_codec,
                "-pix_fmt",
                settings.pixel_format,
                "-shortest",
                str(output_path),
            ]
        )
        return cmd

    def render(
        self,
        *,
        background: Path,
        audio_paths: list[Path],
        overlays: list[Path],
        timeline: list[TimelineEntry],
        width: int,
        height: int,
        output_path: Path,
        on_progress: Callable[[int], None] | None = None,
    ) -> Path:
        ensure_dir(output_path.parent)
        cmd = self.build_command(
            background=background,
            audio_paths=audio_paths,
            overlays=overlays,
            timeline=timeline,
            width=width,
            height=height,
            output_path=output_path,
        )
        total = timeline[-1].end_time if timeline else 0.0
        logger.debug("Encoder command: %s", shlex.join(cmd))

        tail: deque[str] = deque(maxlen=STDERR_TAIL_LINES)
        try:
            proc = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True)
        except OSError as exc:
            raise CompositionError(f"Could not start encoder: {exc}") from exc

        with proc:
            for line in proc.stdout or []:
                position = parse_progress_line(line)
                if position is not None:
                    if on_progress:
                        on_progress(render_percentage(position, total))
                elif line.startswith("out_time=N/A"):
                    if on_progress:
                        on_progress(RENDER_PROGRESS_UNKNOWN)
                elif "=" not in line and line.strip():
                    tail.append(line.rstrip())
            returncode = proc.wait()

        if returncode != 0:
            output_path.unlink(missing_ok=True)
            stderr_tail = "\n".join(tail)
            raise CompositionError(f"Encoder exited with status {returncode}", stderr_tail=stderr_tail)
        if not output_path.is_file():
            raise CompositionError(f"Encoder produced no output at {output_path}")
        logger.info("Rendered %s (%.2fs)", output_path.name, total)
        return output_path
