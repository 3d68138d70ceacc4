import logging
import math
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from .types import PreprocessError
from .utils import guess_mime


logger = logging.getLogger(__name__)


@dataclass
class PreparedUploads:
    paths: list[Path] = field(default_factory=list)
    temporary: list[Path] = field(default_factory=list)
    failed: dict[Path, str] = field(default_factory=dict)

    def cleanup(self) -> None:
        for part in self.temporary:
            try:
                part.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning(f"Could not remove temporary part {part}: {exc}")


def probe_duration(path: Path) -> float:
    cmd = [
        "ffprobe",
        "-v", "error",
        "-show_entries", "format=duration",
        "-of", "default=noprint_wrappers=1:nokey=1",
        str(path),
    ]
    try:
        proc = subprocess.run(cmd, capture_output=True, text=True, check=False)
    except FileNotFoundError as exc:
        raise PreprocessError("ffprobe is not installed") from exc
    if proc.returncode != 0:
        raise PreprocessError(f"Failed to get video duration: {proc.stderr.strip()}")
    try:
        return float(proc.stdout.strip())
    except ValueError as exc:
        raise PreprocessError(f"Unexpected ffprobe output: {proc.stdout.strip()!r}") from exc


def split_video(path: Path, max_size: int) -> list[Path]:
    duration = probe_duration(path)
    parts = math.ceil(path.stat().st_size / max_size)
    segment_time = duration / parts
    pattern = path.with_name(f"{path.stem}_part_%03d{path.suffix}")
    cmd = [
        "ffmpeg",
        "-loglevel", "error",
        "-y",
        "-i", str(path),
        "-f", "segment",
        "-segment_time", f"{segment_time:.3f}",
        "-c", "copy",
        "-reset_timestamps", "1",
        str(pattern),
    ]
    try:
        proc = subprocess.run(cmd, capture_output=True, text=True, check=False)
    except FileNotFoundError as exc:
        raise PreprocessError("ffmpeg is not installed") from exc
    if proc.returncode != 0:
        raise PreprocessError(f"Failed to split video: {proc.stderr.strip()}")

    produced: list[Path] = []
    index = 0
    while True:
        candidate = path.with_name(f"{path.stem}_part_{index:03d}{path.suffix}")
        if not candidate.exists():
            break
        if candidate.stat().st_size > max_size:
            logger.warning(f"{candidate.name} is still larger than the upload limit")
        produced.append(candidate)
        index += 1
    if not produced:
        raise PreprocessError(f"ffmpeg produced no parts for {path.name}")
    return produced


def needs_split(path: Path, max_size: int) -> bool:
    return guess_mime(path).startswith("video/") and path.stat().st_size > max_size


def prepare_uploads(
    paths: list[Path],
    max_size: int,
    enabled: bool = True,
    splitter: Callable[[Path, int], list[Path]] = split_video,
) -> PreparedUploads:
    prepared = PreparedUploads()
    for path in paths:
        if not enabled or not needs_split(path, max_size):
            prepared.paths.append(path)
            continue
        try:
            parts = splitter(path, max_size)
        except PreprocessError as exc:
            prepared.failed[path] = str(exc)
            continue
        logger.debug(f"Split {path.name} into {len(parts)} part(s)")
        prepared.paths.extend(parts)
        prepared.temporary.extend(parts)
    return prepared
