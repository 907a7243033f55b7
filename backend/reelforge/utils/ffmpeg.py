"""FFmpeg and ffprobe utilities."""
import asyncio
import json
import logging
import shutil
import tempfile
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from reelforge.config import settings

logger = logging.getLogger(__name__)


class FFmpegError(Exception):
    """FFmpeg related error."""

    def __init__(self, message: str, stderr: str = ""):
        super().__init__(message)
        self.stderr = stderr


def check_ffmpeg_available() -> bool:
    """Check if ffmpeg is available."""
    return shutil.which(settings.ffmpeg_path) is not None


def check_ffprobe_available() -> bool:
    """Check if ffprobe is available."""
    return shutil.which(settings.ffprobe_path) is not None


async def _run_process(cmd: Sequence[str], timeout: Optional[float] = None) -> Tuple[int, str, str]:
    """
    Run a command and collect its output.

    Args:
        cmd: Command line, executable first
        timeout: Seconds to wait before the process is killed (None = no limit)

    Returns:
        (returncode, stdout, stderr)

    Raises:
        FFmpegError: If the executable is missing or the timeout expires
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE
        )
    except OSError as e:
        raise FFmpegError(f"Could not start {cmd[0]}: {e}")

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        raise FFmpegError(f"{Path(cmd[0]).name} timed out after {timeout:g}s")
    except asyncio.CancelledError:
        proc.kill()
        await asyncio.shield(proc.wait())
        raise

    return (
        proc.returncode,
        stdout.decode("utf-8", errors="ignore"),
        stderr.decode("utf-8", errors="ignore"),
    )


async def probe_duration(video_path: str | Path) -> float:
    """
    Get a media file's duration using ffprobe.

    Args:
        video_path: Path to video file

    Returns:
        Duration in seconds

    Raises:
        FFmpegError: If ffprobe fails or reports no usable duration
    """
    video_path = Path(video_path)
    if not video_path.exists():
        raise FFmpegError(f"Video file not found: {video_path}")

    cmd = [
        settings.ffprobe_path,
        "-v", "error",
        "-print_format", "json",
        "-show_format",
        str(video_path)
    ]

    returncode, stdout, stderr = await _run_process(cmd, settings.transcode_timeout_seconds)
    if returncode != 0:
        raise FFmpegError(f"ffprobe failed: {stderr.strip()}", stderr)

    try:
        data = json.loads(stdout)
        duration = float(data.get("format", {}).get("duration", 0))
    except (json.JSONDecodeError, TypeError, ValueError) as e:
        raise FFmpegError(f"Failed to parse ffprobe output: {e}")

    if duration <= 0:
        raise FFmpegError(f"ffprobe reported no duration for {video_path.name}")
    return duration


def build_extract_command(
    source_path: str | Path,
    start: float,
    duration: float,
    output_path: str | Path,
    use_gpu: bool = False
) -> List[str]:
    """Build the ffmpeg command that cuts one segment and normalizes it."""
    if use_gpu:
        vcodec, preset = settings.gpu_video_codec, settings.gpu_preset
    else:
        vcodec, preset = settings.cpu_video_codec, settings.cpu_extract_preset

    width, height = settings.target_width, settings.target_height
    filters = (
        f"scale={width}:{height}:force_original_aspect_ratio=decrease,"
        f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2"
    )

    return [
        settings.ffmpeg_path,
        "-y",
        "-err_detect", "ignore_err",
        "-ignore_unknown",
        "-ss", f"{start:.3f}",
        "-i", str(source_path),
        "-t", f"{duration:.3f}",
        "-vf", filters,
        "-r", str(settings.target_fps),
        "-c:v", vcodec,
        "-preset", preset,
        "-c:a", settings.audio_codec,
        "-ar", str(settings.audio_sample_rate),
        "-ac", str(settings.audio_channels),
        "-pix_fmt", "yuv420p",
        str(output_path)
    ]


async def extract_segment(
    source_path: str | Path,
    start: float,
    duration: float,
    output_path: str | Path,
    use_gpu: bool = False
) -> str:
    """
    Extract one segment from a source video into a normalized file.

    Args:
        source_path: Path to source video
        start: Start time in seconds
        duration: Segment length in seconds
        output_path: Path for the segment file
        use_gpu: Encode with NVENC instead of x264

    Returns:
        ffmpeg diagnostic output

    Raises:
        FFmpegError: If ffmpeg fails
    """
    output_path = Path(output_path)

    # Ensure output directory exists
    output_path.parent.mkdir(parents=True, exist_ok=True)

    cmd = build_extract_command(source_path, start, duration, output_path, use_gpu)
    returncode, _, stderr = await _run_process(cmd, settings.transcode_timeout_seconds)

    if returncode != 0:
        raise FFmpegError(f"ffmpeg extract failed with exit code {returncode}", stderr)
    return stderr


def _escape_concat_path(path: str | Path) -> str:
    """Quote a path for the concat demuxer list file."""
    posix = Path(path).absolute().as_posix()
    return "'" + posix.replace("'", "'\\''") + "'"


def write_concat_list(segment_paths: Sequence[str | Path], list_path: Path) -> Path:
    """Write a concat demuxer list file with one `file` line per segment."""
    with open(list_path, "w", encoding="utf-8") as f:
        for p in segment_paths:
            f.write(f"file {_escape_concat_path(p)}\n")
    return list_path


def build_concat_command(list_path: Path, output_path: str | Path, use_gpu: bool = False) -> List[str]:
    if use_gpu:
        vcodec, preset = settings.gpu_video_codec, settings.gpu_preset
    else:
        vcodec, preset = settings.cpu_video_codec, settings.cpu_concat_preset

    return [
        settings.ffmpeg_path,
        "-y",
        "-f", "concat",
        "-safe", "0",
        "-i", str(list_path),
        "-c:v", vcodec,
        "-preset", preset,
        "-c:a", settings.audio_codec,
        str(output_path)
    ]


async def concat_segments(
    segment_paths: Sequence[str | Path],
    output_path: str | Path,
    use_gpu: bool = False
) -> str:
    """
    Concatenate normalized segments, in order, into one video.

    Args:
        segment_paths: Segment files in playback order
        output_path: Path for the merged video
        use_gpu: Encode with NVENC instead of x264

    Returns:
        ffmpeg diagnostic output

    Raises:
        FFmpegError: If ffmpeg fails
    """
    if not segment_paths:
        raise FFmpegError("No segments to concatenate")

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with tempfile.TemporaryDirectory(prefix="concat_") as tmp_dir:
        list_path = write_concat_list(segment_paths, Path(tmp_dir) / "list.txt")
        cmd = build_concat_command(list_path, output_path, use_gpu)
        returncode, _, stderr = await _run_process(cmd, settings.transcode_timeout_seconds)

    if returncode != 0:
        raise FFmpegError(f"ffmpeg concat failed with exit code {returncode}", stderr)
    return stderr
