"""
Segment planning.

Turns a run config and each source's probed duration into an ordered list
of extraction requests.

Sequential mode packs contiguous segments of the mean length right after the
start offset. Randomized mode draws every segment independently, so segments
taken from the same file may overlap.
"""
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Tuple

import numpy as np

from reelforge.api.schemas import RunConfig
from reelforge.config import settings
from reelforge.utils.ffmpeg import FFmpegError

logger = logging.getLogger(__name__)

# A source must have more than this much footage after the offset
MIN_USABLE_SECONDS = 1.0

Prober = Callable[[str], Awaitable[float]]
LogCallback = Callable[[str], Awaitable[None]]


@dataclass(frozen=True)
class SegmentRequest:
    """One segment to cut out of a source video."""
    source_path: str
    start: float
    duration: float
    output_path: str

    @property
    def end(self) -> float:
        return self.start + self.duration

    def __repr__(self):
        return (
            f"SegmentRequest({Path(self.source_path).name} "
            f"{self.start:.2f}-{self.end:.2f}, dur={self.duration:.2f}s)"
        )


@dataclass
class FilePlan:
    """Planning result for a single source file."""
    source_path: str
    duration: float
    requests: List[SegmentRequest] = field(default_factory=list)
    skip_reason: Optional[str] = None

    @property
    def skipped(self) -> bool:
        return self.skip_reason is not None


def segment_output_path(
    source_path: str,
    file_index: int,
    segment_index: int,
    scratch_dir: Path
) -> Path:
    """
    Build a unique scratch path for one segment.

    The file's position in the config keeps duplicate sources apart within a
    run; the nanosecond timestamp keeps runs apart.
    """
    stem = Path(source_path).stem or "source"
    name = f"{stem}_{file_index}_seg_{segment_index}_{time.time_ns()}.mp4"
    return scratch_dir / name


def draw_segment_count(config: RunConfig, rng: np.random.Generator) -> int:
    """Draw how many segments to take from one file."""
    return int(rng.integers(config.count_min, config.count_max, endpoint=True))


def plan_sequential_windows(
    duration: float,
    offset: float,
    count: int,
    segment_min: float,
    segment_max: float
) -> List[Tuple[float, float]]:
    """
    Pack up to `count` back-to-back windows of the mean segment length.

    Returns:
        List of (start, length) tuples
    """
    seg_len = (segment_min + segment_max) / 2.0
    windows = []
    cursor = offset
    for _ in range(count):
        if cursor + seg_len > duration:
            break
        windows.append((cursor, seg_len))
        cursor += seg_len
    return windows


def plan_random_windows(
    duration: float,
    offset: float,
    count: int,
    segment_min: float,
    segment_max: float,
    rng: np.random.Generator
) -> List[Tuple[float, float]]:
    """
    Draw up to `count` independent windows after the offset.

    Windows are not checked against each other and may overlap.

    Returns:
        List of (start, length) tuples
    """
    windows = []
    for _ in range(count):
        seg_len = float(rng.uniform(segment_min, segment_max))
        if duration - offset < seg_len:
            break
        start = float(rng.uniform(offset, duration - seg_len))
        # uniform() is half-open but rounding can still land on the edge
        start = min(max(start, offset), duration - seg_len)
        windows.append((start, seg_len))
    return windows


def plan_file(
    source_path: str,
    duration: float,
    config: RunConfig,
    rng: np.random.Generator,
    file_index: int = 0,
    scratch_dir: Optional[Path] = None
) -> FilePlan:
    """
    Plan the segments for one source file.

    Args:
        source_path: Path to the source video
        duration: Probed duration in seconds
        config: Run configuration
        rng: Random generator shared by the whole run
        file_index: Position of the file in config.files
        scratch_dir: Directory for segment files (defaults to settings)

    Returns:
        FilePlan with the requests, or with a skip reason
    """
    scratch_dir = scratch_dir or settings.scratch_dir
    offset = config.start_offset_seconds
    plan = FilePlan(source_path=source_path, duration=duration)

    if duration <= offset + MIN_USABLE_SECONDS:
        plan.skip_reason = f"too short ({duration:.1f}s with a {offset:.0f}s start offset)"
        return plan

    if config.random_time and duration - offset < config.segment_max:
        plan.skip_reason = (
            f"not enough room for a {config.segment_max:g}s segment "
            f"after the {offset:.0f}s start offset"
        )
        return plan

    count = draw_segment_count(config, rng)

    if config.random_time:
        windows = plan_random_windows(
            duration, offset, count, config.segment_min, config.segment_max, rng
        )
    else:
        windows = plan_sequential_windows(
            duration, offset, count, config.segment_min, config.segment_max
        )

    for i, (start, seg_len) in enumerate(windows):
        out_path = segment_output_path(source_path, file_index, i, scratch_dir)
        plan.requests.append(SegmentRequest(
            source_path=source_path,
            start=start,
            duration=seg_len,
            output_path=str(out_path),
        ))

    return plan


async def plan_segments(
    config: RunConfig,
    prober: Prober,
    log: LogCallback,
    rng: np.random.Generator,
    scratch_dir: Optional[Path] = None
) -> List[SegmentRequest]:
    """
    Probe and plan every file of the config, in config order.

    Files that cannot be probed or are too short are skipped and logged.

    Returns:
        All segment requests, grouped by file in config order
    """
    requests: List[SegmentRequest] = []

    for file_index, source_path in enumerate(config.files):
        try:
            duration = await prober(source_path)
        except FFmpegError as e:
            await log(f"Skipping {source_path}: {e}")
            continue

        plan = plan_file(source_path, duration, config, rng, file_index, scratch_dir)
        if plan.skipped:
            await log(f"Skipping {source_path}: {plan.skip_reason}")
            continue

        if not plan.requests:
            await log(f"No segment fits in {source_path} ({duration:.1f}s)")
            continue

        logger.debug(f"Planned {len(plan.requests)} segments for {source_path}: {plan.requests}")
        requests.extend(plan.requests)

    return requests


def shuffle_requests(
    requests: List[SegmentRequest],
    rng: np.random.Generator
) -> List[SegmentRequest]:
    """Return the requests in a random order across all files."""
    order = rng.permutation(len(requests))
    return [requests[i] for i in order]
