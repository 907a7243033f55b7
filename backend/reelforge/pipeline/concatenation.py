"""Final concatenation of extracted segments."""
import logging
from pathlib import Path
from typing import Awaitable, Callable, List, Sequence

from reelforge.models.run import RunOutcome, SessionState
from reelforge.utils.ffmpeg import FFmpegError

logger = logging.getLogger(__name__)

Concatenator = Callable[[Sequence[str], str, bool], Awaitable[str]]


def existing_segments(paths: Sequence[str]) -> List[str]:
    """Keep only the paths that exist as regular files, preserving order."""
    return [p for p in paths if Path(p).is_file()]


def _last_line(text: str) -> str:
    lines = [line.strip() for line in (text or "").splitlines() if line.strip()]
    return lines[-1] if lines else ""


def remove_segments(paths: Sequence[str]) -> int:
    """Delete temporary segment files. Returns how many were removed."""
    removed = 0
    for p in paths:
        try:
            Path(p).unlink()
            removed += 1
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove temporary segment {p}: {e}")
    return removed


async def concatenate_segments(
    expected_paths: Sequence[str],
    output_path: str,
    use_gpu: bool,
    concatenator: Concatenator,
    reporter,
    cleanup_on_failure: bool = False,
) -> RunOutcome:
    """
    Merge the segments that survived extraction into the final video.

    A missing segment file counts as a failed extraction, whatever the
    transcoder reported. Temporary segments are deleted after a successful
    merge; on failure they stay on disk unless `cleanup_on_failure` is set.

    Args:
        expected_paths: Segment paths from planning, in final order
        output_path: Destination of the merged video
        use_gpu: Encode with hardware acceleration
        concatenator: Async callable doing the actual merge
        reporter: Receives log and progress updates
        cleanup_on_failure: Also delete segments when the merge fails

    Returns:
        Completed or failed RunOutcome
    """
    survivors = existing_segments(expected_paths)
    total = len(expected_paths)

    if not survivors:
        return RunOutcome(
            state=SessionState.FAILED,
            message="Extraction failed for all segments",
            segments_total=total,
        )

    if len(survivors) < total:
        await reporter.log(f"{total - len(survivors)} of {total} segments are missing, merging the rest")

    await reporter.log("Concatenating segments...")
    try:
        await concatenator(survivors, output_path, use_gpu)
    except FFmpegError as e:
        message = f"Concat failed: {e}"
        diagnostic = _last_line(e.stderr)
        if diagnostic:
            logger.debug(f"ffmpeg concat output:\n{e.stderr}")
            message = f"{message}: {diagnostic}"
        if cleanup_on_failure:
            remove_segments(survivors)
        return RunOutcome(
            state=SessionState.FAILED,
            message=message,
            segments_total=total,
            segments_ok=len(survivors),
        )

    await reporter.progress(100)

    removed = remove_segments(survivors)
    logger.info(f"Removed {removed} temporary segments")

    return RunOutcome(
        state=SessionState.COMPLETED,
        message=output_path,
        output_path=output_path,
        segments_total=total,
        segments_ok=len(survivors),
    )
