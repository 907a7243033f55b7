#!/usr/bin/env python3
"""
CLI tool to build a highlight reel from a batch of videos.

Usage:
    python scripts/make_highlights_cli.py <video> [<video> ...] --output <file> [options]

Example:
    python scripts/make_highlights_cli.py ~/Videos/*.mp4 --output reel.mp4 \
        --count 2 4 --segment 5 10 --offset-min 1 --random-time --shuffle

Press Ctrl+C once to stop after the segments already being extracted.
"""
import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from pydantic import ValidationError

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from reelforge.api.schemas import RunConfig
from reelforge.workers.reporting import RunReporter
from reelforge.workers.session import JobSession


logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
)
logger = logging.getLogger(__name__)


class ConsoleReporter(RunReporter):
    """Prints progress changes on top of the regular log stream."""

    async def progress(self, percent: int):
        previous = self.progress_value
        await super().progress(percent)
        if self.progress_value != previous:
            logger.info(f"Progress: {self.progress_value}%")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Build a highlight reel from several videos")
    parser.add_argument("files", nargs="+", help="Source video files")
    parser.add_argument("--output", "-o", required=True, help="Output video path")
    parser.add_argument(
        "--count", nargs=2, type=int, default=[1, 3], metavar=("MIN", "MAX"),
        help="Segments per file (default: 1 3)"
    )
    parser.add_argument(
        "--segment", nargs=2, type=float, default=[5.0, 10.0], metavar=("MIN", "MAX"),
        help="Segment length in seconds (default: 5 10)"
    )
    parser.add_argument("--offset-min", type=float, default=0.0, help="Minutes to skip at the start of each file")
    parser.add_argument("--random-time", action="store_true", help="Pick segment positions at random")
    parser.add_argument("--shuffle", action="store_true", help="Shuffle segments across files")
    parser.add_argument("--gpu", action="store_true", help="Use NVENC hardware encoding")
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> RunConfig:
    return RunConfig(
        files=args.files,
        count_min=args.count[0],
        count_max=args.count[1],
        segment_min=args.segment[0],
        segment_max=args.segment[1],
        start_offset_min=args.offset_min,
        random_time=args.random_time,
        shuffle_segments=args.shuffle,
        gpu=args.gpu,
        output_path=args.output,
        seed=args.seed,
    )


async def run(config: RunConfig) -> bool:
    """Run one session to completion. Returns True on success."""
    session = JobSession(reporter=ConsoleReporter())

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, session.stop)
    except NotImplementedError:
        # Windows event loops have no signal handlers
        pass

    await session.start(config)
    outcome = await session.wait()

    if outcome is None:
        return False
    if outcome.success:
        logger.info(f"Done: {outcome.output_path} ({outcome.segments_ok}/{outcome.segments_total} segments)")
    else:
        logger.error(f"Failed: {outcome.message}")
    return outcome.success


def main(argv=None) -> int:
    args = parse_args(argv)
    try:
        config = build_config(args)
    except ValidationError as e:
        logger.error(f"Invalid options:\n{e}")
        return 2
    return 0 if asyncio.run(run(config)) else 1


if __name__ == "__main__":
    sys.exit(main())
