"""Highlight Pipeline Runner.

Plans segments for every source, extracts them in parallel and merges the
survivors into one video.
"""
import asyncio
import logging
from pathlib import Path
from typing import Optional

import numpy as np

from reelforge.api.schemas import RunConfig
from reelforge.config import settings
from reelforge.models.run import RunOutcome, SessionState
from .planner import Prober, plan_segments, shuffle_requests
from .extraction import ExtractionOrchestrator, Transcoder
from .concatenation import (
    Concatenator,
    concatenate_segments,
    existing_segments,
    remove_segments,
)

logger = logging.getLogger(__name__)


async def run_highlight_pipeline(
    config: RunConfig,
    *,
    prober: Prober,
    transcoder: Transcoder,
    concatenator: Concatenator,
    reporter,
    cancel_event: asyncio.Event,
    rng: Optional[np.random.Generator] = None,
    scratch_dir: Optional[Path] = None,
) -> RunOutcome:
    """
    Run the full highlight pipeline once.

    Args:
        config: Run configuration
        prober: Async callable returning a source's duration
        transcoder: Async callable extracting one segment
        concatenator: Async callable merging segment files
        reporter: Receives log lines and progress percentages
        cancel_event: Stops further segment submission once set
        rng: Random generator (seeded from config.seed if not provided)
        scratch_dir: Directory for temporary segments (defaults to settings)

    Returns:
        RunOutcome describing how the run ended
    """
    rng = rng or np.random.default_rng(config.seed)
    cleanup_on_failure = settings.cleanup_segments_on_failure

    await reporter.log(f"Starting processing {len(config.files)} files...")

    # Stage 1: Planning
    requests = await plan_segments(config, prober, reporter.log, rng, scratch_dir)
    if not requests:
        return RunOutcome(state=SessionState.FAILED, message="No segments to process")

    if config.shuffle_segments:
        requests = shuffle_requests(requests, rng)

    await reporter.log(f"Planned {len(requests)} segments")

    # Stage 2: Extraction
    orchestrator = ExtractionOrchestrator(transcoder, reporter, use_gpu=config.gpu)
    extraction = await orchestrator.run(requests, cancel_event)
    expected_paths = [r.output_path for r in requests]

    if extraction.cancelled:
        if cleanup_on_failure:
            remove_segments(existing_segments(expected_paths))
        return RunOutcome(
            state=SessionState.CANCELLED,
            message="Cancelled",
            segments_total=len(requests),
            segments_ok=extraction.succeeded,
        )

    logger.info(
        f"Extraction finished: {extraction.succeeded} ok, {extraction.failed} failed "
        f"of {extraction.total}"
    )

    # Stage 3: Concatenation
    return await concatenate_segments(
        expected_paths,
        config.output_path,
        config.gpu,
        concatenator,
        reporter,
        cleanup_on_failure=cleanup_on_failure,
    )
