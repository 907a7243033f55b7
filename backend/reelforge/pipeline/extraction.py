"""Bounded-parallel segment extraction."""
import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

from reelforge.config import settings
from reelforge.pipeline.planner import SegmentRequest
from reelforge.utils.ffmpeg import FFmpegError

logger = logging.getLogger(__name__)

Transcoder = Callable[[str, float, float, str, bool], Awaitable[str]]


@dataclass
class ExtractionResult:
    """Counts for one extraction pass."""
    total: int
    succeeded: int = 0
    failed: int = 0
    cancelled: bool = False

    @property
    def dispatched(self) -> int:
        return self.succeeded + self.failed


class ExtractionOrchestrator:
    """
    Runs segment extractions with at most `max_parallel` transcodes in flight.

    Cancellation is checked each time a request is about to be handed to the
    transcoder. Transcodes that already started always run to completion.
    A failed segment is logged and counted, never raised.
    """

    def __init__(
        self,
        transcoder: Transcoder,
        reporter,
        use_gpu: bool = False,
        max_parallel: Optional[int] = None,
        progress_weight: Optional[int] = None,
    ):
        self.transcoder = transcoder
        self.reporter = reporter
        self.use_gpu = use_gpu
        self.max_parallel = max_parallel or settings.max_parallel_extractions
        self.progress_weight = (
            settings.extraction_progress_weight if progress_weight is None else progress_weight
        )
        self._lock = asyncio.Lock()

    async def run(
        self,
        requests: List[SegmentRequest],
        cancel_event: asyncio.Event
    ) -> ExtractionResult:
        """
        Extract all requests in order of submission.

        Args:
            requests: Segment requests, already in final order
            cancel_event: Set by the session when the user asks to stop

        Returns:
            ExtractionResult once every dispatched transcode has finished
        """
        result = ExtractionResult(total=len(requests))
        semaphore = asyncio.Semaphore(self.max_parallel)
        tasks = []

        for request in requests:
            await semaphore.acquire()
            if cancel_event.is_set():
                semaphore.release()
                result.cancelled = True
                logger.info(
                    f"Cancellation observed after dispatching {len(tasks)}/{len(requests)} segments"
                )
                break
            tasks.append(asyncio.create_task(
                self._extract_one(request, semaphore, result)
            ))

        if tasks:
            await asyncio.gather(*tasks)

        return result

    async def _extract_one(
        self,
        request: SegmentRequest,
        semaphore: asyncio.Semaphore,
        result: ExtractionResult
    ):
        try:
            error = None
            try:
                await self.transcoder(
                    request.source_path,
                    request.start,
                    request.duration,
                    request.output_path,
                    self.use_gpu,
                )
            except FFmpegError as e:
                error = e
                if e.stderr:
                    logger.debug(f"ffmpeg output for {request}:\n{e.stderr}")
            except Exception as e:
                logger.exception(f"Unexpected error extracting {request}")
                error = e

            async with self._lock:
                if error is None:
                    result.succeeded += 1
                else:
                    result.failed += 1
                percent = int(result.dispatched / result.total * self.progress_weight)
                await self.reporter.progress(percent)
                if error is None:
                    await self.reporter.log(f"Extracted segment: {Path(request.output_path).name}")
                else:
                    await self.reporter.log(f"Failed to extract {request.source_path}: {error}")
        finally:
            semaphore.release()
