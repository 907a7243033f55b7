"""Job session owning the lifecycle of one highlight run."""
import asyncio
import logging
import traceback
from pathlib import Path
from typing import Optional

from reelforge.api.schemas import RunConfig
from reelforge.models.run import RunOutcome, SessionState
from reelforge.pipeline.runner import run_highlight_pipeline
from reelforge.utils.ffmpeg import probe_duration, extract_segment, concat_segments
from reelforge.workers.reporting import PersistingReporter, RunReporter

logger = logging.getLogger(__name__)


class JobSession:
    """
    Runs one highlight pipeline at a time in the background.

    States go Idle -> Running -> Completed/Failed/Cancelled. A new run may
    start from Idle or any terminal state; starting while Running is refused.
    """

    def __init__(
        self,
        prober=probe_duration,
        transcoder=extract_segment,
        concatenator=concat_segments,
        reporter: Optional[RunReporter] = None,
        scratch_dir: Optional[Path] = None,
    ):
        self.prober = prober
        self.transcoder = transcoder
        self.concatenator = concatenator
        self.reporter = reporter or RunReporter()
        self.scratch_dir = scratch_dir
        self.state = SessionState.IDLE
        self.last_outcome: Optional[RunOutcome] = None
        self._cancel_event: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self.state == SessionState.RUNNING

    async def start(self, config: RunConfig) -> bool:
        """
        Start a run in the background.

        Args:
            config: Run configuration

        Returns:
            True if the run started, False if one is already running
        """
        if self.is_running:
            logger.warning("A run is already in progress")
            return False

        cancel_event = asyncio.Event()
        self._cancel_event = cancel_event
        self.state = SessionState.RUNNING
        self.last_outcome = None

        try:
            await self.reporter.started(config)
        except Exception:
            self.state = SessionState.IDLE
            raise
        self._task = asyncio.create_task(self._run(config, cancel_event))
        return True

    def stop(self) -> bool:
        """Ask the current run to stop submitting segments. Does not wait."""
        if not self.is_running or self._cancel_event is None:
            return False
        self._cancel_event.set()
        logger.info("Cancellation requested")
        return True

    async def wait(self) -> Optional[RunOutcome]:
        """Wait for the current run to finish and return its outcome."""
        if self._task is not None:
            await self._task
        return self.last_outcome

    async def _run(self, config: RunConfig, cancel_event: asyncio.Event):
        """Run the pipeline, turning every way it can end into one outcome."""
        try:
            outcome = await run_highlight_pipeline(
                config,
                prober=self.prober,
                transcoder=self.transcoder,
                concatenator=self.concatenator,
                reporter=self.reporter,
                cancel_event=cancel_event,
                scratch_dir=self.scratch_dir,
            )

        except asyncio.CancelledError:
            outcome = RunOutcome(state=SessionState.CANCELLED, message="Cancelled")
            logger.info("Run task was cancelled")

        except Exception as e:
            logger.error(f"Run crashed: {e}\n{traceback.format_exc()}")
            await self.reporter.log(f"Panic: {e}")
            outcome = RunOutcome(state=SessionState.FAILED, message=f"Critical error: {e}")

        self.last_outcome = outcome
        self.state = outcome.state
        await self.reporter.finished(outcome)

    async def shutdown(self):
        """Cancel the current run, if any, and wait for it."""
        if self._task is not None and not self._task.done():
            self.stop()
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)


# Global session instance
job_session = JobSession(reporter=PersistingReporter())
