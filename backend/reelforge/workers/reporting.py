"""Reporting sinks for log, progress and outcome of a run."""
import logging
from collections import deque
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from reelforge.api.schemas import RunConfig
from reelforge.config import settings
from reelforge.db.database import async_session_maker
from reelforge.models.run import RunOutcome, RunRecord, SessionState

logger = logging.getLogger(__name__)


class RunReporter:
    """
    Keeps the live view of the current run.

    Every log line also goes to the `logging` stream. Only the latest
    `history_size` lines are kept in memory.
    """

    def __init__(self, history_size: Optional[int] = None):
        self.logs = deque(maxlen=history_size or settings.log_history_size)
        self.progress_value = 0
        self.outcome: Optional[RunOutcome] = None

    async def started(self, config: RunConfig):
        """Reset the view for a new run."""
        self.logs.clear()
        self.progress_value = 0
        self.outcome = None

    async def log(self, message: str):
        logger.info(message)
        self.logs.append(message)

    async def progress(self, percent: int):
        self.progress_value = min(100, max(0, int(percent)))

    async def finished(self, outcome: RunOutcome):
        self.outcome = outcome
        if outcome.success:
            logger.info(f"Run completed: {outcome.message}")
        else:
            logger.warning(f"Run {outcome.state.value}: {outcome.message}")


class PersistingReporter(RunReporter):
    """RunReporter that also records each run in the database."""

    def __init__(self, session_maker=None, history_size: Optional[int] = None):
        super().__init__(history_size)
        self._session_maker = session_maker or async_session_maker
        self.run_id: Optional[int] = None

    async def started(self, config: RunConfig):
        await super().started(config)
        self.run_id = None
        try:
            async with self._session_maker() as session:
                record = RunRecord(
                    status=SessionState.RUNNING,
                    config_json=config.model_dump_json(),
                    file_count=len(config.files),
                    started_at=datetime.utcnow(),
                )
                session.add(record)
                await session.commit()
                self.run_id = record.id
        except SQLAlchemyError as e:
            logger.warning(f"Could not record run start: {e}")

    async def finished(self, outcome: RunOutcome):
        await super().finished(outcome)
        if self.run_id is None:
            return
        try:
            async with self._session_maker() as session:
                record = await session.get(RunRecord, self.run_id)
                if record:
                    record.status = outcome.state
                    record.progress = self.progress_value
                    record.message = outcome.message
                    record.output_path = outcome.output_path
                    record.segments_total = outcome.segments_total
                    record.segments_ok = outcome.segments_ok
                    record.completed_at = datetime.utcnow()
                    await session.commit()
        except SQLAlchemyError as e:
            logger.warning(f"Could not record outcome of run {self.run_id}: {e}")
