"""API routes."""
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from reelforge.db.database import get_db
from reelforge.models.run import RunRecord
from reelforge.utils.ffmpeg import check_ffmpeg_available, check_ffprobe_available
from reelforge.workers import session as session_module
from reelforge.api.schemas import (
    RunConfig,
    StartRunResponse,
    StopRunResponse,
    RunOutcomeResponse,
    RunStatusResponse,
    RunRecordResponse,
    HealthResponse,
)

router = APIRouter()
logger = logging.getLogger(__name__)


# =============================================================================
# Health & System
# =============================================================================

@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Check API health and dependencies."""
    ffmpeg_ok = check_ffmpeg_available()
    ffprobe_ok = check_ffprobe_available()

    all_ok = ffmpeg_ok and ffprobe_ok

    message = None
    if not all_ok:
        missing = []
        if not ffmpeg_ok:
            missing.append("ffmpeg")
        if not ffprobe_ok:
            missing.append("ffprobe")
        message = f"Missing dependencies: {', '.join(missing)}"

    return HealthResponse(
        status="healthy" if all_ok else "degraded",
        ffmpeg_available=ffmpeg_ok,
        ffprobe_available=ffprobe_ok,
        message=message
    )


# =============================================================================
# Runs
# =============================================================================

@router.post("/runs", response_model=StartRunResponse, status_code=202)
async def start_run(config: RunConfig):
    """Start a highlight run in the background."""
    job_session = session_module.job_session
    started = await job_session.start(config)
    if not started:
        raise HTTPException(status_code=409, detail="A run is already in progress")

    logger.info(f"Started run with {len(config.files)} files -> {config.output_path}")
    return StartRunResponse(
        started=True,
        run_id=getattr(job_session.reporter, "run_id", None),
        message=f"Processing {len(config.files)} files",
    )


@router.post("/runs/stop", response_model=StopRunResponse)
async def stop_run():
    """Ask the current run to stop. Segments already being extracted finish first."""
    if not session_module.job_session.stop():
        raise HTTPException(status_code=409, detail="No run in progress")
    return StopRunResponse(stopping=True, message="Stopping after in-flight segments")


@router.get("/runs/current", response_model=RunStatusResponse)
async def get_current_run(tail: int = Query(100, ge=0, le=1000)):
    """Get the live state of the current or last run."""
    job_session = session_module.job_session
    reporter = job_session.reporter

    logs = list(reporter.logs)
    outcome = None
    if reporter.outcome is not None:
        outcome = RunOutcomeResponse(
            success=reporter.outcome.success,
            message=reporter.outcome.message,
        )

    return RunStatusResponse(
        state=job_session.state.value,
        running=job_session.is_running,
        progress=reporter.progress_value,
        logs=logs[-tail:] if tail else [],
        outcome=outcome,
    )


@router.get("/runs", response_model=List[RunRecordResponse])
async def list_runs(
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db)
):
    """List past runs, newest first."""
    result = await db.execute(
        select(RunRecord)
        .order_by(RunRecord.created_at.desc(), RunRecord.id.desc())
        .limit(limit)
    )
    runs = result.scalars().all()
    return [RunRecordResponse.model_validate(r) for r in runs]
