"""Pydantic schemas for API requests and responses."""
from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, ConfigDict, Field, model_validator

from reelforge.models.run import SessionState


# =============================================================================
# Run Schemas
# =============================================================================

class RunConfig(BaseModel):
    """Sampling policy and inputs for one highlight run."""

    model_config = ConfigDict(frozen=True)

    files: List[str] = Field(..., min_length=1, description="Source videos, in planning order")
    count_min: int = Field(1, ge=1, description="Minimum segments per file")
    count_max: int = Field(1, ge=1, description="Maximum segments per file")
    segment_min: float = Field(..., gt=0, description="Minimum segment length (seconds)")
    segment_max: float = Field(..., gt=0, description="Maximum segment length (seconds)")
    start_offset_min: float = Field(0, ge=0, description="Minutes skipped at the start of every file")
    random_time: bool = Field(False, description="Randomized segment placement instead of sequential")
    shuffle_segments: bool = Field(False, description="Shuffle the final segment order across files")
    gpu: bool = Field(False, description="Use hardware accelerated encoding")
    output_path: str = Field(..., min_length=1, description="Destination of the merged video")
    seed: Optional[int] = Field(None, description="Random seed for reproducible plans")

    @model_validator(mode="after")
    def check_bounds(self) -> "RunConfig":
        if self.count_min > self.count_max:
            raise ValueError("count_min must not exceed count_max")
        if self.segment_min > self.segment_max:
            raise ValueError("segment_min must not exceed segment_max")
        return self

    @property
    def start_offset_seconds(self) -> float:
        return self.start_offset_min * 60.0


class StartRunResponse(BaseModel):
    """Response after a run was accepted."""
    started: bool
    run_id: Optional[int] = None
    message: str


class StopRunResponse(BaseModel):
    """Response after cancellation was requested."""
    stopping: bool
    message: str


class RunOutcomeResponse(BaseModel):
    """Terminal outcome of a run."""
    success: bool
    message: str


class RunStatusResponse(BaseModel):
    """Live state of the current session."""
    state: str
    running: bool
    progress: int
    logs: List[str]
    outcome: Optional[RunOutcomeResponse] = None


class RunRecordResponse(BaseModel):
    """Persisted run history entry."""
    id: int
    status: SessionState
    progress: int
    message: Optional[str]
    output_path: Optional[str]
    file_count: int
    segments_total: Optional[int]
    segments_ok: Optional[int]
    created_at: datetime
    started_at: Optional[datetime]
    completed_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


# =============================================================================
# Health
# =============================================================================

class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    ffmpeg_available: bool
    ffprobe_available: bool
    message: Optional[str] = None
