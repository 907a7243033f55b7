"""Run model for tracking highlight runs."""
import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from sqlalchemy import Column, Integer, String, DateTime, Enum, Text

from reelforge.db.database import Base


class SessionState(str, enum.Enum):
    """Session state enumeration."""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class RunOutcome:
    """Terminal result of one pipeline run."""
    state: SessionState
    message: str
    output_path: Optional[str] = None
    segments_total: int = 0
    segments_ok: int = 0

    @property
    def success(self) -> bool:
        return self.state == SessionState.COMPLETED


class RunRecord(Base):
    """History entry for one highlight run."""

    __tablename__ = "runs"

    id = Column(Integer, primary_key=True, index=True)
    status = Column(Enum(SessionState), default=SessionState.RUNNING, nullable=False)

    # Progress tracking
    progress = Column(Integer, default=0, nullable=False)  # 0 to 100
    message = Column(String(4096), nullable=True)

    # Inputs and results
    config_json = Column(Text, nullable=False)
    file_count = Column(Integer, default=0, nullable=False)
    output_path = Column(String(4096), nullable=True)
    segments_total = Column(Integer, nullable=True)
    segments_ok = Column(Integer, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<RunRecord(id={self.id}, status={self.status})>"
