# Models module
from reelforge.models.run import RunOutcome, RunRecord, SessionState

__all__ = ["RunOutcome", "RunRecord", "SessionState"]
