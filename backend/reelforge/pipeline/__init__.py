# Highlight pipeline - planning, extraction and concatenation
"""
Highlight Pipeline

Planner -> bounded-parallel extraction -> concatenation.
"""
from .planner import SegmentRequest, FilePlan, plan_file, plan_segments
from .extraction import ExtractionOrchestrator, ExtractionResult
from .concatenation import concatenate_segments
from .runner import run_highlight_pipeline

__all__ = [
    "SegmentRequest",
    "FilePlan",
    "plan_file",
    "plan_segments",
    "ExtractionOrchestrator",
    "ExtractionResult",
    "concatenate_segments",
    "run_highlight_pipeline",
]
