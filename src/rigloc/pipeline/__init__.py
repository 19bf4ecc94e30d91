"""Pipeline orchestration package for synchronized rig localization.

Provides the pipeline context, its builder, the result log and the frame
loop.
"""

from .builder import build_pipeline_context
from .context import PipelineContext
from .results import FrameResult, PipelineState, ResultLog, RunSummary, TimingStats
from .runner import RigPipeline, run_pipeline

__all__ = [
    "RigPipeline",
    "PipelineContext",
    "PipelineState",
    "FrameResult",
    "ResultLog",
    "RunSummary",
    "TimingStats",
    "build_pipeline_context",
    "run_pipeline",
]
