"""Background pipeline that takes a call from audio to coaching plan."""

from .flow import CallCoachingPipeline, PipelineStage
from .runner import StageRunner
from .types import StageAck, StageContext

__all__ = [
    "CallCoachingPipeline",
    "PipelineStage",
    "StageAck",
    "StageContext",
    "StageRunner",
]
