"""High-level map of the call coaching pipeline.

The stage runner in ``callcoach.pipelines.calls.runner`` owns the
asynchronous choreography; this module documents the canonical order so
team members can navigate the codebase more easily:

1. ``upload`` – store the recording and create the call (``uploaded``).
2. ``transcription`` – speech-to-text through the provider gateway.
3. ``analysis`` – score the transcript and persist the analysis.
4. ``coaching`` – build a coaching plan from the analysis.
5. ``progress`` – learners mark resources and take the quiz.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List


@dataclass(frozen=True)
class PipelineStage:
    """Human-readable description of one stage in the call pipeline."""

    order: int
    name: str
    module: str
    summary: str


class CallCoachingPipeline:
    """Utility wrapper documenting the upload → coaching flow."""

    _STAGES: List[PipelineStage] = [
        PipelineStage(
            1,
            "Upload",
            "callcoach.controllers.calls",
            "Validate the recording, store it and announce call-uploaded on the owner topic.",
        ),
        PipelineStage(
            2,
            "Transcription",
            "callcoach.pipelines.calls.transcription",
            "Load the audio and turn it into a transcript with the active provider.",
        ),
        PipelineStage(
            3,
            "Analysis",
            "callcoach.pipelines.calls.analysis",
            "Prompt the text model with the transcript and interpret the quality scores.",
        ),
        PipelineStage(
            4,
            "Coaching",
            "callcoach.pipelines.calls.coaching",
            "Prompt the text model with the analysis and interpret the coaching plan.",
        ),
        PipelineStage(
            5,
            "Learning Progress",
            "callcoach.services.progress",
            "Track completed resources and quiz attempts until the plan is completed.",
        ),
    ]

    @classmethod
    def describe(cls) -> Iterable[PipelineStage]:
        """Expose the ordered list of stages for debugging and documentation."""

        return tuple(cls._STAGES)


__all__ = ["CallCoachingPipeline", "PipelineStage"]
