"""Pipeline orchestrator and run state machine."""

from shipline.pipeline.orchestrator import PipelineOrchestrator
from shipline.pipeline.states import STAGE_ORDER, TRANSITIONS, RunStateMachine

__all__ = [
    "PipelineOrchestrator",
    "RunStateMachine",
    "STAGE_ORDER",
    "TRANSITIONS",
]
