"""Vecna content pipeline.

Games move through a fixed sequence of states from BGG import to
publication. The pure pieces (state model, transitions, context builders)
are exported here; executors, the runner and human actions touch the
database and are imported from their own modules.

Usage:
    from vecna.pipeline.runner import PipelineRunner, ProcessOptions

    with get_session() as session:
        with PipelineRunner(session) as runner:
            summary = runner.process_family(family_id, ProcessOptions())
"""

from .context import build_ai_context, build_context, build_family_context
from .models import DataFlags, FamilyContext, GameStatus, ProgressSnapshot, StepOutcome, StepResult
from .states import PipelineState, StateKind, classify, is_blocking, is_processing
from .transitions import calculate_progress, next_state, sort_for_processing

__all__ = [
    "DataFlags",
    "FamilyContext",
    "GameStatus",
    "PipelineState",
    "ProgressSnapshot",
    "StateKind",
    "StepOutcome",
    "StepResult",
    "build_ai_context",
    "build_context",
    "build_family_context",
    "calculate_progress",
    "classify",
    "is_blocking",
    "is_processing",
    "next_state",
    "sort_for_processing",
]
