"""Pipeline states, their display metadata and classification.

A game moves through eleven states:

    imported -> enriched -> (rulebook_missing | rulebook_ready) -> parsing
    -> parsed -> taxonomy_assigned -> generating -> generated
    -> review_pending -> published

``rulebook_missing`` and ``review_pending`` block until a human acts.
``parsing`` and ``generating`` mark in-flight external work and are only
left through an executor's success or failure path. Everything else
advances automatically once the data checks in ``transitions`` pass.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import assert_never


class PipelineState(str, Enum):
    imported = "imported"
    enriched = "enriched"
    rulebook_missing = "rulebook_missing"
    rulebook_ready = "rulebook_ready"
    parsing = "parsing"
    parsed = "parsed"
    taxonomy_assigned = "taxonomy_assigned"
    generating = "generating"
    generated = "generated"
    review_pending = "review_pending"
    published = "published"

    @classmethod
    def ordered(cls) -> list["PipelineState"]:
        """Return states in pipeline order."""
        return list(cls)


class StateKind(str, Enum):
    auto = "auto"
    blocking = "blocking"
    processing = "processing"


@dataclass(frozen=True)
class StateInfo:
    label: str
    description: str
    can_progress: bool


STATE_INFO: dict[PipelineState, StateInfo] = {
    PipelineState.imported: StateInfo("Imported", "BGG data imported, awaiting enrichment", True),
    PipelineState.enriched: StateInfo("Enriched", "Wikidata + Wikipedia data fetched", True),
    PipelineState.rulebook_missing: StateInfo("No Rulebook", "Waiting for manual rulebook URL", False),
    PipelineState.rulebook_ready: StateInfo("Rulebook Ready", "Rulebook URL confirmed", True),
    PipelineState.parsing: StateInfo("Parsing", "Extracting text from rulebook", True),
    PipelineState.parsed: StateInfo("Parsed", "Rulebook text extracted", True),
    PipelineState.taxonomy_assigned: StateInfo("Categorized", "Categories/mechanics assigned", True),
    PipelineState.generating: StateInfo("Generating", "AI content being generated", True),
    PipelineState.generated: StateInfo("Generated", "AI content ready for review", True),
    PipelineState.review_pending: StateInfo("Review", "Ready for human review", False),
    PipelineState.published: StateInfo("Published", "Live on site", False),
}

_STATUS_MESSAGES: dict[PipelineState, str] = {
    PipelineState.imported: "Imported from BGG, awaiting enrichment",
    PipelineState.enriched: "Enriched with external data, checking rulebook",
    PipelineState.rulebook_missing: "Waiting for rulebook URL",
    PipelineState.rulebook_ready: "Rulebook confirmed, ready to parse",
    PipelineState.parsing: "Parsing rulebook...",
    PipelineState.parsed: "Rulebook parsed, assigning taxonomy",
    PipelineState.taxonomy_assigned: "Categories assigned, ready to generate content",
    PipelineState.generating: "Generating AI content...",
    PipelineState.generated: "Content generated, ready for review",
    PipelineState.review_pending: "Awaiting human review",
    PipelineState.published: "Published and live",
}


def classify(state: PipelineState) -> StateKind:
    """Classify a state as auto-advancing, blocking or processing.

    Every member is matched explicitly; a new state without a case here
    fails type checking at ``assert_never``.
    """
    match state:
        case PipelineState.rulebook_missing | PipelineState.review_pending:
            return StateKind.blocking
        case PipelineState.parsing | PipelineState.generating:
            return StateKind.processing
        case (
            PipelineState.imported
            | PipelineState.enriched
            | PipelineState.rulebook_ready
            | PipelineState.parsed
            | PipelineState.taxonomy_assigned
            | PipelineState.generated
            | PipelineState.published
        ):
            return StateKind.auto
        case _:
            assert_never(state)


def is_blocking(state: PipelineState) -> bool:
    return classify(state) is StateKind.blocking


def is_processing(state: PipelineState) -> bool:
    return classify(state) is StateKind.processing


def stable_predecessor(state: PipelineState) -> PipelineState:
    """State a processing state rolls back to when its work fails or times out."""
    if state is PipelineState.parsing:
        return PipelineState.rulebook_ready
    if state is PipelineState.generating:
        return PipelineState.taxonomy_assigned
    raise ValueError(f"{state.value} is not a processing state")


def status_message(state: PipelineState, error: str | None = None) -> str:
    """Human-readable status line for a game, preferring its error when set."""
    if error:
        return f"Error: {error}"
    return _STATUS_MESSAGES[state]


def coerce_state(value: str | PipelineState | None) -> PipelineState:
    """Read a persisted state value; unset rows are treated as freshly imported."""
    if value is None:
        return PipelineState.imported
    return PipelineState(value)
