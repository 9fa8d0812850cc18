"""Pipeline models and data structures.

Plain dataclasses passed between the pure pipeline functions and the
executors. None of them are persisted directly; ``FamilyContext`` is
serialized into ``game_families.family_context``.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

from .states import PipelineState


@dataclass(frozen=True)
class DataFlags:
    """Snapshot of which data a game already has."""

    has_rulebook: bool = False
    has_enrichment_summary: bool = False
    has_parsed_text: bool = False
    has_taxonomy: bool = False
    has_generated_content: bool = False


class StepOutcome(str, Enum):
    """Three possible results of running an executor."""

    success = "success"
    failed = "failed"  # rolled back, error recorded, retryable
    declined = "declined"  # precondition not met, nothing changed


@dataclass
class StepResult:
    """Result of one executor run."""

    outcome: StepOutcome
    state: PipelineState
    error: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.outcome is StepOutcome.success

    @property
    def failed(self) -> bool:
        return self.outcome is StepOutcome.failed

    @property
    def declined(self) -> bool:
        return self.outcome is StepOutcome.declined


@dataclass(frozen=True)
class GameStatus:
    """Minimal view of a game used for progress and ordering."""

    id: int
    name: str
    state: PipelineState
    has_rulebook: bool = False
    last_error: str | None = None
    year_published: int | None = None


@dataclass
class ProgressSnapshot:
    """Aggregate progress over a family, always recomputed from game state."""

    total: int
    completed: int
    progress: int
    by_state: dict[PipelineState, int]
    current_game: GameStatus | None
    current_stage: PipelineState | None
    needing_rulebook: list[GameStatus]
    errors: list[GameStatus]


@dataclass
class FamilyContext:
    """Condensed description of a base game embedded in expansion requests."""

    base_game_id: int
    base_game_name: str
    core_mechanics: list[str] = field(default_factory=list)
    core_theme: str | None = None
    base_rules_overview: str | None = None
    base_setup_summary: str | None = None
    component_types: list[str] = field(default_factory=list)
    origins: str | None = None
    reception: str | None = None
    awards: list[str] = field(default_factory=list)
    designers: list[str] = field(default_factory=list)
    publishers: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FamilyContext":
        known = {name for name in cls.__dataclass_fields__}
        return cls(**{key: value for key, value in data.items() if key in known})


@dataclass
class EnrichmentData:
    """Optional enrichment fields feeding the generation context."""

    summary: dict[str, Any] | None = None
    gameplay: str | None = None
    origins: str | None = None
    reception: str | None = None
    awards: list[dict[str, Any]] | None = None
    infobox: dict[str, Any] | None = None


@dataclass
class AIContext:
    """Rendered context sections sent along with a generation request."""

    enrichment_context: str | None
    family_context: str | None
    expansion_note: str | None
