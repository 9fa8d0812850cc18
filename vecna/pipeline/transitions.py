"""Pure transition logic: next state, family progress and processing order."""

from __future__ import annotations

from collections import Counter
from typing import Iterable, Sequence, TypeVar

from .models import DataFlags, GameStatus, ProgressSnapshot
from .states import PipelineState, is_processing

# Share of total value a game represents once it reaches each state.
# Monotonically non-decreasing along the pipeline, 0 < w <= 1.
STATE_WEIGHTS: dict[PipelineState, float] = {
    PipelineState.imported: 0.05,
    PipelineState.enriched: 0.15,
    PipelineState.rulebook_missing: 0.15,
    PipelineState.rulebook_ready: 0.25,
    PipelineState.parsing: 0.35,
    PipelineState.parsed: 0.45,
    PipelineState.taxonomy_assigned: 0.55,
    PipelineState.generating: 0.65,
    PipelineState.generated: 0.80,
    PipelineState.review_pending: 0.90,
    PipelineState.published: 1.0,
}

MISSING_YEAR_SORT_KEY = 9999

T = TypeVar("T")


def next_state(current: PipelineState, flags: DataFlags) -> PipelineState | None:
    """Return the state a game should move to automatically, or None.

    None means nothing automatic can happen: the game is blocked on a
    human, waiting on in-flight work, or done.
    """
    if current is PipelineState.imported:
        return PipelineState.enriched if flags.has_enrichment_summary else None
    if current is PipelineState.enriched:
        return PipelineState.rulebook_ready if flags.has_rulebook else PipelineState.rulebook_missing
    if current is PipelineState.rulebook_missing:
        return PipelineState.rulebook_ready if flags.has_rulebook else None
    if current is PipelineState.rulebook_ready:
        return PipelineState.parsing
    if current is PipelineState.parsed:
        return PipelineState.taxonomy_assigned
    if current is PipelineState.taxonomy_assigned:
        return PipelineState.generating
    if current is PipelineState.generated:
        return PipelineState.review_pending
    # parsing, generating: processing; review_pending, published: terminal for automation
    return None


def calculate_progress(games: Sequence[GameStatus]) -> ProgressSnapshot:
    """Aggregate weighted progress and blocker lists for a set of games."""
    by_state: dict[PipelineState, int] = {state: 0 for state in PipelineState}
    by_state.update(Counter(game.state for game in games))

    if not games:
        return ProgressSnapshot(
            total=0,
            completed=0,
            progress=0,
            by_state=by_state,
            current_game=None,
            current_stage=None,
            needing_rulebook=[],
            errors=[],
        )

    total_weight = sum(STATE_WEIGHTS[game.state] for game in games)
    current = next((game for game in games if is_processing(game.state)), None)

    return ProgressSnapshot(
        total=len(games),
        completed=by_state[PipelineState.published],
        progress=round(total_weight / len(games) * 100),
        by_state=by_state,
        current_game=current,
        current_stage=current.state if current else None,
        needing_rulebook=[
            game for game in games
            if not game.has_rulebook and game.state is not PipelineState.published
        ],
        errors=[game for game in games if game.last_error is not None],
    )


def sort_for_processing(
    games: Iterable[T],
    base_game_id: int | None,
    *,
    id_of=lambda game: game.id,
    year_of=lambda game: game.year_published,
) -> list[T]:
    """Order a family so the base game runs first, then by publication year.

    Games without a year sort after every dated game. The sort is stable, so
    ties keep their incoming order.
    """
    def key(game: T) -> tuple[int, int]:
        year = year_of(game)
        return (
            0 if id_of(game) == base_game_id else 1,
            year if year is not None else MISSING_YEAR_SORT_KEY,
        )

    return sorted(games, key=key)
