"""Taxonomy persistence: suggestions, vocabularies and game associations."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Sequence

from sqlalchemy.orm import Session

from ..db.taxonomy import (
    Category,
    GameCategory,
    GameMechanic,
    GamePlayerExperience,
    GameTheme,
    Mechanic,
    PlayerExperience,
    SuggestionStatus,
    SuggestionType,
    TaxonomySuggestion,
    Theme,
)

AI_SOURCE = "ai"


def pending_suggestions(
    session: Session,
    game_id: int,
    kinds: Iterable[SuggestionType],
    min_confidence: float,
) -> list[TaxonomySuggestion]:
    """Pending suggestions of the given kinds at or above ``min_confidence``."""
    return (
        session.query(TaxonomySuggestion)
        .filter(
            TaxonomySuggestion.game_id == game_id,
            TaxonomySuggestion.status == SuggestionStatus.pending.value,
            TaxonomySuggestion.suggestion_type.in_([k.value for k in kinds]),
            TaxonomySuggestion.confidence >= min_confidence,
        )
        .order_by(TaxonomySuggestion.id.asc())
        .all()
    )


def existing_theme_ids(session: Session, game_id: int) -> set[int]:
    rows = session.query(GameTheme.theme_id).filter(GameTheme.game_id == game_id).all()
    return {row[0] for row in rows}


def existing_experience_ids(session: Session, game_id: int) -> set[int]:
    rows = (
        session.query(GamePlayerExperience.player_experience_id)
        .filter(GamePlayerExperience.game_id == game_id)
        .all()
    )
    return {row[0] for row in rows}


def vocabulary_ids(session: Session, kind: SuggestionType, ids: Iterable[int]) -> set[int]:
    """Return which of ``ids`` still exist in the vocabulary for ``kind``."""
    model = Theme if kind is SuggestionType.theme else PlayerExperience
    wanted = list(ids)
    if not wanted:
        return set()
    rows = session.query(model.id).filter(model.id.in_(wanted)).all()
    return {row[0] for row in rows}


def add_game_themes(session: Session, game_id: int, suggestions: Sequence[TaxonomySuggestion]) -> None:
    session.add_all(
        GameTheme(game_id=game_id, theme_id=s.target_id, is_primary=s.is_primary, source=AI_SOURCE)
        for s in suggestions
    )
    session.flush()


def add_game_experiences(
    session: Session, game_id: int, suggestions: Sequence[TaxonomySuggestion]
) -> None:
    session.add_all(
        GamePlayerExperience(game_id=game_id, player_experience_id=s.target_id, is_primary=s.is_primary)
        for s in suggestions
    )
    session.flush()


def mark_suggestions(
    session: Session,
    suggestions: Iterable[TaxonomySuggestion],
    status: SuggestionStatus,
    processed_at: datetime,
) -> int:
    count = 0
    for suggestion in suggestions:
        suggestion.status = status.value
        suggestion.processed_at = processed_at
        count += 1
    session.flush()
    return count


def game_taxonomy_names(session: Session, game_id: int) -> dict[str, list[str]]:
    """Names of every taxonomy value attached to a game, keyed by vocabulary."""
    def names(model, join_model, join_column) -> list[str]:
        rows = (
            session.query(model.name)
            .join(join_model, join_column == model.id)
            .filter(join_model.game_id == game_id)
            .order_by(model.name.asc())
            .all()
        )
        return [row[0] for row in rows]

    return {
        "categories": names(Category, GameCategory, GameCategory.category_id),
        "mechanics": names(Mechanic, GameMechanic, GameMechanic.mechanic_id),
        "themes": names(Theme, GameTheme, GameTheme.theme_id),
        "player_experiences": names(
            PlayerExperience, GamePlayerExperience, GamePlayerExperience.player_experience_id
        ),
    }
