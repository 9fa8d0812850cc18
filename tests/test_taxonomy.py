"""Tests for the taxonomy auto-accept step."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from sqlalchemy.exc import SQLAlchemyError

from vecna.config import PipelineConfig
from vecna.db.taxonomy import (
    GamePlayerExperience,
    GameTheme,
    PlayerExperience,
    SuggestionStatus,
    TaxonomySuggestion,
    Theme,
)
from vecna.pipeline.executors import TaxonomyExecutor

_MOD = "vecna.persistence.taxonomy"


@pytest.fixture
def vocabulary(session):
    session.add_all([
        Theme(id=1, name="Fantasy", slug="fantasy"),
        Theme(id=2, name="Trains", slug="trains"),
        PlayerExperience(id=5, name="Cooperative", slug="cooperative"),
    ])
    session.commit()


def _suggest(session, game_id: int, kind: str, target_id: int | None, confidence: float, **kwargs):
    suggestion = TaxonomySuggestion(
        game_id=game_id,
        suggestion_type=kind,
        target_id=target_id,
        confidence=confidence,
        **kwargs,
    )
    session.add(suggestion)
    session.commit()
    return suggestion


def _themes(session, game_id: int) -> list[int]:
    return sorted(r[0] for r in session.query(GameTheme.theme_id).filter(GameTheme.game_id == game_id))


class TestTaxonomyExecutor:
    def test_accepts_high_confidence_suggestions(self, session, make_game, vocabulary):
        game = make_game(pipeline_state="parsed")
        theme = _suggest(session, game.id, "theme", 1, 0.9, is_primary=True)
        experience = _suggest(session, game.id, "player_experience", 5, 0.95)

        result = TaxonomyExecutor(session).run(game.id)

        assert result.succeeded
        assert game.pipeline_state == "taxonomy_assigned"
        assert _themes(session, game.id) == [1]
        row = session.query(GameTheme).filter_by(game_id=game.id).one()
        assert row.source == "ai"
        assert row.is_primary is True
        assert session.query(GamePlayerExperience).filter_by(game_id=game.id).count() == 1
        assert theme.status == SuggestionStatus.accepted.value
        assert experience.status == SuggestionStatus.accepted.value
        assert theme.processed_at is not None

    def test_low_confidence_and_new_kinds_stay_pending(self, session, make_game, vocabulary):
        game = make_game(pipeline_state="parsed")
        low = _suggest(session, game.id, "theme", 2, 0.5)
        new = _suggest(session, game.id, "new_theme", None, 0.99, suggested_name="Steampunk")

        result = TaxonomyExecutor(session).run(game.id)

        assert result.succeeded
        assert game.pipeline_state == "taxonomy_assigned"
        assert _themes(session, game.id) == []
        assert low.status == SuggestionStatus.pending.value
        assert new.status == SuggestionStatus.pending.value

    def test_threshold_override(self, session, make_game, vocabulary):
        game = make_game(pipeline_state="parsed")
        _suggest(session, game.id, "theme", 2, 0.5)

        TaxonomyExecutor(session).run(game.id, min_confidence=0.4)

        assert _themes(session, game.id) == [2]

    def test_threshold_from_config(self, session, make_game, vocabulary):
        game = make_game(pipeline_state="parsed")
        _suggest(session, game.id, "theme", 2, 0.8)

        TaxonomyExecutor(session, config=PipelineConfig(taxonomy_confidence_threshold=0.85)).run(game.id)

        assert _themes(session, game.id) == []

    def test_existing_and_duplicate_suggestions_are_not_reinserted(self, session, make_game, vocabulary):
        game = make_game(pipeline_state="parsed")
        session.add(GameTheme(game_id=game.id, theme_id=1, is_primary=False, source="manual"))
        session.commit()
        first = _suggest(session, game.id, "theme", 1, 0.9)
        _suggest(session, game.id, "theme", 2, 0.9)
        _suggest(session, game.id, "theme", 2, 0.8)

        result = TaxonomyExecutor(session).run(game.id)

        assert _themes(session, game.id) == [1, 2]
        assert result.details["theme"] == {"inserted": 1, "duplicates": 2, "skipped": 0}
        assert first.status == SuggestionStatus.accepted.value

    def test_running_twice_is_idempotent(self, session, make_game, vocabulary):
        game = make_game(pipeline_state="parsed")
        _suggest(session, game.id, "theme", 1, 0.9)
        _suggest(session, game.id, "player_experience", 5, 0.9)

        executor = TaxonomyExecutor(session)
        executor.run(game.id)
        second = executor.run(game.id)

        assert second.succeeded
        assert game.pipeline_state == "taxonomy_assigned"
        assert session.query(GameTheme).filter_by(game_id=game.id).count() == 1
        assert session.query(GamePlayerExperience).filter_by(game_id=game.id).count() == 1

    def test_missing_vocabulary_target_is_skipped(self, session, make_game, vocabulary):
        game = make_game(pipeline_state="parsed")
        orphan = _suggest(session, game.id, "theme", 999, 0.9)
        _suggest(session, game.id, "theme", 1, 0.9)

        result = TaxonomyExecutor(session).run(game.id)

        assert result.succeeded
        assert _themes(session, game.id) == [1]
        assert result.details["theme"]["skipped"] == 1
        assert orphan.status == SuggestionStatus.pending.value

    def test_failure_in_one_kind_keeps_the_other(self, session, make_game, vocabulary):
        game = make_game(pipeline_state="parsed")
        _suggest(session, game.id, "theme", 1, 0.9)
        _suggest(session, game.id, "player_experience", 5, 0.9)

        with patch(f"{_MOD}.add_game_themes", side_effect=SQLAlchemyError("constraint")):
            result = TaxonomyExecutor(session).run(game.id)

        assert result.succeeded
        assert "error" in result.details["theme"]
        assert result.details["player_experience"]["inserted"] == 1
        assert _themes(session, game.id) == []
        assert game.pipeline_state == "taxonomy_assigned"

    def test_no_suggestions_still_assigns(self, session, make_game):
        game = make_game(pipeline_state="parsed")

        result = TaxonomyExecutor(session).run(game.id)

        assert result.succeeded
        assert result.details == {}
        assert game.pipeline_state == "taxonomy_assigned"

    def test_declines_from_wrong_state(self, session, make_game):
        game = make_game(pipeline_state="rulebook_ready")

        result = TaxonomyExecutor(session).run(game.id)

        assert result.declined
        assert game.pipeline_state == "rulebook_ready"
