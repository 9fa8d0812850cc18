"""Tests for human actions: rulebook attach, overrides and review decisions."""

from __future__ import annotations

import pytest

from vecna.db.taxonomy import (
    Category,
    GameCategory,
    GameTheme,
    SuggestionStatus,
    TaxonomySuggestion,
    Theme,
)
from vecna.errors import GameNotFound, InvalidTransition, PreconditionFailed
from vecna.pipeline.actions import (
    approve_review,
    attach_rulebook,
    completeness_report,
    reject_review,
    set_state,
    submit_for_review,
    update_suggestion_status,
)
from vecna.pipeline.states import PipelineState

GOOD_RULES = {
    "overview": "O" * 200,
    "quickStart": ["Draw.", "Place.", "Score."],
    "coreRules": [{"title": "Drafting"}, {"title": "Placing"}],
    "turnStructure": [{"phase": "Offer"}],
    "winCondition": "Highest score at game end wins.",
    "tips": ["Watch the floor line.", "Complete columns."],
    "whatMakesThisSpecial": "Tactile tiles.",
}
GOOD_SETUP = {
    "overview": "Lay out factories.",
    "components": [{"name": "Tiles"}, {"name": "Boards"}, {"name": "Bag"}],
    "steps": [{"step": "One"}, {"step": "Two"}, {"step": "Three"}],
    "firstPlayerRule": "Most recent visitor to Portugal.",
    "playerSetup": "Each player takes a board.",
}
GOOD_REFERENCE = {
    "turnSummary": ["Take tiles."],
    "endGame": "Ends after a horizontal row is complete.",
    "scoringSummary": ["Adjacency scoring."],
    "importantRules": ["Overflow goes to floor line."],
}


def _publishable(make_game, **kwargs):
    values = dict(
        pipeline_state="review_pending",
        player_count_min=2,
        player_count_max=4,
        bgg_id=1,
        bgg_raw_data={"publishers": ["Plan B"]},
        wikipedia_infobox={"publishersWithRegion": [{"name": "Plan B", "isPrimary": True}]},
        rulebook_url="https://rules.pdf",
        rules_content=GOOD_RULES,
        setup_content=GOOD_SETUP,
        reference_content=GOOD_REFERENCE,
        thumbnail_url="t.jpg",
    )
    values.update(kwargs)
    return make_game(**values)


class TestAttachRulebook:
    def test_unblocks_rulebook_missing(self, session, make_game):
        game = make_game(pipeline_state="rulebook_missing")

        status = attach_rulebook(session, game.id, "  https://rules.pdf ")

        assert status.state is PipelineState.rulebook_ready
        assert status.has_rulebook
        assert game.rulebook_url == "https://rules.pdf"
        assert game.rulebook_source == "manual"

    def test_later_state_only_records_url(self, session, make_game):
        game = make_game(pipeline_state="parsed")

        status = attach_rulebook(session, game.id, "https://new.pdf")

        assert status.state is PipelineState.parsed
        assert game.rulebook_url == "https://new.pdf"

    def test_blank_url_rejected(self, session, make_game):
        game = make_game(pipeline_state="rulebook_missing")

        with pytest.raises(PreconditionFailed):
            attach_rulebook(session, game.id, "   ")

    def test_unknown_game(self, session):
        with pytest.raises(GameNotFound):
            attach_rulebook(session, 404, "https://rules.pdf")


class TestSetState:
    def test_publish_sets_flag_and_clears_error(self, session, make_game):
        game = make_game(pipeline_state="review_pending", last_error="old")

        set_state(session, game.id, PipelineState.published)

        assert game.is_published is True
        assert game.last_error is None

    def test_unpublish_to_review(self, session, make_game):
        game = make_game(pipeline_state="published", is_published=True)

        set_state(session, game.id, PipelineState.review_pending)

        assert game.is_published is False

    def test_processing_state_rejected(self, session, make_game):
        game = make_game(pipeline_state="parsed")

        with pytest.raises(InvalidTransition):
            set_state(session, game.id, PipelineState.generating)


class TestSubmitForReview:
    def test_passing_content_with_auto_approve(self, session, make_game):
        game = make_game(
            pipeline_state="generated",
            rules_content=GOOD_RULES,
            setup_content=GOOD_SETUP,
            reference_content=GOOD_REFERENCE,
        )

        submission = submit_for_review(session, game.id, auto_approve=True)

        assert submission.submitted
        assert submission.validation.overall.passed
        assert game.pipeline_state == "review_pending"

    def test_passing_content_without_auto_approve_stays(self, session, make_game):
        game = make_game(
            pipeline_state="generated",
            rules_content=GOOD_RULES,
            setup_content=GOOD_SETUP,
            reference_content=GOOD_REFERENCE,
        )

        submission = submit_for_review(session, game.id)

        assert not submission.submitted
        assert game.pipeline_state == "generated"

    def test_failing_content_stays_generated(self, session, make_game):
        game = make_game(pipeline_state="generated", rules_content=GOOD_RULES)

        submission = submit_for_review(session, game.id, auto_approve=True)

        assert not submission.submitted
        assert not submission.validation.overall.passed
        assert game.pipeline_state == "generated"

    def test_wrong_state(self, session, make_game):
        game = make_game(pipeline_state="parsed")

        with pytest.raises(InvalidTransition):
            submit_for_review(session, game.id, auto_approve=True)


class TestReviewDecisions:
    def test_approve_publishes(self, session, make_game):
        game = _publishable(make_game)
        session.add(Category(id=1, name="Abstract", slug="abstract"))
        session.add(GameCategory(game_id=game.id, category_id=1))
        session.commit()

        status = approve_review(session, game.id)

        assert status.state is PipelineState.published
        assert game.is_published is True

    def test_approve_blocked_by_critical_gap(self, session, make_game):
        game = _publishable(make_game)  # no categories assigned

        with pytest.raises(PreconditionFailed, match="critical"):
            approve_review(session, game.id)
        assert game.pipeline_state == "review_pending"

    def test_approve_wrong_state(self, session, make_game):
        game = make_game(pipeline_state="generated")

        with pytest.raises(InvalidTransition):
            approve_review(session, game.id)

    def test_reject_returns_to_taxonomy_assigned(self, session, make_game):
        game = make_game(pipeline_state="review_pending")

        status = reject_review(session, game.id, "Setup steps are wrong")

        assert status.state is PipelineState.taxonomy_assigned
        assert game.last_error == "Setup steps are wrong"

    def test_reject_wrong_state(self, session, make_game):
        game = make_game(pipeline_state="published")

        with pytest.raises(InvalidTransition):
            reject_review(session, game.id, "no")

    def test_completeness_report_reads_taxonomy(self, session, make_game):
        game = _publishable(make_game)
        session.add(Category(id=2, name="Family", slug="family"))
        session.add(GameCategory(game_id=game.id, category_id=2))
        session.commit()

        report = completeness_report(session, game.id)

        taxonomy = next(c for c in report.categories if c.name == "Taxonomy")
        assert next(f for f in taxonomy.fields if f.field == "categories").present


class TestUpdateSuggestionStatus:
    def _suggestion(self, session, game_id: int) -> TaxonomySuggestion:
        session.add(Theme(id=3, name="Art", slug="art"))
        suggestion = TaxonomySuggestion(
            game_id=game_id, suggestion_type="theme", target_id=3, confidence=0.4
        )
        session.add(suggestion)
        session.commit()
        return suggestion

    def test_accept_assigns_theme(self, session, make_game):
        game = make_game()
        suggestion = self._suggestion(session, game.id)

        update_suggestion_status(session, suggestion.id, SuggestionStatus.accepted)

        assert suggestion.status == "accepted"
        assert session.query(GameTheme).filter_by(game_id=game.id, theme_id=3).count() == 1

    def test_reject_leaves_assignments(self, session, make_game):
        game = make_game()
        suggestion = self._suggestion(session, game.id)

        update_suggestion_status(session, suggestion.id, SuggestionStatus.rejected)

        assert suggestion.status == "rejected"
        assert suggestion.processed_at is not None
        assert session.query(GameTheme).filter_by(game_id=game.id).count() == 0

    def test_pending_is_not_a_decision(self, session, make_game):
        game = make_game()
        suggestion = self._suggestion(session, game.id)

        with pytest.raises(InvalidTransition):
            update_suggestion_status(session, suggestion.id, SuggestionStatus.pending)
