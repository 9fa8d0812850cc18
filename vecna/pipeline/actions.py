"""Human actions against the pipeline.

These are the only ways a game leaves a blocking state: attaching a
rulebook unblocks ``rulebook_missing`` and a review decision resolves
``review_pending``. Callers own the session scope; every action flushes
and leaves the commit to ``get_session``.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from ..db.taxonomy import SuggestionStatus, SuggestionType, TaxonomySuggestion
from ..errors import InvalidTransition, PreconditionFailed, VecnaError
from ..logging import logger
from ..persistence import taxonomy as taxonomy_store
from ..persistence.games import get_game, mark_stable, to_status
from ..utils.datetime_utils import now_utc
from .completeness import CompletenessReport, CompletenessStatus, generate_completeness_report
from .models import GameStatus
from .quality import DEFAULT_CONFIG, ContentValidation, QualityConfig, validate_all_content
from .states import PipelineState, coerce_state, is_processing

MANUAL_RULEBOOK_SOURCE = "manual"

# States a manual rulebook URL moves straight to rulebook_ready
_RULEBOOK_UNBLOCKS = (PipelineState.rulebook_missing, PipelineState.enriched)


@dataclass
class ReviewSubmission:
    status: GameStatus
    validation: ContentValidation
    submitted: bool


def attach_rulebook(session: Session, game_id: int, url: str) -> GameStatus:
    url = (url or "").strip()
    if not url:
        raise PreconditionFailed("Rulebook URL is required")

    game = get_game(session, game_id)
    previous = coerce_state(game.pipeline_state)
    game.rulebook_url = url
    game.rulebook_source = MANUAL_RULEBOOK_SOURCE
    if previous in _RULEBOOK_UNBLOCKS:
        mark_stable(session, game, PipelineState.rulebook_ready)
    else:
        session.flush()

    logger.info(
        "rulebook_attached",
        game_id=game.id,
        previous_state=previous.value,
        state=game.pipeline_state,
    )
    return to_status(game)


def set_state(session: Session, game_id: int, state: PipelineState) -> GameStatus:
    """Admin override of a game's state.

    Processing states can only be entered by an executor holding a lease.
    """
    if is_processing(state):
        raise InvalidTransition(f"Cannot set processing state {state.value} directly")

    game = get_game(session, game_id)
    previous = coerce_state(game.pipeline_state)
    if state is PipelineState.published:
        game.is_published = True
    elif previous is PipelineState.published and state is PipelineState.review_pending:
        game.is_published = False
    mark_stable(session, game, state)

    logger.info("state_overridden", game_id=game.id, previous_state=previous.value, state=state.value)
    return to_status(game)


def submit_for_review(
    session: Session,
    game_id: int,
    auto_approve: bool = False,
    cfg: QualityConfig = DEFAULT_CONFIG,
) -> ReviewSubmission:
    """Run quality validation and, when it passes, queue the game for review."""
    game = get_game(session, game_id)
    state = coerce_state(game.pipeline_state)
    if state is not PipelineState.generated:
        raise InvalidTransition(f"Cannot submit for review from state {state.value}", state.value)

    validation = validate_all_content(
        game.rules_content, game.setup_content, game.reference_content, cfg
    )
    submitted = validation.overall.passed and auto_approve
    if submitted:
        mark_stable(session, game, PipelineState.review_pending)

    logger.info(
        "review_submission",
        game_id=game.id,
        passed=validation.overall.passed,
        score=validation.overall.score,
        submitted=submitted,
    )
    return ReviewSubmission(status=to_status(game), validation=validation, submitted=submitted)


def completeness_report(session: Session, game_id: int) -> CompletenessReport:
    game = get_game(session, game_id)
    return generate_completeness_report(game, taxonomy_store.game_taxonomy_names(session, game.id))


def approve_review(session: Session, game_id: int) -> GameStatus:
    game = get_game(session, game_id)
    state = coerce_state(game.pipeline_state)
    if state is not PipelineState.review_pending:
        raise InvalidTransition(f"Cannot approve from state {state.value}", state.value)

    report = generate_completeness_report(game, taxonomy_store.game_taxonomy_names(session, game.id))
    if report.status is CompletenessStatus.incomplete:
        raise PreconditionFailed(report.message)

    game.is_published = True
    mark_stable(session, game, PipelineState.published)
    logger.info("review_approved", game_id=game.id, completeness=report.overall_percent)
    return to_status(game)


def reject_review(session: Session, game_id: int, reason: str) -> GameStatus:
    game = get_game(session, game_id)
    state = coerce_state(game.pipeline_state)
    if state is not PipelineState.review_pending:
        raise InvalidTransition(f"Cannot reject from state {state.value}", state.value)

    mark_stable(session, game, PipelineState.taxonomy_assigned, error=reason or "Rejected in review")
    logger.info("review_rejected", game_id=game.id, reason=reason)
    return to_status(game)


def update_suggestion_status(
    session: Session,
    suggestion_id: int,
    status: SuggestionStatus,
) -> TaxonomySuggestion:
    """Manually accept or reject a taxonomy suggestion.

    Accepting a suggestion that points at an existing theme or player
    experience also assigns it to the game if it is not assigned yet.
    """
    suggestion = session.get(TaxonomySuggestion, suggestion_id)
    if suggestion is None:
        raise VecnaError(f"Suggestion {suggestion_id} not found")
    if status is SuggestionStatus.pending:
        raise InvalidTransition("Suggestions can only be accepted or rejected")

    kind = SuggestionType(suggestion.suggestion_type)
    if status is SuggestionStatus.accepted and suggestion.target_id is not None:
        if kind is SuggestionType.theme:
            if suggestion.target_id not in taxonomy_store.existing_theme_ids(session, suggestion.game_id):
                taxonomy_store.add_game_themes(session, suggestion.game_id, [suggestion])
        elif kind is SuggestionType.player_experience:
            if suggestion.target_id not in taxonomy_store.existing_experience_ids(session, suggestion.game_id):
                taxonomy_store.add_game_experiences(session, suggestion.game_id, [suggestion])

    taxonomy_store.mark_suggestions(session, [suggestion], status, processed_at=now_utc())
    logger.info(
        "suggestion_status_updated",
        suggestion_id=suggestion.id,
        game_id=suggestion.game_id,
        kind=kind.value,
        status=status.value,
    )
    return suggestion
