"""Step executors: the only pipeline components with side effects.

Each executor runs one stage for one game and returns a ``StepResult``
with one of three outcomes:

- success: the game advances and its error is cleared
- failed: the game rolls back to its stable predecessor with the error
  recorded, and stays eligible for a retry
- declined: a precondition was not met; nothing was written

Parse and generate write their processing state before calling out (the
claim is committed so pollers can see it) and carry a lease that the
reconciliation job uses to recover from a crash mid-call.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import PipelineConfig, settings
from ..db.games import Game
from ..db.taxonomy import SuggestionStatus, SuggestionType, TaxonomySuggestion
from ..logging import logger
from ..models.schemas import GenerateRequest
from ..persistence import taxonomy as taxonomy_store
from ..persistence.games import (
    claim_processing,
    enrichment_from_game,
    finish_processing,
    get_game,
    mark_stable,
)
from ..services.content_api import ContentServiceClient
from ..utils.datetime_utils import now_utc
from .context import build_ai_context
from .family import FamilyContextSignals, family_signals, load_family_context, on_base_generated
from .models import FamilyContext, StepOutcome, StepResult
from .states import PipelineState, coerce_state

# Only suggestions pointing at an existing vocabulary value are auto-accepted;
# new_theme / new_experience always go to a human.
AUTO_ACCEPT_KINDS = (SuggestionType.theme, SuggestionType.player_experience)


def _declined(state: PipelineState, reason: str) -> StepResult:
    return StepResult(outcome=StepOutcome.declined, state=state, error=reason)


class StepExecutor:
    """Shared plumbing for the executors."""

    step_name = "step"

    def __init__(
        self,
        session: Session,
        client: ContentServiceClient | None = None,
        config: PipelineConfig | None = None,
    ) -> None:
        self.session = session
        self._client = client
        self.config = config or settings.pipeline_config

    @property
    def client(self) -> ContentServiceClient:
        if self._client is None:
            self._client = ContentServiceClient()
        return self._client

    def _lease_lost(self, game: Game, processing: PipelineState) -> StepResult:
        self.session.commit()
        state = coerce_state(game.pipeline_state)
        logger.warning(
            f"{self.step_name}_lease_lost",
            game_id=game.id,
            expected=processing.value,
            state=state.value,
        )
        return _declined(state, f"Lease lost while {processing.value}")

    def _rollback(
        self,
        game: Game,
        processing: PipelineState,
        lease: datetime,
        state: PipelineState,
        error: str,
    ) -> StepResult:
        if not finish_processing(self.session, game, processing, lease, state, error=error):
            return self._lease_lost(game, processing)
        self.session.commit()
        logger.warning(
            f"{self.step_name}_step_failed",
            game_id=game.id,
            rolled_back_to=state.value,
            error=error,
        )
        return StepResult(outcome=StepOutcome.failed, state=state, error=error)

    def _claim(self, game: Game, expected: PipelineState, processing: PipelineState) -> datetime | None:
        lease = claim_processing(
            self.session,
            game,
            expected,
            processing,
            lease_seconds=self.config.processing_lease_seconds,
        )
        self.session.commit()
        return lease


class ParseExecutor(StepExecutor):
    """rulebook_ready -> parsing -> parsed (or back to rulebook_ready)."""

    step_name = "parse"

    def run(self, game_id: int) -> StepResult:
        game = get_game(self.session, game_id)
        state = coerce_state(game.pipeline_state)

        if not game.rulebook_url:
            return _declined(state, "No rulebook URL")
        if state is PipelineState.parsing:
            return _declined(state, "Already parsing")
        if state is not PipelineState.rulebook_ready:
            return _declined(state, f"Cannot parse from state {state.value}")
        lease = self._claim(game, PipelineState.rulebook_ready, PipelineState.parsing)
        if lease is None:
            return _declined(coerce_state(game.pipeline_state), "Claimed by another worker")

        logger.info("parse_step_starting", game_id=game.id, rulebook_url=game.rulebook_url)
        try:
            response = self.client.parse(game.id, game.rulebook_url)
        except Exception as exc:
            logger.warning("parse_request_error", game_id=game.id, error=str(exc), exc_info=True)
            return self._rollback(
                game, PipelineState.parsing, lease, PipelineState.rulebook_ready, str(exc) or "Parse request failed"
            )

        if not response.success:
            return self._rollback(
                game, PipelineState.parsing, lease, PipelineState.rulebook_ready, response.error or "Parse failed"
            )

        if not finish_processing(
            self.session, game, PipelineState.parsing, lease, PipelineState.parsed, has_parsed_text=True
        ):
            return self._lease_lost(game, PipelineState.parsing)
        self.session.commit()
        logger.info("parse_step_succeeded", game_id=game.id)
        return StepResult(outcome=StepOutcome.success, state=PipelineState.parsed)


class GenerateExecutor(StepExecutor):
    """taxonomy_assigned -> generating -> generated (or back to taxonomy_assigned)."""

    step_name = "generate"

    def __init__(
        self,
        session: Session,
        client: ContentServiceClient | None = None,
        config: PipelineConfig | None = None,
        signals: FamilyContextSignals = family_signals,
    ) -> None:
        super().__init__(session, client, config)
        self.signals = signals

    def _family_context(self, game: Game) -> tuple[FamilyContext | None, str | None]:
        """Return the cached family context for a dependent game, or a decline reason."""
        if not self.signals.wait(game.family_id, timeout=self.config.family_context_wait_seconds):
            return None, "Timed out waiting for base game context"
        # Pick up a rebuild committed by another session while we waited
        self.session.expire_all()
        context = load_family_context(self.session, game.family_id)
        if context is None:
            return None, "Family context not built yet"
        return context, None

    def run(self, game_id: int, quality_tier: str | None = None) -> StepResult:
        game = get_game(self.session, game_id)
        state = coerce_state(game.pipeline_state)

        if state is PipelineState.generating:
            return _declined(state, "Already generating")
        if state is not PipelineState.taxonomy_assigned:
            return _declined(state, f"Cannot generate from state {state.value}")

        family_context = None
        if game.is_dependent:
            family_context, reason = self._family_context(game)
            if reason:
                logger.info("generate_step_declined", game_id=game.id, reason=reason)
                return _declined(state, reason)

        ai_context = build_ai_context(
            enrichment_from_game(game),
            family_context,
            is_expansion=game.is_dependent,
            relation_type=game.relation_type,
        )
        request = GenerateRequest(
            game_id=game.id,
            quality_tier=quality_tier or self.config.default_quality_tier,
            family_context=family_context.to_dict() if family_context else None,
            context={
                "enrichment": ai_context.enrichment_context,
                "family": ai_context.family_context,
                "expansionNote": ai_context.expansion_note,
            },
        )

        lease = self._claim(game, PipelineState.taxonomy_assigned, PipelineState.generating)
        if lease is None:
            return _declined(coerce_state(game.pipeline_state), "Claimed by another worker")

        logger.info(
            "generate_step_starting",
            game_id=game.id,
            quality_tier=request.quality_tier,
            with_family_context=family_context is not None,
        )
        try:
            response = self.client.generate(request)
        except Exception as exc:
            logger.warning("generate_request_error", game_id=game.id, error=str(exc), exc_info=True)
            return self._rollback(
                game,
                PipelineState.generating,
                lease,
                PipelineState.taxonomy_assigned,
                str(exc) or "Generate request failed",
            )

        if not response.success:
            return self._rollback(
                game, PipelineState.generating, lease, PipelineState.taxonomy_assigned, response.failure_message()
            )

        now = now_utc()
        if not finish_processing(
            self.session,
            game,
            PipelineState.generating,
            lease,
            PipelineState.generated,
            now=now,
            content_generated_at=now,
        ):
            return self._lease_lost(game, PipelineState.generating)
        self.session.commit()
        logger.info("generate_step_succeeded", game_id=game.id)

        # Generation is already committed; rebuild errors are only logged
        try:
            rebuilt = on_base_generated(self.session, game, self.signals)
            if rebuilt is not None:
                self.session.commit()
        except Exception as exc:
            self.session.rollback()
            logger.exception("family_context_rebuild_failed", game_id=game.id, error=str(exc))
            rebuilt = None
        return StepResult(
            outcome=StepOutcome.success,
            state=PipelineState.generated,
            details={"family_context_rebuilt": rebuilt is not None},
        )


class TaxonomyExecutor(StepExecutor):
    """Auto-accept high-confidence theme and player-experience suggestions.

    Additive and idempotent: values the game already has are never inserted
    twice. Always ends in ``taxonomy_assigned``, even when nothing qualifies.
    """

    step_name = "taxonomy"
    source_states = (PipelineState.parsed, PipelineState.taxonomy_assigned)

    def _apply_kind(
        self,
        game_id: int,
        kind: SuggestionType,
        suggestions: list[TaxonomySuggestion],
    ) -> dict[str, int]:
        if kind is SuggestionType.theme:
            existing = taxonomy_store.existing_theme_ids(self.session, game_id)
            insert = taxonomy_store.add_game_themes
        else:
            existing = taxonomy_store.existing_experience_ids(self.session, game_id)
            insert = taxonomy_store.add_game_experiences

        valid_ids = taxonomy_store.vocabulary_ids(
            self.session, kind, [s.target_id for s in suggestions if s.target_id is not None]
        )

        to_insert: list[TaxonomySuggestion] = []
        processed: list[TaxonomySuggestion] = []
        skipped = 0
        seen = set(existing)
        for suggestion in suggestions:
            if suggestion.target_id is None or suggestion.target_id not in valid_ids:
                logger.warning(
                    "taxonomy_suggestion_target_missing",
                    game_id=game_id,
                    suggestion_id=suggestion.id,
                    kind=kind.value,
                    target_id=suggestion.target_id,
                )
                skipped += 1
                continue
            if suggestion.target_id not in seen:
                to_insert.append(suggestion)
                seen.add(suggestion.target_id)
            processed.append(suggestion)

        if to_insert:
            insert(self.session, game_id, to_insert)
        taxonomy_store.mark_suggestions(
            self.session, processed, SuggestionStatus.accepted, processed_at=now_utc()
        )
        return {
            "inserted": len(to_insert),
            "duplicates": len(processed) - len(to_insert),
            "skipped": skipped,
        }

    def run(self, game_id: int, min_confidence: float | None = None) -> StepResult:
        game = get_game(self.session, game_id)
        state = coerce_state(game.pipeline_state)
        if state not in self.source_states:
            return _declined(state, f"Cannot assign taxonomy from state {state.value}")

        threshold = (
            min_confidence if min_confidence is not None else self.config.taxonomy_confidence_threshold
        )
        suggestions = taxonomy_store.pending_suggestions(
            self.session, game.id, AUTO_ACCEPT_KINDS, threshold
        )
        by_kind: dict[SuggestionType, list[TaxonomySuggestion]] = defaultdict(list)
        for suggestion in suggestions:
            by_kind[SuggestionType(suggestion.suggestion_type)].append(suggestion)

        details: dict[str, Any] = {}
        for kind in AUTO_ACCEPT_KINDS:
            if not by_kind[kind]:
                continue
            # A failure in one kind is rolled back alone; the other kind still applies
            savepoint = self.session.begin_nested()
            try:
                details[kind.value] = self._apply_kind(game.id, kind, by_kind[kind])
                savepoint.commit()
            except SQLAlchemyError as exc:
                savepoint.rollback()
                logger.error(
                    "taxonomy_kind_failed",
                    game_id=game.id,
                    kind=kind.value,
                    error=str(exc),
                    exc_info=True,
                )
                details[kind.value] = {"error": str(exc)}

        mark_stable(self.session, game, PipelineState.taxonomy_assigned)
        self.session.commit()
        logger.info(
            "taxonomy_step_succeeded",
            game_id=game.id,
            threshold=threshold,
            candidates=len(suggestions),
            **{f"{kind}_inserted": d.get("inserted", 0) for kind, d in details.items()},
        )
        return StepResult(
            outcome=StepOutcome.success,
            state=PipelineState.taxonomy_assigned,
            details=details,
        )
