"""Drive games through the pipeline one step at a time.

The runner walks auto-advancing states forward with ``next_state``, then
runs the executors the current state calls for. A family run handles the
base game first so its expansions can be generated against a fresh family
context.

Modes narrow what a run does:

- ``full`` / ``from-current``: every remaining step
- ``parse-only``: get the game to ``rulebook_ready`` and parse it
- ``generate-only``: assign taxonomy if needed, then generate
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from sqlalchemy.orm import Session

from ..config import PipelineConfig, settings
from ..db.games import Game
from ..logging import logger
from ..persistence.games import (
    compute_data_flags,
    get_family,
    get_game,
    list_family_games,
    mark_stable,
    to_status,
)
from ..services.content_api import ContentServiceClient
from .executors import GenerateExecutor, ParseExecutor, TaxonomyExecutor
from .family import FamilyContextSignals, family_signals, rebuild_family_context
from .models import ProgressSnapshot, StepResult
from .states import PipelineState, coerce_state, is_processing
from .transitions import calculate_progress, next_state, sort_for_processing

PARSE = "parse"
TAXONOMY = "taxonomy"
GENERATE = "generate"


class ProcessingMode(str, Enum):
    full = "full"
    from_current = "from-current"
    parse_only = "parse-only"
    generate_only = "generate-only"


_SKIP_REASONS = {
    PipelineState.published: "Already published",
    PipelineState.review_pending: "Awaiting review",
    PipelineState.generated: "Already generated",
}

# States that only move forward once a rulebook URL exists
_NEEDS_RULEBOOK = (
    PipelineState.enriched,
    PipelineState.rulebook_missing,
    PipelineState.rulebook_ready,
    PipelineState.parsed,
    PipelineState.taxonomy_assigned,
)

_PARSED = (PipelineState.parsed, PipelineState.taxonomy_assigned)

_WALKABLE = (PipelineState.imported, PipelineState.enriched, PipelineState.rulebook_missing)

_DONE_STATES = (PipelineState.generated, PipelineState.review_pending, PipelineState.published)


@dataclass
class ProcessOptions:
    skip_blocked: bool = True
    stop_on_error: bool = False
    quality_tier: str | None = None
    mode: ProcessingMode = ProcessingMode.full


@dataclass
class ProgressEvent:
    """One progress notification: ``game_skip``, ``game_start``, ``step`` or ``game_complete``.

    Step events carry ``status`` ``running``, ``complete`` or ``error``.
    """

    type: str
    game_id: int
    name: str
    step: str | None = None
    status: str | None = None
    previous_state: PipelineState | None = None
    state: PipelineState | None = None
    success: bool | None = None
    error: str | None = None
    reason: str | None = None


ProgressCallback = Callable[[ProgressEvent], None]


@dataclass
class GameRunResult:
    game_id: int
    name: str
    previous_state: PipelineState
    state: PipelineState
    success: bool
    skipped: bool = False
    skip_reason: str | None = None
    error: str | None = None
    steps: list[str] = field(default_factory=list)


@dataclass
class RunSummary:
    total: int
    processed: int
    skipped: int
    errors: int
    duration_seconds: float
    results: list[GameRunResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.errors == 0


def skip_reason(game: Game, options: ProcessOptions) -> str | None:
    """Why a game should not be processed in this run, or None."""
    state = coerce_state(game.pipeline_state)
    if state in _SKIP_REASONS:
        return _SKIP_REASONS[state]
    if is_processing(state):
        return "Already processing"

    if options.mode is ProcessingMode.parse_only:
        if state in _PARSED:
            return "Already parsed"
        if not game.rulebook_url:
            return "No rulebook to parse"
        return None

    if options.mode is ProcessingMode.generate_only:
        if state not in _PARSED:
            return "Not parsed yet"
        return None

    if not options.skip_blocked or game.rulebook_url:
        return None
    if state in _NEEDS_RULEBOOK:
        return "No rulebook URL"
    if state is PipelineState.imported and not game.wikipedia_summary:
        return "Awaiting enrichment"
    return None


def steps_for_state(
    state: PipelineState,
    has_rulebook: bool,
    mode: ProcessingMode = ProcessingMode.full,
) -> list[str]:
    if mode is ProcessingMode.parse_only:
        return [PARSE] if state is PipelineState.rulebook_ready and has_rulebook else []
    if state is PipelineState.rulebook_ready:
        if mode is ProcessingMode.generate_only:
            return []
        return [PARSE, TAXONOMY, GENERATE] if has_rulebook else []
    if state is PipelineState.parsed:
        return [TAXONOMY, GENERATE]
    if state is PipelineState.taxonomy_assigned:
        return [GENERATE]
    return []


def summarize(results: list[GameRunResult], total: int, started: float) -> RunSummary:
    return RunSummary(
        total=total,
        processed=sum(1 for r in results if r.success and not r.skipped),
        skipped=sum(1 for r in results if r.skipped),
        errors=sum(1 for r in results if not r.success and not r.skipped),
        duration_seconds=round(time.monotonic() - started, 3),
        results=results,
    )


class PipelineRunner:
    """Runs games through their remaining steps.

    A runner built without a client opens one ``ContentServiceClient``
    shared by all three executors; close it with ``close()`` or by using
    the runner as a context manager.
    """

    def __init__(
        self,
        session: Session,
        client: ContentServiceClient | None = None,
        config: PipelineConfig | None = None,
        signals: FamilyContextSignals = family_signals,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self.session = session
        self.config = config or settings.pipeline_config
        self.signals = signals
        self.on_progress = on_progress
        self._owns_client = client is None
        self.client = client if client is not None else ContentServiceClient()
        self.parse = ParseExecutor(session, self.client, self.config)
        self.taxonomy = TaxonomyExecutor(session, self.client, self.config)
        self.generate = GenerateExecutor(session, self.client, self.config, signals=signals)

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def __enter__(self) -> PipelineRunner:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _emit(self, event: ProgressEvent) -> None:
        if self.on_progress is not None:
            self.on_progress(event)

    def advance(self, game: Game) -> PipelineState:
        """Walk a game through the auto-advancing states that need no executor."""
        state = coerce_state(game.pipeline_state)
        while state in _WALKABLE:
            target = next_state(state, compute_data_flags(self.session, game))
            if target is None or is_processing(target):
                break
            mark_stable(self.session, game, target)
            logger.info("state_advanced", game_id=game.id, from_state=state.value, to_state=target.value)
            state = target
        self.session.commit()
        return state

    def _run_step(self, step: str, game_id: int, options: ProcessOptions) -> StepResult:
        if step == PARSE:
            return self.parse.run(game_id)
        if step == TAXONOMY:
            return self.taxonomy.run(game_id)
        return self.generate.run(game_id, quality_tier=options.quality_tier)

    def _process(self, game: Game, options: ProcessOptions) -> GameRunResult:
        previous = coerce_state(game.pipeline_state)
        reason = skip_reason(game, options)
        if reason:
            logger.info("game_skipped", game_id=game.id, state=previous.value, reason=reason)
            self._emit(ProgressEvent(type="game_skip", game_id=game.id, name=game.name, reason=reason))
            return GameRunResult(
                game_id=game.id,
                name=game.name,
                previous_state=previous,
                state=previous,
                success=True,
                skipped=True,
                skip_reason=reason,
            )

        self._emit(
            ProgressEvent(type="game_start", game_id=game.id, name=game.name, previous_state=previous)
        )
        state = previous if options.mode is ProcessingMode.generate_only else self.advance(game)
        result = GameRunResult(
            game_id=game.id, name=game.name, previous_state=previous, state=state, success=True
        )
        for step in steps_for_state(state, bool(game.rulebook_url), options.mode):
            self._emit(ProgressEvent(type="step", game_id=game.id, name=game.name, step=step, status="running"))
            outcome = self._run_step(step, game.id, options)
            result.steps.append(step)
            result.state = outcome.state
            if not outcome.succeeded:
                result.success = False
                result.error = outcome.error
                self._emit(
                    ProgressEvent(
                        type="step",
                        game_id=game.id,
                        name=game.name,
                        step=step,
                        status="error",
                        error=outcome.error,
                    )
                )
                break
            self._emit(ProgressEvent(type="step", game_id=game.id, name=game.name, step=step, status="complete"))
        return result

    def _safe_process(self, game: Game, options: ProcessOptions) -> GameRunResult:
        previous = coerce_state(game.pipeline_state)
        try:
            result = self._process(game, options)
        except Exception as exc:
            logger.exception("game_processing_failed", game_id=game.id, error=str(exc))
            self.session.rollback()
            result = GameRunResult(
                game_id=game.id,
                name=game.name,
                previous_state=previous,
                state=coerce_state(game.pipeline_state),
                success=False,
                error=str(exc),
            )
        if not result.skipped:
            self._emit(
                ProgressEvent(
                    type="game_complete",
                    game_id=game.id,
                    name=game.name,
                    previous_state=result.previous_state,
                    state=result.state,
                    success=result.success,
                    error=result.error,
                )
            )
        return result

    def process_game(self, game_id: int, options: ProcessOptions | None = None) -> RunSummary:
        options = options or ProcessOptions()
        started = time.monotonic()
        game = get_game(self.session, game_id)
        result = self._safe_process(game, options)
        summary = summarize([result], 1, started)
        logger.info(
            "game_run_completed",
            game_id=game_id,
            state=result.state.value,
            success=result.success,
            skipped=result.skipped,
            error=result.error,
        )
        return summary

    def _prepare_family(self, family_id: int, base_game_id: int | None, games: list[Game]) -> Game | None:
        """Make sure the cached context matches the base game before expansions run.

        Returns the base game when it is about to be processed, in which case
        its family signal is held until the base run finishes.
        """
        base = next((g for g in games if g.id == base_game_id), None)
        if base is None:
            return None
        state = coerce_state(base.pipeline_state)
        if state in _DONE_STATES:
            family = get_family(self.session, family_id)
            if not family.family_context:
                rebuild_family_context(self.session, family_id, base.id)
                self.session.commit()
            return None
        self.signals.expect(family_id)
        return base

    def process_family(self, family_id: int, options: ProcessOptions | None = None) -> RunSummary:
        options = options or ProcessOptions()
        started = time.monotonic()
        family = get_family(self.session, family_id)
        games = sort_for_processing(list_family_games(self.session, family_id), family.base_game_id)
        pending_base = self._prepare_family(family_id, family.base_game_id, games)

        logger.info("family_run_starting", family_id=family_id, games=len(games))
        results: list[GameRunResult] = []
        for game in games:
            try:
                result = self._safe_process(game, options)
            finally:
                if pending_base is not None and game.id == pending_base.id:
                    # No-op if the generate step already released it
                    self.signals.release(family_id)
            results.append(result)
            if not result.success and options.stop_on_error:
                logger.info("family_run_stopped_on_error", family_id=family_id, game_id=game.id)
                break

        summary = summarize(results, len(games), started)
        logger.info(
            "family_run_completed",
            family_id=family_id,
            total=summary.total,
            processed=summary.processed,
            skipped=summary.skipped,
            errors=summary.errors,
            duration_seconds=summary.duration_seconds,
        )
        return summary


def family_progress(session: Session, family_id: int) -> ProgressSnapshot:
    get_family(session, family_id)
    return calculate_progress([to_status(game) for game in list_family_games(session, family_id)])
