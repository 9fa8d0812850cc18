"""Recover games stuck in a processing state after a worker died mid-call."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Session

from ..config import settings
from ..db.games import Game
from ..logging import logger
from ..persistence.games import mark_stable
from ..utils.datetime_utils import as_utc, lease_expiry, now_utc
from .states import PipelineState, is_processing, stable_predecessor

PROCESSING_STATES = [state for state in PipelineState if is_processing(state)]


def _lease_expired(game: Game, now: datetime, lease_seconds: int) -> bool:
    if game.lease_expires_at is not None:
        return as_utc(game.lease_expires_at) <= now
    # Rows written before leases existed only have the claim time
    if game.last_processed_at is None:
        return True
    return lease_expiry(lease_seconds, as_utc(game.last_processed_at)) <= now


def reconcile_expired_leases(
    session: Session,
    now: datetime | None = None,
    lease_seconds: int | None = None,
) -> list[int]:
    """Demote games whose processing lease ran out to their stable predecessor.

    Returns the ids of the demoted games. The caller commits.
    """
    now = as_utc(now or now_utc())
    lease_seconds = lease_seconds or settings.pipeline_config.processing_lease_seconds

    candidates = (
        session.query(Game)
        .filter(Game.pipeline_state.in_([state.value for state in PROCESSING_STATES]))
        .order_by(Game.id.asc())
        .all()
    )

    demoted: list[int] = []
    for game in candidates:
        if not _lease_expired(game, now, lease_seconds):
            continue
        state = PipelineState(game.pipeline_state)
        fallback = stable_predecessor(state)
        mark_stable(session, game, fallback, error=f"Timed out while {state.value}", now=now)
        demoted.append(game.id)
        logger.warning(
            "processing_lease_expired",
            game_id=game.id,
            state=state.value,
            rolled_back_to=fallback.value,
        )

    if demoted:
        logger.info("reconcile_completed", demoted=len(demoted))
    return demoted
