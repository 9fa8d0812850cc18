"""Pipeline tasks: advance one game, run a family, release stuck games.

Each game and family run is serialized by a Redis lock so a beat-triggered
run and an admin-triggered run never drive the same rows at once.
"""

from __future__ import annotations

from celery import shared_task

from ..db import get_session
from ..errors import FamilyNotFound, GameNotFound
from ..logging import logger
from ..pipeline.reconcile import reconcile_expired_leases
from ..pipeline.runner import PipelineRunner, ProcessingMode, ProcessOptions, RunSummary
from ..services.content_api import ContentServiceClient
from ..utils.redis_lock import (
    LOCK_TIMEOUT_1HOUR,
    LOCK_TIMEOUT_5MIN,
    LOCK_TIMEOUT_30MIN,
    acquire_redis_lock,
    family_lock_name,
    game_lock_name,
    release_redis_lock,
)


def _summary_dict(summary: RunSummary) -> dict:
    return {
        "total": summary.total,
        "processed": summary.processed,
        "skipped": summary.skipped,
        "errors": summary.errors,
        "duration_seconds": summary.duration_seconds,
        "results": [
            {
                "game_id": r.game_id,
                "name": r.name,
                "previous_state": r.previous_state.value,
                "state": r.state.value,
                "success": r.success,
                "skipped": r.skipped,
                "skip_reason": r.skip_reason,
                "error": r.error,
                "steps": r.steps,
            }
            for r in summary.results
        ],
    }


def _options(skip_blocked: bool, stop_on_error: bool, quality_tier: str | None, mode: str) -> ProcessOptions:
    return ProcessOptions(
        skip_blocked=skip_blocked,
        stop_on_error=stop_on_error,
        quality_tier=quality_tier,
        mode=ProcessingMode(mode),
    )


@shared_task(
    name="advance_game",
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_kwargs={"max_retries": 2},
)
def advance_game(
    game_id: int,
    skip_blocked: bool = True,
    quality_tier: str | None = None,
    mode: str = ProcessingMode.full.value,
) -> dict:
    """Run every step a single game is currently eligible for."""
    lock_name = game_lock_name(game_id)
    if not acquire_redis_lock(lock_name, timeout=LOCK_TIMEOUT_30MIN):
        logger.info("advance_game_skipped_locked", game_id=game_id)
        return {"game_id": game_id, "status": "skipped", "reason": "locked"}

    try:
        with ContentServiceClient() as client, get_session() as session:
            summary = PipelineRunner(session, client=client).process_game(
                game_id, _options(skip_blocked, False, quality_tier, mode)
            )
        return {"game_id": game_id, "status": "success" if summary.success else "error", **_summary_dict(summary)}
    except GameNotFound:
        logger.warning("advance_game_not_found", game_id=game_id)
        return {"game_id": game_id, "status": "not_found"}
    finally:
        release_redis_lock(lock_name)


@shared_task(
    name="process_family",
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_kwargs={"max_retries": 1},
)
def process_family(
    family_id: int,
    skip_blocked: bool = True,
    stop_on_error: bool = False,
    quality_tier: str | None = None,
    mode: str = ProcessingMode.full.value,
) -> dict:
    """Run a whole family, base game first."""
    lock_name = family_lock_name(family_id)
    if not acquire_redis_lock(lock_name, timeout=LOCK_TIMEOUT_1HOUR):
        logger.info("process_family_skipped_locked", family_id=family_id)
        return {"family_id": family_id, "status": "skipped", "reason": "locked"}

    try:
        with ContentServiceClient() as client, get_session() as session:
            summary = PipelineRunner(session, client=client).process_family(
                family_id, _options(skip_blocked, stop_on_error, quality_tier, mode)
            )
        return {"family_id": family_id, "status": "success" if summary.success else "error", **_summary_dict(summary)}
    except FamilyNotFound:
        logger.warning("process_family_not_found", family_id=family_id)
        return {"family_id": family_id, "status": "not_found"}
    finally:
        release_redis_lock(lock_name)


@shared_task(name="reconcile_stuck_games")
def reconcile_stuck_games() -> dict:
    """Demote games whose processing lease has run out."""
    lock_name = "lock:vecna:reconcile"
    if not acquire_redis_lock(lock_name, timeout=LOCK_TIMEOUT_5MIN):
        logger.info("reconcile_skipped_locked")
        return {"status": "skipped", "reason": "locked"}

    try:
        with get_session() as session:
            demoted = reconcile_expired_leases(session)
        return {"status": "success", "demoted": demoted}
    finally:
        release_redis_lock(lock_name)
