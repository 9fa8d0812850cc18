"""Game and family persistence helpers.

Every pipeline state write goes through ``claim_processing``,
``finish_processing`` or ``mark_stable`` so lease, error and timestamp
columns stay consistent.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import exists
from sqlalchemy.orm import Session

from ..db.games import Game, GameFamily
from ..db.taxonomy import GameCategory, GameMechanic, GamePlayerExperience, GameTheme
from ..errors import FamilyNotFound, GameNotFound
from ..pipeline.models import DataFlags, EnrichmentData, GameStatus
from ..pipeline.states import PipelineState, coerce_state
from ..utils.datetime_utils import lease_expiry, now_utc

__all__ = [
    "get_game",
    "get_family",
    "list_family_games",
    "compute_data_flags",
    "enrichment_from_game",
    "to_status",
    "claim_processing",
    "finish_processing",
    "mark_stable",
]


def get_game(session: Session, game_id: int) -> Game:
    game = session.get(Game, game_id)
    if game is None:
        raise GameNotFound(game_id)
    return game


def get_family(session: Session, family_id: int) -> GameFamily:
    family = session.get(GameFamily, family_id)
    if family is None:
        raise FamilyNotFound(family_id)
    return family


def list_family_games(session: Session, family_id: int) -> list[Game]:
    return (
        session.query(Game)
        .filter(Game.family_id == family_id)
        .order_by(Game.year_published.asc(), Game.id.asc())
        .all()
    )


def _has_taxonomy(session: Session, game_id: int) -> bool:
    for model in (GameCategory, GameMechanic, GameTheme, GamePlayerExperience):
        if session.query(exists().where(model.game_id == game_id)).scalar():
            return True
    return False


def compute_data_flags(session: Session, game: Game) -> DataFlags:
    """Derive the data availability snapshot for a game from its row."""
    return DataFlags(
        has_rulebook=bool(game.rulebook_url),
        has_enrichment_summary=bool(game.wikipedia_summary),
        has_parsed_text=bool(game.has_parsed_text),
        has_taxonomy=_has_taxonomy(session, game.id),
        has_generated_content=any(
            (game.rules_content, game.setup_content, game.reference_content)
        ),
    )


def enrichment_from_game(game: Game) -> EnrichmentData:
    return EnrichmentData(
        summary=game.wikipedia_summary,
        gameplay=game.wikipedia_gameplay,
        origins=game.wikipedia_origins,
        reception=game.wikipedia_reception,
        awards=game.wikipedia_awards,
        infobox=game.wikipedia_infobox,
    )


def to_status(game: Game) -> GameStatus:
    return GameStatus(
        id=game.id,
        name=game.name,
        state=coerce_state(game.pipeline_state),
        has_rulebook=bool(game.rulebook_url),
        last_error=game.last_error,
        year_published=game.year_published,
    )


_LEASE_COLUMNS = ["pipeline_state", "lease_expires_at", "last_processed_at", "last_error"]


def claim_processing(
    session: Session,
    game: Game,
    expected: PipelineState,
    state: PipelineState,
    lease_seconds: int,
    now: datetime | None = None,
) -> datetime | None:
    """Optimistically enter a processing state and take a lease on it.

    The write only lands if the row is still in ``expected``, so two workers
    racing for the same game cannot both claim it. Returns the lease expiry
    this worker now holds, or None when the claim lost.
    """
    now = now or now_utc()
    lease = lease_expiry(lease_seconds, now)
    claimed = (
        session.query(Game)
        .filter(Game.id == game.id, Game.pipeline_state == expected.value)
        .update(
            {
                "pipeline_state": state.value,
                "last_processed_at": now,
                "lease_expires_at": lease,
                "last_error": None,
            },
            synchronize_session=False,
        )
    )
    session.refresh(game, _LEASE_COLUMNS)
    return lease if claimed else None


def finish_processing(
    session: Session,
    game: Game,
    processing: PipelineState,
    lease: datetime,
    state: PipelineState,
    error: str | None = None,
    now: datetime | None = None,
    **values: object,
) -> bool:
    """Leave a processing state, only while still holding ``lease``.

    ``values`` are extra columns written with the state change. Returns False
    and writes nothing when the lease was lost: the row was demoted by
    reconciliation or reclaimed by another worker during the call.
    """
    changes: dict[str, object] = {
        "pipeline_state": state.value,
        "lease_expires_at": None,
        "last_error": error,
        **values,
    }
    if error is None:
        changes["last_processed_at"] = now or now_utc()
    released = (
        session.query(Game)
        .filter(
            Game.id == game.id,
            Game.pipeline_state == processing.value,
            Game.lease_expires_at == lease,
            # A claim clears the error; anything else that touched the row set one
            Game.last_error.is_(None),
        )
        .update(changes, synchronize_session=False)
    )
    session.refresh(game, [*_LEASE_COLUMNS, *values])
    return bool(released)


def mark_stable(
    session: Session,
    game: Game,
    state: PipelineState,
    error: str | None = None,
    now: datetime | None = None,
) -> None:
    """Move a game to a non-processing state, releasing any lease."""
    game.pipeline_state = state.value
    game.lease_expires_at = None
    game.last_error = error
    if error is None:
        game.last_processed_at = now or now_utc()
    session.flush()
