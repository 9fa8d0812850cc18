"""Family context rebuild and the base-game completion signal.

The cached context is rebuilt only when the base game finishes a generation
pass, never on read. Expansions that are about to generate wait on the
family's signal so they never read a context the base game is still
producing.
"""

from __future__ import annotations

import threading

from sqlalchemy.orm import Session

from ..db.games import Game, GameFamily
from ..logging import logger
from ..persistence.games import enrichment_from_game
from ..utils.datetime_utils import now_utc
from .context import build_family_context
from .models import FamilyContext


class FamilyContextSignals:
    """Per-family completion signals for the base game's context rebuild.

    A family with no registered signal has nothing pending, so waiting on it
    returns immediately. Only pending rebuilds are held in the registry.
    """

    def __init__(self) -> None:
        self._events: dict[int, threading.Event] = {}
        self._lock = threading.Lock()

    def expect(self, family_id: int) -> None:
        """Mark a rebuild as pending; dependents block until ``release``."""
        with self._lock:
            self._events.setdefault(family_id, threading.Event())

    def release(self, family_id: int) -> None:
        with self._lock:
            event = self._events.pop(family_id, None)
        # Waiters already holding the event wake; later waiters find nothing pending
        if event is not None:
            event.set()

    def is_pending(self, family_id: int) -> bool:
        with self._lock:
            event = self._events.get(family_id)
        return event is not None and not event.is_set()

    def wait(self, family_id: int, timeout: float | None = None) -> bool:
        """Block until the family's context is released. Returns False on timeout."""
        with self._lock:
            event = self._events.get(family_id)
        if event is None:
            return True
        return event.wait(timeout)


family_signals = FamilyContextSignals()


def _has_base_data(game: Game) -> bool:
    return bool(game.wikipedia_summary or game.rules_content or game.setup_content)


def rebuild_family_context(
    session: Session,
    family_id: int,
    base_game_id: int,
) -> FamilyContext | None:
    """Recompute and overwrite a family's cached context from its base game.

    Returns None and leaves the cache untouched when the family or base game
    is missing, or the base game has no enrichment or generated content yet.
    """
    family = session.get(GameFamily, family_id)
    base = session.get(Game, base_game_id)
    if family is None or base is None:
        logger.warning(
            "family_context_rebuild_missing_rows",
            family_id=family_id,
            base_game_id=base_game_id,
        )
        return None
    if not _has_base_data(base):
        logger.info("family_context_rebuild_skipped_no_data", family_id=family_id, base_game_id=base_game_id)
        return None

    context = build_family_context(
        base.id,
        base.name,
        enrichment=enrichment_from_game(base),
        rules_content=base.rules_content,
        setup_content=base.setup_content,
    )
    family.family_context = context.to_dict()
    family.context_built_at = now_utc()
    session.flush()

    logger.info(
        "family_context_rebuilt",
        family_id=family_id,
        base_game_id=base_game_id,
        mechanics=len(context.core_mechanics),
        components=len(context.component_types),
    )
    return context


def on_base_generated(
    session: Session,
    game: Game,
    signals: FamilyContextSignals = family_signals,
) -> FamilyContext | None:
    """Hook run after a game reaches ``generated``.

    Rebuilds the family context when the game is its family's base game,
    then releases dependents waiting on the family signal whether or not the
    rebuild produced a context.
    """
    if game.family_id is None:
        return None
    family = session.get(GameFamily, game.family_id)
    if family is None or family.base_game_id != game.id:
        return None
    try:
        return rebuild_family_context(session, family.id, game.id)
    finally:
        signals.release(family.id)


def load_family_context(session: Session, family_id: int | None) -> FamilyContext | None:
    if family_id is None:
        return None
    family = session.get(GameFamily, family_id)
    if family is None or not family.family_context:
        return None
    return FamilyContext.from_dict(family.family_context)
