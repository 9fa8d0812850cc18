"""Game and family models tracked by the content pipeline."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, JSONType


class Game(Base):
    """A board game record moving through the Vecna pipeline."""

    __tablename__ = "games"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    slug: Mapped[str | None] = mapped_column(String(300), unique=True)
    year_published: Mapped[int | None] = mapped_column(Integer)

    # Pipeline bookkeeping
    pipeline_state: Mapped[str] = mapped_column(
        String(30), nullable=False, default="imported", server_default="imported", index=True
    )
    last_error: Mapped[str | None] = mapped_column(Text)
    last_processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    lease_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    content_generated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Core import data
    description: Mapped[str | None] = mapped_column(Text)
    player_count_min: Mapped[int | None] = mapped_column(Integer)
    player_count_max: Mapped[int | None] = mapped_column(Integer)
    play_time_min: Mapped[int | None] = mapped_column(Integer)
    play_time_max: Mapped[int | None] = mapped_column(Integer)
    weight: Mapped[float | None] = mapped_column(Float)
    min_age: Mapped[int | None] = mapped_column(Integer)
    bgg_id: Mapped[int | None] = mapped_column(Integer, index=True)
    bgg_raw_data: Mapped[dict[str, Any] | None] = mapped_column(JSONType)

    # Enrichment
    wikidata_id: Mapped[str | None] = mapped_column(String(50))
    wikidata_image_url: Mapped[str | None] = mapped_column(Text)
    official_website: Mapped[str | None] = mapped_column(Text)
    wikipedia_url: Mapped[str | None] = mapped_column(Text)
    wikipedia_summary: Mapped[dict[str, Any] | None] = mapped_column(JSONType)
    wikipedia_gameplay: Mapped[str | None] = mapped_column(Text)
    wikipedia_origins: Mapped[str | None] = mapped_column(Text)
    wikipedia_reception: Mapped[str | None] = mapped_column(Text)
    wikipedia_awards: Mapped[list[dict[str, Any]] | None] = mapped_column(JSONType)
    wikipedia_infobox: Mapped[dict[str, Any] | None] = mapped_column(JSONType)
    amazon_asin: Mapped[str | None] = mapped_column(String(20))

    # Rulebook and parsing output
    rulebook_url: Mapped[str | None] = mapped_column(Text)
    rulebook_source: Mapped[str | None] = mapped_column(String(30))
    has_parsed_text: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    crunch_score: Mapped[float | None] = mapped_column(Float)

    # Generated content
    rules_content: Mapped[dict[str, Any] | None] = mapped_column(JSONType)
    setup_content: Mapped[dict[str, Any] | None] = mapped_column(JSONType)
    reference_content: Mapped[dict[str, Any] | None] = mapped_column(JSONType)

    # Images
    thumbnail_url: Mapped[str | None] = mapped_column(Text)
    box_image_url: Mapped[str | None] = mapped_column(Text)
    hero_image_url: Mapped[str | None] = mapped_column(Text)

    # Relation to a base game (expansion_of, standalone_expansion_of, ...)
    relation_type: Mapped[str | None] = mapped_column(String(50))
    base_game_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("games.id", ondelete="SET NULL")
    )
    family_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("game_families.id", ondelete="SET NULL"), index=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    family: Mapped["GameFamily | None"] = relationship(
        "GameFamily", back_populates="games", foreign_keys=[family_id]
    )

    __table_args__ = (
        Index("idx_games_pipeline_state_lease", "pipeline_state", "lease_expires_at"),
    )

    @property
    def is_dependent(self) -> bool:
        """True for expansions and other games whose context derives from a base game."""
        return self.relation_type is not None and self.base_game_id is not None


class GameFamily(Base):
    """A base game plus the expansions that share its context."""

    __tablename__ = "game_families"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    # Not a foreign key: games already reference families, avoiding a cycle
    base_game_id: Mapped[int | None] = mapped_column(Integer, index=True)
    family_context: Mapped[dict[str, Any] | None] = mapped_column(JSONType)
    context_built_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    games: Mapped[list[Game]] = relationship(
        "Game", back_populates="family", foreign_keys=[Game.family_id]
    )
