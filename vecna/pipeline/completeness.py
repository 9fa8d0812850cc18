"""Data completeness report for a game.

Lists which expected fields are present across nine categories, tags each
missing field with an importance, and rolls the result up into a status.
Any missing critical field makes a game ``incomplete`` no matter how high
its overall percentage is; ``incomplete`` games cannot be published.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable

from ..utils.datetime_utils import now_utc


class Importance(str, Enum):
    critical = "critical"
    important = "important"
    recommended = "recommended"
    optional = "optional"


class CompletenessStatus(str, Enum):
    complete = "complete"
    needs_attention = "needs_attention"
    incomplete = "incomplete"


@dataclass(frozen=True)
class FieldStatus:
    field: str
    label: str
    present: bool
    importance: Importance
    source: str | None = None
    note: str | None = None


@dataclass
class FieldCategory:
    name: str
    description: str
    fields: list[FieldStatus]
    completion_percent: int = 0
    critical_missing: int = 0
    important_missing: int = 0


@dataclass
class CompletenessReport:
    game_id: int
    game_name: str
    generated_at: datetime
    overall_percent: int
    total_fields: int
    present_fields: int
    status: CompletenessStatus
    message: str
    categories: list[FieldCategory]
    critical_missing: list[FieldStatus] = field(default_factory=list)
    important_missing: list[FieldStatus] = field(default_factory=list)
    recommended_missing: list[FieldStatus] = field(default_factory=list)

    @property
    def publishable(self) -> bool:
        return self.status is not CompletenessStatus.incomplete


def _len(value: Any) -> int:
    return len(value) if value else 0


def _range_note(low: Any, high: Any, unit: str) -> str | None:
    if low is not None and high is not None:
        return f"{low}-{high} {unit}"
    if low is not None:
        return f"Min only: {low}"
    if high is not None:
        return f"Max only: {high}"
    return None


def check_core_data(game: Any) -> list[FieldStatus]:
    description = game.description or ""
    return [
        FieldStatus("name", "Game Name", bool(game.name), Importance.critical, "import"),
        FieldStatus("year_published", "Year Published", game.year_published is not None, Importance.important, "import"),
        FieldStatus(
            "description", "Description", len(description) > 50, Importance.important, "import",
            note=f"{len(description)} chars" if description else None,
        ),
        FieldStatus(
            "player_count", "Player Count",
            game.player_count_min is not None and game.player_count_max is not None,
            Importance.critical, "import",
            note=_range_note(game.player_count_min, game.player_count_max, "players"),
        ),
        FieldStatus(
            "play_time", "Play Time",
            game.play_time_min is not None and game.play_time_max is not None,
            Importance.important, "import",
            note=_range_note(game.play_time_min, game.play_time_max, "min"),
        ),
        FieldStatus("weight", "BGG Weight", game.weight is not None, Importance.recommended, "import"),
        FieldStatus("min_age", "Minimum Age", game.min_age is not None, Importance.recommended, "import"),
    ]


def check_external_sources(game: Any) -> list[FieldStatus]:
    origins = game.wikipedia_origins or ""
    reception = game.wikipedia_reception or ""
    return [
        FieldStatus(
            "bgg_data", "BGG Data", game.bgg_id is not None and game.bgg_raw_data is not None,
            Importance.critical, "import", note=f"ID: {game.bgg_id}" if game.bgg_id else None,
        ),
        FieldStatus("wikidata_id", "Wikidata ID", bool(game.wikidata_id), Importance.recommended, "enrichment"),
        FieldStatus("wikidata_image_url", "Wikidata Image (CC)", bool(game.wikidata_image_url), Importance.recommended, "enrichment"),
        FieldStatus("official_website", "Official Website", bool(game.official_website), Importance.optional, "enrichment"),
        FieldStatus("wikipedia_url", "Wikipedia URL", bool(game.wikipedia_url), Importance.recommended, "enrichment"),
        FieldStatus("wikipedia_summary", "Wikipedia Summary", bool(game.wikipedia_summary), Importance.recommended, "enrichment"),
        FieldStatus("wikipedia_gameplay", "Wikipedia Gameplay", bool(game.wikipedia_gameplay), Importance.recommended, "enrichment"),
        FieldStatus("wikipedia_infobox", "Wikipedia Infobox", bool(game.wikipedia_infobox), Importance.optional, "enrichment"),
        FieldStatus(
            "wikipedia_origins", "Origins/History", len(origins) > 50, Importance.important, "enrichment",
            note=f"{len(origins)} chars" if origins else None,
        ),
        FieldStatus(
            "wikipedia_reception", "Reception/Reviews", len(reception) > 50, Importance.important, "enrichment",
            note=f"{len(reception)} chars" if reception else None,
        ),
        FieldStatus(
            "wikipedia_awards", "Wikipedia Awards", _len(game.wikipedia_awards) > 0, Importance.recommended, "enrichment",
        ),
        FieldStatus("amazon_asin", "Amazon ASIN", bool(game.amazon_asin), Importance.recommended, "enrichment"),
    ]


def check_publisher_data(game: Any) -> list[FieldStatus]:
    bgg_publishers = (game.bgg_raw_data or {}).get("publishers") or []
    wiki_publishers = [
        p for p in (game.wikipedia_infobox or {}).get("publishersWithRegion") or []
        if isinstance(p, dict)
    ]
    primary = next((p for p in wiki_publishers if p.get("isPrimary")), None)
    regional = [p for p in wiki_publishers if p.get("region")]

    if bgg_publishers:
        publishers_note = f"{len(bgg_publishers)} from BGG"
    elif wiki_publishers:
        publishers_note = f"{len(wiki_publishers)} from Wikipedia"
    else:
        publishers_note = None

    primary_note = "Not designated"
    if primary is not None:
        region = primary.get("region")
        primary_note = f"{primary.get('name')} ({region})" if region else primary.get("name")

    return [
        FieldStatus(
            "publishers", "Publishers Listed", bool(bgg_publishers or wiki_publishers),
            Importance.important, "import/enrichment", note=publishers_note,
        ),
        FieldStatus(
            "primary_publisher", "Primary Publisher", primary is not None,
            Importance.critical, "enrichment", note=primary_note,
        ),
        FieldStatus(
            "publisher_regions", "Regional Publishers", len(regional) >= 2,
            Importance.recommended, "enrichment",
            note=f"{len(regional)} regions" if regional else "No regional data",
        ),
    ]


def check_rulebook_parsing(game: Any) -> list[FieldStatus]:
    return [
        FieldStatus(
            "rulebook_url", "Rulebook URL", bool(game.rulebook_url), Importance.critical, "enrichment/manual",
            note=f"Source: {game.rulebook_source}" if game.rulebook_source else None,
        ),
        FieldStatus(
            "crunch_score", "Crunch Score", game.crunch_score is not None, Importance.important, "parsing",
            note=f"Score: {game.crunch_score:.1f}/10" if game.crunch_score else None,
        ),
    ]


def check_taxonomy(taxonomy: dict[str, list[str]]) -> list[FieldStatus]:
    categories = taxonomy.get("categories") or []
    mechanics = taxonomy.get("mechanics") or []
    themes = taxonomy.get("themes") or []
    experiences = taxonomy.get("player_experiences") or []

    def assigned(values: list[str]) -> str:
        return f"{len(values)} assigned" if values else "None assigned"

    return [
        FieldStatus("categories", "Categories", len(categories) >= 1, Importance.critical, "import/ai", note=assigned(categories)),
        FieldStatus("mechanics", "Mechanics", len(mechanics) >= 2, Importance.important, "import/ai", note=assigned(mechanics)),
        FieldStatus("themes", "Themes", len(themes) >= 1, Importance.recommended, "import/ai", note=assigned(themes)),
        FieldStatus(
            "player_experiences", "Player Experiences", len(experiences) >= 1, Importance.important, "import/manual",
            note=f"{len(experiences)} assigned ({', '.join(experiences)})" if experiences else "None assigned",
        ),
    ]


def _missing_content(field_name: str, label: str) -> list[FieldStatus]:
    return [
        FieldStatus(
            field_name, label, False, Importance.critical, "generation",
            note=f"No {label.split()[0].lower()} content generated",
        )
    ]


def check_rules_content(content: dict[str, Any] | None) -> list[FieldStatus]:
    if not content:
        return _missing_content("rules_content", "Rules Content")
    return [
        FieldStatus("rules_quickStart", "Quick Start Guide", _len(content.get("quickStart")) >= 3, Importance.critical, "generation"),
        FieldStatus("rules_coreRules", "Core Rules", _len(content.get("coreRules")) >= 2, Importance.important, "generation"),
        FieldStatus("rules_turnStructure", "Turn Structure", _len(content.get("turnStructure")) >= 1, Importance.important, "generation"),
        FieldStatus("rules_winCondition", "Win Condition", _len(content.get("winCondition")) > 10, Importance.critical, "generation"),
        FieldStatus("rules_endGameConditions", "End Game Conditions", _len(content.get("endGameConditions")) >= 1, Importance.important, "generation"),
        FieldStatus("rules_tips", "Strategy Tips", _len(content.get("tips")) >= 2, Importance.recommended, "generation"),
    ]


def check_setup_content(content: dict[str, Any] | None) -> list[FieldStatus]:
    if not content:
        return _missing_content("setup_content", "Setup Content")
    return [
        FieldStatus("setup_steps", "Setup Steps", _len(content.get("steps")) >= 3, Importance.critical, "generation"),
        FieldStatus("setup_components", "Component List", _len(content.get("components")) >= 3, Importance.important, "generation"),
        FieldStatus("setup_estimatedTime", "Setup Time", bool(content.get("estimatedTime")), Importance.recommended, "generation"),
        FieldStatus("setup_playerSetup", "Player Setup", _len(content.get("playerSetup")) > 10, Importance.important, "generation"),
        FieldStatus("setup_firstPlayerRule", "First Player Rule", bool(content.get("firstPlayerRule")), Importance.recommended, "generation"),
        FieldStatus("setup_quickTips", "Quick Tips", _len(content.get("quickTips")) >= 2, Importance.optional, "generation"),
        FieldStatus("setup_commonMistakes", "Common Mistakes", _len(content.get("commonMistakes")) >= 1, Importance.optional, "generation"),
    ]


def _has_end_game(end_game: Any) -> bool:
    if not end_game:
        return False
    if isinstance(end_game, str):
        return len(end_game) > 10
    return bool(end_game.get("winner") or end_game.get("triggers"))


def check_reference_content(content: dict[str, Any] | None) -> list[FieldStatus]:
    if not content:
        return _missing_content("reference_content", "Reference Content")
    return [
        FieldStatus("reference_turnSummary", "Turn Summary", _len(content.get("turnSummary")) >= 1, Importance.important, "generation"),
        FieldStatus("reference_keyActions", "Key Actions", _len(content.get("keyActions")) >= 2, Importance.important, "generation"),
        FieldStatus("reference_importantRules", "Important Rules", _len(content.get("importantRules")) >= 2, Importance.recommended, "generation"),
        FieldStatus("reference_endGame", "End Game Summary", _has_end_game(content.get("endGame")), Importance.critical, "generation"),
        FieldStatus("reference_scoringSummary", "Scoring Summary", _len(content.get("scoringSummary")) >= 1, Importance.recommended, "generation"),
    ]


def check_images(game: Any) -> list[FieldStatus]:
    return [
        FieldStatus("thumbnail_url", "Thumbnail Image", bool(game.thumbnail_url), Importance.critical, "import"),
        FieldStatus("box_image_url", "Box Art Image", bool(game.box_image_url), Importance.important, "manual/enrichment"),
        FieldStatus("hero_image_url", "Hero Image", bool(game.hero_image_url), Importance.recommended, "manual"),
        FieldStatus("wikidata_image", "CC-Licensed Image", bool(game.wikidata_image_url), Importance.recommended, "enrichment"),
    ]


def _category(name: str, description: str, fields: list[FieldStatus]) -> FieldCategory:
    present = sum(1 for f in fields if f.present)
    return FieldCategory(
        name=name,
        description=description,
        fields=fields,
        completion_percent=round(present / len(fields) * 100) if fields else 100,
        critical_missing=sum(1 for f in fields if not f.present and f.importance is Importance.critical),
        important_missing=sum(1 for f in fields if not f.present and f.importance is Importance.important),
    )


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}{'' if count == 1 else 's'}"


def summarize(
    critical: list[FieldStatus],
    important: list[FieldStatus],
    recommended: list[FieldStatus],
) -> tuple[CompletenessStatus, str]:
    if not critical and not important:
        if recommended:
            return (
                CompletenessStatus.complete,
                f"Ready for review. {_plural(len(recommended), 'optional field')} could be improved.",
            )
        return CompletenessStatus.complete, "All required data is present!"
    if critical:
        return (
            CompletenessStatus.incomplete,
            f"Missing {_plural(len(critical), 'critical field')} that must be filled.",
        )
    return (
        CompletenessStatus.needs_attention,
        f"Missing {_plural(len(important), 'important field')} that should be reviewed.",
    )


def generate_completeness_report(
    game: Any,
    taxonomy: dict[str, list[str]],
    clock: Callable[[], datetime] = now_utc,
) -> CompletenessReport:
    """Build the completeness report for a game row and its taxonomy names."""
    categories = [
        _category("Core Game Data", "Basic game info from BGG import", check_core_data(game)),
        _category("External Sources", "BGG, Wikidata, and Wikipedia data", check_external_sources(game)),
        _category("Publisher Data", "Publisher info and regional distribution", check_publisher_data(game)),
        _category("Rulebook & Parsing", "Rulebook URL and parsed data", check_rulebook_parsing(game)),
        _category("Taxonomy", "Categories, mechanics, and themes", check_taxonomy(taxonomy)),
        _category("Rules Content", "AI-generated rules summary", check_rules_content(game.rules_content)),
        _category("Setup Content", "AI-generated setup guide", check_setup_content(game.setup_content)),
        _category("Reference Content", "AI-generated quick reference", check_reference_content(game.reference_content)),
        _category("Images", "Game images for display", check_images(game)),
    ]

    all_fields = [f for category in categories for f in category.fields]
    present = sum(1 for f in all_fields if f.present)

    def missing(importance: Importance) -> list[FieldStatus]:
        return [f for f in all_fields if not f.present and f.importance is importance]

    critical = missing(Importance.critical)
    important = missing(Importance.important)
    recommended = missing(Importance.recommended)
    status, message = summarize(critical, important, recommended)

    return CompletenessReport(
        game_id=game.id,
        game_name=game.name,
        generated_at=clock(),
        overall_percent=round(present / len(all_fields) * 100) if all_fields else 100,
        total_fields=len(all_fields),
        present_fields=present,
        status=status,
        message=message,
        categories=categories,
        critical_missing=critical,
        important_missing=important,
        recommended_missing=recommended,
    )
