"""Context bundles for AI content generation.

``build_context`` merges a game's enrichment data into one text block whose
section order is fixed: downstream prompts depend on it. The family helpers
condense a base game into a ``FamilyContext`` that is embedded in every
expansion's generation request.
"""

from __future__ import annotations

from typing import Any

from .models import AIContext, EnrichmentData, FamilyContext

RECEPTION_CAP = 500
ORIGINS_CAP = 400
ELLIPSIS = "..."
MAX_AWARDS_IN_SECTION = 5
SUMMARY_OVERVIEW_CAP = 500
MAX_CORE_RULES = 5
MAX_SETUP_STEPS = 5


def truncate(text: str | None, cap: int) -> str | None:
    """Cut ``text`` to ``cap`` characters plus an ellipsis when it is longer."""
    if not text:
        return text
    if len(text) <= cap:
        return text
    return text[:cap] + ELLIPSIS


def _summary_section(summary: dict[str, Any] | None) -> list[str]:
    if not summary:
        return []
    lines = ["=== WIKIPEDIA SUMMARY ==="]
    if summary.get("summary"):
        lines.append(summary["summary"])
    themes = summary.get("themes") or []
    mechanics = summary.get("mechanics") or []
    if themes:
        lines.append(f"\nKey Themes: {', '.join(themes)}")
    if mechanics:
        lines.append(f"Core Mechanics: {', '.join(mechanics)}")
    return lines if len(lines) > 1 else []


def _format_award(award: dict[str, Any], with_category: bool) -> str:
    line = f"  - {award.get('name', '')}"
    if award.get("year"):
        line += f" ({award['year']})"
    if with_category and award.get("category"):
        line += f" - {award['category']}"
    return line


def _awards_section(awards: list[dict[str, Any]] | None, summary: dict[str, Any] | None) -> list[str]:
    if awards:
        winners = [a for a in awards if a.get("status") == "winner"]
        nominated = [a for a in awards if a.get("status") in ("nominated", "finalist")]
        lines = ["\n=== AWARDS ==="]
        if winners:
            lines.append("Won:")
            lines.extend(_format_award(a, with_category=True) for a in winners)
        if nominated:
            lines.append("Nominated:")
            lines.extend(_format_award(a, with_category=False) for a in nominated)
        return lines if len(lines) > 1 else []

    summary_awards = (summary or {}).get("awards") or []
    if summary_awards:
        return ["\n=== AWARDS ===", ", ".join(summary_awards)]
    return []


def _publisher_label(publisher: Any) -> str:
    if isinstance(publisher, str):
        return publisher
    name = publisher.get("name", "")
    region = publisher.get("region")
    return f"{name} ({region})" if region else name


def _infobox_section(infobox: dict[str, Any] | None) -> list[str]:
    if not infobox:
        return []
    items: list[str] = []
    if infobox.get("designers"):
        items.append(f"Designers: {', '.join(infobox['designers'])}")
    if infobox.get("publishers"):
        items.append(f"Publishers: {', '.join(_publisher_label(p) for p in infobox['publishers'])}")
    if infobox.get("genres"):
        items.append(f"Genres: {', '.join(infobox['genres'])}")
    if not items:
        return []
    return ["\n=== INFOBOX DATA ===", "\n".join(items)]


def build_context(data: EnrichmentData) -> str | None:
    """Combine enrichment sources into a section-ordered context string.

    Sections: summary, gameplay, origins, reception, awards, metadata.
    Empty sections are omitted; returns None if all are empty.
    """
    sections: list[str] = []
    sections.extend(_summary_section(data.summary))

    if data.gameplay:
        sections.extend(["\n=== GAMEPLAY SECTION (from Wikipedia) ===", data.gameplay])

    if data.origins:
        sections.extend(["\n=== ORIGINS & HISTORY ===", data.origins])

    reception = data.reception or (data.summary or {}).get("reception")
    if reception:
        sections.extend(["\n=== CRITICAL RECEPTION ===", reception])

    sections.extend(_awards_section(data.awards, data.summary))
    sections.extend(_infobox_section(data.infobox))

    if not sections:
        return None
    return "\n".join(sections)


def _award_names(awards: list[dict[str, Any]] | None) -> list[str]:
    # Awards without a status come from older enrichment runs and count as wins
    return [
        a["name"] for a in awards or []
        if a.get("name") and a.get("status") in ("winner", None)
    ]


def _publisher_names(publishers: list[Any] | None) -> list[str]:
    return [p if isinstance(p, str) else p.get("name", "") for p in publishers or []]


def build_family_context(
    base_game_id: int,
    base_game_name: str,
    *,
    enrichment: EnrichmentData,
    rules_content: dict[str, Any] | None = None,
    setup_content: dict[str, Any] | None = None,
) -> FamilyContext:
    """Project a base game's current fields into a FamilyContext.

    Reception and origins are capped so every expansion request stays
    bounded in size.
    """
    summary = enrichment.summary or {}
    rules = rules_content or {}
    setup = setup_content or {}
    infobox = enrichment.infobox or {}

    core_mechanics = list(summary.get("mechanics") or [])
    if not core_mechanics:
        core_mechanics = [
            rule.get("title", "") for rule in (rules.get("coreRules") or [])[:MAX_CORE_RULES]
        ]

    themes = summary.get("themes") or []

    quick_start = rules.get("quickStart") or []
    if quick_start:
        rules_overview = " ".join(quick_start)
    elif summary.get("summary"):
        rules_overview = summary["summary"][:SUMMARY_OVERVIEW_CAP]
    else:
        rules_overview = None

    steps = [step.get("step", "") for step in (setup.get("steps") or [])[:MAX_SETUP_STEPS]]

    return FamilyContext(
        base_game_id=base_game_id,
        base_game_name=base_game_name,
        core_mechanics=core_mechanics,
        core_theme=themes[0] if themes else None,
        base_rules_overview=rules_overview,
        base_setup_summary=". ".join(steps) or None,
        component_types=[c.get("name", "") for c in setup.get("components") or []],
        origins=truncate(enrichment.origins, ORIGINS_CAP),
        reception=truncate(enrichment.reception, RECEPTION_CAP),
        awards=_award_names(enrichment.awards),
        designers=list(infobox.get("designers") or []),
        publishers=_publisher_names(infobox.get("publishers")),
    )


def build_family_context_section(context: FamilyContext) -> str:
    """Render a FamilyContext as the BASE GAME CONTEXT prompt block."""
    lines = [
        "=== BASE GAME CONTEXT ===",
        f'This expansion is for "{context.base_game_name}".',
        "",
    ]
    if context.core_mechanics:
        lines.append(f"Core Mechanics: {', '.join(context.core_mechanics)}")
    if context.core_theme:
        lines.append(f"Theme: {context.core_theme}")
    if context.designers:
        lines.append(f"Designers: {', '.join(context.designers)}")
    if context.publishers:
        lines.append(f"Publishers: {', '.join(context.publishers)}")
    if context.awards:
        lines.append(f"\nAwards Won: {', '.join(context.awards[:MAX_AWARDS_IN_SECTION])}")
    if context.reception:
        lines.append(f"\nCritical Reception:\n{truncate(context.reception, RECEPTION_CAP)}")
    if context.origins:
        lines.append(f"\nDesign Origins:\n{truncate(context.origins, ORIGINS_CAP)}")
    if context.base_rules_overview:
        lines.append(f"\nBase Game Rules Overview:\n{context.base_rules_overview}")
    if context.base_setup_summary:
        lines.append(f"\nBase Game Setup:\n{context.base_setup_summary}")
    if context.component_types:
        lines.append(f"\nBase Game Components: {', '.join(context.component_types)}")
    return "\n".join(lines)


def build_ai_context(
    enrichment: EnrichmentData,
    family_context: FamilyContext | None = None,
    *,
    is_expansion: bool = False,
    relation_type: str | None = None,
) -> AIContext:
    """Build every context section for a game's generation prompt."""
    expansion_note = None
    if is_expansion and family_context is not None:
        relation = (relation_type or "expansion").replace("_", " ")
        expansion_note = (
            f'NOTE: This is a {relation} for "{family_context.base_game_name}". '
            "Focus on what this expansion ADDS or CHANGES - don't repeat base game information. "
            "Players reading this will already know the base game."
        )

    return AIContext(
        enrichment_context=build_context(enrichment),
        family_context=build_family_context_section(family_context) if family_context else None,
        expansion_note=expansion_note,
    )
