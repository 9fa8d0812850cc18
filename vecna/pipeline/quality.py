"""Pre-publish quality checks for generated content.

Scores rules, setup and reference content against minimum standards and
flags leftover AI chatter or placeholder text. A result passes when it has
no error-severity issues.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Iterator


class Severity(str, Enum):
    error = "error"
    warning = "warning"
    info = "info"


class IssueCategory(str, Enum):
    completeness = "completeness"
    length = "length"
    content = "content"
    format = "format"


@dataclass(frozen=True)
class QualityIssue:
    severity: Severity
    category: IssueCategory
    field: str
    message: str


@dataclass
class QualityResult:
    passed: bool
    score: int
    issues: list[QualityIssue]
    errors: int = 0
    warnings: int = 0
    info: int = 0


@dataclass(frozen=True)
class QualityConfig:
    min_overview_length: int = 150
    min_quick_start_items: int = 3
    min_core_rules_categories: int = 2
    min_turn_phases: int = 1
    min_tips: int = 2
    min_setup_steps: int = 3
    min_components: int = 2
    is_complex_game: bool = False
    check_for_ai_artifacts: bool = True
    check_for_placeholders: bool = True


DEFAULT_CONFIG = QualityConfig()

AI_ARTIFACT_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\bI'll\b",
        r"\bI would\b",
        r"\bI can\b",
        r"\bI'm\b",
        r"\bAs an AI\b",
        r"\bAs a language model\b",
        r"\bI don't have access\b",
        r"\bI cannot\b",
        r"\bHere's the\b",
        r"\bHere is the\b",
        r"\bLet me\b",
        r"\bI've created\b",
        r"\bI've generated\b",
        r"\bBased on the rulebook\b",
        r"\bAccording to the rulebook\b",
        r"\bThe rulebook states\b",
        r"\bThe rulebook mentions\b",
    )
]

PLACEHOLDER_PATTERNS = [
    re.compile(r"\[.*?\]"),
    re.compile(r"<.*?>"),
    re.compile(r"TODO", re.IGNORECASE),
    re.compile(r"TBD", re.IGNORECASE),
    re.compile(r"FIXME", re.IGNORECASE),
    re.compile(r"XXX"),
    re.compile(r"\bplaceholder\b", re.IGNORECASE),
    re.compile(r"\binsert\b.*\bhere\b", re.IGNORECASE),
    re.compile(r"\bexample\b.*\bhere\b", re.IGNORECASE),
]

MAX_REPORTED_MATCHES = 3


def _iter_text(value: Any) -> Iterator[str]:
    """Yield every string value nested inside generated content."""
    if isinstance(value, str):
        yield value
    elif isinstance(value, dict):
        for item in value.values():
            yield from _iter_text(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from _iter_text(item)


def find_ai_artifacts(content: Any) -> list[str]:
    found: list[str] = []
    for pattern in AI_ARTIFACT_PATTERNS:
        for text in _iter_text(content):
            match = pattern.search(text)
            if match:
                found.append(match.group(0))
                break
    return found


def find_placeholders(content: Any) -> list[str]:
    found: list[str] = []
    for pattern in PLACEHOLDER_PATTERNS:
        matches: list[str] = []
        for text in _iter_text(content):
            matches.extend(m.group(0) for m in pattern.finditer(text))
        found.extend(matches[:MAX_REPORTED_MATCHES])
    return found


def _count(content: dict[str, Any], key: str) -> int:
    return len(content.get(key) or [])


def calculate_result(issues: list[QualityIssue]) -> QualityResult:
    errors = sum(1 for i in issues if i.severity is Severity.error)
    warnings = sum(1 for i in issues if i.severity is Severity.warning)
    info = sum(1 for i in issues if i.severity is Severity.info)
    score = max(0, 100 - errors * 20 - warnings * 10 - info * 2)
    return QualityResult(
        passed=errors == 0,
        score=score,
        issues=issues,
        errors=errors,
        warnings=warnings,
        info=info,
    )


def _missing(field_name: str, label: str) -> QualityResult:
    issue = QualityIssue(Severity.error, IssueCategory.completeness, field_name, f"No {label} content found")
    return QualityResult(passed=False, score=0, issues=[issue], errors=1)


def _artifact_issues(content: dict[str, Any], field_name: str, cfg: QualityConfig, placeholders: bool) -> list[QualityIssue]:
    issues: list[QualityIssue] = []
    if cfg.check_for_ai_artifacts:
        artifacts = find_ai_artifacts(content)
        if artifacts:
            issues.append(QualityIssue(
                Severity.error,
                IssueCategory.content,
                field_name,
                f"AI artifacts detected: {', '.join(artifacts[:MAX_REPORTED_MATCHES])}",
            ))
    if placeholders and cfg.check_for_placeholders:
        found = find_placeholders(content)
        if found:
            issues.append(QualityIssue(
                Severity.error,
                IssueCategory.content,
                field_name,
                f"Placeholder text detected: {', '.join(found[:MAX_REPORTED_MATCHES])}",
            ))
    return issues


def validate_rules_content(content: dict[str, Any] | None, cfg: QualityConfig = DEFAULT_CONFIG) -> QualityResult:
    if not content:
        return _missing("rules_content", "rules")

    issues: list[QualityIssue] = []
    overview = content.get("overview")
    if not overview:
        issues.append(QualityIssue(Severity.error, IssueCategory.completeness, "overview", "Missing overview"))
    elif len(overview) < cfg.min_overview_length:
        issues.append(QualityIssue(
            Severity.warning,
            IssueCategory.length,
            "overview",
            f"Overview too short ({len(overview)} chars, minimum {cfg.min_overview_length})",
        ))

    quick_start = _count(content, "quickStart")
    if quick_start < cfg.min_quick_start_items:
        issues.append(QualityIssue(
            Severity.warning,
            IssueCategory.completeness,
            "quickStart",
            f"Need at least {cfg.min_quick_start_items} quick start items (found {quick_start})",
        ))

    core_rules = _count(content, "coreRules")
    if core_rules < cfg.min_core_rules_categories:
        issues.append(QualityIssue(
            Severity.warning,
            IssueCategory.completeness,
            "coreRules",
            f"Need at least {cfg.min_core_rules_categories} core rules categories (found {core_rules})",
        ))

    phases = _count(content, "turnStructure")
    if phases < cfg.min_turn_phases:
        issues.append(QualityIssue(
            Severity.warning,
            IssueCategory.completeness,
            "turnStructure",
            f"Need at least {cfg.min_turn_phases} turn phase (found {phases})",
        ))

    if not content.get("winCondition"):
        issues.append(QualityIssue(Severity.error, IssueCategory.completeness, "winCondition", "Missing win condition"))

    tips = _count(content, "tips")
    if tips < cfg.min_tips:
        issues.append(QualityIssue(
            Severity.info,
            IssueCategory.completeness,
            "tips",
            f"Consider adding more tips (found {tips}, recommend {cfg.min_tips}+)",
        ))

    issues.extend(_artifact_issues(content, "rules_content", cfg, placeholders=True))

    if cfg.is_complex_game and not content.get("complexityNote"):
        issues.append(QualityIssue(
            Severity.info,
            IssueCategory.completeness,
            "complexityNote",
            "Complex game should have a complexity acknowledgment note",
        ))
    if not content.get("whatMakesThisSpecial"):
        issues.append(QualityIssue(
            Severity.info,
            IssueCategory.completeness,
            "whatMakesThisSpecial",
            'Consider adding "What Makes This Special" section for better engagement',
        ))

    return calculate_result(issues)


def validate_setup_content(content: dict[str, Any] | None, cfg: QualityConfig = DEFAULT_CONFIG) -> QualityResult:
    if not content:
        return _missing("setup_content", "setup")

    issues: list[QualityIssue] = []
    if not content.get("overview"):
        issues.append(QualityIssue(Severity.error, IssueCategory.completeness, "overview", "Missing setup overview"))

    components = _count(content, "components")
    if components < cfg.min_components:
        issues.append(QualityIssue(
            Severity.warning,
            IssueCategory.completeness,
            "components",
            f"Need at least {cfg.min_components} components listed (found {components})",
        ))

    steps = _count(content, "steps")
    if steps < cfg.min_setup_steps:
        issues.append(QualityIssue(
            Severity.warning,
            IssueCategory.completeness,
            "steps",
            f"Need at least {cfg.min_setup_steps} setup steps (found {steps})",
        ))

    if not content.get("firstPlayerRule"):
        issues.append(QualityIssue(Severity.info, IssueCategory.completeness, "firstPlayerRule", "Missing first player rule"))
    if not content.get("playerSetup"):
        issues.append(QualityIssue(Severity.warning, IssueCategory.completeness, "playerSetup", "Missing player setup section"))

    issues.extend(_artifact_issues(content, "setup_content", cfg, placeholders=False))
    return calculate_result(issues)


def validate_reference_content(content: dict[str, Any] | None, cfg: QualityConfig = DEFAULT_CONFIG) -> QualityResult:
    if not content:
        return _missing("reference_content", "reference")

    issues: list[QualityIssue] = []
    if not content.get("turnSummary"):
        issues.append(QualityIssue(Severity.warning, IssueCategory.completeness, "turnSummary", "Missing turn summary"))
    if not content.get("endGame"):
        issues.append(QualityIssue(Severity.warning, IssueCategory.completeness, "endGame", "Missing end game conditions"))
    if not content.get("scoringSummary"):
        issues.append(QualityIssue(Severity.info, IssueCategory.completeness, "scoringSummary", "Missing scoring summary"))
    if not content.get("importantRules"):
        issues.append(QualityIssue(
            Severity.info,
            IssueCategory.completeness,
            "importantRules",
            "Consider adding important rules reminders",
        ))

    issues.extend(_artifact_issues(content, "reference_content", cfg, placeholders=False))
    return calculate_result(issues)


@dataclass
class ContentValidation:
    overall: QualityResult
    rules: QualityResult
    setup: QualityResult
    reference: QualityResult


def validate_all_content(
    rules_content: dict[str, Any] | None,
    setup_content: dict[str, Any] | None,
    reference_content: dict[str, Any] | None,
    cfg: QualityConfig = DEFAULT_CONFIG,
) -> ContentValidation:
    """Validate every content section; overall passes only if each section does."""
    rules = validate_rules_content(rules_content, cfg)
    setup = validate_setup_content(setup_content, cfg)
    reference = validate_reference_content(reference_content, cfg)

    issues = [
        replace(issue, field=f"{prefix}.{issue.field}")
        for prefix, result in (("rules", rules), ("setup", setup), ("reference", reference))
        for issue in result.issues
    ]
    overall = calculate_result(issues)
    overall.passed = rules.passed and setup.passed and reference.passed
    return ContentValidation(
        overall=overall,
        rules=rules,
        setup=setup,
        reference=reference,
    )


def quality_summary(result: QualityResult) -> str:
    if result.passed and result.score >= 90:
        return "Excellent - Ready for publication"
    if result.passed and result.score >= 70:
        return "Good - Minor improvements suggested"
    if result.passed:
        return "Acceptable - Consider addressing warnings"
    return f"Not ready - {result.errors} error(s) must be fixed"
