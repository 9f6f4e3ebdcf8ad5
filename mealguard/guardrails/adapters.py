"""Translate raw rule-source rows into normalized guard rules.

Each adapter accepts the plain row dicts a ``GuardrailsRepo`` returns and
drops inactive or malformed rows silently. Exclusion here is filtering, not
failure: repo errors never reach this module.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping

from .types import (
    MATCH_MODES,
    MATCH_TARGETS,
    RULE_CODES,
    GuardRule,
    RemediationHint,
    RuleMatchSpec,
    RuleMetadata,
)

logger = logging.getLogger(__name__)

CONSTRAINTS_SOURCE = "diet_category_constraints"
TERM_RULES_SOURCE = "recipe_adaptation_rules"
HEURISTICS_SOURCE = "recipe_adaptation_heuristics"

DEFAULT_PRIORITY = 50
DEFAULT_MATCH_MODE = "word_boundary"

ADDED_SUGAR_HEURISTIC = "added_sugar"


@dataclass
class AdaptedRules:
    rules: List[GuardRule] = field(default_factory=list)
    row_count: int = 0
    active_row_count: int = 0


@dataclass
class AdaptedHeuristics:
    heuristics: Dict[str, List[str]] = field(default_factory=dict)
    row_count: int = 0
    active_row_count: int = 0


def build_rule_id(source: str, key: str) -> str:
    return f"db:{source}:{key}"


def heuristic_key(heuristic_type: str) -> str:
    """Map a heuristic type to its key in ``Ruleset.heuristics``."""
    if heuristic_type == ADDED_SUGAR_HEURISTIC:
        return "added_sugar_terms"
    return f"{heuristic_type}_terms"


def is_active(row: Any) -> bool:
    # A missing flag means active; anything that is not a mapping is malformed.
    if not isinstance(row, Mapping):
        return False
    return row.get("is_active") is not False


def adapt_constraint_rows(rows: Iterable[Mapping[str, Any]] | None) -> AdaptedRules:
    """Expand category constraints into one rule per active category item."""
    result = AdaptedRules()
    for row in rows or []:
        result.row_count += 1
        if not is_active(row):
            continue
        result.active_row_count += 1
        if row.get("is_paused") is True:
            continue
        category = row.get("category")
        if not isinstance(category, Mapping) or not is_active(category):
            continue
        constraint_id = row.get("id")
        if not constraint_id:
            logger.debug("Skipping constraint row without id (category=%s)", category.get("code"))
            continue
        for index, item in enumerate(category.get("items") or []):
            if not isinstance(item, Mapping) or not is_active(item):
                continue
            rule = _constraint_item_to_rule(row, category, item, index)
            if rule is not None:
                result.rules.append(rule)
    return result


def _constraint_item_to_rule(
    row: Mapping[str, Any],
    category: Mapping[str, Any],
    item: Mapping[str, Any],
    index: int,
) -> GuardRule | None:
    term = _normalize_term(item.get("term"))
    if not term:
        return None

    category_type = category.get("category_type") or "forbidden"
    action = row.get("rule_action") or ("block" if category_type == "forbidden" else "allow")
    strictness = row.get("strictness") or "hard"
    name = category.get("name_nl") or category.get("code") or ""

    if category_type == "required":
        rule_code = "MISSING_REQUIRED_CATEGORY"
    elif strictness == "hard":
        rule_code = "FORBIDDEN_INGREDIENT"
    else:
        rule_code = "SOFT_CONSTRAINT_VIOLATION"

    if action == "allow":
        label = f"{name} (Toegestaan)"
    else:
        label = f"{name} ({'Strikt verboden' if strictness == 'hard' else 'Niet gewenst'})"

    return GuardRule(
        id=build_rule_id(CONSTRAINTS_SOURCE, f"{row['id']}:{index}"),
        action=action,
        strictness=strictness,
        priority=row.get("rule_priority") or DEFAULT_PRIORITY,
        target="ingredient",
        match=RuleMatchSpec(term=term, synonyms=_normalize_terms(item.get("synonyms"))),
        metadata=RuleMetadata(
            rule_code=rule_code,
            label=label,
            category=category.get("code"),
            specificity="diet",
            is_non_enforcing_allow=action == "allow",
        ),
    )


def adapt_term_rule_rows(rows: Iterable[Mapping[str, Any]] | None) -> AdaptedRules:
    """Map term-based adaptation rules 1:1 onto block rules."""
    result = AdaptedRules()
    for row in rows or []:
        result.row_count += 1
        if not is_active(row):
            continue
        result.active_row_count += 1
        rule = _term_row_to_rule(row)
        if rule is not None:
            result.rules.append(rule)
    return result


def _term_row_to_rule(row: Mapping[str, Any]) -> GuardRule | None:
    rule_id = row.get("id")
    term = _normalize_term(row.get("term"))
    if not rule_id or not term:
        logger.debug("Skipping malformed adaptation rule row id=%s", rule_id)
        return None

    raw_code = row.get("rule_code")
    rule_code = raw_code if raw_code in RULE_CODES else "UNKNOWN_ERROR"
    target = row.get("target") if row.get("target") in MATCH_TARGETS else "ingredient"
    match_mode = row.get("match_mode") if row.get("match_mode") in MATCH_MODES else DEFAULT_MATCH_MODE
    suggestions = [str(value) for value in _as_list(row.get("substitution_suggestions")) if value]

    remediation: List[RemediationHint] = []
    if suggestions:
        remediation.append(
            RemediationHint(
                type="substitute",
                payload={"original": term, "alternatives": suggestions},
                prompt_text=f"Replace '{term}' with {' or '.join(suggestions)}",
            )
        )

    return GuardRule(
        id=build_rule_id(TERM_RULES_SOURCE, str(rule_id)),
        action="block",
        strictness="soft" if "SOFT" in rule_code else "hard",
        priority=row.get("priority") or DEFAULT_PRIORITY,
        target=target,
        match=RuleMatchSpec(
            term=term,
            synonyms=_normalize_terms(row.get("synonyms")),
            preferred_match_mode=match_mode,
        ),
        metadata=RuleMetadata(
            rule_code=rule_code,
            label=row.get("rule_label") or term,
            specificity="diet",
            substitution_suggestions=suggestions,
        ),
        remediation=remediation,
    )


def adapt_heuristic_rows(rows: Iterable[Mapping[str, Any]] | None) -> AdaptedHeuristics:
    """Aggregate heuristic keyword lists by type, preserving first-seen order."""
    result = AdaptedHeuristics()
    for row in rows or []:
        result.row_count += 1
        if not is_active(row):
            continue
        result.active_row_count += 1
        heuristic_type = row.get("heuristic_type")
        if not heuristic_type:
            continue
        bucket = result.heuristics.setdefault(heuristic_key(str(heuristic_type)), [])
        for term in _normalize_terms(row.get("terms")):
            if term not in bucket:
                bucket.append(term)
    result.heuristics = {key: terms for key, terms in result.heuristics.items() if terms}
    return result


def _normalize_term(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip().lower()


def _as_list(values: Any) -> List[Any]:
    # A bare string is a single value, not a sequence of characters.
    if values is None:
        return []
    if isinstance(values, str):
        return [values]
    if isinstance(values, Mapping) or not isinstance(values, Iterable):
        return []
    return list(values)


def _normalize_terms(values: Any) -> List[str]:
    normalized: List[str] = []
    for value in _as_list(values):
        term = _normalize_term(value)
        if term:
            normalized.append(term)
    return normalized
