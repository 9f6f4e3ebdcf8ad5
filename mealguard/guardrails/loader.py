"""Load the merged guardrails ruleset for a diet.

The three rule sources are fetched concurrently and merged into one sorted,
hashed ruleset. A diet whose sources yield no rules at all gets the built-in
fallback ruleset; a source that raises fails the whole load.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

from .adapters import (
    CONSTRAINTS_SOURCE,
    HEURISTICS_SOURCE,
    TERM_RULES_SOURCE,
    adapt_constraint_rows,
    adapt_heuristic_rows,
    adapt_term_rule_rows,
)
from .hashing import hash_content
from .types import (
    EvaluationMode,
    GuardRule,
    GuardrailsRuleset,
    Provenance,
    RemediationHint,
    RuleMatchSpec,
    RuleMetadata,
)

logger = logging.getLogger(__name__)

FALLBACK_HEURISTICS: Dict[str, List[str]] = {
    "added_sugar_terms": ["suiker", "siroop", "stroop"],
}


class GuardrailsRepo(Protocol):
    """Storage seam for the loader; each call returns rows scoped to one diet."""

    async def load_constraints(self, diet_id: str) -> Mapping[str, Any]:
        ...

    async def load_recipe_adaptation_rules(self, diet_id: str) -> Mapping[str, Any]:
        ...

    async def load_heuristics(self, diet_id: str) -> Mapping[str, Any]:
        ...


def _resolve_now(now: datetime | str | None) -> str:
    if now is None:
        return datetime.now(timezone.utc).isoformat()
    if isinstance(now, datetime):
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now.isoformat()
    return str(now)


def _fallback_rules() -> List[GuardRule]:
    return [
        GuardRule(
            id="fallback:pasta",
            action="block",
            strictness="hard",
            priority=50,
            target="ingredient",
            match=RuleMatchSpec(
                term="pasta",
                synonyms=["spaghetti", "penne", "fusilli", "macaroni", "orzo"],
            ),
            metadata=RuleMetadata(
                rule_code="FORBIDDEN_INGREDIENT",
                label="Glutenvrij dieet",
                specificity="global",
                substitution_suggestions=["rijstnoedels", "zucchininoedels"],
            ),
            remediation=[
                RemediationHint(
                    type="substitute",
                    payload={"original": "pasta", "alternatives": ["rijstnoedels", "zucchininoedels"]},
                    prompt_text="Replace 'pasta' with rijstnoedels or zucchininoedels",
                )
            ],
        ),
        GuardRule(
            id="fallback:melk",
            action="block",
            strictness="hard",
            priority=50,
            target="ingredient",
            match=RuleMatchSpec(term="melk", synonyms=["koemelk", "volle melk"]),
            metadata=RuleMetadata(
                rule_code="FORBIDDEN_INGREDIENT",
                label="Lactose-intolerantie",
                specificity="global",
            ),
        ),
    ]


def _policy_hash(diet_id: str, rules: Sequence[GuardRule], heuristics: Mapping[str, List[str]]) -> str:
    # Provenance and timestamps stay out of the hash.
    return hash_content({"diet_id": diet_id, "rules": list(rules), "heuristics": dict(heuristics)})


def get_fallback_ruleset(
    diet_id: str,
    *,
    now: datetime | str | None = None,
    errors: Sequence[str] | None = None,
) -> GuardrailsRuleset:
    loaded_at = _resolve_now(now)
    rules = sorted(_fallback_rules(), key=lambda rule: rule.id)
    heuristics = {key: list(terms) for key, terms in FALLBACK_HEURISTICS.items()}
    metadata: Dict[str, Any] = {
        "reason": "No database rules found, using built-in fallback",
        "sources": [{"kind": "fallback", "ref": "builtin", "loaded_at": loaded_at}],
        "rule_counts": {"total": len(rules), "by_source": {"builtin": len(rules)}},
    }
    if errors:
        metadata["errors"] = list(errors)
    return GuardrailsRuleset(
        diet_id=diet_id,
        version=1,
        rules=rules,
        heuristics=heuristics,
        provenance=Provenance(source="fallback", loaded_at=loaded_at, metadata=metadata),
        content_hash=_policy_hash(diet_id, rules, heuristics),
    )


def _merge_rules(existing: List[GuardRule], incoming: Sequence[GuardRule]) -> List[GuardRule]:
    """Append rules, replacing any earlier rule with the same id in place."""
    index_by_id = {rule.id: position for position, rule in enumerate(existing)}
    for rule in incoming:
        position = index_by_id.get(rule.id)
        if position is None:
            index_by_id[rule.id] = len(existing)
            existing.append(rule)
        else:
            existing[position] = rule
    return existing


def _compute_version(*row_sets: Sequence[Mapping[str, Any]]) -> int:
    stamps = sorted(
        str(row.get("updated_at"))
        for rows in row_sets
        for row in rows
        if row.get("updated_at")
    )
    if not stamps:
        return 1
    return int(hash_content(",".join(stamps))[:8], 16) or 1


def _collect_errors(*results: Mapping[str, Any]) -> List[str]:
    errors: List[str] = []
    for result in results:
        errors.extend(str(error) for error in (result.get("errors") or []))
    return errors


async def load_guardrails_ruleset(
    diet_id: str,
    mode: EvaluationMode,
    *,
    locale: Optional[str] = None,
    now: datetime | str | None = None,
    repo: GuardrailsRepo | None = None,
) -> GuardrailsRuleset:
    """Fetch, merge, sort and hash every active guard rule for ``diet_id``.

    ``mode`` and ``locale`` are accepted for callers that log or cache per
    flow; they do not change which rules are loaded. Passing ``now`` makes the
    provenance timestamps deterministic; the content hash never depends on it.
    """
    loaded_at = _resolve_now(now)
    if repo is None:
        from .repository import SqlGuardrailsRepo

        repo = SqlGuardrailsRepo.from_default_session_factory()

    constraints_result, rules_result, heuristics_result = await asyncio.gather(
        repo.load_constraints(diet_id),
        repo.load_recipe_adaptation_rules(diet_id),
        repo.load_heuristics(diet_id),
    )

    constraint_rows = list(constraints_result.get("constraints") or [])
    term_rows = list(rules_result.get("rules") or [])
    heuristic_rows = list(heuristics_result.get("heuristics") or [])
    errors = _collect_errors(constraints_result, rules_result, heuristics_result)

    constraint_rules = adapt_constraint_rows(constraint_rows)
    term_rules = adapt_term_rule_rows(term_rows)
    heuristics = adapt_heuristic_rows(heuristic_rows)

    merged = _merge_rules(list(constraint_rules.rules), term_rules.rules)
    if not merged:
        logger.info(
            "No active guardrails for diet=%s mode=%s; using fallback ruleset",
            diet_id,
            mode,
        )
        return get_fallback_ruleset(diet_id, now=loaded_at, errors=errors)

    sorted_rules = sorted(merged, key=lambda rule: rule.id)
    sources: List[Dict[str, Any]] = []
    if constraint_rows:
        sources.append(
            {
                "kind": "db",
                "ref": CONSTRAINTS_SOURCE,
                "loaded_at": loaded_at,
                "details": {
                    "row_count": constraint_rules.row_count,
                    "active_row_count": constraint_rules.active_row_count,
                    "rule_count": len(constraint_rules.rules),
                },
            }
        )
    if term_rows:
        sources.append(
            {
                "kind": "db",
                "ref": TERM_RULES_SOURCE,
                "loaded_at": loaded_at,
                "details": {
                    "row_count": term_rules.row_count,
                    "active_row_count": term_rules.active_row_count,
                    "rule_count": len(term_rules.rules),
                },
            }
        )
    if heuristic_rows:
        sources.append(
            {
                "kind": "db",
                "ref": HEURISTICS_SOURCE,
                "loaded_at": loaded_at,
                "details": {
                    "row_count": heuristics.row_count,
                    "active_row_count": heuristics.active_row_count,
                    "heuristic_types": sorted(heuristics.heuristics),
                },
            }
        )

    metadata: Dict[str, Any] = {
        "sources": sources,
        "rule_counts": {
            "total": len(sorted_rules),
            "by_source": {
                entry["ref"]: entry["details"]["rule_count"]
                for entry in sources
                if "rule_count" in entry["details"]
            },
        },
    }
    if errors:
        metadata["errors"] = errors

    content_hash = _policy_hash(diet_id, sorted_rules, heuristics.heuristics)
    logger.info(
        "Loaded guardrails diet=%s mode=%s locale=%s rules=%d hash=%s",
        diet_id,
        mode,
        locale,
        len(sorted_rules),
        content_hash[:12],
    )
    return GuardrailsRuleset(
        diet_id=diet_id,
        version=_compute_version(constraint_rows, term_rows, heuristic_rows),
        rules=sorted_rules,
        heuristics=heuristics.heuristics,
        provenance=Provenance(source="database", loaded_at=loaded_at, metadata=metadata),
        content_hash=content_hash,
    )


def load_ruleset_summary(ruleset: GuardrailsRuleset) -> Dict[str, Any]:
    """JSON-safe view of a ruleset, as returned by the API."""
    payload = ruleset.to_dict()
    payload["rule_count"] = len(ruleset.rules)
    payload["heuristic_types"] = sorted(ruleset.heuristics)
    return payload
