"""Deterministic evaluation of a guardrails ruleset against text targets.

Rules run in a fixed order (priority, then specificity, then id). Block always
wins over allow; hard blocks fail the output while soft blocks only warn.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple

from .matchers import find_matches, match_text_atom
from .types import (
    REASON_CODES,
    DecisionTrace,
    EvaluationContext,
    EvaluationStep,
    GuardDecision,
    GuardRule,
    GuardRuleMatch,
    GuardrailsRuleset,
    GuardrailsTargets,
    MatchMode,
    MatchTarget,
    RemediationHint,
    TextAtom,
)

EVALUATOR_VERSION = "1.0.0"

_SPECIFICITY_SCORES = {"user": 3, "diet": 2, "global": 1}


@dataclass
class _DecisionState:
    has_hard_block: bool = False
    has_soft_block: bool = False
    has_allow: bool = False
    applied_rule_ids: List[str] = field(default_factory=list)
    reason_codes: List[str] = field(default_factory=list)
    config_errors: List[Tuple[str, str]] = field(default_factory=list)
    matches: List[GuardRuleMatch] = field(default_factory=list)


def _specificity(rule: GuardRule) -> int:
    return _SPECIFICITY_SCORES.get(rule.metadata.specificity or "diet", 2)


def sort_rules(rules: Sequence[GuardRule]) -> List[GuardRule]:
    return sorted(rules, key=lambda rule: (-rule.priority, -_specificity(rule), rule.id))


def _config_error(rule: GuardRule) -> bool:
    # Substring matching on free-form step text produces false positives.
    return rule.match.preferred_match_mode == "substring" and rule.target == "step"


def _match_mode(rule: GuardRule, target: MatchTarget) -> MatchMode:
    if rule.match.preferred_match_mode:
        return rule.match.preferred_match_mode
    if target == "metadata" and rule.match.canonical_id:
        return "canonical_id"
    if target in ("ingredient", "step"):
        return "word_boundary"
    return "exact"


def _slots_for(rule: GuardRule, targets: GuardrailsTargets) -> List[Tuple[MatchTarget, List[TextAtom]]]:
    # Forbidden ingredients are also caught when they only appear in the steps.
    if rule.action == "block" and rule.target == "ingredient":
        names: Tuple[MatchTarget, ...] = ("ingredient", "step")
    else:
        names = (rule.target,)
    return [(name, targets.for_target(name)) for name in names if targets.for_target(name)]


def _find_rule_matches(rule: GuardRule, targets: GuardrailsTargets) -> List[GuardRuleMatch]:
    matches: List[GuardRuleMatch] = []
    seen: Set[str] = set()

    def _record(atom: TextAtom, matched_text: str, mode: MatchMode) -> None:
        if atom.path in seen:
            return
        seen.add(atom.path)
        matches.append(
            GuardRuleMatch(
                rule_id=rule.id,
                matched_text=matched_text,
                target_path=atom.path,
                match_mode=mode,
                locale=atom.locale,
                rule_code=rule.metadata.rule_code,
                rule_label=rule.metadata.label,
            )
        )

    for target, atoms in _slots_for(rule, targets):
        mode = _match_mode(rule, target)
        for term in [rule.match.term, *rule.match.synonyms]:
            for atom, matched_text in find_matches(atoms, term, mode):
                _record(atom, matched_text, mode)
        if rule.match.canonical_id and target == "metadata":
            for atom in atoms:
                if match_text_atom(atom, rule.match.canonical_id, "canonical_id"):
                    _record(atom, atom.canonical_id or rule.match.canonical_id, "canonical_id")
    return matches


def _reason_code(rule: GuardRule) -> str:
    if rule.metadata.rule_code in REASON_CODES:
        return rule.metadata.rule_code
    if rule.strictness == "soft":
        return "SOFT_CONSTRAINT_VIOLATION"
    if rule.action == "block":
        return "FORBIDDEN_INGREDIENT"
    return "UNKNOWN_ERROR"


def _apply(state: _DecisionState, rule: GuardRule, matches: List[GuardRuleMatch]) -> None:
    if _config_error(rule):
        code = "EVALUATOR_ERROR" if rule.strictness == "hard" else "EVALUATOR_WARNING"
        state.config_errors.append((rule.id, code))
        if rule.strictness == "hard":
            state.has_hard_block = True
        else:
            state.has_soft_block = True
        state.applied_rule_ids.append(rule.id)
        state.reason_codes.append(code)
        return

    if not matches:
        return

    if rule.action == "allow":
        state.has_allow = True
        return

    if rule.strictness == "hard":
        state.has_hard_block = True
    else:
        state.has_soft_block = True
    state.applied_rule_ids.append(rule.id)
    state.reason_codes.append(_reason_code(rule))


def _summary(state: _DecisionState) -> str:
    if state.has_hard_block:
        return f"Blocked: {len(state.applied_rule_ids)} hard constraint violation(s) detected"
    if state.has_soft_block:
        return f"Warned: {len(state.applied_rule_ids)} soft constraint violation(s) detected"
    if state.has_allow and state.matches:
        return f"Allowed: {len(state.matches)} allow rule(s) matched"
    return "Allowed: No violations detected"


def _dedupe(values: Sequence[str]) -> List[str]:
    return list(dict.fromkeys(values))


def evaluate_guardrails(
    ruleset: GuardrailsRuleset,
    targets: GuardrailsTargets,
    context: EvaluationContext,
) -> GuardDecision:
    rules = sort_rules(ruleset.rules)
    state = _DecisionState()
    trace = DecisionTrace(
        evaluation_id=f"eval-{context.timestamp}-{context.mode}",
        timestamp=context.timestamp,
        context=context,
        ruleset_version=ruleset.version,
        ruleset_hash=ruleset.content_hash,
        evaluator_version=EVALUATOR_VERSION,
    )

    for position, rule in enumerate(rules, start=1):
        matches = _find_rule_matches(rule, targets)
        applied_before = len(state.applied_rule_ids)
        _apply(state, rule, matches)
        state.matches.extend(matches)
        trace.evaluation_steps.append(
            EvaluationStep(
                step=position,
                rule_id=rule.id,
                match_found=bool(matches),
                applied=len(state.applied_rule_ids) > applied_before,
                match_details=matches[0] if matches else None,
            )
        )

    if state.has_hard_block:
        outcome, ok = "blocked", False
    elif state.has_soft_block:
        outcome, ok = "warned", True
    else:
        outcome, ok = "allowed", True

    reason_codes = _dedupe(state.reason_codes)
    trace.final_outcome = outcome
    trace.applied_rule_ids = list(state.applied_rule_ids)
    trace.reason_codes = list(reason_codes)

    rules_by_id: Dict[str, GuardRule] = {rule.id: rule for rule in rules}
    remediation: List[RemediationHint] = []
    for rule_id in state.applied_rule_ids:
        rule: Optional[GuardRule] = rules_by_id.get(rule_id)
        if rule:
            remediation.extend(rule.remediation)

    return GuardDecision(
        ok=ok,
        outcome=outcome,
        matches=state.matches,
        applied_rule_ids=list(state.applied_rule_ids),
        summary=_summary(state),
        reason_codes=reason_codes,
        remediation_hints=remediation,
        trace=trace,
    )
