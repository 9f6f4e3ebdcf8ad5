from __future__ import annotations

from mealguard.guardrails.evaluator import EVALUATOR_VERSION, evaluate_guardrails, sort_rules
from mealguard.guardrails.loader import get_fallback_ruleset
from mealguard.guardrails.matchers import (
    match_canonical_id,
    match_exact,
    match_substring,
    match_word_boundary,
)
from mealguard.guardrails.targets import map_draft_to_targets
from mealguard.guardrails.types import (
    EvaluationContext,
    GuardRule,
    GuardrailsRuleset,
    Provenance,
    RuleMatchSpec,
    RuleMetadata,
    TextAtom,
)

NOW = "2026-03-01T12:00:00+00:00"


def _context() -> EvaluationContext:
    return EvaluationContext(mode="recipe_adaptation", timestamp=NOW, diet_id="diet-1", locale="nl")


def _rule(
    rule_id: str,
    term: str,
    *,
    action: str = "block",
    strictness: str = "hard",
    priority: int = 50,
    target: str = "ingredient",
    mode: str | None = None,
    specificity: str | None = "diet",
    rule_code: str = "FORBIDDEN_INGREDIENT",
) -> GuardRule:
    return GuardRule(
        id=rule_id,
        action=action,
        strictness=strictness,
        priority=priority,
        target=target,
        match=RuleMatchSpec(term=term, preferred_match_mode=mode),
        metadata=RuleMetadata(rule_code=rule_code, label=term, specificity=specificity),
    )


def _ruleset(*rules: GuardRule) -> GuardrailsRuleset:
    return GuardrailsRuleset(
        diet_id="diet-1",
        version=1,
        rules=list(rules),
        heuristics={},
        provenance=Provenance(source="database", loaded_at=NOW),
        content_hash="test-hash",
    )


def _targets(ingredients=(), steps=(), title=None):
    draft = {
        "title": title,
        "ingredients": [{"name": name} for name in ingredients],
        "steps": [{"text": text} for text in steps],
    }
    return map_draft_to_targets(draft, locale="nl")


def test_word_boundary_does_not_match_inside_words():
    assert match_word_boundary("200 g suiker", "suiker")
    assert not match_word_boundary("suikervrije siroop", "suiker")
    assert match_word_boundary("suiker (fijn)", "suiker")


def test_other_match_modes():
    assert match_exact("  Melk ", "melk")
    assert not match_exact("volle melk", "melk")
    assert match_substring("kokosmelk", "melk")
    assert match_canonical_id(TextAtom(text="x", path="p", canonical_id="nevo:123"), "nevo:123")
    assert match_canonical_id(TextAtom(text="nevo:123", path="p"), "nevo:123")


def test_fallback_ruleset_blocks_milk():
    ruleset = get_fallback_ruleset("diet-1", now=NOW)
    decision = evaluate_guardrails(ruleset, _targets(ingredients=["Volle melk"]), _context())

    assert decision.ok is False
    assert decision.outcome == "blocked"
    assert decision.applied_rule_ids == ["fallback:melk"]
    assert decision.reason_codes == ["FORBIDDEN_INGREDIENT"]
    # "melk" and "volle melk" both hit the same atom; one match is kept.
    assert len(decision.matches) == 1
    assert decision.matches[0].target_path == "ingredients[0].name"
    assert decision.summary.startswith("Blocked: 1 hard")


def test_forbidden_ingredient_is_caught_in_steps_with_remediation():
    ruleset = get_fallback_ruleset("diet-1", now=NOW)
    targets = _targets(ingredients=["Tomaat"], steps=["Kook de spaghetti 8 minuten"])
    decision = evaluate_guardrails(ruleset, targets, _context())

    assert decision.outcome == "blocked"
    assert decision.applied_rule_ids == ["fallback:pasta"]
    assert decision.matches[0].target_path == "steps[0].text"
    assert decision.matches[0].matched_text == "spaghetti"
    assert decision.remediation_hints[0].type == "substitute"
    assert decision.remediation_hints[0].payload["alternatives"] == ["rijstnoedels", "zucchininoedels"]


def test_clean_draft_is_allowed():
    ruleset = get_fallback_ruleset("diet-1", now=NOW)
    decision = evaluate_guardrails(ruleset, _targets(ingredients=["Tomaat", "Basilicum"]), _context())

    assert decision.ok is True
    assert decision.outcome == "allowed"
    assert decision.summary == "Allowed: No violations detected"
    assert decision.reason_codes == []
    assert decision.trace.final_outcome == "allowed"
    assert decision.trace.evaluator_version == EVALUATOR_VERSION
    assert [step.rule_id for step in decision.trace.evaluation_steps] == ["fallback:melk", "fallback:pasta"]


def test_soft_rule_only_warns():
    ruleset = _ruleset(
        _rule("r:soft", "room", strictness="soft", rule_code="SOFT_CONSTRAINT_VIOLATION")
    )
    decision = evaluate_guardrails(ruleset, _targets(ingredients=["Slagroom", "Zure room"]), _context())

    assert decision.ok is True
    assert decision.outcome == "warned"
    assert decision.reason_codes == ["SOFT_CONSTRAINT_VIOLATION"]
    assert [match.target_path for match in decision.matches] == ["ingredients[1].name"]


def test_block_wins_over_allow():
    ruleset = _ruleset(
        _rule("r:allow", "kaas", action="allow", priority=90, rule_code="FORBIDDEN_INGREDIENT"),
        _rule("r:block", "kaas", priority=10),
    )
    decision = evaluate_guardrails(ruleset, _targets(ingredients=["Geraspte kaas"]), _context())

    assert decision.outcome == "blocked"
    assert decision.applied_rule_ids == ["r:block"]
    assert len(decision.matches) == 2


def test_allow_match_without_block_reports_allow_summary():
    ruleset = _ruleset(_rule("r:allow", "olijfolie", action="allow"))
    decision = evaluate_guardrails(ruleset, _targets(ingredients=["Olijfolie"]), _context())

    assert decision.outcome == "allowed"
    assert decision.applied_rule_ids == []
    assert decision.summary == "Allowed: 1 allow rule(s) matched"


def test_substring_on_steps_is_a_configuration_error():
    hard = _ruleset(_rule("r:cfg", "zout", target="step", mode="substring"))
    decision = evaluate_guardrails(hard, _targets(steps=["Breng op smaak"]), _context())
    assert decision.outcome == "blocked"
    assert decision.reason_codes == ["EVALUATOR_ERROR"]

    soft = _ruleset(_rule("r:cfg", "zout", target="step", mode="substring", strictness="soft"))
    decision = evaluate_guardrails(soft, _targets(steps=["Breng op smaak"]), _context())
    assert decision.outcome == "warned"
    assert decision.reason_codes == ["EVALUATOR_WARNING"]


def test_metadata_rules_use_exact_match_by_default():
    ruleset = _ruleset(_rule("r:title", "tiramisu", target="metadata"))
    assert evaluate_guardrails(ruleset, _targets(title="Tiramisu"), _context()).outcome == "blocked"
    assert evaluate_guardrails(ruleset, _targets(title="Snelle tiramisu"), _context()).outcome == "allowed"


def test_sort_rules_orders_by_priority_specificity_then_id():
    rules = [
        _rule("b", "x", priority=50, specificity="global"),
        _rule("a", "x", priority=50, specificity="global"),
        _rule("c", "x", priority=50, specificity="user"),
        _rule("d", "x", priority=90, specificity="global"),
        _rule("e", "x", priority=50, specificity=None),
    ]
    assert [rule.id for rule in sort_rules(rules)] == ["d", "c", "e", "a", "b"]


def test_reason_codes_are_deduplicated_in_order():
    ruleset = _ruleset(
        _rule("r:1", "ui", priority=90),
        _rule("r:2", "knoflook", priority=80),
        _rule("r:3", "prei", priority=70, strictness="soft", rule_code="SOFT_CONSTRAINT_VIOLATION"),
    )
    decision = evaluate_guardrails(ruleset, _targets(ingredients=["Ui", "Knoflook", "Prei"]), _context())

    assert decision.applied_rule_ids == ["r:1", "r:2", "r:3"]
    assert decision.reason_codes == ["FORBIDDEN_INGREDIENT", "SOFT_CONSTRAINT_VIOLATION"]
    assert decision.to_dict()["trace"]["reason_codes"] == decision.reason_codes
