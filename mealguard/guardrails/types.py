from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Literal, Optional

RuleAction = Literal["allow", "block"]
Strictness = Literal["hard", "soft"]
MatchTarget = Literal["ingredient", "step", "metadata"]
MatchMode = Literal["exact", "word_boundary", "substring", "canonical_id"]
EvaluationMode = Literal["recipe_adaptation", "meal_planner", "plan_chat"]
Specificity = Literal["user", "diet", "global"]
RulesetSource = Literal["database", "fallback"]
Outcome = Literal["allowed", "blocked", "warned"]

MATCH_TARGETS: tuple[str, ...] = ("ingredient", "step", "metadata")
MATCH_MODES: tuple[str, ...] = ("exact", "word_boundary", "substring", "canonical_id")

REASON_CODES: tuple[str, ...] = (
    "FORBIDDEN_INGREDIENT",
    "ALLERGEN_PRESENT",
    "DISLIKED_INGREDIENT",
    "MISSING_REQUIRED_CATEGORY",
    "INVALID_CATEGORY",
    "INVALID_NEVO_CODE",
    "INVALID_CANONICAL_ID",
    "CALORIE_TARGET_MISS",
    "MACRO_TARGET_MISS",
    "MEAL_PREFERENCE_MISS",
    "MEAL_STRUCTURE_VIOLATION",
    "SOFT_CONSTRAINT_VIOLATION",
    "EVALUATOR_ERROR",
    "EVALUATOR_WARNING",
    "RULESET_LOAD_ERROR",
    "UNKNOWN_ERROR",
)

# Codes a stored rule may carry; evaluator-only codes are excluded.
RULE_CODES: tuple[str, ...] = REASON_CODES[:12]


@dataclass
class RuleMatchSpec:
    term: str
    synonyms: List[str] = field(default_factory=list)
    canonical_id: Optional[str] = None
    preferred_match_mode: Optional[MatchMode] = None


@dataclass
class RuleMetadata:
    rule_code: str
    label: str
    category: Optional[str] = None
    specificity: Optional[Specificity] = None
    # Allow rules are traced but never override a block.
    is_non_enforcing_allow: bool = False
    substitution_suggestions: List[str] = field(default_factory=list)


@dataclass
class RemediationHint:
    type: Literal["substitute", "remove", "add_required", "reduce"]
    payload: Dict[str, Any]
    prompt_text: str


@dataclass
class GuardRule:
    id: str
    action: RuleAction
    strictness: Strictness
    priority: int
    target: MatchTarget
    match: RuleMatchSpec
    metadata: RuleMetadata
    remediation: List[RemediationHint] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Provenance:
    source: RulesetSource
    loaded_at: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class GuardrailsRuleset:
    diet_id: str
    version: int
    rules: List[GuardRule]
    heuristics: Dict[str, List[str]]
    provenance: Provenance
    content_hash: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TextAtom:
    text: str
    path: str
    locale: Optional[str] = None
    canonical_id: Optional[str] = None


@dataclass
class GuardrailsTargets:
    ingredient: List[TextAtom] = field(default_factory=list)
    step: List[TextAtom] = field(default_factory=list)
    metadata: List[TextAtom] = field(default_factory=list)

    def for_target(self, target: str) -> List[TextAtom]:
        return getattr(self, target, None) or []


@dataclass
class EvaluationContext:
    mode: EvaluationMode
    timestamp: str
    diet_id: Optional[str] = None
    locale: Optional[str] = None


@dataclass
class GuardRuleMatch:
    rule_id: str
    matched_text: str
    target_path: str
    match_mode: MatchMode
    locale: Optional[str] = None
    rule_code: Optional[str] = None
    rule_label: Optional[str] = None


@dataclass
class EvaluationStep:
    step: int
    rule_id: str
    match_found: bool
    applied: bool
    match_details: Optional[GuardRuleMatch] = None


@dataclass
class DecisionTrace:
    evaluation_id: str
    timestamp: str
    context: EvaluationContext
    ruleset_version: int
    ruleset_hash: str
    evaluator_version: str
    evaluation_steps: List[EvaluationStep] = field(default_factory=list)
    final_outcome: Outcome = "allowed"
    applied_rule_ids: List[str] = field(default_factory=list)
    reason_codes: List[str] = field(default_factory=list)


@dataclass
class GuardDecision:
    ok: bool
    outcome: Outcome
    matches: List[GuardRuleMatch]
    applied_rule_ids: List[str]
    summary: str
    reason_codes: List[str]
    remediation_hints: List[RemediationHint]
    trace: DecisionTrace

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
