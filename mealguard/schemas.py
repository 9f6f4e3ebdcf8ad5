from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Literal

from pydantic import BaseModel, ConfigDict, Field

MAX_PREFERENCES = 20


class DraftIngredient(BaseModel):
    name: str = ""
    quantity: Optional[str] = None
    unit: Optional[str] = None
    note: Optional[str] = None


class DraftStep(BaseModel):
    step: Optional[int] = None
    text: str = ""


class RecipeDraft(BaseModel):
    title: Optional[str] = None
    ingredients: List[DraftIngredient] = Field(default_factory=list)
    steps: List[DraftStep] = Field(default_factory=list)


class TargetsRequest(BaseModel):
    draft: RecipeDraft
    locale: Optional[str] = None


class TextAtomSchema(BaseModel):
    text: str
    path: str
    locale: Optional[str] = None
    canonicalId: Optional[str] = None


class TargetsResponse(BaseModel):
    ingredient: List[TextAtomSchema] = Field(default_factory=list)
    step: List[TextAtomSchema] = Field(default_factory=list)
    metadata: List[TextAtomSchema] = Field(default_factory=list)


class EvaluateRequest(BaseModel):
    draft: RecipeDraft
    mode: Literal["recipe_adaptation", "meal_planner", "plan_chat"] = "recipe_adaptation"
    locale: Optional[str] = None


class RulesetSummaryResponse(BaseModel):
    diet_id: str
    version: int
    content_hash: str
    rule_count: int
    heuristic_types: List[str] = Field(default_factory=list)
    rules: List[Dict[str, Any]] = Field(default_factory=list)
    heuristics: Dict[str, List[str]] = Field(default_factory=dict)
    provenance: Dict[str, Any] = Field(default_factory=dict)


class GuardDecisionResponse(BaseModel):
    ok: bool
    outcome: Literal["allowed", "blocked", "warned"]
    summary: str
    matches: List[Dict[str, Any]] = Field(default_factory=list)
    applied_rule_ids: List[str] = Field(default_factory=list)
    reason_codes: List[str] = Field(default_factory=list)
    remediation_hints: List[Dict[str, Any]] = Field(default_factory=list)
    trace: Dict[str, Any] = Field(default_factory=dict)


class MealHistoryEntry(BaseModel):
    id: str
    userId: str
    mealId: str
    mealName: str
    mealSlot: str
    dietKey: str
    mealData: Dict[str, Any] = Field(default_factory=dict)
    userRating: Optional[int] = None
    nutritionScore: Optional[float] = None
    varietyScore: Optional[float] = None
    combinedScore: Optional[float] = None
    usageCount: int = 0
    firstUsedAt: Optional[datetime] = None
    lastUsedAt: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class MealHistoryListResponse(BaseModel):
    meals: List[MealHistoryEntry] = Field(default_factory=list)


class MealRatingRequest(BaseModel):
    rating: int = Field(ge=1, le=5)


class MealRescoreResponse(BaseModel):
    updated: int


class PreferenceMatchRequest(BaseModel):
    itemText: str = ""
    itemTags: List[str] = Field(default_factory=list)
    preferences: List[str] = Field(default_factory=list, max_length=MAX_PREFERENCES)


class PreferenceMatchResponse(BaseModel):
    matches: bool
