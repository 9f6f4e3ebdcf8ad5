from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import InvalidRating, MealHistoryNotFound
from ..models import MealHistory
from .meal_scoring import DEFAULT_SCORING_WEIGHTS, ScoringWeights, score_record

logger = logging.getLogger(__name__)

DEFAULT_FIND_LIMIT = 10

# (low, high, points, low_inclusive, high_inclusive) per macro energy share.
_PROTEIN_BANDS = (
    (20, 30, 20, True, True),
    (15, 20, 15, True, False),
    (30, 35, 15, False, True),
    (10, 15, 10, True, False),
    (35, 40, 10, False, True),
)
_FAT_BANDS = (
    (25, 35, 15, True, True),
    (20, 25, 10, True, False),
    (35, 40, 10, False, True),
)
_CARB_BANDS = (
    (35, 50, 15, True, True),
    (30, 35, 10, True, False),
    (50, 55, 10, False, True),
)
_BAND_FLOOR_POINTS = 5


@dataclass
class FindMealsOptions:
    user_id: str
    diet_key: str
    meal_slot: str
    min_rating: Optional[int] = None
    min_combined_score: Optional[float] = None
    exclude_meal_ids: Sequence[str] = field(default_factory=list)
    limit: int = DEFAULT_FIND_LIMIT
    max_usage_count: Optional[int] = None
    days_since_last_use: Optional[int] = None


def _band_points(percentage: float, bands) -> int:
    for low, high, points, low_inclusive, high_inclusive in bands:
        above = percentage >= low if low_inclusive else percentage > low
        below = percentage <= high if high_inclusive else percentage < high
        if above and below:
            return points
    return _BAND_FLOOR_POINTS


def _coerce_number(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def calculate_nutrition_score(meal: Mapping[str, Any]) -> float:
    """Score 0-100 for macro balance: protein 20-30%, fat 25-35%, carbs 35-50%."""
    macros = meal.get("macros") or {}
    calories = _coerce_number(macros.get("calories"))
    if calories <= 0:
        return 50.0

    protein_pct = _coerce_number(macros.get("protein_g")) * 4 / calories * 100
    fat_pct = _coerce_number(macros.get("fat_g")) * 9 / calories * 100
    carbs_pct = _coerce_number(macros.get("carbs_g")) * 4 / calories * 100

    score = 50
    score += _band_points(protein_pct, _PROTEIN_BANDS)
    score += _band_points(fat_pct, _FAT_BANDS)
    score += _band_points(carbs_pct, _CARB_BANDS)
    return float(max(0, min(100, score)))


async def get_meal_history(session: AsyncSession, user_id: str, meal_id: str) -> MealHistory:
    stmt = select(MealHistory).where(
        MealHistory.user_id == user_id, MealHistory.meal_id == meal_id
    )
    record = (await session.execute(stmt)).scalar_one_or_none()
    if record is None:
        raise MealHistoryNotFound(user_id, meal_id)
    return record


async def store_meal(
    session: AsyncSession,
    *,
    user_id: str,
    meal: Mapping[str, Any],
    diet_key: str,
    weights: ScoringWeights = DEFAULT_SCORING_WEIGHTS,
    now: datetime | None = None,
) -> MealHistory:
    """Insert a meal into the user's history; existing rows are left untouched."""
    meal_id = str(meal.get("id") or "")
    if not meal_id:
        raise ValueError("Meal must have an id to be stored in history")

    stmt = select(MealHistory).where(
        MealHistory.user_id == user_id, MealHistory.meal_id == meal_id
    )
    existing = (await session.execute(stmt)).scalar_one_or_none()
    if existing is not None:
        return existing

    record = MealHistory(
        user_id=user_id,
        meal_id=meal_id,
        meal_name=str(meal.get("name") or meal_id),
        meal_slot=str(meal.get("slot") or "unknown"),
        diet_key=diet_key,
        meal_data=dict(meal),
        nutrition_score=calculate_nutrition_score(meal),
        usage_count=0,
        first_used_at=now or datetime.now(timezone.utc),
        last_used_at=None,
    )
    record.variety_score, record.combined_score = score_record(record, weights=weights, now=now)
    session.add(record)
    await session.commit()
    await session.refresh(record)
    logger.info("Stored meal in history user=%s meal_id=%s", user_id, meal_id)
    return record


async def find_meals(session: AsyncSession, options: FindMealsOptions) -> List[MealHistory]:
    stmt = select(MealHistory).where(
        MealHistory.user_id == options.user_id,
        MealHistory.diet_key == options.diet_key,
        MealHistory.meal_slot == options.meal_slot,
    )
    if options.min_rating is not None:
        stmt = stmt.where(MealHistory.user_rating >= options.min_rating)
    if options.min_combined_score is not None:
        stmt = stmt.where(MealHistory.combined_score >= options.min_combined_score)
    if options.exclude_meal_ids:
        stmt = stmt.where(MealHistory.meal_id.not_in(list(options.exclude_meal_ids)))
    if options.max_usage_count is not None:
        stmt = stmt.where(MealHistory.usage_count <= options.max_usage_count)
    if options.days_since_last_use is not None:
        cutoff = datetime.now(timezone.utc) - timedelta(days=options.days_since_last_use)
        stmt = stmt.where(
            or_(MealHistory.last_used_at.is_(None), MealHistory.last_used_at < cutoff)
        )
    stmt = stmt.order_by(
        MealHistory.combined_score.desc().nulls_last(),
        MealHistory.meal_id.asc(),
    ).limit(max(1, options.limit))
    result = await session.execute(stmt)
    return list(result.scalars())


async def update_meal_usage(
    session: AsyncSession,
    user_id: str,
    meal_id: str,
    *,
    now: datetime | None = None,
) -> MealHistory:
    record = await get_meal_history(session, user_id, meal_id)
    record.usage_count = (record.usage_count or 0) + 1
    record.last_used_at = now or datetime.now(timezone.utc)
    await session.commit()
    await session.refresh(record)
    return record


async def rate_meal(
    session: AsyncSession,
    user_id: str,
    meal_id: str,
    rating: int,
    *,
    weights: ScoringWeights = DEFAULT_SCORING_WEIGHTS,
    now: datetime | None = None,
) -> MealHistory:
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise InvalidRating(rating)
    record = await get_meal_history(session, user_id, meal_id)
    record.user_rating = rating
    record.variety_score, record.combined_score = score_record(record, weights=weights, now=now)
    await session.commit()
    await session.refresh(record)
    return record


def serialize_meal_history(record: MealHistory) -> Dict[str, Any]:
    return {
        "id": record.id,
        "userId": record.user_id,
        "mealId": record.meal_id,
        "mealName": record.meal_name,
        "mealSlot": record.meal_slot,
        "dietKey": record.diet_key,
        "mealData": record.meal_data or {},
        "userRating": record.user_rating,
        "nutritionScore": record.nutrition_score,
        "varietyScore": record.variety_score,
        "combinedScore": record.combined_score,
        "usageCount": record.usage_count,
        "firstUsedAt": record.first_used_at,
        "lastUsedAt": record.last_used_at,
    }
