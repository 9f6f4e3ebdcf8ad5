"""Variety and combined scores for meals in a user's history.

Combined score = rating (40%) + nutrition (35%) + variety (25%), each on a
0-100 scale. Scores are stored on ``meal_history`` for ranking and reuse.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import Settings
from ..errors import MealHistoryNotFound, ScoreUpdateError
from ..models import MealHistory

logger = logging.getLogger(__name__)

USAGE_PENALTY_PER_USE = 5
MAX_USAGE_PENALTY = 50
RECENCY_BONUS_PER_DAY = 2
MAX_RECENCY_BONUS = 30
NEUTRAL_SCORE = 50.0
SECONDS_PER_DAY = 60 * 60 * 24


@dataclass(frozen=True)
class ScoringWeights:
    user_rating: float = 0.40
    nutrition_score: float = 0.35
    variety_score: float = 0.25

    @property
    def total(self) -> float:
        return self.user_rating + self.nutrition_score + self.variety_score

    def validate(self) -> "ScoringWeights":
        if not math.isclose(self.total, 1.0, abs_tol=1e-9):
            raise ValueError(f"Scoring weights must sum to 1.0 (got {self.total})")
        return self

    @classmethod
    def from_settings(cls, settings: Settings) -> "ScoringWeights":
        return cls(
            user_rating=settings.scoring_rating_weight,
            nutrition_score=settings.scoring_nutrition_weight,
            variety_score=settings.scoring_variety_weight,
        ).validate()


DEFAULT_SCORING_WEIGHTS = ScoringWeights()


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def _round_half_up(value: float) -> float:
    # Two decimals, ties away from zero for the non-negative range scores live in.
    return math.floor(value * 100 + 0.5) / 100


def _as_utc(value: datetime | str | None) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def calculate_variety_score(
    usage_count: int,
    last_used_at: datetime | str | None,
    *,
    now: datetime | None = None,
) -> float:
    """Score 0-100 rewarding meals that were used rarely and not recently."""
    score = 100.0
    score -= min(max(usage_count or 0, 0) * USAGE_PENALTY_PER_USE, MAX_USAGE_PENALTY)

    last_used = _as_utc(last_used_at)
    if last_used is None:
        score += MAX_RECENCY_BONUS
    else:
        reference = _as_utc(now) or datetime.now(timezone.utc)
        days_since = max((reference - last_used).total_seconds() / SECONDS_PER_DAY, 0.0)
        score += min(days_since * RECENCY_BONUS_PER_DAY, MAX_RECENCY_BONUS)

    return _clamp(score)


def calculate_combined_score(
    user_rating: Optional[float],
    nutrition_score: Optional[float],
    variety_score: float,
    *,
    weights: ScoringWeights = DEFAULT_SCORING_WEIGHTS,
) -> float:
    """Weighted 0-100 score; a missing rating or nutrition score counts as 50."""
    if user_rating:
        normalized_rating = (_clamp(user_rating, 1.0, 5.0) - 1) / 4 * 100
    else:
        normalized_rating = NEUTRAL_SCORE
    nutrition = NEUTRAL_SCORE if nutrition_score is None else _clamp(nutrition_score)

    combined = (
        normalized_rating * weights.user_rating
        + nutrition * weights.nutrition_score
        + _clamp(variety_score) * weights.variety_score
    )
    return _round_half_up(_clamp(combined))


def score_record(
    record: MealHistory,
    *,
    weights: ScoringWeights = DEFAULT_SCORING_WEIGHTS,
    now: datetime | None = None,
) -> tuple[float, float]:
    variety = calculate_variety_score(record.usage_count, record.last_used_at, now=now)
    combined = calculate_combined_score(
        record.user_rating, record.nutrition_score, variety, weights=weights
    )
    return variety, combined


async def update_meal_scores(
    session: AsyncSession,
    user_id: str,
    meal_id: str,
    *,
    weights: ScoringWeights = DEFAULT_SCORING_WEIGHTS,
    now: datetime | None = None,
) -> MealHistory:
    stmt = select(MealHistory).where(
        MealHistory.user_id == user_id, MealHistory.meal_id == meal_id
    )
    record = (await session.execute(stmt)).scalar_one_or_none()
    if record is None:
        raise MealHistoryNotFound(user_id, meal_id)
    record.variety_score, record.combined_score = score_record(record, weights=weights, now=now)
    await session.commit()
    await session.refresh(record)
    return record


async def _persist_scores(
    session: AsyncSession,
    record_id: str,
    variety_score: float,
    combined_score: float,
) -> None:
    await session.execute(
        update(MealHistory)
        .where(MealHistory.id == record_id)
        .values(variety_score=variety_score, combined_score=combined_score)
    )
    await session.commit()


async def update_all_user_meal_scores(
    session: AsyncSession,
    user_id: str,
    *,
    weights: ScoringWeights = DEFAULT_SCORING_WEIGHTS,
    now: datetime | None = None,
) -> int:
    """Rescore every history row of ``user_id``; returns the number updated.

    Each meal is committed on its own. A failing meal is rolled back, logged
    and skipped; once all meals were tried, ``ScoreUpdateError`` reports the
    failures while the successful updates stay committed.
    """
    reference = now or datetime.now(timezone.utc)
    stmt = (
        select(MealHistory)
        .where(MealHistory.user_id == user_id)
        .order_by(MealHistory.meal_id.asc())
    )
    records = list((await session.execute(stmt)).scalars())
    # Score before writing; a rollback expires ORM state.
    pending = [
        (record.id, record.meal_id, *score_record(record, weights=weights, now=reference))
        for record in records
    ]

    updated = 0
    failed: List[str] = []
    for record_id, meal_id, variety, combined in pending:
        try:
            await _persist_scores(session, record_id, variety, combined)
        except SQLAlchemyError as exc:
            await session.rollback()
            logger.warning(
                "Failed to update meal scores user=%s meal_id=%s: %s", user_id, meal_id, exc
            )
            failed.append(meal_id)
            continue
        updated += 1

    logger.info(
        "Rescored meal history user=%s updated=%d failed=%d", user_id, updated, len(failed)
    )
    if failed:
        raise ScoreUpdateError(user_id, failed, updated)
    return updated
