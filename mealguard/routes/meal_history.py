from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..auth import get_current_principal
from ..config import get_settings
from ..db import get_session
from ..errors import InvalidRating, MealHistoryNotFound, ScoreUpdateError
from ..schemas import (
    MealHistoryEntry,
    MealHistoryListResponse,
    MealRatingRequest,
    MealRescoreResponse,
    PreferenceMatchRequest,
    PreferenceMatchResponse,
)
from ..services.meal_history import (
    DEFAULT_FIND_LIMIT,
    FindMealsOptions,
    find_meals,
    rate_meal,
    serialize_meal_history,
    update_meal_usage,
)
from ..services.meal_scoring import ScoringWeights, update_all_user_meal_scores
from ..services.preference_matcher import matches

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/meal-history", tags=["meal-history"])


@router.get("", response_model=MealHistoryListResponse)
async def list_meal_history(
    slot: str = Query(..., min_length=1),
    dietKey: str = Query(..., min_length=1),
    minRating: Optional[int] = Query(default=None, ge=1, le=5),
    minCombinedScore: Optional[float] = Query(default=None, ge=0, le=100),
    excludeMealIds: Optional[List[str]] = Query(default=None),
    maxUsageCount: Optional[int] = Query(default=None, ge=0),
    daysSinceLastUse: Optional[int] = Query(default=None, ge=0),
    limit: int = Query(default=DEFAULT_FIND_LIMIT, ge=1),
    principal=Depends(get_current_principal),
) -> MealHistoryListResponse:
    options = FindMealsOptions(
        user_id=principal.get("sub"),
        diet_key=dietKey,
        meal_slot=slot,
        min_rating=minRating,
        min_combined_score=minCombinedScore,
        exclude_meal_ids=excludeMealIds or [],
        limit=min(limit, get_settings().meal_history_max_results),
        max_usage_count=maxUsageCount,
        days_since_last_use=daysSinceLastUse,
    )
    async with get_session() as session:
        records = await find_meals(session, options)
        meals = [MealHistoryEntry(**serialize_meal_history(record)) for record in records]
    return MealHistoryListResponse(meals=meals)


@router.post("/{meal_id}/usage", response_model=MealHistoryEntry)
async def record_meal_usage(
    meal_id: str,
    principal=Depends(get_current_principal),
) -> MealHistoryEntry:
    async with get_session() as session:
        try:
            record = await update_meal_usage(session, principal.get("sub"), meal_id)
        except MealHistoryNotFound as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
        return MealHistoryEntry(**serialize_meal_history(record))


@router.post("/{meal_id}/rating", response_model=MealHistoryEntry)
async def rate_meal_history(
    meal_id: str,
    payload: MealRatingRequest,
    principal=Depends(get_current_principal),
) -> MealHistoryEntry:
    weights = ScoringWeights.from_settings(get_settings())
    async with get_session() as session:
        try:
            record = await rate_meal(
                session,
                principal.get("sub"),
                meal_id,
                payload.rating,
                weights=weights,
            )
        except MealHistoryNotFound as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
        except InvalidRating as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
        return MealHistoryEntry(**serialize_meal_history(record))


@router.post("/rescore", response_model=MealRescoreResponse)
async def rescore_meal_history(principal=Depends(get_current_principal)) -> MealRescoreResponse:
    user_id = principal.get("sub")
    weights = ScoringWeights.from_settings(get_settings())
    async with get_session() as session:
        try:
            updated = await update_all_user_meal_scores(session, user_id, weights=weights)
        except ScoreUpdateError as exc:
            logger.error("Batch rescore incomplete user=%s failed=%s", user_id, exc.failed_meal_ids)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail={
                    "error": "score_update_failed",
                    "failedMealIds": exc.failed_meal_ids,
                    "updated": exc.updated,
                },
            ) from exc
    return MealRescoreResponse(updated=updated)


@router.post("/preferences/match", response_model=PreferenceMatchResponse)
async def match_preferences(
    payload: PreferenceMatchRequest,
    principal=Depends(get_current_principal),
) -> PreferenceMatchResponse:
    return PreferenceMatchResponse(
        matches=matches(payload.itemText, payload.itemTags, payload.preferences)
    )
