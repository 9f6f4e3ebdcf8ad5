from __future__ import annotations

from typing import Sequence


class MealGuardError(Exception):
    """Base class for domain errors raised by mealguard services."""


class MealHistoryNotFound(MealGuardError):
    def __init__(self, user_id: str, meal_id: str) -> None:
        super().__init__(f"Meal '{meal_id}' not found in history for user '{user_id}'")
        self.user_id = user_id
        self.meal_id = meal_id


class InvalidRating(MealGuardError):
    def __init__(self, rating: object) -> None:
        super().__init__(f"Rating must be an integer between 1 and 5 (got {rating!r})")
        self.rating = rating


class ScoreUpdateError(MealGuardError):
    """Raised after a batch rescore when one or more meals could not be updated."""

    def __init__(self, user_id: str, failed_meal_ids: Sequence[str], updated: int) -> None:
        super().__init__(
            f"Failed to update scores for {len(failed_meal_ids)} meal(s) of user '{user_id}': "
            f"{', '.join(failed_meal_ids)}"
        )
        self.user_id = user_id
        self.failed_meal_ids = list(failed_meal_ids)
        self.updated = updated
