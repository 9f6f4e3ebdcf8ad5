from __future__ import annotations

from typing import Any, Dict, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from ..db import get_session_factory
from ..models import (
    DietCategoryConstraint,
    DietType,
    IngredientCategory,
    IngredientCategoryItem,
    RecipeAdaptationHeuristic,
    RecipeAdaptationRule,
)


def _iso(value: Any) -> str | None:
    return value.isoformat() if value is not None else None


class SqlGuardrailsRepo:
    """GuardrailsRepo backed by the relational rule tables.

    Rows of an inactive diet are never returned. Other inactive rows are
    returned too; the adapters decide what is included. Each call opens its own
    session so the loader can run the three calls at once.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @classmethod
    def from_default_session_factory(cls) -> "SqlGuardrailsRepo":
        return cls(get_session_factory())

    async def load_constraints(self, diet_id: str) -> Dict[str, Any]:
        stmt = (
            select(DietCategoryConstraint)
            .join(DietType, DietType.id == DietCategoryConstraint.diet_type_id)
            .where(DietCategoryConstraint.diet_type_id == diet_id, DietType.is_active.is_(True))
            .options(
                selectinload(DietCategoryConstraint.category).selectinload(IngredientCategory.items)
            )
            .order_by(
                DietCategoryConstraint.rule_priority.asc(),
                DietCategoryConstraint.priority.asc(),
                DietCategoryConstraint.id.asc(),
            )
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            constraints = [_constraint_row(record) for record in result.scalars()]
        return {"constraints": constraints}

    async def load_recipe_adaptation_rules(self, diet_id: str) -> Dict[str, Any]:
        stmt = (
            select(RecipeAdaptationRule)
            .join(DietType, DietType.id == RecipeAdaptationRule.diet_type_id)
            .where(RecipeAdaptationRule.diet_type_id == diet_id, DietType.is_active.is_(True))
            .order_by(RecipeAdaptationRule.priority.desc(), RecipeAdaptationRule.id.asc())
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            rules = [_term_rule_row(record) for record in result.scalars()]
        return {"rules": rules}

    async def load_heuristics(self, diet_id: str) -> Dict[str, Any]:
        stmt = (
            select(RecipeAdaptationHeuristic)
            .join(DietType, DietType.id == RecipeAdaptationHeuristic.diet_type_id)
            .where(RecipeAdaptationHeuristic.diet_type_id == diet_id, DietType.is_active.is_(True))
            .order_by(RecipeAdaptationHeuristic.id.asc())
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            heuristics = [_heuristic_row(record) for record in result.scalars()]
        return {"heuristics": heuristics}


def _item_row(item: IngredientCategoryItem) -> Dict[str, Any]:
    return {
        "term": item.term,
        "term_nl": item.term_nl,
        "synonyms": list(item.synonyms or []),
        "is_active": item.is_active,
    }


def _constraint_row(record: DietCategoryConstraint) -> Dict[str, Any]:
    category = record.category
    items: List[Dict[str, Any]] = [_item_row(item) for item in category.items] if category else []
    return {
        "id": record.id,
        "diet_type_id": record.diet_type_id,
        "rule_action": record.rule_action,
        "constraint_type": record.constraint_type,
        "strictness": record.strictness,
        "rule_priority": record.rule_priority,
        "priority": record.priority,
        "is_active": record.is_active,
        "is_paused": record.is_paused,
        "updated_at": _iso(record.updated_at),
        "category": {
            "id": category.id,
            "code": category.code,
            "name_nl": category.name_nl,
            "category_type": category.category_type,
            "is_active": category.is_active,
            "items": items,
        }
        if category
        else None,
    }


def _term_rule_row(record: RecipeAdaptationRule) -> Dict[str, Any]:
    return {
        "id": record.id,
        "diet_type_id": record.diet_type_id,
        "term": record.term,
        "synonyms": list(record.synonyms or []),
        "rule_code": record.rule_code,
        "rule_label": record.rule_label,
        "substitution_suggestions": list(record.substitution_suggestions or []),
        "priority": record.priority,
        "target": record.target,
        "match_mode": record.match_mode,
        "is_active": record.is_active,
        "updated_at": _iso(record.updated_at),
    }


def _heuristic_row(record: RecipeAdaptationHeuristic) -> Dict[str, Any]:
    return {
        "id": record.id,
        "diet_type_id": record.diet_type_id,
        "heuristic_type": record.heuristic_type,
        "terms": list(record.terms or []),
        "is_active": record.is_active,
        "updated_at": _iso(record.updated_at),
    }
