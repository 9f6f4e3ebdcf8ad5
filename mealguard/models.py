from __future__ import annotations

from datetime import datetime
import uuid
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Index,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


json_type = JSON().with_variant(JSONB, "postgresql")


def _new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all ORM models."""


class TimestampMixin:
    """Common created/updated timestamp columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class DietType(Base, TimestampMixin):
    __tablename__ = "diet_types"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class IngredientCategory(Base, TimestampMixin):
    __tablename__ = "ingredient_categories"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    name_nl: Mapped[str] = mapped_column(String(255), nullable=False)
    category_type: Mapped[str] = mapped_column(String(16), nullable=False, default="forbidden")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    items: Mapped[List["IngredientCategoryItem"]] = relationship(
        back_populates="category",
        order_by=lambda: [IngredientCategoryItem.display_order, IngredientCategoryItem.id],
        cascade="all, delete-orphan",
    )


class IngredientCategoryItem(Base, TimestampMixin):
    __tablename__ = "ingredient_category_items"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    category_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("ingredient_categories.id", ondelete="CASCADE"), nullable=False
    )
    term: Mapped[str] = mapped_column(String(255), nullable=False)
    term_nl: Mapped[Optional[str]] = mapped_column(String(255))
    synonyms: Mapped[list] = mapped_column(json_type, nullable=False, default=list)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    category: Mapped[IngredientCategory] = relationship(back_populates="items")


class DietCategoryConstraint(Base, TimestampMixin):
    __tablename__ = "diet_category_constraints"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    diet_type_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("diet_types.id", ondelete="CASCADE"), nullable=False, index=True
    )
    category_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("ingredient_categories.id", ondelete="CASCADE"), nullable=False
    )
    rule_action: Mapped[Optional[str]] = mapped_column(String(8))
    constraint_type: Mapped[Optional[str]] = mapped_column(String(16))
    strictness: Mapped[str] = mapped_column(String(8), nullable=False, default="hard")
    rule_priority: Mapped[int] = mapped_column(Integer, nullable=False, default=50)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=50)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_paused: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    category: Mapped[IngredientCategory] = relationship()


class RecipeAdaptationRule(Base, TimestampMixin):
    __tablename__ = "recipe_adaptation_rules"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    diet_type_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("diet_types.id", ondelete="CASCADE"), nullable=False, index=True
    )
    term: Mapped[str] = mapped_column(String(255), nullable=False)
    synonyms: Mapped[list] = mapped_column(json_type, nullable=False, default=list)
    rule_code: Mapped[str] = mapped_column(String(64), nullable=False)
    rule_label: Mapped[str] = mapped_column(String(255), nullable=False)
    substitution_suggestions: Mapped[list] = mapped_column(json_type, nullable=False, default=list)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=50)
    target: Mapped[str] = mapped_column(String(16), nullable=False, default="ingredient")
    match_mode: Mapped[str] = mapped_column(String(16), nullable=False, default="word_boundary")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class RecipeAdaptationHeuristic(Base, TimestampMixin):
    __tablename__ = "recipe_adaptation_heuristics"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    diet_type_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("diet_types.id", ondelete="CASCADE"), nullable=False, index=True
    )
    heuristic_type: Mapped[str] = mapped_column(String(64), nullable=False)
    terms: Mapped[list] = mapped_column(json_type, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class MealHistory(Base, TimestampMixin):
    __tablename__ = "meal_history"
    __table_args__ = (
        UniqueConstraint("user_id", "meal_id", name="uq_meal_history_user_meal"),
        Index("ix_meal_history_lookup", "user_id", "diet_key", "meal_slot"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    meal_id: Mapped[str] = mapped_column(String(128), nullable=False)
    meal_name: Mapped[str] = mapped_column(String(255), nullable=False)
    meal_slot: Mapped[str] = mapped_column(String(32), nullable=False)
    diet_key: Mapped[str] = mapped_column(String(64), nullable=False)
    meal_data: Mapped[Optional[dict]] = mapped_column(json_type)
    user_rating: Mapped[Optional[int]] = mapped_column(Integer)
    nutrition_score: Mapped[Optional[float]] = mapped_column(Float)
    variety_score: Mapped[Optional[float]] = mapped_column(Float)
    combined_score: Mapped[Optional[float]] = mapped_column(Float)
    usage_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    first_used_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    last_used_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    def __repr__(self) -> str:
        return (
            f"MealHistory(user_id={self.user_id}, meal_id={self.meal_id}, "
            f"combined_score={self.combined_score}, usage_count={self.usage_count})"
        )
