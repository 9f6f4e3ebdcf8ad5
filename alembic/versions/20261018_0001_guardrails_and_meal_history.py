"""Guardrail rule tables and meal history.

Revision ID: 5f2a8c41d7e3
Revises:
Create Date: 2026-10-18 00:00:00
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "5f2a8c41d7e3"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
    ]


def _jsonb() -> postgresql.JSONB:
    return postgresql.JSONB(astext_type=sa.Text())


def upgrade() -> None:
    op.create_table(
        "diet_types",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("code", sa.String(length=64), nullable=False, unique=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_table(
        "ingredient_categories",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("code", sa.String(length=64), nullable=False, unique=True),
        sa.Column("name_nl", sa.String(length=255), nullable=False),
        sa.Column("category_type", sa.String(length=16), nullable=False, server_default="forbidden"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_table(
        "ingredient_category_items",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column(
            "category_id",
            sa.String(length=64),
            sa.ForeignKey("ingredient_categories.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("term", sa.String(length=255), nullable=False),
        sa.Column("term_nl", sa.String(length=255), nullable=True),
        sa.Column("synonyms", _jsonb(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_table(
        "diet_category_constraints",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column(
            "diet_type_id",
            sa.String(length=64),
            sa.ForeignKey("diet_types.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "category_id",
            sa.String(length=64),
            sa.ForeignKey("ingredient_categories.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("rule_action", sa.String(length=8), nullable=True),
        sa.Column("constraint_type", sa.String(length=16), nullable=True),
        sa.Column("strictness", sa.String(length=8), nullable=False, server_default="hard"),
        sa.Column("rule_priority", sa.Integer(), nullable=False, server_default="50"),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="50"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_paused", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index(
        "ix_diet_category_constraints_diet_type_id",
        "diet_category_constraints",
        ["diet_type_id"],
    )
    op.create_table(
        "recipe_adaptation_rules",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column(
            "diet_type_id",
            sa.String(length=64),
            sa.ForeignKey("diet_types.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("term", sa.String(length=255), nullable=False),
        sa.Column("synonyms", _jsonb(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("rule_code", sa.String(length=64), nullable=False),
        sa.Column("rule_label", sa.String(length=255), nullable=False),
        sa.Column(
            "substitution_suggestions", _jsonb(), nullable=False, server_default=sa.text("'[]'::jsonb")
        ),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="50"),
        sa.Column("target", sa.String(length=16), nullable=False, server_default="ingredient"),
        sa.Column("match_mode", sa.String(length=16), nullable=False, server_default="word_boundary"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index(
        "ix_recipe_adaptation_rules_diet_type_id",
        "recipe_adaptation_rules",
        ["diet_type_id"],
    )
    op.create_table(
        "recipe_adaptation_heuristics",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column(
            "diet_type_id",
            sa.String(length=64),
            sa.ForeignKey("diet_types.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("heuristic_type", sa.String(length=64), nullable=False),
        sa.Column("terms", _jsonb(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index(
        "ix_recipe_adaptation_heuristics_diet_type_id",
        "recipe_adaptation_heuristics",
        ["diet_type_id"],
    )
    op.create_table(
        "meal_history",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("meal_id", sa.String(length=128), nullable=False),
        sa.Column("meal_name", sa.String(length=255), nullable=False),
        sa.Column("meal_slot", sa.String(length=32), nullable=False),
        sa.Column("diet_key", sa.String(length=64), nullable=False),
        sa.Column("meal_data", _jsonb(), nullable=True),
        sa.Column("user_rating", sa.Integer(), nullable=True),
        sa.Column("nutrition_score", sa.Float(), nullable=True),
        sa.Column("variety_score", sa.Float(), nullable=True),
        sa.Column("combined_score", sa.Float(), nullable=True),
        sa.Column("usage_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("first_used_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "meal_id", name="uq_meal_history_user_meal"),
    )
    op.create_index("ix_meal_history_user_id", "meal_history", ["user_id"])
    op.create_index(
        "ix_meal_history_lookup",
        "meal_history",
        ["user_id", "diet_key", "meal_slot"],
    )


def downgrade() -> None:
    op.drop_index("ix_meal_history_lookup", table_name="meal_history")
    op.drop_index("ix_meal_history_user_id", table_name="meal_history")
    op.drop_table("meal_history")
    op.drop_index("ix_recipe_adaptation_heuristics_diet_type_id", table_name="recipe_adaptation_heuristics")
    op.drop_table("recipe_adaptation_heuristics")
    op.drop_index("ix_recipe_adaptation_rules_diet_type_id", table_name="recipe_adaptation_rules")
    op.drop_table("recipe_adaptation_rules")
    op.drop_index("ix_diet_category_constraints_diet_type_id", table_name="diet_category_constraints")
    op.drop_table("diet_category_constraints")
    op.drop_table("ingredient_category_items")
    op.drop_table("ingredient_categories")
    op.drop_table("diet_types")
