from __future__ import annotations

import unittest
from unittest import IsolatedAsyncioTestCase

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from mealguard.guardrails.evaluator import evaluate_guardrails
from mealguard.guardrails.loader import load_guardrails_ruleset
from mealguard.guardrails.repository import SqlGuardrailsRepo
from mealguard.guardrails.targets import map_draft_to_targets
from mealguard.guardrails.types import EvaluationContext
from mealguard.models import (
    Base,
    DietCategoryConstraint,
    DietType,
    IngredientCategory,
    IngredientCategoryItem,
    RecipeAdaptationHeuristic,
    RecipeAdaptationRule,
)

NOW = "2026-03-01T12:00:00+00:00"


class SqlGuardrailsRepoTest(IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        self.Session = async_sessionmaker(self.engine, expire_on_commit=False)
        await self._seed()
        self.repo = SqlGuardrailsRepo(self.Session)

    async def asyncTearDown(self):
        await self.engine.dispose()

    async def _seed(self):
        async with self.Session() as session:
            session.add_all(
                [
                    DietType(id="diet-gf", code="gluten_free", name="Glutenvrij"),
                    DietType(id="diet-other", code="other", name="Other"),
                    DietType(id="diet-off", code="retired_diet", name="Uit", is_active=False),
                ]
            )
            gluten = IngredientCategory(
                id="cat-gluten",
                code="gluten",
                name_nl="Gluten",
                category_type="forbidden",
                items=[
                    IngredientCategoryItem(id="item-2", term="Gerst", display_order=2),
                    IngredientCategoryItem(id="item-1", term="Tarwe", synonyms=["spelt"], display_order=1),
                    IngredientCategoryItem(id="item-3", term="rogge", display_order=3, is_active=False),
                ],
            )
            retired = IngredientCategory(
                id="cat-retired",
                code="retired",
                name_nl="Oud",
                is_active=False,
                items=[IngredientCategoryItem(id="item-4", term="haver")],
            )
            session.add_all([gluten, retired])
            session.add_all(
                [
                    DietCategoryConstraint(
                        id="con-1",
                        diet_type_id="diet-gf",
                        category_id="cat-gluten",
                        strictness="hard",
                        rule_priority=90,
                    ),
                    DietCategoryConstraint(
                        id="con-2",
                        diet_type_id="diet-gf",
                        category_id="cat-retired",
                    ),
                    DietCategoryConstraint(
                        id="con-3",
                        diet_type_id="diet-other",
                        category_id="cat-gluten",
                    ),
                    RecipeAdaptationRule(
                        id="rule-1",
                        diet_type_id="diet-gf",
                        term="Bloem",
                        synonyms=["tarwebloem"],
                        rule_code="FORBIDDEN_INGREDIENT",
                        rule_label="Geen tarwebloem",
                        substitution_suggestions=["rijstmeel"],
                        priority=80,
                    ),
                    RecipeAdaptationRule(
                        id="rule-2",
                        diet_type_id="diet-gf",
                        term="bier",
                        rule_code="FORBIDDEN_INGREDIENT",
                        rule_label="Geen bier",
                        is_active=False,
                    ),
                    RecipeAdaptationRule(
                        id="rule-3",
                        diet_type_id="diet-off",
                        term="suiker",
                        rule_code="FORBIDDEN_INGREDIENT",
                        rule_label="Geen suiker",
                    ),
                    DietCategoryConstraint(
                        id="con-4",
                        diet_type_id="diet-off",
                        category_id="cat-gluten",
                    ),
                    RecipeAdaptationHeuristic(
                        id="heur-2",
                        diet_type_id="diet-off",
                        heuristic_type="added_sugar",
                        terms=["honing"],
                    ),
                    RecipeAdaptationHeuristic(
                        id="heur-1",
                        diet_type_id="diet-gf",
                        heuristic_type="added_sugar",
                        terms=["suiker", "stroop"],
                    ),
                ]
            )
            await session.commit()

    async def test_repo_returns_raw_rows_for_one_diet(self):
        constraints = await self.repo.load_constraints("diet-gf")
        rules = await self.repo.load_recipe_adaptation_rules("diet-gf")
        heuristics = await self.repo.load_heuristics("diet-gf")

        self.assertEqual([row["id"] for row in constraints["constraints"]], ["con-2", "con-1"])
        gluten = next(row for row in constraints["constraints"] if row["id"] == "con-1")
        self.assertEqual([item["term"] for item in gluten["category"]["items"]], ["Tarwe", "Gerst", "rogge"])
        self.assertIsNotNone(gluten["updated_at"])
        self.assertEqual([row["id"] for row in rules["rules"]], ["rule-1", "rule-2"])
        self.assertEqual(heuristics["heuristics"][0]["terms"], ["suiker", "stroop"])

    async def test_loader_builds_ruleset_from_tables(self):
        ruleset = await load_guardrails_ruleset("diet-gf", "recipe_adaptation", now=NOW, repo=self.repo)

        self.assertEqual(ruleset.provenance.source, "database")
        self.assertEqual(
            [rule.id for rule in ruleset.rules],
            [
                "db:diet_category_constraints:con-1:0",
                "db:diet_category_constraints:con-1:1",
                "db:recipe_adaptation_rules:rule-1",
            ],
        )
        self.assertEqual([rule.match.term for rule in ruleset.rules], ["tarwe", "gerst", "bloem"])
        self.assertEqual(ruleset.heuristics, {"added_sugar_terms": ["suiker", "stroop"]})

        again = await load_guardrails_ruleset("diet-gf", "plan_chat", now=NOW, repo=self.repo)
        self.assertEqual(ruleset.content_hash, again.content_hash)

    async def test_ruleset_from_tables_blocks_forbidden_draft(self):
        ruleset = await load_guardrails_ruleset("diet-gf", "recipe_adaptation", now=NOW, repo=self.repo)
        targets = map_draft_to_targets(
            {"title": "Pannenkoeken", "ingredients": [{"name": "Tarwebloem"}, {"name": "Melk"}]},
            locale="nl",
        )
        decision = evaluate_guardrails(
            ruleset,
            targets,
            EvaluationContext(mode="recipe_adaptation", timestamp=NOW, diet_id="diet-gf"),
        )

        self.assertEqual(decision.outcome, "blocked")
        self.assertEqual(decision.applied_rule_ids, ["db:recipe_adaptation_rules:rule-1"])
        self.assertEqual(decision.remediation_hints[0].payload["alternatives"], ["rijstmeel"])

    async def test_inactive_diet_returns_no_rows_and_falls_back(self):
        self.assertEqual(await self.repo.load_constraints("diet-off"), {"constraints": []})
        self.assertEqual(await self.repo.load_recipe_adaptation_rules("diet-off"), {"rules": []})
        self.assertEqual(await self.repo.load_heuristics("diet-off"), {"heuristics": []})

        ruleset = await load_guardrails_ruleset("diet-off", "recipe_adaptation", now=NOW, repo=self.repo)
        self.assertEqual(ruleset.provenance.source, "fallback")
        self.assertNotIn("db:recipe_adaptation_rules:rule-3", [rule.id for rule in ruleset.rules])

    async def test_unknown_diet_falls_back(self):
        ruleset = await load_guardrails_ruleset("diet-missing", "recipe_adaptation", now=NOW, repo=self.repo)
        self.assertEqual(ruleset.provenance.source, "fallback")


if __name__ == "__main__":
    unittest.main()
