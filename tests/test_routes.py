from __future__ import annotations

import unittest
from contextlib import asynccontextmanager
from unittest import mock

from fastapi.testclient import TestClient

from mealguard import db
from mealguard.auth import get_current_principal
from mealguard.errors import MealHistoryNotFound, ScoreUpdateError
from mealguard.guardrails.loader import get_fallback_ruleset
from mealguard.main import app

NOW = "2026-03-01T12:00:00+00:00"

DRAFT = {
    "title": "Romige pasta",
    "ingredients": [{"name": "Penne", "quantity": "250", "unit": "g"}, {"name": "Volle melk"}],
    "steps": [{"step": 1, "text": "Kook de penne"}],
}


def _principal():
    return {"sub": "user-1", "email": "user@example.com", "role": None, "claims": {}}


@asynccontextmanager
async def _fake_session():
    yield mock.Mock()


class AuthRequiredTestCase(unittest.TestCase):
    def setUp(self):
        self.client = TestClient(app)

    def test_health_is_public(self):
        response = self.client.get("/v1/health")
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["status"], "ok")
        self.assertIn("evaluatorVersion", body)

    def test_request_id_is_echoed_or_generated(self):
        response = self.client.get("/v1/health", headers={"X-Request-ID": "req-123"})
        self.assertEqual(response.headers["X-Request-ID"], "req-123")

        generated = self.client.get("/v1/health").headers["X-Request-ID"]
        self.assertEqual(len(generated), 32)

    def test_missing_bearer_token_is_rejected(self):
        response = self.client.post("/v1/guardrails/targets", json={"draft": DRAFT})
        self.assertEqual(response.status_code, 401)


class AuthenticatedRoutesTestCase(unittest.TestCase):
    def setUp(self):
        app.dependency_overrides[get_current_principal] = _principal
        self.client = TestClient(app)

    def tearDown(self):
        app.dependency_overrides.clear()

    def test_targets_endpoint_returns_atoms(self):
        response = self.client.post("/v1/guardrails/targets", json={"draft": DRAFT, "locale": "nl"})
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(
            [atom["path"] for atom in body["ingredient"]],
            ["ingredients[0].name", "ingredients[1].name"],
        )
        self.assertEqual(body["step"][0]["text"], "kook de penne")
        self.assertEqual(body["metadata"][0]["text"], "romige pasta")

    def test_evaluate_blocks_forbidden_ingredients(self):
        loader = mock.AsyncMock(return_value=get_fallback_ruleset("diet-1", now=NOW))
        with mock.patch("mealguard.routes.guardrails.load_guardrails_ruleset", loader):
            response = self.client.post("/v1/guardrails/diet-1/evaluate", json={"draft": DRAFT})

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertFalse(body["ok"])
        self.assertEqual(body["outcome"], "blocked")
        self.assertEqual(body["applied_rule_ids"], ["fallback:melk", "fallback:pasta"])
        self.assertEqual(body["trace"]["context"]["diet_id"], "diet-1")
        loader.assert_awaited_once_with("diet-1", "recipe_adaptation", locale="nl")

    def test_ruleset_endpoint_returns_summary(self):
        loader = mock.AsyncMock(return_value=get_fallback_ruleset("diet-1", now=NOW))
        with mock.patch("mealguard.routes.guardrails.load_guardrails_ruleset", loader):
            response = self.client.get("/v1/guardrails/diet-1/ruleset", params={"locale": "en"})

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["rule_count"], 2)
        self.assertEqual(body["provenance"]["source"], "fallback")
        self.assertEqual(body["heuristic_types"], ["added_sugar_terms"])
        loader.assert_awaited_once_with("diet-1", "recipe_adaptation", locale="en")

    def test_ruleset_rejects_unknown_mode(self):
        loader = mock.AsyncMock(return_value=get_fallback_ruleset("diet-1", now=NOW))
        with mock.patch("mealguard.routes.guardrails.load_guardrails_ruleset", loader):
            response = self.client.get("/v1/guardrails/diet-1/ruleset", params={"mode": "dessert"})

        self.assertEqual(response.status_code, 422)
        loader.assert_not_awaited()

    def test_ruleset_without_database_is_unavailable(self):
        with mock.patch.object(db, "SessionLocal", None):
            response = self.client.get("/v1/guardrails/diet-1/ruleset")
        self.assertEqual(response.status_code, 503)

    def test_preference_match(self):
        response = self.client.post(
            "/v1/meal-history/preferences/match",
            json={"itemText": "Banana smoothie", "itemTags": ["whey"], "preferences": ["eiwit shake"]},
        )
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["matches"])

    def test_rating_outside_range_is_rejected(self):
        response = self.client.post("/v1/meal-history/m1/rating", json={"rating": 9})
        self.assertEqual(response.status_code, 422)

    def test_usage_for_unknown_meal_is_not_found(self):
        usage = mock.AsyncMock(side_effect=MealHistoryNotFound("user-1", "m404"))
        with mock.patch("mealguard.routes.meal_history.get_session", _fake_session), mock.patch(
            "mealguard.routes.meal_history.update_meal_usage", usage
        ):
            response = self.client.post("/v1/meal-history/m404/usage")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(usage.await_args.args[1:], ("user-1", "m404"))

    def test_rescore_reports_failed_meals(self):
        rescore = mock.AsyncMock(side_effect=ScoreUpdateError("user-1", ["m2"], 3))
        with mock.patch("mealguard.routes.meal_history.get_session", _fake_session), mock.patch(
            "mealguard.routes.meal_history.update_all_user_meal_scores", rescore
        ):
            response = self.client.post("/v1/meal-history/rescore")

        self.assertEqual(response.status_code, 500)
        detail = response.json()["detail"]
        self.assertEqual(detail["failedMealIds"], ["m2"])
        self.assertEqual(detail["updated"], 3)

    def test_rescore_returns_updated_count(self):
        rescore = mock.AsyncMock(return_value=4)
        with mock.patch("mealguard.routes.meal_history.get_session", _fake_session), mock.patch(
            "mealguard.routes.meal_history.update_all_user_meal_scores", rescore
        ):
            response = self.client.post("/v1/meal-history/rescore")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"updated": 4})


if __name__ == "__main__":
    unittest.main()
