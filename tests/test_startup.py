from __future__ import annotations

import pytest

from mealguard.config import Settings
from mealguard.db import normalize_database_url
from mealguard.guardrails.hashing import canonical_json, hash_content
from mealguard.startup import validate_settings


def test_dev_settings_only_warn_about_missing_config():
    validate_settings(Settings(environment="dev", database_url=None, auth_jwks_url=None))


def test_prod_requires_database_and_auth():
    with pytest.raises(RuntimeError) as excinfo:
        validate_settings(Settings(environment="prod", database_url=None, auth_issuer=None, auth_jwks_url=None))
    assert "AUTH_ISSUER" in str(excinfo.value)
    assert "DATABASE_URL" in str(excinfo.value)


def test_prod_without_verification_only_needs_database():
    validate_settings(
        Settings(
            environment="prod",
            database_url="postgresql://db/mealguard",
            auth_disable_verification=True,
        )
    )


def test_scoring_weights_must_sum_to_one_in_every_environment():
    with pytest.raises(RuntimeError):
        validate_settings(Settings(environment="dev", scoring_rating_weight=0.9))


def test_normalize_database_url_switches_to_asyncpg():
    url = normalize_database_url("postgres://user:pw@host:5432/db?sslmode=require")
    assert url == "postgresql+asyncpg://user:pw@host:5432/db?ssl=require"
    assert normalize_database_url("sqlite+aiosqlite:///:memory:") == "sqlite+aiosqlite:///:memory:"


def test_canonical_json_is_key_order_independent():
    assert canonical_json({"b": 1, "a": [1, 2]}) == '{"a":[1,2],"b":1}'
    assert hash_content({"a": 1, "b": 2}) == hash_content({"b": 2, "a": 1})
    assert hash_content({"a": 1}) != hash_content({"a": 2})
