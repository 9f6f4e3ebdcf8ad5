from __future__ import annotations

import logging
from typing import Iterable, Tuple

from .config import Settings
from .services.meal_scoring import ScoringWeights

logger = logging.getLogger(__name__)


def _collect_missing(settings: Settings, pairs: Iterable[Tuple[str, str]]) -> list[str]:
    missing: list[str] = []
    for attr, label in pairs:
        value = getattr(settings, attr, None)
        if value in (None, "", [], {}):
            missing.append(label)
    return missing


def _validate_scoring_weights(settings: Settings) -> None:
    try:
        ScoringWeights.from_settings(settings)
    except ValueError as exc:
        raise RuntimeError(str(exc)) from exc


def validate_settings(settings: Settings) -> None:
    """Fail fast when mandatory config values are missing for non-dev envs."""
    environment = (settings.environment or "dev").lower()

    _validate_scoring_weights(settings)

    dev_missing = _collect_missing(
        settings,
        [
            ("database_url", "DATABASE_URL"),
            ("auth_jwks_url", "AUTH_JWKS_URL"),
        ],
    )
    if environment == "dev":
        if dev_missing:
            logger.warning(
                "Running in dev without recommended config; some features may be disabled: %s",
                ", ".join(dev_missing),
            )
        return

    required_pairs: list[Tuple[str, str]] = [
        ("database_url", "DATABASE_URL"),
    ]

    if not settings.auth_disable_verification:
        required_pairs.extend(
            [
                ("auth_issuer", "AUTH_ISSUER"),
                ("auth_jwks_url", "AUTH_JWKS_URL"),
            ]
        )

    missing = _collect_missing(settings, required_pairs)
    if missing:
        raise RuntimeError(
            f"Missing required configuration for environment '{environment}': {', '.join(sorted(missing))}"
        )
