from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError

from ..auth import get_current_principal
from ..config import get_settings
from ..guardrails.evaluator import evaluate_guardrails
from ..guardrails.loader import load_guardrails_ruleset, load_ruleset_summary
from ..guardrails.targets import map_draft_to_targets
from ..guardrails.types import (
    EvaluationContext,
    EvaluationMode,
    GuardrailsRuleset,
    GuardrailsTargets,
    TextAtom,
)
from ..schemas import (
    EvaluateRequest,
    GuardDecisionResponse,
    RulesetSummaryResponse,
    TargetsRequest,
    TargetsResponse,
    TextAtomSchema,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/guardrails", tags=["guardrails"])


def _atom_schema(atom: TextAtom) -> TextAtomSchema:
    return TextAtomSchema(
        text=atom.text,
        path=atom.path,
        locale=atom.locale,
        canonicalId=atom.canonical_id,
    )


def _targets_response(targets: GuardrailsTargets) -> TargetsResponse:
    return TargetsResponse(
        ingredient=[_atom_schema(atom) for atom in targets.ingredient],
        step=[_atom_schema(atom) for atom in targets.step],
        metadata=[_atom_schema(atom) for atom in targets.metadata],
    )


async def _load_ruleset(diet_id: str, mode: EvaluationMode, locale: Optional[str]) -> GuardrailsRuleset:
    try:
        return await load_guardrails_ruleset(diet_id, mode, locale=locale)
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except SQLAlchemyError as exc:
        logger.exception("Failed to load guardrails ruleset diet=%s", diet_id)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="guardrails_unavailable",
        ) from exc


@router.get("/{diet_id}/ruleset", response_model=RulesetSummaryResponse)
async def get_ruleset(
    diet_id: str,
    mode: EvaluationMode = Query(default="recipe_adaptation"),
    locale: Optional[str] = Query(default=None),
    principal=Depends(get_current_principal),
) -> RulesetSummaryResponse:
    ruleset = await _load_ruleset(diet_id, mode, locale or get_settings().guardrails_default_locale)
    return RulesetSummaryResponse(**load_ruleset_summary(ruleset))


@router.post("/{diet_id}/evaluate", response_model=GuardDecisionResponse)
async def evaluate_draft(
    diet_id: str,
    payload: EvaluateRequest,
    principal=Depends(get_current_principal),
) -> GuardDecisionResponse:
    locale = payload.locale or get_settings().guardrails_default_locale
    ruleset = await _load_ruleset(diet_id, payload.mode, locale)
    targets = map_draft_to_targets(payload.draft.model_dump(), locale=locale)
    context = EvaluationContext(
        mode=payload.mode,
        timestamp=datetime.now(timezone.utc).isoformat(),
        diet_id=diet_id,
        locale=locale,
    )
    decision = evaluate_guardrails(ruleset, targets, context)
    logger.info(
        "Evaluated draft user=%s diet=%s outcome=%s rules=%d",
        principal.get("sub"),
        diet_id,
        decision.outcome,
        len(decision.applied_rule_ids),
    )
    return GuardDecisionResponse(**decision.to_dict())


@router.post("/targets", response_model=TargetsResponse)
async def draft_targets(
    payload: TargetsRequest,
    principal=Depends(get_current_principal),
) -> TargetsResponse:
    locale = payload.locale or get_settings().guardrails_default_locale
    return _targets_response(map_draft_to_targets(payload.draft.model_dump(), locale=locale))
