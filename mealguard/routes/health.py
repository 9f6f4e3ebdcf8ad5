from __future__ import annotations

import os

from fastapi import APIRouter

from .. import db
from ..config import get_settings
from ..guardrails.evaluator import EVALUATOR_VERSION


router = APIRouter()


@router.get("/health")
def health():
    s = get_settings()
    return {
        "status": "ok",
        "service": s.app_name,
        "env": s.environment,
        "database": "configured" if db.SessionLocal is not None else "unconfigured",
        "evaluatorVersion": EVALUATOR_VERSION,
        "pid": os.getpid(),
    }
