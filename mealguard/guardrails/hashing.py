from __future__ import annotations

import hashlib
import json
from dataclasses import asdict, is_dataclass
from typing import Any


def _to_plain(payload: Any) -> Any:
    if is_dataclass(payload) and not isinstance(payload, type):
        return asdict(payload)
    if isinstance(payload, dict):
        return {str(key): _to_plain(value) for key, value in payload.items()}
    if isinstance(payload, (list, tuple)):
        return [_to_plain(value) for value in payload]
    return payload


def canonical_json(payload: Any) -> str:
    """Serialize with sorted keys and no insignificant whitespace."""
    return json.dumps(
        _to_plain(payload),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )


def hash_content(payload: Any) -> str:
    """SHA-256 hex digest of the canonical JSON form of ``payload``."""
    return hashlib.sha256(canonical_json(payload).encode("utf-8")).hexdigest()
