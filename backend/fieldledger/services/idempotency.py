from __future__ import annotations

import hashlib
import json
from typing import Optional

from sqlalchemy.orm import Session

from fieldledger.core.errors import Conflict
from fieldledger.models.idempotency import IdempotencyKey


def hash_payload(payload: dict) -> str:
    serialized = json.dumps(payload, sort_keys=True, default=str)
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


def jsonable(payload: dict) -> dict:
    return json.loads(json.dumps(payload, default=str))


def find_replay(
    db: Session,
    *,
    key: Optional[str],
    scope: str,
    profile_id: int,
    request_hash: str,
) -> Optional[dict]:
    """Stored response for a repeated key, or None when the request is new."""
    if not key:
        return None
    existing = (
        db.query(IdempotencyKey)
        .filter(
            IdempotencyKey.key == key,
            IdempotencyKey.scope == scope,
            IdempotencyKey.profile_id == profile_id,
        )
        .first()
    )
    if not existing:
        return None
    if existing.request_hash != request_hash:
        raise Conflict("Idempotency key mismatch")
    if existing.response_payload is None:
        raise Conflict("Idempotency key already used")
    return existing.response_payload


def store_response(
    db: Session,
    *,
    key: Optional[str],
    scope: str,
    profile_id: int,
    request_hash: str,
    response_payload: dict,
) -> None:
    if not key:
        return
    db.add(
        IdempotencyKey(
            key=key,
            scope=scope,
            profile_id=profile_id,
            request_hash=request_hash,
            response_payload=response_payload,
        )
    )
