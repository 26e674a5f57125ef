from __future__ import annotations

import hashlib
import json
from datetime import datetime
from typing import Any

from flask import request
from sqlalchemy.exc import IntegrityError

from challengeflow.extensions import db
from challengeflow.models import IdempotencyKey


def _hash_request(payload: Any) -> str:
    raw = json.dumps(payload, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(raw).hexdigest()


def get_idempotency_key() -> str | None:
    k = request.headers.get("Idempotency-Key") or request.headers.get("X-Idempotency-Key")
    if not k:
        return None
    return k.strip()[:128] or None


def _replay(row: IdempotencyKey, request_hash: str):
    if row.request_hash != request_hash:
        return ("conflict", {"ok": False, "code": "idempotency_conflict",
                             "message": "Idempotency key reuse with different payload"}, 409)
    if not row.is_complete:
        return ("conflict", {"ok": False, "code": "idempotency_in_progress",
                             "message": "A request with this idempotency key is still running"}, 409)
    try:
        body = json.loads(row.response_json or "{}")
    except ValueError:
        body = {"ok": True}
    return ("hit", body, int(row.status_code or 200))


def lookup_response(user_id: int | None, route: str, payload: Any):
    """Reserve or replay an Idempotency-Key.

    Returns None when the request carries no key, ("hit" | "conflict", body,
    status) when it must not run again, or ("miss", row, 0) when the caller
    should run it and then call store_response (or release on failure).
    """
    k = get_idempotency_key()
    if not k:
        return None

    rh = _hash_request({"route": route, "user_id": user_id, "payload": payload})
    row = IdempotencyKey.query.filter_by(key=k).first()
    if row:
        return _replay(row, rh)

    row = IdempotencyKey(key=k, user_id=int(user_id) if user_id is not None else None, route=route[:160],
                         request_hash=rh)
    db.session.add(row)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        row = IdempotencyKey.query.filter_by(key=k).first()
        if row:
            return _replay(row, rh)
        raise
    return ("miss", row, 0)


def store_response(row: IdempotencyKey, response_json: Any, status_code: int):
    row.response_json = json.dumps(response_json, default=str)
    row.status_code = int(status_code)
    row.completed_at = datetime.utcnow()
    db.session.add(row)
    db.session.commit()


def release(row: IdempotencyKey) -> None:
    """Drop a reserved key whose request failed so the client can retry it."""
    db.session.delete(row)
    db.session.commit()
