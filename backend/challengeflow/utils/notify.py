from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from challengeflow.extensions import db
from challengeflow.models import Notification

logger = logging.getLogger(__name__)

KIND_APPROVED = "approved"
KIND_REJECTED = "rejected"


def _render(kind: str, payload: Dict[str, Any]) -> tuple[str, str]:
    title = payload.get("challenge_title") or "Challenge"
    if kind == KIND_APPROVED:
        return "Challenge approved", f'"{title}" was approved. You earned {int(payload.get("coins") or 0)} coins!'
    reason = (payload.get("reason") or "").strip()
    message = f'"{title}" was not approved.'
    if reason:
        message += f" Reason: {reason}"
    return "Challenge not approved", message


def queue_in_app(user_id: int, kind: str, title: str, message: str, meta: Optional[Dict[str, Any]] = None) -> Notification:
    n = Notification(
        user_id=user_id,
        kind=kind,
        channel="in_app",
        title=title[:160] if title else "",
        message=message or "",
        status="queued",
        meta=json.dumps(meta or {}, default=str),
    )
    db.session.add(n)
    return n


def notify(user_id: int, kind: str, payload: Optional[Dict[str, Any]] = None) -> Optional[Notification]:
    """Fire-and-forget: a failure to queue is logged and never propagates."""
    payload = payload or {}
    try:
        title, message = _render(kind, payload)
        n = queue_in_app(int(user_id), kind, title, message, meta=payload)
        db.session.commit()
        return n
    except Exception:
        db.session.rollback()
        logger.exception("failed to queue %s notification for user %s", kind, user_id)
        return None


def mark_sent(n: Notification, provider_ref: str = "") -> None:
    n.status = "sent"
    n.provider_ref = provider_ref[:120] if provider_ref else None
    n.sent_at = datetime.utcnow()
    db.session.add(n)


def mark_failed(n: Notification, provider_ref: str = "") -> None:
    n.status = "failed"
    n.provider_ref = provider_ref[:120] if provider_ref else None
    db.session.add(n)
