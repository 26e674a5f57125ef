from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Optional

from challengeflow.extensions import db
from challengeflow.models import AuditLog

logger = logging.getLogger(__name__)


def log_action(
    action: str,
    *,
    actor_user_id: Optional[int],
    target_type: str,
    target_id: Optional[int],
    meta: Optional[dict[str, Any]] = None,
) -> AuditLog:
    """Stage an audit row on the current session. Caller commits."""
    row = AuditLog(
        actor_user_id=int(actor_user_id) if actor_user_id is not None else None,
        action=action[:64],
        target_type=target_type,
        target_id=int(target_id) if target_id is not None else None,
        meta=json.dumps(meta or {}, default=str),
        created_at=datetime.utcnow(),
    )
    db.session.add(row)
    return row


def record_invariant_violation(kind: str, *, target_type: str, target_id: Optional[int], meta: dict[str, Any]) -> None:
    """Log and persist a broken invariant. Never corrects anything."""
    logger.error("invariant violation %s on %s %s: %s", kind, target_type, target_id, meta)
    try:
        log_action(f"invariant:{kind}", actor_user_id=None, target_type=target_type, target_id=target_id, meta=meta)
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("failed to persist invariant violation %s", kind)
