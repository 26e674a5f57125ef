from __future__ import annotations

from datetime import datetime

from flask import current_app

from challengeflow.errors import ValidationError
from challengeflow.extensions import db
from challengeflow.models import ReviewPolicy
from challengeflow.models.challenge import CATEGORIES
from challengeflow.services.outcome_policy import PolicySettings
from challengeflow.utils.audit import log_action


def _default_auto_approve(category: str) -> bool:
    return category in (current_app.config.get("AUTO_APPROVE_CATEGORIES") or [])


def settings_for(category: str) -> PolicySettings:
    row = ReviewPolicy.query.filter_by(category=category).first()
    auto = bool(row.auto_approve) if row else _default_auto_approve(category)
    return PolicySettings(
        threshold_low=int(current_app.config.get("CONFIDENCE_THRESHOLD_LOW", 50)),
        threshold_high=int(current_app.config.get("CONFIDENCE_THRESHOLD_HIGH", 80)),
        auto_approve=auto,
    )


def list_policies() -> list[dict]:
    rows = {r.category: r for r in ReviewPolicy.query.all()}
    out = []
    for category in CATEGORIES:
        row = rows.get(category)
        if row:
            out.append(row.to_dict())
        else:
            out.append({"category": category, "auto_approve": _default_auto_approve(category),
                        "updated_by": None, "updated_at": None})
    return out


def set_auto_approve(category: str, enabled: bool, actor_user_id: int | None = None) -> ReviewPolicy:
    if category not in CATEGORIES:
        raise ValidationError(f"Unknown category: {category}", "unknown_category")
    row = ReviewPolicy.query.filter_by(category=category).first()
    if not row:
        row = ReviewPolicy(category=category)
    row.auto_approve = bool(enabled)
    row.updated_by = actor_user_id
    row.updated_at = datetime.utcnow()
    db.session.add(row)
    log_action("review_policy_changed", actor_user_id=actor_user_id, target_type="review_policy",
               target_id=None, meta={"category": category, "auto_approve": bool(enabled)})
    db.session.commit()
    return row
