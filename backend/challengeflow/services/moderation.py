"""Read-side views over participations for moderators."""

from __future__ import annotations

from sqlalchemy import func

from challengeflow.extensions import db
from challengeflow.models import Participation
from challengeflow.models.participation import (
    IN_FLIGHT_STATUSES,
    STATUS_APPROVED,
    STATUS_PENDING_REVIEW,
    STATUS_REJECTED,
)


def list_pending(challenge_id: int | None = None, limit: int = 200) -> list[Participation]:
    q = Participation.query.filter(Participation.status == STATUS_PENDING_REVIEW)
    if challenge_id is not None:
        q = q.filter(Participation.challenge_id == int(challenge_id))
    return q.order_by(Participation.created_at.desc(), Participation.id.desc()).limit(int(limit)).all()


def pending_review_ids(challenge_id: int) -> list[int]:
    rows = (
        db.session.query(Participation.id)
        .filter(Participation.challenge_id == int(challenge_id), Participation.status == STATUS_PENDING_REVIEW)
        .order_by(Participation.created_at.asc())
        .all()
    )
    return [int(r[0]) for r in rows]


def counts(challenge_id: int) -> dict:
    rows = (
        db.session.query(Participation.status, func.count(Participation.id))
        .filter(Participation.challenge_id == int(challenge_id))
        .group_by(Participation.status)
        .all()
    )
    by_status = {status: int(n) for status, n in rows}
    return {
        "pending": sum(by_status.get(s, 0) for s in IN_FLIGHT_STATUSES),
        "approved": by_status.get(STATUS_APPROVED, 0),
        "rejected": by_status.get(STATUS_REJECTED, 0),
    }
