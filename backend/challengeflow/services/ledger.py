"""Reward ledger: one credit per approved participation.

Uniqueness on ``participation_id`` is enforced by the database. Application
code never does check-then-credit as its only guard; a duplicate insert is
caught and the existing entry is returned.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from challengeflow.errors import ConflictError, InvariantViolation, NotFound, ValidationError
from challengeflow.extensions import db
from challengeflow.models import LedgerEntry, LedgerReversal, Participation
from challengeflow.models.participation import STATUS_APPROVED
from challengeflow.utils.audit import log_action, record_invariant_violation

logger = logging.getLogger(__name__)


def get_entry(participation_id: int) -> LedgerEntry | None:
    return LedgerEntry.query.filter_by(participation_id=int(participation_id)).first()


def stage_credit(participation_id: int, user_id: int, amount: int) -> LedgerEntry:
    """Add a credit to the current transaction without committing."""
    entry = LedgerEntry(
        participation_id=int(participation_id),
        user_id=int(user_id),
        amount=int(amount),
        created_at=datetime.utcnow(),
    )
    db.session.add(entry)
    return entry


def credit(participation_id: int, user_id: int, amount: int) -> LedgerEntry:
    """Idempotent credit; a second call returns the first entry."""
    existing = get_entry(participation_id)
    if existing:
        if int(existing.user_id) != int(user_id) or int(existing.amount) != int(amount):
            logger.warning(
                "repeat credit for participation %s differs from stored entry %s",
                participation_id,
                existing.id,
            )
        return existing

    p = db.session.get(Participation, int(participation_id))
    if p is None or p.status != STATUS_APPROVED or int(p.user_id) != int(user_id):
        meta = {
            "participation_id": int(participation_id),
            "user_id": int(user_id),
            "amount": int(amount),
            "status": p.status if p is not None else None,
        }
        record_invariant_violation("credit_without_approval", target_type="participation",
                                   target_id=int(participation_id), meta=meta)
        raise InvariantViolation("Ledger credit requires an approved participation")

    entry = stage_credit(participation_id, user_id, amount)
    try:
        db.session.commit()
        return entry
    except IntegrityError:
        db.session.rollback()
        existing = get_entry(participation_id)
        if existing:
            return existing
        raise


def get_balance(user_id: int) -> int:
    credits = db.session.query(func.coalesce(func.sum(LedgerEntry.amount), 0)).filter(
        LedgerEntry.user_id == int(user_id),
    ).scalar() or 0
    reversals = db.session.query(func.coalesce(func.sum(LedgerReversal.amount), 0)).filter(
        LedgerReversal.user_id == int(user_id),
    ).scalar() or 0
    return int(credits) - int(reversals)


def reverse(participation_id: int, reason: str, moderator_id: int | None = None) -> LedgerReversal:
    """Compensate a credit after a later dispute. The participation stays approved."""
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A reason is required to reverse a reward.", "reason_required")

    existing = LedgerReversal.query.filter_by(participation_id=int(participation_id)).first()
    if existing:
        return existing

    p = db.session.get(Participation, int(participation_id))
    if p is None:
        raise NotFound("Participation not found")
    if p.status != STATUS_APPROVED:
        raise ConflictError("Only approved participations can be reversed.", "not_approved")
    entry = get_entry(participation_id)
    if entry is None:
        raise ConflictError("No reward was credited for this participation.", "not_credited")

    now = datetime.utcnow()
    row = LedgerReversal(
        entry_id=int(entry.id),
        participation_id=int(participation_id),
        user_id=int(entry.user_id),
        amount=int(entry.amount),
        reason=reason[:400],
        created_by=moderator_id,
        created_at=now,
    )
    p.reversed_at = now
    p.updated_at = now
    db.session.add(row)
    db.session.add(p)
    log_action("reward_reversed", actor_user_id=moderator_id, target_type="participation",
               target_id=int(participation_id), meta={"amount": int(entry.amount), "reason": reason})
    try:
        db.session.commit()
        return row
    except IntegrityError:
        db.session.rollback()
        existing = LedgerReversal.query.filter_by(participation_id=int(participation_id)).first()
        if existing:
            return existing
        raise
