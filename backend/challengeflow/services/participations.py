"""Participation lifecycle.

    pending-analysis -> pending-review | approved | rejected
    pending-review   -> approved | rejected

Every transition is a compare-and-set on ``status`` so concurrent workers
cannot decide the same row twice. Approval and its ledger credit share one
database transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from challengeflow.errors import ConflictError, InvariantViolation, NotFound, ValidationError
from challengeflow.extensions import db
from challengeflow.models import Challenge, Participation
from challengeflow.models.challenge import CATEGORY_PHYSICAL
from challengeflow.models.participation import (
    STATUS_APPROVED,
    STATUS_PENDING_ANALYSIS,
    STATUS_PENDING_REVIEW,
    STATUS_REJECTED,
)
from challengeflow.services import adjudication, ledger, moderation, outcome_policy, proof_validator, review_policy
from challengeflow.services.adjudication import AdjudicationOutcome, Verdict
from challengeflow.utils.audit import log_action, record_invariant_violation
from challengeflow.utils.notify import KIND_APPROVED, KIND_REJECTED, notify

logger = logging.getLogger(__name__)

ADJUDICATION_EXTENSION = "challengeflow.adjudication"


@dataclass
class SubmissionResult:
    participation: Participation
    primary_verdict: Optional[Verdict]
    secondary_verdict: Optional[Verdict]

    def to_dict(self) -> dict:
        return {
            "participation": self.participation.to_dict(),
            "primary_verdict": self.primary_verdict.to_dict() if self.primary_verdict else None,
            "secondary_verdict": self.secondary_verdict.to_dict() if self.secondary_verdict else None,
        }


def get_adjudication_client() -> adjudication.AdjudicationClient:
    return current_app.extensions[ADJUDICATION_EXTENSION]


def get_participation(participation_id: int) -> Participation:
    p = db.session.get(Participation, int(participation_id))
    if p is None:
        raise NotFound("Participation not found")
    return p


# -------------------------
# Submission
# -------------------------

def _ensure_can_submit(user_id: int, challenge_id: int) -> None:
    rows = (
        Participation.query
        .filter(Participation.user_id == int(user_id), Participation.challenge_id == int(challenge_id))
        .filter(Participation.status != STATUS_REJECTED)
        .all()
    )
    for p in rows:
        if p.status == STATUS_APPROVED:
            raise ConflictError("You already completed this challenge.", "already_approved")
        raise ConflictError("You already have a submission pending for this challenge.", "already_pending")


def submit(
    user_id: int,
    challenge_id: int,
    result_value,
    primary_proof_url: str,
    secondary_proof_url: Optional[str] = None,
    confirmed_public: bool = False,
) -> SubmissionResult:
    challenge = db.session.get(Challenge, int(challenge_id))
    if challenge is None or not challenge.is_active:
        raise NotFound("Challenge not found or closed")

    check = proof_validator.validate(
        challenge.category,
        primary_proof_url,
        secondary_proof_url,
        result_value,
        confirmed_public,
    )
    if not check.ok:
        raise ValidationError(check.message, check.code)

    _ensure_can_submit(user_id, challenge_id)

    now = datetime.utcnow()
    p = Participation(
        user_id=int(user_id),
        challenge_id=int(challenge.id),
        result_value=float(result_value) if challenge.category == CATEGORY_PHYSICAL else None,
        primary_proof_url=primary_proof_url.strip(),
        secondary_proof_url=(secondary_proof_url or "").strip() or None,
        status=STATUS_PENDING_ANALYSIS,
        created_at=now,
        updated_at=now,
    )
    db.session.add(p)
    try:
        db.session.flush()
        pid = int(p.id)
        request = adjudication.snapshot(p, challenge)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("You already have a submission pending for this challenge.", "already_pending")

    logger.info("participation %s created for user %s on challenge %s", pid, user_id, challenge_id)

    # No transaction is open while the analyzers run.
    outcome = get_adjudication_client().adjudicate_request(request)
    p = apply_outcome(pid, outcome)
    return SubmissionResult(participation=p, primary_verdict=outcome.primary, secondary_verdict=outcome.secondary)


# -------------------------
# Automatic outcome
# -------------------------

def _verdict_values(source: str, verdict: Optional[Verdict], now: datetime) -> dict:
    if verdict is None:
        return {}
    return {
        f"{source}_is_valid": verdict.is_valid,
        f"{source}_confidence": verdict.confidence,
        f"{source}_observed_value": verdict.observed_value,
        f"{source}_reason": verdict.reason,
        f"{source}_is_suspicious": verdict.is_suspicious,
        f"{source}_analyzed_at": now,
    }


def _commit_with_credit(participation_id: int) -> None:
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        record_invariant_violation("duplicate_credit", target_type="participation",
                                   target_id=participation_id, meta={"participation_id": participation_id})
        raise InvariantViolation("A ledger entry already exists for this participation")


def apply_outcome(participation_id: int, outcome: AdjudicationOutcome) -> Participation:
    p = get_participation(participation_id)
    challenge = p.challenge
    user_id = int(p.user_id)
    reward = int(challenge.reward_amount or 0)

    decision = outcome_policy.decide(
        challenge,
        p.result_value,
        outcome.primary,
        outcome.secondary,
        review_policy.settings_for(challenge.category),
    )

    now = datetime.utcnow()
    verdicts = {}
    verdicts.update(_verdict_values("primary", outcome.primary, now))
    verdicts.update(_verdict_values("secondary", outcome.secondary, now))

    values = dict(verdicts)
    values.update({
        "status": decision.status,
        "effective_confidence": decision.effective_confidence,
        "updated_at": now,
    })
    if decision.status == STATUS_REJECTED:
        values.update({"rejection_reason": decision.reason, "decided_at": now})
    elif decision.status == STATUS_APPROVED:
        values.update({"coins_earned": reward, "decided_at": now})

    rows = (
        Participation.query
        .filter_by(id=int(participation_id), status=STATUS_PENDING_ANALYSIS)
        .update(values, synchronize_session=False)
    )
    if rows != 1:
        db.session.rollback()
        logger.warning("participation %s left pending-analysis before its verdicts arrived", participation_id)
        if verdicts:
            (
                Participation.query
                .filter_by(id=int(participation_id), status=STATUS_PENDING_REVIEW, primary_analyzed_at=None)
                .update(verdicts, synchronize_session=False)
            )
            db.session.commit()
        db.session.expire_all()
        return get_participation(participation_id)

    if decision.status == STATUS_APPROVED:
        ledger.stage_credit(participation_id, user_id, reward)
    if decision.status in (STATUS_APPROVED, STATUS_REJECTED):
        log_action(f"participation_auto_{decision.status}", actor_user_id=None, target_type="participation",
                   target_id=participation_id,
                   meta={"effective_confidence": decision.effective_confidence, "reason": decision.reason})
    _commit_with_credit(participation_id)

    logger.info("participation %s -> %s (confidence=%s)", participation_id, decision.status,
                decision.effective_confidence)

    p = get_participation(participation_id)
    _notify_decision(p)
    return p


# -------------------------
# Moderator decisions
# -------------------------

def _notify_decision(p: Participation) -> None:
    title = p.challenge.title if p.challenge else ""
    if p.status == STATUS_APPROVED:
        notify(p.user_id, KIND_APPROVED, {
            "participation_id": int(p.id),
            "challenge_title": title,
            "coins": int(p.coins_earned or 0),
        })
    elif p.status == STATUS_REJECTED:
        notify(p.user_id, KIND_REJECTED, {
            "participation_id": int(p.id),
            "challenge_title": title,
            "reason": p.rejection_reason or "",
        })


def _resolve_amount(p: Participation, override_amount) -> int:
    if override_amount is None or override_amount == "":
        return int(p.challenge.reward_amount or 0)
    if isinstance(override_amount, bool):
        raise ValidationError("Reward override must be a whole number.", "invalid_amount")
    try:
        value = float(override_amount)
        amount = int(value)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError("Reward override must be a whole number.", "invalid_amount")
    if amount < 0 or not value.is_integer():
        raise ValidationError("Reward override must be a whole number.", "invalid_amount")
    return amount


def _ensure_credited(p: Participation) -> None:
    if ledger.get_entry(p.id) is None:
        logger.warning("approved participation %s had no ledger entry; crediting now", p.id)
        ledger.credit(p.id, p.user_id, int(p.coins_earned or 0))


def _transition_to_approved(participation_id: int, user_id: int, amount: int, moderator_id: Optional[int]) -> bool:
    now = datetime.utcnow()
    rows = (
        Participation.query
        .filter_by(id=int(participation_id), status=STATUS_PENDING_REVIEW)
        .update({
            "status": STATUS_APPROVED,
            "coins_earned": int(amount),
            "rejection_reason": None,
            "decided_by": moderator_id,
            "decided_at": now,
            "updated_at": now,
        }, synchronize_session=False)
    )
    if rows != 1:
        db.session.rollback()
        return False

    ledger.stage_credit(participation_id, user_id, amount)
    log_action("participation_approved", actor_user_id=moderator_id, target_type="participation",
               target_id=participation_id, meta={"coins": int(amount)})
    _commit_with_credit(participation_id)
    return True


def approve(participation_id: int, override_amount=None, moderator_id: Optional[int] = None) -> Participation:
    p = get_participation(participation_id)
    if p.status == STATUS_APPROVED:
        _ensure_credited(p)
        return p
    if p.status == STATUS_REJECTED:
        raise ConflictError("This participation was already decided.", "already_decided")
    if p.status == STATUS_PENDING_ANALYSIS:
        raise ConflictError("This participation is still being analyzed.", "analysis_in_progress")

    amount = _resolve_amount(p, override_amount)
    if not _transition_to_approved(int(p.id), int(p.user_id), amount, moderator_id):
        db.session.expire_all()
        p = get_participation(participation_id)
        if p.status == STATUS_APPROVED:
            _ensure_credited(p)
            return p
        raise ConflictError("This participation was already decided.", "already_decided")

    p = get_participation(participation_id)
    logger.info("participation %s approved by %s (%s coins)", participation_id, moderator_id, p.coins_earned)
    _notify_decision(p)
    return p


def reject(participation_id: int, reason: str, moderator_id: Optional[int] = None) -> Participation:
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A rejection reason is required.", "reason_required")

    p = get_participation(participation_id)
    if p.status in (STATUS_APPROVED, STATUS_REJECTED):
        raise ConflictError("This participation was already decided.", "already_decided")
    if p.status == STATUS_PENDING_ANALYSIS:
        raise ConflictError("This participation is still being analyzed.", "analysis_in_progress")

    now = datetime.utcnow()
    rows = (
        Participation.query
        .filter_by(id=int(participation_id), status=STATUS_PENDING_REVIEW)
        .update({
            "status": STATUS_REJECTED,
            "rejection_reason": reason[:400],
            "decided_by": moderator_id,
            "decided_at": now,
            "updated_at": now,
        }, synchronize_session=False)
    )
    if rows != 1:
        db.session.rollback()
        raise ConflictError("This participation was already decided.", "already_decided")

    log_action("participation_rejected", actor_user_id=moderator_id, target_type="participation",
               target_id=participation_id, meta={"reason": reason})
    db.session.commit()

    p = get_participation(participation_id)
    logger.info("participation %s rejected by %s", participation_id, moderator_id)
    _notify_decision(p)
    return p


def approve_all_pending(challenge_id: int, moderator_id: Optional[int] = None) -> int:
    """Approve every pending-review participation; returns how many actually changed."""
    if db.session.get(Challenge, int(challenge_id)) is None:
        raise NotFound("Challenge not found")

    approved = 0
    for pid in moderation.pending_review_ids(challenge_id):
        p = db.session.get(Participation, pid)
        if p is None or p.status != STATUS_PENDING_REVIEW:
            continue
        amount = int(p.challenge.reward_amount or 0)
        if not _transition_to_approved(pid, int(p.user_id), amount, moderator_id):
            continue
        approved += 1
        _notify_decision(get_participation(pid))

    logger.info("bulk approval on challenge %s: %s approved", challenge_id, approved)
    return approved


# -------------------------
# Maintenance
# -------------------------

def sweep_stale_analysis(max_age_seconds: Optional[int] = None) -> int:
    """Route participations stuck in pending-analysis to manual review."""
    if max_age_seconds is None:
        max_age_seconds = int(current_app.config.get("STALE_ANALYSIS_SECONDS", 600))
    cutoff = datetime.utcnow() - timedelta(seconds=int(max_age_seconds))
    now = datetime.utcnow()
    rows = (
        Participation.query
        .filter(Participation.status == STATUS_PENDING_ANALYSIS, Participation.created_at < cutoff)
        .update({"status": STATUS_PENDING_REVIEW, "updated_at": now}, synchronize_session=False)
    )
    db.session.commit()
    if rows:
        logger.warning("moved %s stale participation(s) from pending-analysis to pending-review", rows)
    return int(rows or 0)
