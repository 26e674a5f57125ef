from datetime import datetime, timedelta

import pytest

from challengeflow.errors import ConflictError, InvariantViolation, NotFound, ValidationError
from challengeflow.extensions import db
from challengeflow.models import AuditLog, LedgerEntry, Notification, Participation
from challengeflow.services import ledger, moderation, participations
from challengeflow.services.adjudication import AdjudicationOutcome, SocialPostAnalysis, Verdict, VideoAnalysis

from conftest import INSTAGRAM_URL, YOUTUBE_URL


def _raw_participation(challenge, user_id=7, status="pending-analysis", created_at=None):
    now = created_at or datetime.utcnow()
    p = Participation(user_id=user_id, challenge_id=challenge.id, result_value=55, primary_proof_url=YOUTUBE_URL,
                      status=status, created_at=now, updated_at=now)
    db.session.add(p)
    db.session.commit()
    return p


def test_auto_approval_credits_reward_once(make_challenge, auto_approve, submit):
    auto_approve("physical")
    c = make_challenge(goal=50, reward_amount=100)

    res = submit(7, c, result_value=55)

    p = res.participation
    assert p.status == "approved"
    assert p.coins_earned == 100
    assert p.effective_confidence == 92
    assert res.primary_verdict.observed_value == 55
    assert LedgerEntry.query.filter_by(participation_id=p.id).count() == 1
    assert ledger.get_balance(7) == 100
    assert Notification.query.filter_by(user_id=7, kind="approved").count() == 1


def test_without_automation_submission_waits_for_moderator(make_challenge, submit):
    c = make_challenge(goal=50, reward_amount=100)

    res = submit(7, c, result_value=55)
    assert res.participation.status == "pending-review"
    assert res.participation.primary_confidence == 92
    assert LedgerEntry.query.count() == 0

    p = participations.approve(res.participation.id, moderator_id=1)
    assert p.status == "approved"
    assert p.coins_earned == 100
    assert p.decided_by == 1
    assert LedgerEntry.query.filter_by(participation_id=p.id).count() == 1


def test_claim_equal_to_goal_is_rejected(make_challenge, auto_approve, submit, analyzer):
    auto_approve("physical")
    analyzer.video = VideoAnalysis(is_valid=True, confidence=100, reason="ok", observed_value=10)
    c = make_challenge(goal=10)

    res = submit(7, c, result_value=10)
    assert res.participation.status == "rejected"
    assert res.participation.rejection_reason
    assert LedgerEntry.query.count() == 0
    assert Notification.query.filter_by(user_id=7, kind="rejected").count() == 1


def test_analyzer_failure_routes_to_review(make_challenge, auto_approve, submit, analyzer):
    auto_approve("physical")
    analyzer.video = RuntimeError("upstream down")
    c = make_challenge()

    res = submit(7, c)
    assert res.primary_verdict is None
    assert res.participation.status == "pending-review"
    assert res.participation.primary_analyzed_at is None


def test_dual_proof_submission(care_challenge, auto_approve, submit, analyzer):
    auto_approve("acts-of-care")
    analyzer.video = VideoAnalysis(is_valid=True, confidence=90, reason="ok")
    analyzer.social = SocialPostAnalysis(is_valid=True, confidence=50, reason="blurry")

    res = submit(7, care_challenge, result_value=None, secondary=INSTAGRAM_URL)
    assert res.participation.status == "pending-review"
    assert res.participation.effective_confidence == 70
    assert res.secondary_verdict.confidence == 50


@pytest.mark.parametrize("result_value", ["abc", 5, [1, 2]])
def test_result_value_is_not_stored_for_acts_of_care(care_challenge, submit, result_value):
    res = submit(7, care_challenge, result_value=result_value, secondary=INSTAGRAM_URL)
    assert res.participation.status == "pending-review"
    assert res.participation.result_value is None


def test_non_numeric_result_on_physical_challenge_is_a_validation_error(make_challenge, submit):
    c = make_challenge()
    with pytest.raises(ValidationError) as exc:
        submit(7, c, result_value="abc")
    assert exc.value.code == "result_invalid"
    assert Participation.query.count() == 0


def test_invalid_proof_is_not_persisted(make_challenge, submit):
    c = make_challenge()
    with pytest.raises(ValidationError) as exc:
        submit(7, c, primary="https://youtube.com/shorts/abc")
    assert exc.value.code == "primary_short"
    assert Participation.query.count() == 0


def test_unknown_or_closed_challenge(make_challenge, submit):
    closed = make_challenge(is_active=False)
    with pytest.raises(NotFound):
        submit(7, closed)
    with pytest.raises(NotFound):
        participations.submit(7, 9999, 55, YOUTUBE_URL, None, True)


def test_one_in_flight_participation_per_user_and_challenge(make_challenge, submit):
    c = make_challenge()
    first = submit(7, c)
    assert first.participation.status == "pending-review"

    with pytest.raises(ConflictError) as exc:
        submit(7, c)
    assert exc.value.code == "already_pending"

    # other users are unaffected
    assert submit(8, c).participation.status == "pending-review"

    participations.reject(first.participation.id, "Video is private", moderator_id=1)
    again = submit(7, c)
    assert again.participation.status == "pending-review"


def test_cannot_resubmit_after_approval(make_challenge, submit):
    c = make_challenge()
    res = submit(7, c)
    participations.approve(res.participation.id, moderator_id=1)
    with pytest.raises(ConflictError) as exc:
        submit(7, c)
    assert exc.value.code == "already_approved"


def test_in_flight_index_rejects_direct_duplicates(make_challenge):
    c = make_challenge()
    _raw_participation(c, status="pending-review")
    dup = Participation(user_id=7, challenge_id=c.id, result_value=60, primary_proof_url=YOUTUBE_URL,
                        status="pending-analysis", created_at=datetime.utcnow(), updated_at=datetime.utcnow())
    db.session.add(dup)
    with pytest.raises(Exception):
        db.session.commit()
    db.session.rollback()


def test_approve_is_idempotent(make_challenge, submit):
    c = make_challenge(reward_amount=100)
    pid = submit(7, c).participation.id

    first = participations.approve(pid, moderator_id=1)
    second = participations.approve(pid, override_amount=5, moderator_id=2)

    assert first.coins_earned == second.coins_earned == 100
    assert LedgerEntry.query.filter_by(participation_id=pid).count() == 1
    assert ledger.get_balance(7) == 100
    assert Notification.query.filter_by(user_id=7, kind="approved").count() == 1


def test_approve_with_override_amount(make_challenge, submit):
    c = make_challenge(reward_amount=100)
    pid = submit(7, c).participation.id
    p = participations.approve(pid, override_amount=150, moderator_id=1)
    assert p.coins_earned == 150
    assert ledger.get_entry(pid).amount == 150


def test_approve_rejects_bad_override(make_challenge, submit):
    c = make_challenge()
    pid = submit(7, c).participation.id
    with pytest.raises(ValidationError):
        participations.approve(pid, override_amount="lots", moderator_id=1)
    assert participations.get_participation(pid).status == "pending-review"


def test_approve_accepts_whole_number_strings(make_challenge, submit):
    c = make_challenge(reward_amount=100)
    pid = submit(7, c).participation.id
    p = participations.approve(pid, override_amount="5.0", moderator_id=1)
    assert p.coins_earned == 5


@pytest.mark.parametrize("amount", [float("inf"), float("-inf"), float("nan"), 2.5, -1, True, [5]])
def test_approve_refuses_non_whole_override(make_challenge, submit, amount):
    c = make_challenge()
    pid = submit(7, c).participation.id
    with pytest.raises(ValidationError) as exc:
        participations.approve(pid, override_amount=amount, moderator_id=1)
    assert exc.value.code == "invalid_amount"
    assert ledger.get_entry(pid) is None


def test_concurrent_approvals_credit_once(make_challenge, submit, monkeypatch):
    c = make_challenge(reward_amount=100)
    pid = submit(7, c).participation.id

    original = participations._transition_to_approved

    def _racing(participation_id, user_id, amount, moderator_id):
        # another moderator wins the row first
        assert original(participation_id, user_id, 100, 99)
        return original(participation_id, user_id, amount, moderator_id)

    monkeypatch.setattr(participations, "_transition_to_approved", _racing)

    p = participations.approve(pid, override_amount=150, moderator_id=1)

    assert p.status == "approved"
    assert p.decided_by == 99
    assert LedgerEntry.query.filter_by(participation_id=pid).count() == 1
    assert ledger.get_entry(pid).amount == p.coins_earned == 100


def test_conflicting_credit_rolls_back_approval(make_challenge, submit):
    c = make_challenge(reward_amount=100)
    pid = submit(7, c).participation.id
    db.session.add(LedgerEntry(participation_id=pid, user_id=7, amount=100, created_at=datetime.utcnow()))
    db.session.commit()

    with pytest.raises(InvariantViolation):
        participations.approve(pid, moderator_id=1)

    assert participations.get_participation(pid).status == "pending-review"
    assert LedgerEntry.query.filter_by(participation_id=pid).count() == 1
    assert AuditLog.query.filter_by(action="invariant:duplicate_credit", target_id=pid).count() == 1


def test_approve_repairs_missing_entry(make_challenge):
    c = make_challenge(reward_amount=30)
    p = _raw_participation(c, status="approved")
    p.coins_earned = 30
    db.session.commit()

    participations.approve(p.id, moderator_id=1)
    assert ledger.get_entry(p.id).amount == 30


def test_decided_participations_cannot_change(make_challenge, submit):
    c = make_challenge()
    pid = submit(7, c).participation.id
    participations.reject(pid, "Wrong exercise", moderator_id=1)

    with pytest.raises(ConflictError):
        participations.approve(pid, moderator_id=1)
    with pytest.raises(ConflictError):
        participations.reject(pid, "again", moderator_id=1)
    p = participations.get_participation(pid)
    assert p.status == "rejected"
    assert p.rejection_reason == "Wrong exercise"


def test_reject_requires_reason(make_challenge, submit):
    c = make_challenge()
    pid = submit(7, c).participation.id
    with pytest.raises(ValidationError) as exc:
        participations.reject(pid, "   ", moderator_id=1)
    assert exc.value.code == "reason_required"
    assert participations.get_participation(pid).status == "pending-review"


def test_participation_under_analysis_cannot_be_moderated(make_challenge):
    c = make_challenge()
    p = _raw_participation(c, status="pending-analysis")
    with pytest.raises(ConflictError) as exc:
        participations.approve(p.id, moderator_id=1)
    assert exc.value.code == "analysis_in_progress"
    with pytest.raises(ConflictError):
        participations.reject(p.id, "nope", moderator_id=1)


def test_bulk_approval_skips_rows_decided_mid_batch(make_challenge, submit, monkeypatch):
    c = make_challenge(reward_amount=10)
    for uid in range(1, 6):
        submit(100 + uid, c)

    original = moderation.pending_review_ids

    def _racing(challenge_id):
        ids = original(challenge_id)
        participations.reject(ids[2], "Rejected by another moderator", moderator_id=99)
        return ids

    monkeypatch.setattr(moderation, "pending_review_ids", _racing)

    assert participations.approve_all_pending(c.id, moderator_id=1) == 4
    assert LedgerEntry.query.count() == 4
    assert moderation.counts(c.id) == {"pending": 0, "approved": 4, "rejected": 1}


def test_bulk_approval_of_empty_queue(make_challenge):
    c = make_challenge()
    assert participations.approve_all_pending(c.id, moderator_id=1) == 0
    with pytest.raises(NotFound):
        participations.approve_all_pending(424242, moderator_id=1)


def test_counts_and_pending_list(make_challenge, submit):
    c = make_challenge()
    other = make_challenge(title="Other")
    a = submit(1, c).participation.id
    b = submit(2, c).participation.id
    submit(3, other)
    _raw_participation(c, user_id=4, status="pending-analysis")
    participations.approve(a, moderator_id=1)

    assert moderation.counts(c.id) == {"pending": 2, "approved": 1, "rejected": 0}
    assert [p.id for p in moderation.list_pending(challenge_id=c.id)] == [b]
    assert len(moderation.list_pending()) == 2


def test_pending_list_is_newest_first(make_challenge):
    c = make_challenge()
    old = _raw_participation(c, user_id=1, status="pending-review", created_at=datetime.utcnow() - timedelta(hours=2))
    new = _raw_participation(c, user_id=2, status="pending-review")
    assert [p.id for p in moderation.list_pending(c.id)] == [new.id, old.id]


def test_stale_analysis_sweep(make_challenge):
    c = make_challenge()
    stale = _raw_participation(c, user_id=1, created_at=datetime.utcnow() - timedelta(minutes=30))
    fresh = _raw_participation(c, user_id=2)

    assert participations.sweep_stale_analysis() == 1
    assert participations.get_participation(stale.id).status == "pending-review"
    assert participations.get_participation(fresh.id).status == "pending-analysis"


def test_late_verdict_after_sweep_is_attached_without_deciding(make_challenge, auto_approve):
    auto_approve("physical")
    c = make_challenge()
    p = _raw_participation(c, created_at=datetime.utcnow() - timedelta(minutes=30))
    participations.sweep_stale_analysis()

    outcome = AdjudicationOutcome(
        primary=Verdict(is_valid=True, confidence=95, observed_value=55, reason="ok"),
        secondary=None,
    )
    p = participations.apply_outcome(p.id, outcome)
    assert p.status == "pending-review"
    assert p.primary_confidence == 95
    assert LedgerEntry.query.count() == 0


def test_to_dict_hides_fields_by_status(make_challenge, submit):
    c = make_challenge()
    res = submit(7, c)
    d = res.participation.to_dict()
    assert d["rejection_reason"] is None
    assert d["coins_earned"] is None
    assert d["primary_verdict"]["confidence"] == 92
