import pytest

from challengeflow.models import Challenge
from challengeflow.services.adjudication import Verdict
from challengeflow.services.outcome_policy import PolicySettings, decide, effective_confidence, goal_met

AUTO = PolicySettings(threshold_low=50, threshold_high=80, auto_approve=True)
MANUAL = PolicySettings(threshold_low=50, threshold_high=80, auto_approve=False)


def physical(goal=50, goal_kind="repetition"):
    return Challenge(title="Push-ups", category="physical", goal=goal, goal_kind=goal_kind, reward_amount=100)


def care():
    return Challenge(title="Help", category="acts-of-care", goal=None, goal_kind=None, reward_amount=40)


def verdict(valid=True, confidence=90, observed=None, reason="ok", suspicious=False):
    return Verdict(is_valid=valid, confidence=confidence, observed_value=observed, reason=reason,
                   is_suspicious=suspicious)


def test_dual_proof_confidence_is_averaged():
    assert effective_confidence(True, verdict(confidence=90), verdict(confidence=50)) == 70


def test_dual_proof_average_rounds_half_up():
    assert effective_confidence(True, verdict(confidence=91), verdict(confidence=50)) == 71


def test_single_proof_uses_primary_confidence():
    assert effective_confidence(False, verdict(confidence=64), verdict(confidence=10)) == 64


def test_missing_required_verdict_has_no_confidence():
    assert effective_confidence(False, None, None) is None
    assert effective_confidence(True, verdict(), None) is None


def test_missing_verdict_routes_to_review():
    d = decide(physical(), 55, None, None, AUTO)
    assert d.status == "pending-review"
    assert d.effective_confidence is None


def test_missing_secondary_on_dual_proof_routes_to_review():
    assert decide(care(), None, verdict(confidence=99), None, AUTO).status == "pending-review"


@pytest.mark.parametrize("goal_kind,goal,value,expected", [
    ("repetition", 10, 10, False),
    ("repetition", 10, 11, True),
    ("duration", 60, 60, True),
    ("duration", 60, 59, True),
    ("duration", 60, 61, False),
])
def test_goal_met(goal_kind, goal, value, expected):
    assert goal_met(goal, goal_kind, value) is expected


def test_equal_to_goal_is_never_approved():
    d = decide(physical(goal=10), 10, verdict(confidence=100, observed=10), None, AUTO)
    assert d.status == "rejected"


def test_beating_goal_with_high_confidence_is_approved_when_automated():
    d = decide(physical(goal=10), 11, verdict(confidence=95, observed=11), None, AUTO)
    assert d.status == "approved"
    assert d.effective_confidence == 95


def test_automation_off_routes_to_review():
    d = decide(physical(goal=10), 11, verdict(confidence=95, observed=11), None, MANUAL)
    assert d.status == "pending-review"


def test_observed_value_failing_goal_rejects():
    d = decide(physical(goal=50), 55, verdict(confidence=90, observed=40), None, AUTO)
    assert d.status == "rejected"
    assert "40" in d.reason


def test_missing_observed_value_routes_to_review():
    d = decide(physical(goal=50), 55, verdict(confidence=90, observed=None), None, AUTO)
    assert d.status == "pending-review"


def test_duration_goal_lower_is_better():
    c = physical(goal=60, goal_kind="duration")
    assert decide(c, 55, verdict(confidence=90, observed=55), None, AUTO).status == "approved"
    assert decide(c, 61, verdict(confidence=90, observed=61), None, AUTO).status == "rejected"


def test_low_confidence_rejects_with_analysis_reason():
    d = decide(physical(), 55, verdict(valid=False, confidence=20, observed=55, reason="No push-ups visible"),
               None, AUTO)
    assert d.status == "rejected"
    assert "No push-ups visible" in d.reason


def test_suspicious_content_always_goes_to_review():
    d = decide(physical(), 55, verdict(confidence=99, observed=55, suspicious=True), None, AUTO)
    assert d.status == "pending-review"


def test_invalid_verdict_above_low_threshold_goes_to_review():
    d = decide(physical(), 55, verdict(valid=False, confidence=90, observed=55), None, AUTO)
    assert d.status == "pending-review"


def test_confidence_between_thresholds_goes_to_review():
    d = decide(physical(), 55, verdict(confidence=70, observed=55), None, AUTO)
    assert d.status == "pending-review"


def test_dual_proof_average_below_high_threshold_goes_to_review():
    d = decide(care(), None, verdict(confidence=90), verdict(confidence=50), AUTO)
    assert d.status == "pending-review"
    assert d.effective_confidence == 70


def test_dual_proof_both_strong_is_approved():
    d = decide(care(), None, verdict(confidence=90), verdict(confidence=84), AUTO)
    assert d.status == "approved"
    assert d.effective_confidence == 87
