"""Automatic outcome for a participation leaving pending-analysis."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

from challengeflow.models.challenge import GOAL_DURATION
from challengeflow.models.participation import (
    STATUS_APPROVED,
    STATUS_PENDING_REVIEW,
    STATUS_REJECTED,
)
from challengeflow.services.adjudication import Verdict


@dataclass(frozen=True)
class PolicySettings:
    threshold_low: int = 50
    threshold_high: int = 80
    auto_approve: bool = False


@dataclass(frozen=True)
class Decision:
    status: str
    reason: str = ""
    effective_confidence: Optional[int] = None


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def effective_confidence(
    requires_dual_proof: bool,
    primary: Optional[Verdict],
    secondary: Optional[Verdict],
) -> Optional[int]:
    """None when any required verdict is missing."""
    if primary is None:
        return None
    if requires_dual_proof:
        if secondary is None:
            return None
        return _round_half_up((primary.confidence + secondary.confidence) / 2)
    return int(primary.confidence)


def goal_met(goal: float, goal_kind: Optional[str], value: float) -> bool:
    if goal_kind == GOAL_DURATION:
        # lower is better
        return value <= goal
    return value >= goal + 1


def _rejection_reason(verdicts) -> str:
    reasons = [v.reason for v in verdicts if v is not None and v.reason]
    if not reasons:
        return "Automated analysis could not confirm the challenge was completed."
    return ("Automated analysis: " + " / ".join(reasons))[:400]


def decide(challenge, result_value, primary: Optional[Verdict], secondary: Optional[Verdict], settings: PolicySettings) -> Decision:
    confidence = effective_confidence(challenge.requires_dual_proof, primary, secondary)
    if confidence is None:
        return Decision(STATUS_PENDING_REVIEW, "Automated analysis unavailable")

    verdicts = [primary, secondary] if challenge.requires_dual_proof else [primary]

    if any(v.is_suspicious for v in verdicts):
        return Decision(STATUS_PENDING_REVIEW, "Flagged as suspicious", confidence)

    if confidence < settings.threshold_low:
        return Decision(STATUS_REJECTED, _rejection_reason(verdicts), confidence)

    if challenge.has_numeric_goal:
        goal = float(challenge.goal)
        if result_value is None or not goal_met(goal, challenge.goal_kind, float(result_value)):
            return Decision(STATUS_REJECTED, "Submitted result does not beat the challenge goal.", confidence)
        observed = primary.observed_value
        if observed is None:
            return Decision(STATUS_PENDING_REVIEW, "Observed result unavailable", confidence)
        if not goal_met(goal, challenge.goal_kind, float(observed)):
            return Decision(
                STATUS_REJECTED,
                f"Result observed in the video ({observed:g}) does not beat the challenge goal.",
                confidence,
            )

    if not all(v.is_valid for v in verdicts):
        return Decision(STATUS_PENDING_REVIEW, "Analysis did not confirm the proof", confidence)

    if settings.auto_approve and confidence >= settings.threshold_high:
        return Decision(STATUS_APPROVED, "", confidence)

    return Decision(STATUS_PENDING_REVIEW, "", confidence)
