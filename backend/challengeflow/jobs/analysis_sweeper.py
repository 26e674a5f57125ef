from __future__ import annotations

from challengeflow.services.participations import sweep_stale_analysis


def run(max_age_seconds: int | None = None) -> dict:
    moved = sweep_stale_analysis(max_age_seconds)
    return {"moved_to_review": moved}
