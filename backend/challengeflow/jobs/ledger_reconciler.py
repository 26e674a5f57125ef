from __future__ import annotations

import logging
from datetime import datetime

from challengeflow.extensions import db
from challengeflow.models import LedgerEntry, Participation
from challengeflow.models.participation import STATUS_APPROVED
from challengeflow.utils.audit import record_invariant_violation

logger = logging.getLogger(__name__)


def reconcile_ledger(*, limit: int = 500) -> dict:
    """Detect ledger anomalies against participation state.

    This does NOT correct anything. Each anomaly is logged at error level and
    written to the audit log so a human can follow up.
    """
    checked = 0
    anomalies = 0
    now = datetime.utcnow()

    # Approved participations with no credit
    missing = (
        db.session.query(Participation)
        .outerjoin(LedgerEntry, LedgerEntry.participation_id == Participation.id)
        .filter(Participation.status == STATUS_APPROVED, LedgerEntry.id.is_(None))
        .order_by(Participation.id.asc())
        .limit(int(limit))
        .all()
    )
    for p in missing:
        checked += 1
        anomalies += 1
        record_invariant_violation("approved_without_credit", target_type="participation", target_id=int(p.id),
                                   meta={"user_id": int(p.user_id), "coins_earned": int(p.coins_earned or 0),
                                         "at": now.isoformat()})

    # Credits whose participation is not approved, or whose amount drifted
    rows = (
        db.session.query(LedgerEntry, Participation)
        .outerjoin(Participation, Participation.id == LedgerEntry.participation_id)
        .order_by(LedgerEntry.id.asc())
        .limit(int(limit))
        .all()
    )
    for entry, p in rows:
        checked += 1
        issues = []
        if p is None or p.status != STATUS_APPROVED:
            issues.append("credit_without_approval")
        elif int(p.coins_earned or 0) != int(entry.amount):
            issues.append("amount_mismatch")
        if p is not None and int(p.user_id) != int(entry.user_id):
            issues.append("user_mismatch")
        if not issues:
            continue

        anomalies += 1
        record_invariant_violation(issues[0], target_type="ledger_entry", target_id=int(entry.id), meta={
            "issues": issues,
            "participation_id": int(entry.participation_id),
            "participation_status": p.status if p is not None else None,
            "entry_amount": int(entry.amount),
            "coins_earned": int(p.coins_earned or 0) if p is not None else None,
            "at": now.isoformat(),
        })

    logger.info("ledger reconciliation: checked=%s anomalies=%s", checked, anomalies)
    return {"checked": checked, "anomalies": anomalies}
