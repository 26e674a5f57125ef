from datetime import datetime

from sqlalchemy import text

from challengeflow.extensions import db

STATUS_PENDING_ANALYSIS = "pending-analysis"
STATUS_PENDING_REVIEW = "pending-review"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"

IN_FLIGHT_STATUSES = (STATUS_PENDING_ANALYSIS, STATUS_PENDING_REVIEW)
TERMINAL_STATUSES = (STATUS_APPROVED, STATUS_REJECTED)

_IN_FLIGHT_WHERE = text("status IN ('pending-analysis', 'pending-review')")


class Participation(db.Model):
    __tablename__ = "participations"
    __table_args__ = (
        # At most one in-flight attempt per (user, challenge).
        db.Index(
            "uq_participations_in_flight",
            "user_id",
            "challenge_id",
            unique=True,
            sqlite_where=_IN_FLIGHT_WHERE,
            postgresql_where=_IN_FLIGHT_WHERE,
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)
    challenge_id = db.Column(db.Integer, db.ForeignKey("challenges.id"), nullable=False, index=True)

    result_value = db.Column(db.Float, nullable=True)
    primary_proof_url = db.Column(db.String(500), nullable=False)
    secondary_proof_url = db.Column(db.String(500), nullable=True)

    # Primary (video) verdict; all null when analysis was unavailable
    primary_is_valid = db.Column(db.Boolean, nullable=True)
    primary_confidence = db.Column(db.Integer, nullable=True)
    primary_observed_value = db.Column(db.Float, nullable=True)
    primary_reason = db.Column(db.String(500), nullable=True)
    primary_is_suspicious = db.Column(db.Boolean, nullable=True)
    primary_analyzed_at = db.Column(db.DateTime, nullable=True)

    # Secondary (social post) verdict
    secondary_is_valid = db.Column(db.Boolean, nullable=True)
    secondary_confidence = db.Column(db.Integer, nullable=True)
    secondary_observed_value = db.Column(db.Float, nullable=True)
    secondary_reason = db.Column(db.String(500), nullable=True)
    secondary_is_suspicious = db.Column(db.Boolean, nullable=True)
    secondary_analyzed_at = db.Column(db.DateTime, nullable=True)

    status = db.Column(db.String(24), nullable=False, default=STATUS_PENDING_ANALYSIS, index=True)
    rejection_reason = db.Column(db.String(400), nullable=True)
    coins_earned = db.Column(db.Integer, nullable=True)
    effective_confidence = db.Column(db.Integer, nullable=True)

    decided_by = db.Column(db.Integer, nullable=True)  # moderator id; null for automatic decisions
    decided_at = db.Column(db.DateTime, nullable=True)
    reversed_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    challenge = db.relationship("Challenge", lazy="joined")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def verdict_dict(self, source: str):
        if getattr(self, f"{source}_analyzed_at") is None:
            return None
        observed = getattr(self, f"{source}_observed_value")
        return {
            "is_valid": bool(getattr(self, f"{source}_is_valid")),
            "confidence": int(getattr(self, f"{source}_confidence") or 0),
            "observed_value": float(observed) if observed is not None else None,
            "reason": getattr(self, f"{source}_reason") or "",
            "is_suspicious": bool(getattr(self, f"{source}_is_suspicious")),
        }

    def to_dict(self):
        return {
            "id": int(self.id),
            "user_id": int(self.user_id),
            "challenge_id": int(self.challenge_id),
            "result_value": float(self.result_value) if self.result_value is not None else None,
            "primary_proof_url": self.primary_proof_url,
            "secondary_proof_url": self.secondary_proof_url,
            "primary_verdict": self.verdict_dict("primary"),
            "secondary_verdict": self.verdict_dict("secondary"),
            "status": self.status,
            "rejection_reason": self.rejection_reason if self.status == STATUS_REJECTED else None,
            "coins_earned": int(self.coins_earned or 0) if self.status == STATUS_APPROVED else None,
            "effective_confidence": self.effective_confidence,
            "decided_by": int(self.decided_by) if self.decided_by is not None else None,
            "decided_at": self.decided_at.isoformat() if self.decided_at else None,
            "reversed_at": self.reversed_at.isoformat() if self.reversed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
