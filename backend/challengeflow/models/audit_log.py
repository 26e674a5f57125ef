import json
from datetime import datetime

from challengeflow.extensions import db

INVARIANT_PREFIX = "invariant:"


class AuditLog(db.Model):
    """Moderator actions, automatic decisions and detected anomalies."""

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_target", "target_type", "target_id"),
    )

    id = db.Column(db.Integer, primary_key=True)

    actor_user_id = db.Column(db.Integer, nullable=True)  # null for system actions
    action = db.Column(db.String(64), nullable=False, index=True)
    target_type = db.Column(db.String(64), nullable=True)
    target_id = db.Column(db.Integer, nullable=True)
    meta = db.Column(db.Text, nullable=True)  # JSON string

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    @property
    def is_anomaly(self) -> bool:
        return (self.action or "").startswith(INVARIANT_PREFIX)

    def meta_dict(self):
        try:
            d = json.loads(self.meta or "{}")
        except ValueError:
            return {}
        return d if isinstance(d, dict) else {}

    def to_dict(self):
        return {
            "id": int(self.id),
            "actor_user_id": int(self.actor_user_id) if self.actor_user_id is not None else None,
            "action": self.action,
            "is_anomaly": self.is_anomaly,
            "target_type": self.target_type or "",
            "target_id": int(self.target_id) if self.target_id is not None else None,
            "meta": self.meta_dict(),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
