from datetime import datetime

from challengeflow.extensions import db


class ReviewPolicy(db.Model):
    """Per-category switch for fully automated approval."""

    __tablename__ = "review_policies"

    id = db.Column(db.Integer, primary_key=True)
    category = db.Column(db.String(32), nullable=False, unique=True)
    auto_approve = db.Column(db.Boolean, nullable=False, default=False)

    updated_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "category": self.category,
            "auto_approve": bool(self.auto_approve),
            "updated_by": int(self.updated_by) if self.updated_by is not None else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
