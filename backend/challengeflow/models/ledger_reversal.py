from datetime import datetime

from challengeflow.extensions import db


class LedgerReversal(db.Model):
    __tablename__ = "ledger_reversals"

    id = db.Column(db.Integer, primary_key=True)
    entry_id = db.Column(db.Integer, db.ForeignKey("ledger_entries.id"), nullable=False, index=True)
    participation_id = db.Column(db.Integer, nullable=False, unique=True, index=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)
    amount = db.Column(db.Integer, nullable=False, default=0)

    reason = db.Column(db.String(400), nullable=False, default="")
    created_by = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": int(self.id),
            "entry_id": int(self.entry_id),
            "participation_id": int(self.participation_id),
            "user_id": int(self.user_id),
            "amount": int(self.amount or 0),
            "reason": self.reason or "",
            "created_by": int(self.created_by) if self.created_by is not None else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
