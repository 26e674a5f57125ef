from datetime import datetime

from challengeflow.extensions import db


class LedgerEntry(db.Model):
    __tablename__ = "ledger_entries"

    id = db.Column(db.Integer, primary_key=True)
    # One credit per approved participation; enforced here, not in application code.
    participation_id = db.Column(
        db.Integer,
        db.ForeignKey("participations.id"),
        nullable=False,
        unique=True,
        index=True,
    )
    user_id = db.Column(db.Integer, nullable=False, index=True)
    amount = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": int(self.id),
            "participation_id": int(self.participation_id),
            "user_id": int(self.user_id),
            "amount": int(self.amount or 0),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
