import json
from datetime import datetime

from challengeflow.extensions import db


class Notification(db.Model):
    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=False, index=True)

    kind = db.Column(db.String(32), nullable=False)  # approved | rejected
    channel = db.Column(db.String(32), nullable=False, default="in_app")
    title = db.Column(db.String(160), nullable=True)
    message = db.Column(db.Text, nullable=False, default="")

    status = db.Column(db.String(24), nullable=False, default="queued")  # queued | sent | failed
    provider_ref = db.Column(db.String(120), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    sent_at = db.Column(db.DateTime, nullable=True)

    meta = db.Column(db.Text, nullable=True)  # JSON string

    def meta_dict(self):
        raw = (self.meta or "").strip()
        if not raw:
            return {}
        try:
            d = json.loads(raw)
        except ValueError:
            return {}
        return d if isinstance(d, dict) else {}

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "kind": self.kind,
            "channel": self.channel or "in_app",
            "title": self.title or "",
            "message": self.message or "",
            "status": self.status or "queued",
            "provider_ref": self.provider_ref or "",
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
            "meta": self.meta_dict(),
        }
