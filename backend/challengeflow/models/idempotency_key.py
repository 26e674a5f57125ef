from datetime import datetime

from challengeflow.extensions import db


class IdempotencyKey(db.Model):
    """Client-supplied retry key for submission and moderator POSTs."""

    __tablename__ = "idempotency_keys"

    id = db.Column(db.Integer, primary_key=True)

    key = db.Column(db.String(128), nullable=False, unique=True)
    user_id = db.Column(db.Integer, nullable=True, index=True)
    route = db.Column(db.String(160), nullable=False, default="")
    request_hash = db.Column(db.String(64), nullable=False, default="")

    # Filled once the first request finishes; replays are served from here
    response_json = db.Column(db.Text, nullable=True)
    status_code = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    completed_at = db.Column(db.DateTime, nullable=True)

    @property
    def is_complete(self) -> bool:
        return self.completed_at is not None

    def to_dict(self):
        return {
            "key": self.key,
            "user_id": int(self.user_id) if self.user_id is not None else None,
            "route": self.route,
            "status_code": int(self.status_code) if self.status_code is not None else None,
            "completed": self.is_complete,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
