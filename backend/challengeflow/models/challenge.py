from datetime import datetime

from challengeflow.extensions import db

CATEGORY_PHYSICAL = "physical"
CATEGORY_ACTS_OF_CARE = "acts-of-care"
CATEGORY_ENGAGEMENT = "engagement"
CATEGORY_PARTICIPATORY = "participatory"

CATEGORIES = (CATEGORY_PHYSICAL, CATEGORY_ACTS_OF_CARE, CATEGORY_ENGAGEMENT, CATEGORY_PARTICIPATORY)

# Categories that accept proof submissions through this pipeline
SUBMITTABLE_CATEGORIES = (CATEGORY_PHYSICAL, CATEGORY_ACTS_OF_CARE)

GOAL_REPETITION = "repetition"
GOAL_DURATION = "duration"


class Challenge(db.Model):
    """Challenge definition. Owned by the challenge admin collaborator; read-only here."""

    __tablename__ = "challenges"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False, default="")
    category = db.Column(db.String(32), nullable=False, default=CATEGORY_PHYSICAL)

    goal = db.Column(db.Float, nullable=True)
    goal_kind = db.Column(db.String(16), nullable=True)  # repetition|duration

    reward_amount = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    @property
    def requires_dual_proof(self) -> bool:
        return (self.category or "") == CATEGORY_ACTS_OF_CARE

    @property
    def has_numeric_goal(self) -> bool:
        return self.category == CATEGORY_PHYSICAL and self.goal is not None

    def to_dict(self):
        return {
            "id": int(self.id),
            "title": self.title or "",
            "category": self.category,
            "goal": float(self.goal) if self.goal is not None else None,
            "goal_kind": self.goal_kind,
            "reward_amount": int(self.reward_amount or 0),
            "requires_dual_proof": self.requires_dual_proof,
            "is_active": bool(self.is_active),
        }
