import threading

import pytest
from flask import g
from flask.testing import FlaskClient

from challengeflow import create_app
from challengeflow.extensions import db
from challengeflow.models import Challenge
from challengeflow.models.challenge import CATEGORY_ACTS_OF_CARE, CATEGORY_PHYSICAL, GOAL_REPETITION
from challengeflow.services import participations, review_policy
from challengeflow.services.adjudication import AdjudicationClient, SocialPostAnalysis, VideoAnalysis
from challengeflow.services.participations import ADJUDICATION_EXTENSION
from challengeflow.utils.jwt_utils import create_access_token

YOUTUBE_URL = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
INSTAGRAM_URL = "https://www.instagram.com/p/Cabc123xyz/"


class FakeAnalyzer:
    """Scripted analyzer. Each slot is a result, an exception to raise, or a callable."""

    def __init__(self):
        self.video = VideoAnalysis(is_valid=True, confidence=92, reason="Counted clearly", observed_value=55)
        self.social = SocialPostAnalysis(is_valid=True, confidence=90, reason="Post shows the act")
        self.video_calls = 0
        self.social_calls = 0
        self._lock = threading.Lock()

    def _resolve(self, slot, request):
        if isinstance(slot, list):
            slot = slot.pop(0) if len(slot) > 1 else slot[0]
        if isinstance(slot, BaseException):
            raise slot
        if callable(slot):
            return slot(request)
        return slot

    def analyze_video(self, request):
        with self._lock:
            self.video_calls += 1
        return self._resolve(self.video, request)

    def analyze_social_post(self, request):
        with self._lock:
            self.social_calls += 1
        return self._resolve(self.social, request)


@pytest.fixture
def analyzer():
    return FakeAnalyzer()


@pytest.fixture
def app(tmp_path, analyzer):
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test-secret-key-0123456789",
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'challengeflow-test.db'}",
        "AUTO_APPROVE_CATEGORIES": [],
        "CONFIDENCE_THRESHOLD_LOW": 50,
        "CONFIDENCE_THRESHOLD_HIGH": 80,
        "STALE_ANALYSIS_SECONDS": 600,
    })
    app.extensions[ADJUDICATION_EXTENSION].shutdown()
    client = AdjudicationClient(analyzer, timeout=5.0, max_attempts=3, backoff_seconds=0.01, sleep=lambda s: None)
    app.extensions[ADJUDICATION_EXTENSION] = client

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()
    client.shutdown()


class _Client(FlaskClient):
    # Requests reuse the test's app context, so drop the identity Flask-Login cached on g.
    def open(self, *args, **kwargs):
        g.pop("_login_user", None)
        return super().open(*args, **kwargs)


@pytest.fixture
def client(app):
    app.test_client_class = _Client
    return app.test_client()


@pytest.fixture
def make_challenge(app):
    def _make(**kw):
        values = {
            "title": "50 push-ups",
            "category": CATEGORY_PHYSICAL,
            "goal": 50,
            "goal_kind": GOAL_REPETITION,
            "reward_amount": 100,
            "is_active": True,
        }
        values.update(kw)
        c = Challenge(**values)
        db.session.add(c)
        db.session.commit()
        return c

    return _make


@pytest.fixture
def care_challenge(make_challenge):
    return make_challenge(title="Help a neighbour", category=CATEGORY_ACTS_OF_CARE, goal=None, goal_kind=None,
                          reward_amount=40)


@pytest.fixture
def auto_approve(app):
    def _enable(category=CATEGORY_PHYSICAL, enabled=True):
        review_policy.set_auto_approve(category, enabled, actor_user_id=1)

    return _enable


@pytest.fixture
def submit(app):
    def _submit(user_id, challenge, result_value=55, primary=YOUTUBE_URL, secondary=None):
        return participations.submit(
            user_id=user_id,
            challenge_id=challenge.id,
            result_value=result_value,
            primary_proof_url=primary,
            secondary_proof_url=secondary,
            confirmed_public=True,
        )

    return _submit


def auth_headers(user_id, role="participant"):
    return {"Authorization": f"Bearer {create_access_token(user_id, role=role)}"}
