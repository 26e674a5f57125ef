"""Request identity.

Identity is issued elsewhere; this service only verifies the bearer token
and reads the user id and role from it.
"""

from __future__ import annotations

from flask import jsonify
from flask_login import UserMixin, current_user

from challengeflow.extensions import login_manager
from challengeflow.utils.jwt_utils import decode_token, get_bearer_token

MODERATOR_ROLES = ("admin", "moderator", "creator")


class Principal(UserMixin):
    def __init__(self, user_id: int, role: str = "participant"):
        self.id = int(user_id)
        self.role = (role or "participant").strip().lower()

    @property
    def is_moderator(self) -> bool:
        return self.role in MODERATOR_ROLES


@login_manager.request_loader
def load_user_from_request(req):
    token = get_bearer_token(req.headers.get("Authorization", ""))
    if not token:
        return None
    payload = decode_token(token)
    if not payload or payload.get("type") != "access":
        return None
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        return None
    return Principal(user_id, payload.get("role") or "participant")


@login_manager.unauthorized_handler
def _unauthorized():
    return jsonify({"ok": False, "code": "unauthorized", "message": "Unauthorized"}), 401


def current_principal() -> Principal | None:
    if not current_user or not current_user.is_authenticated:
        return None
    return current_user._get_current_object()


def is_moderator(p: Principal | None) -> bool:
    return bool(p is not None and p.is_moderator)
