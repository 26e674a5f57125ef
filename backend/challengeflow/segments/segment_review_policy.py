from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import login_required

from challengeflow.auth import current_principal
from challengeflow.services import review_policy

review_policy_bp = Blueprint("review_policy_bp", __name__, url_prefix="/api/admin/review-policy")


def _is_admin(u) -> bool:
    return bool(u is not None and u.role == "admin")


@review_policy_bp.get("")
@login_required
def get_policies():
    if not _is_admin(current_principal()):
        return jsonify({"ok": False, "code": "forbidden", "message": "Forbidden"}), 403
    return jsonify({"ok": True, "policies": review_policy.list_policies()}), 200


@review_policy_bp.post("/<category>")
@login_required
def toggle(category: str):
    u = current_principal()
    if not _is_admin(u):
        return jsonify({"ok": False, "code": "forbidden", "message": "Forbidden"}), 403
    data = request.get_json(silent=True) or {}
    enabled = data.get("auto_approve")
    if enabled is None:
        enabled = not review_policy.settings_for(category).auto_approve
    row = review_policy.set_auto_approve(category, bool(enabled), actor_user_id=u.id)
    return jsonify({"ok": True, "policy": row.to_dict()}), 200
