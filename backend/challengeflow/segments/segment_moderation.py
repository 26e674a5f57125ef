from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from flask_login import login_required

from challengeflow.auth import current_principal, is_moderator
from challengeflow.services import ledger, moderation, participations
from challengeflow.utils.idempotency import lookup_response, release, store_response

moderation_bp = Blueprint("moderation_bp", __name__, url_prefix="/api/admin")


def _forbidden():
    return jsonify({"ok": False, "code": "forbidden", "message": "Forbidden"}), 403


def _idempotent(route: str, data: dict, action):
    """Run ``action`` once per Idempotency-Key; replays return the stored response."""
    u = current_principal()
    idem = lookup_response(u.id, route, data)
    if idem and idem[0] in ("hit", "conflict"):
        return jsonify(idem[1]), idem[2]
    try:
        payload = action()
    except Exception:
        if idem and idem[0] == "miss":
            release(idem[1])
        raise
    if idem and idem[0] == "miss":
        store_response(idem[1], payload, 200)
    return jsonify(payload), 200


@moderation_bp.get("/participations/pending")
@login_required
def pending():
    u = current_principal()
    if not is_moderator(u):
        return _forbidden()
    challenge_id = request.args.get("challenge_id", type=int)
    limit = request.args.get("limit", default=200, type=int)
    limit = max(1, min(limit or 200, 500))
    rows = moderation.list_pending(challenge_id=challenge_id, limit=limit)
    return jsonify({"ok": True, "items": [p.to_dict() for p in rows]}), 200


@moderation_bp.get("/challenges/<int:challenge_id>/counts")
@login_required
def challenge_counts(challenge_id: int):
    u = current_principal()
    if not is_moderator(u):
        return _forbidden()
    return jsonify({"ok": True, "challenge_id": challenge_id, "counts": moderation.counts(challenge_id)}), 200


@moderation_bp.post("/participations/<int:participation_id>/approve")
@login_required
def approve(participation_id: int):
    u = current_principal()
    if not is_moderator(u):
        return _forbidden()
    data = request.get_json(silent=True) or {}

    def _do():
        p = participations.approve(participation_id, override_amount=data.get("coins"), moderator_id=u.id)
        current_app.logger.info("moderator %s approved participation %s", u.id, participation_id)
        return {"ok": True, "message": "Approved", "participation": p.to_dict()}

    return _idempotent(f"/api/admin/participations/{participation_id}/approve", data, _do)


@moderation_bp.post("/participations/<int:participation_id>/reject")
@login_required
def reject(participation_id: int):
    u = current_principal()
    if not is_moderator(u):
        return _forbidden()
    data = request.get_json(silent=True) or {}

    def _do():
        p = participations.reject(participation_id, data.get("reason") or "", moderator_id=u.id)
        current_app.logger.info("moderator %s rejected participation %s", u.id, participation_id)
        return {"ok": True, "message": "Rejected", "participation": p.to_dict()}

    return _idempotent(f"/api/admin/participations/{participation_id}/reject", data, _do)


@moderation_bp.post("/challenges/<int:challenge_id>/approve-all")
@login_required
def approve_all(challenge_id: int):
    u = current_principal()
    if not is_moderator(u):
        return _forbidden()
    data = request.get_json(silent=True) or {}

    def _do():
        n = participations.approve_all_pending(challenge_id, moderator_id=u.id)
        return {"ok": True, "approved_count": n}

    return _idempotent(f"/api/admin/challenges/{challenge_id}/approve-all", data, _do)


@moderation_bp.post("/participations/<int:participation_id>/reverse")
@login_required
def reverse(participation_id: int):
    u = current_principal()
    if not is_moderator(u):
        return _forbidden()
    data = request.get_json(silent=True) or {}

    def _do():
        row = ledger.reverse(participation_id, data.get("reason") or "", moderator_id=u.id)
        current_app.logger.info("moderator %s reversed reward for participation %s", u.id, participation_id)
        return {"ok": True, "message": "Reward reversed", "reversal": row.to_dict()}

    return _idempotent(f"/api/admin/participations/{participation_id}/reverse", data, _do)
