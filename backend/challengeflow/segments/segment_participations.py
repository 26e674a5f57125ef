from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from flask_login import login_required

from challengeflow.auth import current_principal, is_moderator
from challengeflow.extensions import db
from challengeflow.models import Participation
from challengeflow.models.participation import STATUS_APPROVED, STATUS_REJECTED
from challengeflow.services import participations
from challengeflow.utils.idempotency import lookup_response, release, store_response

participations_bp = Blueprint("participations_bp", __name__, url_prefix="/api")


@participations_bp.before_app_request
def _ensure_tables_once():
    if not current_app.config.get("AUTO_CREATE_TABLES", True):
        return
    if current_app.extensions.get("challengeflow.tables_ready"):
        return
    try:
        db.create_all()
    except Exception:
        current_app.logger.exception("create_all failed")
        return
    current_app.extensions["challengeflow.tables_ready"] = True


def _as_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    return False


def _status_message(p: Participation) -> str:
    if p.status == STATUS_APPROVED:
        return f"Approved! You earned {int(p.coins_earned or 0)} coins."
    if p.status == STATUS_REJECTED:
        return p.rejection_reason or "Your submission was not approved."
    return "Your submission is being reviewed."


@participations_bp.post("/challenges/<int:challenge_id>/participations")
@login_required
def submit(challenge_id: int):
    u = current_principal()
    data = request.get_json(silent=True) or {}

    idem = lookup_response(u.id, f"/api/challenges/{challenge_id}/participations", data)
    if idem and idem[0] in ("hit", "conflict"):
        return jsonify(idem[1]), idem[2]

    try:
        result = participations.submit(
            user_id=u.id,
            challenge_id=challenge_id,
            result_value=data.get("result_value"),
            primary_proof_url=data.get("primary_proof_url") or "",
            secondary_proof_url=data.get("secondary_proof_url"),
            confirmed_public=_as_bool(data.get("confirmed_public")),
        )
    except Exception:
        if idem and idem[0] == "miss":
            release(idem[1])
        raise

    payload = {"ok": True, "message": _status_message(result.participation)}
    payload.update(result.to_dict())
    if idem and idem[0] == "miss":
        store_response(idem[1], payload, 201)
    return jsonify(payload), 201


@participations_bp.get("/participations/<int:participation_id>")
@login_required
def get_participation(participation_id: int):
    u = current_principal()
    p = participations.get_participation(participation_id)
    if int(p.user_id) != u.id and not is_moderator(u):
        return jsonify({"ok": False, "code": "forbidden", "message": "Forbidden"}), 403
    return jsonify({"ok": True, "participation": p.to_dict(), "message": _status_message(p)}), 200


@participations_bp.get("/participations/me")
@login_required
def my_participations():
    u = current_principal()
    q = Participation.query.filter_by(user_id=u.id)
    challenge_id = request.args.get("challenge_id", type=int)
    if challenge_id is not None:
        q = q.filter_by(challenge_id=challenge_id)
    rows = q.order_by(Participation.created_at.desc(), Participation.id.desc()).limit(200).all()
    return jsonify({"ok": True, "items": [p.to_dict() for p in rows]}), 200
