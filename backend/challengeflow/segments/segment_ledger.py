from __future__ import annotations

from flask import Blueprint, jsonify
from flask_login import login_required

from challengeflow.auth import current_principal, is_moderator
from challengeflow.models import LedgerEntry
from challengeflow.services import ledger

ledger_bp = Blueprint("ledger_bp", __name__, url_prefix="/api/ledger")


@ledger_bp.get("/balance/<int:user_id>")
@login_required
def balance(user_id: int):
    u = current_principal()
    if u.id != int(user_id) and not is_moderator(u):
        return jsonify({"ok": False, "code": "forbidden", "message": "Forbidden"}), 403
    return jsonify({"ok": True, "user_id": int(user_id), "balance": ledger.get_balance(user_id)}), 200


@ledger_bp.get("/me")
@login_required
def me():
    u = current_principal()
    rows = LedgerEntry.query.filter_by(user_id=u.id).order_by(LedgerEntry.created_at.desc()).limit(200).all()
    return jsonify({
        "ok": True,
        "balance": ledger.get_balance(u.id),
        "entries": [e.to_dict() for e in rows],
    }), 200
