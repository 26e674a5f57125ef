from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import login_required

from challengeflow.auth import current_principal
from challengeflow.jobs import analysis_sweeper, ledger_reconciler
from challengeflow.models import AuditLog
from challengeflow.models.audit_log import INVARIANT_PREFIX

maintenance_bp = Blueprint("maintenance_bp", __name__, url_prefix="/api/admin")


def _admin_required():
    u = current_principal()
    if u is None or u.role != "admin":
        return jsonify({"ok": False, "code": "forbidden", "message": "Admin required"}), 403
    return None


@maintenance_bp.post("/reconcile")
@login_required
def run_recon():
    denied = _admin_required()
    if denied:
        return denied
    data = request.get_json(silent=True) or {}
    try:
        limit = int(data.get("limit") or 500)
    except (TypeError, ValueError):
        limit = 500
    res = ledger_reconciler.reconcile_ledger(limit=limit)
    return jsonify({"ok": True, **res}), 200


@maintenance_bp.post("/sweep-stale-analysis")
@login_required
def run_sweep():
    denied = _admin_required()
    if denied:
        return denied
    data = request.get_json(silent=True) or {}
    try:
        max_age = int(data["max_age_seconds"]) if data.get("max_age_seconds") is not None else None
    except (TypeError, ValueError):
        return jsonify({"ok": False, "code": "invalid", "message": "max_age_seconds must be a number"}), 400
    res = analysis_sweeper.run(max_age)
    return jsonify({"ok": True, **res}), 200


@maintenance_bp.get("/audit")
@login_required
def audit_log():
    denied = _admin_required()
    if denied:
        return denied
    q = AuditLog.query
    if request.args.get("anomalies") in ("1", "true", "yes"):
        q = q.filter(AuditLog.action.like(f"{INVARIANT_PREFIX}%"))
    target_type = (request.args.get("target_type") or "").strip()
    if target_type:
        q = q.filter_by(target_type=target_type)
    target_id = request.args.get("target_id", type=int)
    if target_id is not None:
        q = q.filter_by(target_id=target_id)
    limit = max(1, min(request.args.get("limit", default=100, type=int) or 100, 500))
    rows = q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).all()
    return jsonify({"ok": True, "items": [r.to_dict() for r in rows]}), 200
