from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from flask_login import login_required

from challengeflow.auth import current_principal
from challengeflow.extensions import db
from challengeflow.models import Notification
from challengeflow.utils.notify import mark_failed, mark_sent

dispatcher_bp = Blueprint("dispatcher_bp", __name__, url_prefix="/api/admin")


@dispatcher_bp.post("/notifications/process")
@login_required
def process_queue():
    """Mark queued in-app notifications as delivered."""
    u = current_principal()
    if u.role != "admin":
        return jsonify({"ok": False, "code": "forbidden", "message": "Forbidden"}), 403

    limit = request.args.get("limit", default=50, type=int) or 50
    limit = max(1, min(limit, 200))

    rows = (
        Notification.query
        .filter_by(status="queued", channel="in_app")
        .order_by(Notification.created_at.asc())
        .limit(limit)
        .all()
    )
    sent = 0
    failed = 0
    for n in rows:
        if n.user_id:
            mark_sent(n, provider_ref="local:in_app")
            sent += 1
        else:
            mark_failed(n, provider_ref="local:no_recipient")
            failed += 1

    db.session.commit()
    current_app.logger.info("notification dispatcher: %s sent, %s failed", sent, failed)
    return jsonify({
        "ok": True,
        "in_app_processed": len(rows),
        "in_app_sent": sent,
        "in_app_failed": failed,
    }), 200

