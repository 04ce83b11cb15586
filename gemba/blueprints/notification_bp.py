"""
Gemba Walk Tracker
Notification Blueprint.

Every route works on the caller's own notifications only.

Endpoints:
    GET   /api/v1/notifications                         list (newest first, ?unread_only=1)
    GET   /api/v1/notifications/unread-count            {"count": n}
    GET   /api/v1/notifications/pending-count           {"count": n}  action required and not completed
    PATCH /api/v1/notifications/<id>/read
    PATCH /api/v1/notifications/<id>/action-completed
    PATCH /api/v1/notifications/read-all
"""

from __future__ import annotations

import logging

from flask import Blueprint, g, jsonify, request

from gemba.auth import require_user
from gemba.services.notification import NotificationService
from gemba.utils.helpers import parse_int_arg

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notifications", __name__, url_prefix="/api/v1")


@notification_bp.route("/notifications", methods=["GET"])
@require_user
def list_notifications():
    unread_only = request.args.get("unread_only", "").lower() in ("1", "true", "yes")
    limit = parse_int_arg(request.args.get("limit"), 50)
    offset = parse_int_arg(request.args.get("offset"), 0, minimum=0)
    items, total = NotificationService.list_for_user(
        g.current_user.id, unread_only=unread_only, limit=limit, offset=offset,
    )
    return jsonify({
        "items": [n.to_dict() for n in items],
        "total": total,
        "limit": limit,
        "offset": offset,
    })


@notification_bp.route("/notifications/unread-count", methods=["GET"])
@require_user
def unread_count():
    return jsonify({"count": NotificationService.unread_count(g.current_user.id)})


@notification_bp.route("/notifications/pending-count", methods=["GET"])
@require_user
def pending_count():
    return jsonify({"count": NotificationService.pending_action_count(g.current_user.id)})


@notification_bp.route("/notifications/<int:nid>/read", methods=["PATCH"])
@require_user
def mark_read(nid):
    notif = NotificationService.mark_read(nid, g.current_user.id)
    return jsonify(notif.to_dict())


@notification_bp.route("/notifications/<int:nid>/action-completed", methods=["PATCH"])
@require_user
def mark_action_completed(nid):
    notif = NotificationService.complete_action(nid, g.current_user.id)
    return jsonify(notif.to_dict())


@notification_bp.route("/notifications/read-all", methods=["PATCH"])
@require_user
def mark_all_read():
    count = NotificationService.mark_all_read(g.current_user.id)
    return jsonify({"success": True, "updated": count})
