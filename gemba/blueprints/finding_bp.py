"""
Finding Blueprint.

Endpoints:
    GET    /api/v1/findings                   filtered/sorted/paginated listing (all users)
    GET    /api/v1/findings/<id>              detail (all users)
    POST   /api/v1/findings                   create (walk leader)
    POST   /api/v1/findings/<id>/due-date     set due date (responsible, once)
    POST   /api/v1/findings/<id>/close        close (responsible; idempotent)
    PATCH  /api/v1/findings/<id>              {"due_date"?, "status"?, "close_comment"?,
                                               "close_evidence_url"?}

The PATCH route keeps the single-endpoint contract the web client uses: a
due_date key runs set_due_date, a status key runs update_status. Each of those
commits on its own, so a body carrying both is rejected before either runs.
"""

import logging

from flask import Blueprint, g, jsonify, request

from gemba.auth import require_user
from gemba.core.exceptions import ValidationError
from gemba.services import finding_lifecycle
from gemba.utils.helpers import parse_int_arg

logger = logging.getLogger(__name__)

finding_bp = Blueprint("findings", __name__, url_prefix="/api/v1")


@finding_bp.route("/findings", methods=["GET"])
@require_user
def list_findings():
    args = request.args
    result = finding_lifecycle.list_findings(
        search=args.get("search") or None,
        status=args.get("status") or None,
        category=args.get("category") or None,
        responsible_id=args.get("responsible_id") or None,
        area=args.get("area") or None,
        sort_by=args.get("sort_by", "created_at"),
        sort_order=args.get("sort_order", "desc"),
        page=parse_int_arg(args.get("page"), 1),
        limit=parse_int_arg(args.get("limit"), 20),
    )
    return jsonify(result)


@finding_bp.route("/findings/<int:finding_id>", methods=["GET"])
@require_user
def get_finding(finding_id):
    return jsonify(finding_lifecycle.get_finding(finding_id))


@finding_bp.route("/findings", methods=["POST"])
@require_user
def create_finding():
    data = request.get_json(silent=True) or {}
    result = finding_lifecycle.create_finding(
        g.current_user.id,
        data.get("gemba_walk_id"),
        category=data.get("category"),
        description=data.get("description"),
        responsible_id=data.get("responsible_id"),
        area=data.get("area"),
        attachments=data.get("attachment_urls"),
    )
    return jsonify(result["finding"]), 201


@finding_bp.route("/findings/<int:finding_id>/due-date", methods=["POST"])
@require_user
def set_due_date(finding_id):
    data = request.get_json(silent=True) or {}
    result = finding_lifecycle.set_due_date(g.current_user.id, finding_id, data.get("due_date"))
    return jsonify(result)


@finding_bp.route("/findings/<int:finding_id>/close", methods=["POST"])
@require_user
def close_finding(finding_id):
    data = request.get_json(silent=True) or {}
    result = finding_lifecycle.close_finding(
        g.current_user.id,
        finding_id,
        data.get("close_comment"),
        data.get("close_evidence_url"),
    )
    return jsonify(result)


@finding_bp.route("/findings/<int:finding_id>", methods=["PATCH"])
@require_user
def update_finding(finding_id):
    data = request.get_json(silent=True) or {}
    actor_id = g.current_user.id
    result = None

    if "due_date" in data and "status" in data:
        raise ValidationError(
            "Send due_date and status in separate requests",
            details={"due_date": data.get("due_date"), "status": data.get("status")},
        )

    if "due_date" in data:
        result = finding_lifecycle.set_due_date(actor_id, finding_id, data.get("due_date"))
    elif "status" in data:
        result = finding_lifecycle.update_status(
            actor_id,
            finding_id,
            data.get("status"),
            comment=data.get("close_comment"),
            evidence_url=data.get("close_evidence_url"),
        )
    if result is None:
        return jsonify(finding_lifecycle.get_finding(finding_id))
    return jsonify(result)
