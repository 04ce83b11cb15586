"""
Gemba Walk Blueprint.

Endpoints:
    GET    /api/v1/gemba-walks            walks where the caller is creator/leader/participant
    POST   /api/v1/gemba-walks            schedule a walk (admin); expands recurrence
    GET    /api/v1/gemba-walks/<id>       detail with findings + stats (creator/leader/participant)
    DELETE /api/v1/gemba-walks/<id>       delete with findings (admin)

Layer contract:
    - Blueprint: parse input, call walk_service, return JSON.
    - Role guards and validation live in the service; errors are mapped by
      the app-level handlers in gemba.utils.errors.
"""

import logging

from flask import Blueprint, g, jsonify, request

from gemba.auth import require_admin, require_user
from gemba.services import walk_service

logger = logging.getLogger(__name__)

walk_bp = Blueprint("walks", __name__, url_prefix="/api/v1")


@walk_bp.route("/gemba-walks", methods=["GET"])
@require_user
def list_walks():
    return jsonify(walk_service.list_walks_for_user(g.current_user.id))


@walk_bp.route("/gemba-walks", methods=["POST"])
@require_user
@require_admin
def create_walk():
    data = request.get_json(silent=True) or {}
    result = walk_service.create_walk(g.current_user.id, data)
    return jsonify(result), 201


@walk_bp.route("/gemba-walks/<int:walk_id>", methods=["GET"])
@require_user
def get_walk(walk_id):
    return jsonify(walk_service.get_walk_detail(g.current_user.id, walk_id))


@walk_bp.route("/gemba-walks/<int:walk_id>", methods=["DELETE"])
@require_user
@require_admin
def delete_walk(walk_id):
    walk_service.delete_walk(g.current_user.id, walk_id)
    return jsonify({"deleted": True, "id": walk_id})
