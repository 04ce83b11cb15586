"""
Analytics Blueprint.

Endpoints:
    GET /api/v1/analytics    dashboard aggregates for the calling user
"""

from flask import Blueprint, g, jsonify

from gemba.auth import require_user
from gemba.services import analytics

analytics_bp = Blueprint("analytics", __name__, url_prefix="/api/v1")


@analytics_bp.route("/analytics", methods=["GET"])
@require_user
def get_analytics():
    return jsonify(analytics.user_analytics(g.current_user.id))
