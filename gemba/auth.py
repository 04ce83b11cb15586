"""
Gemba Walk Tracker
Request identity.

Session handling and password login live in front of this service. Each API
request names its acting user in the ``X-User-Id`` header; the decorators here
resolve it against the users table and expose it as ``g.current_user``.
Services never read ``g``; blueprints pass ``g.current_user.id`` explicitly.

Optional API key gate (same contract as the platform gateway):
    API_KEYS          comma-separated list of valid keys
    API_AUTH_ENABLED  "false" disables the key check (development/testing)
"""

import functools
import logging
import os
from typing import Optional

from flask import current_app, g, request

from gemba.models import db
from gemba.models.auth import User
from gemba.utils.errors import E, api_error

logger = logging.getLogger(__name__)

USER_HEADER = "X-User-Id"


def _parse_api_keys() -> set[str]:
    raw = os.getenv("API_KEYS", "")
    return {k.strip() for k in raw.split(",") if k.strip()}


def _is_auth_enabled() -> bool:
    """Check whether the API key gate is enabled (env var or app config)."""
    env_val = os.getenv("API_AUTH_ENABLED", "")
    if env_val:
        return env_val.lower() not in ("false", "0", "no", "off")
    try:
        return str(current_app.config.get("API_AUTH_ENABLED", "true")).lower() not in (
            "false", "0", "no", "off",
        )
    except RuntimeError:
        # Outside app context
        return True


def _get_api_key_from_request() -> Optional[str]:
    return request.headers.get("X-API-Key", "").strip() or None


def _resolve_user() -> Optional[User]:
    user_id = request.headers.get(USER_HEADER, "").strip()
    if not user_id:
        return None
    return db.session.get(User, user_id)


def require_user(f):
    """
    Decorator: require a known acting user (and a valid API key when enabled).

    Sets g.current_user.
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if _is_auth_enabled():
            api_key = _get_api_key_from_request()
            if not api_key:
                return api_error(E.UNAUTHENTICATED, "Authentication required. Provide X-API-Key header.")
            keys = _parse_api_keys()
            if not keys:
                logger.error("API_KEYS env var is not configured but API_AUTH_ENABLED=true")
                return api_error(E.INTERNAL, "Server authentication not configured")
            if api_key not in keys:
                logger.warning("Invalid API key attempt: %s...", api_key[:8])
                return api_error(E.UNAUTHENTICATED, "Invalid API key")

        user = _resolve_user()
        if user is None:
            return api_error(E.UNAUTHENTICATED, f"Authentication required. Provide a valid {USER_HEADER} header.")
        g.current_user = user
        return f(*args, **kwargs)

    return decorated


def require_admin(f):
    """
    Decorator: acting user must have the global 'admin' role.

    Usage:
        @require_user
        @require_admin
        def delete_walk(walk_id): ...
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        user = getattr(g, "current_user", None)
        if user is None:
            return api_error(E.UNAUTHENTICATED, "Authentication required")
        if not user.is_admin:
            logger.warning("Access denied: user '%s' tried admin endpoint %s", user.id, request.path)
            return api_error(E.FORBIDDEN, "Administrator role required")
        return f(*args, **kwargs)

    return decorated
