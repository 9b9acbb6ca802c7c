# Overview: Request decorators for API routes (actor identity and role checks).

from functools import wraps

from flask import g, jsonify, request

from .extensions import db
from .models import User

# Set by the authenticating gateway after the session token is verified
ACTOR_HEADER = "X-Actor-Id"


def require_actor(f):
    """
    Establish the acting user for the request.

    Sets g.current_user. Returns 401 if the header is missing or malformed,
    or if the user does not exist or is deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get(ACTOR_HEADER, "").strip()
        if not raw.isdigit():
            return jsonify({"error": "Authentication required"}), 401

        user = db.session.get(User, int(raw))
        if user is None or not user.is_active:
            return jsonify({"error": "Invalid or inactive user"}), 401

        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Restrict a route to the given roles. Must be applied after @require_actor.

    Usage:
        @require_actor
        @require_role("admin", "officer")
        def route(): ...
    """
    allowed = set(roles)

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                return jsonify({"error": "Authentication required"}), 401
            if user.role not in allowed:
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": sorted(allowed),
                }), 403
            return f(*args, **kwargs)

        return decorated_function

    return decorator
