# Overview: Request decorators for API routes.

from functools import wraps
from flask import current_app, g, jsonify, request

from .services import session_service


def request_token() -> str | None:
    """Session token from `Authorization: Bearer ...`, falling back to the login cookie."""
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header.split(" ", 1)[1].strip() or None
    return request.cookies.get(current_app.config["SESSION_COOKIE_NAME_TOKEN"])


def require_auth(f):
    """
    Require an authenticated session.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.session_context: The full SessionContext object

    Returns 401 if the token is missing, invalid, expired or revoked,
    or if the user account has been deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = request_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def current_user_id() -> int | None:
    user = getattr(g, "current_user", None)
    return user.id if user else None
