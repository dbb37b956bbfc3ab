# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/sareeshop/routes/auth.py
"""
Authentication API routes

Login returns the session token in the body and also sets it as an
HttpOnly cookie, so both API clients and the browser front end work.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..services import auth_service
from ..services import session_service
from ..decorators import request_token, require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _set_session_cookie(response, token: str):
    cfg = current_app.config
    response.set_cookie(
        cfg["SESSION_COOKIE_NAME_TOKEN"],
        token,
        max_age=int(session_service.SESSION_ABSOLUTE_TIMEOUT.total_seconds()),
        secure=cfg["SESSION_COOKIE_SECURE"],
        httponly=cfg["SESSION_COOKIE_HTTPONLY"],
        samesite=cfg["SESSION_COOKIE_SAMESITE"],
    )
    return response


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Body: {"username": str, "password": str}
    """
    data = request.get_json(silent=True) or {}
    username = data.get("username")
    password = data.get("password")

    if not username or not password:
        return jsonify({"error": "username and password required"}), 400

    try:
        user = auth_service.authenticate(username, password)
        if not user:
            current_app.logger.warning("Failed login for %r from %s", username, request.remote_addr)
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500

    response = jsonify({
        "user": user.to_dict(),
        "token": token,
        "session": session.to_dict(),
        "message": "Login successful",
    })
    return _set_session_cookie(response, token), 200


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke the current session and clear the cookie."""
    try:
        session_service.revoke_session(request_token())
    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500

    response = jsonify({"message": "Logged out"})
    response.delete_cookie(current_app.config["SESSION_COOKIE_NAME_TOKEN"])
    return response, 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({
        "user": g.current_user.to_dict(),
        "session": g.session_context.session.to_dict(),
    }), 200
