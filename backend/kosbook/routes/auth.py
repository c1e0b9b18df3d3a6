# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

Bearer session tokens only. Accounts are created from the CLI
(flask users create); there is no self-registration endpoint.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..decorators import require_auth, get_bearer_token


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Request body: {"email": "...", "password": "..."}

    Token must be included in Authorization header for protected routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")

        if not all([email, password]):
            return jsonify({"success": False, "error": "email and password required"}), 400

        user = auth_service.authenticate(email, password)
        if not user:
            current_app.logger.warning("Failed login for %s from %s", email, request.remote_addr)
            return jsonify({"success": False, "error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )

        return jsonify({
            "success": True,
            "data": {
                "user": user.to_dict(),
                "token": token,
                "session": session.to_dict(),
            },
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"success": False, "error": "Internal server error"}), 500


@auth_bp.post("/logout")
def logout_route():
    """
    Revoke session token (logout).

    Expects Authorization header: Bearer <token>. Every session cookie name
    the client may still hold is expired on the response.
    """
    try:
        token = get_bearer_token()
        if not token:
            return jsonify({"success": False, "error": "Authorization header required"}), 401

        if not session_service.revoke_session(token, reason="User logout"):
            return jsonify({"success": False, "error": "Invalid or expired token"}), 401

        response = jsonify({"success": True, "data": {"message": "Logout successful"}})
        for name in session_service.all_session_cookie_names():
            response.delete_cookie(name, secure=name.startswith("__Secure-"))
        return response, 200

    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"success": False, "error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({
        "success": True,
        "data": {
            "user": g.current_user.to_dict(),
            "session": g.session_context.session.to_dict(),
        },
    }), 200
