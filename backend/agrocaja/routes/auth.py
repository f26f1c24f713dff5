# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

- Login returns a bearer token; the database keeps only its hash
- Accounts are created by operators through the CLI (no self-registration)
- The active farm selected here scopes every ledger endpoint
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..errors import AgroCajaError, error_response, internal_error_response
from ..services import auth_service, session_service


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Request body:
    {
        "username": "ana",          (or "email")
        "password": "Password123!"
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        identifier = data.get("username") or data.get("email")
        password = data.get("password")

        if not isinstance(identifier, str) or not isinstance(password, str) or not identifier or not password:
            return jsonify({"success": False, "error": "username/email and password required"}), 400

        user = auth_service.authenticate(identifier.strip(), password)
        if not user:
            current_app.logger.info("Failed login for %r", identifier)
            return jsonify({"success": False, "error": "Invalid credentials"}), 401

        if not user.is_active:
            return jsonify({"success": False, "error": "Account is deactivated"}), 403

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )

        return jsonify({
            "success": True,
            "message": "Login successful",
            "token": token,
            "user": user.to_dict(),
            "session": session.to_dict(),
        }), 200

    except Exception as exc:
        current_app.logger.exception("Failed to login user")
        return internal_error_response("Failed to login", exc)


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(g.token)
    return jsonify({"success": True, "message": "Logged out"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({
        "success": True,
        "user": g.current_user.to_dict(),
        "session": g.session_context.session.to_dict(),
    }), 200


@auth_bp.get("/farms")
@require_auth
def farms_route():
    """Farm labels that already hold books for the caller, plus the active one."""
    farms = auth_service.list_farms(g.owner_id)
    return jsonify({
        "success": True,
        "farms": farms,
        "active_farm": g.farm,
    }), 200


@auth_bp.put("/active-farm")
@require_auth
def set_active_farm_route():
    """
    Select the farm that scopes every ledger request.

    Request body: {"farm": "La Esperanza"}
    """
    try:
        data = request.get_json(silent=True) or {}
        user = auth_service.set_active_farm(g.current_user, data.get("farm"))
        return jsonify({
            "success": True,
            "message": f"Active farm set to {user.active_farm}",
            "user": user.to_dict(),
        }), 200

    except AgroCajaError as exc:
        return error_response(exc)
    except Exception as exc:
        current_app.logger.exception("Failed to set active farm")
        return internal_error_response("Failed to set active farm", exc)
