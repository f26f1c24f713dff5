# Overview: Request decorators for API routes.

from functools import wraps

from flask import g, jsonify, request

from .errors import NoActiveFarmError, error_response
from .services import session_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require authentication and establish the ledger scope.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.owner_id: Owner of every record the request touches
    - g.farm: The user's active farm (may be None)
    - g.session_context: The full SessionContext object
    - g.token: The plaintext bearer token (for logout)

    Returns 401 if the header is missing or the token is invalid, expired,
    revoked or belongs to a deactivated account.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return jsonify({"success": False, "error": "Authentication required"}), 401

        context = session_service.validate_session(token)
        if not context:
            return jsonify({"success": False, "error": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.owner_id = context.owner_id
        g.farm = context.farm
        g.session_context = context
        g.token = token

        return f(*args, **kwargs)

    return decorated_function


def require_farm(f):
    """Reject the request with 400 no_active_farm unless a farm is selected. Apply after @require_auth."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not getattr(g, "farm", None):
            return error_response(NoActiveFarmError())
        return f(*args, **kwargs)

    return decorated_function
