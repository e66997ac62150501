# Overview: Flask API routes for sign-in; parses input and returns JSON responses.

# backend/tradie/routes/auth.py
"""
Authentication API routes

SIGN-IN FLOWS:
- Passwordless: POST /request-code, then POST /verify-code
- Password (accounts that set one): POST /login

Both end with a session token for the Authorization header.

SECURITY FEATURES:
- request-code answers the same way whether or not an account exists
- Codes are never returned or logged by the API
- Email lockout after repeated failed sign-ins
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import bearer_token, require_auth
from ..services import auth_service
from ..services import delivery_service
from ..services import login_throttle_service
from ..services import session_service
from ..services.auth_service import CodeExpired, CodeThrottled, InvalidOrAlreadyUsedCode
from ..validation import ValidationError


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _session_response(account, message: str):
    session, token = session_service.create_session(
        account_id=account.id,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    return jsonify({
        "account": account.to_dict(),
        "token": token,
        "session": session.to_dict(),
        "message": message,
    }), 200


def _locked_response(seconds_remaining):
    minutes_remaining = (seconds_remaining // 60) + 1 if seconds_remaining else 15
    return jsonify({
        "error": "Too many failed sign-in attempts",
        "locked": True,
        "retry_after_seconds": seconds_remaining,
        "retry_after_minutes": minutes_remaining,
    }), 429


@auth_bp.post("/request-code")
def request_code_route():
    """
    Issue a one-time sign-in code and hand it to the delivery channel.

    Request body: {"email": "owner@example.com"}
    Any earlier code for the email stops working.
    """
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")

        code = auth_service.request_code(email)
        delivery_service.deliver_login_code(auth_service.normalize_email(email), code)

        return jsonify({"message": "If the address is valid, a sign-in code is on its way"}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to issue login code")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/verify-code")
def verify_code_route():
    """
    Consume a code and start a session, creating the account on first sign-in.

    Request body: {"email": "...", "code": "482913"}

    Error responses:
        400: malformed email
        401: wrong, reused or expired code ("expired": true for the latter)
        429: too many failed attempts for this email
    """
    try:
        data = request.get_json(silent=True) or {}

        account = auth_service.verify_and_resolve_account(
            data.get("email"),
            str(data.get("code") or ""),
            ip_address=request.remote_addr,
            user_agent=request.headers.get("User-Agent"),
        )
        return _session_response(account, "Sign-in successful")

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except CodeThrottled as e:
        return _locked_response(e.seconds_remaining)
    except CodeExpired:
        return jsonify({"error": "Code has expired. Request a new one.", "expired": True}), 401
    except InvalidOrAlreadyUsedCode:
        return jsonify({"error": "Invalid or already used code"}), 401
    except Exception:
        current_app.logger.exception("Failed to verify login code")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/login")
def login_route():
    """
    Password sign-in for accounts that set a password.

    SECURITY:
    - Checks for email lockout before attempting authentication
    - Records failed attempts for throttling
    """
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")

        if not all([email, password]):
            return jsonify({"error": "email and password required"}), 400

        try:
            normalized = auth_service.normalize_email(email)
        except ValidationError:
            return jsonify({"error": "Invalid credentials"}), 401

        user_agent = request.headers.get("User-Agent")
        ip_address = request.remote_addr

        is_locked, seconds_remaining = login_throttle_service.is_email_locked(normalized)
        if is_locked:
            return _locked_response(seconds_remaining)

        account = auth_service.authenticate(normalized, password)
        if not account:
            failed_count = login_throttle_service.record_failed_attempt(
                normalized, ip_address=ip_address, user_agent=user_agent
            )
            remaining = login_throttle_service.max_failed_attempts() - failed_count
            if remaining <= 0:
                return _locked_response(None)
            return jsonify({"error": "Invalid credentials"}), 401

        login_throttle_service.record_successful_login(
            account.id, normalized, ip_address=ip_address, user_agent=user_agent
        )
        return _session_response(account, "Login successful")

    except Exception:
        current_app.logger.exception("Failed to login account")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
def logout_route():
    """
    Revoke session token (logout).

    Expects Authorization header: Bearer <token>
    """
    try:
        token = bearer_token()
        if not token:
            return jsonify({"error": "Authorization header required"}), 401

        if not session_service.revoke_session(token, reason="User logout"):
            return jsonify({"error": "Invalid or expired token"}), 401

        return jsonify({"message": "Logout successful"}), 200

    except Exception:
        current_app.logger.exception("Failed to logout account")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout-all")
@require_auth
def logout_all_route():
    """Sign the owner out on every device, including this one."""
    try:
        revoked = session_service.revoke_all_account_sessions(g.owner_id, reason="Signed out everywhere")
        return jsonify({"message": "All sessions revoked", "revoked": revoked}), 200
    except Exception:
        current_app.logger.exception("Failed to revoke sessions")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/validate")
def validate_route():
    """Validate session token and return the account."""
    try:
        token = bearer_token()
        if not token:
            return jsonify({"error": "Authorization header required"}), 401

        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        return jsonify({
            "account": context.account.to_dict(),
            "owner_id": context.owner_id,
            "message": "Token valid"
        }), 200

    except Exception:
        current_app.logger.exception("Failed to validate session")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/lockout-status/<email>")
def lockout_status_route(email: str):
    """Lets the sign-in screen show when the email can retry."""
    try:
        normalized = auth_service.normalize_email(email)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(login_throttle_service.get_lockout_status(normalized))
