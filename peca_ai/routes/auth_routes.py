from __future__ import annotations

from flask import Blueprint, jsonify, request, session

from peca_ai.application.auth_service import AuthService
from peca_ai.db import get_db
from peca_ai.domain.contracts import AuthLoginInput, AuthRegisterInput, AuthUser
from peca_ai.errors import PermissionError as AppPermissionError
from peca_ai.errors import ValidationError
from peca_ai.ui_strings import success_message


auth_bp = Blueprint("auth", __name__)
_auth_service = AuthService()

_PUBLIC_PATHS = {"/health", "/metrics", "/api/auth/login", "/api/auth/register", "/api/auth/logout", "/api/ui-strings"}
_PUBLIC_PREFIXES = ("/api/public/", "/media/")


def _is_public(path: str, method: str) -> bool:
    if path in _PUBLIC_PATHS or path.startswith(_PUBLIC_PREFIXES):
        return True
    # Suppliers submit quotes without an account.
    return path == "/api/budget-responses" and method in {"POST", "OPTIONS"}


def register_auth(app) -> None:
    app.register_blueprint(auth_bp)

    @app.before_request
    def _require_login():
        if not app.config.get("AUTH_ENABLED", True):
            return None
        if app.config.get("TESTING"):
            return None

        path = request.path or "/"
        if _is_public(path, request.method):
            return None
        if session.get("username"):
            return None

        raise AppPermissionError(
            code="auth_required",
            message_key="auth_required",
            http_status=401,
            critical=False,
        )


def _start_session(user: AuthUser) -> None:
    session.clear()
    session["username"] = user.username
    session["user_email"] = user.email
    session["display_name"] = user.display_name
    session["tenant_id"] = user.tenant_id


def _user_payload(user: AuthUser) -> dict:
    return {
        "username": user.username,
        "email": user.email,
        "display_name": user.display_name,
        "tenant_id": user.tenant_id,
    }


@auth_bp.route("/api/auth/register", methods=["POST"])
def register():
    payload = request.get_json(silent=True) or {}
    user = _auth_service.register(
        get_db(),
        AuthRegisterInput(
            username=str(payload.get("username") or ""),
            email=str(payload.get("email") or ""),
            password=str(payload.get("password") or ""),
            workshop_name=payload.get("workshop_name"),
        ),
    )
    _start_session(user)
    return jsonify({"user": _user_payload(user)}), 201


@auth_bp.route("/api/auth/login", methods=["POST"])
def login():
    payload = request.get_json(silent=True) or {}
    user = _auth_service.login(
        get_db(),
        AuthLoginInput(
            login=str(payload.get("login") or payload.get("username") or payload.get("email") or ""),
            password=str(payload.get("password") or ""),
        ),
    )
    if user is None:
        raise ValidationError(
            code="auth_invalid_credentials",
            message_key="auth_invalid_credentials",
            http_status=401,
            critical=False,
        )
    _start_session(user)
    return jsonify({"user": _user_payload(user)}), 200


@auth_bp.route("/api/auth/logout", methods=["POST"])
def logout():
    session.clear()
    return jsonify({"logged_out": True}), 200


@auth_bp.route("/api/auth/me", methods=["GET"])
def me():
    username = session.get("username")
    if not username:
        raise AppPermissionError(code="auth_required", message_key="auth_required", http_status=401)
    return jsonify(
        {
            "user": {
                "username": username,
                "email": session.get("user_email"),
                "display_name": session.get("display_name"),
                "tenant_id": session.get("tenant_id"),
            }
        }
    )


@auth_bp.route("/api/auth/password", methods=["POST"])
def change_password():
    username = session.get("username")
    if not username:
        raise AppPermissionError(code="auth_required", message_key="auth_required", http_status=401)
    payload = request.get_json(silent=True) or {}
    _auth_service.change_password(
        get_db(),
        username=username,
        current_password=str(payload.get("current_password") or ""),
        new_password=str(payload.get("new_password") or ""),
    )
    return jsonify({"message": success_message("password_changed")}), 200
