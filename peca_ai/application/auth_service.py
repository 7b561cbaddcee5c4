from __future__ import annotations

import re

from werkzeug.security import check_password_hash

from peca_ai.domain.contracts import AuthLoginInput, AuthRegisterInput, AuthUser
from peca_ai.errors import ValidationError
from peca_ai.infrastructure.repositories import AuthRepository


USERNAME_RE = re.compile(r"^[a-z0-9_]{3,20}$")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PASSWORD_LENGTH = 6


def _invalid(key: str, http_status: int = 400) -> ValidationError:
    return ValidationError(code=key, message_key=key, http_status=http_status, critical=False)


def _to_user(row: dict) -> AuthUser:
    return AuthUser(
        username=row["username"],
        email=row["email"],
        display_name=row.get("display_name") or row["username"],
        tenant_id=row["tenant_id"],
    )


class AuthService:
    def __init__(self, repository: AuthRepository | None = None) -> None:
        self.repository = repository or AuthRepository()

    def login(self, db, auth_input: AuthLoginInput) -> AuthUser | None:
        login = (auth_input.login or "").strip().lower()
        password = auth_input.password or ""
        if not login or not password:
            raise _invalid("auth_missing_credentials")

        user = self.repository.find_user_by_login(db, login)
        if user and check_password_hash(user["password_hash"], password):
            return _to_user(user)
        return None

    def register(self, db, auth_input: AuthRegisterInput) -> AuthUser:
        username = (auth_input.username or "").strip().lower()
        email = (auth_input.email or "").strip().lower()
        password = auth_input.password or ""
        workshop_name = (auth_input.workshop_name or "").strip() or None

        if not USERNAME_RE.match(username):
            raise _invalid("username_invalid")
        if not EMAIL_RE.match(email):
            raise _invalid("email_invalid")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise _invalid("password_too_short")
        if self.repository.username_exists(db, username):
            raise _invalid("username_taken", http_status=409)
        if self.repository.email_exists(db, email):
            raise _invalid("email_already_registered", http_status=409)

        # One workshop per account; usernames are unique, so the tenant id is too.
        tenant_id = self.resolve_tenant_id(username)
        self.repository.ensure_tenant(db, tenant_id, workshop_name or f"Oficina {username}")
        self.repository.create_user(
            db,
            username=username,
            email=email,
            password=password,
            display_name=workshop_name,
            tenant_id=tenant_id,
        )
        db.commit()
        return AuthUser(
            username=username,
            email=email,
            display_name=workshop_name or username,
            tenant_id=tenant_id,
        )

    def change_password(self, db, *, username: str, current_password: str, new_password: str) -> None:
        user = self.repository.find_user_by_username(db, username)
        if user is None or not check_password_hash(user["password_hash"], current_password or ""):
            raise _invalid("password_invalid")
        if len(new_password or "") < MIN_PASSWORD_LENGTH:
            raise _invalid("password_too_short")
        self.repository.update_password(db, username, new_password)
        db.commit()

    @staticmethod
    def resolve_tenant_id(username: str) -> str:
        return f"tenant-{username}"
