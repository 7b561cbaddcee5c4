from __future__ import annotations

from werkzeug.security import generate_password_hash


class AuthRepository:
    """Account storage. Lookups here run before any tenant is known, so the repository is unscoped."""

    _COLUMNS = "id, username, email, password_hash, display_name, tenant_id"

    def find_user_by_login(self, db, login: str) -> dict | None:
        row = db.execute(
            f"""
            SELECT {self._COLUMNS}
            FROM auth_users
            WHERE username = ? OR email = ?
            LIMIT 1
            """,
            (login, login),
        ).fetchone()
        return dict(row) if row else None

    def find_user_by_username(self, db, username: str) -> dict | None:
        row = db.execute(
            f"SELECT {self._COLUMNS} FROM auth_users WHERE username = ? LIMIT 1",
            (username,),
        ).fetchone()
        return dict(row) if row else None

    def email_exists(self, db, email: str) -> bool:
        row = db.execute("SELECT 1 FROM auth_users WHERE email = ?", (email,)).fetchone()
        return bool(row)

    def username_exists(self, db, username: str) -> bool:
        row = db.execute("SELECT 1 FROM auth_users WHERE username = ?", (username,)).fetchone()
        return bool(row)

    def ensure_tenant(self, db, tenant_id: str, name: str) -> None:
        db.execute(
            """
            INSERT INTO tenants (id, name)
            VALUES (?, ?)
            ON CONFLICT DO NOTHING
            """,
            (tenant_id, name),
        )

    def create_user(
        self,
        db,
        *,
        username: str,
        email: str,
        password: str,
        display_name: str | None,
        tenant_id: str,
    ) -> None:
        db.execute(
            """
            INSERT INTO auth_users (username, email, password_hash, display_name, tenant_id)
            VALUES (?, ?, ?, ?, ?)
            """,
            (username, email, generate_password_hash(password), display_name, tenant_id),
        )

    def update_password(self, db, username: str, new_password: str) -> None:
        db.execute(
            "UPDATE auth_users SET password_hash = ? WHERE username = ?",
            (generate_password_hash(new_password), username),
        )
