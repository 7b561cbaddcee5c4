from __future__ import annotations

from peca_ai.infrastructure.repositories.base import BaseRepository, encode_json


SETTINGS_FIELDS = (
    "workshop_name",
    "workshop_address",
    "workshop_whatsapp",
    "city",
    "logo_url",
    "favorite_suppliers",
    "notify_on_response",
)


class SettingsRepository(BaseRepository):
    json_columns = ("favorite_suppliers",)

    def get(self, db) -> dict | None:
        row = db.execute(
            """
            SELECT tenant_id, workshop_name, workshop_address, workshop_whatsapp, city,
                   logo_url, favorite_suppliers, notify_on_response, updated_at
            FROM workshop_settings
            WHERE tenant_id = ?
            LIMIT 1
            """,
            (self.tenant_id,),
        ).fetchone()
        data = self.row_to_dict(row)
        if data is not None:
            data["notify_on_response"] = bool(data.get("notify_on_response"))
        return data

    def upsert(self, db, values: dict) -> None:
        params = (
            values.get("workshop_name"),
            values.get("workshop_address"),
            values.get("workshop_whatsapp"),
            values.get("city"),
            values.get("logo_url"),
            encode_json(list(values.get("favorite_suppliers") or [])),
            1 if values.get("notify_on_response", True) else 0,
        )
        existing = db.execute(
            "SELECT id FROM workshop_settings WHERE tenant_id = ?",
            (self.tenant_id,),
        ).fetchone()
        if existing:
            db.execute(
                """
                UPDATE workshop_settings
                SET workshop_name = ?, workshop_address = ?, workshop_whatsapp = ?, city = ?,
                    logo_url = ?, favorite_suppliers = ?, notify_on_response = ?
                WHERE tenant_id = ?
                """,
                self.scoped_params(params),
            )
            return
        db.execute(
            """
            INSERT INTO workshop_settings (
                workshop_name, workshop_address, workshop_whatsapp, city,
                logo_url, favorite_suppliers, notify_on_response, tenant_id
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            self.scoped_params(params),
        )

    def set_logo_url(self, db, logo_url: str) -> None:
        cursor = db.execute(
            "UPDATE workshop_settings SET logo_url = ? WHERE tenant_id = ?",
            (logo_url, self.tenant_id),
        )
        if int(cursor.rowcount or 0) > 0:
            return
        db.execute(
            "INSERT INTO workshop_settings (logo_url, tenant_id) VALUES (?, ?)",
            (logo_url, self.tenant_id),
        )
