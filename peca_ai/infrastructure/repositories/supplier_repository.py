from __future__ import annotations

from peca_ai.infrastructure.repositories.base import BaseRepository, inserted_id


class SupplierRepository(BaseRepository):
    def get_by_id(self, db, supplier_id: int) -> dict | None:
        row = db.execute(
            """
            SELECT id, name, whatsapp, tenant_id, created_at, updated_at
            FROM suppliers
            WHERE id = ? AND tenant_id = ?
            LIMIT 1
            """,
            (supplier_id, self.tenant_id),
        ).fetchone()
        return self.row_to_dict(row)

    def list_all(self, db) -> list[dict]:
        rows = db.execute(
            """
            SELECT id, name, whatsapp, tenant_id, created_at, updated_at
            FROM suppliers
            WHERE tenant_id = ?
            ORDER BY name ASC, id ASC
            """,
            (self.tenant_id,),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def list_by_ids(self, db, supplier_ids: list[int]) -> list[dict]:
        if not supplier_ids:
            return []
        placeholders = ", ".join("?" for _ in supplier_ids)
        rows = db.execute(
            f"""
            SELECT id, name, whatsapp, tenant_id
            FROM suppliers
            WHERE id IN ({placeholders}) AND tenant_id = ?
            ORDER BY id ASC
            """,
            self.scoped_params(supplier_ids),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def count(self, db) -> int:
        row = db.execute(
            "SELECT COUNT(*) AS total FROM suppliers WHERE tenant_id = ?",
            (self.tenant_id,),
        ).fetchone()
        return int(row["total"] if row else 0)

    def create(self, db, *, name: str, whatsapp: str) -> int:
        cursor = db.execute(
            """
            INSERT INTO suppliers (name, whatsapp, tenant_id)
            VALUES (?, ?, ?)
            RETURNING id
            """,
            (name, whatsapp, self.tenant_id),
        )
        return inserted_id(cursor)

    def update(self, db, supplier_id: int, *, name: str, whatsapp: str) -> bool:
        cursor = db.execute(
            """
            UPDATE suppliers
            SET name = ?, whatsapp = ?
            WHERE id = ? AND tenant_id = ?
            """,
            (name, whatsapp, supplier_id, self.tenant_id),
        )
        return int(cursor.rowcount or 0) > 0

    def delete(self, db, supplier_id: int) -> bool:
        cursor = db.execute(
            "DELETE FROM suppliers WHERE id = ? AND tenant_id = ?",
            (supplier_id, self.tenant_id),
        )
        return int(cursor.rowcount or 0) > 0


def find_supplier_unscoped(db, supplier_id: int) -> dict | None:
    """Lookup used by the public intake endpoint, where the caller holds no session."""
    row = db.execute(
        """
        SELECT id, name, whatsapp, tenant_id
        FROM suppliers
        WHERE id = ?
        LIMIT 1
        """,
        (supplier_id,),
    ).fetchone()
    return dict(row) if row else None
