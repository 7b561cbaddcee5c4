from __future__ import annotations

from peca_ai.infrastructure.repositories.base import BaseRepository, encode_json, inserted_id


class OrderRepository(BaseRepository):
    json_columns = ("items",)

    def create(
        self,
        db,
        *,
        budget_request_id: int,
        budget_response_id: int,
        supplier_name: str,
        supplier_whatsapp: str | None,
        items: list[dict],
        total_amount: float,
        notes: str | None,
    ) -> int:
        cursor = db.execute(
            """
            INSERT INTO orders (
                budget_request_id, budget_response_id, supplier_name, supplier_whatsapp,
                items, total_amount, notes, status, tenant_id
            ) VALUES (?, ?, ?, ?, ?, ?, ?, 'placed', ?)
            RETURNING id
            """,
            (
                budget_request_id,
                budget_response_id,
                supplier_name,
                supplier_whatsapp,
                encode_json(items),
                total_amount,
                notes,
                self.tenant_id,
            ),
        )
        return inserted_id(cursor)

    def get_by_id(self, db, order_id: int) -> dict | None:
        row = db.execute(
            """
            SELECT id, budget_request_id, budget_response_id, supplier_name, supplier_whatsapp,
                   items, total_amount, notes, status, created_at
            FROM orders
            WHERE id = ? AND tenant_id = ?
            LIMIT 1
            """,
            (order_id, self.tenant_id),
        ).fetchone()
        return self.row_to_dict(row)

    def list_recent(self, db, *, budget_request_id: int | None = None, limit: int = 100) -> list[dict]:
        params: list = [self.tenant_id]
        request_clause = ""
        if budget_request_id is not None:
            request_clause = "AND o.budget_request_id = ?"
            params.append(budget_request_id)
        params.append(int(limit))
        rows = db.execute(
            f"""
            SELECT o.id, o.budget_request_id, o.budget_response_id, o.supplier_name,
                   o.supplier_whatsapp, o.items, o.total_amount, o.notes, o.status, o.created_at,
                   br.short_id, br.car_model, br.car_year
            FROM orders o
            JOIN budget_requests br ON br.id = o.budget_request_id
            WHERE o.tenant_id = ? {request_clause}
            ORDER BY o.created_at DESC, o.id DESC
            LIMIT ?
            """,
            params,
        ).fetchall()
        return self.rows_to_dicts(rows)

    def count(self, db) -> int:
        row = db.execute(
            "SELECT COUNT(*) AS total FROM orders WHERE tenant_id = ?",
            (self.tenant_id,),
        ).fetchone()
        return int(row["total"] if row else 0)
