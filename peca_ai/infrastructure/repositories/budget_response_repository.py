from __future__ import annotations

from peca_ai.infrastructure.repositories.base import BaseRepository, encode_json, inserted_id


class BudgetResponseRepository(BaseRepository):
    json_columns = ("parts_and_prices",)

    def create(
        self,
        db,
        *,
        budget_request_id: int,
        supplier_id: int,
        shop_name: str,
        shop_whatsapp: str | None,
        parts_and_prices: list[dict],
        total_price: float,
        notes: str | None,
    ) -> dict:
        cursor = db.execute(
            """
            INSERT INTO budget_responses (
                budget_request_id, supplier_id, shop_name, shop_whatsapp,
                parts_and_prices, total_price, notes, tenant_id
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (
                budget_request_id,
                supplier_id,
                shop_name,
                shop_whatsapp,
                encode_json(parts_and_prices),
                total_price,
                notes,
                self.tenant_id,
            ),
        )
        return self.get_by_id(db, inserted_id(cursor))

    def get_by_id(self, db, response_id: int) -> dict | None:
        row = db.execute(
            """
            SELECT id, budget_request_id, supplier_id, shop_name, shop_whatsapp,
                   parts_and_prices, total_price, notes, created_at
            FROM budget_responses
            WHERE id = ? AND tenant_id = ?
            LIMIT 1
            """,
            (response_id, self.tenant_id),
        ).fetchone()
        return self.row_to_dict(row)

    def count_for_request(self, db, budget_request_id: int) -> int:
        row = db.execute(
            "SELECT COUNT(*) AS total FROM budget_responses WHERE budget_request_id = ? AND tenant_id = ?",
            (budget_request_id, self.tenant_id),
        ).fetchone()
        return int(row["total"] if row else 0)

    def count(self, db) -> int:
        row = db.execute(
            "SELECT COUNT(*) AS total FROM budget_responses WHERE tenant_id = ?",
            (self.tenant_id,),
        ).fetchone()
        return int(row["total"] if row else 0)

    def list_for_request(self, db, budget_request_id: int) -> list[dict]:
        rows = db.execute(
            """
            SELECT id, budget_request_id, supplier_id, shop_name, shop_whatsapp,
                   parts_and_prices, total_price, notes, created_at
            FROM budget_responses
            WHERE budget_request_id = ? AND tenant_id = ?
            ORDER BY created_at ASC, id ASC
            """,
            (budget_request_id, self.tenant_id),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def list_with_vehicle(self, db, *, limit: int = 200) -> list[dict]:
        rows = db.execute(
            """
            SELECT resp.id, resp.budget_request_id, resp.supplier_id, resp.shop_name,
                   resp.shop_whatsapp, resp.parts_and_prices, resp.total_price, resp.notes,
                   resp.created_at, br.short_id, br.car_model, br.car_year
            FROM budget_responses resp
            JOIN budget_requests br ON br.id = resp.budget_request_id
            WHERE resp.tenant_id = ?
            ORDER BY resp.created_at DESC, resp.id DESC
            LIMIT ?
            """,
            (self.tenant_id, int(limit)),
        ).fetchall()
        return self.rows_to_dicts(rows)
