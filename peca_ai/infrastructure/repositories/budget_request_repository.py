from __future__ import annotations

from peca_ai.infrastructure.repositories.base import BaseRepository, encode_json, inserted_id


_PUBLIC_COLUMNS = """
    id, short_id, car_model, car_year, car_engine, parts, notes,
    selected_shops_ids, status, tenant_id, created_at, updated_at
"""


class BudgetRequestRepository(BaseRepository):
    json_columns = ("parts", "selected_shops_ids")

    def next_short_id(self, db) -> int:
        # Short ids are global: supplier links carry only the number.
        if db.backend == "postgres":
            db.execute("LOCK TABLE budget_requests IN SHARE ROW EXCLUSIVE MODE")
        row = db.execute("SELECT COALESCE(MAX(short_id), 0) AS last_id FROM budget_requests").fetchone()
        return int(row["last_id"] if row else 0) + 1

    def create(
        self,
        db,
        *,
        short_id: int,
        car_model: str,
        car_year: str,
        car_engine: str | None,
        parts: list[dict],
        notes: str | None,
        selected_shops_ids: list[int],
    ) -> int:
        cursor = db.execute(
            """
            INSERT INTO budget_requests (
                short_id, car_model, car_year, car_engine, parts, notes,
                selected_shops_ids, status, tenant_id
            ) VALUES (?, ?, ?, ?, ?, ?, ?, 'pending', ?)
            RETURNING id
            """,
            (
                short_id,
                car_model,
                car_year,
                car_engine,
                encode_json(parts),
                notes,
                encode_json(selected_shops_ids),
                self.tenant_id,
            ),
        )
        return inserted_id(cursor)

    def get_by_id(self, db, request_id: int) -> dict | None:
        row = db.execute(
            f"""
            SELECT {_PUBLIC_COLUMNS}
            FROM budget_requests
            WHERE id = ? AND tenant_id = ?
            LIMIT 1
            """,
            (request_id, self.tenant_id),
        ).fetchone()
        return self.row_to_dict(row)

    def list_summary(self, db, *, status: str | None = None, limit: int = 100) -> list[dict]:
        params: list = [self.tenant_id]
        status_clause = ""
        if status:
            status_clause = "AND br.status = ?"
            params.append(status)
        params.append(int(limit))
        rows = db.execute(
            f"""
            SELECT
                br.id, br.short_id, br.car_model, br.car_year, br.car_engine, br.parts,
                br.notes, br.selected_shops_ids, br.status, br.created_at, br.updated_at,
                (
                    SELECT COUNT(*)
                    FROM budget_responses resp
                    WHERE resp.budget_request_id = br.id
                ) AS responses_count
            FROM budget_requests br
            WHERE br.tenant_id = ? {status_clause}
            ORDER BY br.created_at DESC, br.id DESC
            LIMIT ?
            """,
            params,
        ).fetchall()
        return self.rows_to_dicts(rows)

    def count_by_status(self, db) -> dict[str, int]:
        rows = db.execute(
            """
            SELECT status, COUNT(*) AS total
            FROM budget_requests
            WHERE tenant_id = ?
            GROUP BY status
            """,
            (self.tenant_id,),
        ).fetchall()
        return {str(row["status"]): int(row["total"]) for row in rows}

    def lock_status(self, db, request_id: int) -> str | None:
        """Current status, read under a row lock so concurrent responses serialize on the request."""
        sql = "SELECT status FROM budget_requests WHERE id = ? AND tenant_id = ?"
        if db.backend == "postgres":
            sql += " FOR UPDATE"
        row = db.execute(sql, (request_id, self.tenant_id)).fetchone()
        return str(row["status"]) if row else None

    def update_status(self, db, request_id: int, status: str) -> None:
        db.execute(
            """
            UPDATE budget_requests
            SET status = ?, updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND tenant_id = ?
            """,
            (status, request_id, self.tenant_id),
        )

    def delete(self, db, request_id: int) -> bool:
        # Explicit child deletes keep postgres and sqlite (without FK enforcement) consistent.
        db.execute(
            "DELETE FROM orders WHERE budget_request_id = ? AND tenant_id = ?",
            (request_id, self.tenant_id),
        )
        db.execute(
            "DELETE FROM budget_responses WHERE budget_request_id = ? AND tenant_id = ?",
            (request_id, self.tenant_id),
        )
        db.execute(
            "DELETE FROM status_events WHERE entity = 'budget_request' AND entity_id = ? AND tenant_id = ?",
            (request_id, self.tenant_id),
        )
        cursor = db.execute(
            "DELETE FROM budget_requests WHERE id = ? AND tenant_id = ?",
            (request_id, self.tenant_id),
        )
        return int(cursor.rowcount or 0) > 0


def find_budget_request_by_short_id(db, short_id: int) -> dict | None:
    """Unscoped lookup: short ids are unique across workshops and reach us from public links."""
    row = db.execute(
        f"""
        SELECT {_PUBLIC_COLUMNS}
        FROM budget_requests
        WHERE short_id = ?
        LIMIT 1
        """,
        (short_id,),
    ).fetchone()
    return BudgetRequestRepository.row_to_dict(row)
