from __future__ import annotations

from peca_ai.infrastructure.repositories.base import BaseRepository


class StatusEventRepository(BaseRepository):
    def record(
        self,
        db,
        *,
        entity_id: int,
        from_status: str | None,
        to_status: str,
        reason: str | None = None,
        entity: str = "budget_request",
    ) -> None:
        db.execute(
            """
            INSERT INTO status_events (entity, entity_id, from_status, to_status, reason, tenant_id)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (entity, entity_id, from_status, to_status, reason, self.tenant_id),
        )

    def list_for(self, db, entity_id: int, *, entity: str = "budget_request") -> list[dict]:
        rows = db.execute(
            """
            SELECT id, entity, entity_id, from_status, to_status, reason, occurred_at
            FROM status_events
            WHERE entity = ? AND entity_id = ? AND tenant_id = ?
            ORDER BY occurred_at ASC, id ASC
            """,
            (entity, entity_id, self.tenant_id),
        ).fetchall()
        return self.rows_to_dicts(rows)
