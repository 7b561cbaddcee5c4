from __future__ import annotations

import json
from typing import Any, Iterable


class TenantScopeRequiredError(ValueError):
    """Raised when a repository is instantiated without a workshop (tenant) scope."""


def decode_json_list(raw: Any) -> list:
    if raw is None or raw == "":
        return []
    if isinstance(raw, list):
        return raw
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        return []
    return value if isinstance(value, list) else []


def encode_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def inserted_id(cursor) -> int:
    row = cursor.fetchone()
    return int(row["id"] if isinstance(row, dict) else row[0])


class BaseRepository:
    json_columns: tuple[str, ...] = ()

    def __init__(self, *, tenant_id: str | None = None) -> None:
        scope = str(tenant_id or "").strip()
        if not scope:
            raise TenantScopeRequiredError("tenant_id is required for repository access")
        self.tenant_id = scope

    def scoped_params(self, params: Iterable[Any] | None = None) -> tuple[Any, ...]:
        values = tuple(params or ())
        return (*values, self.tenant_id)

    @classmethod
    def row_to_dict(cls, row: Any) -> dict | None:
        if row is None:
            return None
        data = dict(row)
        for column in cls.json_columns:
            if column in data:
                data[column] = decode_json_list(data[column])
        return data

    @classmethod
    def rows_to_dicts(cls, rows: Iterable[Any]) -> list[dict]:
        return [cls.row_to_dict(row) for row in rows]
