from __future__ import annotations

from typing import Iterable


STATUS_PENDING = "pending"
STATUS_ANSWERED = "answered"
STATUS_COMPLETED = "completed"

BUDGET_REQUEST_STATUSES = (STATUS_PENDING, STATUS_ANSWERED, STATUS_COMPLETED)


def compute_request_status(response_count: int, selected_shops_count: int) -> str:
    """Status of a budget request given how many supplier responses exist.

    Duplicate responses from the same supplier count individually.
    """
    count = max(0, int(response_count or 0))
    selected = max(0, int(selected_shops_count or 0))
    if count == 0:
        return STATUS_PENDING
    if count >= selected:
        return STATUS_COMPLETED
    return STATUS_ANSWERED


def normalize_shop_ids(values: Iterable | None) -> list[int]:
    result: list[int] = []
    for value in values or []:
        try:
            shop_id = int(value)
        except (TypeError, ValueError):
            continue
        if shop_id > 0 and shop_id not in result:
            result.append(shop_id)
    return result
