from __future__ import annotations

import logging
from typing import Any, Mapping

from peca_ai.application.parsing import (
    is_blank,
    optional_text,
    parse_positive_int,
    parse_price,
    require_present,
    whatsapp_url,
)
from peca_ai.db import DATABASE_ERRORS
from peca_ai.domain.budget_status import compute_request_status
from peca_ai.domain.contracts import BudgetResponseInput, ServiceOutput
from peca_ai.errors import NotFoundError, PersistenceError, field_invalid_error
from peca_ai.infrastructure.repositories import (
    BudgetRequestRepository,
    BudgetResponseRepository,
    SettingsRepository,
    StatusEventRepository,
    find_budget_request_by_short_id,
    find_supplier_unscoped,
)
from peca_ai.integrations.webhook_client import WebhookNotifier
from peca_ai.observability import observe_budget_response_recorded


logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("short_id", "shop_id", "parts_and_prices", "total_price")
STATUS_CHANGE_REASON = "budget_response_received"


def _parse_line_item(item: Any) -> dict:
    if not isinstance(item, Mapping) or is_blank(item.get("part")):
        raise field_invalid_error("parts_and_prices")
    if parse_price(item.get("price"), "parts_and_prices") < 0:
        raise field_invalid_error("parts_and_prices")
    # Kept as sent so the workshop sees the supplier's own wording.
    return dict(item)


def parse_budget_response_input(payload: Mapping[str, Any] | None) -> BudgetResponseInput:
    """Validates a supplier submission before anything touches the database."""
    data = payload if isinstance(payload, Mapping) else {}
    require_present(data, REQUIRED_FIELDS)

    parts_and_prices = data.get("parts_and_prices")
    if not isinstance(parts_and_prices, list):
        raise field_invalid_error("parts_and_prices")
    line_items = [_parse_line_item(item) for item in parts_and_prices]

    short_id = parse_positive_int(data.get("short_id"), "short_id")
    shop_id = parse_positive_int(data.get("shop_id"), "shop_id")
    total_price = parse_price(data.get("total_price"), "total_price")
    if total_price < 0:
        raise field_invalid_error("total_price")

    return BudgetResponseInput(
        short_id=short_id,
        shop_id=shop_id,
        parts_and_prices=line_items,
        total_price=total_price,
        notes=optional_text(data.get("notes")),
    )


def _supplier_not_found(shop_id: int) -> NotFoundError:
    return NotFoundError(
        code="supplier_not_found",
        message_key="supplier_not_found",
        http_status=500,
        message_params={"shop_id": shop_id},
    )


def _budget_request_not_found(short_id: int) -> NotFoundError:
    return NotFoundError(
        code="budget_request_not_found",
        message_key="budget_request_not_found",
        http_status=500,
        message_params={"short_id": short_id},
    )


class BudgetResponseService:
    def __init__(self, notifier: WebhookNotifier | None = None) -> None:
        self.notifier = notifier

    def record_response(self, db, response_input: BudgetResponseInput) -> ServiceOutput:
        supplier = find_supplier_unscoped(db, response_input.shop_id)
        if supplier is None:
            raise _supplier_not_found(response_input.shop_id)

        budget_request = find_budget_request_by_short_id(db, response_input.short_id)
        if budget_request is None:
            raise _budget_request_not_found(response_input.short_id)

        tenant_id = budget_request["tenant_id"]
        if supplier["tenant_id"] != tenant_id:
            # Suppliers belong to one workshop; another workshop's id is unknown here.
            raise _supplier_not_found(response_input.shop_id)

        request_repo = BudgetRequestRepository(tenant_id=tenant_id)
        response_repo = BudgetResponseRepository(tenant_id=tenant_id)
        event_repo = StatusEventRepository(tenant_id=tenant_id)

        selected_count = len(budget_request["selected_shops_ids"])
        try:
            with db.transaction():
                # Read under the row lock: a response committed since the lookup above has moved it.
                previous_status = request_repo.lock_status(db, budget_request["id"])
                if previous_status is None:
                    raise _budget_request_not_found(response_input.short_id)
                response = response_repo.create(
                    db,
                    budget_request_id=budget_request["id"],
                    supplier_id=supplier["id"],
                    shop_name=supplier["name"],
                    shop_whatsapp=supplier["whatsapp"],
                    parts_and_prices=response_input.parts_and_prices,
                    total_price=response_input.total_price,
                    notes=response_input.notes,
                )
                responses_count = response_repo.count_for_request(db, budget_request["id"])
                new_status = compute_request_status(responses_count, selected_count)
                request_repo.update_status(db, budget_request["id"], new_status)
                if new_status != previous_status:
                    event_repo.record(
                        db,
                        entity_id=budget_request["id"],
                        from_status=previous_status,
                        to_status=new_status,
                        reason=STATUS_CHANGE_REASON,
                    )
        except DATABASE_ERRORS as exc:
            raise PersistenceError(details=str(exc), message_params={"details": str(exc)}) from exc

        observe_budget_response_recorded(new_status)
        logger.info(
            "budget_response_recorded",
            extra={
                "event": "budget_response_recorded",
                "tenant_id": tenant_id,
                "short_id": budget_request["short_id"],
                "budget_request_id": budget_request["id"],
                "budget_response_id": response["id"],
                "supplier_id": supplier["id"],
                "responses_count": responses_count,
                "selected_count": selected_count,
            },
        )
        if new_status != previous_status:
            logger.info(
                "budget_request_status_changed",
                extra={
                    "event": "budget_request_status_changed",
                    "tenant_id": tenant_id,
                    "budget_request_id": budget_request["id"],
                    "from_status": previous_status,
                    "to_status": new_status,
                },
            )

        self._forward(db, budget_request, response, new_status)

        data = dict(response)
        data["short_id"] = budget_request["short_id"]
        data["request_status"] = new_status
        return ServiceOutput(payload={"success": True, "data": data}, status_code=200)

    def _forward(self, db, budget_request: dict, response: dict, status: str) -> None:
        if self.notifier is None:
            return
        try:
            settings = SettingsRepository(tenant_id=budget_request["tenant_id"]).get(db) or {}
        except DATABASE_ERRORS:
            logger.warning("workshop_settings_unavailable", exc_info=True)
            settings = {}
        payload = {
            "budget_request_id": budget_request["id"],
            "budget_response_id": response["id"],
            "short_id": budget_request["short_id"],
            "car_model": budget_request["car_model"],
            "car_year": budget_request["car_year"],
            "car_engine": budget_request.get("car_engine"),
            "requested_parts": budget_request["parts"],
            "shop_name": response["shop_name"],
            "shop_whatsapp": response["shop_whatsapp"],
            "parts_and_prices": response["parts_and_prices"],
            "total_price": response["total_price"],
            "notes": response.get("notes"),
            "status": status,
            "workshop": {
                "name": settings.get("workshop_name"),
                "whatsapp": settings.get("workshop_whatsapp"),
                "notify_on_response": bool(settings.get("notify_on_response", True)),
            },
        }
        self.notifier.notify("budget_response_received", payload)


def group_responses_by_vehicle(rows: list[dict]) -> list[dict]:
    """Groups rows (already newest first) under ``"<model> - <year>"``, keeping first-seen order."""
    groups: dict[str, list[dict]] = {}
    for row in rows:
        key = f"{row.get('car_model') or ''} - {row.get('car_year') or ''}"
        groups.setdefault(key, []).append(row)
    return [{"vehicle": key, "responses": items} for key, items in groups.items()]


def list_budget_responses(db, *, tenant_id: str) -> ServiceOutput:
    rows = BudgetResponseRepository(tenant_id=tenant_id).list_with_vehicle(db)
    for row in rows:
        row["whatsapp_url"] = whatsapp_url(row.get("shop_whatsapp"))
    return ServiceOutput(payload={"groups": group_responses_by_vehicle(rows), "total": len(rows)})
