from __future__ import annotations

import logging
from typing import Any, Mapping

from peca_ai.application.parsing import optional_text, parse_positive_int, parse_price
from peca_ai.db import DATABASE_ERRORS
from peca_ai.domain.contracts import OrderCreateInput, OrderItemInput, ServiceOutput
from peca_ai.errors import NotFoundError, PersistenceError, ValidationError, field_invalid_error
from peca_ai.infrastructure.repositories import BudgetRequestRepository, BudgetResponseRepository, OrderRepository


logger = logging.getLogger(__name__)


def _quantity(value: Any) -> int:
    if isinstance(value, bool):
        raise ValidationError(code="quantity_invalid", message_key="quantity_invalid", http_status=400)
    try:
        quantity = int(str(value if value is not None else 1).strip())
    except ValueError:
        raise ValidationError(code="quantity_invalid", message_key="quantity_invalid", http_status=400) from None
    if quantity < 1:
        raise ValidationError(code="quantity_invalid", message_key="quantity_invalid", http_status=400)
    return quantity


def parse_order_input(payload: Mapping[str, Any] | None) -> OrderCreateInput:
    data = payload if isinstance(payload, Mapping) else {}
    response_id = data.get("budget_response_id")
    if response_id is None:
        raise ValidationError(
            code="field_required",
            message_key="field_required",
            http_status=400,
            payload={"field": "budget_response_id"},
            message_params={"field": "budget_response_id"},
        )

    raw_items = data.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError(code="order_items_required", message_key="order_items_required", http_status=400)

    items = []
    for raw in raw_items:
        if not isinstance(raw, Mapping):
            raise field_invalid_error("items")
        part = optional_text(raw.get("part"))
        if not part:
            raise field_invalid_error("items")
        items.append(OrderItemInput(part=part, quantity=_quantity(raw.get("quantity"))))

    return OrderCreateInput(
        budget_response_id=parse_positive_int(response_id, "budget_response_id"),
        items=items,
        notes=optional_text(data.get("notes")),
    )


def _quoted_prices(parts_and_prices: list) -> dict[str, float]:
    prices: dict[str, float] = {}
    for entry in parts_and_prices or []:
        if not isinstance(entry, Mapping):
            continue
        part = optional_text(entry.get("part"))
        if not part:
            continue
        try:
            prices[part.lower()] = parse_price(entry.get("price"), "price")
        except ValidationError:
            continue
    return prices


class OrderService:
    def create_order(self, db, *, tenant_id: str, budget_request_id: int, order_input: OrderCreateInput) -> ServiceOutput:
        budget_request = BudgetRequestRepository(tenant_id=tenant_id).get_by_id(db, budget_request_id)
        if budget_request is None:
            raise NotFoundError(code="budget_request_not_found", message_key="budget_request_id_not_found")

        response = BudgetResponseRepository(tenant_id=tenant_id).get_by_id(db, order_input.budget_response_id)
        if response is None or int(response["budget_request_id"]) != int(budget_request_id):
            raise NotFoundError(code="budget_response_not_found", message_key="budget_response_not_found")

        prices = _quoted_prices(response["parts_and_prices"])
        items = []
        total = 0.0
        for item in order_input.items:
            unit_price = prices.get(item.part.lower())
            if unit_price is None:
                raise ValidationError(
                    code="order_part_not_quoted",
                    message_key="order_part_not_quoted",
                    http_status=400,
                    payload={"part": item.part},
                    message_params={"part": item.part},
                )
            subtotal = round(unit_price * item.quantity, 2)
            total += subtotal
            items.append(
                {
                    "part": item.part,
                    "quantity": item.quantity,
                    "unit_price": unit_price,
                    "subtotal": subtotal,
                }
            )

        order_repo = OrderRepository(tenant_id=tenant_id)
        try:
            with db.transaction():
                order_id = order_repo.create(
                    db,
                    budget_request_id=budget_request_id,
                    budget_response_id=response["id"],
                    supplier_name=response["shop_name"],
                    supplier_whatsapp=response.get("shop_whatsapp"),
                    items=items,
                    total_amount=round(total, 2),
                    notes=order_input.notes,
                )
        except DATABASE_ERRORS as exc:
            raise PersistenceError(details=str(exc), message_params={"details": str(exc)}) from exc

        logger.info(
            "order_created",
            extra={
                "event": "order_created",
                "tenant_id": tenant_id,
                "order_id": order_id,
                "budget_request_id": budget_request_id,
                "budget_response_id": response["id"],
            },
        )
        return ServiceOutput(payload={"order": order_repo.get_by_id(db, order_id)}, status_code=201)

    def list_orders(self, db, *, tenant_id: str, budget_request_id: int | None = None) -> ServiceOutput:
        rows = OrderRepository(tenant_id=tenant_id).list_recent(db, budget_request_id=budget_request_id)
        return ServiceOutput(payload={"items": rows})
