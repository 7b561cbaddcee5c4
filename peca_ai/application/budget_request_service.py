from __future__ import annotations

import logging
from typing import Any, Mapping

from peca_ai.application.parsing import optional_text, require_text, whatsapp_url
from peca_ai.db import DATABASE_ERRORS
from peca_ai.domain.budget_status import BUDGET_REQUEST_STATUSES, STATUS_PENDING, normalize_shop_ids
from peca_ai.domain.contracts import BudgetRequestCreateInput, ServiceOutput
from peca_ai.errors import NotFoundError, PersistenceError, ValidationError
from peca_ai.infrastructure.repositories import (
    BudgetRequestRepository,
    BudgetResponseRepository,
    OrderRepository,
    StatusEventRepository,
    SupplierRepository,
    find_budget_request_by_short_id,
)
from peca_ai.integrations.webhook_client import WebhookNotifier
from peca_ai.ui_strings import status_label


logger = logging.getLogger(__name__)


def _normalize_part(raw: Any) -> dict | None:
    if isinstance(raw, Mapping):
        name = optional_text(raw.get("name"))
        if not name:
            return None
        part = {"name": name}
        brand = optional_text(raw.get("brand"))
        if brand:
            part["brand"] = brand
        # Older form builds post the camelCase key.
        part_code = optional_text(raw.get("part_code") or raw.get("partCode"))
        if part_code:
            part["part_code"] = part_code
        return part
    name = optional_text(raw)
    return {"name": name} if name else None


def parse_budget_request_input(payload: Mapping[str, Any] | None) -> BudgetRequestCreateInput:
    data = payload if isinstance(payload, Mapping) else {}
    car_model = require_text(data, "car_model")
    car_year = require_text(data, "car_year")

    raw_parts = data.get("parts")
    parts = [part for part in (_normalize_part(item) for item in (raw_parts if isinstance(raw_parts, list) else [])) if part]
    if not parts:
        raise ValidationError(code="parts_required", message_key="parts_required", http_status=400)

    raw_shops = data.get("selected_shops_ids")
    selected_shops_ids = normalize_shop_ids(raw_shops if isinstance(raw_shops, list) else [])
    if not selected_shops_ids:
        raise ValidationError(
            code="selected_shops_required",
            message_key="selected_shops_required",
            http_status=400,
        )

    return BudgetRequestCreateInput(
        car_model=car_model,
        car_year=car_year,
        car_engine=optional_text(data.get("car_engine")),
        parts=parts,
        notes=optional_text(data.get("notes")),
        selected_shops_ids=selected_shops_ids,
    )


def _with_status_label(row: dict) -> dict:
    row["status_label"] = status_label("orcamento", row.get("status"))
    return row


def _request_not_found() -> NotFoundError:
    return NotFoundError(code="budget_request_not_found", message_key="budget_request_id_not_found")


def response_link(public_base_url: str, short_id: int, shop_id: int) -> str:
    return f"{str(public_base_url or '').rstrip('/')}/responder/{short_id}/{shop_id}"


class BudgetRequestService:
    def __init__(self, notifier: WebhookNotifier | None = None) -> None:
        self.notifier = notifier

    def create_budget_request(
        self,
        db,
        *,
        tenant_id: str,
        create_input: BudgetRequestCreateInput,
        public_base_url: str,
    ) -> ServiceOutput:
        suppliers = SupplierRepository(tenant_id=tenant_id).list_by_ids(db, create_input.selected_shops_ids)
        found_ids = {int(supplier["id"]) for supplier in suppliers}
        missing = [shop_id for shop_id in create_input.selected_shops_ids if shop_id not in found_ids]
        if missing:
            raise ValidationError(
                code="suppliers_not_found",
                message_key="suppliers_not_found",
                http_status=400,
                payload={"shop_ids": missing},
                message_params={"shop_ids": ", ".join(str(shop_id) for shop_id in missing)},
            )

        request_repo = BudgetRequestRepository(tenant_id=tenant_id)
        try:
            with db.transaction():
                short_id = request_repo.next_short_id(db)
                request_id = request_repo.create(
                    db,
                    short_id=short_id,
                    car_model=create_input.car_model,
                    car_year=create_input.car_year,
                    car_engine=create_input.car_engine,
                    parts=create_input.parts,
                    notes=create_input.notes,
                    selected_shops_ids=create_input.selected_shops_ids,
                )
                StatusEventRepository(tenant_id=tenant_id).record(
                    db,
                    entity_id=request_id,
                    from_status=None,
                    to_status=STATUS_PENDING,
                    reason="budget_request_created",
                )
        except DATABASE_ERRORS as exc:
            raise PersistenceError(details=str(exc), message_params={"details": str(exc)}) from exc

        budget_request = request_repo.get_by_id(db, request_id)
        logger.info(
            "budget_request_created",
            extra={
                "event": "budget_request_created",
                "tenant_id": tenant_id,
                "budget_request_id": request_id,
                "short_id": short_id,
                "selected_count": len(create_input.selected_shops_ids),
            },
        )

        selected_shops = [
            {
                "id": supplier["id"],
                "name": supplier["name"],
                "whatsapp": supplier["whatsapp"],
                "whatsapp_url": whatsapp_url(supplier["whatsapp"]),
                "response_url": response_link(public_base_url, short_id, supplier["id"]),
            }
            for supplier in suppliers
        ]
        notification = {"delivered": False, "status_code": None}
        if self.notifier is not None:
            result = self.notifier.notify(
                "budget_request_created",
                {
                    "short_id": short_id,
                    "partDetails": {
                        "parts": [part["name"] for part in create_input.parts],
                        "carModel": create_input.car_model,
                        "carYear": create_input.car_year,
                        "carEngine": create_input.car_engine,
                        "notes": create_input.notes,
                    },
                    "selectedShops": selected_shops,
                },
            )
            notification = result.to_dict()

        payload = _with_status_label(budget_request)
        payload["selected_shops"] = selected_shops
        return ServiceOutput(
            payload={"budget_request": payload, "notification": notification},
            status_code=201,
        )

    def list_budget_requests(self, db, *, tenant_id: str, status: str | None = None, limit: int = 100) -> ServiceOutput:
        status = (status or "").strip().lower() or None
        if status and status not in BUDGET_REQUEST_STATUSES:
            raise ValidationError(
                code="status_invalid",
                message_key="status_invalid",
                http_status=400,
                payload={"allowed": list(BUDGET_REQUEST_STATUSES)},
            )
        rows = BudgetRequestRepository(tenant_id=tenant_id).list_summary(db, status=status, limit=limit)
        return ServiceOutput(payload={"items": [_with_status_label(row) for row in rows]})

    def get_budget_request(self, db, *, tenant_id: str, request_id: int) -> ServiceOutput:
        budget_request = BudgetRequestRepository(tenant_id=tenant_id).get_by_id(db, request_id)
        if budget_request is None:
            raise _request_not_found()

        responses = BudgetResponseRepository(tenant_id=tenant_id).list_for_request(db, request_id)
        for response in responses:
            response["whatsapp_url"] = whatsapp_url(response.get("shop_whatsapp"))

        # Suppliers deleted after dispatch simply drop out of this list.
        suppliers = SupplierRepository(tenant_id=tenant_id).list_by_ids(db, budget_request["selected_shops_ids"])
        payload = _with_status_label(budget_request)
        payload["responses"] = responses
        payload["responses_count"] = len(responses)
        payload["selected_shops"] = suppliers
        payload["orders"] = OrderRepository(tenant_id=tenant_id).list_recent(db, budget_request_id=request_id)
        payload["history"] = StatusEventRepository(tenant_id=tenant_id).list_for(db, request_id)
        return ServiceOutput(payload={"budget_request": payload})

    def delete_budget_request(self, db, *, tenant_id: str, request_id: int) -> ServiceOutput:
        request_repo = BudgetRequestRepository(tenant_id=tenant_id)
        try:
            with db.transaction():
                deleted = request_repo.delete(db, request_id)
        except DATABASE_ERRORS as exc:
            raise PersistenceError(details=str(exc), message_params={"details": str(exc)}) from exc
        if not deleted:
            raise _request_not_found()
        logger.info(
            "budget_request_deleted",
            extra={"event": "budget_request_deleted", "tenant_id": tenant_id, "budget_request_id": request_id},
        )
        return ServiceOutput(payload={"deleted": True, "id": request_id})

    def get_public_view(self, db, *, short_id: int) -> ServiceOutput:
        """What a supplier sees before quoting: no prices from other suppliers, no workshop data."""
        budget_request = find_budget_request_by_short_id(db, short_id)
        if budget_request is None:
            raise NotFoundError(
                code="budget_request_not_found",
                message_key="budget_request_not_found",
                message_params={"short_id": short_id},
            )
        return ServiceOutput(
            payload={
                "short_id": budget_request["short_id"],
                "car_model": budget_request["car_model"],
                "car_year": budget_request["car_year"],
                "car_engine": budget_request.get("car_engine"),
                "parts": budget_request["parts"],
                "notes": budget_request.get("notes"),
            }
        )
