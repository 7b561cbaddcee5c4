from __future__ import annotations

import logging
from typing import Any, Mapping

from peca_ai.application.parsing import only_digits, require_text, whatsapp_url
from peca_ai.domain.contracts import ServiceOutput, SupplierInput
from peca_ai.errors import NotFoundError, field_invalid_error
from peca_ai.infrastructure.repositories import SupplierRepository


logger = logging.getLogger(__name__)


def parse_supplier_input(payload: Mapping[str, Any] | None) -> SupplierInput:
    data = payload if isinstance(payload, Mapping) else {}
    name = require_text(data, "name")
    whatsapp = require_text(data, "whatsapp")
    if len(only_digits(whatsapp)) < 8:
        raise field_invalid_error("whatsapp")
    return SupplierInput(name=name, whatsapp=whatsapp)


def present_supplier(row: dict) -> dict:
    row["whatsapp_url"] = whatsapp_url(row.get("whatsapp"))
    return row


def _supplier_not_found(supplier_id: int) -> NotFoundError:
    return NotFoundError(
        code="supplier_not_found",
        message_key="supplier_not_found",
        message_params={"shop_id": supplier_id},
    )


class SupplierService:
    def list_suppliers(self, db, *, tenant_id: str) -> ServiceOutput:
        rows = SupplierRepository(tenant_id=tenant_id).list_all(db)
        return ServiceOutput(payload={"items": [present_supplier(row) for row in rows]})

    def create_supplier(self, db, *, tenant_id: str, supplier_input: SupplierInput) -> ServiceOutput:
        repo = SupplierRepository(tenant_id=tenant_id)
        supplier_id = repo.create(db, name=supplier_input.name, whatsapp=supplier_input.whatsapp)
        db.commit()
        logger.info(
            "supplier_created",
            extra={"event": "supplier_created", "tenant_id": tenant_id, "supplier_id": supplier_id},
        )
        return ServiceOutput(payload={"supplier": present_supplier(repo.get_by_id(db, supplier_id))}, status_code=201)

    def update_supplier(self, db, *, tenant_id: str, supplier_id: int, supplier_input: SupplierInput) -> ServiceOutput:
        repo = SupplierRepository(tenant_id=tenant_id)
        if not repo.update(db, supplier_id, name=supplier_input.name, whatsapp=supplier_input.whatsapp):
            raise _supplier_not_found(supplier_id)
        db.commit()
        return ServiceOutput(payload={"supplier": present_supplier(repo.get_by_id(db, supplier_id))})

    def delete_supplier(self, db, *, tenant_id: str, supplier_id: int) -> ServiceOutput:
        # Responses keep their name/contact snapshot and requests keep their original selection.
        if not SupplierRepository(tenant_id=tenant_id).delete(db, supplier_id):
            raise _supplier_not_found(supplier_id)
        db.commit()
        logger.info(
            "supplier_deleted",
            extra={"event": "supplier_deleted", "tenant_id": tenant_id, "supplier_id": supplier_id},
        )
        return ServiceOutput(payload={"deleted": True, "id": supplier_id})
