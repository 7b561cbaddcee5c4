from __future__ import annotations

from flask import Blueprint, jsonify, request

from peca_ai.application.supplier_service import SupplierService, parse_supplier_input
from peca_ai.db import get_db
from peca_ai.tenant import workshop_tenant_id
from peca_ai.ui_strings import success_message


supplier_bp = Blueprint("suppliers", __name__)

_SUPPLIER_SERVICE = SupplierService()


@supplier_bp.route("/api/suppliers", methods=["GET", "POST"])
def suppliers_api():
    db = get_db()
    tenant_id = workshop_tenant_id()
    if request.method == "POST":
        supplier_input = parse_supplier_input(request.get_json(silent=True))
        result = _SUPPLIER_SERVICE.create_supplier(db, tenant_id=tenant_id, supplier_input=supplier_input)
        return jsonify({**result.payload, "message": success_message("supplier_created")}), result.status_code

    result = _SUPPLIER_SERVICE.list_suppliers(db, tenant_id=tenant_id)
    return jsonify(result.payload), result.status_code


@supplier_bp.route("/api/suppliers/<int:supplier_id>", methods=["PUT", "PATCH", "DELETE"])
def supplier_detail_api(supplier_id: int):
    db = get_db()
    tenant_id = workshop_tenant_id()
    if request.method == "DELETE":
        result = _SUPPLIER_SERVICE.delete_supplier(db, tenant_id=tenant_id, supplier_id=supplier_id)
        return jsonify({**result.payload, "message": success_message("supplier_deleted")}), result.status_code

    supplier_input = parse_supplier_input(request.get_json(silent=True))
    result = _SUPPLIER_SERVICE.update_supplier(
        db,
        tenant_id=tenant_id,
        supplier_id=supplier_id,
        supplier_input=supplier_input,
    )
    return jsonify({**result.payload, "message": success_message("supplier_updated")}), result.status_code
