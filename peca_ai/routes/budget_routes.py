from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from peca_ai.application.budget_request_service import BudgetRequestService, parse_budget_request_input
from peca_ai.application.budget_response_service import list_budget_responses
from peca_ai.application.order_service import OrderService, parse_order_input
from peca_ai.db import get_db
from peca_ai.integrations.webhook_client import WebhookNotifier
from peca_ai.tenant import workshop_tenant_id
from peca_ai.ui_strings import success_message


budget_bp = Blueprint("budget", __name__)

_ORDER_SERVICE = OrderService()


def _request_service() -> BudgetRequestService:
    return BudgetRequestService(notifier=WebhookNotifier.from_config(current_app.config))


@budget_bp.route("/api/budget-requests", methods=["GET", "POST"])
def budget_requests_api():
    db = get_db()
    tenant_id = workshop_tenant_id()
    if request.method == "POST":
        create_input = parse_budget_request_input(request.get_json(silent=True))
        result = _request_service().create_budget_request(
            db,
            tenant_id=tenant_id,
            create_input=create_input,
            public_base_url=current_app.config.get("PUBLIC_BASE_URL") or request.host_url,
        )
        payload = dict(result.payload)
        payload["message"] = success_message("budget_request_created")
        return jsonify(payload), result.status_code

    result = BudgetRequestService().list_budget_requests(
        db,
        tenant_id=tenant_id,
        status=request.args.get("status"),
    )
    return jsonify(result.payload), result.status_code


@budget_bp.route("/api/budget-requests/<int:request_id>", methods=["GET", "DELETE"])
def budget_request_detail_api(request_id: int):
    db = get_db()
    tenant_id = workshop_tenant_id()
    service = BudgetRequestService()
    if request.method == "DELETE":
        result = service.delete_budget_request(db, tenant_id=tenant_id, request_id=request_id)
        payload = dict(result.payload)
        payload["message"] = success_message("budget_request_deleted")
        return jsonify(payload), result.status_code

    result = service.get_budget_request(db, tenant_id=tenant_id, request_id=request_id)
    return jsonify(result.payload), result.status_code


@budget_bp.route("/api/budget-requests/<int:request_id>/orders", methods=["GET", "POST"])
def budget_request_orders_api(request_id: int):
    db = get_db()
    tenant_id = workshop_tenant_id()
    if request.method == "POST":
        order_input = parse_order_input(request.get_json(silent=True))
        result = _ORDER_SERVICE.create_order(
            db,
            tenant_id=tenant_id,
            budget_request_id=request_id,
            order_input=order_input,
        )
        payload = dict(result.payload)
        payload["message"] = success_message("order_created")
        return jsonify(payload), result.status_code

    result = _ORDER_SERVICE.list_orders(db, tenant_id=tenant_id, budget_request_id=request_id)
    return jsonify(result.payload), result.status_code


@budget_bp.route("/api/orders", methods=["GET"])
def orders_api():
    result = _ORDER_SERVICE.list_orders(get_db(), tenant_id=workshop_tenant_id())
    return jsonify(result.payload), result.status_code


@budget_bp.route("/api/responses", methods=["GET"])
def budget_responses_api():
    result = list_budget_responses(get_db(), tenant_id=workshop_tenant_id())
    return jsonify(result.payload), result.status_code
