from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify, request
from werkzeug.exceptions import HTTPException

from peca_ai.application.budget_request_service import BudgetRequestService
from peca_ai.application.budget_response_service import BudgetResponseService, parse_budget_response_input
from peca_ai.db import get_db
from peca_ai.errors import AppError, SystemError
from peca_ai.integrations.webhook_client import WebhookNotifier
from peca_ai.observability import ensure_request_id
from peca_ai.security import apply_cors_headers


logger = logging.getLogger(__name__)

# Endpoints reached from supplier links. No session, permissive CORS, flat error envelope.
public_bp = Blueprint("public", __name__)


def _error_response(error: AppError):
    request_id = ensure_request_id()
    body = {"error": error.user_message(), "code": error.code, "request_id": request_id}
    if error.payload:
        body.update({key: value for key, value in error.payload.items() if key not in body})
    return jsonify(body), error.http_status


@public_bp.after_request
def _cors(response):
    return apply_cors_headers(response)


@public_bp.errorhandler(AppError)
def _handle_app_error(exc: AppError):
    log_method = logger.error if exc.critical else logger.warning
    log_method(
        "application_error",
        extra={
            "event": "application_error",
            "error_code": exc.code,
            "http_status": exc.http_status,
            "message_key": exc.message_key,
            "details": exc.details,
            "request_path": request.path,
            "http_method": request.method,
        },
    )
    return _error_response(exc)


@public_bp.errorhandler(Exception)
def _handle_unexpected(exc: Exception):
    if isinstance(exc, HTTPException):
        return exc
    logger.exception(
        "unexpected_exception",
        extra={"event": "unexpected_exception", "request_path": request.path, "http_method": request.method},
    )
    return _error_response(SystemError(code="unexpected_error", message_key="unexpected_error", details=str(exc)))


@public_bp.route("/api/budget-responses", methods=["POST", "OPTIONS"])
def submit_budget_response():
    if request.method == "OPTIONS":
        return "", 200

    response_input = parse_budget_response_input(request.get_json(silent=True))
    service = BudgetResponseService(notifier=WebhookNotifier.from_config(current_app.config))
    result = service.record_response(get_db(), response_input)
    return jsonify(result.payload), result.status_code


@public_bp.route("/api/public/budget-requests/<int:short_id>", methods=["GET"])
def public_budget_request(short_id: int):
    result = BudgetRequestService().get_public_view(get_db(), short_id=short_id)
    return jsonify(result.payload), result.status_code
