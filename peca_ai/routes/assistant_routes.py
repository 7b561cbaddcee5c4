from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from peca_ai.application.assistant_service import MechanicAssistant, parse_assistant_message
from peca_ai.tenant import workshop_tenant_id


assistant_bp = Blueprint("assistant", __name__)


@assistant_bp.route("/api/assistant", methods=["POST"])
def assistant_api():
    message = parse_assistant_message(request.get_json(silent=True))
    result = MechanicAssistant.from_config(current_app.config).ask(message, tenant_id=workshop_tenant_id())
    return jsonify(result.payload), result.status_code
