from flask import Blueprint, jsonify

from peca_ai.application.dashboard_service import build_dashboard
from peca_ai.db import get_db
from peca_ai.security import csrf_token
from peca_ai.tenant import workshop_tenant_id
from peca_ai.ui_strings import FRIENDLY_TERMS, frontend_bundle


home_bp = Blueprint("home", __name__)


@home_bp.route("/")
def home():
    return jsonify(
        {
            "app": FRIENDLY_TERMS["app_name"],
            "tenant_id": workshop_tenant_id(),
            "csrf_token": csrf_token(),
        }
    )


@home_bp.route("/api/dashboard", methods=["GET"])
def dashboard_api():
    result = build_dashboard(get_db(), tenant_id=workshop_tenant_id())
    return jsonify(result.payload), result.status_code


@home_bp.route("/api/ui-strings", methods=["GET"])
def ui_strings_api():
    return jsonify(frontend_bundle())
