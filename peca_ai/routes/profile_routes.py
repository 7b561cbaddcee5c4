from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request, send_from_directory

from peca_ai.application.settings_service import SettingsService, parse_settings_input
from peca_ai.db import get_db
from peca_ai.integrations.logo_storage import logo_directory
from peca_ai.tenant import workshop_tenant_id
from peca_ai.ui_strings import success_message


profile_bp = Blueprint("profile", __name__)

_SETTINGS_SERVICE = SettingsService()


@profile_bp.route("/api/settings", methods=["GET", "PUT"])
def settings_api():
    db = get_db()
    tenant_id = workshop_tenant_id()
    if request.method == "PUT":
        settings_input = parse_settings_input(request.get_json(silent=True))
        result = _SETTINGS_SERVICE.update_settings(db, tenant_id=tenant_id, settings_input=settings_input)
        return jsonify({**result.payload, "message": success_message("settings_saved")}), result.status_code

    result = _SETTINGS_SERVICE.get_settings(db, tenant_id=tenant_id)
    return jsonify(result.payload), result.status_code


@profile_bp.route("/api/settings/logo", methods=["POST"])
def settings_logo_api():
    result = _SETTINGS_SERVICE.upload_logo(
        get_db(),
        tenant_id=workshop_tenant_id(),
        file_storage=request.files.get("logo"),
        upload_dir=current_app.config["UPLOAD_DIR"],
        max_bytes=int(current_app.config.get("LOGO_MAX_BYTES", 2 * 1024 * 1024)),
    )
    return jsonify(result.payload), result.status_code


@profile_bp.route("/media/logos/<path:filename>", methods=["GET"])
def logo_file(filename: str):
    return send_from_directory(logo_directory(current_app.config["UPLOAD_DIR"]), filename)
