from __future__ import annotations

import logging
from typing import Any, Mapping

from peca_ai.application.parsing import optional_text, require_text
from peca_ai.domain.budget_status import normalize_shop_ids
from peca_ai.domain.contracts import ServiceOutput, WorkshopSettingsInput
from peca_ai.errors import ValidationError, field_invalid_error
from peca_ai.infrastructure.repositories import SettingsRepository, SupplierRepository
from peca_ai.integrations.logo_storage import save_logo


logger = logging.getLogger(__name__)

REQUIRED_TEXT_FIELDS = ("workshop_name", "workshop_address", "workshop_whatsapp", "city")


def _default_settings(tenant_id: str) -> dict:
    return {
        "tenant_id": tenant_id,
        "workshop_name": None,
        "workshop_address": None,
        "workshop_whatsapp": None,
        "city": None,
        "logo_url": None,
        "favorite_suppliers": [],
        "notify_on_response": True,
    }


def parse_settings_input(payload: Mapping[str, Any] | None) -> WorkshopSettingsInput:
    data = payload if isinstance(payload, Mapping) else {}
    values: dict[str, Any] = {field: require_text(data, field) for field in REQUIRED_TEXT_FIELDS}

    logo_url = optional_text(data.get("logo_url"))
    if logo_url and not logo_url.startswith(("http://", "https://", "/media/")):
        raise field_invalid_error("logo_url")
    values["logo_url"] = logo_url

    favorites = data.get("favorite_suppliers")
    if favorites is not None and not isinstance(favorites, list):
        raise field_invalid_error("favorite_suppliers")
    values["favorite_suppliers"] = normalize_shop_ids(favorites or [])

    notify = data.get("notify_on_response", True)
    if not isinstance(notify, bool):
        raise field_invalid_error("notify_on_response")
    values["notify_on_response"] = notify
    return WorkshopSettingsInput(values=values)


class SettingsService:
    def get_settings(self, db, *, tenant_id: str) -> ServiceOutput:
        settings = SettingsRepository(tenant_id=tenant_id).get(db)
        return ServiceOutput(payload={"settings": settings or _default_settings(tenant_id)})

    def update_settings(self, db, *, tenant_id: str, settings_input: WorkshopSettingsInput) -> ServiceOutput:
        values = dict(settings_input.values)
        favorites = values.get("favorite_suppliers") or []
        if favorites:
            owned = {int(row["id"]) for row in SupplierRepository(tenant_id=tenant_id).list_by_ids(db, favorites)}
            missing = [shop_id for shop_id in favorites if shop_id not in owned]
            if missing:
                raise ValidationError(
                    code="suppliers_not_found",
                    message_key="suppliers_not_found",
                    http_status=400,
                    payload={"shop_ids": missing},
                    message_params={"shop_ids": ", ".join(str(shop_id) for shop_id in missing)},
                )

        repo = SettingsRepository(tenant_id=tenant_id)
        repo.upsert(db, values)
        db.commit()
        logger.info("workshop_settings_saved", extra={"event": "workshop_settings_saved", "tenant_id": tenant_id})
        return ServiceOutput(payload={"settings": repo.get(db)})

    def upload_logo(self, db, *, tenant_id: str, file_storage, upload_dir: str, max_bytes: int) -> ServiceOutput:
        name = save_logo(file_storage, upload_dir=upload_dir, tenant_id=tenant_id, max_bytes=max_bytes)
        logo_url = f"/media/logos/{name}"
        SettingsRepository(tenant_id=tenant_id).set_logo_url(db, logo_url)
        db.commit()
        logger.info(
            "workshop_logo_uploaded",
            extra={"event": "workshop_logo_uploaded", "tenant_id": tenant_id, "logo_url": logo_url},
        )
        return ServiceOutput(payload={"logo_url": logo_url}, status_code=201)
