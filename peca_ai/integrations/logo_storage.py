from __future__ import annotations

import uuid
from pathlib import Path

from werkzeug.utils import secure_filename

from peca_ai.errors import ValidationError


ALLOWED_LOGO_TYPES = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
}
_ALLOWED_SUFFIXES = {"png", "jpg", "jpeg", "webp"}


def _ensure_base(upload_dir: str) -> Path:
    base = Path(upload_dir) / "logos"
    base.mkdir(parents=True, exist_ok=True)
    return base


def _logo_suffix(file_storage) -> str | None:
    mimetype = str(getattr(file_storage, "mimetype", "") or "").lower()
    if mimetype in ALLOWED_LOGO_TYPES:
        return ALLOWED_LOGO_TYPES[mimetype]
    safe_name = secure_filename(file_storage.filename or "")
    suffix = Path(safe_name).suffix.lower().lstrip(".")
    if suffix in _ALLOWED_SUFFIXES:
        return "jpg" if suffix == "jpeg" else suffix
    return None


def save_logo(file_storage, *, upload_dir: str, tenant_id: str, max_bytes: int) -> str:
    """Stores the logo under ``<upload_dir>/logos`` and returns the stored file name."""
    if file_storage is None or not (file_storage.filename or "").strip():
        raise ValidationError(code="logo_required", message_key="logo_required", http_status=400)

    suffix = _logo_suffix(file_storage)
    if suffix is None:
        raise ValidationError(code="logo_invalid_type", message_key="logo_invalid_type", http_status=400)

    content = file_storage.read()
    if not content:
        raise ValidationError(code="logo_required", message_key="logo_required", http_status=400)
    if len(content) > int(max_bytes):
        raise ValidationError(
            code="logo_too_large",
            message_key="logo_too_large",
            http_status=413,
            payload={"max_bytes": int(max_bytes)},
        )

    tenant_slug = secure_filename(tenant_id) or "oficina"
    name = f"{tenant_slug}-{uuid.uuid4().hex}.{suffix}"
    (_ensure_base(upload_dir) / name).write_bytes(content)
    return name


def logo_directory(upload_dir: str) -> str:
    return str(_ensure_base(upload_dir))
