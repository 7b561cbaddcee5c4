from __future__ import annotations

import re
from typing import Any, Mapping

from peca_ai.errors import field_invalid_error, field_required_error, missing_field_error


_DIGITS_RE = re.compile(r"\D+")


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def require_present(payload: Mapping[str, Any], fields: tuple[str, ...]) -> None:
    """Raises for the first absent field, in the order given."""
    for field in fields:
        if field not in payload or is_blank(payload.get(field)):
            raise missing_field_error(field)


def require_text(payload: Mapping[str, Any], field: str) -> str:
    value = payload.get(field)
    if is_blank(value):
        raise field_required_error(field)
    return str(value).strip()


def optional_text(value: Any) -> str | None:
    if is_blank(value):
        return None
    return str(value).strip()


def parse_positive_int(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise field_invalid_error(field)
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError):
        raise field_invalid_error(field) from None
    if parsed <= 0:
        raise field_invalid_error(field)
    return parsed


def parse_price(value: Any, field: str) -> float:
    if isinstance(value, bool) or value is None:
        raise field_invalid_error(field)
    if isinstance(value, (int, float)):
        return float(value)
    raw = str(value).strip().replace("R$", "").strip()
    if "," in raw:
        raw = raw.replace(".", "").replace(",", ".")
    try:
        return float(raw)
    except ValueError:
        raise field_invalid_error(field) from None


def only_digits(value: Any) -> str:
    return _DIGITS_RE.sub("", str(value or ""))


def whatsapp_url(number: Any) -> str | None:
    digits = only_digits(number)
    if not digits:
        return None
    return f"https://wa.me/{digits}"
