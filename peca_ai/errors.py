from __future__ import annotations

from typing import Any, Dict

from peca_ai.ui_strings import error_message


class AppError(Exception):
    default_code = "system_error"
    default_message_key = "unexpected_error"
    default_http_status = 500
    default_critical = True

    def __init__(
        self,
        code: str | None = None,
        message_key: str | None = None,
        http_status: int | None = None,
        critical: bool | None = None,
        details: str | None = None,
        payload: Dict[str, Any] | None = None,
        message_params: Dict[str, Any] | None = None,
    ) -> None:
        self.code = (code or self.default_code).strip()
        self.message_key = (message_key or self.default_message_key).strip()
        self.http_status = int(http_status or self.default_http_status)
        self.critical = bool(self.default_critical if critical is None else critical)
        self.details = (details or "").strip() or None
        self.payload = dict(payload or {})
        self.message_params = dict(message_params or {})
        super().__init__(self.details or self.code)

    def user_message(self) -> str:
        fallback = error_message("unexpected_error", "Nao foi possivel concluir a operacao.")
        return error_message(self.message_key, fallback, **self.message_params)

    def to_response_payload(self, request_id: str) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "error": self.code,
            "message": self.user_message(),
            "request_id": request_id,
        }
        if self.payload:
            payload.update(self.payload)
        return payload


class UserActionError(AppError):
    default_code = "action_invalid"
    default_message_key = "unexpected_error"
    default_http_status = 400
    default_critical = False


class ValidationError(UserActionError):
    default_code = "validation_error"
    default_message_key = "status_invalid"
    default_http_status = 400
    default_critical = False


class PermissionError(UserActionError):
    default_code = "permission_denied"
    default_message_key = "permission_denied"
    default_http_status = 403
    default_critical = False


class NotFoundError(UserActionError):
    default_code = "not_found"
    default_message_key = "unexpected_error"
    default_http_status = 404
    default_critical = False


class PersistenceError(AppError):
    default_code = "persistence_error"
    default_message_key = "persistence_failed"
    default_http_status = 500
    default_critical = True


class IntegrationError(AppError):
    default_code = "integration_error"
    default_message_key = "unexpected_error"
    default_http_status = 502
    default_critical = False


class SystemError(AppError):
    default_code = "system_error"
    default_message_key = "unexpected_error"
    default_http_status = 500
    default_critical = True


def missing_field_error(field: str) -> ValidationError:
    return ValidationError(
        code="missing_required_field",
        message_key="missing_required_field",
        http_status=400,
        critical=False,
        payload={"field": field},
        message_params={"field": field},
    )


def field_required_error(field: str) -> ValidationError:
    return ValidationError(
        code="field_required",
        message_key="field_required",
        http_status=400,
        critical=False,
        payload={"field": field},
        message_params={"field": field},
    )


def field_invalid_error(field: str) -> ValidationError:
    return ValidationError(
        code="field_invalid",
        message_key="field_invalid",
        http_status=400,
        critical=False,
        payload={"field": field},
        message_params={"field": field},
    )
