from __future__ import annotations

import logging
import time
from typing import Any, Mapping

from peca_ai.application.parsing import require_text
from peca_ai.domain.contracts import ServiceOutput
from peca_ai.errors import ValidationError
from peca_ai.integrations.webhook_client import WebhookError, post_json_for_reply
from peca_ai.observability import current_request_id, observe_webhook_delivery
from peca_ai.ui_strings import error_message


logger = logging.getLogger(__name__)

MESSAGE_FIELD = "mensagem"
MAX_MESSAGE_CHARS = 2000
_METRIC_EVENT = "assistant_message"


def parse_assistant_message(payload: Mapping[str, Any] | None) -> str:
    data = payload if isinstance(payload, Mapping) else {}
    message = require_text(data, MESSAGE_FIELD)
    if len(message) > MAX_MESSAGE_CHARS:
        raise ValidationError(
            code="assistant_message_too_long",
            message_key="assistant_message_too_long",
            http_status=400,
            critical=False,
            payload={"field": MESSAGE_FIELD, "max_chars": MAX_MESSAGE_CHARS},
            message_params={"max_chars": MAX_MESSAGE_CHARS},
        )
    return message


class MechanicAssistant:
    """Relays a mechanic's question to the external AI automation and hands back its answer.

    Whenever the automation cannot answer, the reply is a canned message and ``answered`` is false.
    """

    def __init__(self, url: str | None, *, timeout: int = 30, enabled: bool = True) -> None:
        self.url = str(url or "").strip()
        self.timeout = max(1, int(timeout or 30))
        self.enabled = bool(enabled) and bool(self.url)

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "MechanicAssistant":
        return cls(
            config.get("ASSISTANT_WEBHOOK_URL"),
            timeout=int(config.get("ASSISTANT_TIMEOUT_SECONDS", 30) or 30),
            enabled=bool(config.get("ASSISTANT_ENABLED", True)),
        )

    def ask(self, message: str, *, tenant_id: str) -> ServiceOutput:
        if not self.enabled:
            observe_webhook_delivery(_METRIC_EVENT, "skipped", 0.0)
            return self._fallback("assistant_unavailable")

        started = time.perf_counter()
        try:
            reply = post_json_for_reply(
                self.url,
                {MESSAGE_FIELD: message},
                timeout=self.timeout,
                request_id=current_request_id(),
            )
        except WebhookError as exc:
            elapsed_ms = (time.perf_counter() - started) * 1000.0
            observe_webhook_delivery(_METRIC_EVENT, "failed", elapsed_ms)
            logger.warning(
                "assistant_reply_failed",
                extra={
                    "event": "assistant_reply_failed",
                    "tenant_id": tenant_id,
                    "status_code": exc.status_code,
                    "error": str(exc),
                    "duration_ms": round(elapsed_ms, 2),
                },
            )
            return self._fallback("assistant_unavailable")

        elapsed_ms = (time.perf_counter() - started) * 1000.0
        observe_webhook_delivery(_METRIC_EVENT, "delivered", elapsed_ms)
        answer = reply.get(MESSAGE_FIELD)
        answer = str(answer).strip() if answer is not None else ""
        logger.info(
            "assistant_replied",
            extra={
                "event": "assistant_replied",
                "tenant_id": tenant_id,
                "answered": bool(answer),
                "duration_ms": round(elapsed_ms, 2),
            },
        )
        if not answer:
            return self._fallback("assistant_no_answer")
        return ServiceOutput(payload={MESSAGE_FIELD: answer, "answered": True})

    @staticmethod
    def _fallback(message_key: str) -> ServiceOutput:
        return ServiceOutput(payload={MESSAGE_FIELD: error_message(message_key), "answered": False})
