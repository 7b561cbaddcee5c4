from __future__ import annotations

import json
import logging
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any, Mapping

from peca_ai.observability import current_request_id, observe_webhook_delivery


logger = logging.getLogger(__name__)


class WebhookError(RuntimeError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class DeliveryResult:
    delivered: bool
    status_code: int | None = None

    def to_dict(self) -> dict:
        return {"delivered": self.delivered, "status_code": self.status_code}


def _send_json(url: str, payload: Mapping[str, Any], *, timeout: int, request_id: str | None, read_reply: bool):
    headers = {"Accept": "application/json", "Content-Type": "application/json"}
    if request_id:
        headers["X-Request-Id"] = request_id
    data = json.dumps(payload, separators=(",", ":"), ensure_ascii=False, default=str).encode("utf-8")
    request = urllib.request.Request(url, data=data, headers=headers, method="POST")

    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            reply = response.read() if read_reply else b""
            return int(response.status), reply
    except urllib.error.HTTPError as exc:
        error_body = exc.read().decode("utf-8", errors="replace") if exc.fp else ""
        raise WebhookError(f"Webhook HTTP {exc.code}: {error_body[:200]}", status_code=exc.code) from exc
    except urllib.error.URLError as exc:
        raise WebhookError(f"Erro de conexao com webhook: {exc.reason}") from exc
    except (TimeoutError, OSError) as exc:
        raise WebhookError(f"Erro de conexao com webhook: {exc}") from exc


def post_json(url: str, payload: Mapping[str, Any], *, timeout: int = 10, request_id: str | None = None) -> int:
    status_code, _ = _send_json(url, payload, timeout=timeout, request_id=request_id, read_reply=False)
    return status_code


def post_json_for_reply(
    url: str,
    payload: Mapping[str, Any],
    *,
    timeout: int = 10,
    request_id: str | None = None,
) -> dict:
    """Like ``post_json`` but returns the decoded JSON object the endpoint answered with."""
    status_code, raw = _send_json(url, payload, timeout=timeout, request_id=request_id, read_reply=True)
    try:
        reply = json.loads(raw.decode("utf-8")) if raw.strip() else {}
    except (UnicodeDecodeError, ValueError) as exc:
        raise WebhookError("Resposta do webhook nao e JSON valido.", status_code=status_code) from exc
    if not isinstance(reply, dict):
        raise WebhookError("Resposta do webhook nao e um objeto JSON.", status_code=status_code)
    return reply


class WebhookNotifier:
    """Best-effort relay of workshop events to the external automation endpoint.

    ``notify`` never raises: failures are logged as ``webhook_delivery_failed`` and counted,
    and the caller gets a ``DeliveryResult`` describing what happened.
    """

    def __init__(self, url: str | None, *, timeout: int = 10, enabled: bool = True) -> None:
        self.url = str(url or "").strip()
        self.timeout = max(1, int(timeout or 10))
        self.enabled = bool(enabled) and bool(self.url)

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "WebhookNotifier":
        return cls(
            config.get("WEBHOOK_URL"),
            timeout=int(config.get("WEBHOOK_TIMEOUT_SECONDS", 10) or 10),
            enabled=bool(config.get("WEBHOOK_ENABLED", True)),
        )

    def notify(self, event: str, payload: Mapping[str, Any]) -> DeliveryResult:
        if not self.enabled:
            observe_webhook_delivery(event, "skipped", 0.0)
            return DeliveryResult(delivered=False)

        body = {"event": event, **payload}
        started = time.perf_counter()
        try:
            status_code = post_json(self.url, body, timeout=self.timeout, request_id=current_request_id())
        except WebhookError as exc:
            elapsed_ms = (time.perf_counter() - started) * 1000.0
            observe_webhook_delivery(event, "failed", elapsed_ms)
            logger.warning(
                "webhook_delivery_failed",
                extra={
                    "event": "webhook_delivery_failed",
                    "webhook_event": event,
                    "status_code": exc.status_code,
                    "error": str(exc),
                    "duration_ms": round(elapsed_ms, 2),
                },
            )
            return DeliveryResult(delivered=False, status_code=exc.status_code)

        elapsed_ms = (time.perf_counter() - started) * 1000.0
        observe_webhook_delivery(event, "delivered", elapsed_ms)
        logger.info(
            "webhook_delivered",
            extra={
                "event": "webhook_delivered",
                "webhook_event": event,
                "status_code": status_code,
                "duration_ms": round(elapsed_ms, 2),
            },
        )
        return DeliveryResult(delivered=True, status_code=status_code)
