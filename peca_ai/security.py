"""Request guards wired in by the app factory: per-client throttling, CSRF on browser forms, response headers."""

from __future__ import annotations

import secrets
import threading
import time

from flask import current_app, request, session

from peca_ai.errors import ValidationError


CSRF_SESSION_KEY = "_csrf_token"
CSRF_FORM_FIELD = "csrf_token"
CSRF_HEADER = "X-CSRF-Token"

_WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})
_BROWSER_FORM_TYPES = frozenset({"application/x-www-form-urlencoded", "multipart/form-data", "text/plain"})

# The supplier intake is sessionless and called cross-origin on purpose.
_CSRF_EXEMPT_PATHS = ("/api/budget-responses",)

PUBLIC_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
}


def csrf_token() -> str:
    """Token the workshop UI echoes back on form and upload posts; created on first use."""
    token = session.get(CSRF_SESSION_KEY)
    if not token:
        token = secrets.token_urlsafe(24)
        session[CSRF_SESSION_KEY] = token
    return token


def _submitted_csrf_token() -> str:
    token = request.headers.get(CSRF_HEADER) or request.form.get(CSRF_FORM_FIELD) or ""
    return token.strip()


def enforce_form_csrf() -> None:
    """Writes carrying a body a cross-site page can forge (forms, uploads) must echo the session token.

    JSON bodies pass: a foreign page cannot send one without a CORS preflight.
    """
    if not current_app.config.get("CSRF_ENABLED", True):
        return
    if request.method not in _WRITE_METHODS or request.mimetype not in _BROWSER_FORM_TYPES:
        return
    if request.path.startswith(_CSRF_EXEMPT_PATHS):
        return

    expected = session.get(CSRF_SESSION_KEY) or ""
    submitted = _submitted_csrf_token()
    if expected and submitted and secrets.compare_digest(expected, submitted):
        return
    current_app.logger.warning(
        "csrf_rejected",
        extra={"event": "csrf_rejected", "path": request.path, "has_token": bool(submitted)},
    )
    raise ValidationError(code="csrf_invalid", message_key="csrf_invalid", http_status=400, critical=False)


class FixedWindowLimiter:
    """Counts hits per key inside a fixed window; in-process only."""

    max_keys = 10_000

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._windows: dict[str, list] = {}

    def hit(self, key: str, *, limit: int, window_seconds: int) -> int | None:
        """Registers one hit. Returns the seconds to wait when over the limit, otherwise None."""
        now = time.monotonic()
        with self._lock:
            window = self._windows.get(key)
            if window is None or now - window[0] >= window_seconds:
                window = [now, 0]
                self._windows[key] = window
            window[1] += 1
            if len(self._windows) > self.max_keys:
                self._drop_stale(now - window_seconds)
            if window[1] <= limit:
                return None
            return max(0, int(window_seconds - (now - window[0])))

    def _drop_stale(self, cutoff: float) -> None:
        self._windows = {key: window for key, window in self._windows.items() if window[0] >= cutoff}

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()


_LIMITER = FixedWindowLimiter()


def _client_key() -> str:
    who = session.get("username") or request.remote_addr or "unknown"
    route = request.url_rule.rule if request.url_rule else request.path
    return f"{who}|{request.method}|{route}"


def enforce_rate_limit() -> None:
    config = current_app.config
    if not config.get("RATE_LIMIT_ENABLED", True):
        return
    # Preflights and logo downloads are free.
    if request.method == "OPTIONS" or request.path.startswith("/media/"):
        return

    retry_after = _LIMITER.hit(
        _client_key(),
        limit=max(1, int(config.get("RATE_LIMIT_MAX_REQUESTS") or 300)),
        window_seconds=max(1, int(config.get("RATE_LIMIT_WINDOW_SECONDS") or 60)),
    )
    if retry_after is not None:
        raise ValidationError(
            code="rate_limit_exceeded",
            message_key="rate_limit_exceeded",
            http_status=429,
            critical=False,
            payload={"retry_after": retry_after},
        )


def apply_cors_headers(response):
    for header, value in PUBLIC_CORS_HEADERS.items():
        response.headers[header] = value
    return response


def apply_security_headers(response):
    headers = response.headers
    headers.setdefault("X-Content-Type-Options", "nosniff")
    headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    headers.setdefault("X-Frame-Options", "DENY")
    if request.is_secure:
        headers.setdefault("Strict-Transport-Security", "max-age=31536000")
    return response


def reset_rate_limiter_for_tests() -> None:
    _LIMITER.reset()
