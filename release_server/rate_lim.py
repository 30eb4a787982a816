"""Rate limiting middleware using Flask-Limiter.

Fixed-window counters held in process memory: bursts of up to twice the
limit are possible across a window boundary, and separate instances do not
share counts. Expired windows are evicted by the limiter's storage.
"""
import logging
import math
import time

from flask import Blueprint, jsonify, request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from release_server.auth import resolve_fingerprint

logger = logging.getLogger(__name__)


def client_ip() -> str:
    """Caller IP, preferring proxy-supplied headers over the socket address."""
    forwarded = request.headers.get("X-Forwarded-For", "")
    return (
        request.headers.get("CF-Connecting-IP")
        or forwarded.split(",")[0].strip()
        or request.headers.get("X-Real-IP")
        or get_remote_address()
        or "unknown"
    )


def _api_key_func() -> str:
    """Authenticated key fingerprint when the bearer token is valid, else IP."""
    fingerprint = resolve_fingerprint()
    if fingerprint:
        return f"key:{fingerprint}"
    return client_ip()


def init_rate_limiter(app, settings, *, latest: Blueprint, downloads: Blueprint, api: Blueprint) -> Limiter:
    """Initialize Flask-Limiter on the app with one limit per route group.

    Limits come from settings (RATE_LIMIT_LATEST, RATE_LIMIT_DOWNLOAD,
    RATE_LIMIT_API). Over-limit requests get a 429 JSON body and a
    ``Retry-After`` header.
    """
    limiter = Limiter(
        client_ip,
        app=app,
        storage_uri="memory://",
        strategy="fixed-window",
        headers_enabled=True,
    )
    limiter.limit(settings.rate_limit_latest)(latest)
    limiter.limit(settings.rate_limit_download)(downloads)
    limiter.limit(settings.rate_limit_api, key_func=_api_key_func)(api)

    @app.errorhandler(429)
    def _rate_limited(exc):
        retry_after = 1
        current = limiter.current_limit
        if current is not None:
            retry_after = max(1, math.ceil(current.reset_at - time.time()))
        logger.info("Rate limit exceeded: path=%s retry_after=%ds", request.path, retry_after)
        resp = jsonify({"error": "Rate limit exceeded", "retryAfter": retry_after})
        resp.status_code = 429
        resp.headers["Retry-After"] = str(retry_after)
        return resp

    return limiter
