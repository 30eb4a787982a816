"""Bearer API-key authentication for the ``/api`` routes.

The server keeps only a SHA-256 digest of the key. A digest stored by key
rotation in ``meta/server.json`` takes precedence over the API_KEY setting.
"""
from __future__ import annotations

import logging

from flask import g, request

from release_server.context import ServerContext, get_context
from release_server.crypto import api_key_fingerprint, hash_api_key, verify_api_key
from release_server.errors import ConfigurationError, UnauthorizedError
from release_server.metadata import load_server_meta

logger = logging.getLogger(__name__)

_BEARER = "bearer "


def stored_key_hash(ctx: ServerContext) -> str:
    meta = load_server_meta(ctx.storage)
    if meta and meta.api_key_hash:
        return meta.api_key_hash
    if ctx.settings.api_key:
        return hash_api_key(ctx.settings.api_key)
    return ""


def _bearer_token() -> str | None:
    header = request.headers.get("Authorization", "")
    if not header.lower().startswith(_BEARER):
        return None
    return header[len(_BEARER):].strip()


def resolve_fingerprint() -> str | None:
    """Fingerprint of the presented key if it is valid, cached on ``g``. Never raises."""
    if "api_key_fingerprint" in g:
        return g.api_key_fingerprint
    token = _bearer_token()
    if not token:
        return None
    key_hash = stored_key_hash(get_context())
    if key_hash and verify_api_key(token, key_hash):
        g.api_key_fingerprint = api_key_fingerprint(key_hash)
        return g.api_key_fingerprint
    return None


def require_api_key() -> None:
    """``before_request`` hook: reject the request unless it carries the API key."""
    # imported lazily: audit_logging -> rate_lim -> auth
    from release_server.audit_logging import security_alert

    if not stored_key_hash(get_context()):
        logger.error("Rejecting API request: no API key configured on the server")
        raise ConfigurationError("Server API key not configured")
    if _bearer_token() is None:
        security_alert("auth_failed", reason="missing_token", path=request.path)
        raise UnauthorizedError("Missing Authorization header")
    if resolve_fingerprint() is None:
        security_alert("auth_failed", reason="invalid_token", path=request.path)
        raise UnauthorizedError("Invalid API key")
