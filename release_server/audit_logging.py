import json
import logging
import re
import time
from typing import Any

from flask import Blueprint, g, request

from release_server.context import get_context
from release_server.crypto import sha256_string
from release_server.metadata import AUDIT_KEY, get_json, update_json
from release_server.models import RESULT_REJECTED, RESULT_SUCCESS, AuditEntry, utc_now_iso
from release_server.rate_lim import client_ip
from release_server.storage import StorageBackend

MAX_AUDIT_ENTRIES = 1000
_READ_METHODS = {"GET", "HEAD", "OPTIONS"}
_VERSION_RE = re.compile(r"/releases/([^/]+)")


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": int(time.time() * 1000),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        base = logging.LogRecord("", 0, "", "", None, (), None).__dict__
        extras = {k: v for k, v in record.__dict__.items() if k not in base}
        for k, v in extras.items():
            if k in payload:
                continue
            try:
                json.dumps({k: v})
                payload[k] = v
            except (TypeError, ValueError):
                payload[k] = str(v)
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def _audit_logger() -> logging.Logger:
    audit_logger = logging.getLogger("audit")
    audit_logger.setLevel(logging.INFO)
    if not audit_logger.handlers:
        sh = logging.StreamHandler()
        sh.setFormatter(JSONFormatter())
        audit_logger.addHandler(sh)
        audit_logger.propagate = False
    return audit_logger


def infer_action(method: str, path: str) -> str:
    if method == "POST" and "/releases" in path:
        return "release.create"
    if method == "DELETE" and "/releases" in path:
        return "release.deprecate"
    if "/keys/rotate" in path:
        return "key.rotate"
    return "settings.update"


def hash_ip(ip: str, salt: str = "") -> str:
    return sha256_string(f"{salt}{ip}")[:16]


def build_entry(method: str, path: str, status_code: int, ip: str, fingerprint: str | None, salt: str = "") -> AuditEntry:
    entry = AuditEntry(
        timestamp=utc_now_iso(),
        action=infer_action(method, path),
        ip=hash_ip(ip, salt),
        api_key_fingerprint=fingerprint or "unknown",
        result=RESULT_SUCCESS if status_code < 400 else RESULT_REJECTED,
    )
    match = _VERSION_RE.search(path)
    if match:
        entry.version = match.group(1)
    if status_code >= 400:
        entry.reason = f"HTTP {status_code}"
    return entry


def append_entry(storage: StorageBackend, entry: AuditEntry, max_entries: int = MAX_AUDIT_ENTRIES) -> None:
    """Prepend ``entry`` to the stored log, keeping the newest ``max_entries``."""

    def _prepend(entries: list[dict[str, Any]]) -> list[dict[str, Any]]:
        entries.insert(0, entry.to_dict())
        return entries[:max_entries]

    update_json(storage, AUDIT_KEY, _prepend, list)


def _persist_entry(storage: StorageBackend, entry: AuditEntry) -> None:
    try:
        append_entry(storage, entry)
    except Exception:
        _audit_logger().exception("failed to write audit log entry", extra={"audit_entry": entry.to_dict()})


def get_audit_log(storage: StorageBackend, limit: int = 50, offset: int = 0) -> tuple[list[dict[str, Any]], int]:
    entries = get_json(storage, AUDIT_KEY) or []
    return entries[offset: offset + limit], len(entries)


def init_audit_logging(blueprint: Blueprint) -> None:
    """Register hooks on ``blueprint`` that record every mutating request.

    Each non-GET/HEAD/OPTIONS request produces one AuditEntry once the view
    has produced its response. Entries are persisted by the background
    writer; failures are logged to the ``audit`` logger and never alter the
    response. Request-level operational logs are emitted as JSON as well.
    """
    audit_logger = _audit_logger()

    @blueprint.before_request
    def _audit_before():
        g._audit_start = time.time()

    @blueprint.after_request
    def _audit_after(response):
        try:
            start = getattr(g, "_audit_start", time.time())
            event = {
                "type": "http_request",
                "method": request.method,
                "path": request.path,
                "status_code": response.status_code,
                "duration_ms": int((time.time() - start) * 1000),
                "fingerprint": g.get("api_key_fingerprint"),
            }
            audit_logger.info("http_request", extra=event)
            if response.status_code in (401, 403, 500):
                audit_logger.warning("security_alert", extra={**event, "alert": True, "alert_type": "security"})

            if request.method not in _READ_METHODS:
                ctx = get_context()
                entry = build_entry(
                    request.method,
                    request.path,
                    response.status_code,
                    client_ip(),
                    g.get("api_key_fingerprint"),
                    ctx.settings.audit_ip_salt,
                )
                ctx.background.submit(_persist_entry, ctx.storage, entry)
        except Exception:
            audit_logger.exception("failed to emit audit log for request")
        return response


def audit_event(message: str, **fields: Any) -> None:
    logging.getLogger("audit").info(message, extra=fields)


def security_alert(message: str, **fields: Any) -> None:
    logging.getLogger("audit").warning(message, extra={**fields, "alert": True, "alert_type": "security"})
