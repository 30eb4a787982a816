"""
Tests for the audit trail (release_server/audit_logging.py).
"""

import json
import logging
from unittest.mock import patch

import pytest

from release_server.audit_logging import (
    JSONFormatter,
    _persist_entry,
    append_entry,
    build_entry,
    get_audit_log,
    hash_ip,
    infer_action,
)
from release_server.metadata import AUDIT_KEY, get_json
from release_server.models import AuditEntry


def _entry(n: int) -> AuditEntry:
    return AuditEntry(
        timestamp=f"2026-01-01T00:00:{n:02d}.000Z",
        action="release.create",
        ip="0123456789abcdef",
        api_key_fingerprint="deadbeef",
        result="success",
        version=f"1.0.{n}",
    )


class TestInferAction:
    @pytest.mark.parametrize(
        "method,path,action",
        [
            ("POST", "/api/releases", "release.create"),
            ("DELETE", "/api/releases/1.0.0", "release.deprecate"),
            ("POST", "/api/keys/rotate", "key.rotate"),
            ("PUT", "/api/settings/public-key", "settings.update"),
        ],
    )
    def test_action(self, method, path, action):
        assert infer_action(method, path) == action


class TestBuildEntry:
    def test_success_entry(self):
        entry = build_entry("DELETE", "/api/releases/1.2.0", 200, "203.0.113.9", "abcd1234", salt="pepper")
        assert entry.action == "release.deprecate"
        assert entry.result == "success"
        assert entry.version == "1.2.0"
        assert entry.reason is None
        assert entry.api_key_fingerprint == "abcd1234"
        assert entry.ip == hash_ip("203.0.113.9", "pepper")

    def test_rejected_entry(self):
        entry = build_entry("POST", "/api/releases", 401, "203.0.113.9", None)
        assert entry.result == "rejected"
        assert entry.reason == "HTTP 401"
        assert entry.api_key_fingerprint == "unknown"
        assert entry.version is None

    def test_ip_is_not_stored_in_clear(self):
        hashed = hash_ip("203.0.113.9")
        assert len(hashed) == 16
        assert hashed != "203.0.113.9"
        assert hash_ip("203.0.113.9", "a") != hash_ip("203.0.113.9", "b")

    def test_to_dict_uses_wire_names(self):
        payload = build_entry("POST", "/api/keys/rotate", 200, "1.2.3.4", "abcd1234").to_dict()
        assert set(payload) == {"timestamp", "action", "ip", "apiKeyFingerprint", "result"}


class TestAuditLog:
    """Stored log ordering, cap and pagination."""

    def test_most_recent_first(self, storage):
        for n in range(3):
            append_entry(storage, _entry(n))
        entries, total = get_audit_log(storage)
        assert total == 3
        assert [e["version"] for e in entries] == ["1.0.2", "1.0.1", "1.0.0"]

    def test_cap(self, storage):
        for n in range(7):
            append_entry(storage, _entry(n), max_entries=5)
        entries = get_json(storage, AUDIT_KEY)
        assert len(entries) == 5
        assert entries[0]["version"] == "1.0.6"
        assert entries[-1]["version"] == "1.0.2"

    def test_pagination(self, storage):
        for n in range(10):
            append_entry(storage, _entry(n))
        entries, total = get_audit_log(storage, limit=3, offset=2)
        assert total == 10
        assert [e["version"] for e in entries] == ["1.0.7", "1.0.6", "1.0.5"]

    def test_empty(self, storage):
        assert get_audit_log(storage) == ([], 0)

    def test_persist_failure_is_logged_not_raised(self, storage, caplog):
        with patch("release_server.audit_logging.update_json", side_effect=OSError("disk full")):
            with patch("release_server.audit_logging._audit_logger", return_value=logging.getLogger("tests.audit")):
                with caplog.at_level(logging.ERROR, logger="tests.audit"):
                    _persist_entry(storage, _entry(1))
        assert "failed to write audit log entry" in caplog.text


class TestJSONFormatter:
    def test_extras_serialised(self):
        record = logging.LogRecord("audit", logging.INFO, __file__, 1, "http_request", (), None)
        record.status_code = 201
        record.obj = object()
        payload = json.loads(JSONFormatter().format(record))
        assert payload["message"] == "http_request"
        assert payload["level"] == "INFO"
        assert payload["status_code"] == 201
        assert isinstance(payload["obj"], str)
