"""
Tests for JSON records on storage (release_server/metadata.py) and the models they hold.
"""

import json
from concurrent.futures import ThreadPoolExecutor

from release_server.metadata import (
    RELEASES_KEY,
    SERVER_KEY,
    artifact_key,
    get_json,
    load_index,
    load_server_meta,
    manifest_key,
    put_json,
    update_index,
    update_json,
    update_server_meta,
)
from release_server.models import PlatformRelease, Release, ServerMeta, utc_now_iso


def _release(version: str) -> Release:
    return Release(
        version=version,
        notes="",
        pub_date="2026-01-01T00:00:00.000Z",
        platforms={"darwin-arm64": PlatformRelease(url="u", sha256="cd" * 32, size=3)},
        signature="sig",
    )


class TestKeys:
    def test_layout(self):
        assert artifact_key("1.0.0", "darwin-arm64") == "releases/1.0.0/darwin-arm64.tar.gz"
        assert manifest_key("1.0.0") == "releases/1.0.0/manifest.json"


class TestJsonRecords:
    def test_put_json_is_indented(self, storage):
        put_json(storage, "meta/x.json", {"a": 1})
        assert storage.get("meta/x.json") == json.dumps({"a": 1}, indent=2).encode()
        assert get_json(storage, "meta/x.json") == {"a": 1}

    def test_get_json_missing(self, storage):
        assert get_json(storage, "meta/none.json") is None

    def test_update_json_in_place_and_replacement(self, storage):
        update_json(storage, "meta/list.json", lambda items: items.append(1), list)
        update_json(storage, "meta/list.json", lambda items: items + [2], list)
        assert get_json(storage, "meta/list.json") == [1, 2]

    def test_concurrent_updates_are_serialised(self, storage):
        """Appends from many threads are all kept."""
        with ThreadPoolExecutor(max_workers=8) as pool:
            for n in range(40):
                pool.submit(update_json, storage, "meta/counter.json", lambda items, n=n: items.append(n), list)
        assert sorted(get_json(storage, "meta/counter.json")) == list(range(40))


class TestIndex:
    def test_load_index_absent(self, storage):
        assert load_index(storage) is None

    def test_update_index(self, storage):
        def _add(index):
            index["1.0.0"] = _release("1.0.0")

        updated = update_index(storage, _add)
        assert list(updated) == ["1.0.0"]
        assert get_json(storage, RELEASES_KEY)["1.0.0"]["platforms"]["darwin-arm64"]["sha256"] == "cd" * 32
        restored = load_index(storage)["1.0.0"]
        assert restored.platforms["darwin-arm64"].size == 3
        assert restored.status == "active"


class TestServerMeta:
    def test_roundtrip_uses_camel_case(self, storage):
        update_server_meta(storage, lambda meta: setattr(meta, "api_key_hash", "ab" * 32))
        raw = get_json(storage, SERVER_KEY)
        assert raw["apiKeyHash"] == "ab" * 32
        assert raw["publicKey"] == ""
        assert "createdAt" in raw
        assert load_server_meta(storage).api_key_hash == "ab" * 32

    def test_created_at_preserved(self, storage):
        put_json(storage, SERVER_KEY, ServerMeta(created_at="2025-01-01T00:00:00.000Z").to_dict())
        meta = update_server_meta(storage, lambda meta: setattr(meta, "public_key", "pk"))
        assert meta.created_at == "2025-01-01T00:00:00.000Z"
        assert meta.public_key == "pk"

    def test_absent(self, storage):
        assert load_server_meta(storage) is None


class TestModels:
    def test_utc_now_iso_format(self):
        stamp = utc_now_iso()
        assert stamp.endswith("Z")
        assert len(stamp) == len("2026-01-01T00:00:00.000Z")

    def test_release_from_partial_dict(self):
        release = Release.from_dict({"version": "1.0.0", "platforms": {"linux-x64": {"sha256": "ab"}}})
        assert release.status == "active"
        assert release.is_active
        assert release.download_count == 0
        assert release.platforms["linux-x64"].size == 0
