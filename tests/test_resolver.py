"""
Tests for latest-release resolution (release_server/resolver.py).
"""

import pytest

from release_server.errors import NotFoundError
from release_server.metadata import load_index
from release_server.resolver import newest_active, public_manifest, resolve_latest

BASE_URL = "https://cdn.example.com"


class TestNewestActive:
    def test_skips_deprecated_release(self, storage, seed_index):
        """A deprecated higher version is never served."""
        seed_index({"1.0.0": "active", "1.2.0": "deprecated", "1.1.0": "active"})
        assert newest_active(load_index(storage)).version == "1.1.0"

    def test_numeric_ordering(self, storage, seed_index):
        seed_index({"1.9.0": "active", "1.10.0": "active", "1.2.0": "active"})
        assert newest_active(load_index(storage)).version == "1.10.0"

    def test_no_index(self):
        with pytest.raises(NotFoundError, match="No releases found"):
            newest_active(None)

    def test_empty_index(self):
        with pytest.raises(NotFoundError, match="No releases found"):
            newest_active({})

    def test_all_deprecated(self, storage, seed_index):
        seed_index({"1.0.0": "deprecated"})
        with pytest.raises(NotFoundError, match="No active releases"):
            newest_active(load_index(storage))


class TestPublicManifest:
    def test_shape(self, storage, seed_index):
        seed_index({"1.0.0": "active"})
        manifest = resolve_latest(load_index(storage), BASE_URL)
        assert manifest == {
            "version": "1.0.0",
            "notes": "notes 1.0.0",
            "pub_date": "2026-01-15T10:00:00.000Z",
            "platforms": {
                "linux-x64": {
                    "url": f"{BASE_URL}/releases/1.0.0/linux-x64.tar.gz",
                    "sha256": "ab" * 32,
                }
            },
            "signature": "c2lnbmF0dXJl",
        }

    def test_url_follows_current_base_url(self, storage, seed_index):
        """URLs are derived from the base URL at request time, not the stored value."""
        seed_index({"1.0.0": "active"})
        release = load_index(storage)["1.0.0"]
        manifest = public_manifest(release, "https://mirror.example.org/")
        assert manifest["platforms"]["linux-x64"]["url"] == "https://mirror.example.org/releases/1.0.0/linux-x64.tar.gz"

    def test_internal_fields_omitted(self, storage, seed_index):
        seed_index({"1.0.0": "active"})
        manifest = resolve_latest(load_index(storage), BASE_URL)
        for key in ("status", "created_at", "download_count"):
            assert key not in manifest
        assert "size" not in manifest["platforms"]["linux-x64"]
