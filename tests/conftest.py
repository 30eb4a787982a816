"""
Shared pytest fixtures for the release server.

Provides temporary storage, signing keys, upload payloads and a Flask test
client wired to local filesystem storage with inline bookkeeping writes.
"""

import gzip
from typing import Any, Dict
from unittest.mock import patch

import pytest

from release_server import crypto
from release_server.app import create_app
from release_server.config import Settings
from release_server.local_storage import LocalStorage
from release_server.metadata import put_json, RELEASES_KEY
from release_server.models import PlatformRelease, Release

API_KEY = "test-api-key-0123456789"
BASE_URL = "https://updates.example.com"
FIXED_PUB_DATE = "2026-01-15T10:00:00.000Z"


# ==================== STORAGE FIXTURES ====================

@pytest.fixture
def storage(tmp_path) -> LocalStorage:
    """Local filesystem storage rooted in a temporary directory."""
    return LocalStorage(tmp_path / "data")


@pytest.fixture
def keypair():
    """Fresh Ed25519 keypair as (private_b64, public_b64)."""
    return crypto.generate_keypair()


# ==================== PAYLOAD FIXTURES ====================

def _make_tarball(size: int = 1024) -> bytes:
    return gzip.compress(b"release-payload" * (size // 15 + 1))


@pytest.fixture
def tarball() -> bytes:
    return _make_tarball()


@pytest.fixture
def make_tarball():
    """Factory for gzip payloads of roughly ``size`` uncompressed bytes."""
    return _make_tarball


@pytest.fixture
def fixed_clock():
    """Pin the publisher clock so callers can sign the server's canonical string."""
    with patch("release_server.publisher.utc_now_iso", return_value=FIXED_PUB_DATE):
        yield FIXED_PUB_DATE


@pytest.fixture
def sign_release(keypair):
    """Sign the canonical manifest for ``{platform: bytes}`` as an uploader would."""

    def _sign(version: str, files: Dict[str, bytes], pub_date: str = FIXED_PUB_DATE, private_key: str = None) -> str:
        digests = {platform: {"sha256": crypto.sha256_hex(data)} for platform, data in files.items()}
        return crypto.sign(crypto.canonical_manifest(version, pub_date, digests), private_key or keypair[0])

    return _sign


@pytest.fixture
def seed_index(storage):
    """Write an index of ``{version: status}`` with one linux-x64 platform each."""

    def _seed(entries: Dict[str, str], created: Dict[str, str] = None) -> Dict[str, Any]:
        index = {}
        for version, status in entries.items():
            release = Release(
                version=version,
                notes=f"notes {version}",
                pub_date=FIXED_PUB_DATE,
                platforms={
                    "linux-x64": PlatformRelease(
                        url=f"{BASE_URL}/releases/{version}/linux-x64.tar.gz",
                        sha256="ab" * 32,
                        size=10,
                    )
                },
                signature="c2lnbmF0dXJl",
                status=status,
                created_at=(created or {}).get(version, FIXED_PUB_DATE),
            )
            index[version] = release.to_dict()
        put_json(storage, RELEASES_KEY, index)
        return index

    return _seed


# ==================== APP FIXTURES ====================

@pytest.fixture
def settings(tmp_path, keypair) -> Settings:
    return Settings(
        storage_backend="local",
        data_dir=str(tmp_path / "data"),
        api_key=API_KEY,
        ed25519_public_key=keypair[1],
        base_url=BASE_URL,
    )


@pytest.fixture
def app(settings, storage):
    """Flask app using the temporary storage and inline background writes."""
    return create_app({
        "TESTING": True,
        "SETTINGS": settings,
        "STORAGE": storage,
        "BACKGROUND_SYNC": True,
    })


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {API_KEY}"}


# ==================== PYTEST MARKERS ====================

def pytest_configure(config):
    config.addinivalue_line("markers", "integration: exercises the Flask app end to end")
