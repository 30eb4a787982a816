from __future__ import annotations

import functools
from collections.abc import Mapping
from typing import Any

from release_server.errors import NotFoundError
from release_server.models import Release
from release_server.validation import compare_semver

LATEST_CACHE_CONTROL = "public, max-age=300"


def newest_active(index: Mapping[str, Release] | None) -> Release:
    """Highest-precedence active release; raises NotFoundError when there is none."""
    if not index:
        raise NotFoundError("No releases found")
    active = [release for release in index.values() if release.is_active]
    if not active:
        raise NotFoundError("No active releases")
    active.sort(key=functools.cmp_to_key(lambda a, b: compare_semver(b.version, a.version)))
    return active[0]


def public_manifest(release: Release, base_url: str) -> dict[str, Any]:
    """Project a release onto the public update manifest, without internal fields."""
    base_url = base_url.rstrip("/")
    return {
        "version": release.version,
        "notes": release.notes,
        "pub_date": release.pub_date,
        "platforms": {
            platform: {
                "url": f"{base_url}/releases/{release.version}/{platform}.tar.gz",
                "sha256": info.sha256,
            }
            for platform, info in release.platforms.items()
        },
        "signature": release.signature,
    }


def resolve_latest(index: Mapping[str, Release] | None, base_url: str) -> dict[str, Any]:
    return public_manifest(newest_active(index), base_url)
