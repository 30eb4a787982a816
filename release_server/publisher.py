"""Release publication: validation, hashing, signature verification, index update.

Ordering matters: every check runs before the first storage write, so a
rejected upload leaves no artifacts, index entries or manifests behind.
"""
from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from release_server import crypto, validation
from release_server.errors import ConflictError, NotFoundError, SignatureError, ValidationError
from release_server.metadata import (
    STATS_KEY,
    artifact_key,
    get_json,
    load_index,
    manifest_key,
    put_json,
    update_index,
)
from release_server.models import STATUS_ACTIVE, STATUS_DEPRECATED, PlatformRelease, Release, utc_now_iso
from release_server.storage import BlobSource, StorageBackend, read_all

logger = logging.getLogger(__name__)


@dataclass
class UploadedFile:
    filename: str
    data: BlobSource


@dataclass
class PublishResult:
    release: Release
    verified: bool

    @property
    def platforms(self) -> list[str]:
        return list(self.release.platforms)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": "published",
            "version": self.release.version,
            "platforms": self.platforms,
            "signature": self.release.signature[:16] + "...",
        }


@dataclass
class _Artifact:
    filename: str
    platform: str
    data: bytes
    sha256: str = field(default="")


def _check(result: validation.ValidationResult, prefix: str = "") -> None:
    if result.valid:
        return
    message = f"{prefix}{result.error}"
    if result.code in (validation.EXISTS, validation.NOT_NEWER):
        raise ConflictError(message)
    raise ValidationError(message)


class ReleasePublisher:
    """Creates and deprecates releases against a storage backend.

    ``public_key`` is a string or a zero-argument callable returning the
    currently registered Ed25519 key; an empty value disables verification.
    """

    def __init__(self, storage: StorageBackend, base_url: str, public_key: str | Callable[[], str | None] | None = None):
        self.storage = storage
        self.base_url = base_url.rstrip("/")
        self._public_key = public_key

    @property
    def public_key(self) -> str:
        value = self._public_key() if callable(self._public_key) else self._public_key
        return value or ""

    def artifact_url(self, version: str, platform: str) -> str:
        return f"{self.base_url}/releases/{version}/{platform}.tar.gz"

    def _collect(self, files: Sequence[UploadedFile]) -> list[_Artifact]:
        artifacts: list[_Artifact] = []
        seen: set[str] = set()
        for upload in files:
            _check(validation.validate_filename(upload.filename))
            data = read_all(upload.data)
            _check(validation.validate_file_size(len(data)))
            _check(validation.validate_gzip(data[:2]), prefix=f"{upload.filename}: ")
            platform = validation.platform_from_filename(upload.filename)
            if platform is None:
                raise ValidationError(f"Cannot derive platform from filename: {upload.filename}")
            if platform in seen:
                raise ValidationError(f"Duplicate platform: {platform}")
            seen.add(platform)
            artifacts.append(_Artifact(upload.filename, platform, data))

        if not artifacts:
            raise ValidationError("No files uploaded")
        _check(validation.validate_file_count(len(artifacts)))
        return artifacts

    def publish(self, version: str, notes: str, signature: str, files: Sequence[UploadedFile]) -> PublishResult:
        version = (version or "").strip()
        signature = (signature or "").strip()
        if not version:
            raise ValidationError("Missing version")
        if not signature:
            raise ValidationError("Missing signature")

        _check(validation.validate_version(version, self.storage))
        artifacts = self._collect(files)

        platforms: dict[str, PlatformRelease] = {}
        for artifact in artifacts:
            artifact.sha256 = crypto.sha256_hex(artifact.data)
            platforms[artifact.platform] = PlatformRelease(
                url=self.artifact_url(version, artifact.platform),
                sha256=artifact.sha256,
                size=len(artifact.data),
            )

        # The signed string is built from digests computed here, never from
        # values supplied with the upload.
        pub_date = utc_now_iso()
        canonical = crypto.canonical_manifest(version, pub_date, platforms)
        public_key = self.public_key
        if public_key:
            if not crypto.verify(canonical, signature, public_key):
                logger.warning("Signature verification failed for version %s", version)
                raise SignatureError(
                    "Invalid Ed25519 signature. Manifest was not signed with the registered public key."
                )
            verified = True
        else:
            logger.warning("No Ed25519 public key registered; publishing %s WITHOUT signature verification", version)
            verified = False

        for artifact in artifacts:
            self.storage.put(
                artifact_key(version, artifact.platform),
                artifact.data,
                {"sha256": artifact.sha256, "content-type": "application/gzip"},
            )

        release = Release(
            version=version,
            notes=notes or "",
            pub_date=pub_date,
            platforms=platforms,
            signature=signature,
            status=STATUS_ACTIVE,
            created_at=utc_now_iso(),
            download_count=0,
        )

        def _insert(index: dict[str, Release]) -> None:
            # re-checked under the index lock; a concurrent publish may have won
            if version in index:
                raise ConflictError(f"Version {version} already exists. Releases are immutable.")
            index[version] = release

        update_index(self.storage, _insert)
        put_json(self.storage, manifest_key(version), release.to_dict())

        logger.info(
            "Published release %s platforms=%s verified=%s", version, ",".join(sorted(platforms)), verified
        )
        return PublishResult(release=release, verified=verified)

    def deprecate(self, version: str) -> Release:
        index = load_index(self.storage) or {}
        existing = index.get(version)
        if existing is None:
            raise NotFoundError("Release not found")
        if existing.status == STATUS_DEPRECATED:
            raise ConflictError("Release already deprecated")

        def _mark(current: dict[str, Release]) -> None:
            release = current.get(version)
            if release is None:
                raise NotFoundError("Release not found")
            release.status = STATUS_DEPRECATED

        updated = update_index(self.storage, _mark)
        logger.info("Deprecated release %s; artifacts preserved", version)
        return updated[version]

    def list_releases(self) -> list[Release]:
        """All releases, newest-created first, with download counts from the stat log."""
        index = load_index(self.storage) or {}
        stats = get_json(self.storage, STATS_KEY) or []
        counts = Counter(stat.get("version") for stat in stats)
        releases = list(index.values())
        for release in releases:
            release.download_count = counts.get(release.version, release.download_count)
        releases.sort(key=lambda r: r.created_at, reverse=True)
        return releases
