from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

STATUS_ACTIVE = "active"
STATUS_DEPRECATED = "deprecated"

RESULT_SUCCESS = "success"
RESULT_REJECTED = "rejected"


def utc_now_iso() -> str:
    """ISO-8601 UTC timestamp with millisecond precision, e.g. 2026-01-02T03:04:05.678Z."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ---------------------------------------------------------------------------
# Releases
# ---------------------------------------------------------------------------


@dataclass
class PlatformRelease:
    url: str
    sha256: str
    size: int

    def to_dict(self) -> dict[str, Any]:
        return {"url": self.url, "sha256": self.sha256, "size": self.size}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> PlatformRelease:
        return cls(url=str(raw.get("url", "")), sha256=str(raw["sha256"]), size=int(raw.get("size", 0)))


@dataclass
class Release:
    version: str
    notes: str
    pub_date: str
    platforms: dict[str, PlatformRelease]
    signature: str
    status: str = STATUS_ACTIVE
    created_at: str = field(default_factory=utc_now_iso)
    download_count: int = 0

    @property
    def is_active(self) -> bool:
        return self.status == STATUS_ACTIVE

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "notes": self.notes,
            "pub_date": self.pub_date,
            "platforms": {name: p.to_dict() for name, p in self.platforms.items()},
            "signature": self.signature,
            "status": self.status,
            "created_at": self.created_at,
            "download_count": self.download_count,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Release:
        platforms = raw.get("platforms") or {}
        return cls(
            version=str(raw["version"]),
            notes=str(raw.get("notes") or ""),
            pub_date=str(raw.get("pub_date", "")),
            platforms={name: PlatformRelease.from_dict(p) for name, p in platforms.items()},
            signature=str(raw.get("signature", "")),
            status=str(raw.get("status", STATUS_ACTIVE)),
            created_at=str(raw.get("created_at", "")),
            download_count=int(raw.get("download_count") or 0),
        )


# ---------------------------------------------------------------------------
# Bookkeeping records
# ---------------------------------------------------------------------------


@dataclass
class AuditEntry:
    timestamp: str
    action: str
    ip: str
    api_key_fingerprint: str
    result: str
    version: str | None = None
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "timestamp": self.timestamp,
            "action": self.action,
            "ip": self.ip,
            "apiKeyFingerprint": self.api_key_fingerprint,
            "result": self.result,
        }
        if self.version is not None:
            payload["version"] = self.version
        if self.reason is not None:
            payload["reason"] = self.reason
        return payload


@dataclass
class DownloadStat:
    version: str
    platform: str
    timestamp: str

    def to_dict(self) -> dict[str, Any]:
        return {"version": self.version, "platform": self.platform, "timestamp": self.timestamp}


@dataclass
class ServerMeta:
    public_key: str = ""
    api_key_hash: str = ""
    created_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {"publicKey": self.public_key, "apiKeyHash": self.api_key_hash, "createdAt": self.created_at}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> ServerMeta:
        return cls(
            public_key=str(raw.get("publicKey") or ""),
            api_key_hash=str(raw.get("apiKeyHash") or ""),
            created_at=str(raw.get("createdAt") or utc_now_iso()),
        )
