from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any

from release_server.background import BackgroundWriter
from release_server.errors import GoneError, NotFoundError
from release_server.metadata import STATS_KEY, get_json, load_index, update_json
from release_server.models import STATUS_DEPRECATED, DownloadStat, utc_now_iso
from release_server.storage import StorageBackend

logger = logging.getLogger(__name__)

MAX_STATS = 10_000
DOWNLOAD_CACHE_CONTROL = "public, max-age=86400, immutable"

_CONTENT_TYPES = (
    (".tar.gz", "application/gzip"),
    (".gz", "application/gzip"),
    (".json", "application/json"),
)


def content_type_for(filename: str) -> str:
    for suffix, content_type in _CONTENT_TYPES:
        if filename.endswith(suffix):
            return content_type
    return "application/octet-stream"


@dataclass
class Download:
    filename: str
    data: bytes
    content_type: str

    @property
    def size(self) -> int:
        return len(self.data)


def record_download(storage: StorageBackend, version: str, platform: str, max_entries: int = MAX_STATS) -> None:
    """Append one DownloadStat, keeping only the most recent ``max_entries``."""
    stat = DownloadStat(version=version, platform=platform, timestamp=utc_now_iso())

    def _append(stats: list[dict[str, Any]]) -> list[dict[str, Any]]:
        stats.append(stat.to_dict())
        return stats[-max_entries:]

    update_json(storage, STATS_KEY, _append, list)


def aggregate_stats(storage: StorageBackend) -> dict[str, Any]:
    stats = get_json(storage, STATS_KEY) or []
    by_version: dict[str, int] = defaultdict(int)
    by_platform: dict[str, int] = defaultdict(int)
    by_day: dict[str, int] = defaultdict(int)
    for stat in stats:
        by_version[stat.get("version", "")] += 1
        by_platform[stat.get("platform", "")] += 1
        by_day[str(stat.get("timestamp", "")).split("T")[0]] += 1
    return {
        "total": len(stats),
        "byVersion": dict(by_version),
        "byPlatform": dict(by_platform),
        "byDay": dict(by_day),
    }


class DownloadTracker:
    def __init__(self, storage: StorageBackend, background: BackgroundWriter) -> None:
        self.storage = storage
        self.background = background

    def open(self, version: str, filename: str, record: bool = True) -> Download:
        """Load an artifact of an active release; ``record=False`` skips the download stat."""
        index = load_index(self.storage) or {}
        release = index.get(version)
        if release is None:
            raise NotFoundError("Release not found")
        if release.status == STATUS_DEPRECATED:
            raise GoneError("Release has been deprecated")

        if "/" in filename or "\\" in filename or filename in (".", ".."):
            raise NotFoundError("File not found")
        try:
            data = self.storage.get(f"releases/{version}/{filename}")
        except ValueError:
            # key rejected by the backend (traversal or unsupported characters)
            data = None
        if data is None:
            raise NotFoundError("File not found")

        platform = filename[: -len(".tar.gz")] if filename.endswith(".tar.gz") else filename
        if record:
            self.background.submit(record_download, self.storage, version, platform)
        return Download(filename=filename, data=data, content_type=content_type_for(filename))
