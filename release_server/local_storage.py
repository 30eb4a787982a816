from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from release_server.storage import BlobSource, StorageBackend, read_all

logger = logging.getLogger(__name__)


class PathTraversalError(ValueError):
    pass


class LocalStorage(StorageBackend):
    """Filesystem backend rooted at ``data_dir``.

    Keys map to files below the base directory; custom metadata is not kept.
    Writes go through a temporary file and ``os.replace`` so readers never see
    a half-written index.
    """

    def __init__(self, data_dir: str | os.PathLike[str] = "./data") -> None:
        self.base_dir = Path(data_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self._base = os.path.realpath(self.base_dir)

    def _resolve(self, key: str) -> Path:
        resolved = os.path.realpath(os.path.join(self._base, key))
        if resolved != self._base and not resolved.startswith(self._base + os.sep):
            logger.warning("LocalStorage: path traversal denied for key %r", key)
            raise PathTraversalError(f"Path traversal denied: {key}")
        return Path(resolved)

    def put(self, key: str, data: BlobSource, metadata: dict[str, str] | None = None) -> None:
        path = self._resolve(key)
        payload = read_all(data)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(payload)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        logger.debug("LocalStorage.put: key=%s size=%d", key, len(payload))

    def get(self, key: str) -> bytes | None:
        path = self._resolve(key)
        try:
            return path.read_bytes()
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            return None

    def delete(self, key: str) -> None:
        path = self._resolve(key)
        try:
            path.unlink()
        except FileNotFoundError:
            pass

    def list(self, prefix: str | None = None) -> list[str]:
        keys = []
        for path in self.base_dir.rglob("*"):
            if not path.is_file() or path.name.startswith(".tmp-"):
                continue
            key = path.relative_to(self.base_dir).as_posix()
            if prefix and not key.startswith(prefix):
                continue
            keys.append(key)
        return sorted(keys)

    def exists(self, key: str) -> bool:
        return self._resolve(key).is_file()
