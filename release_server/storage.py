"""
Storage backend abstraction for release files and metadata blobs.

Three variants share the same five operations:
- ``local``: files under DATA_DIR (``local_storage.LocalStorage``)
- ``r2``: a cloud bucket binding (``bucket_adapter.BucketStorage``)
- ``s3``: any S3-compatible API (``s3_adapter.S3Storage``)

The variant is chosen once by ``create_storage`` when the app is built.
"""
from __future__ import annotations

import abc
import logging
from collections.abc import Iterable
from typing import IO, TYPE_CHECKING, Union

from release_server.errors import ConfigurationError

if TYPE_CHECKING:
    from release_server.config import Settings

logger = logging.getLogger(__name__)

BlobSource = Union[bytes, bytearray, memoryview, IO[bytes], Iterable[bytes]]

_CHUNK_SIZE = 64 * 1024


def read_all(data: BlobSource) -> bytes:
    """Drain ``data`` into a single bytes object.

    Accepts raw bytes, binary file-like objects (anything with ``read``) and
    iterables of byte chunks. Hashing and size checks need the full payload,
    so streams are always consumed to the end.
    """
    if isinstance(data, bytes):
        return data
    if isinstance(data, (bytearray, memoryview)):
        return bytes(data)
    read = getattr(data, "read", None)
    if callable(read):
        chunks: list[bytes] = []
        while True:
            chunk = read(_CHUNK_SIZE)
            if not chunk:
                break
            chunks.append(chunk)
        return b"".join(chunks)
    return b"".join(bytes(chunk) for chunk in data)


class StorageBackend(abc.ABC):
    """Uniform byte-blob store keyed by slash-delimited logical paths."""

    @abc.abstractmethod
    def put(self, key: str, data: BlobSource, metadata: dict[str, str] | None = None) -> None:
        """Store a blob, overwriting any existing value."""

    @abc.abstractmethod
    def get(self, key: str) -> bytes | None:
        """Return the blob, or None when the key does not exist."""

    @abc.abstractmethod
    def delete(self, key: str) -> None:
        """Remove a key. Missing keys are ignored."""

    @abc.abstractmethod
    def list(self, prefix: str | None = None) -> list[str]:
        """Return the sorted keys starting with ``prefix``."""

    @abc.abstractmethod
    def exists(self, key: str) -> bool:
        ...


def create_storage(settings: Settings) -> StorageBackend:
    backend = settings.storage_backend
    if backend == "r2":
        from release_server.bucket_adapter import BucketStorage

        if not settings.releases_bucket:
            raise ConfigurationError("R2 storage requires RELEASES_BUCKET")
        storage: StorageBackend = BucketStorage.from_settings(settings)
    elif backend == "s3":
        from release_server.s3_adapter import S3Storage

        storage = S3Storage(
            bucket=settings.s3_bucket,
            region=settings.aws_region,
            access_key_id=settings.aws_access_key_id,
            secret_access_key=settings.aws_secret_access_key,
            endpoint=settings.s3_endpoint,
            prefix=settings.s3_prefix,
        )
    elif backend == "local":
        from release_server.local_storage import LocalStorage

        storage = LocalStorage(settings.data_dir)
    else:
        raise ConfigurationError(f"Unknown STORAGE_BACKEND: {backend!r}")
    logger.info("Storage backend initialised: %s", type(storage).__name__)
    return storage
