"""
S3-compatible storage backend for release artifacts and metadata.

Features:
- Works against AWS S3 or any S3-compatible endpoint (MinIO, R2, B2)
- Optional key prefix inside the bucket
- Missing objects surface as ``None`` rather than an exception
- Paginated listing

Env vars (see ``config.Settings``):
- S3_BUCKET=lightshell-releases
- AWS_REGION=us-east-1
- AWS_ACCESS_KEY_ID / AWS_SECRET_ACCESS_KEY (optional, falls back to the boto3 chain)
- S3_ENDPOINT=https://minio.internal:9000 (optional)
- S3_PREFIX=optional/prefix (no leading slash)
"""

from __future__ import annotations

import logging
import re
from typing import Any

import boto3
from botocore.exceptions import ClientError

from release_server.storage import BlobSource, StorageBackend, read_all

logger = logging.getLogger(__name__)

_MISSING_CODES = {"NoSuchKey", "404", "NotFound"}
_SEGMENT_RE = re.compile(r"^[A-Za-z0-9_.+\-]+$")


def is_missing(exc: ClientError) -> bool:
    error = exc.response.get("Error", {})
    status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return error.get("Code") in _MISSING_CODES or status == 404


def validate_key(relpath: str) -> str:
    """Normalise a logical key and reject traversal or unexpected characters."""
    rel = relpath.strip().replace("\\", "/").lstrip("/")
    parts = [p for p in rel.split("/") if p]
    if any(p == ".." for p in parts):
        raise ValueError("Invalid storage key: path traversal not allowed")
    for p in parts:
        if not _SEGMENT_RE.match(p):
            raise ValueError("Invalid storage key: contains unexpected characters")
        if len(p) > 255:
            raise ValueError("Invalid storage key: segment too long")
    return "/".join(parts)


class S3Storage(StorageBackend):
    def __init__(
        self,
        bucket: str,
        region: str = "us-east-1",
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        endpoint: str | None = None,
        prefix: str = "",
        client: Any = None,
    ) -> None:
        self.bucket = bucket
        self.prefix = prefix.strip("/")
        if client is None:
            params: dict[str, Any] = {"region_name": region}
            if access_key_id and secret_access_key:
                params["aws_access_key_id"] = access_key_id
                params["aws_secret_access_key"] = secret_access_key
            if endpoint:
                params["endpoint_url"] = endpoint
            client = boto3.client("s3", **params)
        self.client = client
        logger.info("S3 enabled: bucket=%s region=%s prefix=%s endpoint=%s", bucket, region, self.prefix, endpoint)

    def _key(self, relpath: str) -> str:
        key = validate_key(relpath)
        if self.prefix:
            return f"{self.prefix}/{key}" if key else self.prefix
        return key

    def _strip_prefix(self, key: str) -> str:
        if self.prefix and key.startswith(self.prefix + "/"):
            return key[len(self.prefix) + 1:]
        return key

    def put(self, key: str, data: BlobSource, metadata: dict[str, str] | None = None) -> None:
        safe_key = self._key(key)
        body = read_all(data)
        params: dict[str, Any] = {"Bucket": self.bucket, "Key": safe_key, "Body": body}
        if metadata:
            params["Metadata"] = metadata
        logger.info("S3Storage.put: bucket=%s key=%s size=%d", self.bucket, safe_key, len(body))
        try:
            self.client.put_object(**params)
        except ClientError:
            logger.exception("S3 put_object failed: bucket=%s key=%s", self.bucket, safe_key)
            raise

    def get(self, key: str) -> bytes | None:
        safe_key = self._key(key)
        try:
            obj = self.client.get_object(Bucket=self.bucket, Key=safe_key)
        except ClientError as exc:
            if is_missing(exc):
                return None
            logger.exception("S3 get_object failed: bucket=%s key=%s", self.bucket, safe_key)
            raise
        return obj["Body"].read()

    def delete(self, key: str) -> None:
        safe_key = self._key(key)
        try:
            self.client.delete_object(Bucket=self.bucket, Key=safe_key)
        except ClientError as exc:
            if not is_missing(exc):
                raise

    def list(self, prefix: str | None = None) -> list[str]:
        full_prefix = self._key(prefix) if prefix else self.prefix
        # validate_key drops a trailing slash; keep directory-style prefixes intact
        if prefix and prefix.endswith("/"):
            full_prefix += "/"
        elif not prefix and full_prefix:
            full_prefix += "/"
        paginator = self.client.get_paginator("list_objects_v2")
        keys: list[str] = []
        for page in paginator.paginate(Bucket=self.bucket, Prefix=full_prefix):
            for obj in page.get("Contents", []) or []:
                if obj.get("Key"):
                    keys.append(self._strip_prefix(obj["Key"]))
        return sorted(keys)

    def exists(self, key: str) -> bool:
        safe_key = self._key(key)
        try:
            self.client.head_object(Bucket=self.bucket, Key=safe_key)
        except ClientError as exc:
            if is_missing(exc):
                return False
            raise
        return True
