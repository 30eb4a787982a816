"""
Cloud bucket binding backend.

Wraps an already-bound bucket object (a boto3 ``s3.Bucket`` resource) rather
than a low-level client. With Cloudflare R2 the binding points at the account
endpoint ``https://{R2_ACCOUNT_ID}.r2.cloudflarestorage.com``.

Env vars (see ``config.Settings``):
- RELEASES_BUCKET=bucket-name
- R2_ACCOUNT_ID=... or R2_ENDPOINT=https://...
- AWS_ACCESS_KEY_ID / AWS_SECRET_ACCESS_KEY (R2 API token)
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import boto3
from botocore.exceptions import ClientError

from release_server.errors import ConfigurationError
from release_server.s3_adapter import is_missing, validate_key
from release_server.storage import BlobSource, StorageBackend, read_all

if TYPE_CHECKING:
    from release_server.config import Settings

logger = logging.getLogger(__name__)


class BucketStorage(StorageBackend):
    def __init__(self, bucket: Any) -> None:
        self.bucket = bucket

    @classmethod
    def from_settings(cls, settings: Settings) -> BucketStorage:
        endpoint = settings.r2_endpoint
        if not endpoint and settings.r2_account_id:
            endpoint = f"https://{settings.r2_account_id}.r2.cloudflarestorage.com"
        if not endpoint:
            raise ConfigurationError("R2 storage requires R2_ENDPOINT or R2_ACCOUNT_ID")
        resource = boto3.resource(
            "s3",
            endpoint_url=endpoint,
            aws_access_key_id=settings.aws_access_key_id,
            aws_secret_access_key=settings.aws_secret_access_key,
            region_name="auto",
        )
        logger.info("Bucket binding enabled: bucket=%s endpoint=%s", settings.releases_bucket, endpoint)
        return cls(resource.Bucket(settings.releases_bucket))

    def put(self, key: str, data: BlobSource, metadata: dict[str, str] | None = None) -> None:
        params: dict[str, Any] = {"Key": validate_key(key), "Body": read_all(data)}
        if metadata:
            params["Metadata"] = metadata
        self.bucket.put_object(**params)

    def get(self, key: str) -> bytes | None:
        try:
            response = self.bucket.Object(validate_key(key)).get()
        except ClientError as exc:
            if is_missing(exc):
                return None
            raise
        return response["Body"].read()

    def delete(self, key: str) -> None:
        self.bucket.Object(validate_key(key)).delete()

    def list(self, prefix: str | None = None) -> list[str]:
        objects = self.bucket.objects.filter(Prefix=prefix) if prefix else self.bucket.objects.all()
        return sorted(obj.key for obj in objects)

    def exists(self, key: str) -> bool:
        try:
            self.bucket.Object(validate_key(key)).load()
        except ClientError as exc:
            if is_missing(exc):
                return False
            raise
        return True
