"""Object store gateway for raw uploaded files."""

from __future__ import annotations

from typing import Any, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from docqa.core.config import Settings
from docqa.core.errors import DependencyError, ObjectNotFoundError
from docqa.core.logging import get_logger, log_context

logger = get_logger(__name__)

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


class ObjectStore(Protocol):
    def get(self, bucket: str, key: str) -> bytes: ...

    def head(self, bucket: str, key: str) -> int: ...


class S3ObjectStore:
    """S3 (or MinIO / LocalStack) backed object store.

    The boto3 client is created on first use; configuration errors surface
    on that first call.
    """

    def __init__(
        self,
        region: str,
        endpoint_url: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
    ) -> None:
        self.region = region
        self.endpoint_url = endpoint_url
        self._access_key = access_key
        self._secret_key = secret_key
        self._client: Any | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "S3ObjectStore":
        return cls(
            region=settings.s3_region,
            endpoint_url=settings.s3_endpoint_url,
            access_key=settings.s3_access_key,
            secret_key=settings.s3_secret_key,
        )

    @property
    def client(self) -> Any:
        if self._client is None:
            kwargs: dict[str, Any] = {"region_name": self.region}
            if self.endpoint_url:
                kwargs["endpoint_url"] = self.endpoint_url
                # path-style addressing for MinIO / LocalStack
                kwargs["config"] = Config(s3={"addressing_style": "path"})
            if self._access_key and self._secret_key:
                kwargs["aws_access_key_id"] = self._access_key
                kwargs["aws_secret_access_key"] = self._secret_key
            self._client = boto3.client("s3", **kwargs)
        return self._client

    def head(self, bucket: str, key: str) -> int:
        """Size in bytes of an existing object."""
        try:
            response = self.client.head_object(Bucket=bucket, Key=key)
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in _NOT_FOUND_CODES:
                raise ObjectNotFoundError(f"Object not found: s3://{bucket}/{key}", provider="s3") from exc
            logger.error("S3 head failed", extra=log_context(bucket=bucket, key=key, error_code=code))
            raise DependencyError(f"S3 error checking {key}: {code}", provider="s3") from exc
        except BotoCoreError as exc:
            raise DependencyError(f"S3 unavailable: {exc}", provider="s3") from exc
        return int(response.get("ContentLength") or 0)

    def get(self, bucket: str, key: str) -> bytes:
        try:
            response = self.client.get_object(Bucket=bucket, Key=key)
            body = response["Body"].read()
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in _NOT_FOUND_CODES:
                logger.warning("Object not found", extra=log_context(bucket=bucket, key=key))
                raise ObjectNotFoundError(f"Object not found: s3://{bucket}/{key}", provider="s3") from exc
            logger.error("S3 download failed", extra=log_context(bucket=bucket, key=key, error_code=code))
            raise DependencyError(f"S3 error downloading {key}: {code}", provider="s3") from exc
        except BotoCoreError as exc:
            raise DependencyError(f"S3 unavailable: {exc}", provider="s3") from exc
        logger.debug("Downloaded object", extra=log_context(bucket=bucket, key=key, size=len(body)))
        return body


__all__ = ["ObjectStore", "S3ObjectStore"]
