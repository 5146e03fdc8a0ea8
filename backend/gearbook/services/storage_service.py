# Overview: S3 blob store for movement photos with presigned, expiring download URLs.

from __future__ import annotations

import uuid

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from ..validation import NotFoundError, ValidationError

ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/png", "image/webp", "image/heic"}
MAX_UPLOAD_BYTES = 10 * 1024 * 1024

_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/heic": ".heic",
}

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


class S3BlobStore:
    """
    Opaque key -> bytes store backed by one S3 bucket.

    Keys are relative POSIX paths ("movements/ab12.jpg"). Downloads go
    straight to the bucket through presigned GET URLs, so the API never
    streams photo bytes itself. Path-style addressing keeps MinIO and other
    S3-compatible endpoints working.
    """

    def __init__(
        self,
        bucket: str,
        *,
        endpoint_url: str | None = None,
        region_name: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        ttl_seconds: int = 3600,
        client=None,
    ):
        self.bucket = bucket
        self.ttl_seconds = ttl_seconds
        self._client = client
        self._client_kwargs = {
            "endpoint_url": endpoint_url or None,
            "region_name": region_name or None,
            "aws_access_key_id": access_key_id or None,
            "aws_secret_access_key": secret_access_key or None,
        }

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client(
                "s3",
                config=BotoConfig(signature_version="s3v4", s3={"addressing_style": "path"}),
                **self._client_kwargs,
            )
        return self._client

    @staticmethod
    def _check_key(key: str) -> str:
        if not key or key.startswith("/") or "\\" in key or ".." in key.split("/"):
            raise ValidationError("Invalid blob key")
        return key

    @staticmethod
    def new_key(prefix: str, mime_type: str) -> str:
        return f"{prefix}/{uuid.uuid4().hex}{_EXTENSIONS.get(mime_type, '')}"

    def upload(self, key: str, data: bytes, mime_type: str) -> dict:
        if mime_type not in ALLOWED_IMAGE_TYPES:
            raise ValidationError(
                "Unsupported file type",
                details={"allowed": sorted(ALLOWED_IMAGE_TYPES)},
            )
        if not data:
            raise ValidationError("Empty upload")
        if len(data) > MAX_UPLOAD_BYTES:
            raise ValidationError("File too large", details={"max_bytes": MAX_UPLOAD_BYTES})

        self.client.put_object(Bucket=self.bucket, Key=self._check_key(key), Body=data, ContentType=mime_type)
        return {"key": key, "mime_type": mime_type, "size": len(data)}

    def exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=self._check_key(key))
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _MISSING_CODES:
                return False
            raise
        return True

    def read(self, key: str) -> bytes:
        try:
            obj = self.client.get_object(Bucket=self.bucket, Key=self._check_key(key))
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _MISSING_CODES:
                raise NotFoundError("Blob not found", details={"key": key})
            raise
        return obj["Body"].read()

    def delete(self, key: str) -> bool:
        """S3 deletes are idempotent; report whether the object was there."""
        if not self.exists(key):
            return False
        self.client.delete_object(Bucket=self.bucket, Key=key)
        return True

    def get_signed_url(self, key: str, *, expires_in: int | None = None) -> str:
        return self.client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": self._check_key(key)},
            ExpiresIn=expires_in or self.ttl_seconds,
        )

    def check_health(self) -> dict:
        try:
            self.client.head_bucket(Bucket=self.bucket)
        except (ClientError, BotoCoreError) as e:
            return {"status": "unhealthy", "error": f"Blob bucket is not reachable: {e.__class__.__name__}"}
        return {"status": "healthy", "details": {"bucket": self.bucket}}
