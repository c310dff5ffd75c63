from typing import Any, Optional
from urllib.parse import quote

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from django.conf import settings

from .errors import ResolutionFailed, StorageError


def get_s3_client():
    """
    SDK client for server-side upload/delete.
    """
    session = boto3.session.Session(
        aws_access_key_id=settings.S3_ACCESS_KEY,
        aws_secret_access_key=settings.S3_SECRET_KEY,
        region_name=settings.S3_REGION,
    )
    return session.client(
        "s3",
        endpoint_url=settings.S3_ENDPOINT_URL,  # e.g. http://127.0.0.1:9000
        config=BotoConfig(
            s3={"addressing_style": "path"},
            signature_version="s3v4",
        ),
    )


def get_presign_client():
    """
    Separate client for generating presigned URLs that the transcode service will call.
    Uses S3_PUBLIC_ENDPOINT so the URL host matches what the outside world reaches.
    """
    session = boto3.session.Session(
        aws_access_key_id=settings.S3_ACCESS_KEY,
        aws_secret_access_key=settings.S3_SECRET_KEY,
        region_name=settings.S3_REGION,
    )
    return session.client(
        "s3",
        endpoint_url=settings.S3_PUBLIC_ENDPOINT,
        config=BotoConfig(
            s3={"addressing_style": "path"},
            signature_version="s3v4",  # ensures AWS4 signing
        ),
    )


class ObjectStore:
    """Bucket-scoped adapter over S3/MinIO."""

    def __init__(
        self,
        bucket: str,
        *,
        public_endpoint: Optional[str] = None,
        client: Any = None,
        presign_client: Any = None,
        signed_urls: bool = False,
        presign_expires: Optional[int] = None,
    ) -> None:
        self.bucket = bucket
        self.public_endpoint = public_endpoint if public_endpoint is not None else settings.S3_PUBLIC_ENDPOINT
        self.signed_urls = signed_urls
        self.presign_expires = presign_expires or settings.S3_PRESIGN_EXPIRE_SECONDS
        self._client = client
        self._presign_client = presign_client

    @property
    def client(self):
        if self._client is None:
            self._client = get_s3_client()
        return self._client

    @property
    def presign_client(self):
        if self._presign_client is None:
            self._presign_client = get_presign_client()
        return self._presign_client

    def public_url(self, path: str) -> str:
        """
        URL the transcode service fetches the source from.

        Direct object URL against the public endpoint by default; a presigned GET
        when signed_urls is on (private buckets).
        """
        key = (path or "").lstrip("/")
        if not self.bucket or not key:
            raise ResolutionFailed(f"cannot build URL for bucket={self.bucket!r} path={path!r}")

        if self.signed_urls:
            try:
                return self.presign_client.generate_presigned_url(
                    ClientMethod="get_object",
                    Params={"Bucket": self.bucket, "Key": key},
                    ExpiresIn=self.presign_expires,
                    HttpMethod="GET",
                )
            except (BotoCoreError, ClientError) as e:
                raise ResolutionFailed(f"could not presign {key}: {e}")

        base = (self.public_endpoint or "").rstrip("/")
        if not base:
            raise ResolutionFailed("S3_PUBLIC_ENDPOINT is not configured")
        return f"{base}/{quote(self.bucket)}/{quote(key)}"

    def upload(self, path: str, data: bytes, content_type: str = "video/mp4") -> None:
        """
        Single PUT of the whole body; overwrites an existing object.

        S3 only exposes an object once the PUT completes, so readers never see a partial file.
        """
        try:
            self.client.put_object(Bucket=self.bucket, Key=path, Body=data, ContentType=content_type)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"upload of {path} failed: {e}")

    def remove(self, path: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=path)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"delete of {path} failed: {e}")
