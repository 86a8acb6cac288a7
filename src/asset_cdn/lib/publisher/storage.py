"""S3 storage operations for asset publishing.

Provides boto3 client creation, HEAD lookups, public-read uploads and
bucket validation for Amazon S3 and S3-compatible stores (R2, MinIO).
"""

from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError
from loguru import logger

from asset_cdn.lib.publisher.errors import RemoteLookupError
from asset_cdn.lib.publisher.types import AssetHeaders, RemoteObjectMeta

# Error codes S3 and compatible stores use for a missing object on HEAD/GET
NOT_FOUND_CODES = frozenset({"404", "NotFound", "NoSuchKey"})


def create_s3_client(
    access_key_id: str,
    secret_access_key: str,
    region: str | None = None,
    endpoint_url: str | None = None,
) -> Any:
    """Create a boto3 S3 client using SigV4.

    Args:
        access_key_id: Access key ID.
        secret_access_key: Secret access key.
        region: Bucket region, or None for the SDK default.
        endpoint_url: Endpoint override for S3-compatible stores.

    Returns:
        Configured boto3 S3 client.
    """
    config = Config(
        signature_version="s3v4",
        request_checksum_calculation="when_required",
        response_checksum_validation="when_required",
    )

    return boto3.client(
        "s3",
        endpoint_url=endpoint_url,
        aws_access_key_id=access_key_id,
        aws_secret_access_key=secret_access_key,
        region_name=region,
        config=config,
    )


def is_not_found(exc: ClientError) -> bool:
    """Return True when a ClientError means the object does not exist."""
    return str(exc.response.get("Error", {}).get("Code", "")) in NOT_FOUND_CODES


class S3ObjectStore:
    """Object store backed by one bucket of a boto3 S3 client.

    The boto3 client is thread-safe, so one store is shared by every job;
    callers run the blocking methods through ``asyncio.to_thread``.

    Args:
        client: boto3 S3 client.
        bucket: Bucket name.
    """

    def __init__(self, client: Any, bucket: str) -> None:
        self.client = client
        self.bucket = bucket

    def head(self, key: str) -> RemoteObjectMeta:
        """Look up an object's existence and last-modified time.

        Raises:
            RemoteLookupError: For any lookup failure other than not-found.
        """
        try:
            response = self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if is_not_found(exc):
                return RemoteObjectMeta(exists=False)
            msg = f"lookup of s3://{self.bucket}/{key} failed: {exc}"
            raise RemoteLookupError(msg, key) from exc
        return RemoteObjectMeta(exists=True, last_modified=response["LastModified"])

    def put(self, key: str, body: bytes, headers: AssetHeaders) -> None:
        """Store an object with public-read visibility and the given headers."""
        self.client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=body,
            ContentType=headers.content_type,
            CacheControl=headers.cache_control,
            ContentEncoding=headers.content_encoding,
            Expires=headers.expires,
            ACL="public-read",
        )


def validate_config(client: Any, bucket: str) -> None:
    """Verify bucket access before publishing.

    Args:
        client: boto3 S3 client.
        bucket: Bucket name to validate.

    Raises:
        ClientError: If the bucket doesn't exist or credentials are invalid.
    """
    try:
        client.head_bucket(Bucket=bucket)
        logger.debug("Bucket s3://{} is accessible", bucket)
    except ClientError as exc:
        error_code = exc.response["Error"]["Code"]
        if error_code == "404":
            msg = f"Bucket '{bucket}' not found. Verify S3_BUCKET is correct."
            raise ClientError(exc.response, "HeadBucket") from ValueError(msg)
        if error_code in ("403", "401"):
            msg = f"Access denied to bucket '{bucket}'. Verify S3 credentials."
            raise ClientError(exc.response, "HeadBucket") from PermissionError(msg)
        raise
