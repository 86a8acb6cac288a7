"""Gzip compression and retrying uploads of transformed assets."""

from __future__ import annotations

import asyncio
import gzip
from typing import TYPE_CHECKING, Protocol

from botocore.exceptions import BotoCoreError, ClientError

from asset_cdn.lib.publisher.errors import UploadError

if TYPE_CHECKING:
    from loguru import Logger

    from asset_cdn.lib.publisher.types import AssetHeaders

# Errors treated as transient and retried
RETRYABLE_ERRORS: tuple[type[Exception], ...] = (ClientError, BotoCoreError, ConnectionError, TimeoutError)


class ObjectWriter(Protocol):
    """Anything that can store an object under a key."""

    def put(self, key: str, body: bytes, headers: AssetHeaders) -> None: ...


def compress(body: bytes) -> bytes:
    """Gzip-compress a payload with a fixed mtime so output is reproducible."""
    return gzip.compress(body, mtime=0)


class Publisher:
    """Uploads transformed bytes with exponential backoff retry.

    Args:
        store: Object writer (an :class:`S3ObjectStore`).
        log: Bound logger.
        max_attempts: Total attempts before an upload is given up.
        base_delay: Delay in seconds before the first retry; doubles each time.
    """

    def __init__(self, store: ObjectWriter, log: Logger, max_attempts: int = 5, base_delay: float = 1.0) -> None:
        self._store = store
        self._log = log
        self._max_attempts = max_attempts
        self._base_delay = base_delay

    async def publish(self, body: bytes, headers: AssetHeaders, storage_key: str) -> int:
        """Compress and upload one object.

        Args:
            body: Transformed, uncompressed bytes.
            headers: Headers stored with the object.
            storage_key: Destination key.

        Returns:
            Number of attempts made.

        Raises:
            UploadError: If every attempt failed.
        """
        payload = compress(body)
        last_error: Exception | None = None
        self._log.debug("Uploading {} with headers {}", storage_key, headers.as_http())

        for attempt in range(self._max_attempts):
            try:
                await asyncio.to_thread(self._store.put, storage_key, payload, headers)
            except RETRYABLE_ERRORS as exc:
                last_error = exc
                self._log.warning(
                    "Upload of {} failed (attempt {}/{}): {}", storage_key, attempt + 1, self._max_attempts, exc
                )
            else:
                self._log.info("Uploaded {} ({} bytes gzipped)", storage_key, len(payload))
                return attempt + 1

            if attempt < self._max_attempts - 1:
                delay = self._base_delay * (2**attempt)
                self._log.debug("Upload retry {}/{} in {}s", attempt + 1, self._max_attempts, delay)
                await asyncio.sleep(delay)

        msg = f'unsuccessful upload of "{storage_key}" after {self._max_attempts} attempts: {last_error}'
        raise UploadError(msg, storage_key, attempts=self._max_attempts) from last_error
