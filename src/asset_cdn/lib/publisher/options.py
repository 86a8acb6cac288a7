"""Read-only options shared by every pipeline component."""

from __future__ import annotations

import posixpath
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

# One tropical year, the cache lifetime of every published object
CACHE_MAX_AGE_SECONDS = 31556926


@dataclass(frozen=True)
class PublishOptions:
    """Configuration value injected into pipeline components.

    Attributes:
        public_dir: Directory asset request paths are rooted at.
        bucket: Destination bucket name.
        prefix: Optional key prefix inside the bucket.
        production: Rewrite stylesheet URLs and render CDN links.
        continue_on_failure: Substitute original bytes when a transform fails,
            and record other job errors instead of aborting the pipeline.
        concurrency: Maximum number of jobs running at once.
        upload_max_attempts: Total upload attempts per object.
        upload_retry_base_delay: Base delay for exponential upload backoff.
        debug_temp_dir: Where unminified script bundles are written, if set.
        optipng_path: optipng executable.
        jpegtran_path: jpegtran executable.
        domain: CDN domain used by the tag renderer.
        ssl: ``True`` (https), ``False`` (http) or ``"relative"``.
        append_prefix: Whether rendered CDN URLs include the prefix.
    """

    public_dir: Path
    bucket: str = ""
    prefix: str = ""
    production: bool = True
    continue_on_failure: bool = False
    concurrency: int = 8
    upload_max_attempts: int = 5
    upload_retry_base_delay: float = 1.0
    debug_temp_dir: Path | None = None
    optipng_path: str = "optipng"
    jpegtran_path: str = "jpegtran"
    domain: str = ""
    ssl: Literal["relative"] | bool = True
    append_prefix: bool = True

    def storage_key(self, file_name: str) -> str:
        """Join the optional prefix and a fingerprinted file name into an object key."""
        prefix = self.prefix.strip("/")
        if not prefix:
            return file_name
        return posixpath.join(prefix, file_name)

    @classmethod
    def from_settings(cls, settings: Any) -> PublishOptions:
        """Build options from application settings."""
        debug_dir = getattr(settings, "debug_temp_dir", None)
        return cls(
            public_dir=Path(settings.public_dir).resolve(),
            bucket=settings.s3_bucket or "",
            prefix=settings.cdn_prefix,
            production=settings.production,
            continue_on_failure=settings.continue_on_failure,
            concurrency=settings.publish_concurrency,
            upload_max_attempts=settings.upload_max_attempts,
            upload_retry_base_delay=settings.upload_retry_base_delay,
            debug_temp_dir=Path(debug_dir) if debug_dir else None,
            optipng_path=settings.optipng_path,
            jpegtran_path=settings.jpegtran_path,
            domain=settings.cdn_domain or "",
            ssl=settings.cdn_ssl,
            append_prefix=settings.cdn_append_prefix,
        )
