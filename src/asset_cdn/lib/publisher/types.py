"""Publisher data types for the asset publish pipeline.

Dataclasses representing asset requests, fingerprinted names, remote object
metadata, transform results, and per-request publish outcomes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from email.utils import format_datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from datetime import datetime
    from pathlib import Path


class PublishDecision(StrEnum):
    """Whether an asset needs to be uploaded again."""

    SKIP = "skip"
    REPUBLISH = "republish"


class ErrorKind(StrEnum):
    """Category of a failed publish job."""

    MIME_MISMATCH = "mime_mismatch"
    UNSUPPORTED_MIME_TYPE = "unsupported_mime_type"
    REMOTE_LOOKUP_FAILURE = "remote_lookup_failure"
    TRANSFORM_FAILURE = "transform_failure"
    UPLOAD_FAILURE = "upload_failure"
    ASSET_NOT_FOUND = "asset_not_found"


class AssetKind(StrEnum):
    """Transform family an asset belongs to, derived from its mime type."""

    SCRIPT = "script"
    STYLESHEET = "stylesheet"
    PNG = "png"
    JPEG = "jpeg"
    IMAGE = "image"
    ICON = "icon"
    FONT = "font"


@dataclass(frozen=True)
class AssetRequest:
    """A single asset path or an ordered bundle of same-type asset paths.

    Paths are rooted at the public directory (``/js/app.js``).  Identity is
    the tuple of paths plus the bundle flag; attributes are only used by the
    tag renderer and do not take part in equality.

    Attributes:
        paths: One path for a single asset, one or more for a bundle.
        bundle: Whether the request was given as a list.
        attributes: Optional HTML attributes for tag rendering.
    """

    paths: tuple[str, ...]
    bundle: bool = False
    attributes: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self) -> None:
        if not self.paths:
            msg = "an asset request needs at least one path"
            raise ValueError(msg)
        if not self.bundle and len(self.paths) != 1:
            msg = "a single asset request must have exactly one path"
            raise ValueError(msg)
        if any(not p for p in self.paths):
            msg = "asset paths must not be empty"
            raise ValueError(msg)

    @classmethod
    def parse(cls, value: str | list[str] | tuple[str, ...], attributes: dict[str, Any] | None = None) -> AssetRequest:
        """Build a request from a bare path string or a list of path strings."""
        if isinstance(value, str):
            return cls(paths=(value,), bundle=False, attributes=dict(attributes or {}))
        if isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
            return cls(paths=tuple(value), bundle=True, attributes=dict(attributes or {}))
        msg = f"asset was not a string or a list of strings: {value!r}"
        raise TypeError(msg)

    @property
    def label(self) -> str:
        """Human-readable form used in logs and the manifest."""
        if self.bundle:
            return "[" + ", ".join(self.paths) + "]"
        return self.paths[0]

    def to_json(self) -> str | list[str]:
        return list(self.paths) if self.bundle else self.paths[0]


@dataclass(frozen=True)
class FingerprintedName:
    """Deterministic publish name and staleness timestamp (milliseconds)."""

    file_name: str
    timestamp: int


@dataclass(frozen=True)
class RemoteObjectMeta:
    """Result of a HEAD-style lookup against the object store."""

    exists: bool
    last_modified: datetime | None = None


@dataclass(frozen=True)
class AssetHeaders:
    """Response headers stored with an uploaded object."""

    content_type: str
    cache_control: str
    content_encoding: str
    expires: datetime

    def as_http(self) -> dict[str, str]:
        return {
            "Content-Type": self.content_type,
            "Cache-Control": self.cache_control,
            "Content-Encoding": self.content_encoding,
            "Expires": format_datetime(self.expires, usegmt=True),
        }


@dataclass(frozen=True)
class NestedPublishJob:
    """An image or font discovered inside stylesheet text.

    Attributes:
        request: Single-asset request rooted at the public directory.
        source_path: Absolute local path of the referenced file.
        kind: ``image`` or ``font``.
        file_name: Fingerprinted file name of the referenced asset.
        storage_key: Key the asset is (or will be) stored under.
        rewritten_url: Relative URL substituted into the stylesheet output.
    """

    request: AssetRequest
    source_path: Path
    kind: str
    file_name: str
    storage_key: str
    rewritten_url: str


@dataclass
class TransformResult:
    """Transformed bytes, their headers, and any nested jobs they produced."""

    body: bytes
    headers: AssetHeaders
    file_name: str
    nested_jobs: list[NestedPublishJob] = field(default_factory=list)


@dataclass
class PublishOutcome:
    """Terminal state of one publish job.

    Attributes:
        request: The request this outcome is for.
        decision: Skip or republish; None when the job failed before deciding.
        file_name: Fingerprinted file name, when it could be computed.
        storage_key: Remote key, when it could be computed.
        nested: True for jobs discovered inside a stylesheet.
        error: Error category if the job failed, or None.
        message: Error description if the job failed, or None.
    """

    request: AssetRequest
    decision: PublishDecision | None = None
    file_name: str | None = None
    storage_key: str | None = None
    nested: bool = False
    error: ErrorKind | None = None
    message: str | None = None

    @property
    def success(self) -> bool:
        """Whether the job reached Skip or Republished without error."""
        return self.error is None

    @property
    def uploaded(self) -> bool:
        return self.success and self.decision is PublishDecision.REPUBLISH


@dataclass
class PipelineResult:
    """Aggregate outcome of one pipeline run."""

    outcomes: list[PublishOutcome] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def uploaded(self) -> list[PublishOutcome]:
        return [o for o in self.outcomes if o.uploaded]

    @property
    def skipped(self) -> list[PublishOutcome]:
        return [o for o in self.outcomes if o.success and o.decision is PublishDecision.SKIP]

    @property
    def failed(self) -> list[PublishOutcome]:
        return [o for o in self.outcomes if not o.success]
