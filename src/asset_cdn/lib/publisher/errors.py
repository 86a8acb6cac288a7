"""Exception hierarchy for the asset publish pipeline.

Each exception carries an :class:`ErrorKind` so a job can convert it into a
:class:`PublishOutcome` and the pipeline can apply its abort policy.
"""

from asset_cdn.lib.publisher.types import ErrorKind, PublishOutcome


class AssetPublishError(Exception):
    """Base class for publish job failures.

    Args:
        message: Human-readable error description.
        asset: Path or file name the error relates to, if any.
    """

    kind: ErrorKind

    def __init__(self, message: str, asset: str | None = None) -> None:
        self.message = message
        self.asset = asset
        super().__init__(f"CDN: {message}")


class MimeMismatchError(AssetPublishError):
    """Bundle members resolve to different mime types."""

    kind = ErrorKind.MIME_MISMATCH


class UnsupportedMimeTypeError(AssetPublishError):
    """No transform exists for the asset's mime type."""

    kind = ErrorKind.UNSUPPORTED_MIME_TYPE


class RemoteLookupError(AssetPublishError):
    """The object store lookup failed for a reason other than not-found."""

    kind = ErrorKind.REMOTE_LOOKUP_FAILURE


class TransformError(AssetPublishError):
    """Minification or optimization failed."""

    kind = ErrorKind.TRANSFORM_FAILURE


class UploadError(AssetPublishError):
    """Upload failed after the retry budget was exhausted.

    Args:
        message: Human-readable error description.
        asset: Storage key of the failed upload.
        attempts: Number of upload attempts made.
    """

    kind = ErrorKind.UPLOAD_FAILURE

    def __init__(self, message: str, asset: str | None = None, attempts: int = 0) -> None:
        self.attempts = attempts
        super().__init__(message, asset)


class AssetNotFoundError(AssetPublishError):
    """A local asset file does not exist or cannot be stat'ed."""

    kind = ErrorKind.ASSET_NOT_FOUND


class TemplateScanError(ValueError):
    """A ``CDN(...)`` call in a template could not be parsed."""


class PipelineAbortedError(Exception):
    """Raised when a job failure aborts the whole pipeline.

    Args:
        outcome: The failed outcome that triggered the abort.
    """

    def __init__(self, outcome: PublishOutcome) -> None:
        self.outcome = outcome
        kind = outcome.error.value if outcome.error else "unknown"
        super().__init__(f"CDN: publishing {outcome.request.label} failed ({kind}): {outcome.message}")
