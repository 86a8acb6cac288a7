"""Fingerprinted publish names for single assets and bundles."""

from pathlib import Path

from asset_cdn.lib.publisher.errors import AssetNotFoundError, MimeMismatchError
from asset_cdn.lib.publisher.mime import guess_mime_type, strip_suffix
from asset_cdn.lib.publisher.types import AssetRequest, FingerprintedName

BUNDLE_SEPARATOR = "+"


def local_path(public_dir: Path, asset: str) -> Path:
    """Resolve a request path (``/css/site.css``) to a file under the public directory."""
    return public_dir / strip_suffix(asset).lstrip("/")


def mtime_ms(path: Path, asset: str | None = None) -> int:
    """Return a file's modification time in whole milliseconds.

    Raises:
        AssetNotFoundError: If the file cannot be stat'ed.
    """
    try:
        return path.stat().st_mtime_ns // 1_000_000
    except OSError as exc:
        msg = f"file not found: {asset or path}"
        raise AssetNotFoundError(msg, asset or str(path)) from exc


def request_mime_type(request: AssetRequest) -> str | None:
    """Return the single mime type shared by every path of a request.

    Raises:
        MimeMismatchError: If bundle members resolve to different mime types.
    """
    mime_type = guess_mime_type(request.paths[0])
    for asset in request.paths[1:]:
        if guess_mime_type(asset) != mime_type:
            msg = f"mime types in bundle {request.label} do not match"
            raise MimeMismatchError(msg, asset)
    return mime_type


def fingerprint(request: AssetRequest, public_dir: Path) -> FingerprintedName:
    """Compute the publish name and staleness timestamp of a request.

    Bundles are named by joining member basenames in request order; single
    assets keep their path minus the leading root.  The timestamp is the
    newest modification time across every member, so editing any file of
    a bundle invalidates the combined object.

    Args:
        request: Single asset or bundle rooted at ``public_dir``.
        public_dir: Public root directory.

    Returns:
        The fingerprinted name.

    Raises:
        MimeMismatchError: If bundle members disagree on mime type.
        AssetNotFoundError: If any member file is missing.
    """
    request_mime_type(request)

    timestamp = 0
    for asset in request.paths:
        timestamp = max(timestamp, mtime_ms(local_path(public_dir, asset), asset))

    return FingerprintedName(file_name=publish_file_name(request), timestamp=timestamp)


def publish_file_name(request: AssetRequest) -> str:
    """Return the publish name of a request without touching the filesystem.

    Query and fragment suffixes never become part of the name, so the
    staleness lookup and the upload use the same key.
    """
    if request.bundle:
        return BUNDLE_SEPARATOR.join(Path(strip_suffix(p)).name for p in request.paths)
    return strip_suffix(request.paths[0]).lstrip("/")
