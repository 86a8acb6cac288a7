"""Mime type lookup and transform classification by file extension."""

import mimetypes
import posixpath

from asset_cdn.lib.publisher.errors import UnsupportedMimeTypeError
from asset_cdn.lib.publisher.types import AssetKind

# Fixed table so results do not depend on the host's /etc/mime.types
_EXTENSION_TYPES: dict[str, str] = {
    ".js": "application/javascript",
    ".mjs": "application/javascript",
    ".css": "text/css",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".jpe": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".webp": "image/webp",
    ".ico": "image/x-icon",
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".ttf": "font/ttf",
    ".otf": "font/otf",
    ".eot": "application/vnd.ms-fontobject",
}

_KINDS: dict[str, AssetKind] = {
    "application/javascript": AssetKind.SCRIPT,
    "text/javascript": AssetKind.SCRIPT,
    "text/css": AssetKind.STYLESHEET,
    "image/png": AssetKind.PNG,
    "image/jpeg": AssetKind.JPEG,
    "image/jpg": AssetKind.JPEG,
    "image/pjpeg": AssetKind.JPEG,
    "image/gif": AssetKind.IMAGE,
    "image/svg+xml": AssetKind.IMAGE,
    "image/webp": AssetKind.IMAGE,
    "image/x-icon": AssetKind.ICON,
    "image/vnd.microsoft.icon": AssetKind.ICON,
    "font/woff": AssetKind.FONT,
    "font/woff2": AssetKind.FONT,
    "font/ttf": AssetKind.FONT,
    "font/otf": AssetKind.FONT,
    "application/font-woff": AssetKind.FONT,
    "application/x-font-ttf": AssetKind.FONT,
    "application/vnd.ms-fontobject": AssetKind.FONT,
}


def strip_suffix(path: str) -> str:
    """Drop any ``?query`` or ``#fragment`` suffix from a path."""
    return path.split("?", 1)[0].split("#", 1)[0]


def guess_mime_type(path: str) -> str | None:
    """Return the mime type for a path by extension, ignoring query/fragment suffixes."""
    clean = strip_suffix(path)
    ext = posixpath.splitext(clean)[1].lower()
    if ext in _EXTENSION_TYPES:
        return _EXTENSION_TYPES[ext]
    mime_type, _ = mimetypes.guess_type(clean, strict=False)
    return mime_type


def classify(mime_type: str | None, asset: str | None = None) -> AssetKind:
    """Map a mime type to the transform family that handles it.

    Raises:
        UnsupportedMimeTypeError: If no transform handles the mime type.
    """
    kind = _KINDS.get(mime_type or "")
    if kind is None:
        msg = f'unsupported mime type "{mime_type}"'
        raise UnsupportedMimeTypeError(msg, asset)
    return kind
