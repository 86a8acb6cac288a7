"""HTML tag rendering for asset references in templates.

In production, tags point at the CDN domain and carry a ``?cache=``
timestamp derived from the same fingerprint the publish pipeline uses.  In
development they point at the local server with a per-render ``?v=``
token, and bundles are rendered as one tag per member.
"""

from __future__ import annotations

import html
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any
from urllib.parse import quote, urljoin

from asset_cdn.lib.publisher.errors import UnsupportedMimeTypeError
from asset_cdn.lib.publisher.mime import classify, guess_mime_type
from asset_cdn.lib.publisher.naming import fingerprint
from asset_cdn.lib.publisher.types import AssetKind, AssetRequest

if TYPE_CHECKING:
    from asset_cdn.lib.publisher.options import PublishOptions

# Characters encodeURIComponent leaves alone besides alphanumerics and "-_."
_URI_SAFE = "!~*'()"


def render_attributes(attributes: dict[str, Any]) -> str:
    """Render HTML attributes as ``name="value"`` pairs sorted by name."""
    pairs = []
    for name, value in attributes.items():
        if isinstance(value, bool):
            value = "true" if value else "false"
        pairs.append(f'{html.escape(str(name))}="{html.escape(str(value))}"')
    return " ".join(sorted(pairs))


def create_tag(src: str, asset: str, attributes: dict[str, Any], version: str = "") -> str:
    """Build the tag for one asset URL.

    Args:
        src: Base URL (CDN origin, or empty for the local server).
        asset: Asset path appended to ``src``.
        attributes: HTML attributes; ``raw=True`` returns the bare URL.
        version: Cache-busting suffix appended to the URL.

    Raises:
        UnsupportedMimeTypeError: If the asset has no tag shape.
    """
    attrs = dict(attributes)
    url = src + asset + version
    if attrs.pop("raw", False) is True:
        return url

    try:
        kind = classify(guess_mime_type(asset), asset)
    except UnsupportedMimeTypeError:
        kind = None

    if kind is AssetKind.SCRIPT:
        attrs.setdefault("type", "text/javascript")
        attrs["src"] = url
        return f"<script {render_attributes(attrs)}></script>"
    if kind is AssetKind.STYLESHEET:
        attrs.setdefault("rel", "stylesheet")
        attrs["href"] = url
        return f"<link {render_attributes(attrs)} />"
    if kind in (AssetKind.PNG, AssetKind.JPEG, AssetKind.IMAGE):
        attrs["data-src" if attrs.get("data-src") else "src"] = url
        return f"<img {render_attributes(attrs)} />"
    if kind is AssetKind.ICON:
        attrs.setdefault("rel", "shortcut icon")
        attrs["href"] = url
        return f"<link {render_attributes(attrs)} />"

    msg = f"unknown asset type for {asset}"
    raise UnsupportedMimeTypeError(msg, asset)


class TagRenderer:
    """Renders tags for asset requests according to the publish options.

    Args:
        options: Publish options (production flag, CDN domain, ssl, prefix).
        clock: Returns the current time in seconds; used for dev cache busting.
    """

    def __init__(self, options: PublishOptions, clock: Callable[[], float] = time.time) -> None:
        self._options = options
        self._clock = clock

    def cdn_base_url(self) -> str:
        """Return the CDN origin, including the key prefix when it is appended."""
        options = self._options
        if options.ssl == "relative":
            src = f"//{options.domain}"
        elif options.ssl:
            src = f"https://{options.domain}"
        else:
            src = f"http://{options.domain}"

        if options.prefix and options.append_prefix:
            src = urljoin(src + "/", options.prefix.lstrip("/"))
        return src.rstrip("/")

    def render(self, assets: str | list[str] | AssetRequest, attributes: dict[str, Any] | None = None) -> str:
        """Render the tag(s) for a single asset or a bundle.

        Raises:
            MimeMismatchError: If bundle members are of different types.
            AssetNotFoundError: If a production asset is missing locally.
            UnsupportedMimeTypeError: If the asset has no tag shape.
        """
        request = assets if isinstance(assets, AssetRequest) else AssetRequest.parse(assets)
        attrs = dict(request.attributes)
        attrs.update(attributes or {})

        if self._options.production:
            return self._render_production(request, attrs)

        version = f"?v={int(self._clock() * 1000)}"
        return "\n".join(create_tag("", asset, attrs, version) for asset in request.paths)

    def _render_production(self, request: AssetRequest, attributes: dict[str, Any]) -> str:
        src = self.cdn_base_url()
        name = fingerprint(request, self._options.public_dir)
        if request.bundle:
            asset = "/" + quote(name.file_name, safe=_URI_SAFE)
        else:
            asset = request.paths[0] if request.paths[0].startswith("/") else "/" + request.paths[0]
        return create_tag(src, f"{asset}?cache={name.timestamp}", attributes)


def make_cdn_helper(options: PublishOptions) -> Callable[..., str]:
    """Return the ``CDN(assets, attributes)`` helper exposed to templates."""
    renderer = TagRenderer(options)

    def cdn(assets: str | list[str] | None = None, attributes: dict[str, Any] | None = None) -> str:
        if assets is None:
            msg = "CDN: assets undefined"
            raise ValueError(msg)
        return renderer.render(assets, attributes)

    return cdn
