"""Discovery and rewriting of ``url(...)`` references in stylesheets.

Stylesheet text is scanned once with a small bracket-matching tokenizer
that understands quoted strings, comments and nested parentheses.  The scan
yields :class:`CssReference` records; the rewrite is a single pass that
splices replacement URLs in at the recorded offsets.
"""

from __future__ import annotations

import os
import posixpath
import re
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from asset_cdn.lib.publisher.errors import UnsupportedMimeTypeError
from asset_cdn.lib.publisher.mime import classify, guess_mime_type, strip_suffix
from asset_cdn.lib.publisher.types import AssetKind, AssetRequest, NestedPublishJob

if TYPE_CHECKING:
    from loguru import Logger

    from asset_cdn.lib.publisher.options import PublishOptions

IMAGE_PROPERTIES = frozenset({"background", "background-image", "content", "border-image", "cursor"})
FONT_PROPERTIES = frozenset({"src"})

_VENDOR_PREFIX = re.compile(r"^-[a-z]+-")
_EXTERNAL_URL = re.compile(r"^(?:[a-z][a-z0-9+.-]*:|//)", re.IGNORECASE)


@dataclass(frozen=True)
class CssReference:
    """One ``url(...)`` token found inside a declaration.

    Attributes:
        start: Offset of the ``u`` of ``url(``.
        end: Offset just past the closing parenthesis.
        url: Reference text without surrounding quotes.
        quote: Quote character used in the source, or empty.
        declaration: Property name (vendor prefix removed).
    """

    start: int
    end: int
    url: str
    quote: str
    declaration: str


def _skip_string(css: str, i: int) -> int:
    """Return the offset just past the string literal starting at ``css[i]``."""
    quote = css[i]
    i += 1
    while i < len(css):
        c = css[i]
        if c == "\\":
            i += 2
            continue
        if c == quote:
            return i + 1
        i += 1
    return len(css)


def iter_declarations(css: str) -> Iterator[tuple[str, int, int]]:
    """Yield ``(property, value_start, value_end)`` for every declaration.

    Selectors and at-rule preludes end at ``{`` and are never yielded, so
    colons in pseudo-classes or media queries are not mistaken for
    declarations.
    """
    n = len(css)
    i = start = depth = 0
    colon = -1
    while i < n:
        c = css[i]
        if c in "\"'":
            i = _skip_string(css, i)
            continue
        if css.startswith("/*", i):
            close = css.find("*/", i + 2)
            i = n if close == -1 else close + 2
            if colon == -1:
                start = i
            continue
        if c == "(":
            depth += 1
        elif c == ")":
            depth = max(0, depth - 1)
        elif depth == 0:
            if c == "{":
                start, colon = i + 1, -1
            elif c in ";}":
                if colon != -1:
                    yield css[start:colon].strip().lower(), colon + 1, i
                start, colon = i + 1, -1
            elif c == ":" and colon == -1:
                colon = i
        i += 1
    if colon != -1:
        yield css[start:colon].strip().lower(), colon + 1, n


def iter_urls(css: str, start: int, end: int, declaration: str) -> Iterator[CssReference]:
    """Yield every ``url(...)`` token between two offsets."""
    i = start
    while i < end:
        c = css[i]
        if c in "\"'":
            i = _skip_string(css, i)
            continue
        if css[i : i + 4].lower() != "url(" or (i > start and (css[i - 1].isalnum() or css[i - 1] in "-_")):
            i += 1
            continue

        j = i + 4
        while j < end and css[j].isspace():
            j += 1
        quote = ""
        if j < end and css[j] in "\"'":
            quote = css[j]
            after = _skip_string(css, j)
            url = css[j + 1 : after - 1]
            close = after
            while close < end and css[close].isspace():
                close += 1
        else:
            close = css.find(")", j, end)
            if close == -1:
                return
            url = css[j:close].rstrip()
        if close >= end or css[close] != ")":
            return

        yield CssReference(start=i, end=close + 1, url=url, quote=quote, declaration=declaration)
        i = close + 1


def scan_references(css: str) -> list[CssReference]:
    """Return the image and font references of a stylesheet in document order."""
    references: list[CssReference] = []
    for prop, value_start, value_end in iter_declarations(css):
        name = _VENDOR_PREFIX.sub("", prop)
        if name not in IMAGE_PROPERTIES and name not in FONT_PROPERTIES:
            continue
        for ref in iter_urls(css, value_start, value_end, name):
            url = ref.url.strip()
            if not url or url.lower().startswith("data:") or url.startswith("#") or _EXTERNAL_URL.match(url):
                continue
            references.append(ref)
    return references


class CssRewriter:
    """Turns stylesheet references into nested publish jobs and rewrites them.

    Args:
        options: Pipeline options (public directory, prefix, production flag).
        log: Bound logger.
    """

    def __init__(self, options: PublishOptions, log: Logger) -> None:
        self._options = options
        self._log = log

    def resolve(self, url: str, source_asset: str) -> Path:
        """Resolve a reference to an absolute local path.

        Root-relative references resolve against the public directory,
        everything else against the directory of the stylesheet's source.
        """
        clean = strip_suffix(url)
        public_dir = self._options.public_dir
        if clean.startswith("/"):
            target = public_dir / clean.lstrip("/")
        else:
            source_dir = (public_dir / strip_suffix(source_asset).lstrip("/")).parent
            target = source_dir / clean
        return Path(os.path.normpath(target))

    def rewrite(self, css: str, source_asset: str, output_file_name: str) -> tuple[str, list[NestedPublishJob]]:
        """Rewrite the references of one minified stylesheet member.

        Args:
            css: Minified stylesheet text.
            source_asset: Request path of the stylesheet (``/css/site.css``).
            output_file_name: Fingerprinted name the stylesheet is published as.

        Returns:
            The rewritten text and the nested jobs it references.  Outside
            production the text is returned unchanged with no jobs.
        """
        if not self._options.production:
            return css, []

        output_dir = posixpath.dirname(output_file_name) or "."
        jobs: list[NestedPublishJob] = []
        pieces: list[str] = []
        cursor = 0

        for ref in scan_references(css):
            job = self._nested_job(ref, source_asset, output_dir)
            if job is None:
                continue
            pieces.append(css[cursor : ref.start])
            pieces.append(f"url({ref.quote}{job.rewritten_url}{ref.quote})")
            cursor = ref.end
            jobs.append(job)

        pieces.append(css[cursor:])
        return "".join(pieces), jobs

    def _nested_job(self, ref: CssReference, source_asset: str, output_dir: str) -> NestedPublishJob | None:
        url = ref.url.strip()
        resolved = self.resolve(url, source_asset)
        try:
            relative = resolved.relative_to(self._options.public_dir)
        except ValueError:
            self._log.warning("Reference {} in {} resolves outside the public directory", url, source_asset)
            return None

        try:
            asset_kind = classify(guess_mime_type(resolved.name), url)
        except UnsupportedMimeTypeError:
            self._log.warning("Reference {} in {} has an unsupported type; left unchanged", url, source_asset)
            return None

        file_name = relative.as_posix()
        suffix = url[len(strip_suffix(url)) :]
        kind = "font" if asset_kind is AssetKind.FONT or ref.declaration in FONT_PROPERTIES else "image"
        rewritten = posixpath.relpath(file_name, output_dir) + suffix

        self._log.debug("Found {} {} in {} -> {}", kind, url, source_asset, rewritten)
        return NestedPublishJob(
            request=AssetRequest(paths=("/" + file_name,)),
            source_path=resolved,
            kind=kind,
            file_name=file_name,
            storage_key=self._options.storage_key(file_name),
            rewritten_url=rewritten,
        )
