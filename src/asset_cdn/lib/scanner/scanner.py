"""Extraction of ``CDN(...)`` asset references from template files.

Templates call the view helper as ``CDN('/js/app.js')`` or
``CDN(['/js/a.js', '/js/b.js'], {"defer": "defer"})``.  The scanner finds
those calls, parses their arguments, and returns the distinct requests in
first-seen order so the publish pipeline checks each asset once.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

from asset_cdn.lib.publisher.errors import TemplateScanError
from asset_cdn.lib.publisher.types import AssetRequest

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

# Allows one level of nested parentheses inside the call
CDN_CALL = re.compile(r"CDN\(((?:\([^)]+\)|[^)])+)\)", re.IGNORECASE)


def parse_call(arguments: str, source: str = "<template>") -> AssetRequest:
    """Parse the argument text of one ``CDN(...)`` call.

    Single quotes are converted to double quotes and the arguments are read
    as a JSON array: an asset path or list of paths, then an optional
    attribute object.

    Raises:
        TemplateScanError: If the arguments are not valid JSON of that shape.
    """
    text = "[" + arguments.replace("'", '"') + "]"
    try:
        values = json.loads(text)
    except json.JSONDecodeError as exc:
        msg = f"could not parse CDN({arguments}) in {source}: {exc.msg}"
        raise TemplateScanError(msg) from exc

    if not values or len(values) > 2:
        msg = f"CDN({arguments}) in {source} must have one or two arguments"
        raise TemplateScanError(msg)

    attributes = values[1] if len(values) == 2 else None
    if attributes is not None and not isinstance(attributes, dict):
        msg = f"CDN({arguments}) in {source}: attributes must be an object"
        raise TemplateScanError(msg)

    try:
        return AssetRequest.parse(values[0], attributes)
    except (TypeError, ValueError) as exc:
        msg = f"CDN({arguments}) in {source}: {exc}"
        raise TemplateScanError(msg) from exc


def iter_calls(text: str, source: str = "<template>") -> Iterator[AssetRequest]:
    """Yield a request for every ``CDN(...)`` call in a template's text."""
    for match in CDN_CALL.finditer(text):
        yield parse_call(match.group(1), source)


def iter_templates(views_dir: Path, extensions: Iterable[str]) -> Iterator[Path]:
    """Yield template files under ``views_dir`` in a stable order."""
    wanted = {e.lower() for e in extensions}
    for path in sorted(views_dir.rglob("*")):
        if path.is_file() and path.suffix.lower() in wanted:
            yield path


def scan_templates(views_dir: Path, extensions: Iterable[str]) -> list[AssetRequest]:
    """Collect the distinct asset requests referenced by templates.

    Args:
        views_dir: Directory walked recursively.
        extensions: Template file suffixes to read (``.html``, ``.pug``...).

    Returns:
        Requests in first-seen order, deduplicated by their asset paths.

    Raises:
        TemplateScanError: If a call cannot be parsed.
        FileNotFoundError: If ``views_dir`` does not exist.
    """
    if not views_dir.is_dir():
        msg = f"views directory not found: {views_dir}"
        raise FileNotFoundError(msg)

    seen: set[AssetRequest] = set()
    requests: list[AssetRequest] = []
    for template in iter_templates(views_dir, extensions):
        text = template.read_text(encoding="utf-8")
        for request in iter_calls(text, str(template)):
            if request in seen:
                continue
            seen.add(request)
            requests.append(request)

    logger.info("Found {} distinct asset references in {}", len(requests), views_dir)
    return requests
