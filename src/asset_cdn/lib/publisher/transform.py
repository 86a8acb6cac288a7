"""Per-mime-type transforms applied before upload.

Scripts are concatenated and minified with ``rjsmin``, stylesheets are
minified with ``rcssmin`` and have their image/font references rewritten,
PNG and JPEG files go through ``optipng``/``jpegtran``, and every other
supported type is uploaded as-is.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING

import rcssmin
import rjsmin

from asset_cdn.lib.publisher.css import CssRewriter
from asset_cdn.lib.publisher.errors import AssetNotFoundError, TransformError, UnsupportedMimeTypeError
from asset_cdn.lib.publisher.mime import classify, strip_suffix
from asset_cdn.lib.publisher.naming import local_path, request_mime_type
from asset_cdn.lib.publisher.options import CACHE_MAX_AGE_SECONDS
from asset_cdn.lib.publisher.process import ProcessRunner, run_process
from asset_cdn.lib.publisher.types import AssetHeaders, AssetKind, TransformResult

if TYPE_CHECKING:
    from loguru import Logger

    from asset_cdn.lib.publisher.options import PublishOptions
    from asset_cdn.lib.publisher.types import AssetRequest, FingerprintedName, NestedPublishJob

Minifier = Callable[[str], str]

_PASSTHROUGH_KINDS = frozenset({AssetKind.IMAGE, AssetKind.ICON, AssetKind.FONT})


def build_headers(mime_type: str, now: datetime | None = None) -> AssetHeaders:
    """Return the fixed long-lived cache headers for a mime type."""
    now = now or datetime.now(tz=UTC)
    return AssetHeaders(
        content_type=mime_type,
        cache_control=f"maxage={CACHE_MAX_AGE_SECONDS}",
        content_encoding="gzip",
        expires=now + timedelta(seconds=CACHE_MAX_AGE_SECONDS),
    )


class TransformDispatcher:
    """Selects and runs the transform for a request's mime type.

    Args:
        options: Pipeline options.
        log: Bound logger.
        css_rewriter: Rewriter used for stylesheet references.
        runner: Process runner for external optimizers.
        minify_js: Script minifier.
        minify_css: Stylesheet minifier.
    """

    def __init__(
        self,
        options: PublishOptions,
        log: Logger,
        css_rewriter: CssRewriter | None = None,
        runner: ProcessRunner = run_process,
        minify_js: Minifier = rjsmin.jsmin,
        minify_css: Minifier = rcssmin.cssmin,
    ) -> None:
        self._options = options
        self._log = log
        self._css = css_rewriter or CssRewriter(options, log)
        self._runner = runner
        self._minify_js = minify_js
        self._minify_css = minify_css

    async def transform(self, request: AssetRequest, name: FingerprintedName) -> TransformResult:
        """Produce the bytes and headers to upload for a request.

        Raises:
            UnsupportedMimeTypeError: If no transform handles the mime type.
            AssetNotFoundError: If a source file cannot be read.
            TransformError: If minification/optimization fails and
                ``continue_on_failure`` is off, or a script or stylesheet
                is not valid UTF-8.
        """
        mime_type = request_mime_type(request)
        kind = classify(mime_type, request.label)
        headers = build_headers(mime_type or "application/octet-stream")

        if kind is AssetKind.SCRIPT:
            body = await self._script(request, name)
            return TransformResult(body=body, headers=headers, file_name=name.file_name)
        if kind is AssetKind.STYLESHEET:
            body, nested = await self._stylesheet(request, name)
            return TransformResult(body=body, headers=headers, file_name=name.file_name, nested_jobs=nested)

        if request.bundle:
            msg = f'unsupported mime type for a bundle "{mime_type}"'
            raise UnsupportedMimeTypeError(msg, request.label)

        path = local_path(self._options.public_dir, request.paths[0])
        if kind is AssetKind.PNG:
            await self._optimize_png(path)
        elif kind is AssetKind.JPEG:
            await self._optimize_jpeg(path)
        elif kind not in _PASSTHROUGH_KINDS:
            msg = f'unsupported mime type "{mime_type}"'
            raise UnsupportedMimeTypeError(msg, request.label)

        body = await _read_bytes(path)
        return TransformResult(body=body, headers=headers, file_name=strip_suffix(name.file_name))

    async def _read_texts(self, request: AssetRequest) -> list[str]:
        texts: list[str] = []
        for asset in request.paths:
            path = local_path(self._options.public_dir, asset)
            body = await _read_bytes(path)
            try:
                texts.append(body.decode("utf-8"))
            except UnicodeDecodeError as exc:
                msg = f"{asset} is not valid UTF-8: {exc}"
                raise TransformError(msg, asset) from exc
        return texts

    async def _script(self, request: AssetRequest, name: FingerprintedName) -> bytes:
        source = "\n".join(await self._read_texts(request))
        self._write_debug_copy(name.file_name, source)

        try:
            return self._minify_js(source).encode("utf-8")
        except Exception as exc:
            self._log.warning("Failed to minify {}: {}", name.file_name, exc)
            if not self._options.continue_on_failure:
                msg = f"failed to minify {name.file_name}: {exc}"
                raise TransformError(msg, name.file_name) from exc
        self._log.info("Uploading unminified {} anyway", name.file_name)
        return source.encode("utf-8")

    async def _stylesheet(self, request: AssetRequest, name: FingerprintedName) -> tuple[bytes, list[NestedPublishJob]]:
        outputs: list[str] = []
        nested: list[NestedPublishJob] = []
        for asset, text in zip(request.paths, await self._read_texts(request), strict=True):
            try:
                minified = self._minify_css(text)
            except Exception as exc:
                self._log.warning("Failed to minify {}: {}", asset, exc)
                if not self._options.continue_on_failure:
                    msg = f"failed to minify {asset}: {exc}"
                    raise TransformError(msg, asset) from exc
                minified = text
            rewritten, jobs = self._css.rewrite(minified, asset, name.file_name)
            outputs.append(rewritten)
            nested.extend(jobs)
        return "\n".join(outputs).encode("utf-8"), nested

    async def _optimize(self, path: Path, argv: list[str], tool: str) -> bool:
        result = await self._runner(argv)
        for line in (result.stdout + result.stderr).splitlines():
            if line.strip():
                self._log.debug("{}: {}", tool, line)
        if result.ok:
            return True

        msg = f"{tool} returned an error during processing '{path}': exit code = {result.returncode}"
        if not self._options.continue_on_failure:
            raise TransformError(msg, str(path))
        self._log.warning("{}; uploading original bytes", msg)
        return False

    async def _optimize_png(self, path: Path) -> None:
        stat = await _stat(path)
        if await self._optimize(path, [self._options.optipng_path, str(path)], "optipng"):
            await _restore_times(path, stat)

    async def _optimize_jpeg(self, path: Path) -> None:
        # jpegtran writes to a sibling file that replaces the source on success
        stat = await _stat(path)
        tmp = path.with_name(f".{path.name}.jpegtran")
        argv = [self._options.jpegtran_path, "-copy", "none", "-optimize", "-outfile", str(tmp), str(path)]
        try:
            if await self._optimize(path, argv, "jpegtran") and tmp.exists():
                await asyncio.to_thread(os.replace, tmp, path)
                await _restore_times(path, stat)
        finally:
            tmp.unlink(missing_ok=True)

    def _write_debug_copy(self, file_name: str, source: str) -> None:
        temp_dir = self._options.debug_temp_dir
        if temp_dir is None:
            return
        try:
            temp_dir.mkdir(parents=True, exist_ok=True)
            target = temp_dir / file_name
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(source, encoding="utf-8")
            self._log.debug("Wrote to {}", target)
        except OSError as exc:
            self._log.warning("Unable to write temp file for {}: {}", file_name, exc)


async def _stat(path: Path) -> os.stat_result:
    try:
        return await asyncio.to_thread(path.stat)
    except OSError as exc:
        msg = f"unable to stat {path}: {exc}"
        raise AssetNotFoundError(msg, str(path)) from exc


async def _read_bytes(path: Path) -> bytes:
    try:
        return await asyncio.to_thread(path.read_bytes)
    except OSError as exc:
        msg = f"unable to read {path}: {exc}"
        raise AssetNotFoundError(msg, str(path)) from exc


async def _restore_times(path: Path, stat: os.stat_result) -> None:
    # Optimized output keeps the source mtime; it is the fingerprint timestamp
    try:
        await asyncio.to_thread(os.utime, path, ns=(stat.st_atime_ns, stat.st_mtime_ns))
    except OSError as exc:
        msg = f"unable to restore modification time of {path}: {exc}"
        raise AssetNotFoundError(msg, str(path)) from exc
