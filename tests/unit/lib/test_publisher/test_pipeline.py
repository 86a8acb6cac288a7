"""Unit tests for the concurrent publish pipeline."""

import gzip
from collections.abc import Sequence
from dataclasses import replace
from pathlib import Path

import boto3
import pytest
from conftest import BASE_MTIME_MS, ms_to_datetime
from loguru import logger
from moto import mock_aws

from asset_cdn.lib.publisher.errors import PipelineAbortedError
from asset_cdn.lib.publisher.options import PublishOptions
from asset_cdn.lib.publisher.pipeline import AssetPipeline
from asset_cdn.lib.publisher.process import ProcessResult
from asset_cdn.lib.publisher.storage import S3ObjectStore
from asset_cdn.lib.publisher.transform import TransformDispatcher
from asset_cdn.lib.publisher.types import AssetRequest, ErrorKind, PublishDecision

_BUCKET = "test-bucket"


async def _ok_runner(argv: Sequence[str]) -> ProcessResult:
    return ProcessResult(returncode=0)


def _pipeline(options: PublishOptions, store, log) -> AssetPipeline:
    dispatcher = TransformDispatcher(options, log, runner=_ok_runner)
    return AssetPipeline(options, store, log, dispatcher=dispatcher)


@pytest.fixture
def s3_client():
    """Create a moto-mocked S3 client and bucket."""
    with mock_aws():
        client = boto3.client("s3", region_name="us-east-1")
        client.create_bucket(Bucket=_BUCKET)
        yield client


class TestStaleness:
    """Tests for skip and republish decisions inside a run."""

    @pytest.mark.asyncio
    async def test_unchanged_asset_is_not_uploaded(self, options, fake_store, log, write_asset) -> None:
        """A remote object newer than the local file is skipped without upload."""
        write_asset("/js/app.js", "var a = 1;", mtime_ms=BASE_MTIME_MS)
        fake_store.remote["js/app.js"] = ms_to_datetime(BASE_MTIME_MS + 1000)

        result = await _pipeline(options, fake_store, log).run([AssetRequest.parse("/js/app.js")])

        assert fake_store.puts == {}
        assert [o.decision for o in result.outcomes] == [PublishDecision.SKIP]
        assert len(result.skipped) == 1

    @pytest.mark.asyncio
    async def test_modified_asset_is_uploaded(self, options, fake_store, log, write_asset) -> None:
        """A local file newer than the remote object is uploaded again."""
        write_asset("/js/app.js", "var a = 1;", mtime_ms=BASE_MTIME_MS + 5000)
        fake_store.remote["js/app.js"] = ms_to_datetime(BASE_MTIME_MS)

        result = await _pipeline(options, fake_store, log).run([AssetRequest.parse("/js/app.js")])

        assert list(fake_store.puts) == ["js/app.js"]
        assert result.outcomes[0].uploaded is True


class TestEndToEnd:
    """Publishing against a mocked S3 bucket."""

    @pytest.mark.asyncio
    async def test_bundle_is_published_under_prefix(self, options, log, write_asset, s3_client) -> None:
        """A script bundle is minified, gzipped and stored under the prefix."""
        write_asset("/js/app.js", "var app = 1;", mtime_ms=BASE_MTIME_MS + 100_000)
        write_asset("/js/vendor.js", "var vendor = 2;", mtime_ms=BASE_MTIME_MS + 200_000)
        options = replace(options, prefix="assets")
        store = S3ObjectStore(s3_client, _BUCKET)

        result = await _pipeline(options, store, log).run([AssetRequest.parse(["/js/app.js", "/js/vendor.js"])])

        outcome = result.outcomes[0]
        assert outcome.storage_key == "assets/app.js+vendor.js"
        assert outcome.decision is PublishDecision.REPUBLISH

        obj = s3_client.get_object(Bucket=_BUCKET, Key="assets/app.js+vendor.js")
        assert obj["CacheControl"] == "maxage=31556926"
        assert obj["ContentEncoding"] == "gzip"
        assert obj["ContentType"] == "application/javascript"

    @pytest.mark.asyncio
    async def test_second_run_skips_published_assets(self, options, log, write_asset, s3_client) -> None:
        """Objects uploaded after the local files were modified are skipped next time."""
        write_asset("/css/site.css", ".a{color:red}")
        store = S3ObjectStore(s3_client, _BUCKET)
        requests = [AssetRequest.parse("/css/site.css")]

        first = await _pipeline(options, store, log).run(requests)
        second = await _pipeline(options, store, log).run(requests)

        assert len(first.uploaded) == 1
        assert len(second.uploaded) == 0
        assert len(second.skipped) == 1


class TestNestedJobs:
    """Tests for assets discovered inside stylesheets."""

    @pytest.mark.asyncio
    async def test_stylesheet_references_are_published(self, options, fake_store, log, write_asset) -> None:
        """Images and fonts referenced by a stylesheet are published as nested jobs."""
        write_asset(
            "/css/site.css",
            ".a{background:url(../img/bg.png)}@font-face{font-family:I;src:url(/fonts/i.woff2)}",
        )
        write_asset("/img/bg.png", b"png")
        write_asset("/fonts/i.woff2", b"wOF2")

        result = await _pipeline(options, fake_store, log).run([AssetRequest.parse("/css/site.css")])

        assert [(o.storage_key, o.nested) for o in result.outcomes] == [
            ("css/site.css", False),
            ("img/bg.png", True),
            ("fonts/i.woff2", True),
        ]
        assert set(fake_store.puts) == {"css/site.css", "img/bg.png", "fonts/i.woff2"}
        css = gzip.decompress(fake_store.puts["css/site.css"][0]).decode()
        assert "url(../img/bg.png)" in css
        assert "url(../fonts/i.woff2)" in css

    @pytest.mark.asyncio
    async def test_shared_reference_is_checked_once(self, options, fake_store, log, write_asset) -> None:
        """An image referenced by two stylesheets is looked up and uploaded once."""
        write_asset("/css/a.css", ".a{background:url(/img/bg.png)}")
        write_asset("/css/b.css", ".b{background-image:url(../img/bg.png)}")
        write_asset("/img/bg.png", b"png")

        result = await _pipeline(options, fake_store, log).run(
            [AssetRequest.parse("/css/a.css"), AssetRequest.parse("/css/b.css")]
        )

        assert fake_store.heads.count("img/bg.png") == 1
        assert [o.storage_key for o in result.outcomes].count("img/bg.png") == 1

    @pytest.mark.asyncio
    async def test_missing_nested_asset_fails_its_own_job(self, options, fake_store, log, write_asset) -> None:
        """A referenced file that does not exist fails the nested job, not the stylesheet."""
        write_asset("/css/site.css", ".a{background:url(../img/gone.png)}")
        options = replace(options, continue_on_failure=True)

        result = await _pipeline(options, fake_store, log).run([AssetRequest.parse("/css/site.css")])

        assert result.outcomes[0].uploaded is True
        assert result.outcomes[1].error is ErrorKind.ASSET_NOT_FOUND
        assert result.outcomes[1].nested is True


class TestFailurePolicy:
    """Tests for abort and continue behaviour."""

    @pytest.mark.asyncio
    async def test_failure_aborts_without_uploading(self, fake_store, log, write_asset, options) -> None:
        """A failing job aborts the run and no later job uploads."""
        write_asset("/js/app.js", "var a;")
        options = replace(options, concurrency=1)

        with pytest.raises(PipelineAbortedError) as exc_info:
            await _pipeline(options, fake_store, log).run(
                [AssetRequest.parse("/js/missing.js"), AssetRequest.parse("/js/app.js")]
            )

        assert exc_info.value.outcome.error is ErrorKind.ASSET_NOT_FOUND
        assert fake_store.puts == {}

    @pytest.mark.asyncio
    async def test_continue_on_failure_records_errors(self, fake_store, log, write_asset, options) -> None:
        """With continue_on_failure failed jobs are recorded and the rest publish."""
        write_asset("/js/app.js", "var a;")
        write_asset("/js/a.js", "var a;")
        write_asset("/css/b.css", "b{}")
        options = replace(options, continue_on_failure=True)

        result = await _pipeline(options, fake_store, log).run(
            [
                AssetRequest.parse("/js/missing.js"),
                AssetRequest.parse(["/js/a.js", "/css/b.css"]),
                AssetRequest.parse("/js/app.js"),
            ]
        )

        assert [o.error for o in result.outcomes] == [ErrorKind.ASSET_NOT_FOUND, ErrorKind.MIME_MISMATCH, None]
        assert list(fake_store.puts) == ["js/app.js"]
        assert len(result.failed) == 2

    @pytest.mark.asyncio
    async def test_upload_failure_always_aborts(self, fake_store, log, write_asset, options) -> None:
        """Exhausted upload retries abort even with continue_on_failure."""
        write_asset("/js/app.js", "var a;")
        fake_store.put_failures = 100
        options = replace(options, continue_on_failure=True, upload_max_attempts=2)

        with pytest.raises(PipelineAbortedError) as exc_info:
            await _pipeline(options, fake_store, log).run([AssetRequest.parse("/js/app.js")])

        assert exc_info.value.outcome.error is ErrorKind.UPLOAD_FAILURE
        assert fake_store.put_attempts == 2

    @pytest.mark.asyncio
    async def test_remote_lookup_failure_is_reported(self, fake_store, log, write_asset, options) -> None:
        """A failed lookup is recorded as a remote lookup failure."""
        from asset_cdn.lib.publisher.errors import RemoteLookupError

        write_asset("/js/app.js", "var a;")
        fake_store.head_errors["js/app.js"] = RemoteLookupError("access denied", "js/app.js")
        options = replace(options, continue_on_failure=True)

        result = await _pipeline(options, fake_store, log).run([AssetRequest.parse("/js/app.js")])

        assert result.outcomes[0].error is ErrorKind.REMOTE_LOOKUP_FAILURE
        assert result.outcomes[0].message == "access denied"
        assert fake_store.puts == {}


class TestDeduplication:
    """Tests for requests sharing a storage key."""

    @pytest.mark.asyncio
    async def test_duplicate_requests_run_once(self, fake_store, log, write_asset, options) -> None:
        """Requests that resolve to the same key produce one outcome."""
        write_asset("/js/app.js", "var a;")

        result = await _pipeline(options, fake_store, log).run(
            [
                AssetRequest.parse("/js/app.js"),
                AssetRequest.parse("/js/app.js", {"defer": "defer"}),
                AssetRequest.parse("/js/app.js?v=2"),
            ]
        )

        assert len(result.outcomes) == 1
        assert fake_store.heads == ["js/app.js"]

    @pytest.mark.asyncio
    async def test_empty_request_list(self, fake_store, log, options) -> None:
        """An empty run finishes with no outcomes."""
        result = await _pipeline(options, fake_store, log).run([])
        assert result.outcomes == []


async def _rewriting_runner(argv: Sequence[str]) -> ProcessResult:
    """Optimizer stand-in that rewrites its output file, touching its mtime."""
    args = list(argv)
    source = Path(args[-1])
    target = Path(args[args.index("-outfile") + 1]) if "-outfile" in args else source
    target.write_bytes(source.read_bytes())
    return ProcessResult(returncode=0)


class TestOptimizedImagesAreIdempotent:
    """Optimized images stay unchanged from the store's point of view."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("asset", ["/img/photo.jpg", "/img/logo.png"])
    async def test_second_run_uploads_nothing(self, options, log, write_asset, s3_client, asset: str) -> None:
        """An image optimized and uploaded once is skipped on the next run."""
        path = write_asset(asset, b"image-bytes", mtime_ms=BASE_MTIME_MS)
        store = S3ObjectStore(s3_client, _BUCKET)
        dispatcher = TransformDispatcher(options, log, runner=_rewriting_runner)
        requests = [AssetRequest.parse(asset)]

        first = await AssetPipeline(options, store, log, dispatcher=dispatcher).run(requests)
        second = await AssetPipeline(options, store, log, dispatcher=dispatcher).run(requests)

        assert len(first.uploaded) == 1
        assert len(second.uploaded) == 0
        assert [o.decision for o in second.outcomes] == [PublishDecision.SKIP]
        assert path.stat().st_mtime_ns == BASE_MTIME_MS * 1_000_000


class TestReadFailures:
    """Source files that cannot be decoded or read become outcomes, not crashes."""

    @pytest.mark.asyncio
    async def test_undecodable_stylesheet_with_continue(self, options, fake_store, log, write_asset) -> None:
        """A latin-1 stylesheet is recorded as failed and healthy jobs still upload."""
        write_asset("/css/legacy.css", ".c:after{content:'©'}".encode("latin-1"))
        write_asset("/js/app.js", "var a;")
        options = replace(options, continue_on_failure=True)

        result = await _pipeline(options, fake_store, log).run(
            [AssetRequest.parse("/css/legacy.css"), AssetRequest.parse("/js/app.js")]
        )

        assert [o.error for o in result.outcomes] == [ErrorKind.TRANSFORM_FAILURE, None]
        assert "not valid UTF-8" in result.outcomes[0].message
        assert list(fake_store.puts) == ["js/app.js"]

    @pytest.mark.asyncio
    async def test_undecodable_stylesheet_aborts(self, options, fake_store, log, write_asset) -> None:
        """Without continue_on_failure the decode error aborts the run."""
        write_asset("/css/legacy.css", ".c:after{content:'©'}".encode("latin-1"))

        with pytest.raises(PipelineAbortedError) as exc_info:
            await _pipeline(options, fake_store, log).run([AssetRequest.parse("/css/legacy.css")])

        assert exc_info.value.outcome.error is ErrorKind.TRANSFORM_FAILURE
        assert fake_store.puts == {}

    @pytest.mark.asyncio
    async def test_unreadable_source_with_continue(self, options, fake_store, log, public_dir, write_asset) -> None:
        """A source that stats but cannot be read is recorded as not found."""
        (public_dir / "js" / "dir.js").mkdir(parents=True)
        write_asset("/js/app.js", "var a;")
        options = replace(options, continue_on_failure=True)

        result = await _pipeline(options, fake_store, log).run(
            [AssetRequest.parse("/js/dir.js"), AssetRequest.parse("/js/app.js")]
        )

        assert [o.error for o in result.outcomes] == [ErrorKind.ASSET_NOT_FOUND, None]
        assert list(fake_store.puts) == ["js/app.js"]

    @pytest.mark.asyncio
    async def test_unreadable_source_aborts(self, options, fake_store, log, public_dir) -> None:
        """Without continue_on_failure an unreadable source aborts the run."""
        (public_dir / "js" / "dir.js").mkdir(parents=True)

        with pytest.raises(PipelineAbortedError) as exc_info:
            await _pipeline(options, fake_store, log).run([AssetRequest.parse("/js/dir.js")])

        assert exc_info.value.outcome.error is ErrorKind.ASSET_NOT_FOUND


class TestNestedJobLogging:
    """Tests for the log line emitted when a nested job is queued."""

    @pytest.mark.asyncio
    async def test_logs_kind_and_storage_key(self, options, fake_store, log, write_asset) -> None:
        """Queuing a nested job logs its kind, source path and storage key."""
        write_asset("/css/site.css", "@font-face{font-family:I;src:url(/fonts/i.woff2)}")
        write_asset("/fonts/i.woff2", b"wOF2")
        options = replace(options, prefix="static")
        messages: list[str] = []
        sink_id = logger.add(lambda message: messages.append(message.record["message"]), level="DEBUG")
        try:
            await _pipeline(options, fake_store, log).run([AssetRequest.parse("/css/site.css")])
        finally:
            logger.remove(sink_id)

        source = options.public_dir / "fonts" / "i.woff2"
        assert f"/css/site.css references font fonts/i.woff2 ({source}) as static/fonts/i.woff2" in messages
