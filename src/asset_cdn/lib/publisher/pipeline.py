"""Concurrent fan-out of asset requests through the publish pipeline.

Each request becomes one task in an :class:`asyncio.TaskGroup`: fingerprint,
staleness check, transform, upload.  Stylesheet transforms hand back nested
jobs, which are submitted to the same group rather than awaited inline.
Jobs report through :class:`PublishOutcome`; the pipeline inspects each
outcome and cancels the whole run when a failure is pipeline-fatal.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Iterable
from typing import TYPE_CHECKING

from asset_cdn.lib.publisher.errors import AssetPublishError, PipelineAbortedError
from asset_cdn.lib.publisher.naming import fingerprint, publish_file_name
from asset_cdn.lib.publisher.staleness import StalenessOracle
from asset_cdn.lib.publisher.transform import TransformDispatcher
from asset_cdn.lib.publisher.types import ErrorKind, PipelineResult, PublishDecision, PublishOutcome
from asset_cdn.lib.publisher.upload import Publisher

if TYPE_CHECKING:
    from loguru import Logger

    from asset_cdn.lib.publisher.options import PublishOptions
    from asset_cdn.lib.publisher.storage import S3ObjectStore
    from asset_cdn.lib.publisher.types import AssetRequest


class _Run:
    """Mutable state of one pipeline invocation, touched only from the event loop."""

    def __init__(self, group: asyncio.TaskGroup, concurrency: int) -> None:
        self.group = group
        self.semaphore = asyncio.Semaphore(concurrency)
        self.seen: set[str] = set()
        self.outcomes: list[PublishOutcome] = []


class AssetPipeline:
    """Publishes a list of asset requests to the object store.

    Args:
        options: Pipeline options.
        store: Object store used for lookups and uploads.
        log: Bound logger.
        oracle: Staleness oracle (built from ``store`` when omitted).
        dispatcher: Transform dispatcher (built from ``options`` when omitted).
        publisher: Uploader (built from ``store`` when omitted).
    """

    def __init__(
        self,
        options: PublishOptions,
        store: S3ObjectStore,
        log: Logger,
        *,
        oracle: StalenessOracle | None = None,
        dispatcher: TransformDispatcher | None = None,
        publisher: Publisher | None = None,
    ) -> None:
        self._options = options
        self._log = log
        self._oracle = oracle or StalenessOracle(store, log)
        self._dispatcher = dispatcher or TransformDispatcher(options, log)
        self._publisher = publisher or Publisher(
            store,
            log,
            max_attempts=options.upload_max_attempts,
            base_delay=options.upload_retry_base_delay,
        )

    async def run(self, requests: Iterable[AssetRequest]) -> PipelineResult:
        """Publish every request and every asset their stylesheets reference.

        Returns:
            Outcomes in submission order: requested assets first, nested
            assets in the order they were discovered.

        Raises:
            PipelineAbortedError: If a job failed in a way that aborts the run.
        """
        started = time.monotonic()
        try:
            async with asyncio.TaskGroup() as group:
                run = _Run(group, self._options.concurrency)
                for request in requests:
                    self._submit(run, request, nested=False)
        except ExceptionGroup as eg:
            aborted = eg.subgroup(PipelineAbortedError)
            if aborted is None:
                raise
            first = aborted.exceptions[0]
            self._log.error("{}", first)
            raise first from None

        result = PipelineResult(outcomes=run.outcomes, duration_seconds=time.monotonic() - started)
        self._log.info(
            "Publish finished: {} uploaded, {} unchanged, {} failed in {:.1f}s",
            len(result.uploaded),
            len(result.skipped),
            len(result.failed),
            result.duration_seconds,
        )
        return result

    def _submit(self, run: _Run, request: AssetRequest, *, nested: bool) -> None:
        identity = self._options.storage_key(publish_file_name(request))
        if identity in run.seen:
            self._log.debug("{} already scheduled; not checking it twice", request.label)
            return
        run.seen.add(identity)

        outcome = PublishOutcome(request=request, nested=nested)
        run.outcomes.append(outcome)
        run.group.create_task(self._run_job(run, outcome))

    async def _run_job(self, run: _Run, outcome: PublishOutcome) -> None:
        async with run.semaphore:
            await self._publish(run, outcome)
        if self._aborts_pipeline(outcome):
            raise PipelineAbortedError(outcome)

    def _aborts_pipeline(self, outcome: PublishOutcome) -> bool:
        if outcome.error is None:
            return False
        if outcome.error is ErrorKind.UPLOAD_FAILURE:
            return True
        return not self._options.continue_on_failure

    async def _publish(self, run: _Run, outcome: PublishOutcome) -> None:
        request = outcome.request
        try:
            name = fingerprint(request, self._options.public_dir)
            outcome.file_name = name.file_name
            outcome.storage_key = self._options.storage_key(name.file_name)

            outcome.decision = await self._oracle.check(name, outcome.storage_key)
            if outcome.decision is PublishDecision.SKIP:
                return

            result = await self._dispatcher.transform(request, name)
            for job in result.nested_jobs:
                self._log.debug(
                    "{} references {} {} ({}) as {}",
                    request.label,
                    job.kind,
                    job.file_name,
                    job.source_path,
                    job.storage_key,
                )
                self._submit(run, job.request, nested=True)

            outcome.storage_key = self._options.storage_key(result.file_name)
            await self._publisher.publish(result.body, result.headers, outcome.storage_key)
        except AssetPublishError as exc:
            outcome.error = exc.kind
            outcome.message = exc.message
            self._log.error("Publishing {} failed ({}): {}", request.label, exc.kind.value, exc.message)
