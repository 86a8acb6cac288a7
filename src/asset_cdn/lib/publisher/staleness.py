"""Skip-or-republish decisions against remote object metadata."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Protocol

from asset_cdn.lib.publisher.types import FingerprintedName, PublishDecision, RemoteObjectMeta

if TYPE_CHECKING:
    from datetime import datetime

    from loguru import Logger


class MetadataLookup(Protocol):
    """Anything that can answer a HEAD-style query by storage key."""

    def head(self, key: str) -> RemoteObjectMeta: ...


def to_ms(value: datetime) -> int:
    """Convert an aware datetime to epoch milliseconds."""
    return int(value.timestamp() * 1000)


def decide(local_timestamp: int, remote: RemoteObjectMeta) -> PublishDecision:
    """Apply the staleness table to a local timestamp and remote metadata.

    A missing remote object is republished.  An existing one is skipped
    unless the local timestamp is strictly newer than its last-modified time.
    """
    if not remote.exists or remote.last_modified is None:
        return PublishDecision.REPUBLISH
    if local_timestamp <= to_ms(remote.last_modified):
        return PublishDecision.SKIP
    return PublishDecision.REPUBLISH


class StalenessOracle:
    """Queries the object store and decides whether an asset is stale.

    Args:
        store: Remote metadata lookup (an :class:`S3ObjectStore`).
        log: Bound logger.
    """

    def __init__(self, store: MetadataLookup, log: Logger) -> None:
        self._store = store
        self._log = log

    async def check(self, name: FingerprintedName, storage_key: str) -> PublishDecision:
        """Decide SKIP or REPUBLISH for one fingerprinted asset.

        Raises:
            RemoteLookupError: If the lookup fails for a reason other than not-found.
        """
        remote = await asyncio.to_thread(self._store.head, storage_key)
        decision = decide(name.timestamp, remote)
        if decision is PublishDecision.SKIP:
            self._log.info('"{}" not modified and is already stored remotely', name.file_name)
        elif remote.exists:
            self._log.info('"{}" was modified since it was last published', name.file_name)
        else:
            self._log.info('"{}" was not found in the bucket', name.file_name)
        return decision
