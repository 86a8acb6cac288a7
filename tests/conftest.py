"""Shared test fixtures for asset files, publish options, loggers and fake stores."""

from __future__ import annotations

import os
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

import pytest
from botocore.exceptions import ClientError
from loguru import logger

from asset_cdn.lib.publisher.options import PublishOptions
from asset_cdn.lib.publisher.types import AssetHeaders, RemoteObjectMeta

if TYPE_CHECKING:
    from loguru import Logger

# 2023-11-14T22:13:20Z, a whole second so datetime round-trips are exact
BASE_MTIME_MS = 1_700_000_000_000


def ms_to_datetime(ms: int) -> datetime:
    """Convert epoch milliseconds to an aware datetime."""
    return datetime.fromtimestamp(ms / 1000, tz=UTC)


class FakeStore:
    """In-memory object store recording HEAD lookups and uploads."""

    def __init__(self) -> None:
        self.remote: dict[str, datetime] = {}
        self.head_errors: dict[str, Exception] = {}
        self.put_failures = 0
        self.heads: list[str] = []
        self.puts: dict[str, tuple[bytes, AssetHeaders]] = {}
        self.put_attempts = 0

    def head(self, key: str) -> RemoteObjectMeta:
        self.heads.append(key)
        if key in self.head_errors:
            raise self.head_errors[key]
        if key in self.remote:
            return RemoteObjectMeta(exists=True, last_modified=self.remote[key])
        return RemoteObjectMeta(exists=False)

    def put(self, key: str, body: bytes, headers: AssetHeaders) -> None:
        self.put_attempts += 1
        if self.put_failures:
            self.put_failures -= 1
            raise ClientError({"Error": {"Code": "SlowDown", "Message": "Please reduce your request rate."}}, "PutObject")
        self.puts[key] = (body, headers)


@pytest.fixture
def public_dir(tmp_path: Path) -> Path:
    """Empty public directory assets are written into."""
    path = tmp_path / "public"
    path.mkdir()
    return path


@pytest.fixture
def write_asset(public_dir: Path) -> Callable[..., Path]:
    """Write a file under the public directory with a fixed modification time."""

    def _write(asset: str, content: str | bytes = "", mtime_ms: int = BASE_MTIME_MS) -> Path:
        path = public_dir / asset.lstrip("/")
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
        ns = mtime_ms * 1_000_000
        os.utime(path, ns=(ns, ns))
        return path

    return _write


@pytest.fixture
def options(public_dir: Path) -> PublishOptions:
    """Production publish options with no retry delay."""
    return PublishOptions(
        public_dir=public_dir,
        bucket="test-bucket",
        upload_max_attempts=3,
        upload_retry_base_delay=0,
        domain="cdn.example.com",
    )


@pytest.fixture
def log() -> Logger:
    """Logger bound the way pipeline components receive it."""
    return logger.bind(task="test")


@pytest.fixture
def fake_store() -> FakeStore:
    """In-memory object store."""
    return FakeStore()
