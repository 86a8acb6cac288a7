"""Manifest (cache file) generation and the skip-if-published check.

A completed publish run writes one JSON record per request.  When that file
exists and is non-empty, later runs treat every asset as already published
and skip the pipeline entirely.
"""

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from loguru import logger

from asset_cdn.lib.publisher.types import PipelineResult, PublishOutcome

MANIFEST_VERSION = "1"


def outcome_to_dict(outcome: PublishOutcome) -> dict[str, Any]:
    """Serialize one outcome for the manifest."""
    return {
        "request": outcome.request.to_json(),
        "file_name": outcome.file_name,
        "key": outcome.storage_key,
        "decision": outcome.decision.value if outcome.decision else None,
        "nested": outcome.nested,
        "error": outcome.error.value if outcome.error else None,
        "message": outcome.message,
    }


def build_manifest(result: PipelineResult, publisher_version: str) -> dict[str, Any]:
    """Construct a manifest dict from a pipeline result.

    Args:
        result: Outcome list of a finished pipeline run.
        publisher_version: Version string of the publisher package.

    Returns:
        Manifest dict ready for JSON serialization.
    """
    return {
        "version": MANIFEST_VERSION,
        "published_at": datetime.now(tz=UTC).isoformat(),
        "publisher_version": publisher_version,
        "duration_seconds": round(result.duration_seconds, 3),
        "assets": [outcome_to_dict(o) for o in result.outcomes],
    }


def write_manifest(path: Path, manifest: dict[str, Any]) -> None:
    """Write the manifest as JSON, creating parent directories as needed."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(manifest, indent=2, default=str), encoding="utf-8")
    logger.info("Wrote results to cache file {}", path)


def manifest_is_current(path: Path | None) -> bool:
    """Return True when a prior run's manifest exists and is non-empty."""
    if path is None:
        return False
    try:
        return path.is_file() and path.stat().st_size > 0
    except OSError:
        return False


def read_manifest(path: Path) -> dict[str, Any] | None:
    """Load a manifest written by :func:`write_manifest`, or None if absent."""
    if not manifest_is_current(path):
        return None
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        msg = f"manifest at {path} is not a JSON object"
        raise ValueError(msg)
    return data
