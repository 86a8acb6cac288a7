"""Publisher library: public API for the asset publish pipeline.

Provides fingerprinting, staleness checks against S3, per-mime-type
transforms, stylesheet URL rewriting, retrying uploads and manifest
management for publishing static assets behind a CDN.
"""

from asset_cdn.lib.publisher.css import CssRewriter, scan_references
from asset_cdn.lib.publisher.errors import (
    AssetNotFoundError,
    AssetPublishError,
    MimeMismatchError,
    PipelineAbortedError,
    RemoteLookupError,
    TemplateScanError,
    TransformError,
    UnsupportedMimeTypeError,
    UploadError,
)
from asset_cdn.lib.publisher.manifest import build_manifest, manifest_is_current, read_manifest, write_manifest
from asset_cdn.lib.publisher.naming import fingerprint, publish_file_name
from asset_cdn.lib.publisher.options import PublishOptions
from asset_cdn.lib.publisher.pipeline import AssetPipeline
from asset_cdn.lib.publisher.staleness import StalenessOracle
from asset_cdn.lib.publisher.storage import S3ObjectStore, create_s3_client, validate_config
from asset_cdn.lib.publisher.transform import TransformDispatcher
from asset_cdn.lib.publisher.types import (
    AssetRequest,
    ErrorKind,
    FingerprintedName,
    PipelineResult,
    PublishDecision,
    PublishOutcome,
)
from asset_cdn.lib.publisher.upload import Publisher

__all__ = [
    "AssetNotFoundError",
    "AssetPipeline",
    "AssetPublishError",
    "AssetRequest",
    "CssRewriter",
    "ErrorKind",
    "FingerprintedName",
    "MimeMismatchError",
    "PipelineAbortedError",
    "PipelineResult",
    "PublishDecision",
    "PublishOptions",
    "PublishOutcome",
    "Publisher",
    "RemoteLookupError",
    "S3ObjectStore",
    "StalenessOracle",
    "TemplateScanError",
    "TransformDispatcher",
    "TransformError",
    "UnsupportedMimeTypeError",
    "UploadError",
    "build_manifest",
    "create_s3_client",
    "fingerprint",
    "manifest_is_current",
    "publish_file_name",
    "read_manifest",
    "scan_references",
    "validate_config",
    "write_manifest",
]
