"""Publish CLI commands for static asset publishing to object storage."""

import asyncio
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Any

import typer
from loguru import logger

publish_app = typer.Typer(name="publish", help="Publish static assets to object storage.")


def _get_publisher_version() -> str:
    """Get the project version for the manifest publisher_version field."""
    try:
        return version("asset-cdn")
    except PackageNotFoundError:
        return "unknown"


def _create_s3_client_from_settings(settings: Any) -> Any:
    """Create an S3 client from application settings.

    Args:
        settings: Application settings with S3 configuration.

    Returns:
        Configured boto3 S3 client.

    Raises:
        typer.Exit: If S3 is not configured.
    """
    from asset_cdn.lib.publisher.storage import create_s3_client

    if not all([settings.s3_access_key_id, settings.s3_secret_access_key, settings.s3_bucket]):
        typer.echo("Error: Missing required S3 configuration. Check S3_ACCESS_KEY_ID, S3_SECRET_ACCESS_KEY and S3_BUCKET.")
        raise typer.Exit(code=1)

    return create_s3_client(
        access_key_id=settings.s3_access_key_id,
        secret_access_key=settings.s3_secret_access_key,
        region=settings.s3_region,
        endpoint_url=settings.s3_endpoint_url,
    )


def _parse_asset_arguments(assets: list[str]) -> list[Any]:
    """Turn CLI arguments into requests; a comma-separated argument is a bundle."""
    from asset_cdn.lib.publisher.types import AssetRequest

    requests = []
    for arg in assets:
        parts = [p.strip() for p in arg.split(",") if p.strip()]
        requests.append(AssetRequest.parse(parts if len(parts) > 1 else parts[0]))
    return requests


@publish_app.command("assets")
def assets_command(
    assets: list[str] | None = typer.Argument(None, help="Assets to publish; comma-separate paths to bundle them"),
    force: bool = typer.Option(False, "--force", help="Publish even when the cache file is present"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show every asset outcome"),
) -> None:
    """Scan templates and publish every referenced asset that changed."""
    asyncio.run(_assets_command(assets=assets or [], force=force, verbose=verbose))


async def _assets_command(*, assets: list[str], force: bool = False, verbose: bool = False) -> None:
    """Async implementation of the assets publish command."""
    from asset_cdn.core.config import get_settings
    from asset_cdn.core.logging import get_pipeline_logger
    from asset_cdn.lib.publisher.errors import PipelineAbortedError, TemplateScanError
    from asset_cdn.lib.publisher.manifest import build_manifest, manifest_is_current, write_manifest
    from asset_cdn.lib.publisher.options import PublishOptions
    from asset_cdn.lib.publisher.pipeline import AssetPipeline
    from asset_cdn.lib.publisher.storage import S3ObjectStore, validate_config
    from asset_cdn.lib.scanner import scan_templates

    settings = get_settings()

    if not settings.production:
        typer.echo("Production mode is off (PRODUCTION=false); assets are served locally.")
        return

    cache_file = Path(settings.cache_file) if settings.cache_file else None
    if not force and manifest_is_current(cache_file):
        typer.echo(f"Cache file {cache_file} is present; assets were already published.")
        return

    requests = _parse_asset_arguments(assets)
    if not requests and not settings.disable_walk:
        try:
            requests = scan_templates(Path(settings.views_dir), settings.template_extension_list)
        except (TemplateScanError, FileNotFoundError) as exc:
            typer.echo(f"Error: {exc}")
            raise typer.Exit(code=1) from exc

    if not requests:
        typer.echo("No asset references found; nothing to publish.")
        return

    client = _create_s3_client_from_settings(settings)

    # Checked by _create_s3_client_from_settings
    assert settings.s3_bucket is not None

    # Validate bucket access before doing any work
    try:
        validate_config(client, settings.s3_bucket)
    except Exception as exc:
        typer.echo(f"Error: Failed to connect to S3: {exc}")
        raise typer.Exit(code=1) from exc

    typer.echo(f"Connected to S3, publishing {len(requests)} asset references...")
    options = PublishOptions.from_settings(settings)
    pipeline = AssetPipeline(options, S3ObjectStore(client, settings.s3_bucket), get_pipeline_logger())

    try:
        result = await pipeline.run(requests)
    except PipelineAbortedError as exc:
        logger.error("Publish failed: {}", exc)
        typer.echo(f"Error: Publish failed: {exc}")
        raise typer.Exit(code=1) from exc

    typer.echo(
        f"\nUploaded {len(result.uploaded)}, unchanged {len(result.skipped)}, failed {len(result.failed)} "
        f"in {result.duration_seconds:.1f}s"
    )
    for outcome in result.outcomes:
        if verbose or not outcome.success:
            status = outcome.error.value if outcome.error else (outcome.decision.value if outcome.decision else "-")
            marker = "  (nested)" if outcome.nested else ""
            typer.echo(f"  {status:22s}  {outcome.storage_key or outcome.request.label}{marker}")

    if cache_file is not None:
        write_manifest(cache_file, build_manifest(result, _get_publisher_version()))
        typer.echo(f"Manifest: {cache_file}")


@publish_app.command("status")
def status_command() -> None:
    """Show the outcome of the last publish recorded in the cache file."""
    from asset_cdn.core.config import get_settings
    from asset_cdn.lib.publisher.manifest import read_manifest

    settings = get_settings()
    if not settings.cache_file:
        typer.echo("No cache file is configured (CACHE_FILE).")
        return

    try:
        manifest = read_manifest(Path(settings.cache_file))
    except ValueError as exc:
        typer.echo(f"Error: Failed to read cache file: {exc}")
        raise typer.Exit(code=1) from exc

    if manifest is None:
        typer.echo("No assets have been published yet.")
        return

    entries = manifest.get("assets", [])
    typer.echo(f"Published assets (last run: {manifest.get('published_at', 'unknown')})")
    typer.echo("─" * 60)
    for entry in entries:
        status = entry.get("error") or entry.get("decision") or "-"
        typer.echo(f"  {status:22s}  {entry.get('key') or entry.get('request')}")
