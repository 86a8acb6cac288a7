"""CLI commands for inspecting template asset references and rendered tags."""

from pathlib import Path

import typer


def scan(
    views_dir: Path | None = typer.Option(None, "--views-dir", help="Override the configured views directory"),
) -> None:
    """List the distinct CDN(...) asset references found in templates."""
    from asset_cdn.core.config import get_settings
    from asset_cdn.lib.publisher.errors import TemplateScanError
    from asset_cdn.lib.scanner import scan_templates

    settings = get_settings()
    root = views_dir or Path(settings.views_dir)

    try:
        requests = scan_templates(root, settings.template_extension_list)
    except (TemplateScanError, FileNotFoundError) as exc:
        typer.echo(f"Error: {exc}")
        raise typer.Exit(code=1) from exc

    if not requests:
        typer.echo(f"No asset references found in {root}.")
        return

    for request in requests:
        kind = "bundle" if request.bundle else "asset"
        typer.echo(f"  {kind:6s}  {request.label}")
    typer.echo(f"\nTotal: {len(requests)} asset references")


def render(
    assets: list[str] = typer.Argument(..., help="Asset path, or several paths rendered as a bundle"),
    attr: list[str] | None = typer.Option(None, "--attr", help="HTML attribute as name=value (repeatable)"),
    raw: bool = typer.Option(False, "--raw", help="Print the bare URL instead of a tag"),
) -> None:
    """Render the HTML tag a template would get for an asset."""
    from asset_cdn.core.config import get_settings
    from asset_cdn.lib.publisher.errors import AssetPublishError
    from asset_cdn.lib.publisher.options import PublishOptions
    from asset_cdn.lib.tags import TagRenderer

    attributes: dict[str, object] = {}
    for item in attr or []:
        name, sep, value = item.partition("=")
        if not sep or not name:
            typer.echo(f"Error: attribute must be name=value, got {item!r}")
            raise typer.Exit(code=1)
        attributes[name] = value
    if raw:
        attributes["raw"] = True

    renderer = TagRenderer(PublishOptions.from_settings(get_settings()))
    try:
        typer.echo(renderer.render(assets if len(assets) > 1 else assets[0], attributes))
    except AssetPublishError as exc:
        typer.echo(f"Error: {exc}")
        raise typer.Exit(code=1) from exc
