"""Typer CLI root application."""

import typer

from asset_cdn.core.config import get_settings
from asset_cdn.core.logging import setup_logging

app = typer.Typer(name="asset-cdn", help="Publish static assets to S3 behind a CDN")


@app.callback()
def _main_callback() -> None:
    """Initialize logging for all CLI commands."""
    settings = get_settings()
    setup_logging(settings.log_level, log_dir=settings.log_dir)


def _register_subcommands() -> None:
    """Register all CLI subcommand groups."""
    from asset_cdn.cli.assets_cmd import render, scan
    from asset_cdn.cli.publish_cmd import publish_app

    app.add_typer(publish_app, name="publish", help="Publish static assets to object storage")
    app.command("scan")(scan)
    app.command("render")(render)


_register_subcommands()
