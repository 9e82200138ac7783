"""oaid command line interface.

Provides commands to serve the endpoint and manage the cache offline.
"""

import sys
from pathlib import Path

import click

from oai_library.config import create_default_config
from oai_library.config import load_config
from oai_library.sync import UnknownSetError

from .__main__ import main as serve_main
from .services import build_services


def _load(config_path: str | None):
    return load_config(Path(config_path) if config_path else None)


@click.group()
def cli():
    """oaid - OAI-PMH repository endpoint."""


@cli.command()
def serve():
    """Start the HTTP server in the foreground."""
    serve_main()


@cli.command()
@click.option("--set", "set_id", default=None, help="Rebuild only this set")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None, help="Config file")
def rebuild(set_id: str | None, config_path: str | None):
    """Re-index the cache from the content repository."""
    services = build_services(_load(config_path))
    try:
        if set_id:
            summary = services.synchronizer.rebuild_set(set_id, wait=True)
        else:
            summary = services.synchronizer.rebuild_all(wait=True)
    except UnknownSetError:
        click.echo(f"Error: set not configured: {set_id}", err=True)
        sys.exit(1)
    finally:
        services.close()

    click.echo(f"Rebuilt {len(summary.sets)} set(s)")
    for retired in summary.retired:
        click.echo(f"  • retired {retired}")
    for failed_id, message in summary.failed.items():
        click.echo(f"  • {failed_id} failed: {message}", err=True)
    if summary.failed:
        sys.exit(1)


@cli.command()
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None, help="Config file")
def status(config_path: str | None):
    """Show cache store counts."""
    services = build_services(_load(config_path))
    try:
        counts = services.store.counts()
    finally:
        services.close()

    click.echo("oaid Cache Status:")
    click.echo(f"  Database:    {services.store.database_path}")
    click.echo(f"  Records:     {counts.records}")
    click.echo(f"  Sets:        {counts.sets}")
    click.echo(f"  Memberships: {counts.memberships}")
    click.echo(f"  Tokens:      {counts.tokens}")
    earliest = counts.earliest_created.isoformat() if counts.earliest_created else "-"
    click.echo(f"  Earliest:    {earliest}")


@cli.command("init-config")
@click.option("--path", "config_path", type=click.Path(dir_okay=False), default=None, help="Target file")
def init_config(config_path: str | None):
    """Write the default configuration file if it does not exist."""
    path = create_default_config(Path(config_path) if config_path else None)
    click.echo(f"Config: {path}")


def main():
    cli()


if __name__ == "__main__":
    main()
