"""CLI command definitions for lockwright."""

import click

from lockwright import __version__, setup_logging
from lockwright.commands.install import install
from lockwright.commands.update import update
from lockwright.commands.utils import build_installer


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug output for troubleshooting")
@click.option(
    "--manifest",
    type=click.Path(dir_okay=False),
    help="Path to the project manifest (default: ./lockwright.json)",
)
@click.version_option(__version__, prog_name="lockwright")
@click.pass_context
def cli(ctx, debug, manifest):
    """Resolve, lock and install project dependencies."""
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    ctx.obj["manifest"] = manifest
    setup_logging(debug)


cli.add_command(install)
cli.add_command(update)

__all__ = ["build_installer", "cli"]


if __name__ == "__main__":
    cli()
