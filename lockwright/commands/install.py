"""Install command implementation."""

import click

from lockwright.commands.utils import run_installer
from lockwright.installer import InstallOptions


@click.command()
@click.option("--no-dev", is_flag=True, help="Skip require-dev packages")
@click.option("--dry-run", is_flag=True, help="Show the operations without executing them")
@click.option(
    "--ignore-platform-reqs",
    is_flag=True,
    help="Ignore php, hhvm, ext-* and lib-* requirements",
)
@click.pass_context
def install(ctx, no_dev: bool, dry_run: bool, ignore_platform_reqs: bool):
    """Install from the lock file, or resolve and lock if there is none."""
    options = InstallOptions(
        dev_mode=not no_dev,
        dry_run=dry_run,
        ignore_platform_reqs=ignore_platform_reqs,
    )
    run_installer(ctx, options)
