"""Update command implementation."""

import click

from lockwright.commands.utils import run_installer
from lockwright.installer import InstallOptions


@click.command()
@click.argument("packages", nargs=-1)
@click.option("--no-dev", is_flag=True, help="Skip require-dev packages")
@click.option("--dry-run", is_flag=True, help="Show the operations without executing them")
@click.option(
    "--with-dependencies",
    is_flag=True,
    help="Also update the dependencies of the listed packages",
)
@click.option(
    "--ignore-platform-reqs",
    is_flag=True,
    help="Ignore php, hhvm, ext-* and lib-* requirements",
)
@click.pass_context
def update(
    ctx,
    packages: tuple[str, ...],
    no_dev: bool,
    dry_run: bool,
    with_dependencies: bool,
    ignore_platform_reqs: bool,
):
    """Resolve again and rewrite the lock file.

    PACKAGES limits the update to the listed names (``*`` wildcards allowed);
    everything else stays at its locked version.
    """
    if with_dependencies and not packages:
        click.echo("Warning: --with-dependencies has no effect without package names", err=True)
    options = InstallOptions(
        dev_mode=not no_dev,
        update=True,
        dry_run=dry_run,
        update_whitelist=list(packages) or None,
        whitelist_dependencies=with_dependencies,
        ignore_platform_reqs=ignore_platform_reqs,
    )
    run_installer(ctx, options)
