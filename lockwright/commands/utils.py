"""Shared plumbing for the install and update commands."""

import asyncio
import sys
from pathlib import Path

import click

from lockwright import is_debug
from lockwright.cancellation import CancellationToken
from lockwright.config import load_manifest
from lockwright.errors import (
    ExecutionError,
    LockwrightError,
    StaleLockError,
    UnsatisfiableError,
    format_error,
    format_suggestion,
)
from lockwright.installer import (
    Installer,
    InstallOptions,
    InstallResult,
    OperationType,
    RecordingInstallationManager,
)
from lockwright.locker import JsonLockFile, Locker, compute_content_hash
from lockwright.package import load_root_package
from lockwright.paths import get_installed_path, get_lock_path, get_manifest_path
from lockwright.repository import JsonInstalledRepository, RepositoryManager


def build_installer(
    manifest_path: Path,
    options: InstallOptions,
    token: CancellationToken | None = None,
) -> Installer:
    """Wire an Installer from the manifest at ``manifest_path``.

    The installation manager only records operations into the installed
    state; fetching and extracting package files is left to a real manager.
    """
    manifest = load_manifest(manifest_path)
    root = load_root_package(manifest)
    repositories = RepositoryManager(manifest_path.parent).create_repositories(manifest.repositories)
    installed = JsonInstalledRepository(get_installed_path(manifest_path, manifest.vendor_dir))
    locker = Locker(JsonLockFile(get_lock_path(manifest_path)), compute_content_hash(manifest))
    return Installer(
        root,
        repositories,
        locker,
        installed,
        RecordingInstallationManager(installed),
        options,
        token,
    )


def summarize(result: InstallResult) -> str:
    counts = {t: 0 for t in (OperationType.INSTALL, OperationType.UPDATE, OperationType.UNINSTALL)}
    for operation in result.operations:
        if operation.type in counts:
            counts[operation.type] += 1
    return (
        f"Package operations: {counts[OperationType.INSTALL]} installs, "
        f"{counts[OperationType.UPDATE]} updates, {counts[OperationType.UNINSTALL]} removals"
    )


def report(result: InstallResult, dry_run: bool) -> None:
    for warning in result.warnings:
        click.echo(f"Warning: {warning}", err=True)
    if not result.operations:
        click.echo("Nothing to install or update")
    else:
        click.echo(summarize(result))
        for line in result.trace:
            click.echo(f"  - {line}")
    if dry_run:
        click.echo("Dry run: nothing was executed and the lock file was not written")
    elif result.lock_changed:
        click.echo("Writing lock file")


def run_installer(ctx: click.Context, options: InstallOptions) -> None:
    """Build and run an installer for the current manifest; exit on failure."""
    manifest_path = get_manifest_path(ctx.obj.get("manifest"))
    factory = ctx.obj.get("installer_factory", build_installer)
    token = CancellationToken()

    try:
        installer = factory(manifest_path, options, token)
        if is_debug():
            command = "update" if options.update else "install"
            click.echo(f"[DEBUG] Running {command} for {manifest_path}", err=True)
        result = asyncio.run(installer.run())
    except KeyboardInterrupt:
        token.cancel("interrupted")
        click.echo(format_error("Interrupted"), err=True)
        sys.exit(130)
    except UnsatisfiableError as e:
        click.echo(e.render(), err=True)
        sys.exit(e.exit_code)
    except StaleLockError as e:
        click.echo(format_suggestion(str(e), "run 'lockwright update'"), err=True)
        sys.exit(e.exit_code)
    except ExecutionError as e:
        for operation in e.succeeded:
            click.echo(f"  - {operation}")
        click.echo(format_error(str(e)), err=True)
        sys.exit(e.exit_code)
    except LockwrightError as e:
        if is_debug():
            click.echo(f"[DEBUG] {type(e).__name__}: {e}", err=True)
        click.echo(format_error(str(e)), err=True)
        sys.exit(e.exit_code)

    report(result, options.dry_run)


__all__ = ["build_installer", "report", "run_installer", "summarize"]
