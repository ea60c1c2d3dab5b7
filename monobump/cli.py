"""CLI entry point for monobump."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

import click

from .errors import MonobumpError
from .models import ChangeType
from .output import fatal
from .pipeline import (
    add_consignment,
    run_prerelease,
    run_promote,
    run_remove,
    run_snapshot,
    run_status,
    run_validate,
    run_version,
)

F = TypeVar("F", bound=Callable[..., Any])


def _run(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Call a pipeline function, turning monobump errors into exit codes."""
    try:
        return fn(*args, **kwargs)
    except MonobumpError as exc:
        fatal(str(exc), exc.exit_code)


def _release_options(fn: F) -> F:
    fn = click.option(
        "-p",
        "--package",
        "packages",
        multiple=True,
        help="Only consider this package (repeatable).",
    )(fn)
    fn = click.option(
        "--preview", is_flag=True, help="Show what would happen without writing anything."
    )(fn)
    return fn


@click.group()
@click.option(
    "--root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    help="Repository root holding the configuration.",
)
@click.version_option()
@click.pass_context
def cli(ctx: click.Context, root: Path) -> None:
    """Monorepo version bumps from recorded change consignments."""
    ctx.obj = root.resolve()


@cli.command()
@click.option(
    "-p", "--package", "packages", multiple=True, required=True, help="Affected package."
)
@click.option(
    "-t",
    "--type",
    "change_type",
    type=click.Choice([ct.value for ct in ChangeType]),
    required=True,
    help="Severity of the change.",
)
@click.option("-m", "--message", "summary", required=True, help="Change summary.")
@click.option("--meta", multiple=True, metavar="KEY=VALUE", help="Extra metadata.")
@click.pass_obj
def add(
    root: Path,
    packages: tuple[str, ...],
    change_type: str,
    summary: str,
    meta: tuple[str, ...],
) -> None:
    """Record a pending change."""
    metadata: dict[str, str] = {}
    for item in meta:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise click.BadParameter(f"expected KEY=VALUE, got {item!r}", param_hint="--meta")
        metadata[key.strip()] = value.strip()
    _run(add_consignment, root, list(packages), change_type, summary, metadata)


@cli.command()
@click.option("-p", "--package", "packages", multiple=True, help="Only this package.")
@click.pass_obj
def status(root: Path, packages: tuple[str, ...]) -> None:
    """Show pending consignments and the versions they would produce."""
    _run(run_status, root, packages)


@cli.command()
@_release_options
@click.pass_obj
def version(root: Path, preview: bool, packages: tuple[str, ...]) -> None:
    """Release stable versions and consume the pending consignments."""
    _run(run_version, root, preview=preview, packages=packages)


@cli.command()
@_release_options
@click.pass_obj
def prerelease(root: Path, preview: bool, packages: tuple[str, ...]) -> None:
    """Create or increment pre-release versions."""
    _run(run_prerelease, root, preview=preview, packages=packages)


@cli.command()
@_release_options
@click.pass_obj
def promote(root: Path, preview: bool, packages: tuple[str, ...]) -> None:
    """Move pre-releases to the next stage."""
    _run(run_promote, root, preview=preview, packages=packages)


@cli.command()
@_release_options
@click.pass_obj
def snapshot(root: Path, preview: bool, packages: tuple[str, ...]) -> None:
    """Write timestamped snapshot versions."""
    _run(run_snapshot, root, preview=preview, packages=packages)


@cli.command()
@click.option("--id", "ids", multiple=True, help="Consignment id to remove (repeatable).")
@click.option("--all", "remove_all", is_flag=True, help="Remove every pending consignment.")
@click.pass_obj
def remove(root: Path, ids: tuple[str, ...], remove_all: bool) -> None:
    """Delete pending consignments."""
    if not ids and not remove_all:
        raise click.UsageError("specify --id or --all to remove consignments")
    if ids and remove_all:
        raise click.UsageError("--id and --all are mutually exclusive")
    _run(run_remove, root, ids, remove_all=remove_all)


@cli.command()
@click.pass_obj
def validate(root: Path) -> None:
    """Check the configuration, consignments and dependency graph."""
    _run(run_validate, root)
