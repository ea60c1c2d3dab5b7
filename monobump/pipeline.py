"""Command pipelines: read → compute → write.

Release commands follow the same shape:
1. Load the configuration and build the dependency graph
2. Read current versions from each package's version file
3. Read pending consignments and the pre-release state
4. Compute version bumps (and pre-release plans)
5. Report what will happen
6. Unless previewing, write version files, consignments and state

Nothing is written until every computation has succeeded, so a parse or
configuration error never leaves a half-updated repository behind.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, NamedTuple

import semver
from packaging.utils import canonicalize_name

from .config import ProjectConfig, consignments_dir, load_config, state_path
from .consignments import (
    consignment_files,
    delete_consignments,
    new_consignment,
    read_consignment,
    read_consignments,
    write_consignment,
)
from .errors import (
    ConfigError,
    ConsignmentError,
    MonobumpError,
    NothingToReleaseError,
    ValidationFailedError,
)
from .graph import DependencyGraph, build_graph, cycle_path, detect_cycles
from .handlers import PythonHandler, get_handler
from .models import ChangeType, Consignment, PreReleaseState, VersionBump
from .output import step, warn
from .propagate import propagate
from .stages import (
    SnapshotPlan,
    StageMachine,
    StageResult,
    clear_released,
    render_tag,
    snapshot,
    stable_base_versions,
)
from .state import read_state, write_state


class Workspace(NamedTuple):
    root: Path
    config: ProjectConfig
    graph: DependencyGraph
    versions: dict[str, semver.Version]


def load_workspace(root: Path) -> Workspace:
    """Load configuration, build the graph and read current versions."""
    config = load_config(root)
    graph = build_graph(config.packages)
    versions = read_current_versions(root, config)
    return Workspace(root, config, graph, versions)


def read_current_versions(root: Path, config: ProjectConfig) -> dict[str, semver.Version]:
    """Read the current version of every configured package.

    Raises:
        ConfigError: If a version file is missing or an ecosystem is unknown.
        ParseError: If a version file holds a malformed version.
    """
    step("Discovering packages")

    versions: dict[str, semver.Version] = {}
    for pkg in config.packages:
        versions[pkg.name] = get_handler(pkg, root).read_version()
        deps = [d.package for d in pkg.dependencies]
        deps_str = f" → [{', '.join(deps)}]" if deps else ""
        print(f"  {pkg.name} {versions[pkg.name]} ({pkg.path}){deps_str}")

    return versions


def load_pending(ws: Workspace, packages: Sequence[str] = ()) -> list[Consignment]:
    """Read pending consignments, optionally limited to some packages."""
    for name in packages:
        ws.config.get_package(name)
    return read_consignments(consignments_dir(ws.root), packages or None)


def report_cycles(graph: DependencyGraph) -> list[list[str]]:
    """Print every dependency cycle; their members are bumped together."""
    paths = [cycle_path(graph, scc) for scc in detect_cycles(graph)]
    if paths:
        step("Dependency cycles")
        for path in paths:
            print(f"  {' -> '.join(path)}")
    return paths


def plan_versions(
    ws: Workspace, state: PreReleaseState, consignments: Sequence[Consignment]
) -> dict[str, VersionBump]:
    """Propagate consignments through the graph and print the bumps.

    Packages in an open pre-release chain are bumped from the stable version
    recorded in the state.
    """
    step("Computing version bumps")

    bumps = propagate(ws.graph, stable_base_versions(ws.versions, state), consignments)
    for name, bump in bumps.items():
        print(
            f"  {name}: {bump.old_version} → {bump.new_version} "
            f"({bump.change_type}, {bump.source})"
        )
    return bumps


def write_versions(
    ws: Workspace,
    new_versions: Mapping[str, semver.Version],
    *,
    pin_internal: bool = False,
) -> None:
    """Write new versions into each package's version file.

    Args:
        ws: Loaded workspace.
        new_versions: Map of package name → version to write.
        pin_internal: Also pin internal dependencies of python packages to
            the exact versions they will have after this run.
    """
    step("Updating version files")

    all_versions = {**ws.versions, **new_versions}
    for name in sorted(new_versions):
        pkg = ws.config.get_package(name)
        handler = get_handler(pkg, ws.root)
        if pin_internal and isinstance(handler, PythonHandler):
            pins = {
                canonicalize_name(dep.package): str(all_versions[dep.package])
                for dep in pkg.dependencies
                if dep.package in all_versions
            }
            handler.update_version(new_versions[name], pins)
        else:
            handler.update_version(new_versions[name])
        files = ", ".join(str(f.relative_to(ws.root)) for f in handler.version_files())
        print(f"  {name}: {new_versions[name]} ({files})")


def _print_preview() -> None:
    print("\nPreview only: nothing was written.")


def _report_stage_result(ws: Workspace, result: StageResult) -> None:
    step("Pre-release versions")
    for plan in result.plans:
        moved = f" ({plan.previous_stage} → {plan.stage})" if plan.previous_stage else ""
        old = ws.versions.get(plan.package, "<none>")
        print(f"  {plan.package}: {old} → {plan.version}{moved}")
        print(f"    tag: {plan.tag_name}")
    for warning in result.warnings:
        warn(warning.message)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def run_status(root: Path, packages: Sequence[str] = ()) -> dict[str, VersionBump]:
    """Show pending consignments, cycles, pre-release state and planned bumps."""
    ws = load_workspace(root)
    report_cycles(ws.graph)
    state = read_state(state_path(root))

    if state.packages:
        step("Pre-release state")
        for name in sorted(state.packages):
            ps = state.packages[name]
            print(f"  {name}: {ps.stage}.{ps.counter} → {ps.target_version}")

    step("Pending consignments")
    consignments = load_pending(ws, packages)
    if not consignments:
        print("  <none>")
        return {}
    for c in consignments:
        headline = c.summary.splitlines()[0]
        print(f"  {c.id} [{c.change_type}] {', '.join(c.packages)}: {headline}")

    return plan_versions(ws, state, consignments)


def run_version(
    root: Path, *, preview: bool = False, packages: Sequence[str] = ()
) -> dict[str, VersionBump]:
    """Cut a stable release from the pending consignments.

    Version files are updated, consumed consignments deleted and released
    packages removed from the pre-release state.

    Raises:
        NothingToReleaseError: If there are no pending consignments.
    """
    ws = load_workspace(root)
    consignments = load_pending(ws, packages)
    if not consignments:
        raise NothingToReleaseError()

    state = read_state(state_path(root))
    bumps = plan_versions(ws, state, consignments)

    step("Release tags")
    for name, bump in bumps.items():
        tag = render_tag(ws.config.tag_template, package=name, version=str(bump.new_version))
        print(f"  {tag}")

    if preview:
        _print_preview()
        return bumps

    write_versions(ws, {n: b.new_version for n, b in bumps.items()}, pin_internal=True)

    step("Cleaning up")
    removed = delete_consignments(consignments_dir(root), [c.id for c in consignments])
    print(f"  Removed {len(removed)} consignment(s)")
    remaining = clear_released(state, bumps)
    write_state(state_path(root), remaining)
    if len(remaining.packages) != len(state.packages):
        print("  Cleared pre-release state for released packages")

    return bumps


def run_prerelease(
    root: Path, *, preview: bool = False, packages: Sequence[str] = ()
) -> StageResult:
    """Create or increment pre-release versions for all bumped packages.

    Consignments are kept until the stable release.

    Raises:
        ConfigError: If no pre-release stages are configured.
        NothingToReleaseError: If there are no pending consignments.
    """
    ws = load_workspace(root)
    machine = StageMachine(ws.config.prerelease.stages)
    consignments = load_pending(ws, packages)
    if not consignments:
        raise NothingToReleaseError()

    state = read_state(state_path(root))
    bumps = plan_versions(ws, state, consignments)
    result = machine.prerelease(state, bumps)
    _report_stage_result(ws, result)

    if preview:
        _print_preview()
        return result

    write_versions(ws, {p.package: p.version for p in result.plans})
    write_state(state_path(root), result.state)
    return result


def run_promote(
    root: Path, *, preview: bool = False, packages: Sequence[str] = ()
) -> StageResult:
    """Promote packages in a pre-release to the next stage.

    Raises:
        NoPreReleaseStateError: If no package is in a pre-release.
        HighestStageError: If a package is already at the highest stage.
    """
    ws = load_workspace(root)
    machine = StageMachine(ws.config.prerelease.stages)
    state = read_state(state_path(root))

    # Promotion without pending consignments keeps the stored targets
    consignments = load_pending(ws, packages)
    bumps = plan_versions(ws, state, consignments) if consignments else {}
    result = machine.promote(state, bumps, packages or None)
    _report_stage_result(ws, result)

    if preview:
        _print_preview()
        return result

    write_versions(ws, {p.package: p.version for p in result.plans})
    write_state(state_path(root), result.state)
    return result


def run_snapshot(
    root: Path,
    *,
    preview: bool = False,
    packages: Sequence[str] = (),
    now: datetime | None = None,
) -> list[SnapshotPlan]:
    """Write timestamped snapshot versions; pre-release state is untouched.

    Raises:
        NothingToReleaseError: If there are no pending consignments.
    """
    ws = load_workspace(root)
    consignments = load_pending(ws, packages)
    if not consignments:
        raise NothingToReleaseError()

    state = read_state(state_path(root))
    bumps = plan_versions(ws, state, consignments)
    plans = snapshot(
        bumps,
        now or datetime.now(timezone.utc),
        ws.config.prerelease.snapshot_tag_template,
    )

    step("Snapshot versions")
    for plan in plans:
        print(f"  {plan.package}: {plan.version}")
        print(f"    tag: {plan.tag_name}")

    if preview:
        _print_preview()
        return plans

    write_versions(ws, {p.package: p.version for p in plans})
    return plans


def add_consignment(
    root: Path,
    packages: Sequence[str],
    change_type: ChangeType | str,
    summary: str,
    metadata: Mapping[str, Any] | None = None,
    *,
    now: datetime | None = None,
) -> Path:
    """Record a new consignment and return the path of its file.

    Raises:
        ConsignmentError: If a package is unknown or a field is invalid.
    """
    config = load_config(root)
    unknown = sorted(set(packages) - set(config.package_names))
    if unknown:
        raise ConsignmentError("<new>", f"unknown package(s): {', '.join(unknown)}")

    consignment = new_consignment(packages, change_type, summary, metadata, now=now)
    path = write_consignment(consignments_dir(root), consignment)
    print(f"✓ Created consignment {consignment.id} ({path.relative_to(root)})")
    return path


def run_remove(
    root: Path, ids: Sequence[str] = (), *, remove_all: bool = False
) -> list[Path]:
    """Delete pending consignments by id, or all of them.

    Raises:
        ValueError: If neither ids nor ``remove_all`` is given.
        ConsignmentError: If an id is not found or a file cannot be removed.
    """
    directory = consignments_dir(root)
    if remove_all:
        ids = list(consignment_files(directory))
        if not ids:
            print("No pending consignments to remove")
            return []
    elif not ids:
        raise ValueError("specify consignment ids or remove_all")

    removed = delete_consignments(directory, ids)
    print(f"✓ Removed {len(removed)} consignment(s)")
    for consignment_id in sorted(set(ids)):
        print(f"  - {consignment_id}")
    return removed


class ValidationReport(NamedTuple):
    errors: list[str]
    warnings: list[str]


def check_repository(root: Path) -> ValidationReport:
    """Collect every problem in the configuration, consignments and state.

    Dependency cycles are legal and reported as warnings.
    """
    errors: list[str] = []
    warnings: list[str] = []

    config: ProjectConfig | None = None
    try:
        config = load_config(root)
    except ConfigError as exc:
        errors.append(str(exc))

    if config is not None:
        try:
            graph = build_graph(config.packages)
        except ConfigError as exc:
            errors.append(str(exc))
        else:
            for scc in detect_cycles(graph):
                cycle = " -> ".join(cycle_path(graph, scc))
                warnings.append(f"dependency cycle detected: {cycle}")

        for pkg in config.packages:
            try:
                get_handler(pkg, root).read_version()
            except MonobumpError as exc:
                errors.append(f"{pkg.name}: {exc}")

    seen: dict[str, str] = {}
    for path in sorted(consignments_dir(root).glob("*.md")):
        try:
            consignment = read_consignment(path)
        except ConsignmentError as exc:
            errors.append(f"{path.name}: {exc}")
            continue
        if consignment.id in seen:
            errors.append(
                f"{path.name}: duplicate consignment id {consignment.id} "
                f"(also in {seen[consignment.id]})"
            )
        seen.setdefault(consignment.id, path.name)
        if config is not None:
            unknown = sorted(set(consignment.packages) - set(config.package_names))
            if unknown:
                errors.append(
                    f"{path.name}: consignment {consignment.id}: "
                    f"unknown package(s): {', '.join(unknown)}"
                )

    try:
        read_state(state_path(root))
    except ConfigError as exc:
        errors.append(str(exc))

    return ValidationReport(errors, warnings)


def run_validate(root: Path) -> ValidationReport:
    """Check the repository and print every error and warning found.

    Raises:
        ValidationFailedError: If any error was found.
    """
    report = check_repository(root)

    if report.errors:
        step("Errors")
        for message in report.errors:
            print(f"  - {message}")
    if report.warnings:
        step("Warnings")
        for message in report.warnings:
            print(f"  - {message}")

    if report.errors:
        raise ValidationFailedError(report.errors)
    print("\n✓ Validation passed")
    return report
