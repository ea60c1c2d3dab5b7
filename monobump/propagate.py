"""Version propagation through the dependency graph.

Computes the version bump of every affected package from pending
consignments:

1. Direct bumps: the most severe consignment per package
2. Propagation: walk components dependencies-first; each ``linked`` edge
   hands the dependency's bump (remapped by the edge's bump mapping) to the
   dependent, never downgrading a bump the dependent already holds
3. Cycle resolution: every member of a cyclic component gets the most
   severe bump found in the component
4. Materialization: bump each affected package from its base version

The result depends only on the three inputs; nothing is cached between
calls.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

import semver

from .consignments import calculate_direct_bumps
from .errors import ConfigError, ConsignmentError
from .graph import DependencyGraph, dependency_order, is_cycle
from .models import ChangeType, Consignment, VersionBump, max_change_type
from .versions import base_version, bump_version


def propagate(
    graph: DependencyGraph,
    current_versions: Mapping[str, semver.Version],
    consignments: Iterable[Consignment],
) -> dict[str, VersionBump]:
    """Calculate version bumps for all packages affected by consignments.

    Args:
        graph: Dependency graph of the workspace.
        current_versions: Map of package name → current version.
        consignments: Pending consignments.

    Returns:
        Map of package name → VersionBump, sorted by name. Packages that are
        not affected are absent.

    Raises:
        ConsignmentError: If a consignment names a package not in the graph.
        ConfigError: If an affected package has no current version.

    Example:
        api depends on core (linked), core has a "minor" consignment:
        core 1.0.0 → 1.1.0 (direct), api 2.0.0 → 2.1.0 (propagated)
    """
    consignments = list(consignments)
    for c in consignments:
        unknown = [pkg for pkg in c.packages if pkg not in graph]
        if unknown:
            raise ConsignmentError(c.id, f"unknown package(s): {', '.join(sorted(unknown))}")

    direct = calculate_direct_bumps(consignments)
    severities = resolve_change_types(graph, direct)

    bumps: dict[str, VersionBump] = {}
    for name in sorted(severities):
        if name not in current_versions:
            raise ConfigError(f"missing current version for package: {name}")
        old = current_versions[name]
        bumps[name] = VersionBump(
            package=name,
            old_version=old,
            new_version=bump_version(base_version(old), severities[name]),
            change_type=severities[name],
            source="direct" if name in direct else "propagated",
        )
    return bumps


def resolve_change_types(
    graph: DependencyGraph, direct: Mapping[str, ChangeType]
) -> dict[str, ChangeType]:
    """Spread direct change types over the graph (steps 2 and 3).

    Returns:
        Map of package name → effective change type for every affected
        package.
    """
    severities: dict[str, ChangeType] = dict(direct)
    if not severities:
        return {}

    for component in dependency_order(graph):
        # Dependencies outside the component are final by now; edges inside
        # it are repeated until nothing changes (severity only ever rises).
        changed = True
        while changed:
            changed = False
            for name in component:
                for edge in graph.edges_from(name):
                    if edge.target == edge.source:
                        continue
                    dep_change = severities.get(graph.name_of(edge.target))
                    if dep_change is None:
                        continue
                    applied = edge.dependency.applied_change(dep_change)
                    if applied is not None and _raise(severities, name, applied):
                        changed = True

        if is_cycle(graph, component):
            top = max_change_type(severities[m] for m in component if m in severities)
            if top is not None:
                for member in component:
                    severities[member] = top

    return severities


def _raise(severities: dict[str, ChangeType], name: str, change_type: ChangeType) -> bool:
    """Raise a package's change type if the new one is more severe."""
    existing = severities.get(name)
    if existing is not None and existing.priority >= change_type.priority:
        return False
    severities[name] = change_type
    return True
