"""Dependency graph utilities.

Builds a directed graph from package configuration, finds strongly
connected components with Tarjan's algorithm and orders the condensed
graph topologically.

Edges point from a dependent to the package it depends on. Packages are
stored in an arena and referenced by integer index, so every algorithm
here works on plain indices. Node indices follow configuration order and
every user-visible result is sorted, so identical configuration always
produces identical output.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Sequence
from typing import NamedTuple

from .errors import ConfigError, DependencyError
from .models import DependencyEdge, Package


class GraphEdge(NamedTuple):
    """A dependency edge between two node indices."""

    source: int
    target: int
    dependency: DependencyEdge


class DependencyGraph:
    """Directed graph of packages stored as an arena plus adjacency lists."""

    def __init__(self) -> None:
        self.packages: list[Package] = []
        self._index: dict[str, int] = {}
        self._edges: list[list[GraphEdge]] = []

    def __len__(self) -> int:
        return len(self.packages)

    def __contains__(self, name: object) -> bool:
        return name in self._index

    @property
    def names(self) -> list[str]:
        return [pkg.name for pkg in self.packages]

    def add_package(self, package: Package) -> int:
        """Add a node, returning its index.

        Raises:
            ConfigError: If a package with the same name already exists.
        """
        if package.name in self._index:
            raise ConfigError(f"duplicate package: {package.name}")
        index = len(self.packages)
        self.packages.append(package)
        self._index[package.name] = index
        self._edges.append([])
        return index

    def add_edge(self, source: str, dependency: DependencyEdge) -> GraphEdge:
        """Add an edge from ``source`` to ``dependency.package``.

        Raises:
            ConfigError: If either end is not a known package.
        """
        for name in (source, dependency.package):
            if name not in self._index:
                raise ConfigError(f"unknown package: {name}")
        edge = GraphEdge(self._index[source], self._index[dependency.package], dependency)
        self._edges[edge.source].append(edge)
        return edge

    def index_of(self, name: str) -> int:
        return self._index[name]

    def name_of(self, index: int) -> str:
        return self.packages[index].name

    def package(self, name: str) -> Package:
        return self.packages[self._index[name]]

    def edges_from(self, name: str) -> list[GraphEdge]:
        """Edges from ``name`` to the packages it depends on."""
        return list(self._edges[self._index[name]])

    def successors(self, index: int) -> list[int]:
        return [edge.target for edge in self._edges[index]]

    def dependents_of(self, name: str) -> list[str]:
        """Names of packages with an edge to ``name``, sorted."""
        target = self._index[name]
        return sorted(
            {self.name_of(e.source) for edges in self._edges for e in edges if e.target == target}
        )

    def has_self_loop(self, name: str) -> bool:
        index = self._index[name]
        return index in self.successors(index)

    def edge_count(self) -> int:
        return sum(len(edges) for edges in self._edges)


def build_graph(packages: Iterable[Package]) -> DependencyGraph:
    """Construct a dependency graph from package configuration.

    Nodes are added first so dependencies may be declared in any order.
    Self-dependencies are legal (a trivial cycle).

    Raises:
        ConfigError: On duplicate names or dependencies on undefined packages.
            Every undefined reference is reported at once.
    """
    packages = list(packages)
    graph = DependencyGraph()
    for pkg in packages:
        graph.add_package(pkg)

    missing = [
        f"package {pkg.name!r} depends on non-existent package {dep.package!r}"
        for pkg in packages
        for dep in pkg.dependencies
        if dep.package not in graph
    ]
    if missing:
        raise ConfigError("dependency validation failed:\n  - " + "\n  - ".join(missing))

    for pkg in packages:
        for dep in pkg.dependencies:
            graph.add_edge(pkg.name, dep)
    return graph


# ---------------------------------------------------------------------------
# Cycle detection
# ---------------------------------------------------------------------------


def _tarjan(graph: DependencyGraph) -> list[list[int]]:
    """Tarjan's strongly connected components over node indices.

    Components are emitted in reverse topological order of the edges, i.e.
    a package's dependencies are emitted before it.
    """
    counter = 0
    indices: dict[int, int] = {}
    lowlinks: dict[int, int] = {}
    stack: list[int] = []
    on_stack: set[int] = set()
    components: list[list[int]] = []

    def strong_connect(node: int) -> None:
        nonlocal counter
        indices[node] = lowlinks[node] = counter
        counter += 1
        stack.append(node)
        on_stack.add(node)

        for succ in graph.successors(node):
            if succ not in indices:
                strong_connect(succ)
                lowlinks[node] = min(lowlinks[node], lowlinks[succ])
            elif succ in on_stack:
                # Back edge into the current component; cross edges are ignored
                lowlinks[node] = min(lowlinks[node], indices[succ])

        if lowlinks[node] == indices[node]:
            component: list[int] = []
            while True:
                member = stack.pop()
                on_stack.discard(member)
                component.append(member)
                if member == node:
                    break
            components.append(component)

    for node in range(len(graph)):
        if node not in indices:
            strong_connect(node)
    return components


def find_sccs(graph: DependencyGraph) -> list[tuple[str, ...]]:
    """Find strongly connected components, dependencies first.

    Members of each component are sorted by name.
    """
    return [
        tuple(sorted(graph.name_of(i) for i in component)) for component in _tarjan(graph)
    ]


def is_cycle(graph: DependencyGraph, scc: Sequence[str]) -> bool:
    """A component is a cycle if it has several members or a self-loop."""
    if len(scc) > 1:
        return True
    return len(scc) == 1 and graph.has_self_loop(scc[0])


def detect_cycles(graph: DependencyGraph) -> list[tuple[str, ...]]:
    """Return every cyclic component, sorted."""
    return sorted(scc for scc in find_sccs(graph) if is_cycle(graph, scc))


def cycle_path(graph: DependencyGraph, scc: Sequence[str]) -> list[str]:
    """Return a closed dependency path through a cycle, for display.

    Starts at the alphabetically first member and follows the shortest path
    back to it, visiting successors in name order.

    Example:
        a → b → c → a gives ["a", "b", "c", "a"]
    """
    members = set(scc)
    start = min(members)
    parents: dict[str, str] = {}
    queue = deque([start])
    while queue:
        node = queue.popleft()
        for succ in sorted({graph.name_of(e.target) for e in graph.edges_from(node)}):
            if succ not in members:
                continue
            if succ == start:
                # Walk parents back from node to start, then close the loop
                path = [node]
                while path[-1] != start:
                    path.append(parents[path[-1]])
                return [*reversed(path), start]
            if succ not in parents:
                parents[succ] = node
                queue.append(succ)
    raise DependencyError("not a cycle", cycle=sorted(members))


# ---------------------------------------------------------------------------
# Condensation and topological order
# ---------------------------------------------------------------------------


class CondensedGraph(NamedTuple):
    """The DAG obtained by collapsing each SCC into one component node.

    Attributes:
        components: Sorted member names of each component.
        component_of: Package name → component index.
        dependencies: Component index → indices of components it depends on.
    """

    components: list[tuple[str, ...]]
    component_of: dict[str, int]
    dependencies: list[set[int]]


def condense(graph: DependencyGraph, sccs: Sequence[Sequence[str]]) -> CondensedGraph:
    """Collapse SCCs into single nodes, dropping edges inside a component."""
    components = [tuple(sorted(scc)) for scc in sccs]
    component_of = {name: i for i, scc in enumerate(components) for name in scc}
    dependencies: list[set[int]] = [set() for _ in components]
    for i, scc in enumerate(components):
        for name in scc:
            for edge in graph.edges_from(name):
                target = component_of[graph.name_of(edge.target)]
                if target != i:
                    dependencies[i].add(target)
    return CondensedGraph(components, component_of, dependencies)


def topo_sort(condensed: CondensedGraph) -> list[tuple[str, ...]]:
    """Topologically sort a condensed graph, dependencies first.

    Uses Kahn's algorithm. Ready components are taken in order of their
    first member name for deterministic output.

    Raises:
        DependencyError: If a cycle remains. Condensation makes this
            impossible, so it signals a bug rather than bad input.

    Example:
        If A depends on B, and B depends on C:
        topo_sort(...) → [(C,), (B,), (A,)]
    """
    count = len(condensed.components)
    # Count unresolved dependencies for each component
    in_degree = [len(deps) for deps in condensed.dependencies]
    # Track reverse dependencies (who depends on each component)
    dependents: list[list[int]] = [[] for _ in range(count)]
    for i, deps in enumerate(condensed.dependencies):
        for dep in deps:
            dependents[dep].append(i)

    def key(i: int) -> tuple[str, ...]:
        return condensed.components[i]

    ready = sorted((i for i in range(count) if in_degree[i] == 0), key=key)
    order: list[int] = []
    while ready:
        node = ready.pop(0)
        order.append(node)
        for dependent in dependents[node]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                ready.append(dependent)
        ready.sort(key=key)

    if len(order) != count:
        done = set(order)
        remaining = sorted(
            name for i in range(count) if i not in done for name in condensed.components[i]
        )
        raise DependencyError("cycle detected in condensed graph", cycle=remaining)

    return [condensed.components[i] for i in order]


def dependency_order(graph: DependencyGraph) -> list[tuple[str, ...]]:
    """Components of the graph in an order where dependencies come first."""
    return topo_sort(condense(graph, find_sccs(graph)))
