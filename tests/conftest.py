"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from pathlib import Path

import pytest
import tomlkit

from monobump.config import consignments_dir
from monobump.consignments import write_consignment
from monobump.graph import DependencyGraph, build_graph
from monobump.models import ChangeType, Consignment, DependencyEdge, Package, StageConfig

T0 = datetime(2026, 1, 19, 9, 30, tzinfo=timezone.utc)


def make_consignment(
    cid: str,
    packages: Iterable[str],
    change_type: ChangeType | str,
    summary: str = "A change",
    timestamp: datetime = T0,
) -> Consignment:
    return Consignment(
        id=cid,
        timestamp=timestamp,
        packages=list(packages),
        change_type=change_type,
        summary=summary,
    )


def make_graph(deps: dict[str, list[DependencyEdge | str]]) -> DependencyGraph:
    """Build a graph from {name: [dependency, ...]}; strings are linked edges."""
    packages = [
        Package(
            name=name,
            dependencies=[
                DependencyEdge(package=d) if isinstance(d, str) else d for d in edges
            ],
        )
        for name, edges in deps.items()
    ]
    return build_graph(packages)


@pytest.fixture
def tmp_pyproject(tmp_path: Path) -> Path:
    """Create a temporary pyproject.toml file."""
    content = """\
[project]
name = "test-package"
version = "1.0.0"
dependencies = [
    "requests>=2.0",
    "internal-dep>=1.0",
]

[project.optional-dependencies]
dev = ["pytest>=8.0", "another-internal>=0.5"]

[dependency-groups]
test = ["pytest>=8.0", "group-internal>=0.1"]
"""
    pyproject = tmp_path / "pyproject.toml"
    pyproject.write_text(content)
    return pyproject


@pytest.fixture
def sample_toml_doc() -> tomlkit.TOMLDocument:
    """Create a sample TOML document."""
    content = """\
[project]
name = "my-package"
version = "2.0.0"
dependencies = ["click>=8.0", "pydantic>=2.0"]

[project.optional-dependencies]
dev = ["pytest>=8.0"]
docs = ["sphinx>=7.0"]

[dependency-groups]
test = ["hypothesis>=6.0"]

[tool.uv.workspace]
members = ["packages/*", "libs/*"]
"""
    return tomlkit.parse(content)


@pytest.fixture
def stages() -> list[StageConfig]:
    return [
        StageConfig(name="alpha", order=1),
        StageConfig(name="beta", order=2),
        StageConfig(name="rc", order=3),
    ]


WORKSPACE_CONFIG = """\
tag_template = "{package}/v{version}"

[[packages]]
name = "core"
path = "packages/core"

[[packages]]
name = "api"
path = "packages/api"
dependencies = [{ package = "core" }]

[[packages]]
name = "web"
path = "packages/web"
ecosystem = "npm"
dependencies = [{ package = "api", strategy = "fixed" }]

[prerelease]
stages = [
    { name = "alpha", order = 1 },
    { name = "beta", order = 2 },
    { name = "rc", order = 3 },
]
"""


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """A repository with core ← api (linked) ← web (fixed, npm)."""
    (tmp_path / "monobump.toml").write_text(WORKSPACE_CONFIG)

    core = tmp_path / "packages" / "core"
    core.mkdir(parents=True)
    (core / "pyproject.toml").write_text(
        '[project]\nname = "core"\nversion = "1.1.5"\ndependencies = []\n'
    )

    api = tmp_path / "packages" / "api"
    api.mkdir(parents=True)
    (api / "pyproject.toml").write_text(
        '[project]\nname = "api"\nversion = "2.0.0"\n'
        'dependencies = ["core>=1.0", "requests>=2.0"]\n'
    )

    web = tmp_path / "packages" / "web"
    web.mkdir(parents=True)
    (web / "package.json").write_text('{\n  "name": "web",\n  "version": "0.3.0"\n}\n')

    return tmp_path


@pytest.fixture
def add_pending(workspace: Path) -> Callable[..., Consignment]:
    """Write a consignment file into the workspace."""

    def _add(cid: str, packages: list[str], change_type: str, **kwargs) -> Consignment:
        consignment = make_consignment(cid, packages, change_type, **kwargs)
        write_consignment(consignments_dir(workspace), consignment)
        return consignment

    return _add
