"""Project configuration.

Configuration is read from monobump.toml at the repository root, or from
[tool.monobump] in the root pyproject.toml. When no packages are declared
and the root pyproject.toml defines a uv workspace, packages are discovered
from the workspace members and their internal dependencies become linked
edges.
"""

from __future__ import annotations

import glob
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from .deps import dep_canonical_name
from .errors import ConfigError
from .models import DependencyEdge, Package, StageConfig
from .toml import (
    get_all_dependency_strings,
    get_project_name,
    get_tool_table,
    get_workspace_member_globs,
    load_toml,
)

CONFIG_FILENAME = "monobump.toml"
STATE_DIR = ".monobump"
CONSIGNMENTS_DIR = "consignments"
STATE_FILENAME = "prerelease.toml"
DEFAULT_RELEASE_TAG_TEMPLATE = "{package}/v{version}"


class PreReleaseConfig(BaseModel):
    stages: list[StageConfig] = Field(default_factory=list)
    snapshot_tag_template: str | None = None


class ProjectConfig(BaseModel):
    """Validated project configuration.

    Attributes:
        packages: Versioned packages, in declaration order.
        tag_template: Tag name template for stable releases.
        prerelease: Pre-release stages and snapshot tag template.
    """

    packages: list[Package]
    tag_template: str = DEFAULT_RELEASE_TAG_TEMPLATE
    prerelease: PreReleaseConfig = Field(default_factory=PreReleaseConfig)

    @field_validator("packages")
    @classmethod
    def _unique_names(cls, value: list[Package]) -> list[Package]:
        names = [pkg.name for pkg in value]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"duplicate package names: {', '.join(duplicates)}")
        return value

    @property
    def package_names(self) -> list[str]:
        return [pkg.name for pkg in self.packages]

    def get_package(self, name: str) -> Package:
        for pkg in self.packages:
            if pkg.name == name:
                return pkg
        raise ConfigError(f"package {name} not found in configuration")


def consignments_dir(root: Path) -> Path:
    return root / STATE_DIR / CONSIGNMENTS_DIR


def state_path(root: Path) -> Path:
    return root / STATE_DIR / STATE_FILENAME


def load_config(root: Path) -> ProjectConfig:
    """Load and validate the project configuration under ``root``.

    Raises:
        ConfigError: If nothing is configured or the configuration is invalid.
    """
    config_file = root / CONFIG_FILENAME
    pyproject = root / "pyproject.toml"

    data: dict[str, Any] = {}
    if config_file.exists():
        data = load_toml(config_file).unwrap()
    elif pyproject.exists():
        data = get_tool_table(load_toml(pyproject), "monobump") or {}

    if not data.get("packages") and pyproject.exists():
        discovered = discover_workspace_packages(root)
        if discovered:
            data["packages"] = discovered

    if not data.get("packages"):
        raise ConfigError(
            f"no packages configured (add [[packages]] to {CONFIG_FILENAME} "
            "or define [tool.uv.workspace] members)"
        )

    try:
        return ProjectConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"invalid configuration: {exc}") from exc


def discover_workspace_packages(root: Path) -> list[Package]:
    """Scan a uv workspace and describe its members as packages.

    Reads [tool.uv.workspace].members from the root pyproject.toml to find
    package directories, then extracts the name and internal deps from each
    package's pyproject.toml. Internal deps become linked dependency edges.

    Returns:
        Packages in directory order; empty if no workspace is defined.
    """
    root_doc = load_toml(root / "pyproject.toml")
    member_globs = get_workspace_member_globs(root_doc)

    # Expand globs to find all package directories
    member_dirs: list[Path] = []
    for pattern in member_globs:
        for match in sorted(glob.glob(str(root / pattern))):
            p = Path(match)
            if (p / "pyproject.toml").exists():
                member_dirs.append(p)

    # First pass: collect names and raw dependency strings
    names: list[str] = []
    paths: dict[str, str] = {}
    raw_deps: dict[str, list[str]] = {}
    for d in member_dirs:
        doc = load_toml(d / "pyproject.toml")
        name = get_project_name(doc, d.name)
        names.append(name)
        paths[name] = d.relative_to(root).as_posix()
        raw_deps[name] = get_all_dependency_strings(doc)

    # Second pass: keep only deps on other workspace members
    workspace_names = set(names)
    packages: list[Package] = []
    for name in names:
        seen: set[str] = set()
        edges: list[DependencyEdge] = []
        for dep_str in raw_deps[name]:
            dep_name = dep_canonical_name(dep_str)
            if dep_name in workspace_names and dep_name not in seen:
                edges.append(DependencyEdge(package=dep_name))
                seen.add(dep_name)
        packages.append(Package(name=name, path=paths[name], dependencies=edges))

    return packages
