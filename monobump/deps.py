"""Internal dependency pins for python packages.

When ``monobump version`` cuts a stable release, ``PythonHandler`` writes
the new version into each released package's pyproject.toml and pins every
dependency on another configured package to the exact version it has after
the release. Pre-releases and snapshots only change the version field.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import Any, cast

import tomlkit
from packaging.requirements import InvalidRequirement, Requirement
from packaging.utils import canonicalize_name

from .errors import ConfigError
from .toml import load_toml, save_toml


def dep_canonical_name(dep_str: str) -> str:
    """Return the normalized package name of a dependency string.

    Used to match pyproject dependencies against configured package names:
        "Core_Lib[extra]>=1.0" → "core-lib"

    Raises:
        ConfigError: If the string is not a valid requirement.
    """
    try:
        return canonicalize_name(Requirement(dep_str).name)
    except InvalidRequirement as exc:
        raise ConfigError(f"invalid dependency {dep_str!r}: {exc}") from exc


def pin_dep(dep_str: str, version: str) -> str:
    """Replace the specifier of a dependency with ``==version``.

    Extras come out sorted and markers are kept:
        pin_dep('core[b,a]>=1.0; python_version>"3.9"', "1.2.0")
        → 'core[a,b]==1.2.0; python_version > "3.9"'
    """
    req = Requirement(dep_str)
    extras = f"[{','.join(sorted(req.extras))}]" if req.extras else ""
    marker = f"; {req.marker}" if req.marker else ""
    return f"{req.name}{extras}=={version}{marker}"


def rewrite_pyproject(
    pyproject_path: Path,
    new_version: str,
    internal_dep_versions: Mapping[str, str] | None = None,
) -> None:
    """Write a release version into pyproject.toml, with optional pins.

    Args:
        pyproject_path: The package's pyproject.toml.
        new_version: Version to store in [project].version.
        internal_dep_versions: Released version of each internal package,
            keyed by canonical name. Matching entries in the runtime,
            optional and group dependency lists are pinned to it.

    Raises:
        ConfigError: If the file has no [project] table or a dependency
            string is invalid.
    """
    doc = load_toml(pyproject_path)
    if "project" not in doc:
        raise ConfigError(f"{pyproject_path} has no [project] table")
    cast(dict[str, Any], doc["project"])["version"] = new_version

    pins = internal_dep_versions or {}
    if pins:
        for deps in _dependency_lists(doc):
            for i, dep_str in enumerate(deps):
                if not isinstance(dep_str, str):
                    continue  # include-group table
                name = dep_canonical_name(str(dep_str))
                if name in pins:
                    deps[i] = pin_dep(str(dep_str), pins[name])

    save_toml(pyproject_path, doc)


def _dependency_lists(doc: tomlkit.TOMLDocument) -> Iterator[list]:
    project = doc.get("project", {})
    candidates = [project.get("dependencies")]
    for table in (project.get("optional-dependencies"), doc.get("dependency-groups")):
        if isinstance(table, dict):
            candidates.extend(table.values())
    yield from (deps for deps in candidates if isinstance(deps, list))
