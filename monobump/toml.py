"""pyproject.toml access for configuration and python packages.

``load_config`` reads ``monobump.toml`` or ``[tool.monobump]`` through
these helpers, workspace discovery reads ``[tool.uv.workspace]`` and each
member's ``[project]`` table, and ``PythonHandler`` reads and writes the
version field. Documents stay tomlkit documents so a release rewrites only
the values it changes and keeps comments and layout.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import tomlkit
from packaging.utils import canonicalize_name
from tomlkit.exceptions import TOMLKitError

from .errors import ConfigError


def load_toml(path: Path) -> tomlkit.TOMLDocument:
    """Parse a TOML file into an editable document.

    Raises:
        ConfigError: If the file is not valid TOML.
    """
    try:
        return tomlkit.parse(path.read_text())
    except TOMLKitError as exc:
        raise ConfigError(f"failed to parse {path}: {exc}") from exc


def save_toml(path: Path, doc: tomlkit.TOMLDocument) -> None:
    path.write_text(tomlkit.dumps(doc))


def get_project_name(doc: tomlkit.TOMLDocument, fallback: str) -> str:
    """Return the canonical [project].name of a workspace member.

    Discovered packages are named by this value, so dependency strings
    such as "Core_Lib>=1" resolve to the "core-lib" package. ``fallback``
    (usually the directory name) is used when the table has no name.
    """
    return canonicalize_name(doc.get("project", {}).get("name", fallback))


def get_project_version(doc: tomlkit.TOMLDocument) -> str | None:
    version = doc.get("project", {}).get("version")
    return str(version) if version is not None else None


def get_all_dependency_strings(doc: tomlkit.TOMLDocument) -> list[str]:
    """Return every requirement string a workspace member declares.

    Runtime, optional and [dependency-groups] lists are all scanned, since
    an internal package referenced from any of them becomes a linked edge
    in the graph. Include-group tables are not requirements and are left out.
    """
    project = doc.get("project", {})
    groups = [project.get("dependencies", [])]
    groups.extend(project.get("optional-dependencies", {}).values())
    groups.extend(doc.get("dependency-groups", {}).values())
    return [str(d) for group in groups for d in group if isinstance(d, str)]


def get_workspace_member_globs(doc: tomlkit.TOMLDocument) -> list[str]:
    """Return the [tool.uv.workspace].members globs of the root pyproject.

    An empty list means the repository is not a uv workspace and packages
    must be listed in the monobump configuration.
    """
    members = doc.get("tool", {}).get("uv", {}).get("workspace", {}).get("members")
    return [str(m) for m in members] if members else []


def get_tool_table(doc: tomlkit.TOMLDocument, name: str) -> dict[str, Any] | None:
    """Return [tool.<name>] as plain data, e.g. the [tool.monobump] settings."""
    table = doc.get("tool", {}).get(name)
    if table is None:
        return None
    return table.unwrap() if hasattr(table, "unwrap") else dict(table)
