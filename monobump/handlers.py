"""Version-file handlers for each package ecosystem.

Every handler exposes the same three capabilities: read the current
version, write a new one, and list the files it touches. The ecosystem tag
of a package's configuration selects the handler; the rest of monobump only
ever sees semver.Version values.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Protocol

import semver

from .deps import rewrite_pyproject
from .errors import ConfigError
from .models import Package
from .toml import get_project_version, load_toml
from .versions import parse_version


class VersionHandler(Protocol):
    def read_version(self) -> semver.Version: ...

    def update_version(self, version: semver.Version) -> None: ...

    def version_files(self) -> list[Path]: ...


class PythonHandler:
    """[project].version in pyproject.toml.

    Optionally pins internal dependencies to exact versions while writing.
    """

    def __init__(self, path: Path) -> None:
        self.pyproject = path / "pyproject.toml"

    def read_version(self) -> semver.Version:
        if not self.pyproject.exists():
            raise ConfigError(f"no pyproject.toml found at {self.pyproject}")
        version = get_project_version(load_toml(self.pyproject))
        if version is None:
            raise ConfigError(f"no [project].version in {self.pyproject}")
        return parse_version(version)

    def update_version(
        self,
        version: semver.Version,
        internal_dep_versions: dict[str, str] | None = None,
    ) -> None:
        rewrite_pyproject(self.pyproject, str(version), internal_dep_versions)

    def version_files(self) -> list[Path]:
        return [self.pyproject]


class NpmHandler:
    """The "version" field of package.json."""

    def __init__(self, path: Path) -> None:
        self.package_json = path / "package.json"

    def _load(self) -> dict:
        if not self.package_json.exists():
            raise ConfigError(f"no package.json found at {self.package_json}")
        try:
            return json.loads(self.package_json.read_text())
        except json.JSONDecodeError as exc:
            raise ConfigError(f"failed to parse {self.package_json}: {exc}") from exc

    def read_version(self) -> semver.Version:
        data = self._load()
        if "version" not in data:
            raise ConfigError(f"no version field in {self.package_json}")
        return parse_version(data["version"])

    def update_version(self, version: semver.Version) -> None:
        data = self._load()
        data["version"] = str(version)
        self.package_json.write_text(json.dumps(data, indent=2) + "\n")

    def version_files(self) -> list[Path]:
        return [self.package_json]


class TextFileHandler:
    """A plain VERSION file holding nothing but the version."""

    def __init__(self, path: Path, filename: str = "VERSION") -> None:
        self.version_file = path / filename

    def read_version(self) -> semver.Version:
        if not self.version_file.exists():
            raise ConfigError(f"no version file found at {self.version_file}")
        return parse_version(self.version_file.read_text())

    def update_version(self, version: semver.Version) -> None:
        self.version_file.write_text(f"{version}\n")

    def version_files(self) -> list[Path]:
        return [self.version_file]


HANDLERS: dict[str, type] = {
    "python": PythonHandler,
    "npm": NpmHandler,
    "text": TextFileHandler,
}


def get_handler(package: Package, root: Path) -> VersionHandler:
    """Select the version handler for a package from its ecosystem tag.

    Raises:
        ConfigError: If the ecosystem is not supported.
    """
    try:
        handler_cls = HANDLERS[package.ecosystem]
    except KeyError:
        supported = ", ".join(sorted(HANDLERS))
        raise ConfigError(
            f"unsupported ecosystem {package.ecosystem!r} for {package.name} "
            f"(supported: {supported})"
        ) from None
    return handler_cls(root / package.path)
