"""Pre-release state file persistence.

The state lives in .monobump/prerelease.toml:

    [packages.core]
    stage = "beta"
    counter = 2
    target_version = "1.2.0"
    base_version = "1.1.5"

Reads of a missing file yield an empty state. Writes go to a temporary file
first and are moved into place with os.replace. There is no locking: callers
running concurrently against the same repository must serialize themselves.
"""

from __future__ import annotations

import os
from pathlib import Path

import tomlkit
from pydantic import ValidationError
from tomlkit.exceptions import TOMLKitError

from .errors import ConfigError
from .models import PreReleaseState


def read_state(path: Path) -> PreReleaseState:
    """Load the pre-release state, or an empty state if the file is missing.

    Raises:
        ConfigError: If the file exists but cannot be parsed.
    """
    if not path.exists():
        return PreReleaseState()
    try:
        data = tomlkit.parse(path.read_text()).unwrap()
        return PreReleaseState.model_validate(data)
    except (TOMLKitError, ValidationError) as exc:
        raise ConfigError(f"failed to parse pre-release state {path}: {exc}") from exc


def dumps_state(state: PreReleaseState) -> str:
    doc = tomlkit.document()
    packages = tomlkit.table(is_super_table=True)
    for name in sorted(state.packages):
        ps = state.packages[name]
        table = tomlkit.table()
        table["stage"] = ps.stage
        table["counter"] = ps.counter
        table["target_version"] = ps.target_version
        if ps.base_version:
            table["base_version"] = ps.base_version
        packages[name] = table
    doc["packages"] = packages
    return tomlkit.dumps(doc)


def write_state(path: Path, state: PreReleaseState) -> None:
    """Persist the state, deleting the file once no package is in a pre-release."""
    if not state.packages:
        delete_state(path)
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(dumps_state(state))
    try:
        os.replace(tmp, path)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise


def delete_state(path: Path) -> None:
    path.unlink(missing_ok=True)


def state_exists(path: Path) -> bool:
    return path.exists()
