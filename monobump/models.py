"""Data models for monobump.

These Pydantic models represent the configuration, the pending change
records and the computed results passed between the graph, propagation
and pre-release stages.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from enum import Enum
from typing import Any, Literal

import semver
from pydantic import BaseModel, ConfigDict, Field, field_validator


class ChangeType(str, Enum):
    """Severity of a change, totally ordered patch < minor < major."""

    PATCH = "patch"
    MINOR = "minor"
    MAJOR = "major"

    @property
    def priority(self) -> int:
        return _PRIORITY[self]

    def __str__(self) -> str:
        return self.value


_PRIORITY = {ChangeType.PATCH: 1, ChangeType.MINOR: 2, ChangeType.MAJOR: 3}


def max_change_type(change_types: Iterable[ChangeType]) -> ChangeType | None:
    """Return the most severe change type, or None for an empty iterable."""
    return max(change_types, key=lambda ct: ct.priority, default=None)


class Strategy(str, Enum):
    """How a dependency edge reacts to a bump of the package it points at.

    ``linked`` dependents follow the bump (optionally remapped), ``fixed``
    dependents only change through their own consignments.
    """

    LINKED = "linked"
    FIXED = "fixed"

    def __str__(self) -> str:
        return self.value


class DependencyEdge(BaseModel):
    """A dependency of one package on another.

    Attributes:
        package: Name of the package depended upon.
        strategy: Propagation strategy for this edge.
        bump_mapping: Severity of the dependency → severity applied to the
            dependent. Only used by ``linked`` edges; severities missing from
            the mapping propagate unchanged.
    """

    model_config = ConfigDict(frozen=True)

    package: str
    strategy: Strategy = Strategy.LINKED
    bump_mapping: dict[ChangeType, ChangeType] = Field(default_factory=dict)

    def applied_change(self, change_type: ChangeType) -> ChangeType | None:
        """Severity this edge hands to the dependent, or None if it blocks."""
        if self.strategy is not Strategy.LINKED:
            return None
        return self.bump_mapping.get(change_type, change_type)


class Package(BaseModel):
    """A versioned package in the monorepo.

    Attributes:
        name: Unique package name.
        path: Package directory, relative to the repository root.
        ecosystem: Version-file format tag (see monobump.handlers).
        dependencies: Internal dependencies, in declaration order.
    """

    name: str
    path: str = "."
    ecosystem: str = "python"
    dependencies: list[DependencyEdge] = Field(default_factory=list)


class Consignment(BaseModel):
    """A recorded, pending change to one or more packages."""

    id: str
    timestamp: datetime
    packages: list[str]
    change_type: ChangeType
    summary: str
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("packages")
    @classmethod
    def _unique_packages(cls, value: list[str]) -> list[str]:
        # Set semantics with a stable order
        unique = list(dict.fromkeys(value))
        if not unique:
            raise ValueError("at least one package is required")
        return unique

    @field_validator("summary")
    @classmethod
    def _summary_required(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("summary is required")
        return value.strip()

    def affects(self, package: str) -> bool:
        return package in self.packages


class VersionBump(BaseModel):
    """Records a computed version change for a package.

    Attributes:
        package: Package name.
        old_version: Version the bump was computed from.
        new_version: Version after the bump.
        change_type: Effective severity after propagation and cycle resolution.
        source: "direct" if the package had its own consignment, otherwise
            "propagated".
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    package: str
    old_version: semver.Version
    new_version: semver.Version
    change_type: ChangeType
    source: Literal["direct", "propagated"]


class StageConfig(BaseModel):
    """A named pre-release stage (alpha, beta, rc, ...)."""

    model_config = ConfigDict(frozen=True)

    name: str
    order: int
    tag_template: str | None = None


class PackageStageState(BaseModel):
    """Persisted pre-release progress of a single package.

    Attributes:
        stage: Current stage name.
        counter: Pre-release number within the stage, starting at 1.
        target_version: Release version the pre-release chain leads to.
        base_version: Stable version the chain started from.
    """

    stage: str
    counter: int = Field(ge=1)
    target_version: str
    base_version: str | None = None


class PreReleaseState(BaseModel):
    """Pre-release progress of every package currently in a pre-release."""

    packages: dict[str, PackageStageState] = Field(default_factory=dict)
