"""Pre-release stage machine.

Drives packages through an ordered list of pre-release stages
(alpha → beta → rc) with a per-stage counter:

- First run: lowest stage, counter 1
- Repeat with the same target version: counter + 1
- Repeat with a changed target: counter back to 1, stage kept, drift warning
- Promote: next stage, counter back to 1

The machine never touches disk. It takes the persisted state as a value and
returns the new state for the caller to write. Snapshots are a separate,
stateless mechanism keyed on a caller-supplied timestamp.
"""

from __future__ import annotations

from collections.abc import Callable, Collection, Mapping, Sequence
from datetime import datetime

import semver
from pydantic import BaseModel, ConfigDict

from .errors import ConfigError, HighestStageError, NoPreReleaseStateError
from .models import PackageStageState, PreReleaseState, StageConfig, VersionBump
from .versions import base_version, parse_version, with_prerelease

DEFAULT_TAG_TEMPLATE = "v{version}-{stage}.{counter}"
DEFAULT_SNAPSHOT_TAG_TEMPLATE = "v{version}-snapshot.{timestamp}"
SNAPSHOT_TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"

TagRenderer = Callable[..., str]


def render_tag(template: str, **context: object) -> str:
    """Render a tag name from a str.format template.

    Example:
        render_tag("v{version}-{stage}.{counter}", version="1.2.0",
                   stage="beta", counter=3) → "v1.2.0-beta.3"

    Raises:
        ConfigError: If the template uses an unknown placeholder or field.
    """
    try:
        return template.format(**context)
    except (AttributeError, KeyError, IndexError, ValueError) as exc:
        raise ConfigError(f"invalid tag template {template!r}: {exc}") from exc


class DriftWarning(BaseModel):
    """The target version of a pre-release chain changed between runs."""

    model_config = ConfigDict(frozen=True)

    package: str
    previous_target: str
    new_target: str

    @property
    def message(self) -> str:
        return (
            f"Target version changed from {self.previous_target} to "
            f"{self.new_target} for {self.package} (consignments modified)"
        )


class StagePlan(BaseModel):
    """The pre-release version computed for one package.

    Attributes:
        package: Package name.
        version: Concrete pre-release version, e.g. 1.2.0-beta.1.
        stage: Stage name after this run.
        counter: Counter after this run.
        target_version: Release version the chain leads to.
        tag_name: Rendered tag name.
        previous_stage: Stage before this run, None on a first run.
        drift: Set when the target version changed since the last run.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    package: str
    version: semver.Version
    stage: str
    counter: int
    target_version: str
    tag_name: str
    previous_stage: str | None = None
    drift: DriftWarning | None = None


class StageResult(BaseModel):
    """Plans for every package plus the state to persist."""

    plans: list[StagePlan]
    state: PreReleaseState

    @property
    def warnings(self) -> list[DriftWarning]:
        return [plan.drift for plan in self.plans if plan.drift is not None]


class SnapshotPlan(BaseModel):
    """A timestamped snapshot version for one package."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    package: str
    version: semver.Version
    timestamp: str
    tag_name: str


class StageMachine:
    """Stage sequencing over an ordered, immutable stage configuration."""

    def __init__(self, stages: Sequence[StageConfig], render: TagRenderer = render_tag) -> None:
        if not stages:
            raise ConfigError("no pre-release stages configured")
        names = [s.name for s in stages]
        orders = [s.order for s in stages]
        if len(set(names)) != len(names):
            raise ConfigError(f"duplicate pre-release stage names: {names}")
        if len(set(orders)) != len(orders):
            raise ConfigError(f"duplicate pre-release stage orders: {orders}")
        self.stages = sorted(stages, key=lambda s: s.order)
        self.render = render

    @property
    def lowest(self) -> StageConfig:
        return self.stages[0]

    @property
    def highest(self) -> StageConfig:
        return self.stages[-1]

    def stage(self, name: str) -> StageConfig:
        for s in self.stages:
            if s.name == name:
                return s
        raise ConfigError(f"stage '{name}' not found in configuration")

    def next_stage(self, name: str) -> StageConfig | None:
        """Stage following ``name``, or None at the highest stage."""
        position = self.stages.index(self.stage(name))
        if position + 1 == len(self.stages):
            return None
        return self.stages[position + 1]

    def is_highest(self, name: str) -> bool:
        return self.stage(name) == self.highest

    def tag_name(self, package: str, stage: StageConfig, target: str, counter: int) -> str:
        return self.render(
            stage.tag_template or DEFAULT_TAG_TEMPLATE,
            version=target,
            stage=stage.name,
            counter=counter,
            package=package,
        )

    def prerelease(
        self, state: PreReleaseState, bumps: Mapping[str, VersionBump]
    ) -> StageResult:
        """Create or increment a pre-release for every bumped package.

        Args:
            state: Persisted state; not modified.
            bumps: Freshly propagated bumps; their new versions are the targets.

        Raises:
            ConfigError: If a stored stage no longer exists in configuration.
        """
        new_state = state.model_copy(deep=True)
        plans: list[StagePlan] = []

        for name in sorted(bumps):
            bump = bumps[name]
            target = str(bump.new_version)
            existing = state.packages.get(name)
            drift = None

            if existing is None:
                stage = self.lowest
                counter = 1
                base = str(base_version(bump.old_version))
            elif existing.target_version != target:
                stage = self.stage(existing.stage)
                counter = 1
                base = existing.base_version
                drift = DriftWarning(
                    package=name, previous_target=existing.target_version, new_target=target
                )
            else:
                stage = self.stage(existing.stage)
                counter = existing.counter + 1
                base = existing.base_version

            plans.append(
                StagePlan(
                    package=name,
                    version=with_prerelease(bump.new_version, f"{stage.name}.{counter}"),
                    stage=stage.name,
                    counter=counter,
                    target_version=target,
                    tag_name=self.tag_name(name, stage, target, counter),
                    previous_stage=existing.stage if existing else None,
                    drift=drift,
                )
            )
            new_state.packages[name] = PackageStageState(
                stage=stage.name, counter=counter, target_version=target, base_version=base
            )

        return StageResult(plans=plans, state=new_state)

    def promote(
        self,
        state: PreReleaseState,
        bumps: Mapping[str, VersionBump],
        packages: Collection[str] | None = None,
    ) -> StageResult:
        """Advance every package in a pre-release to its next stage.

        The counter resets to 1. The target is recomputed from ``bumps`` when
        the package has one, with a drift warning if it moved.

        Args:
            state: Persisted state; not modified.
            bumps: Freshly propagated bumps.
            packages: If given, only promote these packages.

        Raises:
            NoPreReleaseStateError: If no (selected) package has state.
            HighestStageError: If a package is already at the highest stage.
        """
        selected = {
            name: ps
            for name, ps in state.packages.items()
            if not packages or name in packages
        }
        if not selected:
            raise NoPreReleaseStateError()

        new_state = state.model_copy(deep=True)
        plans: list[StagePlan] = []

        for name in sorted(selected):
            current = selected[name]
            next_stage = self.next_stage(current.stage)
            if next_stage is None:
                raise HighestStageError(name, current.stage)

            target = current.target_version
            drift = None
            if name in bumps:
                fresh = str(bumps[name].new_version)
                if fresh != target:
                    drift = DriftWarning(package=name, previous_target=target, new_target=fresh)
                    target = fresh

            plans.append(
                StagePlan(
                    package=name,
                    version=with_prerelease(parse_version(target), f"{next_stage.name}.1"),
                    stage=next_stage.name,
                    counter=1,
                    target_version=target,
                    tag_name=self.tag_name(name, next_stage, target, 1),
                    previous_stage=current.stage,
                    drift=drift,
                )
            )
            new_state.packages[name] = PackageStageState(
                stage=next_stage.name,
                counter=1,
                target_version=target,
                base_version=current.base_version,
            )

        return StageResult(plans=plans, state=new_state)


def snapshot(
    bumps: Mapping[str, VersionBump],
    timestamp: datetime,
    template: str | None = None,
    render: TagRenderer = render_tag,
) -> list[SnapshotPlan]:
    """Compute timestamped snapshot versions, independent of any stage state.

    Example:
        target 1.2.0 at 2026-01-19 09:30:00 → 1.2.0-snapshot.20260119-093000
    """
    stamp = timestamp.strftime(SNAPSHOT_TIMESTAMP_FORMAT)
    plans: list[SnapshotPlan] = []
    for name in sorted(bumps):
        target = bumps[name].new_version
        plans.append(
            SnapshotPlan(
                package=name,
                version=with_prerelease(target, f"snapshot.{stamp}"),
                timestamp=stamp,
                tag_name=render(
                    template or DEFAULT_SNAPSHOT_TAG_TEMPLATE,
                    version=str(target),
                    timestamp=stamp,
                    package=name,
                ),
            )
        )
    return plans


def clear_released(state: PreReleaseState, packages: Collection[str]) -> PreReleaseState:
    """Drop packages that reached a stable release from the state."""
    return PreReleaseState(
        packages={
            name: ps.model_copy() for name, ps in state.packages.items() if name not in packages
        }
    )


def stable_base_versions(
    current_versions: Mapping[str, semver.Version], state: PreReleaseState
) -> dict[str, semver.Version]:
    """Versions to compute targets from while a pre-release chain is open.

    A package in a pre-release is bumped from the stable version its chain
    started at (recorded in the state), not from its on-disk pre-release
    version, so re-running with the same consignments keeps the same target.
    """
    result = dict(current_versions)
    for name, ps in state.packages.items():
        if name in result and ps.base_version:
            result[name] = parse_version(ps.base_version)
    return result
