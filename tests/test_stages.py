"""Tests for monobump.stages."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from monobump.errors import ConfigError, HighestStageError, NoPreReleaseStateError
from monobump.models import (
    ChangeType,
    PackageStageState,
    PreReleaseState,
    StageConfig,
    VersionBump,
)
from monobump.stages import (
    StageMachine,
    clear_released,
    render_tag,
    snapshot,
    stable_base_versions,
)
from monobump.versions import parse_version


def bump(package: str, old: str, new: str, change_type: str = "minor") -> VersionBump:
    return VersionBump(
        package=package,
        old_version=parse_version(old),
        new_version=parse_version(new),
        change_type=ChangeType(change_type),
        source="direct",
    )


def state_of(**packages: PackageStageState) -> PreReleaseState:
    return PreReleaseState(packages=dict(packages))


class TestRenderTag:
    def test_default_style(self) -> None:
        assert (
            render_tag("v{version}-{stage}.{counter}", version="1.2.0", stage="beta", counter=3)
            == "v1.2.0-beta.3"
        )

    def test_unused_context_ignored(self) -> None:
        assert render_tag("{package}/v{version}", package="core", version="1.0.0", stage="x") == (
            "core/v1.0.0"
        )

    def test_unknown_placeholder(self) -> None:
        with pytest.raises(ConfigError, match="invalid tag template"):
            render_tag("v{release}", version="1.0.0")

    def test_attribute_access(self) -> None:
        with pytest.raises(ConfigError, match="invalid tag template"):
            render_tag("v{version.major}", version="1.0.0")


class TestStageMachineConfig:
    def test_no_stages(self) -> None:
        with pytest.raises(ConfigError, match="no pre-release stages configured"):
            StageMachine([])

    def test_sorted_by_order(self) -> None:
        machine = StageMachine(
            [StageConfig(name="rc", order=30), StageConfig(name="alpha", order=10)]
        )
        assert machine.lowest.name == "alpha"
        assert machine.highest.name == "rc"

    def test_duplicate_names(self) -> None:
        with pytest.raises(ConfigError, match="duplicate pre-release stage names"):
            StageMachine([StageConfig(name="a", order=1), StageConfig(name="a", order=2)])

    def test_duplicate_orders(self) -> None:
        with pytest.raises(ConfigError, match="duplicate pre-release stage orders"):
            StageMachine([StageConfig(name="a", order=1), StageConfig(name="b", order=1)])

    def test_next_stage(self, stages: list[StageConfig]) -> None:
        machine = StageMachine(stages)
        assert machine.next_stage("alpha").name == "beta"
        assert machine.next_stage("rc") is None
        assert machine.is_highest("rc")

    def test_unknown_stage(self, stages: list[StageConfig]) -> None:
        with pytest.raises(ConfigError, match="stage 'gamma' not found"):
            StageMachine(stages).stage("gamma")


class TestPrerelease:
    def test_first_run(self, stages: list[StageConfig]) -> None:
        result = StageMachine(stages).prerelease(
            PreReleaseState(), {"core": bump("core", "1.1.5", "1.2.0")}
        )

        plan = result.plans[0]
        assert str(plan.version) == "1.2.0-alpha.1"
        assert plan.stage == "alpha"
        assert plan.counter == 1
        assert plan.tag_name == "v1.2.0-alpha.1"
        assert plan.previous_stage is None
        assert result.warnings == []
        assert result.state.packages["core"] == PackageStageState(
            stage="alpha", counter=1, target_version="1.2.0", base_version="1.1.5"
        )

    def test_same_target_increments_counter(self, stages: list[StageConfig]) -> None:
        state = state_of(
            core=PackageStageState(
                stage="alpha", counter=1, target_version="1.2.0", base_version="1.1.5"
            )
        )
        result = StageMachine(stages).prerelease(state, {"core": bump("core", "1.1.5", "1.2.0")})

        assert str(result.plans[0].version) == "1.2.0-alpha.2"
        assert result.state.packages["core"].counter == 2
        assert result.state.packages["core"].base_version == "1.1.5"

    def test_drift_resets_counter(self, stages: list[StageConfig]) -> None:
        state = state_of(core=PackageStageState(stage="beta", counter=4, target_version="1.2.0"))
        result = StageMachine(stages).prerelease(
            state, {"core": bump("core", "1.1.5", "2.0.0", "major")}
        )

        plan = result.plans[0]
        assert str(plan.version) == "2.0.0-beta.1"
        assert plan.counter == 1
        assert plan.stage == "beta"
        assert [w.message for w in result.warnings] == [
            "Target version changed from 1.2.0 to 2.0.0 for core (consignments modified)"
        ]
        assert result.state.packages["core"].target_version == "2.0.0"

    def test_input_state_not_mutated(self, stages: list[StageConfig]) -> None:
        state = state_of(core=PackageStageState(stage="alpha", counter=1, target_version="1.2.0"))
        StageMachine(stages).prerelease(state, {"core": bump("core", "1.1.5", "1.2.0")})
        assert state.packages["core"].counter == 1

    def test_keeps_unrelated_packages(self, stages: list[StageConfig]) -> None:
        state = state_of(other=PackageStageState(stage="rc", counter=2, target_version="3.0.0"))
        result = StageMachine(stages).prerelease(state, {"core": bump("core", "1.0.0", "1.0.1")})
        assert sorted(result.state.packages) == ["core", "other"]

    def test_stored_stage_missing(self, stages: list[StageConfig]) -> None:
        state = state_of(core=PackageStageState(stage="gamma", counter=1, target_version="1.2.0"))
        with pytest.raises(ConfigError, match="stage 'gamma' not found"):
            StageMachine(stages).prerelease(state, {"core": bump("core", "1.1.5", "1.2.0")})

    def test_stage_tag_template(self) -> None:
        machine = StageMachine([StageConfig(name="rc", order=1, tag_template="{package}@{version}-rc{counter}")])
        result = machine.prerelease(PreReleaseState(), {"core": bump("core", "1.0.0", "1.1.0")})
        assert result.plans[0].tag_name == "core@1.1.0-rc1"


class TestPromote:
    def test_from_lowest(self, stages: list[StageConfig]) -> None:
        state = state_of(core=PackageStageState(stage="alpha", counter=3, target_version="1.2.0"))
        result = StageMachine(stages).promote(state, {})

        plan = result.plans[0]
        assert str(plan.version) == "1.2.0-beta.1"
        assert plan.previous_stage == "alpha"
        assert result.state.packages["core"].stage == "beta"
        assert result.state.packages["core"].counter == 1
        assert state.packages["core"].stage == "alpha"

    def test_from_highest(self, stages: list[StageConfig]) -> None:
        state = state_of(core=PackageStageState(stage="rc", counter=1, target_version="1.2.0"))
        with pytest.raises(HighestStageError) as exc_info:
            StageMachine(stages).promote(state, {})
        assert exc_info.value.exit_code == 2
        assert state.packages["core"].stage == "rc"

    def test_no_state(self, stages: list[StageConfig]) -> None:
        with pytest.raises(NoPreReleaseStateError) as exc_info:
            StageMachine(stages).promote(PreReleaseState(), {})
        assert exc_info.value.exit_code == 3

    def test_filtered_to_unknown_package(self, stages: list[StageConfig]) -> None:
        state = state_of(core=PackageStageState(stage="alpha", counter=1, target_version="1.2.0"))
        with pytest.raises(NoPreReleaseStateError):
            StageMachine(stages).promote(state, {}, packages=["api"])

    def test_filtered(self, stages: list[StageConfig]) -> None:
        state = state_of(
            core=PackageStageState(stage="alpha", counter=1, target_version="1.2.0"),
            api=PackageStageState(stage="alpha", counter=2, target_version="2.1.0"),
        )
        result = StageMachine(stages).promote(state, {}, packages=["api"])
        assert [p.package for p in result.plans] == ["api"]
        assert result.state.packages["core"].stage == "alpha"
        assert result.state.packages["api"].stage == "beta"

    def test_recomputes_target(self, stages: list[StageConfig]) -> None:
        state = state_of(core=PackageStageState(stage="alpha", counter=2, target_version="1.2.0"))
        result = StageMachine(stages).promote(
            state, {"core": bump("core", "1.1.5", "2.0.0", "major")}
        )
        assert str(result.plans[0].version) == "2.0.0-beta.1"
        assert len(result.warnings) == 1


class TestSnapshot:
    def test_timestamped_version(self) -> None:
        when = datetime(2026, 1, 19, 9, 30, 5, tzinfo=timezone.utc)
        plans = snapshot({"core": bump("core", "1.1.5", "1.2.0")}, when)

        assert str(plans[0].version) == "1.2.0-snapshot.20260119-093005"
        assert plans[0].tag_name == "v1.2.0-snapshot.20260119-093005"
        assert plans[0].timestamp == "20260119-093005"

    def test_custom_template(self) -> None:
        when = datetime(2026, 1, 19, tzinfo=timezone.utc)
        plans = snapshot(
            {"core": bump("core", "1.1.5", "1.2.0")}, when, "{package}-{version}-{timestamp}"
        )
        assert plans[0].tag_name == "core-1.2.0-20260119-000000"


class TestStateHelpers:
    def test_clear_released(self) -> None:
        state = state_of(
            core=PackageStageState(stage="alpha", counter=1, target_version="1.2.0"),
            api=PackageStageState(stage="beta", counter=1, target_version="2.1.0"),
        )
        cleared = clear_released(state, ["core"])
        assert list(cleared.packages) == ["api"]
        assert sorted(state.packages) == ["api", "core"]

    def test_stable_base_versions(self) -> None:
        current = {"core": parse_version("1.2.0-alpha.1"), "api": parse_version("2.0.0")}
        state = state_of(
            core=PackageStageState(
                stage="alpha", counter=1, target_version="1.2.0", base_version="1.1.5"
            )
        )
        result = stable_base_versions(current, state)
        assert str(result["core"]) == "1.1.5"
        assert str(result["api"]) == "2.0.0"
