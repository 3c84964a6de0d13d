"""更新循环测试：收敛、单次升级、冲突短路、只标注模式"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from depot.core.dep.models import (
    Action,
    ActionType,
    Dependency,
    InstalledPackage,
    PlacementLocation,
    UpdateOptions,
)
from depot.core.dep.updater import UpdateLoop
from depot.core.exceptions import DownloadError
from tests.fakes import ScriptedResolver

USER = PlacementLocation.USER_WIDE


class RecordingFetcher:
    def __init__(self, log: list[str], fail_on: str = "") -> None:
        self.log = log
        self.fail_on = fail_on
        self.calls: list[tuple[str, str, PlacementLocation, bool]] = []

    def fetch(
        self, package_id: str, dependency: Dependency,
        location: PlacementLocation, force_branch_upgrade: bool = False,
    ) -> Any:
        if package_id == self.fail_on:
            raise DownloadError(f"无法下载 {package_id}")
        self.log.append(f"fetch:{package_id}")
        self.calls.append((package_id, str(dependency), location, force_branch_upgrade))


class RecordingRemover:
    def __init__(self, log: list[str]) -> None:
        self.log = log

    def remove_package(self, pack: InstalledPackage) -> None:
        self.log.append(f"remove:{pack.name}@{pack.version}")


def _loop(resolver: ScriptedResolver, fail_on: str = "") -> tuple[UpdateLoop, list[str]]:
    log: list[str] = []
    loop = UpdateLoop(
        resolver, [], RecordingFetcher(log, fail_on), RecordingRemover(log),  # type: ignore[arg-type]
    )
    return loop, log


def _pack(name: str, version: str, tmp_path: Path) -> InstalledPackage:
    return InstalledPackage(name, version, tmp_path / f"{name}-{version}", USER)


class TestConvergence:
    def test_empty_plan_converges_immediately(self) -> None:
        resolver = ScriptedResolver([[]])
        loop, log = _loop(resolver)
        report = loop.run()
        assert report.status == "converged"
        assert report.iterations == 0
        assert log == []
        assert resolver.reinits == 0

    def test_new_packages_discovered_after_install(self) -> None:
        resolver = ScriptedResolver([
            [Action.fetch("alpha", "1.0.0", USER)],
            [Action.fetch("beta", ">=2.0.0", USER)],
            [],
        ])
        loop, log = _loop(resolver)
        report = loop.run()

        assert report.status == "converged"
        assert report.iterations == 2
        assert log == ["fetch:alpha", "fetch:beta"]
        assert resolver.reinits == 2
        assert resolver.calls == 3

    def test_each_package_upgraded_at_most_once(self) -> None:
        # 解析器视图滞后，每轮都重复提出 alpha
        resolver = ScriptedResolver([
            [Action.fetch("alpha", "~master", USER)],
            [Action.fetch("alpha", "~master", USER), Action.fetch("beta", "1.0.0", USER)],
        ])
        loop, log = _loop(resolver)
        report = loop.run(UpdateOptions.UPGRADE)

        assert report.status == "converged"
        assert log == ["fetch:alpha", "fetch:beta"]
        assert [a.package_id for a in report.applied] == ["alpha", "beta"]

    def test_upgrade_flag_forwarded_as_force(self) -> None:
        resolver = ScriptedResolver([[Action.fetch("alpha", "~master", USER)], []])
        loop, _ = _loop(resolver)
        loop.run(UpdateOptions.UPGRADE)
        assert loop.fetcher.calls == [("alpha", "~master", USER, True)]  # type: ignore[attr-defined]

    def test_removes_applied_before_fetches(self, tmp_path: Path) -> None:
        old = _pack("gamma", "1.0.0", tmp_path)
        resolver = ScriptedResolver([
            [
                Action.fetch("alpha", "1.0.0", USER),
                Action.remove(old),
                Action.fetch("gamma", "2.0.0", USER),
            ],
            [],
        ])
        loop, log = _loop(resolver)
        loop.run()
        assert log == ["remove:gamma@1.0.0", "fetch:alpha", "fetch:gamma"]


class TestBlocking:
    def test_conflict_short_circuits_whole_round(self, tmp_path: Path) -> None:
        resolver = ScriptedResolver([[
            Action.fetch("alpha", "1.0.0", USER),
            Action.remove(_pack("beta", "0.1.0", tmp_path)),
            Action.conflict("gamma", {"app": "~master", "lib": ">=1.0.0"}),
        ]])
        loop, log = _loop(resolver)
        report = loop.run()

        assert log == []
        assert report.status == "blocked"
        assert not report.ok
        assert [a.type for a in report.blocked] == [ActionType.CONFLICT]
        assert len(report.pending) == 3
        assert resolver.reinits == 0

    def test_failure_blocks_and_lists_issuers(self, caplog: pytest.LogCaptureFixture) -> None:
        resolver = ScriptedResolver([[
            Action.failure("delta", ">=9.0.0", {"app": ">=9.0.0"}),
        ]])
        loop, log = _loop(resolver)
        with caplog.at_level("INFO", logger="depot.core.dep.updater"):
            report = loop.run()

        assert report.status == "blocked"
        assert log == []
        assert "责任方:" in caplog.text
        assert "app: >=9.0.0" in caplog.text

    def test_blocking_in_later_round(self) -> None:
        resolver = ScriptedResolver([
            [Action.fetch("alpha", "1.0.0", USER)],
            [Action.conflict("beta", {"alpha": "~master", "app": "1.0.0"})],
        ])
        loop, log = _loop(resolver)
        report = loop.run()
        assert log == ["fetch:alpha"]
        assert report.status == "blocked"
        assert [a.package_id for a in report.applied] == ["alpha"]


class TestAnnotate:
    def test_just_annotate_never_applies(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        resolver = ScriptedResolver([[
            Action.remove(_pack("beta", "0.1.0", tmp_path)),
            Action.fetch("alpha", "1.0.0", USER),
        ]])
        loop, log = _loop(resolver)
        with caplog.at_level("INFO", logger="depot.core.dep.updater"):
            report = loop.run(UpdateOptions.JUST_ANNOTATE)

        assert log == []
        assert report.status == "annotated"
        assert report.applied == []
        assert len(report.pending) == 2
        assert resolver.reinits == 0
        assert "Fetch alpha 1.0.0, user" in caplog.text


class TestErrors:
    def test_fetch_error_aborts_run(self) -> None:
        resolver = ScriptedResolver([
            [Action.fetch("alpha", "1.0.0", USER), Action.fetch("beta", "1.0.0", USER)],
            [],
        ])
        loop, log = _loop(resolver, fail_on="alpha")
        with pytest.raises(DownloadError):
            loop.run()
        assert log == []
        assert resolver.reinits == 0
