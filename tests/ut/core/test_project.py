"""项目解析器测试：清单读取、依赖展开、动作计算"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

import pytest
import yaml

from depot.core.config import Config
from depot.core.dep.models import PlacementLocation, UpdateOptions
from depot.core.dep.project import ProjectResolver
from depot.core.dep.store import PackageStore
from depot.core.exceptions import ConfigError
from tests.fakes import BrokenSupplier, FakeSupplier, build_archive


def _manifest(cfg: Config, deps: dict[str, Any], name: str = "app") -> Path:
    path = cfg.manifest_path
    path.write_text(yaml.dump({"name": name, "dependencies": deps}), encoding="utf-8")
    return path


def _kinds(actions: list[Any]) -> list[tuple[str, str]]:
    return [(a.type.value, a.package_id) for a in actions]


class TestManifest:
    def test_string_and_mapping_forms(self, cfg: Config, store: PackageStore) -> None:
        _manifest(cfg, {
            "alpha": ">=1.0.0",
            "beta": {"version": "~master", "location": "system"},
            "gamma": None,
        })
        proj = ProjectResolver(store, cfg.manifest_path)
        assert proj.name == "app"
        assert proj.dependencies["alpha"].spec == ">=1.0.0"
        assert proj.dependencies["gamma"].spec == ">=0.0.0"
        assert proj.locations["beta"] is PlacementLocation.SYSTEM_WIDE
        assert proj.locations["alpha"] is PlacementLocation.USER_WIDE

    def test_missing_manifest_is_empty(self, cfg: Config, store: PackageStore) -> None:
        proj = ProjectResolver(store, cfg.manifest_path)
        assert proj.dependencies == {}
        assert proj.determine_actions([], UpdateOptions.NONE) == []

    def test_broken_manifest(self, cfg: Config, store: PackageStore) -> None:
        cfg.manifest_path.write_text("dependencies: [unclosed", encoding="utf-8")
        with pytest.raises(ConfigError, match="无法解析"):
            ProjectResolver(store, cfg.manifest_path)

    def test_manifest_must_be_mapping(self, cfg: Config, store: PackageStore) -> None:
        cfg.manifest_path.write_text("- alpha\n- beta\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="顶层必须是映射"):
            ProjectResolver(store, cfg.manifest_path)

    def test_invalid_location(self, cfg: Config, store: PackageStore) -> None:
        _manifest(cfg, {"alpha": {"version": "1.0.0", "location": "moon"}})
        with pytest.raises(ConfigError, match="location"):
            ProjectResolver(store, cfg.manifest_path)


class TestDetermineActions:
    def test_fetch_missing(self, cfg: Config, store: PackageStore) -> None:
        _manifest(cfg, {"alpha": ">=1.0.0"})
        sup = FakeSupplier({"alpha": {"1.0.0": {}}})
        actions = ProjectResolver(store, cfg.manifest_path).determine_actions(
            [sup], UpdateOptions.NONE,
        )
        assert _kinds(actions) == [("fetch", "alpha")]
        assert actions[0].location is PlacementLocation.USER_WIDE
        assert actions[0].issuers == {"app": ">=1.0.0"}

    def test_installed_without_upgrade_is_quiet(
        self, cfg: Config, store: PackageStore, install: Callable[..., Any],
    ) -> None:
        install("alpha", "1.0.0")
        _manifest(cfg, {"alpha": ">=1.0.0"})
        sup = FakeSupplier({"alpha": {"1.0.0": {}, "2.0.0": {}}})
        proj = ProjectResolver(store, cfg.manifest_path)

        assert proj.determine_actions([sup], UpdateOptions.NONE) == []
        assert sup.described == []

        actions = proj.determine_actions([sup], UpdateOptions.UPGRADE)
        assert _kinds(actions) == [("fetch", "alpha")]

    def test_upgrade_with_same_release_is_quiet(
        self, cfg: Config, store: PackageStore, install: Callable[..., Any],
    ) -> None:
        install("alpha", "1.0.0")
        _manifest(cfg, {"alpha": ">=1.0.0"})
        sup = FakeSupplier({"alpha": {"1.0.0": {}}})
        proj = ProjectResolver(store, cfg.manifest_path)
        assert proj.determine_actions([sup], UpdateOptions.UPGRADE) == []

    def test_upgrade_branch_always_proposed(
        self, cfg: Config, store: PackageStore, install: Callable[..., Any],
    ) -> None:
        install("beta", "~master")
        _manifest(cfg, {"beta": "~master"})
        sup = FakeSupplier({"beta": {"~master": {}}})
        proj = ProjectResolver(store, cfg.manifest_path)
        assert _kinds(proj.determine_actions([sup], UpdateOptions.UPGRADE)) == [
            ("fetch", "beta"),
        ]

    def test_local_install_never_upgraded(
        self, cfg: Config, store: PackageStore, install: Callable[..., Any],
    ) -> None:
        install("beta", "~master", root=cfg.root_path)
        _manifest(cfg, {"beta": "~master"})
        sup = FakeSupplier({"beta": {"~master": {}}})
        proj = ProjectResolver(store, cfg.manifest_path)
        assert proj.determine_actions([sup], UpdateOptions.UPGRADE) == []

    def test_failure_when_unavailable(self, cfg: Config, store: PackageStore) -> None:
        _manifest(cfg, {"delta": ">=9.0.0"})
        actions = ProjectResolver(store, cfg.manifest_path).determine_actions(
            [FakeSupplier({"delta": {"1.0.0": {}}})], UpdateOptions.NONE,
        )
        assert _kinds(actions) == [("failure", "delta")]
        assert actions[0].is_blocking

    def test_conflict_between_issuers(
        self, cfg: Config, store: PackageStore, install: Callable[..., Any],
    ) -> None:
        install("lib", "1.0.0", dependencies={"gamma": ">=1.0.0"})
        _manifest(cfg, {"lib": "1.0.0", "gamma": "~master"})
        actions = ProjectResolver(store, cfg.manifest_path).determine_actions(
            [FakeSupplier({})], UpdateOptions.NONE,
        )
        assert _kinds(actions) == [("conflict", "gamma")]
        assert actions[0].issuers == {"app": "~master", "lib": ">=1.0.0"}

    def test_transitive_dependencies_expanded(
        self, cfg: Config, store: PackageStore, install: Callable[..., Any],
    ) -> None:
        install("lib", "1.0.0", dependencies={"util": ">=0.5.0"})
        _manifest(cfg, {"lib": "1.0.0"})
        sup = FakeSupplier({"util": {"0.5.0": {}, "0.9.0": {}}})
        actions = ProjectResolver(store, cfg.manifest_path).determine_actions(
            [sup], UpdateOptions.NONE,
        )
        assert _kinds(actions) == [("fetch", "util")]
        assert actions[0].issuers == {"lib": ">=0.5.0"}

    def test_stale_local_version_removed(
        self, cfg: Config, store: PackageStore, install: Callable[..., Any],
    ) -> None:
        old = install("gamma", "1.0.0", root=cfg.root_path)
        _manifest(cfg, {"gamma": {"version": ">=2.0.0", "location": "local"}})
        sup = FakeSupplier({"gamma": {"2.1.0": {}}})
        actions = ProjectResolver(store, cfg.manifest_path).determine_actions(
            [sup], UpdateOptions.NONE,
        )
        assert _kinds(actions) == [("remove", "gamma"), ("fetch", "gamma")]
        assert actions[0].pack == old
        assert actions[1].location is PlacementLocation.LOCAL

    def test_broken_supplier_skipped(self, cfg: Config, store: PackageStore) -> None:
        _manifest(cfg, {"alpha": ">=1.0.0"})
        sup = FakeSupplier({"alpha": {"1.0.0": {}}})
        actions = ProjectResolver(store, cfg.manifest_path).determine_actions(
            [BrokenSupplier(TypeError("bad metadata")), sup], UpdateOptions.NONE,
        )
        assert _kinds(actions) == [("fetch", "alpha")]
        assert sup.described == ["alpha"]

    def test_malformed_installed_dependencies_ignored(
        self, cfg: Config, store: PackageStore, install: Callable[..., Any],
    ) -> None:
        install("lib", "1.0.0", dependencies=["util"])
        _manifest(cfg, {"lib": "1.0.0"})
        actions = ProjectResolver(store, cfg.manifest_path).determine_actions(
            [FakeSupplier({})], UpdateOptions.NONE,
        )
        assert actions == []


class TestCachedPackages:
    def test_selects_highest_in_best_tier(
        self, cfg: Config, store: PackageStore, install: Callable[..., Any],
    ) -> None:
        install("alpha", "1.2.0")
        install("alpha", "1.10.0")
        install("alpha", "3.0.0", root=cfg.packages_dir(system=True))
        _manifest(cfg, {"alpha": ">=1.0.0", "beta": "1.0.0"})
        proj = ProjectResolver(store, cfg.manifest_path)
        assert proj.cached_package_ids() == {"alpha": "1.10.0"}

    def test_reinit_sees_new_installs(
        self, cfg: Config, store: PackageStore, tmp_path: Path,
    ) -> None:
        _manifest(cfg, {"alpha": ">=1.0.0"})
        proj = ProjectResolver(store, cfg.manifest_path)
        assert proj.cached_package_ids() == {}

        # 另一个存储实例写盘，解析器所持存储的索引仍是旧的
        other = PackageStore.from_config(cfg)
        other.install(
            build_archive(tmp_path / "x.zip", "alpha", "1.0.0"),
            {"name": "alpha", "version": "1.0.0"},
            cfg.packages_dir() / "alpha-1.0.0",
        )
        assert proj.cached_package_ids() == {}

        proj.reinit()
        assert proj.cached_package_ids() == {"alpha": "1.0.0"}
        assert proj.determine_actions([], UpdateOptions.NONE) == []

    def test_reinit_refreshes_store(
        self, cfg: Config, store: PackageStore, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        _manifest(cfg, {"alpha": ">=1.0.0"})
        proj = ProjectResolver(store, cfg.manifest_path)
        calls: list[int] = []
        monkeypatch.setattr(store, "refresh", lambda: calls.append(1))
        _manifest(cfg, {"alpha": ">=1.0.0", "beta": "~master"})

        proj.reinit()
        assert calls == [1]
        assert set(proj.dependencies) == {"alpha", "beta"}
