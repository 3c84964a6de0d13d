"""测试公共设施：临时层级目录与直接安装"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

import pytest

from depot.core.config import Config
from depot.core.dep.models import clean_version
from depot.core.dep.store import PackageStore
from tests.fakes import build_archive


@pytest.fixture()
def cfg(tmp_path: Path) -> Config:
    root = tmp_path / "project"
    root.mkdir()
    return Config(
        root_path=root,
        user_path=tmp_path / "user",
        system_path=tmp_path / "system",
    )


@pytest.fixture()
def store(cfg: Config) -> PackageStore:
    return PackageStore.from_config(cfg)


@pytest.fixture()
def make_archive() -> Callable[..., Path]:
    return build_archive


@pytest.fixture()
def install(
    store: PackageStore, cfg: Config, tmp_path: Path,
) -> Callable[..., Any]:
    """直接通过存储安装一个包，返回 InstalledPackage"""
    counter = {"n": 0}

    def _install(name: str, version: str, root: Path | None = None, **meta: Any) -> Any:
        counter["n"] += 1
        archive = build_archive(
            tmp_path / "archives" / f"{counter['n']}.zip", name, version,
        )
        root = root or cfg.packages_dir()
        dest = root / f"{name}-{clean_version(version)}"
        return store.install(archive, {"name": name, "version": version, **meta}, dest)

    return _install
