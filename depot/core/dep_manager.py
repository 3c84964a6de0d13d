"""依赖包管理器

一个 DepManager 实例管理一个项目：持有配置、分层包存储、
供应源列表和项目解析器，对外提供更新、拉取、删除等操作。

供应源顺序:
  1. 构造时显式传入的供应源
  2. 用户级 settings.json 中的 registryUrls
  3. 系统级 settings.json 中的 registryUrls
  4. 默认注册表

用法:
    from depot.core.dep_manager import DepManager

    dm = DepManager(root_path=".")
    dm.update(UpdateOptions.UPGRADE)
    dm.fetch("alpha", ">=1.0.0", PlacementLocation.USER_WIDE)
    dm.remove("alpha", "*", PlacementLocation.USER_WIDE)

所有操作都在调用线程中同步执行，同一存储只允许单写者。
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Sequence

from depot.core.dep.fetcher import PackageFetcher
from depot.core.dep.models import (
    Dependency,
    InstalledPackage,
    PlacementLocation,
    RemovalReport,
    UpdateOptions,
    UpdateReport,
)
from depot.core.dep.project import ProjectResolver
from depot.core.dep.remover import PackageRemover
from depot.core.dep.store import PackageStore
from depot.core.dep.supplier import default_package_suppliers
from depot.core.dep.updater import UpdateLoop

if TYPE_CHECKING:
    from depot.core.config import Config
    from depot.core.protocols import PackageSupplier, Resolver

logger = logging.getLogger(__name__)


class DepManager:
    """依赖包统一管理器"""

    def __init__(
        self,
        root_path: str | Path = "",
        suppliers: Sequence[PackageSupplier] | None = None,
        config: Config | None = None,
        store: PackageStore | None = None,
        default_registry: bool = True,
    ) -> None:
        if config is None:
            from depot.core.config import Config, get_config
            config = Config.load(root_path) if root_path else get_config()
        self.config = config
        self.store = store or PackageStore.from_config(config)

        ps = list(suppliers or [])
        if default_registry:
            ps.extend(default_package_suppliers(
                config.registry_urls, timeout=config.supplier_timeout,
            ))
        self.suppliers: list[PackageSupplier] = ps

        self.fetcher = PackageFetcher(config, self.store, self.suppliers)
        self.remover = PackageRemover(self.store)
        self.project: Resolver | None = None
        self.project_path: Path | None = None

    @property
    def root_path(self) -> Path:
        return self.config.root_path

    # ------------------------------------------------------------------
    # 项目
    # ------------------------------------------------------------------

    def load_project(self, path: str | Path | None = None) -> ProjectResolver:
        """加载项目（默认为根目录），清单为 <path>/depot.yml"""
        project_path = Path(path) if path else self.root_path
        if not project_path.is_absolute():
            project_path = self.root_path / project_path
        self.project_path = project_path
        project = ProjectResolver(self.store, project_path / self.config.manifest)
        self.project = project
        return project

    def _resolver(self) -> Resolver:
        if self.project is None:
            return self.load_project()
        return self.project

    def update(self, options: UpdateOptions = UpdateOptions.NONE) -> UpdateReport:
        """执行拉取与删除，直到项目依赖收敛或遇到冲突"""
        loop = UpdateLoop(self._resolver(), self.suppliers, self.fetcher, self.remover)
        report = loop.run(options)
        logger.debug(
            "更新结束: %s (%d 轮, 执行 %d 个动作)",
            report.status, report.iterations, len(report.applied),
        )
        return report

    def cached_packages(self) -> dict[str, str]:
        """项目依赖中已安装的包: {包名: 版本}"""
        resolver = self._resolver()
        if isinstance(resolver, ProjectResolver):
            return resolver.cached_package_ids()
        return {}

    # ------------------------------------------------------------------
    # 拉取 / 删除
    # ------------------------------------------------------------------

    def fetch(
        self,
        package_id: str,
        dependency: Dependency | str,
        location: PlacementLocation,
        force_branch_upgrade: bool = False,
    ) -> InstalledPackage:
        return self.fetcher.fetch(
            package_id, dependency, location, force_branch_upgrade,
        )

    def remove_package(self, pack: InstalledPackage) -> None:
        self.remover.remove_package(pack)

    def remove(
        self, package_id: str, version: str, location: PlacementLocation,
    ) -> RemovalReport:
        return self.remover.remove(package_id, version, location)

    def list_packages(self, package_id: str = "") -> list[InstalledPackage]:
        if package_id:
            return list(self.store.list_all(package_id))
        return list(self.store.all_packages())

    # ------------------------------------------------------------------
    # 本地包 / 搜索路径
    # ------------------------------------------------------------------

    def _absolute(self, path: str | Path) -> Path:
        p = Path(path)
        return p if p.is_absolute() else self.root_path / p

    def add_local_package(
        self, path: str | Path, version: str, system: bool = False,
    ) -> InstalledPackage:
        return self.store.add_local_package(self._absolute(path), version, system)

    def remove_local_package(self, path: str | Path, system: bool = False) -> bool:
        return self.store.remove_local_package(self._absolute(path), system)

    def add_search_path(self, path: str | Path, system: bool = False) -> None:
        self.store.add_search_path(self._absolute(path), system)

    def remove_search_path(self, path: str | Path, system: bool = False) -> bool:
        return self.store.remove_search_path(self._absolute(path), system)
