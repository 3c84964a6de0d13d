"""依赖包拉取流水线

职责:
- 按优先级查询供应源，第一个返回元信息的供应源负责本次拉取
- 判断目标层级中是否已有满足要求的安装（发行版本直接复用）
- 下载归档到项目临时目录，交给 PackageStore 原子安装
- 无论成功或失败，临时归档都会被删除

分支版本（~master 等）在 force_branch_upgrade 时先删后装，
但 local 层级从不强制升级，因为项目内的包可能有本地修改。
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Sequence

from depot.core.dep.models import (
    Dependency,
    InstalledPackage,
    PlacementLocation,
    clean_version,
    is_branch_version,
)
from depot.core.exceptions import PackageNotFoundError

if TYPE_CHECKING:
    from depot.core.config import Config
    from depot.core.protocols import PackageStoreProtocol, PackageSupplier

logger = logging.getLogger(__name__)


class PackageFetcher:
    """依赖包拉取器 - 已安装优先 + 远程下载"""

    def __init__(
        self,
        config: Config,
        store: PackageStoreProtocol,
        suppliers: Sequence[PackageSupplier],
    ) -> None:
        self.config = config
        self.store = store
        self.suppliers = list(suppliers)

    def fetch(
        self,
        package_id: str,
        dependency: Dependency | str,
        location: PlacementLocation,
        force_branch_upgrade: bool = False,
    ) -> InstalledPackage:
        """拉取满足约束的包并放置到指定层级，返回已安装包。

        策略:
          1. 依次询问供应源，取第一个成功返回的元信息
          2. 目标层级已有同版本: 发行版本直接返回；分支版本视
             force_branch_upgrade 和层级决定复用或先删除
          3. 下载到临时文件后安装到 <root>/<id>-<version>
        """
        dep = Dependency.parse(dependency)
        supplier, pinfo = self._describe(package_id, dep)
        ver = str(pinfo["version"])
        placement = self.config.placement_root(location)

        # ---- 1. 已安装检查 ----
        existing = self.store.lookup(package_id, ver, placement)
        if existing is not None:
            if (
                not is_branch_version(ver)
                or not force_branch_upgrade
                or location is PlacementLocation.LOCAL
            ):
                logger.info(
                    "%s %s (%s) 已是最新版本，跳过。", package_id, ver, placement,
                )
                return existing
            logger.info("删除已安装的 %s %s", package_id, ver)
            self.store.remove(existing)

        # ---- 2. 下载 ----
        logger.info("拉取 %s %s ...", package_id, ver)
        archive = self._temp_archive(package_id, ver)
        try:
            supplier.retrieve(archive, package_id, dep)

            # ---- 3. 安装 ----
            dest = placement / f"{package_id}-{clean_version(ver)}"
            logger.info("放置 %s %s 到 %s ...", package_id, ver, placement)
            return self.store.install(archive, pinfo, dest)
        finally:
            archive.unlink(missing_ok=True)

    def _describe(
        self, package_id: str, dep: Dependency,
    ) -> tuple[PackageSupplier, dict[str, Any]]:
        """返回 (胜出的供应源, 元信息)，单个供应源的错误只记录不抛出"""
        for supplier in self.suppliers:
            try:
                pinfo = supplier.get_description(package_id, dep)
            except Exception as e:  # noqa: BLE001
                logger.debug(
                    "供应源 %r 无法提供 %s: %s: %s",
                    supplier, package_id, type(e).__name__, e,
                )
                continue
            if pinfo and pinfo.get("version"):
                return supplier, pinfo
        raise PackageNotFoundError(
            f"没有找到满足依赖 {dep} 的包 {package_id}",
        )

    def _temp_archive(self, package_id: str, version: str) -> Path:
        """项目临时下载目录中的归档路径，存在同名旧文件时先删除"""
        download_dir = self.config.temp_download_dir
        download_dir.mkdir(parents=True, exist_ok=True)
        archive = download_dir / f"{package_id}-{clean_version(version)}.zip"
        if archive.exists():
            archive.unlink()
        return archive
