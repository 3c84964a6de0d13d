"""删除引擎

- remove_package(pack): 无条件删除一个已安装包
- remove(id, version, location): 把删除意图解析成零个或多个具体安装并逐个删除

版本参数:
  - "*"  删除该层级下的全部版本
  - ""   仅当该层级下恰好只有一个版本时删除它，多于一个则报歧义
  - 其他 精确匹配

单个包删除失败不影响批次中其余包，失败汇总在 RemovalReport 中返回。
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from depot.core.dep.models import (
    REMOVE_VERSION_WILDCARD,
    InstalledPackage,
    PlacementLocation,
    RemovalReport,
)
from depot.core.exceptions import (
    AmbiguousPackageError,
    DepotError,
    PackageNotFoundError,
    ValidationError,
)

if TYPE_CHECKING:
    from depot.core.protocols import PackageStoreProtocol

logger = logging.getLogger(__name__)


class PackageRemover:
    """已安装包删除引擎"""

    def __init__(self, store: PackageStoreProtocol) -> None:
        self.store = store

    def remove_package(self, pack: InstalledPackage | None) -> None:
        if pack is None:
            raise ValidationError("没有指定要删除的包")
        logger.info("删除 %s，位于 %s", pack.name, pack.path)
        self.store.remove(pack)

    def remove(
        self, package_id: str, version: str, location: PlacementLocation,
    ) -> RemovalReport:
        if not package_id:
            raise ValidationError("包名不能为空")
        report = RemovalReport()
        if location is PlacementLocation.LOCAL:
            logger.info(
                "要删除项目内放置的包，请确认其目录中没有需要保留的数据，"
                "然后直接删除整个目录。",
            )
            return report

        wildcard_or_empty = version in (REMOVE_VERSION_WILDCARD, "")
        packages = [
            p for p in self.store.list_all(package_id)
            if p.location is location
            and (wildcard_or_empty or p.version == version)
        ]

        if not packages:
            logger.error(
                "找不到要删除的包 (id: %s, version: %s, location: %s)",
                package_id, version, location,
            )
            raise PackageNotFoundError(
                f"{location} 层级中没有 {package_id} {version}".rstrip(),
            )

        if not version and len(packages) > 1:
            versions = [p.version for p in packages]
            logger.error(
                "无法删除包 '%s'，层级 '%s' 中存在多个版本:", package_id, location,
            )
            for v in versions:
                logger.error("  %s", v)
            raise AmbiguousPackageError(
                f"{package_id} 在 {location} 层级有多个版本，请指定版本或使用 '*'",
                versions=versions,
            )

        logger.debug("待删除 %d 个包", len(packages))
        for pack in packages:
            try:
                self.remove_package(pack)
            except (DepotError, OSError) as e:
                logger.error(
                    "删除 %s %s 失败，继续处理其他包: %s",
                    package_id, pack.version, e,
                )
                report.failures.append((pack, str(e)))
                continue
            logger.info("已删除 %s，版本 %s。", package_id, pack.version)
            report.removed.append(pack)

        if report.failures:
            logger.warning(
                "删除汇总: %d 成功, %d 失败 (%s)",
                len(report.removed),
                len(report.failures),
                ", ".join(p.version for p, _ in report.failures),
            )
        return report
