"""更新协调循环

反复执行 计划 → 校验 → 执行，直到解析器不再给出动作:

  1. 向解析器索取当前状态下的全部动作
  2. 过滤掉本次运行中已处理过的包（每个包每次运行最多升级一次）
  3. 动作为空即收敛
  4. 执行前先输出全部动作
  5. 存在 conflict / failure 时输出责任方并终止，本轮不执行任何动作
  6. JUST_ANNOTATE 模式输出后即终止
  7. 先执行全部 remove，再执行全部 fetch
  8. 通知解析器重新读取已安装状态，回到第 1 步

已处理集合单调增长且以依赖图中的包数为上界，因此循环必然终止。
拉取失败的异常直接向上抛出，中止整次运行。
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Sequence

from depot.core.dep.models import (
    Action,
    ActionType,
    UpdateOptions,
    UpdateReport,
)
from depot.core.exceptions import ValidationError

if TYPE_CHECKING:
    from depot.core.dep.fetcher import PackageFetcher
    from depot.core.dep.remover import PackageRemover
    from depot.core.protocols import PackageSupplier, Resolver

logger = logging.getLogger(__name__)


class UpdateLoop:
    """驱动已安装状态向解析器视图收敛"""

    def __init__(
        self,
        resolver: Resolver,
        suppliers: Sequence[PackageSupplier],
        fetcher: PackageFetcher,
        remover: PackageRemover,
    ) -> None:
        self.resolver = resolver
        self.suppliers = list(suppliers)
        self.fetcher = fetcher
        self.remover = remover

    def run(self, options: UpdateOptions = UpdateOptions.NONE) -> UpdateReport:
        report = UpdateReport()
        processed: set[str] = set()
        force_branch_upgrade = bool(options & UpdateOptions.UPGRADE)

        while True:
            all_actions = self.resolver.determine_actions(self.suppliers, options)
            actions = [a for a in all_actions if a.package_id not in processed]
            if not actions:
                report.status = "converged"
                return report
            report.iterations += 1

            logger.info("将执行以下变更:")
            blocked: list[Action] = []
            for a in actions:
                logger.info("%s", a.describe())
                if a.is_blocking:
                    blocked.append(a)
                    logger.info("责任方:")
                    for issuer, constraint in a.issuers.items():
                        logger.info("  %s: %s", issuer, constraint)

            if blocked:
                report.status = "blocked"
                report.blocked = blocked
                report.pending = actions
                return report
            if options & UpdateOptions.JUST_ANNOTATE:
                report.status = "annotated"
                report.pending = actions
                return report

            # 先删除，再拉取
            for a in actions:
                if a.type is not ActionType.REMOVE:
                    continue
                if a.pack is None:
                    raise ValidationError(f"删除动作缺少目标包: {a.package_id}")
                self.remover.remove_package(a.pack)
                report.applied.append(a)

            for a in actions:
                if a.type is not ActionType.FETCH:
                    continue
                if a.location is None or a.dependency is None:
                    raise ValidationError(f"拉取动作缺少版本或层级: {a.package_id}")
                self.fetcher.fetch(
                    a.package_id, a.dependency, a.location, force_branch_upgrade,
                )
                # 同一次运行中不重复升级同一个包
                processed.add(a.package_id)
                report.applied.append(a)

            self.resolver.reinit()
