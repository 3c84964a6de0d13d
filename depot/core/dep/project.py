"""项目依赖解析器

读取项目根目录下的 depot.yml 清单:

    name: myapp
    dependencies:
      alpha: ">=1.0.0"
      beta: "~master"
      gamma:
        version: "~>2.1"
        location: local      # local / user / system，默认 user

已安装包的 package.json 中的 dependencies 会被递归展开，
同一个包的多个约束合并后统一判断；分支约束与其他约束不兼容时报告冲突。

这里不做带回溯的约束求解：每个包只取满足合并约束的最佳版本。
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Sequence

from depot.core.dep.models import (
    Action,
    Dependency,
    InstalledPackage,
    PlacementLocation,
    UpdateOptions,
    is_branch_version,
)
from depot.core.exceptions import ConfigError
from depot.utils.yaml_io import load_yaml

if TYPE_CHECKING:
    from depot.core.protocols import PackageStoreProtocol, PackageSupplier

logger = logging.getLogger(__name__)

MAX_EXPANSION_ROUNDS = 100


class ProjectResolver:
    """依赖图持有者：由清单和已安装状态计算所需动作"""

    def __init__(self, store: PackageStoreProtocol, manifest_path: Path) -> None:
        self.store = store
        self.manifest_path = Path(manifest_path)
        self.name = ""
        self.dependencies: dict[str, Dependency] = {}
        self.locations: dict[str, PlacementLocation] = {}
        self._load_manifest()

    def _load_manifest(self) -> None:
        data = load_yaml(self.manifest_path)
        self.name = str(data.get("name") or self.manifest_path.parent.name)
        self.dependencies = {}
        self.locations = {}
        for dep_name, info in (data.get("dependencies") or {}).items():
            location = PlacementLocation.USER_WIDE
            if isinstance(info, dict):
                spec = info.get("version")
                loc = info.get("location")
                if loc:
                    try:
                        location = PlacementLocation(loc)
                    except ValueError as e:
                        raise ConfigError(
                            f"{self.manifest_path}: {dep_name} 的 location 无效: {loc}",
                        ) from e
            else:
                spec = info
            self.dependencies[str(dep_name)] = Dependency.parse(spec)
            self.locations[str(dep_name)] = location
        logger.debug(
            "项目 %s 声明了 %d 个依赖", self.name, len(self.dependencies),
        )

    def reinit(self) -> None:
        """重新读取清单与已安装状态"""
        self.store.refresh()
        self._load_manifest()

    # ------------------------------------------------------------------
    # 依赖图展开
    # ------------------------------------------------------------------

    def _requirements(self) -> dict[str, dict[str, str]]:
        """返回 {包名: {责任方: 约束}}，沿已安装包的依赖递归展开"""
        reqs: dict[str, dict[str, str]] = {
            name: {self.name: dep.spec} for name, dep in self.dependencies.items()
        }
        for _ in range(MAX_EXPANSION_ROUNDS):
            changed = False
            for name in list(reqs):
                pack = self._selected(name, reqs[name])
                if pack is None:
                    continue
                for sub, spec in pack.dependencies.items():
                    issuers = reqs.setdefault(sub, {})
                    if issuers.get(name) != spec:
                        issuers[name] = spec
                        changed = True
            if not changed:
                break
        else:
            logger.warning("依赖展开未能在 %d 轮内稳定", MAX_EXPANSION_ROUNDS)
        return reqs

    @staticmethod
    def _merge(issuers: dict[str, str]) -> Dependency | None:
        deps = [Dependency.parse(spec) for spec in issuers.values()]
        if not deps:
            return Dependency()
        merged: Dependency | None = deps[0]
        for dep in deps[1:]:
            merged = merged.merge(dep) if merged else None
            if merged is None:
                return None
        return merged

    def _candidates(self, name: str, dep: Dependency) -> list[InstalledPackage]:
        return [p for p in self.store.list_all(name) if dep.matches(p.version)]

    def _selected(
        self, name: str, issuers: dict[str, str],
    ) -> InstalledPackage | None:
        dep = self._merge(issuers)
        if dep is None:
            return None
        candidates = self._candidates(name, dep)
        if not candidates:
            return None
        # list_all 按层级排序，优先取最高层级中的最高版本
        group = [p for p in candidates if p.location is candidates[0].location]
        best = dep.best_match(p.version for p in group)
        return next(p for p in group if p.version == best)

    def cached_package_ids(self) -> dict[str, str]:
        """已安装且被项目依赖图选中的包: {包名: 版本}"""
        result: dict[str, str] = {}
        for name, issuers in self._requirements().items():
            pack = self._selected(name, issuers)
            if pack is not None:
                result[name] = pack.version
        return result

    # ------------------------------------------------------------------
    # 动作计算
    # ------------------------------------------------------------------

    def determine_actions(
        self, suppliers: Sequence[PackageSupplier], options: UpdateOptions,
    ) -> list[Action]:
        actions: list[Action] = []
        upgrade = bool(options & UpdateOptions.UPGRADE)

        for name, issuers in sorted(self._requirements().items()):
            dep = self._merge(issuers)
            if dep is None:
                actions.append(Action.conflict(name, issuers))
                continue
            location = self.locations.get(name, PlacementLocation.USER_WIDE)

            # 项目内被新约束取代的旧版本
            if location is PlacementLocation.LOCAL:
                for pack in self.store.list_all(name):
                    if (
                        pack.location is PlacementLocation.LOCAL
                        and not dep.matches(pack.version)
                    ):
                        actions.append(Action.remove(pack))

            candidates = self._candidates(name, dep)
            if any(p.location is PlacementLocation.LOCAL for p in candidates):
                continue
            if candidates and not upgrade:
                continue

            desc = self._describe(suppliers, name, dep)
            if desc is None:
                if not candidates:
                    actions.append(Action.failure(name, dep, issuers))
                continue
            ver = str(desc["version"])
            if not is_branch_version(ver) and any(p.version == ver for p in candidates):
                continue
            actions.append(Action.fetch(name, dep, location, issuers))
        return actions

    @staticmethod
    def _describe(
        suppliers: Sequence[PackageSupplier], name: str, dep: Dependency,
    ) -> dict[str, Any] | None:
        for supplier in suppliers:
            try:
                desc = supplier.get_description(name, dep)
            except Exception as e:  # noqa: BLE001
                logger.debug(
                    "供应源 %r 无法提供 %s: %s: %s",
                    supplier, name, type(e).__name__, e,
                )
                continue
            if desc and desc.get("version"):
                return desc
        return None
