"""依赖包管理核心

拆分说明:
- models.py:   数据模型（约束、已安装包、动作、选项）
- store.py:    分层包存储
- supplier.py: 包供应源（HTTP 注册表 / 本地目录）
- fetcher.py:  拉取流水线
- remover.py:  删除引擎
- updater.py:  更新协调循环
- project.py:  项目依赖解析器
"""

from depot.core.dep.fetcher import PackageFetcher
from depot.core.dep.models import (
    Action,
    ActionType,
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
from depot.core.dep.supplier import (
    FileSystemPackageSupplier,
    RegistryPackageSupplier,
    default_package_suppliers,
)
from depot.core.dep.updater import UpdateLoop

__all__ = [
    "Action",
    "ActionType",
    "Dependency",
    "FileSystemPackageSupplier",
    "InstalledPackage",
    "PackageFetcher",
    "PackageRemover",
    "PackageStore",
    "PlacementLocation",
    "ProjectResolver",
    "RegistryPackageSupplier",
    "RemovalReport",
    "UpdateLoop",
    "UpdateOptions",
    "UpdateReport",
    "default_package_suppliers",
]
