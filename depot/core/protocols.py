"""领域协议定义

更新循环、拉取流水线和删除引擎只依赖这里的接口契约（Protocol），
具体的注册表客户端、磁盘存储和项目解析器可以被替换（测试中即用假实现）。
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterator, Protocol, Sequence

if TYPE_CHECKING:
    from depot.core.dep.models import (
        Action,
        Dependency,
        InstalledPackage,
        UpdateOptions,
    )


# =========================================================================
# 包供应源协议
# =========================================================================

class PackageSupplier(Protocol):
    """包元信息与归档的提供者（注册表、本地目录等）"""

    def get_description(
        self, package_id: str, dependency: Dependency,
    ) -> dict[str, Any]:
        """返回满足约束的最佳版本元信息，至少包含 name / version。

        包未知或源不可达时抛出异常，调用方会尝试下一个供应源。
        """
        ...

    def retrieve(
        self, dest: Path, package_id: str, dependency: Dependency,
    ) -> None:
        """把满足约束的包归档写入 dest，失败时抛出异常"""
        ...


# =========================================================================
# 包存储协议
# =========================================================================

class PackageStoreProtocol(Protocol):
    """已安装包的权威登记处，跨 local / user / system 三个层级"""

    def lookup(
        self, package_id: str, version: str, root: Path,
    ) -> InstalledPackage | None:
        """按 (id, version, 安装根目录) 精确查找"""
        ...

    def install(
        self, archive: Path, metadata: dict[str, Any], dest: Path,
    ) -> InstalledPackage:
        """原子地解压并登记：要么完整安装到 dest，要么什么都不留下"""
        ...

    def remove(self, pack: InstalledPackage) -> None:
        """删除一个已安装包"""
        ...

    def list_all(self, package_id: str) -> Iterator[InstalledPackage]:
        """枚举某个包的全部已安装版本"""
        ...

    def refresh(self) -> None:
        """重新扫描磁盘，重建已安装索引"""
        ...


# =========================================================================
# 依赖解析器协议
# =========================================================================

class Resolver(Protocol):
    """项目依赖图的持有者，按需根据已安装状态计算所需动作"""

    def determine_actions(
        self, suppliers: Sequence[PackageSupplier], options: UpdateOptions,
    ) -> list[Action]:
        """基于当前依赖图与已安装状态返回动作列表"""
        ...

    def reinit(self) -> None:
        """存储变更后重新读取已安装状态"""
        ...
