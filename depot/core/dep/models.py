"""依赖包数据模型

数据类:
- Dependency: 版本约束（发行版本范围或分支）
- InstalledPackage: 已安装包（不可变，升级总是先删后装）
- Action: 解析器给出的动作（fetch / remove / conflict / failure）
- RemovalReport / UpdateReport: 删除批次与更新循环的结果汇总

版本约定:
  - 以 "~" 开头的版本（如 ~master）表示跟踪上游分支，可被强制重新拉取
  - "~>" 是近似范围运算符（~>1.2.3 即 >=1.2.3 <1.3.0），不是分支
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

import semantic_version

from depot.core.exceptions import ValidationError

BRANCH_PREFIX = "~"
ANY_VERSION = ">=0.0.0"
REMOVE_VERSION_WILDCARD = "*"

_OPERATOR_SPACE = re.compile(r"(>=|<=|==|!=|~>|>|<)\s+")


def is_branch_version(version: str) -> bool:
    """版本字符串是否指向一个可变分支（~master 等）"""
    return version.startswith(BRANCH_PREFIX) and not version.startswith("~>")


def clean_version(version: str) -> str:
    """去掉分支前缀，用于安装目录名和临时文件名"""
    return version[1:] if is_branch_version(version) else version


def _parse_version(version: str) -> semantic_version.Version:
    try:
        return semantic_version.Version(version)
    except ValueError:
        return semantic_version.Version.coerce(version)


def _simple_spec(spec: str) -> semantic_version.SimpleSpec:
    """把 "~>1.2 >=1.0" 这类约束转换成 SimpleSpec 语法"""
    text = _OPERATOR_SPACE.sub(r"\1", spec.strip()) or "*"
    clauses: list[str] = []
    for part in re.split(r"[\s,]+", text):
        if not part:
            continue
        if part.startswith("~>"):
            part = "~=" + part[2:]
        elif part[0].isdigit():
            part = "==" + part
        clauses.append(part)
    if len(clauses) > 1:
        clauses = [c for c in clauses if c != "*"]
    try:
        return semantic_version.SimpleSpec(",".join(clauses))
    except ValueError as e:
        raise ValidationError(f"无效的版本约束 '{spec}': {e}") from e


@dataclass(frozen=True)
class Dependency:
    """单个包的版本约束"""

    spec: str = ANY_VERSION

    @classmethod
    def parse(cls, value: str | Dependency | None) -> Dependency:
        if isinstance(value, Dependency):
            return value
        if value is None or not str(value).strip():
            return cls()
        return cls(str(value).strip())

    @property
    def is_branch(self) -> bool:
        return is_branch_version(self.spec)

    def matches(self, version: str) -> bool:
        if self.is_branch:
            return version == self.spec
        if is_branch_version(version):
            return False
        spec = _simple_spec(self.spec)
        try:
            return spec.match(_parse_version(version))
        except ValueError:
            return False

    def best_match(self, versions: Iterable[str]) -> str | None:
        """从候选版本中挑出满足约束的最高版本"""
        candidates = [v for v in versions if self.matches(v)]
        if not candidates:
            return None
        if self.is_branch:
            return candidates[0]
        return max(candidates, key=_parse_version)

    def merge(self, other: Dependency) -> Dependency | None:
        """合并两个约束，分支与其他约束不兼容时返回 None"""
        if self.spec == other.spec:
            return self
        if self.is_branch or other.is_branch:
            return None
        return Dependency(f"{self.spec},{other.spec}")

    def __str__(self) -> str:
        return self.spec


class PlacementLocation(enum.Enum):
    """包的放置层级"""

    LOCAL = "local"        # 项目目录内，最高优先级，从不自动升级
    USER_WIDE = "user"     # <userRoot>/packages
    SYSTEM_WIDE = "system"  # <systemRoot>/packages

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class InstalledPackage:
    """已安装的包，由 PackageStore 创建和销毁，不做原地修改"""

    name: str
    version: str
    path: Path
    location: PlacementLocation | None = None  # None 表示来自搜索路径
    info: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def root(self) -> Path:
        return self.path.parent

    @property
    def dependencies(self) -> dict[str, str]:
        deps = self.info.get("dependencies")
        if not isinstance(deps, dict):
            return {}
        return {str(k): str(v) for k, v in deps.items()}


class ActionType(enum.Enum):
    FETCH = "fetch"
    REMOVE = "remove"
    CONFLICT = "conflict"
    FAILURE = "failure"


@dataclass
class Action:
    """解析器产出的单个动作

    conflict / failure 不带 location，永不执行，仅用于终止本轮更新。
    """

    type: ActionType
    package_id: str
    dependency: Dependency | None = None
    location: PlacementLocation | None = None
    pack: InstalledPackage | None = None
    issuers: dict[str, str] = field(default_factory=dict)

    @classmethod
    def fetch(
        cls, package_id: str, dependency: Dependency | str,
        location: PlacementLocation,
        issuers: dict[str, str] | None = None,
    ) -> Action:
        return cls(
            ActionType.FETCH, package_id, Dependency.parse(dependency),
            location=location, issuers=issuers or {},
        )

    @classmethod
    def remove(cls, pack: InstalledPackage) -> Action:
        return cls(
            ActionType.REMOVE, pack.name, Dependency.parse(pack.version),
            location=pack.location, pack=pack,
        )

    @classmethod
    def conflict(cls, package_id: str, issuers: dict[str, str]) -> Action:
        return cls(ActionType.CONFLICT, package_id, issuers=dict(issuers))

    @classmethod
    def failure(
        cls, package_id: str, dependency: Dependency | str,
        issuers: dict[str, str],
    ) -> Action:
        return cls(
            ActionType.FAILURE, package_id, Dependency.parse(dependency),
            issuers=dict(issuers),
        )

    @property
    def is_blocking(self) -> bool:
        return self.type in (ActionType.CONFLICT, ActionType.FAILURE)

    def describe(self) -> str:
        version = str(self.dependency) if self.dependency else ""
        location = str(self.location) if self.location else "-"
        return (
            f"{self.type.value.capitalize()} {self.package_id} "
            f"{version}, {location}"
        )


class UpdateOptions(enum.Flag):
    NONE = 0
    UPGRADE = enum.auto()        # 允许用新版本替换已有安装
    JUST_ANNOTATE = enum.auto()  # 只计算并输出动作，不执行


@dataclass
class RemovalReport:
    """删除批次结果：逐包记录成功与失败"""

    removed: list[InstalledPackage] = field(default_factory=list)
    failures: list[tuple[InstalledPackage, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


@dataclass
class UpdateReport:
    """一次 update 调用的结果

    status:
      - converged: 解析器不再给出动作
      - annotated: JUST_ANNOTATE 模式，仅输出动作
      - blocked:   存在 conflict / failure，本轮未执行任何动作
    """

    status: str = "converged"
    iterations: int = 0
    applied: list[Action] = field(default_factory=list)
    blocked: list[Action] = field(default_factory=list)
    pending: list[Action] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status != "blocked"
