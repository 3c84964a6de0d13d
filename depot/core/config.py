"""集中配置管理

三个放置层级的根目录、注册表地址和超时统一由 Config 提供。

层级根目录（可用环境变量覆盖）:
  - Windows: %ProgramData%/depot/ 与 %APPDATA%/depot/
  - POSIX:   /var/lib/depot/ 与 $HOME/.depot/

两个根目录下的 settings.json 会被读取，其中 registryUrls 追加到
注册表列表（用户级在前，系统级在后）。DEPOT_PATH 环境变量
（os.pathsep 分隔）追加额外的包搜索路径。
"""

from __future__ import annotations

import json
import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from depot.core.dep.models import PlacementLocation
from depot.core.exceptions import ConfigError

logger = logging.getLogger(__name__)

SETTINGS_FILE = "settings.json"
PACKAGES_DIR = "packages"
TEMP_DOWNLOADS_DIR = Path(".depot") / "temp" / "downloads"


def _default_tier_roots() -> tuple[Path, Path]:
    """返回平台默认的 (系统级, 用户级) 根目录"""
    if sys.platform == "win32":
        system = Path(os.environ.get("ProgramData", "C:/ProgramData")) / "depot"
        user = Path(os.environ.get("APPDATA", Path.home())) / "depot"
    else:
        system = Path("/var/lib/depot")
        user = Path(os.environ.get("HOME", str(Path.home()))) / ".depot"
    return system, user


@dataclass
class Config:
    """包管理全局配置"""

    root_path: Path = field(default_factory=Path.cwd)
    user_path: Path = field(default_factory=lambda: _default_tier_roots()[1])
    system_path: Path = field(default_factory=lambda: _default_tier_roots()[0])
    registry_urls: list[str] = field(default_factory=list)
    search_paths: list[Path] = field(default_factory=list)
    supplier_timeout: float = 30.0
    manifest: str = "depot.yml"

    # 放不进字段的 settings 项
    extra: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.root_path = Path(self.root_path)
        if not self.root_path.is_absolute():
            self.root_path = Path.cwd() / self.root_path
        self.user_path = Path(self.user_path)
        self.system_path = Path(self.system_path)

    @classmethod
    def load(cls, root_path: str | Path = ".") -> Config:
        """按 平台默认 → 环境变量 → settings.json 的顺序构造配置"""
        system, user = _default_tier_roots()
        cfg = cls(
            root_path=Path(root_path),
            user_path=Path(os.environ.get("DEPOT_USER_PATH") or user),
            system_path=Path(os.environ.get("DEPOT_SYSTEM_PATH") or system),
        )
        for settings_root in (cfg.user_path, cfg.system_path):
            cfg._apply_settings(settings_root / SETTINGS_FILE)

        env_paths = os.environ.get("DEPOT_PATH", "")
        cfg.search_paths.extend(
            Path(p) for p in env_paths.split(os.pathsep) if p
        )
        return cfg

    def _apply_settings(self, path: Path) -> None:
        if not path.is_file():
            return
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise ConfigError(f"无法读取配置文件 {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"{path}: 顶层必须是 JSON 对象")
        urls = data.get("registryUrls") or []
        if not isinstance(urls, list):
            raise ConfigError(f"{path}: registryUrls 必须是列表")
        self.registry_urls.extend(str(u) for u in urls)
        if "supplierTimeout" in data:
            try:
                self.supplier_timeout = float(data["supplierTimeout"])
            except (TypeError, ValueError) as e:
                raise ConfigError(
                    f"{path}: supplierTimeout 必须是数字: {data['supplierTimeout']!r}",
                ) from e
        for k, v in data.items():
            if k not in ("registryUrls", "supplierTimeout"):
                self.extra.setdefault(k, v)
        logger.debug("已加载配置: %s", path)

    # ---- 路径计算 ----

    def packages_dir(self, system: bool = False) -> Path:
        base = self.system_path if system else self.user_path
        return base / PACKAGES_DIR

    def placement_root(self, location: PlacementLocation) -> Path:
        """放置层级 -> 安装根目录"""
        if location is PlacementLocation.LOCAL:
            return self.root_path
        if location is PlacementLocation.USER_WIDE:
            return self.packages_dir(system=False)
        if location is PlacementLocation.SYSTEM_WIDE:
            return self.packages_dir(system=True)
        raise ConfigError(f"未知的放置层级: {location}")

    @property
    def temp_download_dir(self) -> Path:
        return self.root_path / TEMP_DOWNLOADS_DIR

    @property
    def manifest_path(self) -> Path:
        return self.root_path / self.manifest


# 全局单例，首次 import 时不加载文件；由 CLI 入口显式初始化
_current: Config | None = None


def get_config() -> Config:
    """获取当前配置（未初始化则按当前目录加载）"""
    global _current  # noqa: PLW0603
    if _current is None:
        _current = Config.load()
    return _current


def init_config(root_path: str | Path = ".") -> Config:
    """以指定项目根目录初始化全局配置"""
    global _current  # noqa: PLW0603
    _current = Config.load(root_path)
    logger.debug("配置已初始化: %s", _current.root_path)
    return _current
