"""分层包存储

职责:
- 维护 local / user / system 三个层级及额外搜索路径下已安装包的索引
- 从 zip 归档原子安装（先解压到同级隐藏暂存目录，再整体 rename）
- 删除已安装包（先 rename 到隐藏目录再删除，索引中不会看到半删除状态）
- 登记本地包和搜索路径，持久化在 <tierRoot>/local-packages.yml

目录约定:
  <tierRoot>/packages/<id>-<version>/package.json

索引以 (id, version, 安装根目录) 为键，文件系统是唯一的持久来源，
refresh() 重新扫描磁盘重建索引。

存储假定单写者：不加文件锁，同一存储上并发运行更新属于契约之外。
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
import zipfile
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterator

from depot.core.dep.models import (
    InstalledPackage,
    PlacementLocation,
    clean_version,
)
from depot.core.exceptions import InstallError, RemovalError, ValidationError
from depot.utils.yaml_io import load_yaml, save_yaml

if TYPE_CHECKING:
    from depot.core.config import Config

logger = logging.getLogger(__name__)

METADATA_FILE = "package.json"
LOCAL_PACKAGES_FILE = "local-packages.yml"

_LOCATION_ORDER = {
    PlacementLocation.LOCAL: 0,
    PlacementLocation.USER_WIDE: 1,
    PlacementLocation.SYSTEM_WIDE: 2,
    None: 3,
}

_IndexKey = tuple[str, str, str]


def _root_key(root: Path) -> str:
    return str(Path(root).resolve())


def _index_key(pack: InstalledPackage) -> _IndexKey:
    return (pack.name, pack.version, _root_key(pack.root))


def read_metadata(path: Path) -> dict[str, Any] | None:
    """读取包目录下的 package.json，缺失或损坏时返回 None"""
    meta_file = path / METADATA_FILE
    if not meta_file.is_file():
        return None
    try:
        data = json.loads(meta_file.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("包元信息损坏，忽略: %s (%s)", meta_file, e)
        return None
    return data if isinstance(data, dict) else None


class PackageStore:
    """已安装包的权威登记处"""

    def __init__(
        self,
        user_path: Path,
        system_path: Path,
        project_root: Path | None = None,
        search_paths: list[Path] | None = None,
    ) -> None:
        self.user_path = Path(user_path)
        self.system_path = Path(system_path)
        self.project_root = Path(project_root) if project_root else None
        self.search_paths = [Path(p) for p in (search_paths or [])]
        self._index: dict[_IndexKey, InstalledPackage] = {}
        self._registered: set[_IndexKey] = set()
        self.refresh()

    @classmethod
    def from_config(cls, cfg: Config) -> PackageStore:
        return cls(
            user_path=cfg.user_path,
            system_path=cfg.system_path,
            project_root=cfg.root_path,
            search_paths=cfg.search_paths,
        )

    # ------------------------------------------------------------------
    # 索引
    # ------------------------------------------------------------------

    def _managed_tiers(self) -> list[tuple[Path, PlacementLocation]]:
        tiers: list[tuple[Path, PlacementLocation]] = []
        if self.project_root is not None:
            tiers.append((self.project_root, PlacementLocation.LOCAL))
        tiers.append((self.user_path / "packages", PlacementLocation.USER_WIDE))
        tiers.append((self.system_path / "packages", PlacementLocation.SYSTEM_WIDE))
        return tiers

    def location_of(self, root: Path) -> PlacementLocation | None:
        """安装根目录 -> 所属层级，非受管目录返回 None"""
        key = _root_key(root)
        for tier_root, location in self._managed_tiers():
            if _root_key(tier_root) == key:
                return location
        return None

    def all_search_paths(self) -> list[Path]:
        """环境变量/配置中的搜索路径 + 两个层级登记的搜索路径"""
        paths = list(self.search_paths)
        for system in (False, True):
            paths.extend(
                Path(p) for p in self._load_local_list(system)["searchPaths"]
            )
        return paths

    def refresh(self) -> None:
        """重新扫描磁盘，重建索引"""
        index: dict[_IndexKey, InstalledPackage] = {}
        for root, location in self._managed_tiers():
            for pack in self._scan(root, location, strict_names=True):
                index[_index_key(pack)] = pack
        for path in self.all_search_paths():
            for pack in self._scan(path, None, strict_names=False):
                index.setdefault(_index_key(pack), pack)

        registered: set[_IndexKey] = set()
        for system in (False, True):
            location = (
                PlacementLocation.SYSTEM_WIDE if system
                else PlacementLocation.USER_WIDE
            )
            for entry in self._load_local_list(system)["packages"]:
                path = Path(entry["path"])
                if not path.is_dir():
                    logger.warning("登记的本地包目录不存在: %s", path)
                    continue
                pack = InstalledPackage(
                    name=str(entry["name"]),
                    version=str(entry["version"]),
                    path=path,
                    location=location,
                    info=read_metadata(path) or {},
                )
                key = _index_key(pack)
                index[key] = pack
                registered.add(key)

        self._index = index
        self._registered = registered
        logger.debug("已索引 %d 个已安装包", len(index))

    def _scan(
        self, root: Path, location: PlacementLocation | None,
        *, strict_names: bool,
    ) -> Iterator[InstalledPackage]:
        if not root.is_dir():
            return
        for d in sorted(root.iterdir()):
            if not d.is_dir() or d.name.startswith("."):
                continue
            meta = read_metadata(d)
            if not meta or "name" not in meta or "version" not in meta:
                continue
            name, version = str(meta["name"]), str(meta["version"])
            # 受管层级只认 <id>-<version> 命名的目录，避免误收项目源码目录
            if strict_names and d.name != f"{name}-{clean_version(version)}":
                continue
            yield InstalledPackage(name, version, d, location, meta)

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    def lookup(
        self, package_id: str, version: str, root: Path,
    ) -> InstalledPackage | None:
        return self._index.get((package_id, version, _root_key(root)))

    def list_all(self, package_id: str) -> Iterator[InstalledPackage]:
        packs = [p for p in self._index.values() if p.name == package_id]
        packs.sort(key=lambda p: (_LOCATION_ORDER[p.location], p.version))
        return iter(packs)

    def all_packages(self) -> Iterator[InstalledPackage]:
        packs = sorted(
            self._index.values(),
            key=lambda p: (p.name, _LOCATION_ORDER[p.location], p.version),
        )
        return iter(packs)

    def is_registered(self, pack: InstalledPackage) -> bool:
        return _index_key(pack) in self._registered

    # ------------------------------------------------------------------
    # 安装 / 删除
    # ------------------------------------------------------------------

    def install(
        self, archive: Path, metadata: dict[str, Any], dest: Path,
    ) -> InstalledPackage:
        """解压归档到 dest 并登记

        先解压到 dest 同级的隐藏暂存目录（扫描时忽略以 "." 开头的目录），
        写入 package.json 后整体 rename 到 dest；任何失败都会清理暂存目录。
        """
        name = metadata.get("name")
        version = metadata.get("version")
        if not name or not version:
            raise InstallError(f"包元信息缺少 name/version: {metadata}")
        dest = Path(dest)
        if dest.exists():
            raise InstallError(f"安装目录已存在: {dest}")

        dest.parent.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(
            prefix=f".{dest.name}.", suffix=".partial", dir=str(dest.parent),
        ))
        info = dict(metadata)
        try:
            self._extract(archive, staging)
            (staging / METADATA_FILE).write_text(
                json.dumps(info, indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
            os.replace(staging, dest)
        except (OSError, zipfile.BadZipFile, ValueError) as e:
            shutil.rmtree(staging, ignore_errors=True)
            raise InstallError(f"安装 {name} {version} 到 {dest} 失败: {e}") from e

        pack = InstalledPackage(
            name=str(name),
            version=str(version),
            path=dest,
            location=self.location_of(dest.parent),
            info=info,
        )
        self._index[_index_key(pack)] = pack
        logger.info("已安装 %s %s -> %s", name, version, dest)
        return pack

    @staticmethod
    def _extract(archive: Path, dest: Path) -> None:
        """解压 zip，若所有条目共享唯一顶层目录则去掉这一层"""
        with zipfile.ZipFile(archive) as zf:
            members = [m for m in zf.infolist() if m.filename.strip("/")]
            tops = {m.filename.split("/", 1)[0] for m in members}
            prefix = ""
            if len(tops) == 1 and all("/" in m.filename for m in members):
                prefix = tops.pop() + "/"

            base = dest.resolve()
            for member in members:
                rel = member.filename[len(prefix):]
                if not rel:
                    continue
                target = (dest / rel).resolve()
                if base != target and base not in target.parents:
                    raise ValueError(f"归档条目越界: {member.filename}")
                if member.is_dir():
                    target.mkdir(parents=True, exist_ok=True)
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                with zf.open(member) as src, open(target, "wb") as dst:
                    shutil.copyfileobj(src, dst)

    def remove(self, pack: InstalledPackage) -> None:
        """删除一个受管层级中的包"""
        if pack.location is None:
            raise RemovalError(f"搜索路径中的包不由存储管理: {pack.path}")
        if self.is_registered(pack):
            raise RemovalError(
                f"{pack.name} {pack.version} 是登记的本地包，"
                f"请使用 remove-local 注销: {pack.path}"
            )

        if pack.path.exists():
            tomb = pack.path.with_name(f".{pack.path.name}.removing")
            try:
                if tomb.exists():
                    shutil.rmtree(tomb)
                os.replace(pack.path, tomb)
                shutil.rmtree(tomb)
            except OSError as e:
                raise RemovalError(
                    f"删除 {pack.name} {pack.version} 失败: {e}",
                ) from e
        self._index.pop(_index_key(pack), None)
        logger.debug("已从索引移除: %s %s (%s)", pack.name, pack.version, pack.path)

    # ------------------------------------------------------------------
    # 本地包 / 搜索路径登记
    # ------------------------------------------------------------------

    def _local_list_path(self, system: bool) -> Path:
        base = self.system_path if system else self.user_path
        return base / LOCAL_PACKAGES_FILE

    def _load_local_list(self, system: bool) -> dict[str, list[Any]]:
        data = load_yaml(self._local_list_path(system))
        return {
            "packages": list(data.get("packages") or []),
            "searchPaths": [str(p) for p in data.get("searchPaths") or []],
        }

    def _save_local_list(self, system: bool, data: dict[str, list[Any]]) -> None:
        save_yaml(self._local_list_path(system), data)

    def add_local_package(
        self, path: Path, version: str, system: bool = False,
    ) -> InstalledPackage:
        """把一个已有目录登记为指定版本的包"""
        path = Path(path).resolve()
        if not path.is_dir():
            raise ValidationError(f"本地包目录不存在: {path}")
        meta = read_metadata(path) or {}
        name = str(meta.get("name") or path.name)

        data = self._load_local_list(system)
        entries = [e for e in data["packages"] if Path(e["path"]) != path]
        entries.append({"name": name, "version": version, "path": str(path)})
        data["packages"] = entries
        self._save_local_list(system, data)
        self.refresh()
        logger.info("已登记本地包 %s %s: %s", name, version, path)
        pack = self.lookup(name, version, path.parent)
        if pack is None:
            raise ValidationError(f"登记后无法找到本地包: {path}")
        return pack

    def remove_local_package(self, path: Path, system: bool = False) -> bool:
        path = Path(path).resolve()
        data = self._load_local_list(system)
        entries = [e for e in data["packages"] if Path(e["path"]) != path]
        if len(entries) == len(data["packages"]):
            logger.warning("未登记的本地包: %s", path)
            return False
        data["packages"] = entries
        self._save_local_list(system, data)
        self.refresh()
        logger.info("已注销本地包: %s", path)
        return True

    def add_search_path(self, path: Path, system: bool = False) -> None:
        path = Path(path).resolve()
        data = self._load_local_list(system)
        if str(path) not in data["searchPaths"]:
            data["searchPaths"].append(str(path))
            self._save_local_list(system, data)
        self.refresh()
        logger.info("已添加搜索路径: %s", path)

    def remove_search_path(self, path: Path, system: bool = False) -> bool:
        path = Path(path).resolve()
        data = self._load_local_list(system)
        if str(path) not in data["searchPaths"]:
            logger.warning("搜索路径未登记: %s", path)
            return False
        data["searchPaths"].remove(str(path))
        self._save_local_list(system, data)
        self.refresh()
        logger.info("已移除搜索路径: %s", path)
        return True
