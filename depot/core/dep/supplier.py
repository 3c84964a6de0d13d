"""包供应源

- RegistryPackageSupplier: HTTP 注册表
    元信息: GET <registry>/packages/<id>.json
            {"name": "...", "versions": [{"version": "1.0.0", "dependencies": {...}}, ...]}
    归档:   GET <registry>/packages/<id>/<version>.zip
- FileSystemPackageSupplier: 本地目录中的 <id>-<version>.zip 文件

多个供应源按优先级依次尝试，第一个返回元信息的供应源胜出。
"""

from __future__ import annotations

import http.client
import json
import logging
import os
import shutil
import time
import urllib.error
import urllib.request
import zipfile
from pathlib import Path
from typing import Any

from depot.core.dep.models import Dependency
from depot.core.exceptions import DownloadError, PackageNotFoundError
from depot.utils.net import join_url, validate_url_scheme

logger = logging.getLogger(__name__)

DEFAULT_REGISTRY_URL = "https://registry.depot.dev/"
METADATA_CACHE_SECONDS = 3600


class RegistryPackageSupplier:
    """HTTP 注册表供应源，元信息按包名缓存一段时间"""

    def __init__(self, url: str, timeout: float = 30.0) -> None:
        validate_url_scheme(url, context="registry url")
        self.url = url
        self.timeout = timeout
        self._cache: dict[str, tuple[float, dict[str, Any]]] = {}

    def __repr__(self) -> str:
        return f"RegistryPackageSupplier({self.url!r})"

    def get_description(
        self, package_id: str, dependency: Dependency,
    ) -> dict[str, Any]:
        meta = self._metadata(package_id)
        versions = {
            str(v["version"]): v for v in meta.get("versions") or []
            if isinstance(v, dict) and "version" in v
        }
        best = dependency.best_match(versions)
        if best is None:
            raise PackageNotFoundError(
                f"{self.url} 中没有满足 {dependency} 的 {package_id} 版本",
            )
        desc = dict(versions[best])
        desc["name"] = package_id
        desc["version"] = best
        return desc

    def retrieve(
        self, dest: Path, package_id: str, dependency: Dependency,
    ) -> None:
        desc = self.get_description(package_id, dependency)
        url = join_url(
            self.url, "packages", package_id, f"{desc['version']}.zip",
        )
        logger.debug("下载归档: %s", url)
        try:
            with urllib.request.urlopen(url, timeout=self.timeout) as resp:  # nosec B310
                with open(dest, "wb") as f:
                    shutil.copyfileobj(resp, f)
        except (urllib.error.URLError, http.client.HTTPException, OSError) as e:
            raise DownloadError(f"下载失败: {url} - {e}") from e

    def _metadata(self, package_id: str) -> dict[str, Any]:
        cached = self._cache.get(package_id)
        if cached and time.monotonic() - cached[0] < METADATA_CACHE_SECONDS:
            return cached[1]

        url = join_url(self.url, "packages", f"{package_id}.json")
        try:
            with urllib.request.urlopen(url, timeout=self.timeout) as resp:  # nosec B310
                data = json.loads(resp.read().decode("utf-8"))
        except urllib.error.HTTPError as e:
            if e.code == 404:
                raise PackageNotFoundError(
                    f"注册表 {self.url} 中不存在包 {package_id}",
                ) from e
            raise DownloadError(f"获取元信息失败: {url} - {e}") from e
        except (
            urllib.error.URLError, http.client.HTTPException, OSError, ValueError,
        ) as e:
            raise DownloadError(f"获取元信息失败: {url} - {e}") from e

        if not isinstance(data, dict):
            raise DownloadError(f"元信息格式无效: {url}")
        self._cache[package_id] = (time.monotonic(), data)
        return data


class FileSystemPackageSupplier:
    """从本地目录提供 <id>-<version>.zip 归档"""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def __repr__(self) -> str:
        return f"FileSystemPackageSupplier({str(self.path)!r})"

    def _archives(self, package_id: str) -> dict[str, Path]:
        prefix = f"{package_id}-"
        if not self.path.is_dir():
            return {}
        return {
            f.name[len(prefix):-len(".zip")]: f
            for f in self.path.glob(f"{package_id}-*.zip")
            if f.is_file()
        }

    def get_description(
        self, package_id: str, dependency: Dependency,
    ) -> dict[str, Any]:
        archives = self._archives(package_id)
        best = dependency.best_match(archives)
        if best is None:
            raise PackageNotFoundError(
                f"{self.path} 中没有满足 {dependency} 的 {package_id} 归档",
            )
        desc = _read_archive_metadata(archives[best])
        desc["name"] = package_id
        desc["version"] = best
        return desc

    def retrieve(
        self, dest: Path, package_id: str, dependency: Dependency,
    ) -> None:
        archives = self._archives(package_id)
        best = dependency.best_match(archives)
        if best is None:
            raise PackageNotFoundError(
                f"{self.path} 中没有满足 {dependency} 的 {package_id} 归档",
            )
        try:
            shutil.copyfile(archives[best], dest)
        except OSError as e:
            raise DownloadError(f"复制归档失败: {archives[best]} - {e}") from e


def _read_archive_metadata(archive: Path) -> dict[str, Any]:
    """读取归档根目录（或唯一顶层目录）下的 package.json"""
    try:
        with zipfile.ZipFile(archive) as zf:
            for name in zf.namelist():
                parts = name.split("/")
                if parts[-1] == "package.json" and len(parts) <= 2:
                    data = json.loads(zf.read(name).decode("utf-8"))
                    return dict(data) if isinstance(data, dict) else {}
    except (OSError, zipfile.BadZipFile, ValueError) as e:
        logger.warning("无法读取归档元信息: %s (%s)", archive, e)
    return {}


def default_package_suppliers(
    registry_urls: list[str] | None = None, timeout: float = 30.0,
) -> list[RegistryPackageSupplier]:
    """配置中的注册表在前，默认注册表兜底"""
    urls = list(registry_urls or [])
    default_url = os.environ.get("DEPOT_REGISTRY_URL") or DEFAULT_REGISTRY_URL
    if default_url not in urls:
        urls.append(default_url)
    logger.debug("使用注册表: %s", ", ".join(urls))
    return [RegistryPackageSupplier(u, timeout=timeout) for u in urls]
