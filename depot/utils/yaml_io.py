"""YAML 读写：项目清单 depot.yml 与 local-packages.yml 登记表

读取失败统一转换成带文件路径的 ConfigError；写入先落到同目录临时文件，
再 os.replace 到目标位置，读者只会看到旧内容或新内容。
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml

from depot.core.exceptions import ConfigError

logger = logging.getLogger(__name__)

# 清单与登记表的大小上限
MAX_YAML_SIZE = 1024 * 1024


def atomic_write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(
        dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


def load_yaml(path: str | Path) -> dict[str, Any]:
    """读取 YAML 映射，文件不存在或为空时返回空字典

    异常:
        ConfigError: 文件过大、无法读取、语法错误或顶层不是映射
    """
    p = Path(path)
    if not p.is_file():
        return {}
    if p.stat().st_size > MAX_YAML_SIZE:
        raise ConfigError(f"{p} 过大，超过 {MAX_YAML_SIZE} 字节")

    try:
        data = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"无法解析 {p}: {e}") from e
    except OSError as e:
        raise ConfigError(f"无法读取 {p}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{p}: 顶层必须是映射，实际为 {type(data).__name__}")
    return data


def save_yaml(path: str | Path, data: dict[str, Any]) -> None:
    content = yaml.safe_dump(
        data, default_flow_style=False, allow_unicode=True, sort_keys=False,
    )
    atomic_write(Path(path), content)
    logger.debug("已写入 %s", path)
