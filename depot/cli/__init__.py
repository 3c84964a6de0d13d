"""depot 命令行接口

CLI 按领域拆分为子模块，每个模块注册自己的命令到 main group。
"""

from __future__ import annotations

import os
from pathlib import Path

import click

from depot import __version__
from depot.core.dep_manager import DepManager
from depot.core.exceptions import DepotError
from depot.utils.logger import setup_logging

LOCATION_CHOICES = ["local", "user", "system"]


def _manager(root: str) -> DepManager:
    """按项目根目录构造 DepManager"""
    from depot.core.config import init_config
    cfg = init_config(Path(root))
    return DepManager(config=cfg)


def _fail(exc: DepotError) -> click.ClickException:
    return click.ClickException(f"[{exc.code}] {exc}")


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """depot - 源码包管理器"""
    setup_logging(
        level=os.getenv("DEPOT_LOG_LEVEL", "INFO"),
        json_output=os.getenv("DEPOT_LOG_JSON", "") == "1",
    )


# 注册各领域子命令
from depot.cli.cmd_deps import register as _reg_deps  # noqa: E402
from depot.cli.cmd_local import register as _reg_local  # noqa: E402

_reg_deps(main)
_reg_local(main)
