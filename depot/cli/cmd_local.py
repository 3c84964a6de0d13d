"""CLI: 本地包与搜索路径登记"""

from __future__ import annotations

import click

from depot.cli import _fail, _manager
from depot.core.exceptions import DepotError


def register(group: click.Group) -> None:
    group.add_command(add_local)
    group.add_command(remove_local)
    group.add_command(add_path)
    group.add_command(remove_path)


@click.command(name="add-local")
@click.argument("path")
@click.argument("version")
@click.option("--system", is_flag=True, help="登记到系统级而非用户级")
@click.option("--root", default=".", help="项目根目录")
def add_local(path: str, version: str, system: bool, root: str) -> None:
    """把已有目录登记为指定版本的包"""
    try:
        pack = _manager(root).add_local_package(path, version, system)
    except DepotError as e:
        raise _fail(e) from e
    click.echo(f"已登记: {pack.name} {pack.version} -> {pack.path}")


@click.command(name="remove-local")
@click.argument("path")
@click.option("--system", is_flag=True, help="从系统级登记中注销")
@click.option("--root", default=".", help="项目根目录")
def remove_local(path: str, system: bool, root: str) -> None:
    """注销登记的本地包（不删除目录）"""
    if not _manager(root).remove_local_package(path, system):
        raise click.ClickException(f"未登记的本地包: {path}")
    click.echo(f"已注销: {path}")


@click.command(name="add-path")
@click.argument("path")
@click.option("--system", is_flag=True, help="添加到系统级")
@click.option("--root", default=".", help="项目根目录")
def add_path(path: str, system: bool, root: str) -> None:
    """添加包搜索路径"""
    _manager(root).add_search_path(path, system)
    click.echo(f"已添加搜索路径: {path}")


@click.command(name="remove-path")
@click.argument("path")
@click.option("--system", is_flag=True, help="从系统级移除")
@click.option("--root", default=".", help="项目根目录")
def remove_path(path: str, system: bool, root: str) -> None:
    """移除包搜索路径"""
    if not _manager(root).remove_search_path(path, system):
        raise click.ClickException(f"搜索路径未登记: {path}")
    click.echo(f"已移除搜索路径: {path}")
