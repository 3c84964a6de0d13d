"""CLI: 依赖包更新 / 拉取 / 删除命令"""

from __future__ import annotations

import click

from depot.cli import LOCATION_CHOICES, _fail, _manager
from depot.core.dep.models import PlacementLocation, UpdateOptions
from depot.core.exceptions import DepotError


def register(group: click.Group) -> None:
    group.add_command(update)
    group.add_command(fetch)
    group.add_command(remove)
    group.add_command(list_packages)


@click.command()
@click.option("--root", default=".", help="项目根目录")
@click.option("--upgrade", is_flag=True, help="允许用新版本替换已有安装（分支版本强制重新拉取）")
@click.option("--annotate", is_flag=True, help="只输出将要执行的动作，不做任何修改")
def update(root: str, upgrade: bool, annotate: bool) -> None:
    """拉取/删除依赖包，直到项目依赖收敛"""
    options = UpdateOptions.NONE
    if upgrade:
        options |= UpdateOptions.UPGRADE
    if annotate:
        options |= UpdateOptions.JUST_ANNOTATE
    try:
        report = _manager(root).update(options)
    except DepotError as e:
        raise _fail(e) from e

    if report.status == "blocked":
        names = ", ".join(a.package_id for a in report.blocked)
        raise click.ClickException(f"存在未解决的依赖冲突: {names}")
    if report.status == "annotated":
        click.echo(f"共 {len(report.pending)} 个待执行动作（未执行）。")
        return
    click.echo(f"依赖已是最新（执行了 {len(report.applied)} 个动作）。")


@click.command()
@click.argument("name")
@click.option("--version", "spec", default=">=0.0.0", help="版本约束，如 >=1.0.0 或 ~master")
@click.option("--location", type=click.Choice(LOCATION_CHOICES), default="user", help="放置层级")
@click.option("--force", is_flag=True, help="分支版本已存在时强制重新拉取")
@click.option("--root", default=".", help="项目根目录")
def fetch(name: str, spec: str, location: str, force: bool, root: str) -> None:
    """拉取单个包到指定层级"""
    try:
        pack = _manager(root).fetch(name, spec, PlacementLocation(location), force)
    except DepotError as e:
        raise _fail(e) from e
    click.echo(f"就绪: {pack.name} {pack.version} -> {pack.path}")


@click.command()
@click.argument("name")
@click.option("--version", default="", help="要删除的版本，'*' 表示全部版本")
@click.option("--location", type=click.Choice(LOCATION_CHOICES), default="user", help="所在层级")
@click.option("--root", default=".", help="项目根目录")
def remove(name: str, version: str, location: str, root: str) -> None:
    """删除指定层级中的包"""
    try:
        report = _manager(root).remove(name, version, PlacementLocation(location))
    except DepotError as e:
        raise _fail(e) from e

    for pack in report.removed:
        click.echo(f"已删除: {pack.name} {pack.version}")
    if report.failures:
        for pack, err in report.failures:
            click.echo(f"删除失败: {pack.name} {pack.version}: {err}", err=True)
        raise click.ClickException(f"{len(report.failures)} 个包删除失败")


@click.command(name="list")
@click.argument("name", default="")
@click.option("--root", default=".", help="项目根目录")
def list_packages(name: str, root: str) -> None:
    """列出已安装的包"""
    packs = _manager(root).list_packages(name)
    if not packs:
        click.echo("没有已安装的包。")
        return
    for p in packs:
        location = str(p.location) if p.location else "path"
        click.echo(f"  {p.name:20s} {p.version:12s} [{location:6s}] {p.path}")
