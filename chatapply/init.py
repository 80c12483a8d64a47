# chatapply/init.py
"""
项目初始化模块 (CLI 层交互与渲染)
负责收集配置项并渲染配置文件内容，文件的实际创建由 cli.py 执行。
"""

from pathlib import Path

import click
import yaml

from applyflow.core.errors import ConfigError
from .core.config import ApplyConfig
from .core.prompt import render_template


def init_project(interactive: bool = True) -> str:
    """返回渲染好的 config.yaml 内容"""
    project_name = Path(".").resolve().name
    defaults = ApplyConfig()
    project_root = defaults.project_root
    max_file_size_kb = defaults.max_file_size_kb
    block_on_errors = defaults.block_apply_all_on_errors

    if interactive:
        project_root = click.prompt("项目根目录", default=project_root)
        max_file_size_kb = click.prompt("文件大小上限 (KB)", type=click.IntRange(min=1), default=max_file_size_kb)
        block_on_errors = click.confirm("apply-all 遇到失败条目时整体中止？", default=block_on_errors)

    return render_template(
        'config',
        project_name=project_name,
        project_root=project_root,
        max_file_size_kb=max_file_size_kb,
        block_apply_all_on_errors=block_on_errors,
    )


def validate_config_content(content: str) -> ApplyConfig:
    """验证配置内容字符串的合法性"""
    click.echo("🔍 正在验证配置内容... ")
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        click.echo(click.style("❌ YAML 语法错误！", fg="red"))
        click.echo(f"   {e}")
        raise click.Abort()

    if data is None:
        click.echo(click.style("⚠️ 警告：配置内容为空，将使用默认值。", fg="yellow"))
        return ApplyConfig()

    if not isinstance(data, dict):
        click.echo(click.style("❌ 错误：配置内容必须是一个 YAML 对象。", fg="red"))
        raise click.Abort()

    try:
        config = ApplyConfig.from_dict(data)
    except ConfigError as e:
        click.echo(click.style(f"❌ 错误：{e.message}", fg="red"))
        raise click.Abort()

    click.echo(f"📦 项目根目录: {config.project_root}")
    click.echo(f"📏 文件大小上限: {config.max_file_size_kb} KB")
    click.echo(click.style("🎉 配置内容验证通过！", fg="green"))
    return config
