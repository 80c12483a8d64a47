"""
统一的控制台输出工具，基于 rich 实现。
"""
from typing import Any, Iterable, Optional, Sequence

from rich.console import Console as RichConsole
from rich.markup import escape
from rich.table import Table
from rich.theme import Theme

CUSTOM_THEME = Theme({
    "info": "cyan bold",
    "success": "green bold",
    "warning": "yellow bold",
    "error": "red bold",
    "heading": "bold underline",
    "path": "magenta",
    "status.ok": "green",
    "status.review": "yellow",
    "status.fail": "red",
    "status.muted": "dim",
})

# 全局控制台实例
console = RichConsole(theme=CUSTOM_THEME, soft_wrap=True)


def info(message: str):
    console.print(f"💡 [info]INFO[/info]: {escape(message)}")


def success(message: str):
    console.print(f"✅ [success]SUCCESS[/success]: {escape(message)}")


def warning(message: str):
    console.print(f"⚠️  [warning]WARNING[/warning]: {escape(message)}")


def error(message: str):
    console.print(f"❌ [error]ERROR[/error]: {escape(message)}")


def heading(title: str):
    console.print(f"\n🎯 [heading]{escape(title)}[/heading]\n")


def confirm(prompt: str, default: bool = True) -> bool:
    """确认对话（Y/N）"""
    yes_no = "[Y/n]" if default else "[y/N]"
    response = console.input(f"❓ {escape(prompt)} {escape(yes_no)}: ").strip().lower()
    if not response:
        return default
    return response in ("y", "yes", "是")


def print_table(rows: Iterable[Sequence[Any]], headers: Sequence[str], title: Optional[str] = None):
    """打印简单表格，单元格内容按原样显示（不解析 markup）"""
    table = Table(title=title, show_header=True, header_style="bold magenta")
    for h in headers:
        table.add_column(h)
    for row in rows:
        table.add_row(*[escape(str(cell)) for cell in row])
    console.print(table)


def styled(text: str, style: str) -> str:
    """返回带样式的字符串（用于拼接）"""
    return f"[{style}]{escape(text)}[/]"
