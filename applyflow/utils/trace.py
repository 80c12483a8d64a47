# applyflow/utils/trace.py
"""
核心库的诊断输出。
默认关闭；通过 set_verbose(True) 打开后写到 stderr，避免干扰 CLI 的正常输出。
"""

from rich.console import Console
from rich.markup import escape

_trace_console = Console(stderr=True, soft_wrap=True, highlight=False)
_verbose = False


def set_verbose(enabled: bool) -> None:
    global _verbose
    _verbose = bool(enabled)


def trace(scope: str, message: str) -> None:
    """输出一条诊断信息，例如 trace("parser", "Unclosed tag <plan>")"""
    if not _verbose:
        return
    _trace_console.print(f"[dim]\\[{escape(scope)}][/dim] {escape(message)}")


def preview(text: str, limit: int = 100) -> str:
    """截断文本并转义换行，用于诊断输出"""
    snippet = text[:limit].replace("\n", "\\n")
    return f"{snippet}..." if len(text) > limit else snippet
