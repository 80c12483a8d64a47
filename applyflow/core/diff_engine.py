# applyflow/core/diff_engine.py
"""
Diff/Patch 引擎：把单个修改（search/replace 片段或 unified diff）应用到已知文本上。
所有函数都是纯函数，dry run 与真正提交使用同一套逻辑。
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from .errors import PatchApplyError
from .models import EditMode, FileEdit
from .unified_diff import apply_unified_diff

_SEARCH_REPLACE_RE = re.compile(
    r"<<<<<<<\s*SEARCH\n?([\s\S]*?)\n?=======\n?([\s\S]*?)\n?>>>>>>>\s*REPLACE"
)
# 单行等简单写法的兜底匹配
_SEARCH_REPLACE_FALLBACK_RE = re.compile(
    r"<<<<<<<\s*SEARCH\s+([\s\S]+?)\s+=======\s+([\s\S]*?)\s+>>>>>>>\s*REPLACE"
)


def normalize_newlines(text: str) -> str:
    """CRLF / CR -> LF"""
    return text.replace("\r\n", "\n").replace("\r", "\n")


class FailureKind(Enum):
    SEARCH_NOT_FOUND = "search_not_found"
    IDENTICAL_CONTENT = "identical_content"


@dataclass(frozen=True)
class EditResult:
    content: str
    failure: Optional[FailureKind] = None

    @property
    def ok(self) -> bool:
        return self.failure is None


def parse_search_replace_block(block: str) -> Optional[Tuple[str, str]]:
    """
    解析 SEARCH/REPLACE 块，返回 (search_text, replace_text)，均为 LF 换行。
    没有标记时返回 None。
    """
    normalized = normalize_newlines(block)
    match = _SEARCH_REPLACE_RE.search(normalized)
    if match is None:
        match = _SEARCH_REPLACE_FALLBACK_RE.search(normalized)
        if match is None:
            return None
    return match.group(1), match.group(2)


def apply_search_replace(original: str, search: str, replace: str) -> EditResult:
    """
    在 original 中精确查找 search，只替换第一次出现的位置。
    - search == replace（换行统一后）时返回 IDENTICAL_CONTENT
    - 找不到时返回 SEARCH_NOT_FOUND，content 为原文
    成功时返回的 content 使用 LF 换行。
    """
    original_lf = normalize_newlines(original)
    search_lf = normalize_newlines(search)
    replace_lf = normalize_newlines(replace)

    if search_lf == replace_lf:
        return EditResult(content=original, failure=FailureKind.IDENTICAL_CONTENT)

    position = original_lf.find(search_lf)
    if position == -1:
        return EditResult(content=original, failure=FailureKind.SEARCH_NOT_FOUND)

    updated = original_lf[:position] + replace_lf + original_lf[position + len(search_lf):]
    return EditResult(content=updated)


def apply_edit(original: str, edit: FileEdit) -> EditResult:
    """
    把一个 FileEdit 应用到 original 上。
    unified diff 无法应用时抛出 PatchApplyError（属于应用失败，而不是校验失败）。
    """
    if edit.mode is EditMode.SEARCH_REPLACE:
        return apply_search_replace(original, edit.search_text or "", edit.replace_text or "")

    diff_text = normalize_newlines(edit.diff_content)
    if not diff_text.strip():
        # 空 diff 不做任何修改
        return EditResult(content=normalize_newlines(original))
    try:
        return EditResult(content=apply_unified_diff(normalize_newlines(original), diff_text))
    except PatchApplyError as e:
        if e.path is None:
            e.path = edit.path
        raise
