# applyflow/core/tolerant.py
"""
宽松匹配：忽略注释和空白差异判断 SEARCH 片段是否"实际存在"于原文中。
只用于给校验失败分类，从不直接用于应用修改。
"""

import re

_BLOCK_COMMENT_RE = re.compile(r"/\*[\s\S]*?\*/")
_LINE_COMMENT_RE = re.compile(r"//.*")
_BLANK_LINES_RE = re.compile(r"\n{2,}")


def normalize_code_for_comparison(text: str) -> str:
    """去掉 /* */ 和 // 注释，逐行 trim，去掉空行，最后整体 trim"""
    normalized = text.replace("\r\n", "\n").replace("\r", "\n")
    normalized = _BLOCK_COMMENT_RE.sub("", normalized)
    normalized = _LINE_COMMENT_RE.sub("", normalized)
    normalized = "\n".join(line.strip() for line in normalized.split("\n"))
    normalized = _BLANK_LINES_RE.sub("\n", normalized)
    return normalized.strip()


def is_tolerant_match(original: str, search: str) -> bool:
    normalized_search = normalize_code_for_comparison(search)
    if not normalized_search:
        return False
    return normalized_search in normalize_code_for_comparison(original)
