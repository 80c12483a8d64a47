# applyflow/core/unified_diff.py
"""
unified diff 的解析与应用（标准 hunk 补丁语义）。

- 每个 hunk 的上下文行和删除行必须与当前内容逐行精确一致
- hunk 位置优先使用头部的行号，找不到时在前后搜索（与 patch 的 offset 行为一致，不做 fuzz）
- 只应用第一个带 hunk 的文件补丁
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional

from .errors import PatchApplyError
from ..utils.trace import trace

_HUNK_HEADER_RE = re.compile(r"^@@\s*-(\d+)(?:,(\d+))?\s+\+(\d+)(?:,(\d+))?\s*@@")
_NO_NEWLINE_MARKER = "\\"


@dataclass
class Hunk:
    old_start: Optional[int]  # 头部没有行号时为 None
    old_count: Optional[int]
    new_start: Optional[int]
    new_count: Optional[int]
    lines: List[str] = field(default_factory=list)

    @property
    def old_lines(self) -> List[str]:
        return [line[1:] for line in self.lines if line[:1] in (" ", "-")]

    @property
    def new_lines(self) -> List[str]:
        return [line[1:] for line in self.lines if line[:1] in (" ", "+")]

    def _counts_satisfied(self) -> bool:
        if self.old_count is None or self.new_count is None:
            return False
        return len(self.old_lines) >= self.old_count and len(self.new_lines) >= self.new_count


@dataclass
class FilePatch:
    old_name: Optional[str] = None
    new_name: Optional[str] = None
    hunks: List[Hunk] = field(default_factory=list)


def _parse_hunk_header(line: str) -> Optional[Hunk]:
    match = _HUNK_HEADER_RE.match(line)
    if match:
        old_start, old_count, new_start, new_count = match.groups()
        return Hunk(
            old_start=int(old_start),
            old_count=int(old_count) if old_count is not None else 1,
            new_start=int(new_start),
            new_count=int(new_count) if new_count is not None else 1,
        )
    if line.startswith("@@"):
        # LLM 经常输出不带行号的 "@@ ... @@"
        return Hunk(old_start=None, old_count=None, new_start=None, new_count=None)
    return None


def parse_patch(diff_text: str) -> List[FilePatch]:
    """把 diff 文本解析为 FilePatch 列表（输入应已统一为 LF）。"""
    patches: List[FilePatch] = []
    current: Optional[FilePatch] = None
    hunk: Optional[Hunk] = None

    lines = diff_text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()

    i = 0
    while i < len(lines):
        line = lines[i]

        if line.startswith("--- ") and i + 1 < len(lines) and lines[i + 1].startswith("+++ "):
            current = FilePatch(old_name=line[4:].strip(), new_name=lines[i + 1][4:].strip())
            patches.append(current)
            hunk = None
            i += 2
            continue

        header = _parse_hunk_header(line)
        if header is not None:
            if current is None:
                current = FilePatch()
                patches.append(current)
            hunk = header
            current.hunks.append(hunk)
            i += 1
            continue

        if hunk is not None:
            prefix = line[:1]
            if prefix in (" ", "-", "+"):
                hunk.lines.append(line)
            elif prefix == _NO_NEWLINE_MARKER:
                hunk.lines.append(line)
            elif line == "" and not hunk._counts_satisfied():
                # 空上下文行的行首空格常被丢掉
                hunk.lines.append(" ")
            else:
                hunk = None
        i += 1

    return patches


def _matches_at(lines: List[str], expected: List[str], position: int) -> bool:
    if position < 0 or position + len(expected) > len(lines):
        return False
    return lines[position:position + len(expected)] == expected


def _locate(lines: List[str], expected: List[str], preferred: int, minimum: int) -> int:
    """从 preferred 开始向两侧搜索 expected 的位置，不能早于 minimum。"""
    preferred = max(minimum, min(preferred, len(lines)))
    if not expected:
        return preferred
    max_distance = max(preferred - minimum, len(lines) - preferred) + 1
    for distance in range(max_distance):
        for candidate in (preferred + distance, preferred - distance):
            if candidate >= minimum and _matches_at(lines, expected, candidate):
                return candidate
    return -1


def apply_hunks(content: str, patch: FilePatch) -> str:
    if content == "":
        lines: List[str] = []
        trailing_newline = True
    else:
        lines = content.split("\n")
        trailing_newline = content.endswith("\n")
        if trailing_newline:
            lines.pop()

    offset = 0
    minimum = 0
    for number, hunk in enumerate(patch.hunks, start=1):
        old_side = hunk.old_lines
        new_side = hunk.new_lines
        if hunk.old_start is None:
            preferred = minimum
        elif hunk.old_count == 0:
            # 纯插入的 hunk：新行放在第 old_start 行之后（-0,0 即文件开头）
            preferred = hunk.old_start + offset
        else:
            preferred = hunk.old_start - 1 + offset
        position = _locate(lines, old_side, preferred, minimum)
        if position == -1:
            raise PatchApplyError(f"Hunk #{number} does not match the current content.")
        if hunk.old_start is not None and position != preferred:
            trace("unified-diff", f"Hunk #{number} applied at offset {position - preferred}.")

        lines[position:position + len(old_side)] = new_side
        offset += len(new_side) - len(old_side)
        minimum = position + len(new_side)

        for i, line in enumerate(hunk.lines):
            if line.startswith(_NO_NEWLINE_MARKER) and i > 0:
                previous = hunk.lines[i - 1][:1]
                trailing_newline = previous == "-"

    result = "\n".join(lines)
    if lines and trailing_newline:
        result += "\n"
    return result


def apply_unified_diff(content: str, diff_text: str) -> str:
    """
    把 diff_text 应用到 content 上，返回新内容。
    解析不出 hunk 或 hunk 不匹配时抛出 PatchApplyError。
    """
    patches = [p for p in parse_patch(diff_text) if p.hunks]
    if not patches:
        raise PatchApplyError(f"Invalid diff format or empty patch: {diff_text[:100]!r}")
    if len(patches) > 1:
        trace("unified-diff", f"Diff contains {len(patches)} file patches; only the first is applied.")
    return apply_hunks(content, patches[0])
