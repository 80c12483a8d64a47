# applyflow/core/parser.py
"""
LLM 响应协议解析器。

单遍从左到右扫描，维护一个游标：
- 标签之外的文本直接丢弃（只做诊断输出）
- 开始标签解析名字和属性，属性格式错误时逐个跳过
- 非自闭合标签向后查找字面量 `</name>`，中间全部作为原始内容
- 未闭合、格式错误、未知名字的标签都被跳过，解析继续

parse() 对任何输入都不会抛出异常。
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .diff_engine import parse_search_replace_block
from .models import (
    ContextHash, EditMode, FileDelete, FileEdit, FileRequest, FileWrite,
    Message, Operation, Plan, ResponseBatch, StatusedOperation, Timestamp,
)
from ..utils.fingerprint import document_checksum, generate_batch_id
from ..utils.trace import preview, trace

RESPONSE_OPEN_RE = re.compile(r"<response(?:\s+[^>]*)?>", re.IGNORECASE)
RESPONSE_CLOSE = "</response>"

EMPTY_RESPONSE_ERROR = "The <response> block is empty. No changes to process."
NO_OPERATIONS_ERROR = "Response processed, but no actionable changes found in the <response> block."

_LEADING_NEWLINE_RE = re.compile(r"^\r?\n")
_NAME_STOP = set(" \t\r\n\f\v/>=")


def _log(message: str) -> None:
    trace("parser", message)


def extract_response_block(document: str) -> str:
    """
    取出第一个 <response ...> 与最后一个 </response> 之间的内容。
    文件内容里出现字面量 "</response>" 不会截断结果。
    找不到成对标签时返回原文。
    """
    open_match = RESPONSE_OPEN_RE.search(document)
    if not open_match:
        _log("No opening <response> tag found, parsing full input.")
        return document

    open_end = open_match.end()
    close_start = document.rfind(RESPONSE_CLOSE)
    if close_start == -1 or close_start < open_end:
        _log(f"No closing </response> after offset {open_match.start()}, parsing full input.")
        return document

    return document[open_end:close_start]


# ==================== 标签扫描 ====================

@dataclass
class _TagInfo:
    name: str
    attributes: Dict[str, str] = field(default_factory=dict)
    is_self_closing: bool = False
    content: Optional[str] = None
    parse_error: Optional[str] = None


class _Scanner:
    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def at_end(self) -> bool:
        return self.pos >= len(self.text)

    def peek(self) -> str:
        return self.text[self.pos] if self.pos < len(self.text) else ""

    def skip_whitespace(self) -> None:
        while not self.at_end() and self.peek().isspace():
            self.pos += 1

    def skip_bad_token(self) -> None:
        while not self.at_end() and self.peek() not in ">/" and not self.peek().isspace():
            self.pos += 1

    def read_name(self) -> str:
        start = self.pos
        while not self.at_end() and self.peek() not in _NAME_STOP:
            self.pos += 1
        return self.text[start:self.pos]

    def read_attributes(self) -> Dict[str, str]:
        attributes: Dict[str, str] = {}
        while not self.at_end() and self.peek() not in ">/":
            if self.peek().isspace():
                self.pos += 1
                continue

            attr_name = self.read_name()
            if not attr_name:
                break

            self.skip_whitespace()
            if self.peek() != "=":
                # 没有值的属性直接忽略，名字已被消费
                _log(f"Malformed attribute (missing '=' after '{attr_name}') at pos {self.pos}.")
                continue
            self.pos += 1
            self.skip_whitespace()

            quote = self.peek()
            if quote not in ("'", '"'):
                _log(f"Malformed attribute value (missing quotes for '{attr_name}') at pos {self.pos}.")
                self.skip_bad_token()
                continue
            self.pos += 1
            value_end = self.text.find(quote, self.pos)
            if value_end == -1:
                _log(f"Malformed attribute value (unclosed quote for '{attr_name}') at pos {self.pos}.")
                value_end = len(self.text)
            attributes[attr_name] = self.text[self.pos:value_end]
            self.pos = min(value_end + 1, len(self.text))
        return attributes

    def read_tag(self) -> Optional[_TagInfo]:
        """在 '<' 处读取一个开始标签；游标移动到标签之后。"""
        tag_start = self.pos
        if self.peek() != "<":
            return None
        self.pos += 1

        name = self.read_name()
        if not name:
            _log(f"Could not parse tag name at pos {tag_start + 1}.")
            recovery = self.text.find(">", self.pos)
            self.pos = recovery + 1 if recovery != -1 else len(self.text)
            return _TagInfo(name="", is_self_closing=True, parse_error="Failed to parse tag name")

        attributes = self.read_attributes()

        is_self_closing = False
        if self.peek() == "/":
            is_self_closing = True
            self.pos += 1

        if self.peek() != ">":
            _log(f"Malformed tag <{name}> (missing '>') at pos {self.pos}.")
            recovery = self.text.find(">", tag_start)
            self.pos = recovery + 1 if recovery != -1 else len(self.text)
            return _TagInfo(
                name=name,
                attributes=attributes,
                is_self_closing=True,
                parse_error="Malformed tag structure (missing '>')",
            )
        self.pos += 1
        return _TagInfo(name=name, attributes=attributes, is_self_closing=is_self_closing)


# ==================== 标签 -> 操作 ====================

def _strip_leading_newline(content: Optional[str]) -> str:
    return _LEADING_NEWLINE_RE.sub("", content or "", count=1)


def normalize_path(path: str) -> str:
    """统一为正斜杠的项目相对路径"""
    posix = path.strip().replace("\\", "/")
    while posix.startswith("./"):
        posix = posix[2:]
    return posix


def _map_tag(tag: _TagInfo) -> Optional[Operation]:
    if tag.parse_error:
        _log(f"Skipping <{tag.name}>: {tag.parse_error}")
        return None

    name = tag.name
    attrs = tag.attributes
    path = normalize_path(attrs["path"]) if attrs.get("path") else None
    reason = attrs.get("reason")

    if name == "context-timestamp":
        return Timestamp(text=(tag.content or "").strip())
    if name == "context-hash":
        return ContextHash(text=(tag.content or "").strip())
    if name == "plan":
        return Plan(text=(tag.content or "").strip())
    if name == "message":
        return Message(text=(tag.content or "").strip(), purpose=attrs.get("purpose"))

    if name in ("file-write", "file-replace-block", "file-diff", "file-delete", "file-request") and not path:
        _log(f"<{name}> tag missing 'path' attribute.")
        return None

    if name == "file-write":
        return FileWrite(path=path, content=_strip_leading_newline(tag.content), reason=reason)

    if name == "file-replace-block":
        block = _strip_leading_newline(tag.content)
        parsed = parse_search_replace_block(block)
        if parsed is None:
            _log(f"<file-replace-block> for '{path}' has no SEARCH/REPLACE markers.")
            return None
        search_text, replace_text = parsed
        return FileEdit(
            path=path,
            mode=EditMode.SEARCH_REPLACE,
            diff_content=block,
            search_text=search_text,
            replace_text=replace_text,
            reason=reason,
        )

    if name == "file-diff":
        return FileEdit(
            path=path,
            mode=EditMode.UNIFIED_DIFF,
            diff_content=_strip_leading_newline(tag.content),
            reason=reason,
        )

    if name == "file-delete":
        if not tag.is_self_closing:
            _log("<file-delete> tag was not self-closing. Content ignored.")
        return FileDelete(path=path, reason=reason)

    if name == "file-request":
        if not tag.is_self_closing:
            _log("<file-request> tag was not self-closing. Content ignored.")
        return FileRequest(path=path)

    _log(f"Unknown tag type encountered: <{name}>")
    return None


def parse(document: str) -> List[Operation]:
    """
    把响应内容解析为按文档顺序排列的操作列表。
    对任何输入都会终止并返回列表（可能为空），不会抛出异常。
    """
    scanner = _Scanner(document or "")
    text = scanner.text
    operations: List[Operation] = []
    _log(f"Starting parse. Input length: {len(text)}")

    while not scanner.at_end():
        read_position = scanner.pos
        tag_start = text.find("<", scanner.pos)
        if tag_start == -1:
            trailing = text[scanner.pos:].strip()
            if trailing:
                _log(f"Trailing non-tag content: \"{preview(trailing)}\"")
            break

        between = text[scanner.pos:tag_start].strip()
        if between:
            _log(f"Text between tags (len {len(between)}): \"{preview(between)}\"")
        scanner.pos = tag_start

        if text.startswith("</", tag_start):
            close_end = text.find(">", tag_start)
            _log(f"Unexpected closing tag at pos {tag_start}. Advancing.")
            scanner.pos = close_end + 1 if close_end != -1 else len(text)
            continue

        tag = scanner.read_tag()
        if tag is None or tag.parse_error:
            if scanner.pos <= tag_start:
                scanner.pos = tag_start + 1
            continue

        if not tag.is_self_closing:
            end_tag = f"</{tag.name}>"
            content_start = scanner.pos
            content_end = text.find(end_tag, content_start)
            if content_end == -1:
                _log(f"Tag <{tag.name}> at pos {tag_start} has no closing '{end_tag}'. Skipping.")
                tag.content = ""
                tag.parse_error = f"Unclosed tag <{tag.name}>"
                next_tag = text.find("<", content_start)
                scanner.pos = next_tag if next_tag != -1 else len(text)
            else:
                tag.content = text[content_start:content_end]
                scanner.pos = content_end + len(end_tag)

        operation = _map_tag(tag)
        if operation is not None:
            operations.append(operation)
            _log(f"Mapped <{tag.name}> to {operation.kind}")

        if scanner.pos <= read_position and not scanner.at_end():
            _log(f"Parser stuck at position {scanner.pos}. Forcing advance.")
            scanner.pos = read_position + 1

    _log(f"Parse finished. Total operations: {len(operations)}")
    return operations


def parse_response(document: str) -> Tuple[List[Operation], Optional[str]]:
    """
    完整的文档级处理：先抽取 <response> 块，再解析。
    返回 (operations, parse_error)。
    """
    block = extract_response_block(document)
    if not block.strip() and document.strip():
        return [], EMPTY_RESPONSE_ERROR

    operations = parse(block)
    if not operations and block.strip():
        return [], NO_OPERATIONS_ERROR
    return operations, None


def process_document(document: str, number: int, batch_id: Optional[str] = None) -> ResponseBatch:
    """
    解析文档并创建一个新的 ResponseBatch；所有条目初始状态为 PENDING_VALIDATION。
    """
    operations, parse_error = parse_response(document)
    items = [StatusedOperation(index=i, operation=op) for i, op in enumerate(operations)]
    return ResponseBatch(
        batch_id=batch_id or generate_batch_id(),
        number=number,
        raw_document=document,
        document_checksum=document_checksum(document),
        items=items,
        parse_error=parse_error,
    )
