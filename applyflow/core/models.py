# applyflow/core/models.py
"""
ApplyFlow 核心数据模型
定义了解析器输出的操作（Operation）、带状态的操作（StatusedOperation）以及响应批次（ResponseBatch）。
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Dict, Any, List, Optional, Union

# ==================== 操作类型 ====================

class EditMode(Enum):
    SEARCH_REPLACE = "search-replace"
    UNIFIED_DIFF = "unified-diff"


@dataclass(frozen=True)
class Timestamp:
    text: str
    kind = "timestamp"
    is_file_operation = False


@dataclass(frozen=True)
class ContextHash:
    text: str
    kind = "context_hash"
    is_file_operation = False


@dataclass(frozen=True)
class Plan:
    text: str
    kind = "plan"
    is_file_operation = False


@dataclass(frozen=True)
class Message:
    text: str
    purpose: Optional[str] = None  # user-action / info / commit
    kind = "message"
    is_file_operation = False


@dataclass(frozen=True)
class FileWrite:
    """整文件写入（创建或覆盖）"""
    path: str
    content: str
    reason: Optional[str] = None
    kind = "write"
    is_file_operation = True


@dataclass(frozen=True)
class FileEdit:
    """
    对已有文件的局部修改。
    SEARCH_REPLACE 模式下 search_text / replace_text 已解析并统一为 LF；
    UNIFIED_DIFF 模式下只保存 diff_content 原文。
    """
    path: str
    mode: EditMode
    diff_content: str
    search_text: Optional[str] = None
    replace_text: Optional[str] = None
    reason: Optional[str] = None
    kind = "edit"
    is_file_operation = True


@dataclass(frozen=True)
class FileDelete:
    path: str
    reason: Optional[str] = None
    kind = "delete"
    is_file_operation = True


@dataclass(frozen=True)
class FileRequest:
    """LLM 请求某个文件的内容，不产生文件系统副作用"""
    path: str
    kind = "request"
    is_file_operation = False


Operation = Union[Timestamp, ContextHash, Plan, Message, FileWrite, FileEdit, FileDelete, FileRequest]

_OPERATION_CLASSES = {
    cls.kind: cls
    for cls in (Timestamp, ContextHash, Plan, Message, FileWrite, FileEdit, FileDelete, FileRequest)
}


def operation_to_dict(op: Operation) -> Dict[str, Any]:
    data: Dict[str, Any] = {"kind": op.kind}
    for name in op.__dataclass_fields__:
        value = getattr(op, name)
        data[name] = value.value if isinstance(value, Enum) else value
    return data


def operation_from_dict(data: Dict[str, Any]) -> Operation:
    data = data.copy()
    kind = data.pop("kind", None)
    cls = _OPERATION_CLASSES.get(kind)
    if cls is None:
        raise ValueError(f"Unknown operation kind: {kind!r}")
    if cls is FileEdit:
        data["mode"] = EditMode(data["mode"])
    return cls(**data)


def operation_path(op: Operation) -> Optional[str]:
    return getattr(op, "path", None)


# ==================== 状态 ====================

class ApplyStatus(Enum):
    PENDING_VALIDATION = "pending_validation"
    VALIDATION_SUCCESS = "validation_success"
    VALIDATION_FAILED_NO_FILE = "validation_failed_no_file"
    VALIDATION_FAILED_SEARCH_NOT_FOUND = "validation_failed_search_not_found"
    VALIDATION_FAILED_IDENTICAL_CONTENT = "validation_failed_identical_content"
    VALIDATION_TOLERANT_MATCH_PENDING = "validation_tolerant_match_pending"
    APPLIED_SUCCESS = "applied_success"
    APPLIED_FAILED = "applied_failed"
    SKIPPED_BY_USER = "skipped_by_user"
    USER_RESOLVED = "user_resolved"


# 需要用户处理的状态
REVIEW_STATUSES = frozenset({
    ApplyStatus.VALIDATION_FAILED_NO_FILE,
    ApplyStatus.VALIDATION_FAILED_SEARCH_NOT_FOUND,
    ApplyStatus.VALIDATION_FAILED_IDENTICAL_CONTENT,
    ApplyStatus.VALIDATION_TOLERANT_MATCH_PENDING,
})

# apply 批处理时可以直接尝试的状态
APPLY_ELIGIBLE_STATUSES = frozenset({
    ApplyStatus.VALIDATION_SUCCESS,
    ApplyStatus.VALIDATION_TOLERANT_MATCH_PENDING,
})

TERMINAL_STATUSES = frozenset({
    ApplyStatus.APPLIED_SUCCESS,
    ApplyStatus.SKIPPED_BY_USER,
    ApplyStatus.USER_RESOLVED,
    ApplyStatus.APPLIED_FAILED,
})


@dataclass(frozen=True)
class StatusedOperation:
    index: int  # 解析时分配的条目编号，即在批次中的位置
    operation: Operation
    status: ApplyStatus = ApplyStatus.PENDING_VALIDATION
    error: Optional[str] = None
    failed_search_text: Optional[str] = None
    failed_replace_text: Optional[str] = None
    tolerant_match: bool = False  # 校验时曾宽松匹配成功

    @property
    def path(self) -> Optional[str]:
        return operation_path(self.operation)

    @property
    def is_file_operation(self) -> bool:
        return self.operation.is_file_operation

    def with_status(self, status: ApplyStatus, **changes: Any) -> 'StatusedOperation':
        return replace(self, status=status, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "operation": operation_to_dict(self.operation),
            "status": self.status.value,
            "error": self.error,
            "failed_search_text": self.failed_search_text,
            "failed_replace_text": self.failed_replace_text,
            "tolerant_match": self.tolerant_match,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StatusedOperation':
        return cls(
            index=data["index"],
            operation=operation_from_dict(data["operation"]),
            status=ApplyStatus(data.get("status", ApplyStatus.PENDING_VALIDATION.value)),
            error=data.get("error"),
            failed_search_text=data.get("failed_search_text"),
            failed_replace_text=data.get("failed_replace_text"),
            tolerant_match=bool(data.get("tolerant_match", False)),
        )


# ==================== 批次 ====================

@dataclass
class ResponseBatch:
    """一次 LLM 响应解析出的全部条目。创建后只允许逐条替换状态。"""
    batch_id: str
    number: int
    raw_document: str
    document_checksum: str
    items: List[StatusedOperation] = field(default_factory=list)
    parse_error: Optional[str] = None
    created_at: float = field(default_factory=lambda: datetime.now().timestamp())
    commit_message: Optional[str] = None

    @property
    def summary(self) -> str:
        # 每次都重新计算，不缓存
        from .summary import summarize_batch
        return summarize_batch(self).label

    def get_item(self, index: int) -> StatusedOperation:
        from .errors import ItemNotFound
        if index < 0 or index >= len(self.items):
            raise ItemNotFound(f"Batch #{self.number} has no item {index}")
        return self.items[index]

    def replace_item(self, item: StatusedOperation) -> None:
        self.items[item.index] = item

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "number": self.number,
            "raw_document": self.raw_document,
            "document_checksum": self.document_checksum,
            "items": [item.to_dict() for item in self.items],
            "parse_error": self.parse_error,
            "created_at": self.created_at,
            "commit_message": self.commit_message,
            "summary": self.summary,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ResponseBatch':
        data = data.copy()
        data.pop("summary", None)
        data["items"] = [StatusedOperation.from_dict(d) for d in data.get("items", [])]
        return cls(**data)
