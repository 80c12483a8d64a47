# applyflow/core/summary.py
"""
批次汇总。所有结果都由当前条目列表即时计算，不保存独立状态。
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, TYPE_CHECKING

from .models import ApplyStatus, REVIEW_STATUSES, StatusedOperation

if TYPE_CHECKING:
    from .models import ResponseBatch

MAX_DESCRIPTION_LENGTH = 70


class SummaryKind(Enum):
    NO_CHANGES = "No Changes"
    META_ONLY = "Meta Only"
    NO_FILE_CHANGES = "No File Changes"
    PENDING = "Pending"
    ALL_APPLIED = "All Applied"
    APPLIED_AND_SKIPPED = "Applied & Skipped"
    REVIEW_NEEDED = "Review Needed"
    APPLIED_WITH_ERRORS = "Applied With Errors"
    PARTIALLY_APPLIED = "Partially Applied"
    ALL_SKIPPED = "All Skipped"
    PARSE_ERROR = "Parse Error"


@dataclass(frozen=True)
class BatchSummary:
    kind: SummaryKind
    applied: int = 0
    total: int = 0
    errors: int = 0

    @property
    def label(self) -> str:
        if self.kind is SummaryKind.APPLIED_WITH_ERRORS:
            return f"Applied {self.applied}/{self.total} (Errors: {self.errors})"
        if self.kind is SummaryKind.PARTIALLY_APPLIED:
            return f"Applied {self.applied}/{self.total}"
        return self.kind.value

    @property
    def has_errors(self) -> bool:
        return self.kind in (SummaryKind.APPLIED_WITH_ERRORS, SummaryKind.REVIEW_NEEDED, SummaryKind.PARSE_ERROR)


def summarize_items(items: Iterable[StatusedOperation]) -> BatchSummary:
    items = list(items)
    if not items:
        return BatchSummary(SummaryKind.NO_CHANGES)

    file_ops = [item for item in items if item.is_file_operation]
    if not file_ops:
        if any(item.operation.kind in ("timestamp", "context_hash", "plan", "message") for item in items):
            return BatchSummary(SummaryKind.META_ONLY)
        return BatchSummary(SummaryKind.NO_FILE_CHANGES)

    total = len(file_ops)
    statuses = [item.status for item in file_ops]
    applied = sum(1 for s in statuses if s in (ApplyStatus.APPLIED_SUCCESS, ApplyStatus.USER_RESOLVED))
    skipped = statuses.count(ApplyStatus.SKIPPED_BY_USER)
    failed = statuses.count(ApplyStatus.APPLIED_FAILED)

    if any(s in REVIEW_STATUSES for s in statuses):
        return BatchSummary(SummaryKind.REVIEW_NEEDED, applied, total, failed)
    if all(s in (ApplyStatus.VALIDATION_SUCCESS, ApplyStatus.PENDING_VALIDATION) for s in statuses):
        return BatchSummary(SummaryKind.PENDING, 0, total)
    if applied == total:
        return BatchSummary(SummaryKind.ALL_APPLIED, applied, total)
    if applied > 0 and applied + skipped == total:
        return BatchSummary(SummaryKind.APPLIED_AND_SKIPPED, applied, total)
    if failed > 0:
        return BatchSummary(SummaryKind.APPLIED_WITH_ERRORS, applied, total, failed)
    if applied > 0:
        return BatchSummary(SummaryKind.PARTIALLY_APPLIED, applied, total)
    if skipped == total:
        return BatchSummary(SummaryKind.ALL_SKIPPED, 0, total)
    return BatchSummary(SummaryKind.REVIEW_NEEDED, applied, total, failed)


def summarize(items: Iterable[StatusedOperation]) -> str:
    """返回批次汇总标签，例如 "All Applied" 或 "Applied 1/3 (Errors: 1)" """
    return summarize_items(items).label


def summarize_batch(batch: 'ResponseBatch') -> BatchSummary:
    if batch.parse_error:
        return BatchSummary(SummaryKind.PARSE_ERROR)
    return summarize_items(batch.items)


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}{'s' if count > 1 else ''}"


def describe_items(items: List[StatusedOperation], parse_error: Optional[str] = None) -> str:
    """批次内容的简短描述，例如 "Timestamp • 1 Plan • 3 File Ops" """
    if parse_error:
        return "Error parsing response"

    kinds = [item.operation.kind for item in items]
    file_ops = sum(1 for item in items if item.is_file_operation)
    plans = kinds.count("plan")
    messages = kinds.count("message")

    parts = []
    if "timestamp" in kinds:
        parts.append("Timestamp")
    if plans:
        parts.append(_plural(plans, "Plan"))
    if file_ops:
        parts.append(_plural(file_ops, "File Op"))
    if messages:
        parts.append(_plural(messages, "Message"))

    text = " • ".join(parts) if parts else "No actionable changes"
    if len(text) > MAX_DESCRIPTION_LENGTH:
        text = text[:MAX_DESCRIPTION_LENGTH - 3] + "..."
    return text


def describe_batch(batch: 'ResponseBatch') -> str:
    return describe_items(batch.items, batch.parse_error)
