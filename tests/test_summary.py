# tests/test_summary.py
import pytest

from applyflow.core.models import (
    ApplyStatus as S, FileDelete, FileRequest, FileWrite, Message, Plan, ResponseBatch,
    StatusedOperation, Timestamp,
)
from applyflow.core.summary import describe_batch, describe_items, summarize, summarize_batch


def _file_items(*statuses):
    return [
        StatusedOperation(index=i, operation=FileWrite(path=f"f{i}.txt", content=""), status=status)
        for i, status in enumerate(statuses)
    ]


def _with_meta(items):
    meta = StatusedOperation(index=len(items), operation=Plan(text="p"), status=S.APPLIED_SUCCESS)
    return items + [meta]


@pytest.mark.parametrize("statuses, label", [
    ([S.VALIDATION_SUCCESS, S.VALIDATION_SUCCESS], "Pending"),
    ([S.APPLIED_SUCCESS, S.USER_RESOLVED], "All Applied"),
    ([S.APPLIED_SUCCESS, S.SKIPPED_BY_USER], "Applied & Skipped"),
    ([S.APPLIED_SUCCESS, S.VALIDATION_FAILED_NO_FILE], "Review Needed"),
    ([S.VALIDATION_TOLERANT_MATCH_PENDING], "Review Needed"),
    ([S.APPLIED_SUCCESS, S.APPLIED_FAILED, S.VALIDATION_SUCCESS], "Applied 1/3 (Errors: 1)"),
    ([S.APPLIED_SUCCESS, S.VALIDATION_SUCCESS], "Applied 1/2"),
    ([S.SKIPPED_BY_USER, S.SKIPPED_BY_USER], "All Skipped"),
    ([S.APPLIED_FAILED], "Applied 0/1 (Errors: 1)"),
])
def test_file_operation_labels(statuses, label):
    assert summarize(_file_items(*statuses)) == label
    # 非文件条目不影响结果
    assert summarize(_with_meta(_file_items(*statuses))) == label


def test_no_changes():
    assert summarize([]) == "No Changes"


def test_meta_only_and_requests():
    meta = [StatusedOperation(index=0, operation=Message(text="hi"), status=S.VALIDATION_SUCCESS)]
    assert summarize(meta) == "Meta Only"
    requests = [StatusedOperation(index=0, operation=FileRequest(path="a.py"))]
    assert summarize(requests) == "No File Changes"


def _batch(items, parse_error=None):
    return ResponseBatch(
        batch_id="b1", number=1, raw_document="", document_checksum="", items=items, parse_error=parse_error,
    )


def test_summarize_batch_with_parse_error():
    summary = summarize_batch(_batch([], parse_error="boom"))
    assert summary.label == "Parse Error"
    assert summary.has_errors


def test_summary_is_recomputed_after_mutation():
    batch = _batch(_file_items(S.VALIDATION_SUCCESS))
    assert batch.summary == "Pending"
    batch.replace_item(batch.items[0].with_status(S.APPLIED_SUCCESS))
    assert batch.summary == "All Applied"


def test_describe_items():
    items = [
        StatusedOperation(index=0, operation=Timestamp(text="t")),
        StatusedOperation(index=1, operation=Plan(text="p")),
        StatusedOperation(index=2, operation=FileWrite(path="a", content="")),
        StatusedOperation(index=3, operation=FileDelete(path="b")),
        StatusedOperation(index=4, operation=FileWrite(path="c", content="")),
        StatusedOperation(index=5, operation=Message(text="m")),
        StatusedOperation(index=6, operation=FileRequest(path="d")),
    ]
    assert describe_items(items) == "Timestamp • 1 Plan • 3 File Ops • 1 Message"
    assert describe_items(items[2:3]) == "1 File Op"
    assert describe_items([]) == "No actionable changes"
    assert describe_batch(_batch(items, parse_error="x")) == "Error parsing response"
