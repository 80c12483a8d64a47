# applyflow/core/orchestrator.py
"""
校验与应用编排器 (ApplyOrchestrator)

- 校验：不同路径的条目并发校验（只读）；同一路径的条目按顺序基于模拟内容做 dry run
- 应用：按文档顺序逐条执行，每次执行前重新读取文件内容
- 单条操作：强制应用、跳过、标记已解决
- 每个批次同一时间只允许一个应用过程

所有入口都不会因 I/O 或补丁错误抛出异常，结果总是体现在条目状态上。
"""

import asyncio
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

from .diff_engine import FailureKind, apply_edit, apply_search_replace
from .errors import ApplyFlowError, FileNotFoundInRoot, PatchApplyError
from .models import (
    APPLY_ELIGIBLE_STATUSES, REVIEW_STATUSES, ApplyStatus, EditMode, FileDelete, FileEdit,
    FileWrite, Message, Operation, ResponseBatch, StatusedOperation,
)
from .summary import summarize_batch
from .tolerant import is_tolerant_match
from .transitions import can_transition
from ..storage.state import IFileSystem
from ..utils.trace import trace

SEARCH_NOT_FOUND_ERROR = "The specified search block was not found in the file."
SEARCH_NOT_FOUND_VALIDATION_ERROR = (
    "The specified search block was not found in the file (strict and tolerant checks)."
)
TOLERANT_PENDING_ERROR = "Tolerant match found, strict apply will be attempted."
TOLERANT_FAILED_ERROR = (
    "A tolerant match (ignoring comments and whitespace) exists, "
    "but the search block was not found verbatim. Strict apply failed."
)
IDENTICAL_CONTENT_ERROR = "The search text and replace text are identical. No change needed."
RESOLVED_NOTE = "Manually resolved by user"


@dataclass(frozen=True)
class ActionResult:
    """单条操作的结果。changed 为 False 时 item 是未修改的原条目，reason 说明原因。"""
    item: StatusedOperation
    changed: bool = True
    reason: Optional[str] = None


@dataclass
class ApplyReport:
    batch_number: int
    busy: bool = False
    results: List[ActionResult] = field(default_factory=list)

    @property
    def applied_paths(self) -> List[str]:
        return [
            r.item.path for r in self.results
            if r.changed and r.item.is_file_operation and r.item.status is ApplyStatus.APPLIED_SUCCESS
        ]

    @property
    def attempted(self) -> int:
        return len(self.results)


@dataclass
class ApplyAllReport:
    reports: List[ApplyReport] = field(default_factory=list)
    blocked_by: Optional[int] = None  # 阻止整体应用的批次编号

    @property
    def applied_any(self) -> bool:
        return any(report.applied_paths for report in self.reports)


def has_error_items(batch: ResponseBatch) -> bool:
    """批次中是否有需要处理的失败条目（校验失败或应用失败）"""
    if batch.parse_error:
        return True
    return any(
        item.is_file_operation
        and (item.status in REVIEW_STATUSES or item.status is ApplyStatus.APPLIED_FAILED)
        for item in batch.items
    )


class ApplyOrchestrator:
    def __init__(self, filesystem: IFileSystem):
        self.filesystem = filesystem
        self._running: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, batch: ResponseBatch) -> asyncio.Lock:
        lock = self._running.get(batch.batch_id)
        if lock is None:
            lock = self._running[batch.batch_id] = asyncio.Lock()
        return lock

    def is_busy(self, batch: ResponseBatch) -> bool:
        lock = self._running.get(batch.batch_id)
        return lock is not None and lock.locked()

    # ==================== 校验 ====================

    async def _validate_path(self, items: List[StatusedOperation]) -> List[StatusedOperation]:
        """
        按文档顺序校验同一路径上的条目。
        前面的条目校验通过后，后面的条目基于模拟出的新内容做 dry run。
        """
        path = items[0].path
        try:
            exists = await self.filesystem.exists(path)
        except Exception as e:
            message = e.message if isinstance(e, ApplyFlowError) else str(e)
            trace("orchestrator", f"Validation of '{path}' failed: {message}")
            return [
                item.with_status(ApplyStatus.APPLIED_FAILED, error=f"Error checking file for validation: {message}")
                for item in items
            ]

        content: Optional[str] = None
        read_error: Optional[str] = None
        if exists and any(isinstance(item.operation, FileEdit) for item in items):
            try:
                content = await self.filesystem.read(path)
            except Exception as e:
                read_error = e.message if isinstance(e, ApplyFlowError) else str(e)
                trace("orchestrator", f"Reading '{path}' for validation failed: {read_error}")

        results = []
        for item in items:
            op = item.operation
            if isinstance(op, FileWrite):
                results.append(item.with_status(ApplyStatus.VALIDATION_SUCCESS))
                exists, content, read_error = True, op.content, None
            elif isinstance(op, FileDelete):
                if not exists:
                    results.append(item.with_status(
                        ApplyStatus.VALIDATION_FAILED_NO_FILE, error=f"File not found: {path}"
                    ))
                else:
                    results.append(item.with_status(ApplyStatus.VALIDATION_SUCCESS))
                    exists, content = False, None
            elif not exists:
                results.append(item.with_status(
                    ApplyStatus.VALIDATION_FAILED_NO_FILE, error=f"File not found: {path}"
                ))
            elif read_error is not None:
                results.append(item.with_status(
                    ApplyStatus.APPLIED_FAILED, error=f"Error reading file for validation: {read_error}"
                ))
            elif op.mode is EditMode.SEARCH_REPLACE:
                validated = self._classify_dry_run(item, op, content)
                results.append(validated)
                if validated.status is ApplyStatus.VALIDATION_SUCCESS:
                    content = apply_search_replace(content, op.search_text or "", op.replace_text or "").content
            else:
                # unified diff 只检查文件存在；模拟失败时保持内容不变
                results.append(item.with_status(ApplyStatus.VALIDATION_SUCCESS))
                try:
                    content = apply_edit(content, op).content
                except PatchApplyError as e:
                    trace("orchestrator", f"Diff for item {item.index} does not apply yet: {e.message}")
        return results

    def _classify_dry_run(self, item: StatusedOperation, op: FileEdit, content: str) -> StatusedOperation:
        search = op.search_text or ""
        replace = op.replace_text or ""
        result = apply_search_replace(content, search, replace)
        if result.ok:
            return item.with_status(ApplyStatus.VALIDATION_SUCCESS)

        failed = dict(failed_search_text=search, failed_replace_text=replace)
        if result.failure is FailureKind.IDENTICAL_CONTENT:
            return item.with_status(
                ApplyStatus.VALIDATION_FAILED_IDENTICAL_CONTENT, error=IDENTICAL_CONTENT_ERROR, **failed
            )
        if is_tolerant_match(content, search):
            return item.with_status(
                ApplyStatus.VALIDATION_TOLERANT_MATCH_PENDING,
                error=TOLERANT_PENDING_ERROR,
                tolerant_match=True,
                **failed,
            )
        return item.with_status(
            ApplyStatus.VALIDATION_FAILED_SEARCH_NOT_FOUND, error=SEARCH_NOT_FOUND_VALIDATION_ERROR, **failed
        )

    async def validate_items(self, items: Iterable[StatusedOperation]) -> List[StatusedOperation]:
        """
        校验一组条目并按原顺序返回新条目。
        非文件条目直接通过；不同路径的文件条目并发校验（只读）。
        """
        items = list(items)
        by_path: Dict[str, List[StatusedOperation]] = {}
        validated: Dict[int, StatusedOperation] = {}
        for item in items:
            if item.is_file_operation:
                by_path.setdefault(item.path, []).append(item)
            else:
                validated[item.index] = item.with_status(ApplyStatus.VALIDATION_SUCCESS)

        chains = await asyncio.gather(*(self._validate_path(group) for group in by_path.values()))
        for chain in chains:
            for item in chain:
                validated[item.index] = item
        return [validated[item.index] for item in items]

    async def validate_item(self, item: StatusedOperation) -> StatusedOperation:
        return (await self.validate_items([item]))[0]

    async def validate_operations(self, operations: Iterable[Operation]) -> List[StatusedOperation]:
        return await self.validate_items(
            StatusedOperation(index=i, operation=op) for i, op in enumerate(operations)
        )

    async def validate_batch(self, batch: ResponseBatch) -> List[StatusedOperation]:
        """校验批次中所有 PENDING_VALIDATION 条目，结果写回批次"""
        pending = [item for item in batch.items if item.status is ApplyStatus.PENDING_VALIDATION]
        for item in await self.validate_items(pending):
            batch.replace_item(item)
        trace("orchestrator", f"Validated {len(pending)} item(s) of batch #{batch.number}: {batch.summary}")
        return batch.items

    # ==================== 执行 ====================

    async def _execute(self, item: StatusedOperation, force: bool) -> StatusedOperation:
        """真正执行一次操作并返回结果条目，不检查状态迁移"""
        op = item.operation
        applied = dict(error=None, failed_search_text=None, failed_replace_text=None)

        if not op.is_file_operation:
            return item.with_status(ApplyStatus.APPLIED_SUCCESS, **applied)

        try:
            if isinstance(op, FileWrite):
                await self.filesystem.write(op.path, op.content)
                return item.with_status(ApplyStatus.APPLIED_SUCCESS, **applied)

            if isinstance(op, FileDelete):
                try:
                    await self.filesystem.delete(op.path)
                except FileNotFoundInRoot:
                    if not force:
                        raise
                    return item.with_status(
                        ApplyStatus.APPLIED_SUCCESS, error=f"File already absent: {op.path}",
                        failed_search_text=None, failed_replace_text=None,
                    )
                return item.with_status(ApplyStatus.APPLIED_SUCCESS, **applied)

            return await self._execute_edit(item, op, force)
        except Exception as e:
            message = e.message if isinstance(e, ApplyFlowError) else str(e)
            trace("orchestrator", f"Applying item {item.index} ({op.path}) failed: {message}")
            return item.with_status(ApplyStatus.APPLIED_FAILED, error=message)

    async def _execute_edit(self, item: StatusedOperation, op: FileEdit, force: bool) -> StatusedOperation:
        try:
            content = await self.filesystem.read(op.path)
        except FileNotFoundInRoot:
            if not force:
                raise
            # 强制应用：目标文件不存在时按新文件处理
            if op.mode is EditMode.SEARCH_REPLACE:
                await self.filesystem.write(op.path, op.replace_text or "")
                return item.with_status(
                    ApplyStatus.APPLIED_SUCCESS, error=None, failed_search_text=None, failed_replace_text=None
                )
            content = ""

        result = apply_edit(content, op)
        if not result.ok:
            failed = dict(failed_search_text=op.search_text, failed_replace_text=op.replace_text)
            if result.failure is FailureKind.IDENTICAL_CONTENT:
                return item.with_status(
                    ApplyStatus.VALIDATION_FAILED_IDENTICAL_CONTENT, error=IDENTICAL_CONTENT_ERROR, **failed
                )
            error = TOLERANT_FAILED_ERROR if item.tolerant_match else SEARCH_NOT_FOUND_ERROR
            return item.with_status(ApplyStatus.VALIDATION_FAILED_SEARCH_NOT_FOUND, error=error, **failed)

        await self.filesystem.write(op.path, result.content)
        return item.with_status(
            ApplyStatus.APPLIED_SUCCESS, error=None, failed_search_text=None, failed_replace_text=None
        )

    def _refuse(self, item: StatusedOperation, reason: str) -> ActionResult:
        trace("orchestrator", f"Refused action on item {item.index} ({item.status.value}): {reason}")
        return ActionResult(item=item, changed=False, reason=reason)

    async def apply_operation(self, item: StatusedOperation, force: bool = False) -> ActionResult:
        """
        对单个条目执行应用。
        非强制时只有可以直接迁移到 APPLIED_SUCCESS 的状态才会执行，避免产生不被允许的副作用。
        """
        if not can_transition(item.status, ApplyStatus.APPLIED_SUCCESS, forced=force):
            if can_transition(item.status, ApplyStatus.APPLIED_SUCCESS, forced=True):
                return self._refuse(item, f"Item is {item.status.value}; use force to apply it.")
            return self._refuse(item, f"Item in status {item.status.value} cannot be applied.")

        result = await self._execute(item, force)
        if not can_transition(item.status, result.status, forced=force):
            return self._refuse(item, f"Transition {item.status.value} -> {result.status.value} is not allowed.")
        return ActionResult(item=result)

    async def _apply_in_batch(self, batch: ResponseBatch, item: StatusedOperation, force: bool) -> ActionResult:
        outcome = await self.apply_operation(item, force=force)
        if not outcome.changed:
            return outcome
        updated = outcome.item
        batch.replace_item(updated)
        op = updated.operation
        if (
            isinstance(op, Message)
            and op.purpose == "commit"
            and updated.status is ApplyStatus.APPLIED_SUCCESS
            and not batch.commit_message
        ):
            batch.commit_message = op.text
        return outcome

    async def apply_item(self, batch: ResponseBatch, index: int, force: bool = False) -> ActionResult:
        """应用批次中的单个条目（强制应用也走这里）"""
        item = batch.get_item(index)
        if self.is_busy(batch):
            return self._refuse(item, f"Batch #{batch.number} is already being applied.")
        async with self._lock_for(batch):
            return await self._apply_in_batch(batch, item, force)

    async def apply_batch(
        self,
        batch: ResponseBatch,
        refresh: Optional[Callable[[ResponseBatch, int], StatusedOperation]] = None,
        persist: Optional[Callable[[ResponseBatch, ActionResult], None]] = None,
    ) -> ApplyReport:
        """
        按文档顺序应用所有 VALIDATION_SUCCESS / VALIDATION_TOLERANT_MATCH_PENDING 条目。
        同一批次已有应用过程在运行时立即返回 busy 报告。

        refresh(batch, index) 在处理每个条目前返回它的最新状态（例如其他进程的跳过操作），
        persist(batch, result) 在每个条目处理后保存结果。
        """
        report = ApplyReport(batch_number=batch.number)
        lock = self._lock_for(batch)
        if lock.locked():
            trace("orchestrator", f"Batch #{batch.number} is busy, apply request ignored.")
            report.busy = True
            return report

        async with lock:
            for index in range(len(batch.items)):
                # 每次都取最新条目，运行期间的跳过操作会生效
                if refresh is not None:
                    batch.replace_item(refresh(batch, index))
                item = batch.items[index]
                if item.status not in APPLY_ELIGIBLE_STATUSES:
                    continue
                outcome = await self._apply_in_batch(batch, item, force=False)
                report.results.append(outcome)
                if persist is not None:
                    persist(batch, outcome)

        trace("orchestrator", f"Batch #{batch.number} apply finished: {batch.summary}")
        return report

    def blocking_batch(self, batches: Iterable[ResponseBatch]) -> Optional[ResponseBatch]:
        """按创建顺序返回第一个带失败条目的批次"""
        for batch in sorted(batches, key=lambda b: b.number):
            if has_error_items(batch):
                trace("orchestrator", f"Apply all blocked by batch #{batch.number} ({summarize_batch(batch).label}).")
                return batch
        return None

    async def apply_all(self, batches: Iterable[ResponseBatch], block_on_errors: bool = False) -> ApplyAllReport:
        """按创建顺序应用所有批次；block_on_errors 时任何批次有失败条目都不执行"""
        ordered = sorted(batches, key=lambda b: b.number)
        report = ApplyAllReport()
        if block_on_errors:
            blocker = self.blocking_batch(ordered)
            if blocker is not None:
                report.blocked_by = blocker.number
                return report

        for batch in ordered:
            if any(item.status in APPLY_ELIGIBLE_STATUSES for item in batch.items):
                report.reports.append(await self.apply_batch(batch))
        return report

    # ==================== 用户决策 ====================

    def _set_status(self, batch: ResponseBatch, index: int, status: ApplyStatus, **changes) -> ActionResult:
        item = batch.get_item(index)
        if not can_transition(item.status, status):
            return self._refuse(item, f"Cannot move item from {item.status.value} to {status.value}.")
        updated = item.with_status(status, **changes)
        batch.replace_item(updated)
        return ActionResult(item=updated)

    def skip_item(self, batch: ResponseBatch, index: int) -> ActionResult:
        return self._set_status(batch, index, ApplyStatus.SKIPPED_BY_USER)

    def resolve_item(self, batch: ResponseBatch, index: int) -> ActionResult:
        """用户已在外部手动修复，标记为已解决"""
        item = batch.get_item(index)
        error = f"{item.error} ({RESOLVED_NOTE})" if item.error else RESOLVED_NOTE
        return self._set_status(batch, index, ApplyStatus.USER_RESOLVED, error=error)
