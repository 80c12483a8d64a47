# chatapply/core/applier.py
from pathlib import Path
from typing import List, Optional, Tuple, Union

from applyflow.core.models import APPLY_ELIGIBLE_STATUSES, ApplyStatus, ResponseBatch, StatusedOperation
from applyflow.core.orchestrator import ActionResult, ApplyAllReport, ApplyOrchestrator, ApplyReport
from applyflow.core.parser import process_document
from applyflow.core.summary import describe_batch
from applyflow.storage.batch_store import FileBatchStore
from applyflow.storage.filesystem import LocalFileSystem
from applyflow.storage.state import IBatchStore, IFileSystem

from .config import STATE_DIR, ApplyConfig
from .prompt import render_request_full_files
from ..utils.console import error, info, success, warning

# 新响应加入时，上一个批次若仍有这些状态的条目则给出提示
_UNAPPLIED_STATUSES = frozenset({
    ApplyStatus.VALIDATION_SUCCESS,
    ApplyStatus.VALIDATION_FAILED_NO_FILE,
    ApplyStatus.VALIDATION_TOLERANT_MATCH_PENDING,
})


class Applier:
    """
    Applier 服务：把 applyflow 的编排器、批次存储和本地文件系统组合起来，
    负责输出结果并持久化每一次状态变化。
    """

    def __init__(
        self,
        config: Optional[ApplyConfig] = None,
        store: Optional[IBatchStore] = None,
        filesystem: Optional[IFileSystem] = None,
        state_dir: Union[str, Path] = STATE_DIR,
    ):
        """
        Args:
            config (ApplyConfig): 项目配置，为空时使用默认值。
            store (IBatchStore): 批次存储，默认使用 state_dir 下的 FileBatchStore。
            filesystem (IFileSystem): 目标文件树，默认使用 project_root 下的 LocalFileSystem。
        """
        self.config = config or ApplyConfig()
        self.store = store or FileBatchStore(state_dir)
        self.filesystem = filesystem or LocalFileSystem(self.config.project_root, self.config.max_file_size)
        self.orchestrator = ApplyOrchestrator(self.filesystem)

    # ---------- 响应处理 ----------

    async def process_response(self, text: str) -> ResponseBatch:
        """解析一份 LLM 响应，校验后作为新批次保存"""
        existing = self.store.list()
        if existing:
            last = existing[-1]
            if any(item.status in _UNAPPLIED_STATUSES for item in last.items):
                warning(f"Response #{last.number} has unapplied changes. Proceeding with new response.")

        batch = process_document(text, number=self.store.next_number())
        if not batch.parse_error:
            await self.orchestrator.validate_batch(batch)
        self.store.add(batch)

        if batch.parse_error:
            error(batch.parse_error)
        else:
            info(f"Response #{batch.number}: {describe_batch(batch)} [{batch.summary}]")
        return batch

    # ---------- 跨进程同步 ----------

    def _refresh_item(self, batch: ResponseBatch, index: int) -> StatusedOperation:
        """磁盘上的最新条目，其他进程的跳过/解决操作在这里生效"""
        return self.store.get(batch.number).get_item(index)

    def _persist_result(self, batch: ResponseBatch, outcome: ActionResult) -> None:
        """只把这一个条目的结果合并进磁盘上的批次"""
        if not outcome.changed:
            return

        def merge(stored: ResponseBatch) -> None:
            stored.replace_item(outcome.item)
            if batch.commit_message and not stored.commit_message:
                stored.commit_message = batch.commit_message

        self.store.update(batch.number, merge)

    async def _apply_locked(self, number: int) -> Tuple[ResponseBatch, ApplyReport]:
        lock = self.store.apply_lock(number)
        if not lock.acquire(blocking=False):
            return self.store.get(number), ApplyReport(batch_number=number, busy=True)
        try:
            batch = self.store.get(number)
            report = await self.orchestrator.apply_batch(
                batch, refresh=self._refresh_item, persist=self._persist_result
            )
        finally:
            lock.release()
        return self.store.get(number), report

    # ---------- 应用 ----------

    def _report_action(self, batch: ResponseBatch, outcome: ActionResult) -> None:
        item = outcome.item
        target = item.path or item.operation.kind
        if not outcome.changed:
            warning(f"Response #{batch.number} item {item.index}: {outcome.reason}")
        elif item.status is ApplyStatus.APPLIED_SUCCESS:
            if item.is_file_operation:
                success(f"{item.operation.kind.capitalize()}: {target}" + (f" ({item.error})" if item.error else ""))
        elif item.status is ApplyStatus.APPLIED_FAILED:
            error(f"Error applying change to {target}: {item.error}")
        elif item.status is ApplyStatus.VALIDATION_FAILED_SEARCH_NOT_FOUND:
            warning(f"Search text not found for {target}. Manual review needed.")
        elif item.status is ApplyStatus.VALIDATION_FAILED_IDENTICAL_CONTENT:
            info(f"Search and replace text are identical for {target}. No change applied.")

    def _report_batch(self, batch: ResponseBatch, report: ApplyReport) -> None:
        if report.busy:
            warning(f"Response #{batch.number} is already being applied.")
            return
        for outcome in report.results:
            self._report_action(batch, outcome)

        file_items = [item for item in batch.items if item.is_file_operation]
        all_done = all(
            item.status in (ApplyStatus.APPLIED_SUCCESS, ApplyStatus.SKIPPED_BY_USER) for item in file_items
        )
        applied = report.applied_paths
        if applied and all_done:
            success(f"Response #{batch.number}: All changes applied/skipped.")
        elif applied:
            warning(
                f"Applied {len(applied)} changes from Response #{batch.number}. Some items may require attention."
            )
        elif any(
            item.status in (ApplyStatus.APPLIED_FAILED, ApplyStatus.VALIDATION_FAILED_SEARCH_NOT_FOUND)
            for item in file_items
        ):
            warning(f"No changes applied from Response #{batch.number}. Review items with errors.")
        else:
            info(f"No changes applied from Response #{batch.number} or all were skipped/meta.")

        if batch.commit_message:
            info(f"Commit message: {batch.commit_message}")

    async def apply_batch(self, number: int) -> ApplyReport:
        batch, report = await self._apply_locked(number)
        self._report_batch(batch, report)
        return report

    async def apply_all(self, block_on_errors: Optional[bool] = None) -> ApplyAllReport:
        if block_on_errors is None:
            block_on_errors = self.config.block_apply_all_on_errors
        batches = self.store.list()
        if not batches:
            info("No responses to apply changes from.")
            return ApplyAllReport()

        if block_on_errors:
            blocker = self.orchestrator.blocking_batch(batches)
            if blocker is not None:
                error(f"Response #{blocker.number} has items with errors. Resolve or skip them before applying all.")
                return ApplyAllReport(blocked_by=blocker.number)

        report = ApplyAllReport()
        for batch in batches:
            if not any(item.status in APPLY_ELIGIBLE_STATUSES for item in batch.items):
                continue
            applied, batch_report = await self._apply_locked(batch.number)
            report.reports.append(batch_report)
            self._report_batch(applied, batch_report)

        if report.applied_any:
            success("Attempted to apply all valid changes across responses.")
        else:
            info("No pending valid changes found to apply across responses.")
        return report

    async def apply_single(self, number: int, index: int, force: bool = False) -> ActionResult:
        lock = self.store.apply_lock(number)
        if not lock.acquire(blocking=False):
            batch = self.store.get(number)
            outcome = ActionResult(
                item=batch.get_item(index),
                changed=False,
                reason=f"Response #{number} is already being applied.",
            )
        else:
            try:
                batch = self.store.get(number)
                outcome = await self.orchestrator.apply_item(batch, index, force=force)
                self._persist_result(batch, outcome)
            finally:
                lock.release()
        self._report_action(batch, outcome)
        return outcome

    # ---------- 用户决策 ----------

    def skip(self, number: int, index: int) -> ActionResult:
        outcome = self.store.update(number, lambda batch: self.orchestrator.skip_item(batch, index))
        if outcome.changed:
            info(f"Skipped change for {outcome.item.path or 'item'} in Response #{number}")
        else:
            warning(outcome.reason)
        return outcome

    def resolve(self, number: int, index: int) -> ActionResult:
        outcome = self.store.update(number, lambda batch: self.orchestrator.resolve_item(batch, index))
        if outcome.changed:
            info(f"Marked change for {outcome.item.path or 'item'} as resolved in Response #{number}")
        else:
            warning(outcome.reason)
        return outcome

    def request_full_files_prompt(self, number: int) -> str:
        prompt = render_request_full_files(self.store.get(number))
        if not prompt:
            info("No failed search/replace blocks found in this response to request full files for.")
        return prompt

    # ---------- 查询 ----------

    def list_batches(self) -> List[ResponseBatch]:
        return self.store.list()

    def get_batch(self, number: int) -> ResponseBatch:
        return self.store.get(number)

    def clear_all(self) -> None:
        self.store.clear()
        info("All responses cleared.")
