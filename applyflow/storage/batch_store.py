# applyflow/storage/batch_store.py
"""
基于文件系统的批次存储 (FileBatchStore)

目录结构：
    <base_dir>/batches/<number>.json   每个批次的完整数据
    <base_dir>/.indexes/batch_index.json   编号 -> 摘要信息，用于快速列表
    <base_dir>/.locks/batches.lock
"""

import json
from pathlib import Path
from typing import Any, Callable, Dict, List, Union

from .file_lock import FileLock
from .state import IBatchStore, T
from ..core.errors import BatchNotFound, FileAccessError
from ..core.models import ResponseBatch
from ..core.summary import describe_batch
from ..utils.trace import trace


def _atomic_write_json(target: Path, data: Any) -> None:
    temp_file = target.with_suffix(".json.tmp")
    try:
        temp_file.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        temp_file.replace(target)
    except OSError:
        temp_file.unlink(missing_ok=True)
        raise


class FileBatchStore(IBatchStore):
    def __init__(self, base_dir: Union[str, Path] = ".chatapply"):
        self.base_dir = Path(base_dir).resolve()
        self.batches_dir = self.base_dir / "batches"
        self.indexes_dir = self.base_dir / ".indexes"
        self.locks_dir = self.base_dir / ".locks"

        for dir_path in (self.batches_dir, self.indexes_dir, self.locks_dir):
            dir_path.mkdir(parents=True, exist_ok=True)

        self.index_file = self.indexes_dir / "batch_index.json"
        self._lock = FileLock(self.locks_dir / "batches.lock")

    # ---------- 索引 ----------

    def _load_index(self) -> Dict[str, Dict[str, Any]]:
        if not self.index_file.exists():
            return {}
        try:
            return json.loads(self.index_file.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            trace("batch-store", f"Index unreadable, rebuilding: {e}")
            return self._rebuild_index()

    def _rebuild_index(self) -> Dict[str, Dict[str, Any]]:
        index = {}
        for batch_file in self.batches_dir.glob("*.json"):
            try:
                batch = ResponseBatch.from_dict(json.loads(batch_file.read_text(encoding="utf-8")))
            except (OSError, ValueError, KeyError, TypeError) as e:
                trace("batch-store", f"Skipping unreadable batch file {batch_file.name}: {e}")
                continue
            index[str(batch.number)] = self._index_entry(batch)
        return index

    @staticmethod
    def _index_entry(batch: ResponseBatch) -> Dict[str, Any]:
        return {
            "batch_id": batch.batch_id,
            "summary": batch.summary,
            "description": describe_batch(batch),
            "created_at": batch.created_at,
        }

    def _batch_file(self, number: int) -> Path:
        return self.batches_dir / f"{number}.json"

    # ---------- IBatchStore ----------

    def next_number(self) -> int:
        index = self._load_index()
        return max((int(n) for n in index), default=0) + 1

    def add(self, batch: ResponseBatch) -> None:
        with self._lock:
            if self._batch_file(batch.number).exists():
                raise FileAccessError(f"Batch #{batch.number} already exists", path=str(self._batch_file(batch.number)))
            self._write(batch)

    def save(self, batch: ResponseBatch) -> None:
        with self._lock:
            self._write(batch)

    def update(self, number: int, mutate: Callable[[ResponseBatch], T]) -> T:
        with self._lock:
            batch = self.get(number)
            result = mutate(batch)
            self._write(batch)
        return result

    def apply_lock(self, number: int) -> FileLock:
        return FileLock(self.locks_dir / f"apply_{number}.lock")

    def _write(self, batch: ResponseBatch) -> None:
        _atomic_write_json(self._batch_file(batch.number), batch.to_dict())
        index = self._load_index()
        index[str(batch.number)] = self._index_entry(batch)
        _atomic_write_json(self.index_file, index)

    def get(self, number: int) -> ResponseBatch:
        batch_file = self._batch_file(number)
        if not batch_file.exists():
            raise BatchNotFound(f"Batch #{number} not found")
        try:
            return ResponseBatch.from_dict(json.loads(batch_file.read_text(encoding="utf-8")))
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise FileAccessError(f"Cannot load batch #{number}: {e}", path=str(batch_file))

    def list(self) -> List[ResponseBatch]:
        numbers = sorted(int(n) for n in self._load_index())
        return [self.get(n) for n in numbers]

    def list_index(self) -> List[Dict[str, Any]]:
        """只读取索引，不加载完整批次"""
        index = self._load_index()
        return [dict(number=int(n), **index[n]) for n in sorted(index, key=int)]

    def clear(self) -> None:
        with self._lock:
            for batch_file in self.batches_dir.glob("*.json"):
                batch_file.unlink()
            self.index_file.unlink(missing_ok=True)
