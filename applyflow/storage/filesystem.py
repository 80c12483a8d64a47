# applyflow/storage/filesystem.py
"""
基于本地磁盘的文件系统协作者。
- 所有路径限制在 root 之内
- 读取时检查大小上限
- 写入先写临时文件再原子替换
- 阻塞 I/O 放到工作线程中执行
"""

import asyncio
import os
from pathlib import Path
from typing import Union

from .state import IFileSystem
from ..core.errors import FileAccessError, FileNotFoundInRoot, FileTooLarge, SandboxViolation

DEFAULT_MAX_FILE_SIZE = 100 * 1024


class LocalFileSystem(IFileSystem):
    def __init__(self, root: Union[str, Path] = ".", max_file_size: int = DEFAULT_MAX_FILE_SIZE):
        self.root = Path(root).resolve()
        self.max_file_size = max_file_size

    def resolve(self, path: str) -> Path:
        """把项目相对路径转换为绝对路径，越界时抛出 SandboxViolation"""
        relative = path.replace("\\", "/").lstrip("/")
        if not relative:
            raise SandboxViolation("Empty path", path=path)
        target = (self.root / relative).resolve()
        try:
            target.relative_to(self.root)
        except ValueError:
            raise SandboxViolation(f"Path escapes project root: {path}", path=path)
        return target

    # ---------- 同步实现 ----------

    def _exists(self, path: str) -> bool:
        return self.resolve(path).is_file()

    def _read(self, path: str) -> str:
        target = self.resolve(path)
        if not target.is_file():
            raise FileNotFoundInRoot(f"File not found: {path}", path=path)
        try:
            size = target.stat().st_size
            if size > self.max_file_size:
                raise FileTooLarge(
                    f"File too large: {path} ({size} bytes, limit {self.max_file_size})", path=path
                )
            return target.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise FileAccessError(f"Cannot read {path}: {e}", path=path)

    def _write(self, path: str, text: str) -> None:
        target = self.resolve(path)
        temp_file = target.with_name(f".{target.name}.tmp")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_file, "w", encoding="utf-8", newline="") as f:
                f.write(text)
            os.replace(temp_file, target)
        except OSError as e:
            temp_file.unlink(missing_ok=True)
            raise FileAccessError(f"Cannot write {path}: {e}", path=path)

    def _delete(self, path: str) -> None:
        target = self.resolve(path)
        if not target.is_file():
            raise FileNotFoundInRoot(f"File not found: {path}", path=path)
        try:
            target.unlink()
        except OSError as e:
            raise FileAccessError(f"Cannot delete {path}: {e}", path=path)

    # ---------- IFileSystem ----------

    async def exists(self, path: str) -> bool:
        return await asyncio.to_thread(self._exists, path)

    async def read(self, path: str) -> str:
        return await asyncio.to_thread(self._read, path)

    async def write(self, path: str, text: str) -> None:
        await asyncio.to_thread(self._write, path, text)

    async def delete(self, path: str) -> None:
        await asyncio.to_thread(self._delete, path)
