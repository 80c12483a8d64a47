# applyflow/storage/file_lock.py
"""
批次存储目录的跨进程互斥锁。

Unix 使用 fcntl.flock，Windows 使用 msvcrt.locking。
以上下文管理器方式使用，退出时总会释放锁并关闭锁文件。
"""

import sys
from pathlib import Path
from typing import Optional, TextIO, Union

from ..core.errors import FileAccessError

if sys.platform == "win32":
    import msvcrt
else:
    import fcntl


class FileLock:
    def __init__(self, lock_path: Union[str, Path]):
        self.lock_path = Path(lock_path)
        self._handle: Optional[TextIO] = None

    @property
    def is_held(self) -> bool:
        return self._handle is not None

    def acquire(self, blocking: bool = True) -> bool:
        """
        获取独占锁。blocking 为 False 时锁已被占用则立即返回 False。
        """
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        handle = open(self.lock_path, "a+")
        try:
            if sys.platform == "win32":
                handle.seek(0)
                msvcrt.locking(handle.fileno(), msvcrt.LK_LOCK if blocking else msvcrt.LK_NBLCK, 1)
            else:
                fcntl.flock(handle.fileno(), fcntl.LOCK_EX if blocking else fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError as e:
            handle.close()
            if not blocking and (isinstance(e, BlockingIOError) or sys.platform == "win32"):
                return False
            raise FileAccessError(f"Cannot acquire lock {self.lock_path}: {e}", path=str(self.lock_path))
        self._handle = handle
        return True

    def release(self) -> None:
        if self._handle is None:
            return
        try:
            if sys.platform == "win32":
                self._handle.seek(0)
                msvcrt.locking(self._handle.fileno(), msvcrt.LK_UNLCK, 1)
            else:
                fcntl.flock(self._handle.fileno(), fcntl.LOCK_UN)
        finally:
            self._handle.close()
            self._handle = None

    def __enter__(self) -> 'FileLock':
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
