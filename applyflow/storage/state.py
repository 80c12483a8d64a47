# applyflow/storage/state.py
"""
ApplyFlow 外部协作者接口
- IFileSystem: 编排器读写目标文件树所需的最小接口
- IBatchStore: 响应批次的持久化接口
"""

from abc import ABC, abstractmethod
from typing import Callable, List, TypeVar

from .file_lock import FileLock
from ..core.models import ResponseBatch

T = TypeVar("T")


class IFileSystem(ABC):
    """所有路径都是项目相对、正斜杠分隔的字符串"""

    @abstractmethod
    async def exists(self, path: str) -> bool:
        pass

    @abstractmethod
    async def read(self, path: str) -> str:
        """不存在时抛出 FileNotFoundInRoot，超出大小上限抛出 FileTooLarge，其他错误抛出 FileAccessError"""
        pass

    @abstractmethod
    async def write(self, path: str, text: str) -> None:
        """需要时创建父目录"""
        pass

    @abstractmethod
    async def delete(self, path: str) -> None:
        """不存在时抛出 FileNotFoundInRoot"""
        pass


class IBatchStore(ABC):
    @abstractmethod
    def next_number(self) -> int:
        pass

    @abstractmethod
    def add(self, batch: ResponseBatch) -> None:
        pass

    @abstractmethod
    def save(self, batch: ResponseBatch) -> None:
        pass

    @abstractmethod
    def get(self, number: int) -> ResponseBatch:
        """不存在时抛出 BatchNotFound"""
        pass

    @abstractmethod
    def list(self) -> List[ResponseBatch]:
        """按创建顺序返回"""
        pass

    @abstractmethod
    def clear(self) -> None:
        pass

    @abstractmethod
    def update(self, number: int, mutate: Callable[[ResponseBatch], T]) -> T:
        """在存储锁内重新读取批次、调用 mutate 修改并保存，返回 mutate 的结果"""
        pass

    @abstractmethod
    def apply_lock(self, number: int) -> FileLock:
        """批次的应用锁，保证跨进程同一时间只有一个应用过程"""
        pass
