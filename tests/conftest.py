# tests/conftest.py
"""
ChatApply 测试配置和共享 fixtures
"""

import asyncio
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional, Set

import pytest

from applyflow.core.errors import FileAccessError, FileNotFoundInRoot, FileTooLarge
from applyflow.storage.state import IFileSystem


class FakeFileSystem(IFileSystem):
    """
    内存文件系统，记录每次调用，并可以为指定路径注入错误。
    """

    def __init__(self, files: Optional[Dict[str, str]] = None, max_file_size: int = 100 * 1024):
        self.files: Dict[str, str] = dict(files or {})
        self.max_file_size = max_file_size
        self.fail_writes: Set[str] = set()
        self.fail_reads: Set[str] = set()
        self.calls = []

    async def exists(self, path: str) -> bool:
        self.calls.append(("exists", path))
        return path in self.files

    async def read(self, path: str) -> str:
        self.calls.append(("read", path))
        if path in self.fail_reads:
            raise FileAccessError(f"Permission denied: {path}", path=path)
        if path not in self.files:
            raise FileNotFoundInRoot(f"File not found: {path}", path=path)
        content = self.files[path]
        if len(content.encode("utf-8")) > self.max_file_size:
            raise FileTooLarge(f"File too large: {path}", path=path)
        return content

    async def write(self, path: str, text: str) -> None:
        self.calls.append(("write", path))
        if path in self.fail_writes:
            raise FileAccessError(f"Disk full: {path}", path=path)
        self.files[path] = text

    async def delete(self, path: str) -> None:
        self.calls.append(("delete", path))
        if path not in self.files:
            raise FileNotFoundInRoot(f"File not found: {path}", path=path)
        del self.files[path]

    def writes(self):
        return [path for op, path in self.calls if op == "write"]


class GatedFileSystem(FakeFileSystem):
    """对指定路径的写入在 gate 打开前一直挂起"""

    def __init__(self, gated_path, files=None):
        super().__init__(files)
        self.gated_path = gated_path
        self.entered = asyncio.Event()
        self.gate = asyncio.Event()

    async def write(self, path, text):
        if path == self.gated_path:
            self.entered.set()
            await self.gate.wait()
        await super().write(path, text)


# --- Pytest Fixtures ---

@pytest.fixture(scope="session")
def anyio_backend():
    """为使用 anyio 的异步测试提供后端"""
    return 'asyncio'


@pytest.fixture(scope="function")
def isolated_filesystem():
    """
    提供一个隔离的临时目录并切换当前工作目录，测试结束后恢复。
    """
    with tempfile.TemporaryDirectory() as temp_dir:
        temp_path = Path(temp_dir)
        original_cwd = os.getcwd()
        os.chdir(temp_path)
        yield temp_path
        os.chdir(original_cwd)


@pytest.fixture
def fake_fs():
    """空的内存文件系统，测试中直接修改 fake_fs.files"""
    return FakeFileSystem()


@pytest.fixture
def orchestrator(fake_fs):
    from applyflow.core.orchestrator import ApplyOrchestrator
    return ApplyOrchestrator(fake_fs)


@pytest.fixture
def runner():
    """提供一个 Click CliRunner 实例用于测试 CLI 命令"""
    from click.testing import CliRunner
    return CliRunner()


@pytest.fixture(autouse=True)
def quiet_trace():
    """每个测试前后都关闭诊断输出"""
    from applyflow.utils.trace import set_verbose
    set_verbose(False)
    yield
    set_verbose(False)
