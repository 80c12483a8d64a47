# tests/test_filesystem.py
import pytest

from applyflow.core.errors import FileNotFoundInRoot, FileTooLarge, SandboxViolation
from applyflow.storage.filesystem import LocalFileSystem

pytestmark = pytest.mark.anyio


async def test_write_creates_parent_directories(tmp_path):
    fs = LocalFileSystem(tmp_path)
    await fs.write("src/pkg/mod.py", "x = 1\n")
    assert (tmp_path / "src" / "pkg" / "mod.py").read_text(encoding="utf-8") == "x = 1\n"
    assert await fs.exists("src/pkg/mod.py")
    # 临时文件不会残留
    assert not list((tmp_path / "src" / "pkg").glob("*.tmp"))


async def test_write_preserves_line_endings(tmp_path):
    fs = LocalFileSystem(tmp_path)
    await fs.write("crlf.txt", "a\r\nb\r\n")
    assert (tmp_path / "crlf.txt").read_bytes() == b"a\r\nb\r\n"


async def test_read_and_delete(tmp_path):
    (tmp_path / "a.txt").write_text("hello", encoding="utf-8")
    fs = LocalFileSystem(tmp_path)
    assert await fs.read("a.txt") == "hello"
    await fs.delete("a.txt")
    assert not await fs.exists("a.txt")


async def test_missing_file(tmp_path):
    fs = LocalFileSystem(tmp_path)
    assert not await fs.exists("nope.txt")
    with pytest.raises(FileNotFoundInRoot):
        await fs.read("nope.txt")
    with pytest.raises(FileNotFoundInRoot):
        await fs.delete("nope.txt")


async def test_directory_is_not_a_file(tmp_path):
    (tmp_path / "dir").mkdir()
    fs = LocalFileSystem(tmp_path)
    assert not await fs.exists("dir")


async def test_size_limit(tmp_path):
    (tmp_path / "big.txt").write_text("x" * 20, encoding="utf-8")
    fs = LocalFileSystem(tmp_path, max_file_size=10)
    with pytest.raises(FileTooLarge) as exc_info:
        await fs.read("big.txt")
    assert "big.txt" in exc_info.value.message


@pytest.mark.parametrize("path", ["../outside.txt", "a/../../outside.txt", ""])
async def test_paths_outside_root_are_rejected(tmp_path, path):
    fs = LocalFileSystem(tmp_path / "project")
    with pytest.raises(SandboxViolation):
        await fs.write(path, "nope")
    assert not (tmp_path / "outside.txt").exists()


def test_resolve_keeps_paths_inside_root(tmp_path):
    fs = LocalFileSystem(tmp_path)
    assert fs.resolve("/src/a.py") == (tmp_path / "src" / "a.py").resolve()
    assert fs.resolve("src\\b.py") == (tmp_path / "src" / "b.py").resolve()
