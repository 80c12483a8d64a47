# applyflow/core/errors.py
"""
ApplyFlow 异常定义。
文件系统协作者抛出这些异常，编排器负责把它们转换成条目状态。
"""

from typing import Optional


class ApplyFlowError(Exception):
    """所有 applyflow 异常的基类"""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.path = path


class FileSystemError(ApplyFlowError):
    pass


class FileNotFoundInRoot(FileSystemError):
    """目标文件在项目根目录下不存在"""


class FileTooLarge(FileSystemError):
    """文件超过配置的大小上限"""


class FileAccessError(FileSystemError):
    """其他 I/O 错误（权限、编码等）"""


class SandboxViolation(FileSystemError):
    """路径解析后落在项目根目录之外"""


class PatchApplyError(ApplyFlowError):
    """unified diff 无法应用到当前内容"""


class BatchNotFound(ApplyFlowError):
    pass


class ItemNotFound(ApplyFlowError):
    pass


class ConfigError(ApplyFlowError):
    pass
