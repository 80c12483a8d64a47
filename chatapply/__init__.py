# chatapply/__init__.py
"""
ChatApply - 把 LLM 响应中的文件变更应用到本地项目的命令行工具。
"""

__version__ = "0.1.0"
