# applyflow/__init__.py
"""
ApplyFlow 库 - 解析 LLM 响应文档，校验并应用其中的文件变更。
"""

from .core.parser import parse, process_document, extract_response_block
from .core.diff_engine import apply_search_replace
from .core.tolerant import is_tolerant_match
from .core.orchestrator import ApplyOrchestrator
from .core.summary import summarize

__all__ = [
    'parse',
    'process_document',
    'extract_response_block',
    'apply_search_replace',
    'is_tolerant_match',
    'ApplyOrchestrator',
    'summarize',
]
