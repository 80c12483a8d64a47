# applyflow/utils/fingerprint.py
"""批次标识与原始响应文档的指纹"""

import hashlib
import uuid


def generate_batch_id() -> str:
    """12 位十六进制的短 ID"""
    return uuid.uuid4().hex[:12]


def document_checksum(document: str) -> str:
    """原始响应文档（未做任何换行处理）的 SHA256"""
    return hashlib.sha256(document.encode("utf-8")).hexdigest()
