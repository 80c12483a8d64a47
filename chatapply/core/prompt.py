# chatapply/core/prompt.py
"""
基于 jinja2 的模板渲染（配置文件与给 LLM 的后续提示）。
"""

from pathlib import Path
from typing import Any, List

import jinja2

from applyflow.core.models import ApplyStatus, EditMode, FileEdit, ResponseBatch

TEMPLATES_DIR = Path(__file__).parent.parent / "templates"
ALIASES = {
    'config': 'config.yaml.j2',
    'request-files': 'request_full_files.md.j2',
}

# 这些状态的 search/replace 修改需要请求完整文件
_REQUEST_FILE_STATUSES = frozenset({
    ApplyStatus.VALIDATION_FAILED_SEARCH_NOT_FOUND,
    ApplyStatus.VALIDATION_FAILED_IDENTICAL_CONTENT,
    ApplyStatus.VALIDATION_TOLERANT_MATCH_PENDING,
})


def create_jinja_env() -> jinja2.Environment:
    return jinja2.Environment(
        loader=jinja2.FileSystemLoader(str(TEMPLATES_DIR)),
        autoescape=False,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )


def render_template(template: str, **values: Any) -> str:
    """渲染模板，template 可以是别名或文件名"""
    name = ALIASES.get(template, template)
    try:
        return create_jinja_env().get_template(name).render(**values)
    except jinja2.TemplateNotFound:
        raise FileNotFoundError(f"Template not found: {TEMPLATES_DIR / name}")


def failed_search_replace_paths(batch: ResponseBatch) -> List[str]:
    """按文档顺序去重后的失败 search/replace 路径"""
    paths: List[str] = []
    for item in batch.items:
        op = item.operation
        if (
            isinstance(op, FileEdit)
            and op.mode is EditMode.SEARCH_REPLACE
            and item.status in _REQUEST_FILE_STATUSES
            and op.path not in paths
        ):
            paths.append(op.path)
    return paths


def render_request_full_files(batch: ResponseBatch) -> str:
    """生成请求完整文件内容的提示；没有失败条目时返回空字符串"""
    paths = failed_search_replace_paths(batch)
    if not paths:
        return ""
    return render_template('request-files', paths=paths).rstrip("\n")
