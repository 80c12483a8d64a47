# applyflow/core/transitions.py
"""
条目状态机：只允许沿下表中的边迁移。
"""

from typing import Dict, FrozenSet

from .models import ApplyStatus

S = ApplyStatus

ALLOWED_TRANSITIONS: Dict[ApplyStatus, FrozenSet[ApplyStatus]] = {
    S.PENDING_VALIDATION: frozenset({
        S.VALIDATION_SUCCESS,
        S.VALIDATION_FAILED_NO_FILE,
        S.VALIDATION_FAILED_SEARCH_NOT_FOUND,
        S.VALIDATION_FAILED_IDENTICAL_CONTENT,
        S.VALIDATION_TOLERANT_MATCH_PENDING,
        S.APPLIED_FAILED,  # 校验时发生意外 I/O 错误
    }),
    S.VALIDATION_SUCCESS: frozenset({
        S.APPLIED_SUCCESS,
        S.APPLIED_FAILED,
        S.VALIDATION_FAILED_SEARCH_NOT_FOUND,
        S.VALIDATION_FAILED_IDENTICAL_CONTENT,
    }),
    S.VALIDATION_TOLERANT_MATCH_PENDING: frozenset({
        S.APPLIED_SUCCESS,
        S.APPLIED_FAILED,
        S.VALIDATION_FAILED_SEARCH_NOT_FOUND,
        S.VALIDATION_FAILED_IDENTICAL_CONTENT,
        S.SKIPPED_BY_USER,
        S.USER_RESOLVED,
    }),
    S.VALIDATION_FAILED_NO_FILE: frozenset({
        S.APPLIED_SUCCESS,  # 强制创建
        S.APPLIED_FAILED,
        S.SKIPPED_BY_USER,
    }),
    S.VALIDATION_FAILED_SEARCH_NOT_FOUND: frozenset({
        S.SKIPPED_BY_USER,
        S.USER_RESOLVED,
        S.APPLIED_SUCCESS,  # 只能经由强制应用
        S.APPLIED_FAILED,
        S.VALIDATION_FAILED_SEARCH_NOT_FOUND,
    }),
    S.VALIDATION_FAILED_IDENTICAL_CONTENT: frozenset({
        S.SKIPPED_BY_USER,
        S.USER_RESOLVED,
        S.VALIDATION_FAILED_IDENTICAL_CONTENT,
    }),
    # 失败的条目可以重试
    S.APPLIED_FAILED: frozenset({
        S.APPLIED_SUCCESS,
        S.APPLIED_FAILED,
        S.VALIDATION_FAILED_SEARCH_NOT_FOUND,
        S.VALIDATION_FAILED_IDENTICAL_CONTENT,
        S.SKIPPED_BY_USER,
        S.USER_RESOLVED,
    }),
    S.APPLIED_SUCCESS: frozenset(),
    S.SKIPPED_BY_USER: frozenset(),
    S.USER_RESOLVED: frozenset(),
}

# 经由强制应用才允许的边
FORCED_ONLY_TRANSITIONS = frozenset({
    (S.VALIDATION_FAILED_SEARCH_NOT_FOUND, S.APPLIED_SUCCESS),
    (S.VALIDATION_FAILED_NO_FILE, S.APPLIED_SUCCESS),
})


def can_transition(current: ApplyStatus, target: ApplyStatus, forced: bool = False) -> bool:
    if target not in ALLOWED_TRANSITIONS.get(current, frozenset()):
        return False
    if (current, target) in FORCED_ONLY_TRANSITIONS and not forced:
        return False
    return True
