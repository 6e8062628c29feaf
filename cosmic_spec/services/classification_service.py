from __future__ import annotations

import logging
import re
from collections import Counter
from typing import Protocol

from cosmic_spec.core.exceptions import PipelineError
from cosmic_spec.models.spec_models import Classification

logger = logging.getLogger(__name__)

DEFAULT_SUBSYSTEM = "核心业务功能"
DEFAULT_MODULE = "业务管理"
FALLBACK_MODULE = "其他功能"

# Operation words stripped from a process name to find the business object it acts on.
_OPERATION_WORDS = (
    "新增",
    "添加",
    "创建",
    "修改",
    "编辑",
    "更新",
    "删除",
    "查询",
    "查看",
    "检索",
    "导入",
    "导出",
    "审核",
    "审批",
    "管理",
    "设置",
    "配置",
    "统计",
)
_OPERATION_PATTERN = re.compile(
    r"^(?:" + "|".join(_OPERATION_WORDS) + r")|(?:" + "|".join(_OPERATION_WORDS) + r")$"
)


class ClassificationStrategy(Protocol):
    """Groups functional-process names into a subsystem -> module -> process tree."""

    async def classify(self, process_names: list[str]) -> Classification: ...


class SingleBucketClassifier:
    """Places every process under one subsystem and one module."""

    def __init__(self, subsystem: str = DEFAULT_SUBSYSTEM, module: str = DEFAULT_MODULE):
        self.subsystem = subsystem
        self.module = module

    async def classify(self, process_names: list[str]) -> Classification:
        return {self.subsystem: {self.module: list(process_names)}}


class KeywordClassifier:
    """Groups processes acting on the same business object into one module.

    "新增用户" and "删除用户" both land in module "用户管理". Names that reduce to
    nothing (or to a single character) go to a shared fallback module. Module order
    follows first appearance in the input, so the result is deterministic.
    """

    def __init__(self, subsystem: str = DEFAULT_SUBSYSTEM, fallback_module: str = FALLBACK_MODULE):
        self.subsystem = subsystem
        self.fallback_module = fallback_module

    @staticmethod
    def business_object(process_name: str) -> str:
        name = process_name.strip()
        previous = None
        while previous != name:
            previous = name
            name = _OPERATION_PATTERN.sub("", name).strip()
        return name

    async def classify(self, process_names: list[str]) -> Classification:
        modules: dict[str, list[str]] = {}
        for process_name in process_names:
            keyword = self.business_object(process_name)
            module = f"{keyword}管理" if len(keyword) >= 2 else self.fallback_module
            modules.setdefault(module, []).append(process_name)
        return {self.subsystem: modules}


def verify_partition(classification: Classification, process_names: list[str]) -> None:
    """Raise PipelineError unless every process name appears exactly once in the tree."""
    leaves = [name for modules in classification.values() for names in modules.values() for name in names]
    duplicates = sorted(name for name, count in Counter(leaves).items() if count > 1)
    missing = [name for name in process_names if name not in leaves]
    unknown = sorted(set(leaves) - set(process_names))
    if duplicates or missing or unknown:
        logger.error(
            "Classification is not a partition: duplicates=%s missing=%s unknown=%s",
            duplicates,
            missing,
            unknown,
        )
        raise PipelineError(
            f"Classification must cover every functional process exactly once "
            f"(duplicates: {duplicates}, missing: {missing}, unknown: {unknown})"
        )
