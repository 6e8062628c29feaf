import json

import pytest

from cosmic_spec.models.spec_models import ChapterInfo
from cosmic_spec.models.spec_models import DataMovementRow
from cosmic_spec.models.spec_models import FunctionalChapterInfo
from cosmic_spec.models.spec_models import ProjectAnalysis
from cosmic_spec.models.spec_models import RequirementDoc
from cosmic_spec.models.spec_models import SectionInfo
from cosmic_spec.models.spec_models import TemplateAnalysis

STRUCTURE_JSON = json.dumps(
    {
        "numberingPattern": "1 / 1.1 / 1.1.1",
        "requiredChapters": ["1", "2", "5"],
        "optionalChapters": [],
        "functionSections": ["功能说明", "业务规则"],
        "structuralPatterns": ["每个功能包含六个子节"],
    },
    ensure_ascii=False,
)
STYLE_JSON = json.dumps(
    {
        "tone": "正式客观",
        "sentenceStyle": "陈述句",
        "terminology": ["功能过程"],
        "writingGuidelines": ["使用第三人称"],
    },
    ensure_ascii=False,
)
RULES_JSON = json.dumps(
    {"rules": [{"id": "BR-001", "name": "必填校验", "condition": "提交表单时", "logic": "校验必填字段"}]},
    ensure_ascii=False,
)
COMPLIANCE_JSON = json.dumps({"complianceScore": 90, "issues": [], "strengths": ["编号一致"]}, ensure_ascii=False)
LANGUAGE_JSON = json.dumps(
    {"qualityScore": 88, "grammarErrors": [], "typos": [], "suggestions": ["保持术语统一"]}, ensure_ascii=False
)
OPTIMIZATION_JSON = json.dumps({"optimizations": []})
DESCRIPTION_TEXT = "该功能用于维护系统中的业务数据，用户在界面中录入信息并提交，系统校验后保存并返回处理结果。"

# Distinctive phrase of each prompt template -> response key.
_PROMPT_MARKERS = (
    ("**结构特征**", "structure"),
    ("**语言风格**", "style"),
    ("**功能说明**", "description"),
    ("**业务规则**", "rules"),
    ("检查符合度", "compliance"),
    ("检查以下技术文档的语言质量", "language"),
    ("优化以下文档片段", "optimization"),
)


class FakeTextGenerator:
    """Deterministic stand-in for the text-generation capability.

    Responses are chosen by the prompt template that produced the request. A
    response that is an exception instance is raised instead of returned.
    """

    def __init__(self, **overrides):
        self.responses = {
            "structure": STRUCTURE_JSON,
            "style": STYLE_JSON,
            "description": DESCRIPTION_TEXT,
            "rules": RULES_JSON,
            "compliance": COMPLIANCE_JSON,
            "language": LANGUAGE_JSON,
            "optimization": OPTIMIZATION_JSON,
        }
        self.responses.update(overrides)
        self.calls: list[tuple[str, dict]] = []

    def kind_of(self, messages) -> str:
        prompt = messages[-1]["content"]
        for marker, kind in _PROMPT_MARKERS:
            if marker in prompt:
                return kind
        raise AssertionError(f"Unexpected prompt: {prompt[:80]}")

    def calls_of(self, kind: str) -> list[dict]:
        return [call for call_kind, call in self.calls if call_kind == kind]

    async def complete(self, messages, *, temperature=0.2, max_tokens=3000):
        kind = self.kind_of(messages)
        self.calls.append((kind, {"messages": messages, "temperature": temperature, "max_tokens": max_tokens}))
        response = self.responses[kind]
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def fake_llm():
    return FakeTextGenerator()


@pytest.fixture
def make_fake_llm():
    return FakeTextGenerator


@pytest.fixture
def sample_dataset():
    return {
        "新增用户": [
            DataMovementRow(
                functional_user="管理员",
                trigger_event="点击新增",
                functional_process="新增用户",
                sub_process_description="输入用户信息",
                data_movement_type="E",
                data_group="用户信息",
                data_attributes="用户编号、用户名称、手机号码、备注",
            ),
            DataMovementRow(
                functional_process="新增用户",
                sub_process_description="保存用户信息",
                data_movement_type="W",
                data_group="用户表",
                data_attributes="用户编号,用户名称,创建时间",
            ),
            DataMovementRow(
                functional_process="新增用户",
                sub_process_description="返回保存结果",
                data_movement_type="X",
                data_group="操作结果",
                data_attributes="结果状态",
            ),
        ],
        "查询订单": [
            DataMovementRow(
                functional_process="查询订单",
                sub_process_description="输入查询条件",
                data_movement_type="E",
                data_group="查询条件",
                data_attributes="订单编号；下单日期",
            ),
            DataMovementRow(
                functional_process="查询订单",
                sub_process_description="读取订单",
                data_movement_type="R",
                data_group="订单表",
                data_attributes="订单编号、订单金额、订单状态",
            ),
            DataMovementRow(
                functional_process="查询订单",
                sub_process_description="展示订单列表",
                data_movement_type="X",
                data_group="订单列表",
                data_attributes="订单编号、订单金额、下单日期",
            ),
        ],
        "删除用户": [
            DataMovementRow(
                functional_process="删除用户",
                sub_process_description="选择用户",
                data_movement_type="E",
                data_group="用户信息",
                data_attributes="用户编号",
            ),
            DataMovementRow(
                functional_process="删除用户",
                sub_process_description="删除用户记录",
                data_movement_type="W",
                data_group="用户表",
                data_attributes="用户编号",
            ),
        ],
    }


@pytest.fixture
def sample_template():
    return TemplateAnalysis(
        original_template_text="# 1 概述\n\n## 1.1 项目背景\n\n| 规则编号 | 规则名称 |\n|----|----|\n| BR-001 | 示例 |\n",
        sections=[SectionInfo(number="1", title="概述", level=1)],
        all_chapters=[
            ChapterInfo(number="1", title="概述", level=1),
            ChapterInfo(number="1.1", title="项目背景", level=2),
            ChapterInfo(number="2", title="总体描述", level=1),
            ChapterInfo(number="2.1", title="运行环境", level=2),
            ChapterInfo(number="2.2", title="可选说明", level=2, required=False),
            ChapterInfo(number="5", title="功能需求", level=1),
        ],
        functional_chapter=FunctionalChapterInfo(number="5"),
    )


@pytest.fixture
def sample_requirement_doc():
    return RequirementDoc(
        full_text="本系统需要支持用户管理。\n管理员可以新增用户和删除用户。\n订单查询需要支持按日期筛选。",
        ai_analysis=ProjectAnalysis(
            project_name="订单管理系统",
            project_description="订单管理系统用于支撑企业日常订单处理与用户维护。",
            business_goals=["提升订单处理效率", "规范用户管理"],
        ),
    )
