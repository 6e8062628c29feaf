import re

import pytest

from cosmic_spec.models.spec_models import AcceptanceCriterion
from cosmic_spec.models.spec_models import BusinessRule
from cosmic_spec.models.spec_models import ChapterInfo
from cosmic_spec.models.spec_models import DataItem
from cosmic_spec.models.spec_models import FunctionalChapterInfo
from cosmic_spec.models.spec_models import InferredContent
from cosmic_spec.models.spec_models import InterfaceDefinition
from cosmic_spec.models.spec_models import InterfaceParam
from cosmic_spec.models.spec_models import ReasoningResult
from cosmic_spec.models.spec_models import TemplateAnalysis
from cosmic_spec.models.spec_models import UIButton
from cosmic_spec.models.spec_models import UIElements
from cosmic_spec.models.spec_models import UIInputField
from cosmic_spec.services.chapter_renderer import functional_chapter_number
from cosmic_spec.services.chapter_renderer import render_footer_chapters
from cosmic_spec.services.chapter_renderer import render_function_block
from cosmic_spec.services.chapter_renderer import render_functional_chapter_heading
from cosmic_spec.services.chapter_renderer import render_header_chapters
from cosmic_spec.services.chapter_renderer import render_table
from cosmic_spec.services.chapter_renderer import section_number
from cosmic_spec.services.quality_check_service import check_structural_integrity

SUB_HEADING = re.compile(r"^##### (\S+) (\S+)$", re.MULTILINE)


@pytest.mark.parametrize(
    "args,expected",
    [
        (("5", 1), "5.1"),
        (("5", 1, 2), "5.1.2"),
        ((5, 1, 2, 3), "5.1.2.3"),
        (("3", 10, 1, 12), "3.10.1.12"),
    ],
)
def test_section_number(args, expected):
    assert section_number(*args) == expected


def test_section_number_process_requires_module():
    with pytest.raises(ValueError):
        section_number("5", 1, None, 2)


def test_function_block_with_nothing_inferred_has_six_placeholders():
    block = render_function_block("新增用户", None, "5.1.1.1")

    assert block.startswith("#### 5.1.1.1 新增用户\n\n")
    headings = SUB_HEADING.findall(block)
    assert headings == [
        ("5.1.1.1.1", "功能说明"),
        ("5.1.1.1.2", "业务规则"),
        ("5.1.1.1.3", "处理数据"),
        ("5.1.1.1.4", "接口设计"),
        ("5.1.1.1.5", "界面设计"),
        ("5.1.1.1.6", "验收标准"),
    ]
    assert "本功能用于新增用户。" in block
    for placeholder in ("（业务规则待补充）", "（数据项待补充）", "（接口设计待补充）", "（界面设计待补充）", "（验收标准待补充）"):
        assert placeholder in block


def test_function_block_renders_inferred_tables():
    reasoning = ReasoningResult(
        function_name="新增用户",
        inferred_content=InferredContent(
            function_description="管理员录入用户信息。",
            business_rules=[BusinessRule(name="唯一性", condition="保存时"), BusinessRule(id="BR-009")],
            data_items=[DataItem(field_name="用户编号", field_type="VARCHAR", length="32", required="是")],
            interface_definition=InterfaceDefinition(
                method="POST",
                url="/api/新增用户",
                request_params=[InterfaceParam(param_name="用户编号", param_type="VARCHAR", required="是")],
            ),
            ui_elements=UIElements(
                input_fields=[UIInputField(label="用户名称", required=True)],
                buttons=[UIButton(label="提交", action="submit")],
            ),
            acceptance_criteria=[AcceptanceCriterion(scenario="正常流程", steps=["1. 输入", "2. 提交"])],
        ),
    )
    block = render_function_block("新增用户", reasoning, "5.1.1.1")

    assert len(SUB_HEADING.findall(block)) == 6
    assert "管理员录入用户信息。" in block
    assert "| 规则编号 | 规则名称 | 触发条件 | 处理逻辑 |" in block
    assert "| BR-001 | 唯一性 | 保存时 | 待定义 |" in block
    assert "| BR-009 | 规则2 | 待定义 | 待定义 |" in block
    assert "| 用户编号 | VARCHAR | 32 | 是 | 待定义 |" in block
    assert "**请求方式**: POST" in block
    assert "| 参数名 | 类型 | 必填 | 说明 |" in block
    assert "- 用户名称 (text) *必填" in block
    assert "| AC-001 | 正常流程 | 待定义 | 1. 输入; 2. 提交 | 待定义 |" in block
    assert "（业务规则待补充）" not in block


def test_function_block_empty_description_falls_back():
    reasoning = ReasoningResult(function_name="x", inferred_content=InferredContent(function_description="   "))
    block = render_function_block("删除用户", reasoning, "5.1.1.2")
    assert "本功能用于删除用户。" in block


def test_render_table_escapes_pipes_and_fills_missing_cells():
    table = render_table(("a", "b"), [("x|y", None), ("多行\n文本", "")])
    lines = table.strip().split("\n")
    assert lines[2] == "| x\\|y | 待定义 |"
    assert lines[3] == "| 多行 文本 | 待定义 |"
    assert all(line.count("|") - line.count("\\|") == 3 for line in lines)


def test_header_chapters_from_requirement_and_template(sample_requirement_doc, sample_template):
    header = render_header_chapters(sample_requirement_doc, sample_template)

    assert header.startswith("# 1 概述\n\n## 1.1 项目背景\n\n订单管理系统用于支撑")
    assert "## 1.2 系统目标\n\n1. 提升订单处理效率\n2. 规范用户管理\n" in header
    assert "# 2 总体描述" in header
    assert "## 2.1 运行环境" in header
    assert "# 3 章节3" in header
    assert "# 4 章节4" in header
    assert "# 5 " not in header


def test_header_overview_subchapters_follow_template_titles():
    template = TemplateAnalysis(
        all_chapters=[
            ChapterInfo(number="1", title="引言", level=1),
            ChapterInfo(number="1.1", title="编写目的", level=2),
            ChapterInfo(number="1.2", title="适用范围", level=2),
        ]
    )
    header = render_header_chapters(None, template)

    assert header.startswith("# 1 引言\n\n## 1.1 编写目的\n\n")
    assert "## 1.2 适用范围\n\n1. " in header
    assert "项目背景" not in header
    assert check_structural_integrity(header, template).score == 100


def test_header_chapters_defaults_without_inputs():
    header = render_header_chapters(None, None)
    assert "本项目旨在构建一个先进的业务系统" in header
    assert "1. 提升业务处理效率" in header
    assert "# 4 章节4" in header


def test_functional_chapter_number_defaults_to_five():
    assert functional_chapter_number(None) == "5"
    assert functional_chapter_number(TemplateAnalysis(functional_chapter=FunctionalChapterInfo(number=3))) == "3"


def test_functional_heading_uses_template_title():
    template = TemplateAnalysis(
        all_chapters=[ChapterInfo(number="3", title="业务功能")],
        functional_chapter=FunctionalChapterInfo(number="3"),
    )
    assert render_functional_chapter_heading(template) == "# 3 业务功能\n\n"
    assert render_functional_chapter_heading(None) == "# 5 功能需求\n\n"


def test_footer_chapters_follow_functional_chapter():
    footer = render_footer_chapters(TemplateAnalysis(functional_chapter=FunctionalChapterInfo(number="4")))
    assert footer.startswith("# 5 系统需求\n\n## 5.1 性能要求")
    assert "## 5.2 安全要求" in footer
    assert "# 6 附录\n\n## 6.1 术语表" in footer
    assert "| COSMIC | 国际标准的功能规模度量方法 |" in footer
