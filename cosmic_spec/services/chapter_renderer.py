"""Deterministic Markdown rendering of chapter numbers, headings and functional blocks.

Nothing in here talks to the text-generation capability: given the same
classification and reasoning results the output is byte-for-byte identical.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from collections.abc import Sequence

from cosmic_spec.core.config import settings
from cosmic_spec.generation_logic import static_content as sc
from cosmic_spec.models.spec_models import ChapterInfo
from cosmic_spec.models.spec_models import InferredContent
from cosmic_spec.models.spec_models import InterfaceDefinition
from cosmic_spec.models.spec_models import ReasoningResult
from cosmic_spec.models.spec_models import RequirementDoc
from cosmic_spec.models.spec_models import TemplateAnalysis
from cosmic_spec.models.spec_models import UIElements

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Numbering
# ---------------------------------------------------------------------------


def section_number(
    base: str | int,
    subsystem_index: int,
    module_index: int | None = None,
    process_index: int | None = None,
) -> str:
    """Dotted heading number, e.g. ``section_number(5, 1, 2, 3) == "5.1.2.3"``. Indices are 1-based."""
    parts = [str(base), str(subsystem_index)]
    if module_index is not None:
        parts.append(str(module_index))
        if process_index is not None:
            parts.append(str(process_index))
    elif process_index is not None:
        raise ValueError("process_index requires module_index")
    return ".".join(parts)


def functional_chapter_number(template_analysis: TemplateAnalysis | None) -> str:
    if template_analysis and template_analysis.functional_chapter and template_analysis.functional_chapter.number:
        return template_analysis.functional_chapter.number
    return settings.default_functional_chapter


def _chapter_as_int(number: str) -> int:
    try:
        return int(number)
    except (TypeError, ValueError):
        logger.warning("Functional chapter number %r is not an integer, using %s", number, settings.default_functional_chapter)
        return int(settings.default_functional_chapter)


def _template_chapters(template_analysis: TemplateAnalysis | None) -> list[ChapterInfo]:
    if template_analysis and template_analysis.all_chapters:
        return template_analysis.all_chapters
    return []


def _template_title(chapters: Sequence[ChapterInfo], number: str, default: str) -> str:
    for chapter in chapters:
        if chapter.number == number:
            return chapter.title
    return default


def _numbered_list(items: Iterable[str]) -> str:
    return "".join(f"{idx}. {item}\n" for idx, item in enumerate(items, start=1))


# ---------------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------------


def _cell(value: object | None) -> str:
    if value is None:
        return sc.CELL_FILLER
    text = str(value).strip()
    if not text:
        return sc.CELL_FILLER
    return text.replace("|", "\\|").replace("\r", " ").replace("\n", " ")


def render_table(headers: Sequence[str], rows: Iterable[Sequence[object | None]]) -> str:
    lines = [
        "| " + " | ".join(headers) + " |",
        "|" + "|".join("-" * (len(h) * 2 + 2) for h in headers) + "|",
    ]
    for row in rows:
        lines.append("| " + " | ".join(_cell(value) for value in row) + " |")
    return "\n".join(lines) + "\n\n"


# ---------------------------------------------------------------------------
# Header / footer chapters
# ---------------------------------------------------------------------------


def render_header_chapters(
    requirement_doc: RequirementDoc | None,
    template_analysis: TemplateAnalysis | None,
) -> str:
    """Overview chapter plus one level-1 chapter for every number below the functional chapter."""
    analysis = requirement_doc.ai_analysis if requirement_doc else None
    chapters = _template_chapters(template_analysis)
    functional = _chapter_as_int(functional_chapter_number(template_analysis))

    content = f"# 1 {_template_title(chapters, '1', sc.OVERVIEW_TITLE)}\n\n"
    content += f"## 1.1 {_template_title(chapters, '1.1', sc.BACKGROUND_TITLE)}\n\n"
    description = analysis.project_description if analysis and analysis.project_description else None
    content += f"{description or sc.DEFAULT_PROJECT_BACKGROUND}\n\n"

    content += f"## 1.2 {_template_title(chapters, '1.2', sc.GOALS_TITLE)}\n\n"
    goals = [goal for goal in (analysis.business_goals if analysis else []) if goal and goal.strip()]
    content += _numbered_list(goals or sc.DEFAULT_BUSINESS_GOALS)
    content += "\n"

    for number in range(2, functional):
        title = _template_title(chapters, str(number), f"章节{number}")
        content += f"# {number} {title}\n\n"
        content += sc.TEMPLATE_CHAPTER_TEXT.format(number=number) + "\n\n"
        for child in chapters:
            if child.level == 2 and child.number.startswith(f"{number}."):
                content += f"## {child.number} {child.title}\n\n"
                content += sc.TEMPLATE_CHAPTER_TEXT.format(number=child.number) + "\n\n"

    return content


def render_functional_chapter_heading(template_analysis: TemplateAnalysis | None) -> str:
    number = functional_chapter_number(template_analysis)
    title = _template_title(_template_chapters(template_analysis), number, sc.FUNCTIONAL_CHAPTER_TITLE)
    return f"# {number} {title}\n\n"


def render_subsystem_heading(number: str, subsystem: str) -> str:
    return f"## {number} {subsystem}\n\n"


def render_module_heading(number: str, module: str) -> str:
    return f"### {number} {module}\n\n"


def render_footer_chapters(template_analysis: TemplateAnalysis | None) -> str:
    chapters = _template_chapters(template_analysis)
    system_number = _chapter_as_int(functional_chapter_number(template_analysis)) + 1
    appendix_number = system_number + 1

    content = f"# {system_number} {_template_title(chapters, str(system_number), sc.SYSTEM_REQUIREMENTS_TITLE)}\n\n"
    content += f"## {system_number}.1 性能要求\n\n"
    content += _numbered_list(sc.PERFORMANCE_REQUIREMENTS)
    content += "\n"
    content += f"## {system_number}.2 安全要求\n\n"
    content += _numbered_list(sc.SECURITY_REQUIREMENTS)
    content += "\n"

    content += f"# {appendix_number} {_template_title(chapters, str(appendix_number), sc.APPENDIX_TITLE)}\n\n"
    content += f"## {appendix_number}.1 术语表\n\n"
    content += render_table(("术语", "说明"), sc.GLOSSARY_TERMS)
    return content


# ---------------------------------------------------------------------------
# Functional blocks
# ---------------------------------------------------------------------------


def _render_description(name: str, inferred: InferredContent) -> str | None:
    text = (inferred.function_description or "").strip()
    return f"{text}\n\n" if text else None


def _render_business_rules(name: str, inferred: InferredContent) -> str | None:
    if not inferred.business_rules:
        return None
    return render_table(
        ("规则编号", "规则名称", "触发条件", "处理逻辑"),
        (
            (
                rule.id or f"BR-{idx:03d}",
                rule.name or f"规则{idx}",
                rule.condition,
                rule.logic,
            )
            for idx, rule in enumerate(inferred.business_rules, start=1)
        ),
    )


def _render_data_items(name: str, inferred: InferredContent) -> str | None:
    if not inferred.data_items:
        return None
    return render_table(
        ("字段名", "类型", "长度", "必填", "说明"),
        (
            (item.field_name, item.field_type, item.length, item.required, item.description)
            for item in inferred.data_items
        ),
    )


def _interface_is_empty(intf: InterfaceDefinition) -> bool:
    return not (intf.method or intf.url or intf.request_params or intf.response_params)


def _render_interface(name: str, inferred: InferredContent) -> str | None:
    intf = inferred.interface_definition
    if intf is None or _interface_is_empty(intf):
        return None
    content = f"**接口名称**: {name}接口\n\n"
    content += f"**请求方式**: {intf.method or sc.CELL_FILLER}\n\n"
    content += f"**请求URL**: {intf.url or sc.CELL_FILLER}\n\n"
    if intf.request_params:
        content += "**请求参数**:\n\n"
        content += render_table(
            ("参数名", "类型", "必填", "说明"),
            ((p.param_name, p.param_type, p.required, p.description) for p in intf.request_params),
        )
    if intf.response_params:
        content += "**响应参数**:\n\n"
        content += render_table(
            ("参数名", "类型", "说明"),
            ((p.param_name, p.param_type, p.description) for p in intf.response_params),
        )
    return content


def _ui_is_empty(ui: UIElements) -> bool:
    return not (ui.input_fields or ui.display_fields or ui.buttons)


def _render_ui(name: str, inferred: InferredContent) -> str | None:
    ui = inferred.ui_elements
    if ui is None or _ui_is_empty(ui):
        return None
    content = ""
    if ui.input_fields:
        content += "**输入字段**:\n\n"
        for field in ui.input_fields:
            content += f"- {field.label} ({field.type}){' *必填' if field.required else ''}\n"
        content += "\n"
    if ui.display_fields:
        content += "**显示字段**:\n\n"
        for field in ui.display_fields:
            content += f"- {field.label} ({field.format})\n"
        content += "\n"
    if ui.buttons:
        content += "**操作按钮**:\n\n"
        for button in ui.buttons:
            content += f"- {button.label}\n"
        content += "\n"
    return content


def _render_acceptance_criteria(name: str, inferred: InferredContent) -> str | None:
    if not inferred.acceptance_criteria:
        return None
    return render_table(
        ("编号", "测试场景", "前置条件", "操作步骤", "预期结果"),
        (
            (
                criterion.id or f"AC-{idx:03d}",
                criterion.scenario,
                criterion.precondition,
                "; ".join(step for step in criterion.steps if step) or None,
                criterion.expected,
            )
            for idx, criterion in enumerate(inferred.acceptance_criteria, start=1)
        ),
    )


_SECTION_RENDERERS = {
    1: _render_description,
    2: _render_business_rules,
    3: _render_data_items,
    4: _render_interface,
    5: _render_ui,
    6: _render_acceptance_criteria,
}


def render_function_block(function_name: str, reasoning: ReasoningResult | None, number: str) -> str:
    """Render one functional process: a level-4 heading followed by exactly six level-5 sub-sections."""
    inferred = reasoning.inferred_content if reasoning else InferredContent()
    content = f"#### {number} {function_name}\n\n"
    for suffix, heading, placeholder in sc.FUNCTION_SECTIONS:
        content += f"##### {number}.{suffix} {heading}\n\n"
        body = _SECTION_RENDERERS[suffix](function_name, inferred)
        content += body if body else placeholder.format(name=function_name) + "\n\n"
    return content
