"""Six-dimension quality scoring of a generated requirement specification.

Four checks are plain regex/structure heuristics. Template compliance and
language quality are delegated to the text-generation capability and trusted
as-is. Each check contributes one integer score in 0..100; a check that blows up
either falls back to a fixed score or leaves its slot empty so it does not count
towards the overall mean.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Awaitable
from collections.abc import Callable

from cosmic_spec.core.config import settings
from cosmic_spec.models.llm_responses import ComplianceResponse
from cosmic_spec.models.llm_responses import LanguageQualityResponse
from cosmic_spec.models.spec_models import CheckResult
from cosmic_spec.models.spec_models import FunctionalDataset
from cosmic_spec.models.spec_models import QualityChecks
from cosmic_spec.models.spec_models import QualityReport
from cosmic_spec.models.spec_models import TemplateAnalysis
from cosmic_spec.services.llm import TextGenerator
from cosmic_spec.services.llm import execute_llm_step_with_template

logger = logging.getLogger(__name__)

PASS_SCORE = 80

STRUCTURAL_FALLBACK_SCORE = 50
COMPLIANCE_UNAVAILABLE_SCORE = 60
COMPLIANCE_FALLBACK_SCORE = 70
DATA_CONSISTENCY_FALLBACK_SCORE = 80
LANGUAGE_UNAVAILABLE_SCORE = 75
LANGUAGE_FALLBACK_SCORE = 80

_HEADING = re.compile(r"^(#{1,6})\s+(.+)$")
_HEADING_LEVEL = re.compile(r"^(#{1,6})\s+")
_FUNCTION_HEADING = re.compile(r"^#{3,4}\s+\d+\.\d+", re.MULTILINE)
_TABLE_SEPARATOR = re.compile(r"^\|[\s:-]+\|")
_PLACEHOLDER_PATTERNS = (
    re.compile(r"XXX"),
    re.compile(r"待.*?定"),
    re.compile(r"TODO", re.IGNORECASE),
    re.compile(r"\[.*?placeholder.*?\]", re.IGNORECASE),
    re.compile(r"\.\.\."),
)


def clamp_score(value: float) -> int:
    """Round half-up and clamp into 0..100."""
    return max(0, min(100, math.floor(value + 0.5)))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def extract_chapters(content: str) -> list[dict]:
    """Split Markdown into heading-delimited blocks: ``{"level", "title", "content"}``."""
    chapters: list[dict] = []
    current: dict | None = None
    body: list[str] = []
    for line in content.split("\n"):
        match = _HEADING.match(line)
        if match:
            if current is not None:
                current["content"] = "\n".join(body)
                chapters.append(current)
            current = {"level": len(match.group(1)), "title": match.group(2), "content": ""}
            body = []
        elif current is not None:
            body.append(line)
    if current is not None:
        current["content"] = "\n".join(body)
        chapters.append(current)
    return chapters


def find_placeholders(content: str) -> list[str]:
    """Every placeholder occurrence, grouped by pattern; duplicates are kept."""
    found: list[str] = []
    for pattern in _PLACEHOLDER_PATTERNS:
        found.extend(pattern.findall(content))
    return found


def count_functions(content: str) -> int:
    return len(_FUNCTION_HEADING.findall(content))


def extract_paragraph_samples(content: str, count: int) -> list[str]:
    paragraphs = []
    for paragraph in content.split("\n\n"):
        trimmed = paragraph.strip()
        if len(trimmed) > 50 and not trimmed.startswith("#") and "|" not in trimmed:
            paragraphs.append(paragraph)
    return paragraphs[:count]


def find_table_issues(content: str) -> list[str]:
    issues: list[str] = []
    in_table = False
    table_lines = 0
    for idx, line in enumerate(content.split("\n")):
        if "|" in line:
            if not in_table:
                in_table = True
                table_lines = 0
            table_lines += 1
            if table_lines == 2 and not _TABLE_SEPARATOR.match(line):
                issues.append(f"行{idx + 1}: 表格缺少分隔行")
        else:
            if in_table and table_lines < 3:
                issues.append(f"行{idx}: 表格行数不足")
            in_table = False
    return issues


def find_heading_issues(content: str) -> list[str]:
    issues: list[str] = []
    last_level = 0
    for idx, line in enumerate(content.split("\n")):
        match = _HEADING_LEVEL.match(line)
        if match:
            level = len(match.group(1))
            if level > last_level + 1:
                issues.append(f"行{idx + 1}: 标题层级跳跃（从{last_level}级跳到{level}级）")
            last_level = level
    return issues


def find_list_issues(content: str) -> list[str]:
    issues: list[str] = []
    for idx, line in enumerate(content.split("\n")):
        if re.match(r"^[-*+]\s", line):
            if not re.match(r"^[-*+]\s+\S", line):
                issues.append(f"行{idx + 1}: 列表项格式不正确")
        elif re.match(r"^\d+\.\s", line):
            if not re.match(r"^\d+\.\s+\S", line):
                issues.append(f"行{idx + 1}: 有序列表格式不正确")
    return issues


# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------


def check_structural_integrity(content: str, template_analysis: TemplateAnalysis | None) -> CheckResult:
    if template_analysis is None or not template_analysis.all_chapters:
        return CheckResult(score=STRUCTURAL_FALLBACK_SCORE, issues=["缺少模板分析数据，无法准确检查"])

    required = [
        chapter
        for chapter in template_analysis.all_chapters
        if chapter.level == 1 or (chapter.level == 2 and chapter.required)
    ]
    score = 100
    missing: list[str] = []
    for chapter in required:
        pattern = rf"#{{1,{chapter.level}}}\s*{re.escape(chapter.number)}\s*{re.escape(chapter.title)}"
        if not re.search(pattern, content):
            missing.append(f"{chapter.number} {chapter.title}")
            score -= 10

    result = CheckResult(
        score=max(0, score),
        details={"total_required": len(required), "missing": len(missing), "present": len(required) - len(missing)},
    )
    if missing:
        result.issues.append(f"缺少章节: {'、'.join(missing)}")
    return result


def check_content_completeness(content: str, dataset: FunctionalDataset | None) -> CheckResult:
    result = CheckResult()
    score = 100
    empty = insufficient = 0
    chapters = extract_chapters(content)
    for chapter in chapters:
        length = len(chapter["content"])
        if length < 50:
            empty += 1
            result.issues.append(f'章节 "{chapter["title"]}" 内容为空或过少（{length}字符）')
            score -= 5
        elif length < 200 and chapter["level"] <= 2:
            insufficient += 1
            result.issues.append(f'章节 "{chapter["title"]}" 内容不足（{length}字符）')
            score -= 3

    placeholders = find_placeholders(content)
    if placeholders:
        result.issues.append(f"发现{len(placeholders)}个占位符: {'、'.join(placeholders[:5])}")
        score -= len(placeholders) * 2

    if dataset:
        expected = len(dataset)
        actual = count_functions(content)
        if actual < expected * 0.8:
            result.issues.append(f"文档中的功能数量（{actual}）少于COSMIC数据（{expected}）")
            score -= 10
        result.details["expected_functions"] = expected
        result.details["actual_functions"] = actual

    result.details["total_chapters"] = len(chapters)
    result.details["empty_chapters"] = empty
    result.details["insufficient_chapters"] = insufficient
    result.score = max(0, score)
    return result


async def check_template_compliance(
    text_generator: TextGenerator | None,
    request_id: str,
    content: str,
    template_analysis: TemplateAnalysis | None,
) -> CheckResult:
    if text_generator is None or template_analysis is None:
        return CheckResult(score=COMPLIANCE_UNAVAILABLE_SCORE, issues=["无法进行AI符合度检查"])

    response = await execute_llm_step_with_template(
        text_generator,
        request_id,
        step_name="template_compliance",
        template_name="template_compliance.jinja2",
        context={
            "template_sample": template_analysis.original_template_text[: settings.compliance_template_sample_chars],
            "content_sample": content[: settings.compliance_content_sample_chars],
        },
        response_model=ComplianceResponse,
        system_prompt="你是文档质量检查专家。",
        temperature=0.1,
        max_tokens=1500,
    )
    return CheckResult(
        score=clamp_score(response.compliance_score) if response.compliance_score else COMPLIANCE_FALLBACK_SCORE,
        issues=list(response.issues),
        details={"strengths": list(response.strengths)},
    )


def check_data_consistency(content: str, dataset: FunctionalDataset | None) -> CheckResult:
    if not dataset:
        return CheckResult(score=DATA_CONSISTENCY_FALLBACK_SCORE)

    missing = [name for name in dataset if name not in content]
    data_groups = {row.data_group for rows in dataset.values() for row in rows if row.data_group}
    result = CheckResult(
        score=max(0, 100 - 3 * len(missing)),
        details={"total_data_groups": len(data_groups), "inconsistent_functions": len(missing)},
    )
    if missing:
        result.issues.append(f"{len(missing)}个功能名称未在文档中找到")
    return result


async def check_language_quality(
    text_generator: TextGenerator | None,
    request_id: str,
    content: str,
) -> CheckResult:
    if text_generator is None:
        return CheckResult(score=LANGUAGE_UNAVAILABLE_SCORE)

    sample = "\n\n".join(extract_paragraph_samples(content, settings.language_sample_paragraphs))
    response = await execute_llm_step_with_template(
        text_generator,
        request_id,
        step_name="language_quality",
        template_name="language_quality.jinja2",
        context={"sample_text": sample},
        response_model=LanguageQualityResponse,
        system_prompt="你是中文写作和技术文档专家。",
        temperature=0.1,
        max_tokens=1500,
    )
    return CheckResult(
        score=clamp_score(response.quality_score) if response.quality_score else LANGUAGE_FALLBACK_SCORE,
        issues=[*response.grammar_errors, *response.typos],
        details={"suggestions": list(response.suggestions)},
    )


def check_format_correctness(content: str) -> CheckResult:
    table_issues = find_table_issues(content)
    heading_issues = find_heading_issues(content)
    list_issues = find_list_issues(content)
    score = 100 - 2 * len(table_issues) - 3 * len(heading_issues) - len(list_issues)
    return CheckResult(
        score=max(0, score),
        issues=[*table_issues, *heading_issues, *list_issues],
        details={
            "table_issues": len(table_issues),
            "heading_issues": len(heading_issues),
            "list_issues": len(list_issues),
        },
    )


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------


def summarize_quality_report(checks: QualityChecks) -> QualityReport:
    present = [(name, check) for name, check in checks.items() if check is not None]
    scores = [check.score for _, check in present]
    overall = clamp_score(sum(scores) / len(scores)) if scores else 0

    if overall < 60:
        suggestion = "文档质量较低，建议重新生成"
    elif overall < PASS_SCORE:
        suggestion = "文档存在一些问题，建议审查和优化"
    else:
        suggestion = "文档质量良好"

    return QualityReport(
        overall_score=overall,
        checks=checks,
        issues=[issue for _, check in present for issue in check.issues],
        suggestions=[suggestion],
        passed_checks=[name for name, check in present if check.score >= PASS_SCORE],
        failed_checks=[name for name, check in present if check.score < PASS_SCORE],
    )


class QualityCheckService:
    """Runs the six checks in a fixed order and summarizes them into one report."""

    async def check(
        self,
        content: str,
        template_analysis: TemplateAnalysis | None,
        dataset: FunctionalDataset | None,
        text_generator: TextGenerator | None = None,
        request_id: str = "-",
    ) -> QualityReport:
        logger.info("[%s] Running quality checks on %d chars", request_id, len(content))

        async def structural() -> CheckResult:
            return check_structural_integrity(content, template_analysis)

        async def completeness() -> CheckResult:
            return check_content_completeness(content, dataset)

        async def compliance() -> CheckResult:
            return await check_template_compliance(text_generator, request_id, content, template_analysis)

        async def consistency() -> CheckResult:
            return check_data_consistency(content, dataset)

        async def language() -> CheckResult:
            return await check_language_quality(text_generator, request_id, content)

        async def formatting() -> CheckResult:
            return check_format_correctness(content)

        plan: list[tuple[str, Callable[[], Awaitable[CheckResult]], int | None, str | None]] = [
            ("structural_integrity", structural, STRUCTURAL_FALLBACK_SCORE, "结构完整性检查失败，使用默认分数"),
            ("content_completeness", completeness, None, None),
            ("template_compliance", compliance, COMPLIANCE_FALLBACK_SCORE, "AI检查失败，使用默认分数"),
            ("data_consistency", consistency, DATA_CONSISTENCY_FALLBACK_SCORE, None),
            ("language_quality", language, LANGUAGE_FALLBACK_SCORE, None),
            ("format_correctness", formatting, None, None),
        ]

        results: dict[str, CheckResult | None] = {}
        for name, run_check, fallback_score, fallback_issue in plan:
            try:
                results[name] = await run_check()
            except Exception as e:
                if fallback_score is None:
                    logger.error("[%s] Quality check '%s' failed, leaving it out: %s", request_id, name, str(e))
                    results[name] = None
                    continue
                logger.warning(
                    "[%s] Quality check '%s' failed, falling back to %d: %s", request_id, name, fallback_score, str(e)
                )
                results[name] = CheckResult(score=fallback_score, issues=[fallback_issue] if fallback_issue else [])

        report = summarize_quality_report(QualityChecks(**results))
        logger.info(
            "[%s] Quality check done: overall %d, %d issues, failed checks: %s",
            request_id,
            report.overall_score,
            len(report.issues),
            report.failed_checks,
        )
        return report
