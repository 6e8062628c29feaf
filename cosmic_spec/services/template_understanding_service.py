from __future__ import annotations

import logging
import re

from cosmic_spec.models.llm_responses import TemplateStructureResponse
from cosmic_spec.models.llm_responses import TemplateStyleResponse
from cosmic_spec.models.spec_models import SectionInfo
from cosmic_spec.models.spec_models import TemplateExamples
from cosmic_spec.models.spec_models import TemplateUnderstanding
from cosmic_spec.services.llm import JSONParsingError
from cosmic_spec.services.llm import LLMError
from cosmic_spec.services.llm import TextGenerator
from cosmic_spec.services.llm import execute_llm_step_with_template

logger = logging.getLogger(__name__)

TEMPLATE_EXCERPT_CHARS = 8000
MAX_EXAMPLE_TABLES = 3
MAX_EXAMPLE_RULES = 10

_RULE_LINE = re.compile(r"BR-\d+")


def extract_example_tables(template_text: str, limit: int = MAX_EXAMPLE_TABLES) -> list[str]:
    """Contiguous runs of Markdown table lines, at most *limit* of them."""
    tables: list[str] = []
    current: list[str] = []
    for line in template_text.split("\n") + [""]:
        if line.strip().startswith("|"):
            current.append(line.strip())
            continue
        if len(current) >= 2:
            tables.append("\n".join(current))
            if len(tables) >= limit:
                break
        current = []
    return tables


def extract_example_rules(template_text: str, limit: int = MAX_EXAMPLE_RULES) -> list[str]:
    rules = [line.strip() for line in template_text.split("\n") if _RULE_LINE.search(line)]
    return rules[:limit]


class TemplateUnderstandingService:
    """Learns structure and writing style of the target template.

    Both capability calls must succeed; the result is all-or-nothing so the
    reasoning step either follows the template's style or uses its defaults.
    """

    async def analyze(
        self,
        text_generator: TextGenerator,
        request_id: str,
        template_text: str,
        sections: list[SectionInfo],
    ) -> TemplateUnderstanding | None:
        if not template_text:
            return None

        logger.info("[%s] Analyzing template (%d chars, %d sections)", request_id, len(template_text), len(sections))
        excerpt = template_text[:TEMPLATE_EXCERPT_CHARS]
        try:
            structure = await execute_llm_step_with_template(
                text_generator,
                request_id,
                step_name="analyze_template_structure",
                template_name="analyze_template_structure.jinja2",
                context={"sections": sections, "template_excerpt": excerpt},
                response_model=TemplateStructureResponse,
                system_prompt="你是文档结构分析专家，只输出JSON。",
                temperature=0.2,
                max_tokens=2000,
            )
            style = await execute_llm_step_with_template(
                text_generator,
                request_id,
                step_name="analyze_template_style",
                template_name="analyze_template_style.jinja2",
                context={"template_excerpt": excerpt},
                response_model=TemplateStyleResponse,
                system_prompt="你是技术写作风格分析专家，只输出JSON。",
                temperature=0.2,
                max_tokens=2000,
            )
        except (LLMError, JSONParsingError) as e:
            logger.warning("[%s] Template understanding unavailable: %s", request_id, str(e))
            return None

        examples = TemplateExamples(
            tables=extract_example_tables(template_text),
            business_rules=extract_example_rules(template_text),
        )
        logger.debug(
            "[%s] Template understanding ready: %d example tables, %d example rules",
            request_id,
            len(examples.tables),
            len(examples.business_rules),
        )
        return TemplateUnderstanding(
            structural_analysis=structure.model_dump(),
            style_analysis=style.model_dump(),
            examples=examples,
        )
