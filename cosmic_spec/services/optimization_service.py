from __future__ import annotations

import logging

from cosmic_spec.core.config import settings
from cosmic_spec.models.llm_responses import OptimizationItem
from cosmic_spec.models.llm_responses import OptimizationResponse
from cosmic_spec.models.spec_models import GenerationContext
from cosmic_spec.models.spec_models import QualityReport
from cosmic_spec.services.llm import JSONParsingError
from cosmic_spec.services.llm import LLMError
from cosmic_spec.services.llm import TextGenerator
from cosmic_spec.services.llm import execute_llm_step_with_template

logger = logging.getLogger(__name__)


def apply_patches(content: str, patches: list[OptimizationItem], request_id: str = "-") -> tuple[str, int]:
    """Apply each patch whose ``original`` occurs exactly once in the current content.

    Patches with an empty ``original`` or ``optimized`` text are skipped, so a
    patch can rewrite a passage but never delete it.

    Returns the patched content and the number of patches applied.
    """
    applied = 0
    for patch in patches:
        if not patch.original or not patch.optimized:
            logger.debug(
                "[%s] Skipping patch with empty original or optimized text (issue: %s)", request_id, patch.issue
            )
            continue
        occurrences = content.count(patch.original)
        if occurrences != 1:
            logger.info(
                "[%s] Skipping patch for '%s': original text found %d times", request_id, patch.issue, occurrences
            )
            continue
        content = content.replace(patch.original, patch.optimized, 1)
        applied += 1
    return content, applied


class OptimizationService:
    """One round of capability-suggested, exact-match text repairs."""

    async def optimize(
        self,
        content: str,
        quality_report: QualityReport,
        context: GenerationContext | None,
        text_generator: TextGenerator,
        request_id: str = "-",
    ) -> str:
        issues = quality_report.issues[: settings.optimization_max_issues]
        if not issues:
            logger.info("[%s] No issues to optimize", request_id)
            return content

        try:
            response = await execute_llm_step_with_template(
                text_generator,
                request_id,
                step_name="optimize_content",
                template_name="optimize_content.jinja2",
                context={
                    "issues": issues,
                    "sample_chars": settings.optimization_sample_chars,
                    "content_sample": content[: settings.optimization_sample_chars],
                },
                response_model=OptimizationResponse,
                system_prompt="你是文档优化专家，只输出JSON。",
                temperature=0.3,
                max_tokens=3000,
            )
        except (LLMError, JSONParsingError) as e:
            logger.warning("[%s] Optimization skipped: %s", request_id, str(e))
            return content
        except Exception:
            logger.exception("[%s] Unexpected error during optimization, keeping original content", request_id)
            return content

        optimized, applied = apply_patches(content, response.optimizations, request_id)
        logger.info(
            "[%s] Optimization applied %d of %d suggested patches",
            request_id,
            applied,
            len(response.optimizations),
        )
        return optimized
