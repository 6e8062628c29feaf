from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable
from collections.abc import Callable
from datetime import datetime
from datetime import timezone
from uuid import uuid4

from cosmic_spec.core.config import settings
from cosmic_spec.core.exceptions import PipelineError
from cosmic_spec.models.spec_models import FunctionalDataset
from cosmic_spec.models.spec_models import GenerationContext
from cosmic_spec.models.spec_models import GenerationLogEntry
from cosmic_spec.models.spec_models import GenerationMetadata
from cosmic_spec.models.spec_models import GenerationResult
from cosmic_spec.models.spec_models import PipelinePhase
from cosmic_spec.models.spec_models import ProgressEvent
from cosmic_spec.models.spec_models import ReasoningResult
from cosmic_spec.models.spec_models import RequirementDoc
from cosmic_spec.models.spec_models import TemplateAnalysis
from cosmic_spec.services import chapter_renderer
from cosmic_spec.services.classification_service import ClassificationStrategy
from cosmic_spec.services.classification_service import SingleBucketClassifier
from cosmic_spec.services.classification_service import verify_partition
from cosmic_spec.services.llm import TextGenerator
from cosmic_spec.services.optimization_service import OptimizationService
from cosmic_spec.services.quality_check_service import QualityCheckService
from cosmic_spec.services.reasoning_service import ReasoningService
from cosmic_spec.services.template_understanding_service import TemplateUnderstandingService

# Configure module logger
logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], Awaitable[None] | None]


class _ProgressReporter:
    """Forwards progress events, never letting the reported value go backwards."""

    def __init__(self, request_id: str, on_progress: ProgressCallback | None):
        self.request_id = request_id
        self.on_progress = on_progress
        self.last = 0.0

    async def emit(self, phase: PipelinePhase, message: str, progress: float) -> None:
        self.last = max(self.last, min(100.0, progress))
        logger.debug("[%s] Progress %.1f%% (%s): %s", self.request_id, self.last, phase, message)
        if self.on_progress is None:
            return
        result = self.on_progress(ProgressEvent(phase=phase, message=message, progress=self.last))
        if inspect.isawaitable(result):
            await result


class PipelineService:
    """Orchestrates the seven generation phases using dedicated step services."""

    def __init__(
        self,
        classifier: ClassificationStrategy | None = None,
        reasoner: ReasoningService | None = None,
        quality_checker: QualityCheckService | None = None,
        optimizer: OptimizationService | None = None,
        template_understanding: TemplateUnderstandingService | None = None,
    ):
        logger.info("Initializing PipelineService with step services")
        self.classifier = classifier or SingleBucketClassifier()
        self.reasoner = reasoner or ReasoningService()
        self.quality_checker = quality_checker or QualityCheckService()
        self.optimizer = optimizer or OptimizationService()
        self.template_understanding = template_understanding or TemplateUnderstandingService()

    async def run(
        self,
        text_generator: TextGenerator,
        functional_dataset: FunctionalDataset,
        template_analysis: TemplateAnalysis | None,
        requirement_doc: RequirementDoc | None,
        on_progress: ProgressCallback | None = None,
        request_id: str | None = None,
    ) -> GenerationResult:
        """Generate a requirement specification from a COSMIC dataset.

        Raises:
            PipelineError: classification, header, functional or footer generation
                failed, or an unexpected error occurred. No partial document is
                returned in that case.
        """
        request_id = request_id or str(uuid4())
        logger.info(
            "[%s] Starting pipeline run with %d functional processes", request_id, len(functional_dataset)
        )
        try:
            result = await self._run(
                request_id,
                text_generator,
                functional_dataset,
                template_analysis,
                requirement_doc,
                _ProgressReporter(request_id, on_progress),
            )
        except PipelineError as e:
            logger.error(
                "[%s] Pipeline run failed due to PipelineError: %s",
                request_id,
                str(e),
                exc_info=False,
            )
            raise
        except Exception as e:
            logger.exception("[%s] Pipeline run failed with unexpected error", request_id)
            raise PipelineError(f"An unexpected problem occurred in the pipeline: {str(e)}") from e

        logger.info(
            "[%s] Pipeline completed: %d chars, quality %d/100",
            request_id,
            len(result.content),
            result.quality_report.overall_score,
        )
        return result

    async def _run(
        self,
        request_id: str,
        text_generator: TextGenerator,
        dataset: FunctionalDataset,
        template_analysis: TemplateAnalysis | None,
        requirement_doc: RequirementDoc | None,
        progress: _ProgressReporter,
    ) -> GenerationResult:
        context = GenerationContext(
            requirement_doc=requirement_doc,
            template_analysis=template_analysis,
            cosmic_data=dataset,
        )
        log: list[GenerationLogEntry] = []
        process_names = list(dataset)
        total = len(process_names)

        # 1. Deep template understanding (optional)
        if template_analysis and template_analysis.original_template_text:
            await progress.emit("deep_analyze_template", "深度理解模板结构和要求...", 10)
            try:
                understanding = await self.template_understanding.analyze(
                    text_generator,
                    request_id,
                    template_analysis.original_template_text,
                    template_analysis.sections,
                )
            except Exception as e:
                logger.warning("[%s] Template understanding failed, continuing without it: %s", request_id, str(e))
                understanding = None
            context = context.model_copy(update={"deep_template_understanding": understanding})
            log.append(
                GenerationLogEntry(
                    phase="深度模板分析",
                    details="已完成多维度模板分析" if understanding else "模板分析不可用，使用默认写作风格",
                )
            )

        # 2. Per-function reasoning
        await progress.emit("intelligent_reasoning", "智能推理功能需求内容...", 25)
        reasoning_results: dict[str, ReasoningResult] = {}
        for done, name in enumerate(process_names, start=1):
            try:
                reasoning_results[name] = await self.reasoner.reason(
                    text_generator, request_id, name, dataset[name], context
                )
            except Exception as e:
                # The block still renders, with placeholders for every section.
                logger.warning("[%s] Reasoning for '%s' failed: %s", request_id, name, str(e))
            if done % settings.reasoning_progress_every == 0:
                await progress.emit("intelligent_reasoning", f"智能推理 ({done}/{total})...", 25 + done / total * 20)
        context = context.model_copy(update={"reasoning_results": reasoning_results})
        log.append(GenerationLogEntry(phase="智能推理", details=f"已完成{total}个功能的内容推理"))

        # 3. Header chapters
        await progress.emit("generate_header", "生成文档前置章节...", 50)
        try:
            header = chapter_renderer.render_header_chapters(context.requirement_doc, context.template_analysis)
        except Exception as e:
            logger.error("[%s] Header generation failed: %s", request_id, str(e))
            raise PipelineError(f"Header chapter generation failed: {str(e)}") from e
        document = header
        log.append(GenerationLogEntry(phase="前置章节生成", length=len(header)))

        # 4. Functional chapters
        await progress.emit("generate_functions", "生成功能需求章节...", 60)
        try:
            classification = await self.classifier.classify(process_names)
        except Exception as e:
            logger.error("[%s] Classification failed: %s", request_id, str(e))
            raise PipelineError(f"Functional classification failed: {str(e)}") from e
        verify_partition(classification, process_names)
        context = context.model_copy(update={"classification": classification})

        try:
            document += await self._render_functions(request_id, context, total, progress)
        except PipelineError:
            raise
        except Exception as e:
            logger.error("[%s] Functional chapter generation failed: %s", request_id, str(e))
            raise PipelineError(f"Functional chapter generation failed: {str(e)}") from e
        log.append(GenerationLogEntry(phase="功能需求生成", functions_generated=total))

        # 5. Footer chapters
        await progress.emit("generate_footer", "生成文档后置章节...", 92)
        try:
            footer = chapter_renderer.render_footer_chapters(context.template_analysis)
        except Exception as e:
            logger.error("[%s] Footer generation failed: %s", request_id, str(e))
            raise PipelineError(f"Footer chapter generation failed: {str(e)}") from e
        document += footer
        log.append(GenerationLogEntry(phase="后置章节生成", length=len(footer)))

        # 6. Quality check
        await progress.emit("quality_check", "进行质量检查...", 95)
        report = await self.quality_checker.check(
            document, context.template_analysis, dataset, text_generator, request_id
        )
        log.append(GenerationLogEntry(phase="质量检查", score=report.overall_score, issues=len(report.issues)))

        # 7. Optimization, only below the threshold
        if report.overall_score < settings.optimization_threshold:
            await progress.emit("optimization", "根据质量报告优化文档...", 97)
            document = await self.optimizer.optimize(document, report, context, text_generator, request_id)
            log.append(GenerationLogEntry(phase="内容优化", optimized=True))
        else:
            logger.info(
                "[%s] Quality %d >= %d, optimization skipped",
                request_id,
                report.overall_score,
                settings.optimization_threshold,
            )

        await progress.emit("complete", "需求规格说明书生成完成", 100)
        return GenerationResult(
            content=document,
            quality_report=report,
            generation_log=log,
            metadata=GenerationMetadata(
                total_functions=total,
                generated_at=datetime.now(timezone.utc).isoformat(),
                version=settings.generator_version,
            ),
        )

    async def _render_functions(
        self,
        request_id: str,
        context: GenerationContext,
        total: int,
        progress: _ProgressReporter,
    ) -> str:
        base = chapter_renderer.functional_chapter_number(context.template_analysis)
        content = chapter_renderer.render_functional_chapter_heading(context.template_analysis)
        rendered = 0
        for s_idx, (subsystem, modules) in enumerate((context.classification or {}).items(), start=1):
            content += chapter_renderer.render_subsystem_heading(
                chapter_renderer.section_number(base, s_idx), subsystem
            )
            for m_idx, (module, names) in enumerate(modules.items(), start=1):
                content += chapter_renderer.render_module_heading(
                    chapter_renderer.section_number(base, s_idx, m_idx), module
                )
                for p_idx, name in enumerate(names, start=1):
                    content += chapter_renderer.render_function_block(
                        name,
                        context.reasoning_results.get(name),
                        chapter_renderer.section_number(base, s_idx, m_idx, p_idx),
                    )
                    rendered += 1
                    if rendered % settings.rendering_progress_every == 0:
                        await progress.emit(
                            "generate_functions", f"生成功能 {rendered}/{total}...", 60 + rendered / total * 30
                        )
        logger.debug("[%s] Rendered %d of %d functional blocks", request_id, rendered, total)
        return content
