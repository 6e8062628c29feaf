from typing import Any
from typing import Literal

from pydantic import AliasChoices
from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import field_validator

PipelinePhase = Literal[
    "deep_analyze_template",
    "intelligent_reasoning",
    "generate_header",
    "generate_functions",
    "generate_footer",
    "quality_check",
    "optimization",
    "complete",
]

QUALITY_CHECK_NAMES: tuple[str, ...] = (
    "structural_integrity",
    "content_completeness",
    "template_compliance",
    "data_consistency",
    "language_quality",
    "format_correctness",
)


def _alias(*names: str) -> AliasChoices:
    return AliasChoices(*names)


class _InputModel(BaseModel):
    """Base for models loaded from external providers (camelCase or snake_case keys)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)


# ---------------------------------------------------------------------------
# Functional dataset (COSMIC decomposition)
# ---------------------------------------------------------------------------


class DataMovementRow(_InputModel):
    """A single COSMIC data movement of a functional process."""

    functional_user: str = Field(default="", validation_alias=_alias("functional_user", "functionalUser"))
    trigger_event: str = Field(default="", validation_alias=_alias("trigger_event", "triggerEvent"))
    functional_process: str = Field(default="", validation_alias=_alias("functional_process", "functionalProcess"))
    sub_process_description: str = Field(
        default="",
        validation_alias=_alias("sub_process_description", "subProcessDescription", "subProcessDesc"),
    )
    data_movement_type: str = Field(default="", validation_alias=_alias("data_movement_type", "dataMovementType"))
    data_group: str = Field(default="", validation_alias=_alias("data_group", "dataGroup"))
    data_attributes: str = Field(default="", validation_alias=_alias("data_attributes", "dataAttributes"))

    @field_validator("*", mode="before")
    @classmethod
    def coerce_to_text(cls, v: Any) -> str:
        if v is None:
            return ""
        return v if isinstance(v, str) else str(v)


# Insertion order of the mapping drives numbering of the rendered document.
FunctionalDataset = dict[str, list[DataMovementRow]]


# ---------------------------------------------------------------------------
# Template analysis
# ---------------------------------------------------------------------------


class SectionInfo(_InputModel):
    number: str
    title: str
    level: int = 1

    @field_validator("number", mode="before")
    @classmethod
    def number_as_text(cls, v: Any) -> str:
        return str(v)


class ChapterInfo(SectionInfo):
    required: bool = True


class FunctionalChapterInfo(_InputModel):
    number: str = "5"

    @field_validator("number", mode="before")
    @classmethod
    def number_as_text(cls, v: Any) -> str:
        return str(v)


class TemplateAnalysis(_InputModel):
    """Required skeleton of the target document."""

    original_template_text: str = Field(
        default="", validation_alias=_alias("original_template_text", "originalTemplateText")
    )
    sections: list[SectionInfo] = Field(default_factory=list)
    # None means the template carries no chapter metadata at all.
    all_chapters: list[ChapterInfo] | None = Field(default=None, validation_alias=_alias("all_chapters", "allChapters"))
    functional_chapter: FunctionalChapterInfo | None = Field(
        default=None, validation_alias=_alias("functional_chapter", "functionalChapter")
    )


# ---------------------------------------------------------------------------
# Requirement document
# ---------------------------------------------------------------------------


class ProjectAnalysis(_InputModel):
    project_name: str | None = Field(default=None, validation_alias=_alias("project_name", "projectName"))
    project_description: str | None = Field(
        default=None, validation_alias=_alias("project_description", "projectDescription")
    )
    business_goals: list[str] = Field(default_factory=list, validation_alias=_alias("business_goals", "businessGoals"))


class RequirementDoc(_InputModel):
    full_text: str = Field(default="", validation_alias=_alias("full_text", "fullText"))
    ai_analysis: ProjectAnalysis | None = Field(default=None, validation_alias=_alias("ai_analysis", "aiAnalysis"))


# ---------------------------------------------------------------------------
# Reasoning results
# ---------------------------------------------------------------------------


class BusinessRule(_InputModel):
    id: str | None = None
    name: str | None = None
    condition: str | None = None
    logic: str | None = None


class DataItem(_InputModel):
    field_name: str | None = Field(default=None, validation_alias=_alias("field_name", "fieldName"))
    field_type: str | None = Field(default=None, validation_alias=_alias("field_type", "fieldType"))
    length: str | None = None
    required: str | None = None
    description: str | None = None
    source: str | None = None


class InterfaceParam(_InputModel):
    param_name: str | None = Field(default=None, validation_alias=_alias("param_name", "paramName"))
    param_type: str | None = Field(default=None, validation_alias=_alias("param_type", "paramType"))
    required: str | None = None
    description: str | None = None


class InterfaceDefinition(_InputModel):
    method: str | None = None
    url: str | None = None
    request_params: list[InterfaceParam] = Field(
        default_factory=list, validation_alias=_alias("request_params", "requestParams")
    )
    response_params: list[InterfaceParam] = Field(
        default_factory=list, validation_alias=_alias("response_params", "responseParams")
    )


class UIInputField(_InputModel):
    label: str
    type: str = "text"
    required: bool = False


class UIDisplayField(_InputModel):
    label: str
    format: str = "text"


class UIButton(_InputModel):
    label: str
    action: str | None = None


class UIElements(_InputModel):
    input_fields: list[UIInputField] = Field(default_factory=list, validation_alias=_alias("input_fields", "inputFields"))
    display_fields: list[UIDisplayField] = Field(
        default_factory=list, validation_alias=_alias("display_fields", "displayFields")
    )
    buttons: list[UIButton] = Field(default_factory=list)


class AcceptanceCriterion(_InputModel):
    id: str | None = None
    scenario: str | None = None
    precondition: str | None = None
    steps: list[str] = Field(default_factory=list)
    expected: str | None = None


class InferredContent(_InputModel):
    function_description: str | None = Field(
        default=None, validation_alias=_alias("function_description", "functionDescription")
    )
    business_rules: list[BusinessRule] = Field(
        default_factory=list, validation_alias=_alias("business_rules", "businessRules")
    )
    data_items: list[DataItem] = Field(default_factory=list, validation_alias=_alias("data_items", "dataItems"))
    interface_definition: InterfaceDefinition | None = Field(
        default=None, validation_alias=_alias("interface_definition", "interfaceDefinition")
    )
    ui_elements: UIElements | None = Field(default=None, validation_alias=_alias("ui_elements", "uiElements"))
    acceptance_criteria: list[AcceptanceCriterion] = Field(
        default_factory=list, validation_alias=_alias("acceptance_criteria", "acceptanceCriteria")
    )


class ReasoningResult(_InputModel):
    """Inferred content for one functional process."""

    function_name: str = Field(default="", validation_alias=_alias("function_name", "functionName"))
    inferred_content: InferredContent = Field(
        default_factory=InferredContent, validation_alias=_alias("inferred_content", "inferredContent")
    )


# ---------------------------------------------------------------------------
# Deep template understanding
# ---------------------------------------------------------------------------


class TemplateExamples(BaseModel):
    tables: list[str] = Field(default_factory=list)
    business_rules: list[str] = Field(default_factory=list)


class TemplateUnderstanding(BaseModel):
    structural_analysis: dict[str, Any] | None = None
    style_analysis: dict[str, Any] | None = None
    examples: TemplateExamples = Field(default_factory=TemplateExamples)


# ---------------------------------------------------------------------------
# Pipeline state
# ---------------------------------------------------------------------------

# subsystem -> module -> ordered process names
Classification = dict[str, dict[str, list[str]]]


class GenerationContext(BaseModel):
    """Run-scoped state; every phase produces an updated copy instead of mutating it."""

    model_config = ConfigDict(frozen=True)

    requirement_doc: RequirementDoc | None = None
    template_analysis: TemplateAnalysis | None = None
    cosmic_data: dict[str, list[DataMovementRow]] = Field(default_factory=dict)
    deep_template_understanding: TemplateUnderstanding | None = None
    reasoning_results: dict[str, ReasoningResult] = Field(default_factory=dict)
    classification: dict[str, dict[str, list[str]]] | None = None


class GenerationLogEntry(BaseModel):
    phase: str
    status: str = "完成"
    details: str | None = None
    length: int | None = None
    functions_generated: int | None = None
    score: int | None = None
    issues: int | None = None
    optimized: bool | None = None


class ProgressEvent(BaseModel):
    phase: PipelinePhase
    message: str
    progress: float = Field(ge=0, le=100)


# ---------------------------------------------------------------------------
# Quality report
# ---------------------------------------------------------------------------


class CheckResult(BaseModel):
    score: int = 100
    issues: list[str] = Field(default_factory=list)
    details: dict[str, Any] = Field(default_factory=dict)


class QualityChecks(BaseModel):
    structural_integrity: CheckResult | None = None
    content_completeness: CheckResult | None = None
    template_compliance: CheckResult | None = None
    data_consistency: CheckResult | None = None
    language_quality: CheckResult | None = None
    format_correctness: CheckResult | None = None

    def items(self) -> list[tuple[str, CheckResult | None]]:
        return [(name, getattr(self, name)) for name in QUALITY_CHECK_NAMES]


class QualityReport(BaseModel):
    overall_score: int = 0
    checks: QualityChecks = Field(default_factory=QualityChecks)
    issues: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    passed_checks: list[str] = Field(default_factory=list)
    failed_checks: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Run result
# ---------------------------------------------------------------------------


class GenerationMetadata(BaseModel):
    total_functions: int
    generated_at: str
    version: str


class GenerationResult(BaseModel):
    content: str
    quality_report: QualityReport
    generation_log: list[GenerationLogEntry]
    metadata: GenerationMetadata
