"""Typed response contracts for every structured text-generation request.

A completion that is not valid JSON, or whose JSON does not satisfy the model
for its request, is reported as an unparseable response by ``services.llm``.
"""

from typing import Annotated
from typing import Any

from pydantic import AliasChoices
from pydantic import BaseModel
from pydantic import BeforeValidator
from pydantic import ConfigDict
from pydantic import Field

from cosmic_spec.models.spec_models import BusinessRule


def _text_items(v: Any) -> list[str]:
    """Models sometimes return objects instead of strings inside issue lists."""
    if v is None:
        return []
    if not isinstance(v, list):
        raise ValueError("expected a list")
    items: list[str] = []
    for item in v:
        if isinstance(item, str):
            items.append(item)
        elif isinstance(item, dict):
            items.append("; ".join(str(value) for value in item.values()))
        else:
            items.append(str(item))
    return items


TextList = Annotated[list[str], BeforeValidator(_text_items)]


class _LLMResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ComplianceResponse(_LLMResponse):
    compliance_score: float = Field(ge=0, le=100, validation_alias=AliasChoices("compliance_score", "complianceScore"))
    issues: TextList = Field(default_factory=list)
    strengths: TextList = Field(default_factory=list)


class LanguageQualityResponse(_LLMResponse):
    quality_score: float = Field(ge=0, le=100, validation_alias=AliasChoices("quality_score", "qualityScore"))
    grammar_errors: TextList = Field(
        default_factory=list, validation_alias=AliasChoices("grammar_errors", "grammarErrors")
    )
    typos: TextList = Field(default_factory=list)
    suggestions: TextList = Field(default_factory=list)


class OptimizationItem(_LLMResponse):
    issue: str = ""
    original: str = ""
    optimized: str = ""


class OptimizationResponse(_LLMResponse):
    optimizations: list[OptimizationItem]


class BusinessRulesResponse(_LLMResponse):
    rules: list[BusinessRule]


class TemplateStructureResponse(_LLMResponse):
    numbering_pattern: str | None = Field(
        default=None, validation_alias=AliasChoices("numbering_pattern", "numberingPattern")
    )
    required_chapters: TextList = Field(
        default_factory=list, validation_alias=AliasChoices("required_chapters", "requiredChapters")
    )
    optional_chapters: TextList = Field(
        default_factory=list, validation_alias=AliasChoices("optional_chapters", "optionalChapters")
    )
    function_sections: TextList = Field(
        default_factory=list, validation_alias=AliasChoices("function_sections", "functionSections")
    )
    structural_patterns: TextList = Field(
        default_factory=list, validation_alias=AliasChoices("structural_patterns", "structuralPatterns")
    )


class TemplateStyleResponse(_LLMResponse):
    tone: str | None = None
    sentence_style: str | None = Field(default=None, validation_alias=AliasChoices("sentence_style", "sentenceStyle"))
    terminology: TextList = Field(default_factory=list)
    writing_guidelines: TextList = Field(
        default_factory=list, validation_alias=AliasChoices("writing_guidelines", "writingGuidelines")
    )
