"""Application configuration settings.

This module defines the application-wide settings using Pydantic's BaseSettings.
It allows for loading configurations from environment variables and .env files,
providing type validation and default values.
"""

from pydantic import Field
from pydantic import field_validator
from pydantic_settings import BaseSettings

DEFAULT_LLM_BASE_URL = "https://open.bigmodel.cn/api/paas/v4"


class Settings(BaseSettings):
    """Manages application settings, loading them from environment variables or an .env file.

    Attributes:
        openai_api_key: API key for the OpenAI-compatible completion endpoint.
        llm_base_url: Base URL of the OpenAI-compatible completion endpoint.
        model_id: Identifier for the language model to be used.
        LLM_CONNECT_TIMEOUT: LLM client connect timeout in seconds.
        LLM_READ_TIMEOUT: LLM client read timeout in seconds.
        optimization_threshold: Overall quality score below which the optimization pass runs.
        optimization_max_issues: Number of report issues sent to the optimization prompt.
        optimization_sample_chars: Characters of the document shown to the optimization prompt.
        compliance_content_sample_chars: Characters of the document shown to the compliance check.
        compliance_template_sample_chars: Characters of the template shown to the compliance check.
        language_sample_paragraphs: Number of prose paragraphs sampled for the language check.
        default_functional_chapter: Functional-requirements chapter number when the template has none.
        reasoning_progress_every: Progress cadence (in functions) during reasoning.
        rendering_progress_every: Progress cadence (in functions) during rendering.
        generator_version: Version string stamped into the run metadata.
    """

    openai_api_key: str | None = Field(default=None)
    llm_base_url: str = Field(default=DEFAULT_LLM_BASE_URL)
    model_id: str = Field(default="glm-4-flash")

    LLM_CONNECT_TIMEOUT: float = Field(default=10.0, description="LLM client connect timeout in seconds.")
    LLM_READ_TIMEOUT: float = Field(default=180.0, description="LLM client read timeout in seconds.")

    optimization_threshold: int = Field(default=80)
    optimization_max_issues: int = Field(default=5)
    optimization_sample_chars: int = Field(default=10_000)
    compliance_content_sample_chars: int = Field(default=8_000)
    compliance_template_sample_chars: int = Field(default=5_000)
    language_sample_paragraphs: int = Field(default=5)

    default_functional_chapter: str = Field(default="5")
    reasoning_progress_every: int = Field(default=3)
    rendering_progress_every: int = Field(default=2)
    generator_version: str = Field(default="2.0-enhanced")

    model_config = {
        "env_file": ".env",
        "protected_namespaces": ("settings_",),
        "env_prefix": "",  # No prefix for environment variables
        "extra": "ignore",  # Ignore extra fields
    }

    @field_validator("reasoning_progress_every", "rendering_progress_every", mode="before")  # type: ignore
    @classmethod
    def ensure_positive_cadence(cls, v: int | str | None) -> int:
        """Progress cadences must be at least 1; anything lower falls back to every function.

        Args:
            v: The value from the environment or direct assignment.

        Returns:
            A cadence of at least 1.
        """
        try:
            value = int(v) if v is not None else 1
        except (TypeError, ValueError):
            return 1
        return max(1, value)


settings = Settings()
