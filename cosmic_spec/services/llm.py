import json
import logging
import pathlib
import re
from typing import Any
from typing import Protocol
from typing import TypeVar
from uuid import uuid4

import httpx
import jinja2
from openai import AsyncOpenAI
from openai import OpenAIError
from pydantic import BaseModel
from pydantic import ValidationError
from tenacity import RetryCallState
from tenacity import RetryError
from tenacity import retry
from tenacity import stop_after_attempt
from tenacity import wait_exponential

from cosmic_spec.core.config import settings
from cosmic_spec.core.exceptions import ConfigurationError

# Configure module logger
logger = logging.getLogger(__name__)

ResponseT = TypeVar("ResponseT", bound=BaseModel)


class LLMError(Exception):
    """Raised when the text-generation capability fails"""


class JSONParsingError(Exception):
    """Raised when a completion does not contain parseable JSON"""


class UnparseableResponseError(JSONParsingError):
    """Raised when the JSON of a completion does not match the expected response contract"""


# --- Reusable Jinja2 Environment ---
PROMPT_DIR = pathlib.Path(__file__).parent / "prompt_templates"
env: jinja2.Environment | None = None
try:
    loader = jinja2.FileSystemLoader(PROMPT_DIR)
    env = jinja2.Environment(loader=loader, keep_trailing_newline=True)
    logger.debug("Jinja2 environment initialized successfully for path: %s", PROMPT_DIR)
except Exception:
    logger.exception("Failed to initialize Jinja2 environment at %s", PROMPT_DIR)
    env = None


class TextGenerator(Protocol):
    """The text-generation capability: prompt messages in, completion text out."""

    async def complete(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float = 0.2,
        max_tokens: int = 3000,
    ) -> str: ...


# ---------------------------------------------------------------
# OpenAI-compatible client (async), created on first use
# ---------------------------------------------------------------
timeout_config = httpx.Timeout(
    settings.LLM_CONNECT_TIMEOUT,
    read=settings.LLM_READ_TIMEOUT,
)

_client: AsyncOpenAI | None = None


def get_client() -> AsyncOpenAI:
    global _client
    if _client is None:
        if not settings.openai_api_key:
            raise LLMError("No API key configured for the text-generation endpoint (OPENAI_API_KEY).")
        _client = AsyncOpenAI(
            base_url=settings.llm_base_url,
            api_key=settings.openai_api_key,
            timeout=timeout_config,
            max_retries=2,
        )
    return _client


# ---------------------------------------------------------------
# Helper predicate for tenacity retry
# ---------------------------------------------------------------


def _should_retry_llm_call(retry_state: RetryCallState) -> bool:
    """Determines if a retry should occur based on the exception in RetryCallState."""
    if not retry_state.outcome:
        return False

    exc = retry_state.outcome.exception()
    if not exc:
        return False

    # Unwrap our custom LLMError to get to the original cause (e.g., OpenAIError)
    actual_exception = exc.__cause__ if isinstance(exc, LLMError) and exc.__cause__ else exc

    status = getattr(actual_exception, "status", None) or getattr(actual_exception, "status_code", None)
    if status in {429, 500, 502, 503, 504}:
        logger.debug("Retryable API error status %s detected. Retrying...", status)
        return True
    return False


@retry(
    wait=wait_exponential(multiplier=1, min=2, max=10),
    stop=stop_after_attempt(3),
    retry=_should_retry_llm_call,
)  # type: ignore
async def call_llm(
    messages: list[dict[str, str]],
    temperature: float = 0.2,
    max_tokens: int = 3000,
) -> str:
    request_id = str(uuid4())
    logger.info("[%s] Making LLM API call with model: %s", request_id, settings.model_id)

    try:
        rsp = await get_client().chat.completions.create(
            model=settings.model_id,
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
            timeout=timeout_config,
        )

        if not rsp or not getattr(rsp, "choices", None):
            logger.error("[%s] Invalid response structure from LLM API: %s", request_id, str(rsp))
            raise LLMError(f"Invalid response structure from LLM API: {str(rsp)}")

        first_choice = rsp.choices[0]
        if getattr(first_choice, "message", None) is None:
            logger.error("[%s] Missing 'message' in LLM API response: %s", request_id, str(first_choice))
            raise LLMError(f"Missing 'message' in LLM API response: {str(first_choice)}")

        content = (first_choice.message.content or "").strip()
        logger.debug("[%s] LLM response received, length: %d chars", request_id, len(content))
        return content
    except LLMError:
        raise
    except OpenAIError as e:
        # tenacity decides whether to retry based on the wrapped cause.
        logger.error("[%s] OpenAI API error: %s", request_id, str(e))
        raise LLMError(f"OpenAI API error: {str(e)}") from e
    except Exception as e:
        logger.exception("[%s] Unexpected error in LLM call", request_id)
        raise LLMError(f"Unexpected error in LLM call: {str(e)}") from e


class OpenAITextGenerator:
    """Default capability backed by an OpenAI-compatible chat completion endpoint."""

    async def complete(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float = 0.2,
        max_tokens: int = 3000,
    ) -> str:
        try:
            return await call_llm(messages, temperature=temperature, max_tokens=max_tokens)
        except RetryError as e:
            last_exc = e.last_attempt.exception()
            raise LLMError(f"LLM call failed after retries: {last_exc}") from last_exc


# ---------------------------------------------------------------
# Strict response parsing
# ---------------------------------------------------------------
_FENCED_BLOCK = re.compile(r"^```(?:json)?\s*\n?(.*?)\n?\s*```$", re.DOTALL)


def extract_json(text: str) -> Any:
    """Parse a completion that is either bare JSON or a single fenced JSON block.

    Anything else (prose around the JSON, several blocks, truncated output) is
    rejected instead of guessed at.
    """
    if not isinstance(text, str):
        raise JSONParsingError(f"Expected completion text, got {type(text).__name__}")

    stripped = text.strip()
    match = _FENCED_BLOCK.match(stripped)
    candidate = match.group(1) if match else stripped
    try:
        return json.loads(candidate)
    except json.JSONDecodeError as e:
        logger.debug("JSON parse failed at pos %d: %s", e.pos, candidate[:200])
        raise JSONParsingError(f"Completion is not valid JSON: {e.msg}") from e


def parse_llm_response(text: str, response_model: type[ResponseT]) -> ResponseT:
    """Parse *text* into *response_model*, raising UnparseableResponseError on any mismatch."""
    data = extract_json(text)
    if not isinstance(data, dict):
        raise UnparseableResponseError(
            f"Expected a JSON object for {response_model.__name__}, got {type(data).__name__}"
        )
    try:
        return response_model.model_validate(data)
    except ValidationError as e:
        raise UnparseableResponseError(
            f"Response does not match {response_model.__name__}: {e.error_count()} validation error(s)"
        ) from e


# ---------------------------------------------------------------
# Prompt rendering and LLM steps
# ---------------------------------------------------------------


def render_prompt(template_name: str, context: dict[str, Any]) -> str:
    if env is None:
        logger.error("Jinja2 environment not initialized for template %s", template_name)
        raise ConfigurationError("Internal configuration error: Template environment not available.")
    try:
        return env.get_template(template_name).render(**context)
    except jinja2.TemplateNotFound:
        logger.error("Template not found: %s", template_name)
        raise ConfigurationError(f"Internal configuration error: Template '{template_name}' not found.") from None


def build_messages(system_prompt: str, user_prompt: str) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_prompt},
    ]


async def execute_llm_step_with_template(
    text_generator: TextGenerator,
    request_id: str,
    step_name: str,
    template_name: str,
    context: dict[str, Any],
    response_model: type[ResponseT],
    system_prompt: str,
    temperature: float = 0.1,
    max_tokens: int = 1500,
) -> ResponseT:
    """Executes a single structured LLM step: render template, call capability, parse strictly.

    Raises LLMError when the capability fails and JSONParsingError (or its
    UnparseableResponseError subclass) when the completion breaks the contract.
    """
    logger.debug("[%s] Executing LLM step: %s", request_id, step_name)
    prompt = render_prompt(template_name, context)
    try:
        raw_response = await text_generator.complete(
            build_messages(system_prompt, prompt),
            temperature=temperature,
            max_tokens=max_tokens,
        )
    except LLMError:
        raise
    except Exception as e:
        raise LLMError(f"Capability failure during '{step_name}' step: {str(e)}") from e

    try:
        data = parse_llm_response(raw_response, response_model)
    except JSONParsingError as e:
        logger.warning("[%s] Unparseable response for step '%s': %s", request_id, step_name, str(e))
        raise

    logger.debug("[%s] Successfully executed LLM step: %s", request_id, step_name)
    return data


async def generate_text_with_template(
    text_generator: TextGenerator,
    request_id: str,
    step_name: str,
    template_name: str,
    context: dict[str, Any],
    system_prompt: str,
    temperature: float = 0.7,
    max_tokens: int = 1500,
) -> str:
    """Free-text variant of execute_llm_step_with_template; empty completions count as failures."""
    logger.debug("[%s] Executing LLM text step: %s", request_id, step_name)
    prompt = render_prompt(template_name, context)
    try:
        text = await text_generator.complete(
            build_messages(system_prompt, prompt),
            temperature=temperature,
            max_tokens=max_tokens,
        )
    except LLMError:
        raise
    except Exception as e:
        raise LLMError(f"Capability failure during '{step_name}' step: {str(e)}") from e

    text = (text or "").strip()
    if not text:
        raise LLMError(f"Empty completion for '{step_name}' step.")
    return text
