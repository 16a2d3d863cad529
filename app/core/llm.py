"""Structured generation client.

Wraps the Anthropic / OpenAI SDKs behind a single `call_structured` coroutine
that extracts JSON from free-form model output, repairs known shape quirks,
validates against a pydantic target and retries with linear backoff.
"""

import asyncio
import json
import re
import time
from typing import Any, TypeVar, get_origin

from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from app.core.config import Settings, get_settings
from app.core.exceptions import GenerationError, OutputValidationError, ProviderError
from app.core.logging import get_logger
from app.core.shape_repair import apply_repair_rules

logger = get_logger(__name__)

T = TypeVar("T")

JSON_ONLY_SUFFIX = (
    "\n\nIMPORTANT: Return ONLY valid JSON, no markdown, no explanation, no code fences."
)
OPENAI_SYSTEM_PROMPT = (
    "You are a privacy assessment analyst. Always respond with valid JSON only."
)

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)
_CLOSERS = {"{": "}", "[": "]"}


# =============================================================================
# JSON extraction
# =============================================================================


def _match_span(text: str, start: int) -> int | None:
    """Return the index of the bracket closing text[start], or None if unbalanced."""
    stack: list[str] = []
    in_string = False
    escaped = False

    for i in range(start, len(text)):
        char = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char in _CLOSERS:
            stack.append(_CLOSERS[char])
        elif char in "}]":
            if not stack or stack.pop() != char:
                return None
            if not stack:
                return i

    return None


def extract_json(raw_output: str) -> str:
    """
    Extract the JSON payload from raw model output.

    Prefers the content of a fenced code block. Otherwise returns the
    earliest-starting well-matched `{...}` or `[...]` span, so a leading
    array wins over a later object and vice versa. A matched span that does
    not parse (e.g. "{name}" in prose) does not shadow a later valid payload.

    Args:
        raw_output: Raw string from the model

    Returns:
        Candidate JSON text (the stripped input when nothing matched)
    """
    fence_match = _FENCE_RE.search(raw_output)
    if fence_match:
        return fence_match.group(1).strip()

    first_matched: str | None = None
    skip_until = -1
    for start, char in enumerate(raw_output):
        if start <= skip_until or char not in _CLOSERS:
            continue
        end = _match_span(raw_output, start)
        if end is None:
            continue
        candidate = raw_output[start : end + 1]
        try:
            json.loads(candidate)
            return candidate
        except json.JSONDecodeError:
            # Spans nested inside a malformed payload are not the payload
            skip_until = end
            if first_matched is None:
                first_matched = candidate

    if first_matched is not None:
        return first_matched
    return raw_output.strip()


# =============================================================================
# Providers
# =============================================================================


def _resolve_provider(settings: Settings, provider: str | None = None) -> str:
    """Pick the provider: explicit arg, then LLM_PROVIDER, then whichever key is set."""
    chosen = provider or settings.LLM_PROVIDER
    if chosen:
        if chosen not in ("anthropic", "openai"):
            raise GenerationError(f"Unknown LLM provider '{chosen}'")
        return chosen
    if settings.ANTHROPIC_API_KEY:
        return "anthropic"
    if settings.OPENAI_API_KEY:
        return "openai"
    raise GenerationError("No LLM API key configured. Set ANTHROPIC_API_KEY or OPENAI_API_KEY.")


async def _call_anthropic(prompt: str, model: str, temperature: float, settings: Settings) -> str:
    from anthropic import APIError, AsyncAnthropic

    client = AsyncAnthropic(api_key=settings.ANTHROPIC_API_KEY)
    try:
        response = await client.messages.create(
            model=model,
            max_tokens=settings.LLM_MAX_TOKENS,
            temperature=temperature,
            messages=[{"role": "user", "content": prompt + JSON_ONLY_SUFFIX}],
        )
    except APIError as e:
        raise ProviderError(f"Anthropic API error: {e}", details={"model": model}) from e

    return "".join(block.text for block in response.content if hasattr(block, "text"))


async def _call_openai(prompt: str, model: str, temperature: float, settings: Settings) -> str:
    from openai import APIError, AsyncOpenAI

    client = AsyncOpenAI(api_key=settings.OPENAI_API_KEY)
    try:
        response = await client.chat.completions.create(
            model=model,
            temperature=temperature,
            response_format={"type": "json_object"},
            messages=[
                {"role": "system", "content": OPENAI_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
        )
    except APIError as e:
        raise ProviderError(f"OpenAI API error: {e}", details={"model": model}) from e

    return response.choices[0].message.content or ""


async def _call_provider(
    provider: str,
    prompt: str,
    model: str,
    temperature: float,
    settings: Settings,
) -> str:
    if provider == "anthropic":
        return await _call_anthropic(prompt, model, temperature, settings)
    return await _call_openai(prompt, model, temperature, settings)


# =============================================================================
# Structured call
# =============================================================================


def _validate(parsed: Any, schema: Any) -> Any:
    if get_origin(schema) is None and isinstance(schema, type) and issubclass(schema, BaseModel):
        return schema.model_validate(parsed)
    return TypeAdapter(schema).validate_python(parsed)


def _summarize_error(error: Exception) -> str:
    """Describe a failure without echoing raw model output."""
    if isinstance(error, PydanticValidationError):
        errors = error.errors()
        shown = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
            for err in errors[:5]
        )
        more = f" (+{len(errors) - 5} more)" if len(errors) > 5 else ""
        return f"{len(errors)} validation error(s): {shown}{more}"
    if isinstance(error, json.JSONDecodeError):
        return f"invalid JSON: {error.msg} at line {error.lineno} column {error.colno}"
    return str(error)


async def call_structured(
    prompt: str,
    schema: type[T] | Any,
    *,
    temperature: float = 0.1,
    max_retries: int | None = None,
    model: str | None = None,
    provider: str | None = None,
    component: str = "llm",
) -> T:
    """
    Call an LLM and validate its JSON response against a target schema.

    Each attempt: provider call -> extract_json -> json.loads ->
    apply_repair_rules -> validation. A failed attempt waits
    `LLM_RETRY_BASE_DELAY_S x attempt_number` before the next one.

    Args:
        prompt: Full user prompt
        schema: Pydantic model class or any TypeAdapter-compatible type (e.g. list[Model])
        temperature: Sampling temperature
        max_retries: Retries after the first attempt (defaults to LLM_MAX_RETRIES)
        model: Model override
        provider: Provider override ("anthropic" or "openai")
        component: Caller name for logs

    Returns:
        Validated instance of `schema`

    Raises:
        GenerationError: No provider configured
        ProviderError: Last attempt failed at the provider
        OutputValidationError: Last attempt produced unusable output
    """
    settings = get_settings()
    resolved_provider = _resolve_provider(settings, provider)
    retries = settings.LLM_MAX_RETRIES if max_retries is None else max_retries
    attempts = retries + 1
    model_name = model or (
        settings.ANTHROPIC_MODEL if resolved_provider == "anthropic" else settings.OPENAI_MODEL
    )

    last_error: Exception | None = None

    for attempt in range(1, attempts + 1):
        started = time.monotonic()
        try:
            raw_output = await _call_provider(
                resolved_provider, prompt, model_name, temperature, settings
            )
            logger.debug(
                f"[{component}] raw output received",
                extra={
                    "provider": resolved_provider,
                    "llm_model": model_name,
                    "duration_ms": int((time.monotonic() - started) * 1000),
                    "output_preview": raw_output[:500],
                },
            )

            parsed = json.loads(extract_json(raw_output))
            repaired = apply_repair_rules(parsed)
            return _validate(repaired, schema)

        except (ProviderError, json.JSONDecodeError, PydanticValidationError) as e:
            last_error = e
            logger.warning(
                f"[{component}] LLM call attempt {attempt}/{attempts} failed: "
                f"{_summarize_error(e)}"
            )
            if attempt < attempts:
                await asyncio.sleep(settings.LLM_RETRY_BASE_DELAY_S * attempt)

    error_cls = ProviderError if isinstance(last_error, ProviderError) else OutputValidationError
    summary = _summarize_error(last_error) if last_error else "unknown error"
    logger.error(f"[{component}] LLM call failed after {attempts} attempts: {summary}")
    raise error_cls(
        f"LLM call failed after {attempts} attempts: {summary}",
        details={"component": component, "attempts": attempts, "provider": resolved_provider},
        last_error=last_error,
    ) from last_error
