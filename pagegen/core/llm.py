"""Generative backend (Anthropic Messages API) and LLM output parsing."""

import json
import re
import time
from functools import lru_cache

import httpx
from anthropic import Anthropic

from pagegen.core.config import get_settings
from pagegen.core.llm_usage import log_llm_usage
from pagegen.core.logging import get_logger

logger = get_logger(__name__)


@lru_cache(maxsize=1)
def _get_client() -> Anthropic:
    """Anthropic client with bounded connect/overall timeouts and a small retry budget."""
    settings = get_settings()
    return Anthropic(
        api_key=settings.ANTHROPIC_API_KEY,
        timeout=httpx.Timeout(
            settings.BACKEND_TIMEOUT_S, connect=settings.BACKEND_CONNECT_TIMEOUT_S
        ),
        max_retries=settings.BACKEND_MAX_RETRIES,
    )


def invoke_claude(
    system_prompt: str,
    user_payload: str,
    *,
    model: str,
    max_tokens: int = 2000,
    temperature: float = 0.2,
    chain: str | None = None,
) -> str:
    """
    Send one system + user message pair and return the concatenated text output.

    Args:
        system_prompt: System instructions
        user_payload: User message content
        model: Model id
        max_tokens: Output token cap
        temperature: Sampling temperature
        chain: Chain name recorded in usage telemetry

    Returns:
        Raw text of the response

    Raises:
        anthropic.APIError: On transport or API failure (after client retries)
    """
    start = time.time()
    response = _get_client().messages.create(
        model=model,
        max_tokens=max_tokens,
        temperature=temperature,
        system=system_prompt,
        messages=[{"role": "user", "content": user_payload}],
    )
    duration_ms = int((time.time() - start) * 1000)

    usage = response.usage
    log_llm_usage(
        workflow="generate_page",
        chain=chain,
        model=model,
        provider="anthropic",
        tokens_input=usage.input_tokens,
        tokens_output=usage.output_tokens,
        duration_ms=duration_ms,
    )

    text = "".join(block.text for block in response.content if getattr(block, "type", "") == "text")
    logger.debug(
        f"{chain or 'llm'} call finished in {duration_ms}ms "
        f"(tokens={usage.input_tokens}+{usage.output_tokens})"
    )
    return text


def _strip_llm_fences(raw_output: str) -> str:
    """Strip markdown code fences from LLM output.

    Handles: ```json ... ```, ``` ... ```, leading/trailing whitespace.
    """
    cleaned = raw_output.strip()

    fence_match = re.search(r"```(?:json)?\s*\n?(.*?)```", cleaned, re.DOTALL)
    if fence_match:
        return fence_match.group(1).strip()

    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def parse_llm_json_dict(raw_output: str) -> dict:
    """
    Parse LLM output as a JSON object.

    Args:
        raw_output: Raw string from LLM response

    Returns:
        Parsed dict

    Raises:
        json.JSONDecodeError: If JSON parsing fails after cleanup
        TypeError: If the payload is valid JSON but not an object
    """
    parsed = json.loads(_strip_llm_fences(raw_output or ""))
    if not isinstance(parsed, dict):
        raise TypeError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed
