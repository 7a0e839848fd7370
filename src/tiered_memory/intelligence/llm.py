"""
Thin wrappers around casual_llm provider calls.

Every component talks to the language model through generate_text or
generate_json so that provider failures and unusable answers surface as a
single exception type, UpstreamLanguageModelError. Callers decide how to
degrade.
"""

import json
import logging
import re
from typing import Any, Dict, Optional

from casual_llm import LLMProvider, SystemMessage, UserMessage

from tiered_memory.errors import UpstreamLanguageModelError

logger = logging.getLogger(__name__)

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def _build_messages(prompt: str, system_prompt: Optional[str]):
    messages = []
    if system_prompt:
        messages.append(SystemMessage(content=system_prompt))
    messages.append(UserMessage(content=prompt))
    return messages


def parse_json_object(text: str) -> Dict[str, Any]:
    """
    Parse a JSON object from a model answer.

    Tolerates surrounding prose or code fences by falling back to the
    outermost {...} span.

    Raises:
        UpstreamLanguageModelError: If no JSON object can be parsed
    """
    if not text or not text.strip():
        raise UpstreamLanguageModelError("Empty response from language model")

    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        match = _JSON_OBJECT.search(text)
        if not match:
            raise UpstreamLanguageModelError(f"No JSON object in response: {text[:100]}")
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            raise UpstreamLanguageModelError(f"Failed to parse JSON response: {e}") from e

    if not isinstance(data, dict):
        raise UpstreamLanguageModelError(f"Expected a JSON object, got {type(data).__name__}")

    return data


async def generate_text(
    llm_provider: LLMProvider,
    prompt: str,
    system_prompt: Optional[str] = None,
    temperature: float = 0.3,
    max_tokens: Optional[int] = None,
) -> str:
    """
    Run a text-mode completion.

    Returns:
        The stripped answer text

    Raises:
        UpstreamLanguageModelError: If the call fails or the answer is empty
    """
    try:
        response = await llm_provider.chat(
            _build_messages(prompt, system_prompt),
            response_format="text",
            temperature=temperature,
            max_tokens=max_tokens,
        )
    except Exception as e:
        raise UpstreamLanguageModelError(f"Language model call failed: {e}") from e

    content = (response.content or "").strip()
    if not content:
        raise UpstreamLanguageModelError("Empty response from language model")
    return content


async def generate_json(
    llm_provider: LLMProvider,
    prompt: str,
    system_prompt: Optional[str] = None,
    temperature: float = 0.1,
    max_tokens: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Run a JSON-mode completion and parse the answer.

    Returns:
        The parsed JSON object

    Raises:
        UpstreamLanguageModelError: If the call fails or the answer is not a JSON object
    """
    try:
        response = await llm_provider.chat(
            _build_messages(prompt, system_prompt),
            response_format="json",
            temperature=temperature,
            max_tokens=max_tokens,
        )
    except Exception as e:
        raise UpstreamLanguageModelError(f"Language model call failed: {e}") from e

    logger.debug(f"JSON response: {response.content}")
    return parse_json_object(response.content)
