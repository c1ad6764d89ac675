"""AI completion client - chat completions over the OpenAI SDK.

Rate limits (HTTP 429) and exhausted quota (HTTP 402 / insufficient_quota)
surface as distinct exceptions so routes can show them to the user. Nothing
here retries.
"""
import json
import logging
from typing import Dict, Any, List, Optional, Tuple

import openai
from openai import AsyncOpenAI

from app.config import settings

logger = logging.getLogger(__name__)


class AIServiceError(Exception):
    """The AI gateway failed or returned something unusable."""
    status_code = 502


class AIRateLimitError(AIServiceError):
    """Too many requests - the caller should try again later."""
    status_code = 429


class AIQuotaExceededError(AIServiceError):
    """Credits for the AI gateway are exhausted."""
    status_code = 402


def get_openai_client() -> AsyncOpenAI:
    """Get the OpenAI client."""
    if not settings.OPENAI_API_KEY:
        raise AIServiceError("AI service not configured")
    return AsyncOpenAI(api_key=settings.OPENAI_API_KEY)


def _translate_error(e: openai.APIStatusError) -> AIServiceError:
    code = getattr(e, "code", None)
    if e.status_code == 402 or code == "insufficient_quota":
        return AIQuotaExceededError("AI credits exhausted. Please add credits to continue.")
    if e.status_code == 429:
        return AIRateLimitError("Rate limit exceeded. Please try again in a moment.")
    return AIServiceError(f"AI service error ({e.status_code})")


async def call_openai(
    messages: List[Dict[str, Any]],
    tools: Optional[List[Dict[str, Any]]] = None,
    response_format: Optional[Dict[str, Any]] = None,
) -> Tuple[Optional[str], Optional[Dict[str, Any]]]:
    """
    Call the chat completion endpoint.

    Returns:
        Tuple of (response_content, tool_call) where tool_call is None if no tool was called
    """
    client = get_openai_client()

    kwargs = {
        "model": settings.OPENAI_MODEL,
        "messages": messages,
        "max_tokens": settings.OPENAI_MAX_TOKENS,
    }

    if tools:
        kwargs["tools"] = tools
        kwargs["tool_choice"] = "required"

    if response_format:
        kwargs["response_format"] = response_format

    try:
        response = await client.chat.completions.create(**kwargs)
    except openai.APIStatusError as e:
        logger.warning(f"AI request failed with status {e.status_code}")
        raise _translate_error(e) from e
    except openai.APIError as e:
        logger.error(f"AI request failed: {e}")
        raise AIServiceError("AI service unavailable") from e

    message = response.choices[0].message

    if message.tool_calls:
        tool_call = message.tool_calls[0]
        try:
            arguments = json.loads(tool_call.function.arguments)
        except json.JSONDecodeError as e:
            raise AIServiceError("AI returned malformed tool arguments") from e
        return None, {
            "id": tool_call.id,
            "name": tool_call.function.name,
            "arguments": arguments,
        }

    return message.content, None


async def complete_text(system_prompt: str, user_prompt: str) -> str:
    """Free-text completion for a system/user message pair."""
    content, _ = await call_openai([
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_prompt},
    ])
    if not content:
        raise AIServiceError("AI returned an empty response")
    return content.strip()


async def complete_json(
    system_prompt: str,
    user_prompt: str,
    tool: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Structured completion.

    With ``tool`` (an OpenAI function schema) the model is forced to call it
    and the parsed arguments are returned; otherwise JSON mode is used.
    """
    messages = [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_prompt},
    ]

    if tool:
        _, tool_call = await call_openai(messages, tools=[{"type": "function", "function": tool}])
        if not tool_call:
            raise AIServiceError("AI did not return structured output")
        return tool_call["arguments"]

    content, _ = await call_openai(messages, response_format={"type": "json_object"})
    try:
        return json.loads(content or "")
    except json.JSONDecodeError as e:
        raise AIServiceError("AI returned invalid JSON") from e
