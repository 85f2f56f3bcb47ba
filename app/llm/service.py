"""Chat-completion client for an OpenAI-compatible endpoint.

Only the assisted column mapper uses it today. Every failure is reported
as a ValueError wrapping a serialized LLMError, so callers deal with one
exception type whatever went wrong on the wire.
"""

import json
import logging
import re
from typing import Any

import httpx

from app.config import get_settings
from app.llm.schemas import LLMError, LLMMessage, LLMResponse, LLMUsage

logger = logging.getLogger(__name__)

# Greedy: from the first "{" to the last "}"
_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


def extract_json_object(text: str) -> dict[str, Any]:
    """Pull the JSON object out of a model reply.

    Models tend to wrap JSON in prose or markdown fences, so anything
    outside the outermost braces is ignored.

    Args:
        text: Raw reply.

    Returns:
        dict: The decoded object.

    Raises:
        ValueError: If the reply holds no decodable JSON object.
    """
    match = _JSON_OBJECT_RE.search(text or "")
    if match is None:
        raise LLMError(
            error_type="invalid_payload", message="Reply did not contain a JSON object"
        ).to_exception()

    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise LLMError(
            error_type="invalid_payload", message=f"Reply was not valid JSON: {e.msg}"
        ).to_exception() from e

    if not isinstance(data, dict):
        raise LLMError(
            error_type="invalid_payload", message="Reply JSON was not an object"
        ).to_exception()
    return data


def _parse_completion(data: dict[str, Any], fallback_model: str) -> LLMResponse:
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as e:
        raise LLMError(
            error_type="invalid_payload", message="Completion had no message content"
        ).to_exception() from e

    return LLMResponse(
        content=content or "",
        model=data.get("model") or fallback_model,
        usage=LLMUsage(**{k: v for k, v in (data.get("usage") or {}).items() if k in LLMUsage.model_fields}),
        raw_response=data,
    )


class LLMService:
    """Client for ``/chat/completions`` on any OpenAI-compatible API.

    Attributes:
        settings: Application settings holding the endpoint configuration.
        configured: Whether an API key is set. Without one every call fails
            with ``not_configured`` and callers are expected to fall back.
    """

    def __init__(self):
        self.settings = get_settings()
        self.configured = bool(self.settings.llm_api_key)
        if not self.configured:
            logger.info("No LLM API key set, assisted features are disabled")

    async def chat(
        self,
        messages: list[LLMMessage],
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Run one chat completion.

        Args:
            messages: Conversation so far.
            model: Model override, else ``llm_default_model``.
            temperature: Sampling temperature override, else ``llm_temperature``.
            max_tokens: Completion length override, else ``llm_max_tokens``.

        Returns:
            LLMResponse: The first choice plus usage.

        Raises:
            ValueError: Wrapping an LLMError when the client is not configured,
                the endpoint fails or times out, or the body is unusable.
        """
        if not self.configured:
            raise LLMError(
                error_type="not_configured",
                message="LLM client is not configured, set LLM_API_KEY",
            ).to_exception()

        model = model or self.settings.llm_default_model
        payload = {
            "model": model,
            "messages": [m.model_dump() for m in messages],
            "temperature": self.settings.llm_temperature if temperature is None else temperature,
            "max_tokens": max_tokens or self.settings.llm_max_tokens,
        }
        headers = {
            "Authorization": f"Bearer {self.settings.llm_api_key}",
            "Content-Type": "application/json",
        }
        url = f"{self.settings.llm_base_url.rstrip('/')}/chat/completions"

        try:
            async with httpx.AsyncClient(timeout=self.settings.llm_timeout_seconds) as client:
                response = await client.post(url, json=payload, headers=headers)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            logger.warning(f"LLM endpoint answered HTTP {status_code}: {e.response.text[:200]}")
            raise LLMError(
                error_type="api_error",
                message=f"LLM endpoint answered HTTP {status_code}",
                status_code=status_code,
            ).to_exception() from e
        except httpx.TimeoutException as e:
            logger.warning(f"LLM request to {url} timed out")
            raise LLMError(
                error_type="timeout", message="LLM endpoint did not answer in time"
            ).to_exception() from e
        except httpx.RequestError as e:
            logger.warning(f"LLM request to {url} failed: {e}")
            raise LLMError(
                error_type="network_error", message=f"Could not reach LLM endpoint: {e}"
            ).to_exception() from e
        except json.JSONDecodeError as e:
            raise LLMError(
                error_type="invalid_payload", message="LLM endpoint returned non-JSON body"
            ).to_exception() from e

        return _parse_completion(data, model)

    async def ask(
        self,
        prompt: str,
        system_prompt: str | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Single-turn convenience wrapper around :meth:`chat`."""
        messages = [LLMMessage(role="user", content=prompt)]
        if system_prompt:
            messages.insert(0, LLMMessage(role="system", content=system_prompt))
        response = await self.chat(messages, max_tokens=max_tokens)
        return response.content

    async def ask_json(
        self,
        prompt: str,
        system_prompt: str | None = None,
        max_tokens: int | None = None,
    ) -> dict[str, Any]:
        """Ask for a JSON object and decode it from the reply.

        Raises:
            ValueError: If the call fails or the reply holds no JSON object.
        """
        reply = await self.ask(prompt, system_prompt=system_prompt, max_tokens=max_tokens)
        return extract_json_object(reply)


# Singleton instance
_llm_service: LLMService | None = None


def get_llm_service() -> LLMService:
    """Get the shared LLM client.

    Returns:
        LLMService: The client.
    """
    global _llm_service
    if _llm_service is None:
        _llm_service = LLMService()
    return _llm_service
