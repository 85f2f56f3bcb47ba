"""Pydantic schemas for the chat-completion client."""

from typing import Any, Literal

from pydantic import BaseModel, Field

LLMRole = Literal["system", "user", "assistant"]

LLMErrorType = Literal[
    "not_configured",
    "api_error",
    "network_error",
    "timeout",
    "invalid_payload",
]


class LLMMessage(BaseModel):
    """One turn of a chat conversation."""

    role: LLMRole
    content: str


class LLMUsage(BaseModel):
    """Token accounting reported by the endpoint."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class LLMResponse(BaseModel):
    """A decoded chat completion.

    Attributes:
        content: Text of the first choice.
        model: Model that answered, as reported by the endpoint.
        usage: Token accounting.
        raw_response: The full decoded body, kept for debugging.
    """

    content: str
    model: str
    usage: LLMUsage = Field(default_factory=LLMUsage)
    raw_response: dict[str, Any] = Field(default_factory=dict)


class LLMError(BaseModel):
    """Why a chat completion failed.

    Callers receive it serialized inside a ValueError, so they can match on
    ``error_type`` without importing httpx.

    Attributes:
        error_type: Failure category.
        message: Human-readable description.
        status_code: HTTP status of the endpoint's answer, if there was one.
    """

    error_type: LLMErrorType
    message: str
    status_code: int | None = None

    def to_exception(self) -> ValueError:
        return ValueError(self.model_dump_json())
