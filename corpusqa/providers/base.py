"""Base LLM provider interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from corpusqa.utils.exceptions import GenerationProviderError


@dataclass
class LLMResponse:
    """Response from an LLM provider."""
    content: str | None
    finish_reason: str = "stop"
    usage: dict[str, int] = field(default_factory=dict)
    error_kind: str | None = None
    retryable: bool | None = None
    error_status: int | None = None
    error_code: str | None = None

    @property
    def is_error(self) -> bool:
        return self.finish_reason == "error"


class LLMProvider(ABC):
    """
    Abstract base class for answer-generation providers.

    Implementations return errors as an LLMResponse with finish_reason="error";
    complete() turns those into GenerationProviderError.
    """

    def __init__(self, api_key: str | None = None, api_base: str | None = None):
        self.api_key = api_key
        self.api_base = api_base

    @abstractmethod
    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        max_tokens: int = 2000,
        temperature: float = 0.3,
    ) -> LLMResponse:
        """
        Send a chat completion request.

        Args:
            messages: List of message dicts with 'role' and 'content'.
            model: Model identifier (provider-specific).
            max_tokens: Maximum tokens in response.
            temperature: Sampling temperature.

        Returns:
            LLMResponse with content or error metadata.
        """
        pass

    @abstractmethod
    def get_default_model(self) -> str:
        """Get the default model for this provider."""
        pass

    async def complete(self, prompt: str) -> str:
        """Single-turn generation: the prompt as one user message, the reply text back."""
        response = await self.chat(messages=[{"role": "user", "content": prompt}])
        if response.is_error:
            raise GenerationProviderError(
                (response.content or "LLM call failed").split("\n")[0],
                model=self.get_default_model(),
                error_kind=response.error_kind,
                is_retryable=bool(response.retryable),
            )
        text = (response.content or "").strip()
        if not text:
            raise GenerationProviderError(
                "LLM returned an empty completion",
                model=self.get_default_model(),
                error_kind="empty",
                is_retryable=True,
            )
        return text
