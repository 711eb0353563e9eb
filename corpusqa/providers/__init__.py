"""Answer-generation provider abstraction."""

from corpusqa.providers.base import LLMProvider, LLMResponse
from corpusqa.providers.litellm_provider import LiteLLMProvider

__all__ = ["LLMProvider", "LLMResponse", "LiteLLMProvider"]
