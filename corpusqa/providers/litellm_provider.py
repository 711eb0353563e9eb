"""LiteLLM provider implementation for answer generation (OpenRouter and others)."""

import os
import re
from typing import Any

# Use the bundled model cost map instead of fetching it at import time
os.environ.setdefault("LITELLM_LOCAL_MODEL_COST_MAP", "True")

import litellm
from litellm import acompletion

from corpusqa.providers.base import LLMProvider, LLMResponse


_MAX_DETAIL_LEN = 1200


def _mask_api_key(api_key: str | None) -> str:
    """Mask API key for display: 'not set' or first6...last4."""
    if not api_key or not api_key.strip():
        return "not set"
    key = api_key.strip()
    if len(key) <= 10:
        return "***"
    return f"{key[:6]}...{key[-4:]}"


def _format_request_debug(model: str | None, api_base: str | None, api_key: str | None) -> str:
    parts = [
        f"model={model or '(none)'}",
        f"api_base={api_base or '(default)'}",
        f"api_key={_mask_api_key(api_key)}",
    ]
    return ", ".join(parts)


def _user_friendly_llm_error(
    exc: Exception,
    model: str | None = None,
    *,
    api_base: str | None = None,
    api_key: str | None = None,
) -> str:
    """Turn LiteLLM/API errors into a short, actionable first line, with detail appended."""
    err_str = str(exc)
    match = re.search(r"'msg':\s*'([^']+)'", err_str)
    if match:
        api_msg = match.group(1).strip()
        short = f"Error calling LLM: {api_msg}. Check generation.model, api_base and API key."
    elif "404" in err_str or "NOT_FOUND" in err_str:
        short = "Error calling LLM: 404 NOT_FOUND. Model or endpoint not found; check generation.model and api_base."
    else:
        first_line = err_str.split("\n")[0].strip()
        short = f"Error calling LLM: {first_line}"
    detail = err_str if len(err_str) <= _MAX_DETAIL_LEN else err_str[:_MAX_DETAIL_LEN] + "\n... (truncated)"
    out = f"{short}\n\nDetail: {detail}"
    if model is not None or api_base is not None or api_key is not None:
        out += f"\n\nRequest: {_format_request_debug(model, api_base, api_key)}"
    return out


def _extract_status_code(exc: Exception) -> int | None:
    for attr in ("status_code", "status", "http_status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
        if isinstance(value, str) and value.isdigit():
            return int(value)
    msg = str(exc)
    for code in (401, 403, 404, 408, 409, 425, 429, 500, 502, 503, 504):
        if f"{code}" in msg:
            return code
    return None


def _classify_error_kind(exc: Exception) -> tuple[str, bool]:
    msg = str(exc).lower()
    if any(x in msg for x in ("rate limit", "too many requests", "429")):
        return "rate_limit", True
    if any(x in msg for x in ("insufficient", "credit", "billing", "payment", "quota exceeded")):
        return "billing", False
    if any(x in msg for x in ("unauthorized", "invalid api key", "forbidden", "401", "403")):
        return "auth", False
    if any(x in msg for x in ("timeout", "timed out", "deadline exceeded")):
        return "timeout", True
    status = _extract_status_code(exc)
    if status is not None:
        if status >= 500 or status in {408, 409, 425, 429}:
            return "unknown", True
        return "unknown", False
    return "unknown", True


def _build_error_meta(exc: Exception) -> dict[str, Any]:
    kind, retryable = _classify_error_kind(exc)
    status = _extract_status_code(exc)
    code = getattr(exc, "code", None)
    if code is None:
        code = exc.__class__.__name__
    return {
        "error_kind": kind,
        "retryable": retryable,
        "error_status": status,
        "error_code": str(code),
    }


class LiteLLMProvider(LLMProvider):
    """
    Answer-generation provider using LiteLLM.

    The model string carries the provider prefix LiteLLM routes on,
    e.g. openrouter/openai/gpt-4o-mini.
    """

    def __init__(
        self,
        api_key: str | None = None,
        api_base: str | None = None,
        default_model: str = "openrouter/openai/gpt-4o-mini",
        extra_headers: dict[str, str] | None = None,
        temperature: float = 0.3,
        max_tokens: int = 2000,
        timeout: float | None = 120.0,
    ):
        super().__init__(api_key or None, api_base or None)
        self.default_model = default_model
        self.extra_headers = dict(extra_headers or {})
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout

        # Disable LiteLLM logging noise
        litellm.suppress_debug_info = True
        # Drop parameters a provider does not accept
        litellm.drop_params = True

    @classmethod
    def from_config(cls, config: Any) -> "LiteLLMProvider":
        gen = config.generation
        return cls(
            api_key=gen.api_key,
            api_base=gen.api_base,
            default_model=gen.model,
            extra_headers=gen.extra_headers,
            temperature=gen.temperature,
            max_tokens=gen.max_tokens,
            timeout=gen.timeout,
        )

    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> LLMResponse:
        """
        Send a chat completion request via LiteLLM.

        Failures come back as LLMResponse(finish_reason="error") with
        error_kind / retryable / error_status / error_code populated.
        """
        model = model or self.default_model
        kwargs: dict[str, Any] = {
            "model": model,
            "messages": [dict(m, content=m.get("content") or "") for m in messages],
            # LiteLLM rejects max_tokens below 1
            "max_tokens": max(1, max_tokens if max_tokens is not None else self.max_tokens),
            "temperature": self.temperature if temperature is None else temperature,
        }
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base
        if self.extra_headers:
            kwargs["extra_headers"] = self.extra_headers
        if self.timeout:
            kwargs["timeout"] = self.timeout

        try:
            response = await acompletion(**kwargs)
            return self._parse_response(response)
        except Exception as e:
            msg = _user_friendly_llm_error(e, model=model, api_base=self.api_base, api_key=self.api_key)
            return LLMResponse(content=msg, finish_reason="error", **_build_error_meta(e))

    def _parse_response(self, response: Any) -> LLMResponse:
        choice = response.choices[0]
        usage = {}
        if getattr(response, "usage", None):
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }
        return LLMResponse(
            content=choice.message.content,
            finish_reason=choice.finish_reason or "stop",
            usage=usage,
        )

    def get_default_model(self) -> str:
        return self.default_model
