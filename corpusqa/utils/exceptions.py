"""
Exception hierarchy and error handling utilities for corpusqa.

Provides:
- Custom exception classes with error codes
- Error categorization (retryable, fatal, validation)
- Safe error message formatting (no sensitive data leak)

Ingestion surfaces these errors to the caller; the retrieval boundary
converts them into degraded answers.
"""

from __future__ import annotations

import asyncio
import json
import re
from enum import Enum
from typing import Any


class ErrorCategory(Enum):
    """Error categories for classification."""
    RETRYABLE = "retryable"
    FATAL = "fatal"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    PERMISSION = "permission"
    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"


class CorpusQAError(Exception):
    """Base exception for all corpusqa errors."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        category: ErrorCategory = ErrorCategory.FATAL,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "category": self.category.value,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class InvalidConfiguration(CorpusQAError):
    """Bad chunking parameters, dimension mismatch, uninitialized index. Fatal at setup."""

    def __init__(self, message: str, setting: str | None = None):
        details = {"setting": setting} if setting else {}
        super().__init__(message, code="INVALID_CONFIGURATION", category=ErrorCategory.FATAL, details=details)


class ValidationError(CorpusQAError):
    """Input validation error."""

    def __init__(self, message: str, field: str | None = None):
        details = {"field": field} if field else {}
        super().__init__(message, code="VALIDATION_ERROR", category=ErrorCategory.VALIDATION, details=details)


class UnsupportedContent(CorpusQAError):
    """Document type that cannot be turned into plain text, or a file whose text cannot be extracted."""

    def __init__(self, mime_type: str, source: str | None = None, reason: str | None = None):
        if reason:
            message = f"Could not extract text from {source or 'document'} ({mime_type}): {reason}"
        else:
            message = f"Unsupported file type: {mime_type or '(unknown)'}"
        super().__init__(
            message,
            code="UNSUPPORTED_CONTENT",
            category=ErrorCategory.VALIDATION,
            details={"mime_type": mime_type, "source": source, "reason": reason},
        )


class EmbeddingProviderError(CorpusQAError):
    """Embedding service failed, timed out or returned an unusable response."""

    def __init__(self, message: str, model: str | None = None):
        super().__init__(
            message,
            code="EMBEDDING_PROVIDER_ERROR",
            category=ErrorCategory.RETRYABLE,
            details={"model": model},
        )


class IndexWriteError(CorpusQAError):
    """Upsert failed part way; ``written`` records were already stored."""

    def __init__(self, message: str, written: int, total: int, namespace: str | None = None):
        super().__init__(
            message,
            code="INDEX_WRITE_ERROR",
            category=ErrorCategory.RETRYABLE,
            details={"written": written, "total": total, "namespace": namespace},
        )
        self.written = written
        self.total = total


class IndexQueryError(CorpusQAError):
    """Similarity query against the vector index failed."""

    def __init__(self, message: str, namespace: str | None = None):
        super().__init__(
            message,
            code="INDEX_QUERY_ERROR",
            category=ErrorCategory.RETRYABLE,
            details={"namespace": namespace},
        )


class GenerationProviderError(CorpusQAError):
    """Answer-generation call failed or returned nothing."""

    def __init__(
        self,
        message: str,
        model: str | None = None,
        error_kind: str | None = None,
        is_retryable: bool = True,
    ):
        category = ErrorCategory.RETRYABLE if is_retryable else ErrorCategory.FATAL
        super().__init__(
            message,
            code="GENERATION_PROVIDER_ERROR",
            category=category,
            details={"model": model, "error_kind": error_kind, "is_retryable": is_retryable},
        )


_SENSITIVE_PATTERNS = [
    re.compile(r"(api[_-]?key|token|secret|password|auth)[=:]\s*['\"]?([^\s'\"]+)['\"]?", re.IGNORECASE),
    re.compile(r"bearer\s+[a-zA-Z0-9\-._~+/]+=*", re.IGNORECASE),
    re.compile(r"sk-[a-zA-Z0-9\-_]{20,}"),
    re.compile(r"hf_[a-zA-Z0-9]{20,}"),
    # long opaque tokens, but not a bare 32-char lowercase hex id (uuid4().hex document ids)
    re.compile(r"(?<![A-Za-z0-9])(?![0-9a-f]{32}(?![A-Za-z0-9]))[A-Za-z0-9]{32,}"),
]


def sanitize_error_message(message: str, replacement: str = "[REDACTED]") -> str:
    """Remove sensitive information from error messages."""
    sanitized = message
    for pattern in _SENSITIVE_PATTERNS:
        sanitized = pattern.sub(replacement, sanitized)
    return sanitized


def classify_exception(exc: Exception) -> tuple[str, ErrorCategory, bool]:
    """
    Classify an exception and return (error_code, category, should_retry).

    Returns:
        Tuple of (error_code, category, should_retry)
    """
    exc_str = str(exc).lower()

    if isinstance(exc, CorpusQAError):
        return exc.code, exc.category, exc.category in (ErrorCategory.RETRYABLE, ErrorCategory.RATE_LIMIT)

    if isinstance(exc, FileNotFoundError):
        return "FILE_NOT_FOUND", ErrorCategory.NOT_FOUND, False

    if isinstance(exc, asyncio.TimeoutError):
        return "TIMEOUT", ErrorCategory.TIMEOUT, True

    if isinstance(exc, ConnectionError):
        return "CONNECTION_ERROR", ErrorCategory.RETRYABLE, True

    if isinstance(exc, json.JSONDecodeError):
        return "JSON_PARSE_ERROR", ErrorCategory.VALIDATION, False

    if isinstance(exc, ValueError):
        return "INVALID_VALUE", ErrorCategory.VALIDATION, False

    if "rate limit" in exc_str or "429" in exc_str:
        return "RATE_LIMIT", ErrorCategory.RATE_LIMIT, True

    if "timeout" in exc_str or "timed out" in exc_str:
        return "TIMEOUT", ErrorCategory.TIMEOUT, True

    if "unauthorized" in exc_str or "401" in exc_str:
        return "UNAUTHORIZED", ErrorCategory.PERMISSION, False

    if "connection" in exc_str or "network" in exc_str:
        return "CONNECTION_ERROR", ErrorCategory.RETRYABLE, True

    return "INTERNAL_ERROR", ErrorCategory.FATAL, False


def describe_exception(exc: Exception) -> str:
    """One-line, secret-free description used for degraded-answer reasons and CLI output."""
    code, category, _ = classify_exception(exc)
    message = exc.message if isinstance(exc, CorpusQAError) else str(exc)
    first_line = sanitize_error_message(message).split("\n")[0].strip()
    return f"[{code}] ({category.value}) {first_line}"
