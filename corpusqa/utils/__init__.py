"""Utility functions for corpusqa."""

from corpusqa.utils.helpers import ensure_dir, get_data_path
from corpusqa.utils.exceptions import (
    CorpusQAError,
    InvalidConfiguration,
    ValidationError,
    UnsupportedContent,
    EmbeddingProviderError,
    IndexWriteError,
    IndexQueryError,
    GenerationProviderError,
    ErrorCategory,
    classify_exception,
    describe_exception,
    sanitize_error_message,
)

__all__ = [
    "ensure_dir",
    "get_data_path",
    "CorpusQAError",
    "InvalidConfiguration",
    "ValidationError",
    "UnsupportedContent",
    "EmbeddingProviderError",
    "IndexWriteError",
    "IndexQueryError",
    "GenerationProviderError",
    "ErrorCategory",
    "classify_exception",
    "describe_exception",
    "sanitize_error_message",
]
