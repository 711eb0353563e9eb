"""Question answering over the indexed corpus: embed, search, ground, generate."""

from __future__ import annotations

from typing import Any

from loguru import logger

from corpusqa.services.retrieval.models import Answer, RetrievalMatch
from corpusqa.utils.exceptions import ValidationError, describe_exception

DEFAULT_TOP_K = 4
NO_CONTEXT_MARKER = "No relevant documents found."
INSUFFICIENT_CONTEXT_REPLY = "I cannot find the answer in the provided documents."
APOLOGY_TEXT = "I'm sorry, I encountered an error while processing your request."

PROMPT_TEMPLATE = """You are a helpful and precise knowledge assistant.

Answer the user's question using ONLY the information in the context below.

Rules:
- Do NOT add outside knowledge, assumptions or general facts that the context does not support.
- If the context does not contain enough information to answer, state clearly what is missing or reply exactly: "{insufficient}"
- Include numbers, dates and quantities exactly as they appear in the context.
- Never mention the context, documents, search or retrieval in your answer; speak as if you simply know the facts.
- Keep answers clear, factual and concise.

Context:
{context}

User Question:
{question}

Answer:
"""


def build_context(matches: list[RetrievalMatch]) -> str:
    """1-indexed "(i) text" blocks separated by blank lines, or the no-match marker."""
    if not matches:
        return NO_CONTEXT_MARKER
    return "\n\n".join(f"({i}) {m.text}" for i, m in enumerate(matches, start=1))


def build_prompt(question: str, context: str) -> str:
    return PROMPT_TEMPLATE.format(insufficient=INSUFFICIENT_CONTEXT_REPLY, context=context, question=question)


def dedupe_sources(matches: list[RetrievalMatch]) -> list[str]:
    seen: dict[str, None] = {}
    for m in matches:
        source = m.metadata.get("source")
        if source:
            seen.setdefault(str(source), None)
    return list(seen)


def coerce_top_k(top_k: Any, default: int = DEFAULT_TOP_K) -> int:
    """Positive int passes through; anything else (bool, None, 0, "4") becomes the default."""
    if isinstance(top_k, bool) or not isinstance(top_k, int) or top_k <= 0:
        return default
    return top_k


class RetrievalPipeline:
    """
    Answer a question from the indexed corpus.

    Errors in embedding, search or generation never escape answer(): they
    become a degraded Answer with a fixed apology and the reason logged.
    """

    def __init__(
        self,
        embedder: Any,
        index: Any,
        generator: Any,
        *,
        default_top_k: int = DEFAULT_TOP_K,
        namespace: str | None = None,
    ):
        self.embedder = embedder
        self.index = index
        self.generator = generator
        self.default_top_k = coerce_top_k(default_top_k)
        self.namespace = namespace

    async def answer(self, question: str, top_k: Any = None) -> Answer:
        if not isinstance(question, str) or not question.strip():
            raise ValidationError("question must be a non-empty string", field="question")
        k = coerce_top_k(top_k, self.default_top_k)
        try:
            vector = await self.embedder.embed_one(question)
            result = await self.index.query(vector, k, namespace=self.namespace)
            matches = list(result.matches)
            logger.debug(f"Retrieved {len(matches)} matches (top_k={k})")
            text = await self.generator.complete(build_prompt(question, build_context(matches)))
        except Exception as e:
            reason = describe_exception(e)
            logger.warning(f"Answer degraded: {reason}")
            return Answer(text=APOLOGY_TEXT, status="degraded", reason=reason)
        return Answer(
            text=text,
            sources=dedupe_sources(matches),
            scores=[m.score for m in matches],
        )
