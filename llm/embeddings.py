"""
Embedding providers. Same shape as LLMProvider: one method, one job.

Vectors from different models are not comparable, so the model name is
part of the provider identity and every vector it returns has the same
length.
"""

import logging
from abc import ABC, abstractmethod

from llm.provider import LLMConfigError, classify_error

log = logging.getLogger(__name__)


class EmbeddingProvider(ABC):
    @abstractmethod
    def embed(self, text: str) -> list[float]:
        """Return a fixed-length float vector for `text`."""
        ...

    @abstractmethod
    def name(self) -> str:
        ...


class OpenAIEmbeddingProvider(EmbeddingProvider):
    def __init__(self, api_key: str, model: str = "text-embedding-3-small"):
        if not api_key:
            raise LLMConfigError("OPENAI_API_KEY not set (needed for embeddings)")
        import openai
        self._client = openai.OpenAI(api_key=api_key)
        self._model = model

    def embed(self, text: str) -> list[float]:
        if not text.strip():
            raise ValueError("Cannot embed empty text")
        try:
            resp = self._client.embeddings.create(model=self._model, input=text)
        except Exception as e:
            raise classify_error(e, "OpenAI embeddings error") from e
        vector = list(resp.data[0].embedding)
        log.debug(f"Embedded {len(text)} chars -> {len(vector)} dims")
        return vector

    def name(self) -> str:
        return f"openai/{self._model}"
